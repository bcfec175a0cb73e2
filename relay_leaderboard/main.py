"""Main entry point for the Relay leaderboard service."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from aiohttp import web

from .api import RelayApiClient
from .config import Config, load_config
from .db import Repository
from .leaderboard import LeaderboardReader
from .reporting import RunReportLogger, setup_app_logging
from .scheduler import LeaderboardJobs, LeaderboardScheduler
from .server import create_app

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Relay leaderboard - sync wallet volume and publish rankings"
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "command",
        choices=["sync", "snapshot", "serve", "run"],
        help=(
            "sync: one sync pass; snapshot: rebuild the leaderboard once; "
            "serve: read API only; run: scheduled jobs plus read API"
        ),
    )
    return parser.parse_args(argv)


async def run_once(config: Config, command: str) -> bool:
    """Run a single sync or snapshot. Returns True on success."""
    repository = Repository(config.database.path)
    relay = RelayApiClient(
        base_url=config.relay.base_url,
        requests_path=config.relay.requests_path,
        api_key=config.relay.api_key,
        timeout=config.relay.timeout_seconds,
    )
    reporter = RunReportLogger(
        log_file=config.logging.file,
        log_level=config.logging.level,
        max_file_size_mb=config.logging.max_file_size_mb,
        backup_count=config.logging.backup_count,
    )
    jobs = LeaderboardJobs(
        config,
        sync_repository=repository,
        snapshot_repository=repository,
        source=relay,
        reporter=reporter,
    )

    try:
        try:
            await repository.initialize()
        except Exception:
            logger.error(f"Could not open database at {config.database.path}", exc_info=True)
            return False

        if command == "sync":
            await jobs.trigger_sync()
        else:
            await jobs.trigger_snapshot()
        return True
    except Exception:
        # Already reported by the job; keep the exit status meaningful
        return False
    finally:
        await relay.close()
        await repository.close()
        reporter.close()


async def serve(config: Config):
    """Serve the read API until interrupted."""
    repository = Repository(config.database.path)
    await repository.initialize()

    reader = LeaderboardReader(
        repository,
        page_size=config.server.page_size,
        max_entries=config.snapshot.top_n,
    )
    runner = web.AppRunner(create_app(reader))
    await runner.setup()
    site = web.TCPSite(runner, config.server.host, config.server.port)
    await site.start()
    logger.info(f"Leaderboard API listening on http://{config.server.host}:{config.server.port}")

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_event.set)

    try:
        await shutdown_event.wait()
    finally:
        await runner.cleanup()
        await repository.close()


async def main_async(args) -> int:
    """Async main function."""
    # Load configuration
    config_path = Path(args.config)
    if not config_path.exists():
        logger.error(f"Configuration file not found: {config_path}")
        return 1

    config = load_config(config_path)

    # Override log level if debug flag is set
    if args.debug:
        config.logging.level = "DEBUG"

    setup_app_logging(config.logging.level)

    if args.command in ("sync", "snapshot"):
        return 0 if await run_once(config, args.command) else 1

    if args.command == "serve":
        await serve(config)
        return 0

    scheduler = LeaderboardScheduler(config)
    await scheduler.start()
    return 0


def main():
    """Main entry point."""
    args = parse_args()

    try:
        sys.exit(asyncio.run(main_async(args)))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
