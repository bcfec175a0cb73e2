"""Job guards and the APScheduler-based runner for sync and snapshot jobs."""

import asyncio
import logging
import signal
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from aiohttp import web
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .api import RelayApiClient
from .config import Config
from .db import Repository
from .leaderboard import LeaderboardReader, SnapshotBuilder
from .reporting import RunReportLogger
from .server import create_app
from .sync import PageSource, RetryPolicy, SyncResult, SyncWorker

logger = logging.getLogger(__name__)


class JobGuard:
    """
    In-process mutual exclusion for one job.

    Overlapping invocations are skipped rather than queued. The check and
    the claim happen without an await in between, so the guard is safe for
    any number of tasks on one event loop.
    """

    def __init__(self, name: str):
        self.name = name
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[bool]:
        """Yield True if this invocation owns the job, False if it should skip."""
        if self._running:
            logger.debug(f"{self.name} already running, skipping")
            yield False
            return

        self._running = True
        try:
            yield True
        finally:
            self._running = False


def retry_policy_from(config: Config) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=config.retry.max_attempts,
        base_delay=config.retry.base_delay_seconds,
        multiplier=config.retry.backoff_multiplier,
    )


class LeaderboardJobs:
    """The sync and snapshot jobs, each behind its own guard."""

    def __init__(
        self,
        config: Config,
        sync_repository: Repository,
        snapshot_repository: Repository,
        source: PageSource,
        reporter: RunReportLogger,
    ):
        retry_policy = retry_policy_from(config)
        self.reporter = reporter
        self.worker = SyncWorker(
            repository=sync_repository,
            source=source,
            config=config.sync,
            retry_policy=retry_policy,
        )
        self.builder = SnapshotBuilder(
            repository=snapshot_repository,
            top_n=config.snapshot.top_n,
            retry_policy=retry_policy,
        )
        self.snapshot_repository = snapshot_repository
        self.sync_guard = JobGuard("Sync")
        self.snapshot_guard = JobGuard("Snapshot")

    async def trigger_sync(self) -> SyncResult | None:
        """Run a sync unless one is in progress. Returns None when skipped."""
        async with self.sync_guard.acquire() as acquired:
            if not acquired:
                self.reporter.log_skipped("Sync")
                return None

            try:
                result = await self.worker.run()
            except Exception as e:
                self.reporter.log_failure("Sync", e)
                raise

            self.reporter.log_sync(result)
            return result

    async def trigger_snapshot(self) -> int | None:
        """Rebuild the snapshot unless a rebuild is in progress. Returns None when skipped."""
        async with self.snapshot_guard.acquire() as acquired:
            if not acquired:
                self.reporter.log_skipped("Snapshot")
                return None

            started = time.monotonic()
            try:
                count = await self.builder.rebuild()
                ledger_size = await self.snapshot_repository.count_wallets()
            except Exception as e:
                self.reporter.log_failure("Snapshot", e)
                raise

            self.reporter.log_snapshot(count, ledger_size, time.monotonic() - started)
            return count


class LeaderboardScheduler:
    """Runs the sync and snapshot jobs on a schedule and serves reads."""

    def __init__(self, config: Config):
        self.config = config
        self._scheduler = AsyncIOScheduler()
        self._shutdown_event = asyncio.Event()
        self._web_runner: web.AppRunner | None = None

        db_path = config.database.path
        # Separate connections so reads never see a half-written transaction
        self.sync_repository = Repository(db_path)
        self.snapshot_repository = Repository(db_path)
        self.read_repository = Repository(db_path)

        self.relay = RelayApiClient(
            base_url=config.relay.base_url,
            requests_path=config.relay.requests_path,
            api_key=config.relay.api_key,
            timeout=config.relay.timeout_seconds,
        )
        self.reporter = RunReportLogger(
            log_file=config.logging.file,
            log_level=config.logging.level,
            max_file_size_mb=config.logging.max_file_size_mb,
            backup_count=config.logging.backup_count,
        )
        self.jobs = LeaderboardJobs(
            config,
            sync_repository=self.sync_repository,
            snapshot_repository=self.snapshot_repository,
            source=self.relay,
            reporter=self.reporter,
        )

    async def start(self):
        """Run initial jobs, register the schedule, and block until shutdown."""
        for repository in (self.sync_repository, self.snapshot_repository, self.read_repository):
            await repository.initialize()

        # Start serving the last published snapshot right away
        await self._start_web_server()

        logger.info("Initial sync")
        await self._job_sync()
        logger.info("Initial snapshot")
        await self._job_snapshot()

        self._scheduler.add_job(
            self._job_sync,
            "interval",
            minutes=self.config.sync.interval_minutes,
            id="relay_sync",
            name="Relay Sync",
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.add_job(
            self._job_snapshot,
            "cron",
            minute=self.config.snapshot.cron_minute,
            id="leaderboard_snapshot",
            name="Leaderboard Snapshot",
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info(
            f"Scheduler started: sync every {self.config.sync.interval_minutes} min, "
            f"snapshot hourly at :{self.config.snapshot.cron_minute:02d}"
        )

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._signal_handler)

        await self._shutdown_event.wait()
        await self.stop()

    async def stop(self):
        """Stop the scheduler and release resources."""
        logger.info("Scheduler stopping")
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

        if self._web_runner:
            await self._web_runner.cleanup()
            self._web_runner = None

        await self.relay.close()
        for repository in (self.sync_repository, self.snapshot_repository, self.read_repository):
            await repository.close()
        self.reporter.close()
        logger.info("Scheduler stopped")

    def _signal_handler(self):
        logger.info("Received shutdown signal")
        self._shutdown_event.set()

    # Job wrappers (catch exceptions so the scheduler keeps running)

    async def _job_sync(self):
        try:
            await self.jobs.trigger_sync()
        except Exception:
            logger.error("Sync run failed", exc_info=True)

    async def _job_snapshot(self):
        try:
            await self.jobs.trigger_snapshot()
        except Exception:
            logger.error("Snapshot run failed", exc_info=True)

    async def _start_web_server(self):
        reader = LeaderboardReader(
            self.read_repository,
            page_size=self.config.server.page_size,
            max_entries=self.config.snapshot.top_n,
        )
        self._web_runner = web.AppRunner(create_app(reader))
        await self._web_runner.setup()
        site = web.TCPSite(self._web_runner, self.config.server.host, self.config.server.port)
        await site.start()
        logger.info(
            f"Leaderboard API listening on http://{self.config.server.host}:{self.config.server.port}"
        )
