"""Run reporting - formats job outcomes and outputs them to console and file."""

import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from ..sync import SyncResult


class RunReportFormatter(logging.Formatter):
    """Custom formatter for job run reports."""

    SYNC_FORMAT = """
================================================================================
{timestamp} | SYNC | {outcome}
--------------------------------------------------------------------------------
  Pages:       {pages}
  Requests:    {requests}
  Upserts:     {upserts}
  Watermark:   {watermark}
  Resumed:     {resumed}
  Duration:    {duration:.1f}s
================================================================================
"""

    SNAPSHOT_FORMAT = """
================================================================================
{timestamp} | SNAPSHOT | PUBLISHED
--------------------------------------------------------------------------------
  Wallets:     {count}
  Ledger:      {ledger_size}
  Duration:    {duration:.1f}s
================================================================================
"""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        if hasattr(record, "sync_result"):
            return self._format_sync(record.sync_result, timestamp)
        if hasattr(record, "snapshot_count"):
            return self.SNAPSHOT_FORMAT.format(
                timestamp=timestamp,
                count=record.snapshot_count,
                ledger_size=record.ledger_size,
                duration=record.duration,
            )
        return f"{timestamp} | {record.levelname} | {record.getMessage()}" + (
            "\n" + self.formatException(record.exc_info) if record.exc_info else ""
        )

    def _format_sync(self, result: SyncResult, timestamp: str) -> str:
        return self.SYNC_FORMAT.format(
            timestamp=timestamp,
            outcome="STOPPED EARLY" if result.stopped_early else "CAUGHT UP",
            pages=result.pages_processed,
            requests=result.requests_processed,
            upserts=result.wallets_upserted,
            watermark=_format_watermark(result.last_timestamp),
            resumed="yes" if result.resumed else "no",
            duration=result.duration_seconds,
        )


def _format_watermark(ms: int) -> str:
    if ms <= 0:
        return "0 (from beginning)"
    return f"{ms} ({datetime.fromtimestamp(ms / 1000).strftime('%Y-%m-%d %H:%M:%S')})"


class RunReportLogger:
    """Handles run report output to console and file."""

    def __init__(
        self,
        log_file: str | Path,
        log_level: str = "INFO",
        max_file_size_mb: int = 10,
        backup_count: int = 5,
    ):
        self.log_file = Path(log_file)
        self.log_level = getattr(logging, log_level.upper(), logging.INFO)
        self.max_file_size = max_file_size_mb * 1024 * 1024
        self.backup_count = backup_count

        self._logger = logging.getLogger("relay_leaderboard.runs")
        self._setup_logging()

    def _setup_logging(self):
        """Configure logging handlers."""
        self._logger.setLevel(self.log_level)
        self._logger.handlers.clear()
        # Reports have their own handlers; keep them out of the app log
        self._logger.propagate = False

        # Ensure log directory exists
        self.log_file.parent.mkdir(parents=True, exist_ok=True)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(self.log_level)
        console_handler.setFormatter(RunReportFormatter())
        self._logger.addHandler(console_handler)

        # File handler with rotation
        file_handler = RotatingFileHandler(
            self.log_file,
            maxBytes=self.max_file_size,
            backupCount=self.backup_count,
        )
        file_handler.setLevel(self.log_level)
        file_handler.setFormatter(RunReportFormatter())
        self._logger.addHandler(file_handler)

    def close(self):
        """Flush and detach handlers."""
        for handler in list(self._logger.handlers):
            handler.close()
            self._logger.removeHandler(handler)

    def _emit(self, level: int, msg: str, exc_info=None, **fields):
        record = self._logger.makeRecord(
            name=self._logger.name,
            level=level,
            fn="",
            lno=0,
            msg=msg,
            args=(),
            exc_info=exc_info,
        )
        for key, value in fields.items():
            setattr(record, key, value)
        self._logger.handle(record)

    def log_sync(self, result: SyncResult):
        """Log a completed sync run."""
        self._emit(logging.INFO, "Sync complete", sync_result=result)

    def log_snapshot(self, count: int, ledger_size: int, duration: float):
        """Log a published snapshot and the size of the ledger it was ranked from."""
        self._emit(
            logging.INFO,
            "Snapshot complete",
            snapshot_count=count,
            ledger_size=ledger_size,
            duration=duration,
        )

    def log_skipped(self, job: str):
        """Log an invocation skipped because the job was already running."""
        self._emit(logging.INFO, f"{job} already running, skipped")

    def log_failure(self, job: str, error: BaseException):
        """Log a run that aborted."""
        self._emit(
            logging.ERROR,
            f"{job} failed: {error}",
            exc_info=(type(error), error, error.__traceback__),
        )


def setup_app_logging(level: str = "INFO"):
    """Set up application-wide logging."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    # Configure root logger
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
