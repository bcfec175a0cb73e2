"""Incremental sync worker - pages through Relay requests into the wallet ledger."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol, TypeVar

from ..api import RequestPage
from ..config import SyncConfig
from ..db import Repository
from .aggregator import aggregate_page, total_volume
from .retry import RetryPolicy, Sleep, with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PageSource(Protocol):
    """Anything that can hand out pages of Relay requests."""

    async def fetch_page(
        self,
        continuation: str | None = None,
        start_timestamp: int | None = None,
    ) -> RequestPage:
        ...


@dataclass
class SyncResult:
    """Outcome of one sync run (reported, not persisted)."""

    pages_processed: int = 0
    requests_processed: int = 0
    wallets_upserted: int = 0
    last_timestamp: int = 0  # watermark after the run
    stopped_early: bool = False
    resumed: bool = False
    duration_seconds: float = 0.0


class SyncWorker:
    """
    Drives the fetch -> aggregate -> persist loop.

    Each non-empty page is committed together with the continuation that
    follows it, so a page is applied to the ledger exactly once even if the
    process dies between pages. The watermark only moves when the
    continuation chain is exhausted.
    """

    def __init__(
        self,
        repository: Repository,
        source: PageSource,
        config: SyncConfig,
        retry_policy: RetryPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.repository = repository
        self.source = source
        self.config = config
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    async def _retry(self, operation: Callable[[], Awaitable[T]], description: str) -> T:
        return await with_retry(
            operation,
            self.retry_policy,
            description,
            sleep=self._sleep,
        )

    async def run(self) -> SyncResult:
        """
        Run one bounded sync pass.

        Returns:
            SyncResult with counters and whether work remains

        Raises:
            The underlying error once retries are exhausted. State is left
            as of the last committed page.
        """
        started = time.monotonic()

        cursor = await self._retry(self.repository.get_sync_cursor, "Loading sync cursor")
        watermark = cursor.last_processed_timestamp

        result = SyncResult(
            last_timestamp=watermark,
            resumed=cursor.last_continuation is not None,
        )

        continuation = cursor.last_continuation
        persisted_continuation = continuation
        max_seen = max(watermark, cursor.pending_max_timestamp)
        empty_pages = 0

        if continuation:
            logger.info("Resuming sync from saved continuation")
        else:
            logger.info(f"Starting sync from timestamp {watermark}")

        while True:
            if result.pages_processed >= self.config.max_pages_per_run:
                if continuation != persisted_continuation:
                    await self._save_continuation(continuation)
                result.stopped_early = True
                logger.info(
                    f"Hit max pages per run ({self.config.max_pages_per_run}), "
                    "stopping early; next run resumes from saved continuation"
                )
                break

            if result.pages_processed > 0 and self.config.page_delay_ms > 0:
                await self._sleep(self.config.page_delay_ms / 1000)

            page = await self._retry(
                lambda: self.source.fetch_page(
                    continuation=continuation,
                    start_timestamp=None if continuation else watermark,
                ),
                "Fetching requests page",
            )
            result.pages_processed += 1

            if not page.requests:
                empty_pages += 1
                if (
                    not page.continuation
                    or empty_pages >= self.config.max_consecutive_empty_pages
                ):
                    logger.info(
                        f"End of data ({empty_pages} consecutive empty page(s), "
                        f"continuation={page.continuation is not None})"
                    )
                    await self._retry(
                        lambda: self.repository.complete_run(max_seen),
                        "Completing sync run",
                    )
                    result.last_timestamp = max_seen
                    break

                continuation = page.continuation

            else:
                empty_pages = 0
                deltas = aggregate_page(page.requests)
                max_seen = max(max_seen, page.max_created_at_ms)
                finish = page.continuation is None

                written = await self._retry(
                    lambda: self.repository.apply_page(
                        deltas,
                        page.continuation,
                        max_timestamp=page.max_created_at_ms,
                        finish=finish,
                    ),
                    "Persisting page",
                )
                persisted_continuation = page.continuation
                result.requests_processed += len(page.requests)
                result.wallets_upserted += written

                logger.debug(
                    f"Page {result.pages_processed}: {len(page.requests)} requests, "
                    f"{written} wallets, ${total_volume(deltas):,.2f}"
                )

                if finish:
                    result.last_timestamp = max_seen
                    break

                continuation = page.continuation

            if (
                self.config.checkpoint_every_pages > 0
                and result.pages_processed % self.config.checkpoint_every_pages == 0
            ):
                logger.info(
                    f"Progress: {result.pages_processed} pages, "
                    f"{result.requests_processed} requests, "
                    f"{result.wallets_upserted} wallet upserts"
                )
                if continuation != persisted_continuation:
                    await self._save_continuation(continuation)
                    persisted_continuation = continuation

        result.duration_seconds = time.monotonic() - started
        return result

    async def _save_continuation(self, continuation: str | None):
        await self._retry(
            lambda: self.repository.save_continuation(continuation),
            "Saving continuation",
        )
