"""Snapshot builder - ranks the wallet ledger and publishes the top N."""

import heapq
import logging
import time
from functools import total_ordering

from ..db import LedgerEntry, Repository, SnapshotEntry
from ..sync.retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 100_000


@total_ordering
class _RankKey:
    """Orders ledger entries weakest first: lower volume, then higher address."""

    __slots__ = ("entry",)

    def __init__(self, entry: LedgerEntry):
        self.entry = entry

    def _key(self):
        return self.entry.total_volume_usd, self.entry.wallet_address

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, _RankKey):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: "_RankKey") -> bool:
        a, b = self.entry, other.entry
        if a.total_volume_usd != b.total_volume_usd:
            return a.total_volume_usd < b.total_volume_usd
        # Equal volume: the smaller address ranks higher
        return a.wallet_address > b.wallet_address


class SnapshotBuilder:
    """
    Rebuilds the published leaderboard from the wallet ledger.

    Ranks are 1-based with no gaps, ordered by total volume descending and
    wallet address ascending for ties. Only the best top_n wallets are kept
    in memory while the ledger is streamed.
    """

    def __init__(
        self,
        repository: Repository,
        top_n: int = DEFAULT_TOP_N,
        retry_policy: RetryPolicy | None = None,
    ):
        self.repository = repository
        self.top_n = top_n
        self.retry_policy = retry_policy or RetryPolicy()

    async def select_top(self) -> list[LedgerEntry]:
        """Best top_n ledger entries, strongest first."""
        if self.top_n <= 0:
            return []

        heap: list[_RankKey] = []
        async for entry in self.repository.iter_ledger():
            key = _RankKey(entry)
            if len(heap) < self.top_n:
                heapq.heappush(heap, key)
            elif heap[0] < key:
                heapq.heapreplace(heap, key)

        return [key.entry for key in sorted(heap, reverse=True)]

    async def _rebuild_once(self) -> int:
        started = time.monotonic()

        top = await self.select_top()
        entries = [
            SnapshotEntry(
                rank=rank,
                wallet_address=entry.wallet_address,
                total_volume_usd=entry.total_volume_usd,
                total_tx=entry.total_tx,
            )
            for rank, entry in enumerate(top, start=1)
        ]
        count = await self.repository.replace_snapshot(entries)

        logger.info(
            f"Snapshot rebuilt: {count} wallets in {time.monotonic() - started:.2f}s"
        )
        return count

    async def rebuild(self) -> int:
        """
        Recompute ranks and swap in the new leaderboard.

        Returns:
            Number of rows in the new snapshot
        """
        return await with_retry(
            self._rebuild_once,
            self.retry_policy,
            "Rebuilding leaderboard snapshot",
        )
