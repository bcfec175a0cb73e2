"""Read side of the leaderboard - pages and per-wallet rank lookups."""

import math
import re
from dataclasses import dataclass
from decimal import Decimal

from ..db import Repository, SnapshotEntry
from ..sync.aggregator import normalize_wallet

DEFAULT_PAGE_SIZE = 50
DEFAULT_MAX_ENTRIES = 100_000

_ADDRESS_PATTERN = re.compile(r"^[0-9a-z]{1,128}$")


class InvalidWalletAddress(ValueError):
    """Raised when a lookup address cannot be a wallet address."""


@dataclass
class LeaderboardPage:
    """One page of the published leaderboard."""

    entries: list[SnapshotEntry]
    page: int
    total_pages: int
    total_wallets: int
    page_size: int


@dataclass
class WalletRank:
    """Where a wallet sits in the published leaderboard, if at all."""

    in_top: bool
    wallet_address: str
    rank: int | None = None
    total_volume_usd: Decimal | None = None
    total_tx: int | None = None


class LeaderboardReader:
    """Paginated and point reads over the published leaderboard."""

    def __init__(
        self,
        repository: Repository,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ):
        self.repository = repository
        self.page_size = page_size
        self.max_entries = max_entries

    @property
    def max_page(self) -> int:
        return max(1, math.ceil(self.max_entries / self.page_size))

    def clamp_page(self, page_number: int) -> int:
        return max(1, min(self.max_page, page_number))

    async def get_page(self, page_number: int) -> LeaderboardPage:
        """
        Fetch a page of ranked wallets.

        Args:
            page_number: 1-based page; out-of-range values are clamped

        Returns:
            LeaderboardPage read from a single snapshot
        """
        page = self.clamp_page(page_number)
        offset = (page - 1) * self.page_size

        entries, total = await self.repository.read_snapshot_page(self.page_size, offset)

        return LeaderboardPage(
            entries=entries,
            page=page,
            total_pages=math.ceil(total / self.page_size),
            total_wallets=total,
            page_size=self.page_size,
        )

    async def get_wallet_rank(self, address: str) -> WalletRank:
        """
        Look up a wallet's rank.

        Raises:
            InvalidWalletAddress: if the address is empty or malformed
        """
        wallet = normalize_wallet(address)
        if not _ADDRESS_PATTERN.match(wallet):
            raise InvalidWalletAddress(f"Invalid wallet address: {address!r}")

        entry = await self.repository.get_snapshot_entry(wallet)
        if not entry:
            return WalletRank(in_top=False, wallet_address=wallet)

        return WalletRank(
            in_top=True,
            wallet_address=entry.wallet_address,
            rank=entry.rank,
            total_volume_usd=entry.total_volume_usd,
            total_tx=entry.total_tx,
        )
