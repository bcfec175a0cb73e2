"""Shared fixtures and fakes for the test suite."""

from decimal import Decimal
from typing import Any

import pytest

from relay_leaderboard.api import RelayRequest, RequestPage, parse_created_at_ms
from relay_leaderboard.config import SyncConfig
from relay_leaderboard.db import LedgerEntry, Repository
from relay_leaderboard.sync import RetryPolicy


def make_request(
    user: str | None,
    amount: Any = None,
    status: str = "success",
    created_at: str | None = "2024-05-01T00:00:00Z",
    request_id: str = "req",
    amount_key: str = "amountUsd",
) -> RelayRequest:
    data: dict[str, Any] = {}
    if amount is not None:
        data = {"metadata": {"currencyIn": {amount_key: amount}}}
    return RelayRequest(
        id=request_id,
        status=status,
        user=user,
        created_at=created_at,
        data=data,
    )


def make_page(requests: list[RelayRequest], continuation: str | None) -> RequestPage:
    stamps = [parse_created_at_ms(r.created_at) for r in requests]
    return RequestPage(
        requests=requests,
        continuation=continuation,
        max_created_at_ms=max([s for s in stamps if s is not None], default=0),
    )


class FakeSource:
    """Serves pre-built pages keyed by the continuation used to ask for them."""

    def __init__(self, pages: dict[str | None, RequestPage]):
        self.pages = pages
        self.calls: list[tuple[str | None, int | None]] = []
        self.failures: dict[str | None, list[Exception]] = {}

    def fail(self, continuation: str | None, *errors: Exception):
        self.failures.setdefault(continuation, []).extend(errors)

    async def fetch_page(self, continuation=None, start_timestamp=None) -> RequestPage:
        self.calls.append((continuation, start_timestamp))
        pending = self.failures.get(continuation)
        if pending:
            raise pending.pop(0)
        return self.pages[continuation]


class EndlessSource:
    """Never runs out of non-empty pages."""

    def __init__(self):
        self.calls: list[tuple[str | None, int | None]] = []

    async def fetch_page(self, continuation=None, start_timestamp=None) -> RequestPage:
        self.calls.append((continuation, start_timestamp))
        n = len(self.calls)
        return make_page(
            [make_request(f"0xwallet{n}", "1", request_id=f"r{n}")],
            continuation=f"c{n}",
        )


async def ledger_entry(repository: Repository, address: str) -> LedgerEntry | None:
    """Read one wallet's ledger row straight from the table."""
    async with repository.conn.execute(
        "SELECT * FROM wallet_volume WHERE wallet_address = ?", (address.lower(),)
    ) as cursor:
        row = await cursor.fetchone()
    if not row:
        return None
    return LedgerEntry(
        wallet_address=row["wallet_address"],
        total_volume_usd=Decimal(row["total_volume_usd"]),
        total_tx=row["total_tx"],
    )


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


@pytest.fixture
async def repository(tmp_path):
    repo = Repository(tmp_path / "leaderboard.db")
    await repo.initialize()
    yield repo
    await repo.close()


@pytest.fixture
def sync_config():
    return SyncConfig(
        max_pages_per_run=100,
        max_consecutive_empty_pages=3,
        checkpoint_every_pages=50,
        page_delay_ms=150,
    )


@pytest.fixture
def retry_policy():
    return RetryPolicy(max_attempts=3, base_delay=1.0, multiplier=2.0)


@pytest.fixture
def sleeper():
    return SleepRecorder()
