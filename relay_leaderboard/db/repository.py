"""Database repository for the sync cursor, wallet ledger and leaderboard snapshot."""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Context, Decimal
from pathlib import Path
from typing import AsyncIterator, Iterable

import aiosqlite

from .models import (
    SCHEMA,
    SNAPSHOT_INDEX_DDL,
    SNAPSHOT_OLD_TABLE,
    SNAPSHOT_STAGING_TABLE,
    SNAPSHOT_TABLE,
    SNAPSHOT_TABLE_DDL,
)

logger = logging.getLogger(__name__)

# Wide enough that summing millions of amounts never rounds
USD_CONTEXT = Context(prec=50)


def add_usd(a: Decimal, b: Decimal) -> Decimal:
    """Add two USD amounts without rounding."""
    return USD_CONTEXT.add(a, b)


def format_usd(value: Decimal) -> str:
    """Render a decimal in plain (non-exponent) notation for storage."""
    return format(value, "f")


@dataclass
class SyncCursor:
    """Resume position of the sync worker."""

    last_processed_timestamp: int
    last_continuation: str | None
    updated_at: datetime | None
    pending_max_timestamp: int = 0


@dataclass
class WalletDelta:
    """Additive change to one wallet's totals."""

    wallet: str
    volume_delta: Decimal
    tx_delta: int


@dataclass
class LedgerEntry:
    """Cumulative totals for a wallet."""

    wallet_address: str
    total_volume_usd: Decimal
    total_tx: int


@dataclass
class SnapshotEntry:
    """A ranked row of the published leaderboard."""

    rank: int
    wallet_address: str
    total_volume_usd: Decimal
    total_tx: int
    updated_at: datetime | None = None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _snapshot_entry(row: aiosqlite.Row) -> SnapshotEntry:
    return SnapshotEntry(
        rank=row["rank"],
        wallet_address=row["wallet_address"],
        total_volume_usd=Decimal(row["total_volume_usd"]),
        total_tx=row["total_tx"],
        updated_at=_parse_ts(row["updated_at"]),
    )


class Repository:
    """Database repository for all persistence operations."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self._connection: aiosqlite.Connection | None = None
        # One connection can only hold one transaction at a time
        self._tx_lock = asyncio.Lock()

    async def initialize(self):
        """Initialize the database and create tables."""
        # Ensure directory exists
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # Autocommit; transactions are opened explicitly
        self._connection = await aiosqlite.connect(self.db_path, isolation_level=None)
        self._connection.row_factory = aiosqlite.Row

        # WAL lets readers see the last committed snapshot while a writer works
        async with self._connection.execute("PRAGMA journal_mode=WAL"):
            pass
        await self._connection.execute("PRAGMA busy_timeout=5000")

        await self._connection.executescript(SCHEMA)
        await self._connection.execute(
            """
            INSERT OR IGNORE INTO relay_sync_state
                (id, last_processed_timestamp, last_continuation, updated_at)
            VALUES (1, 0, NULL, ?)
            """,
            (datetime.now(timezone.utc).isoformat(),),
        )

        logger.info(f"Database initialized at {self.db_path}")

    async def close(self):
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    @property
    def conn(self) -> aiosqlite.Connection:
        """Get the database connection."""
        if not self._connection:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._connection

    @asynccontextmanager
    async def _transaction(self, mode: str = "IMMEDIATE") -> AsyncIterator[aiosqlite.Connection]:
        """Run a block as one transaction; roll back if it or the commit raises."""
        async with self._tx_lock:
            await self.conn.execute(f"BEGIN {mode}")
            try:
                yield self.conn
                await self.conn.execute("COMMIT")
            except BaseException:
                # A failed COMMIT can leave the transaction open and holding the write lock
                if self.conn.in_transaction:
                    await self.conn.execute("ROLLBACK")
                raise

    # Sync Cursor Operations

    async def get_sync_cursor(self) -> SyncCursor:
        """Read the singleton sync cursor."""
        async with self.conn.execute(
            "SELECT * FROM relay_sync_state WHERE id = 1"
        ) as cursor:
            row = await cursor.fetchone()

        if not row:
            raise RuntimeError("relay_sync_state row id=1 missing; call initialize()")

        return SyncCursor(
            last_processed_timestamp=int(row["last_processed_timestamp"]),
            last_continuation=row["last_continuation"],
            updated_at=_parse_ts(row["updated_at"]),
            pending_max_timestamp=int(row["pending_max_timestamp"]),
        )

    async def _advance_cursor(self, continuation: str | None, max_timestamp: int, now: str):
        """Record a mid-pagination position."""
        await self.conn.execute(
            """
            UPDATE relay_sync_state
            SET last_continuation = ?,
                pending_max_timestamp = MAX(pending_max_timestamp, ?),
                updated_at = ?
            WHERE id = 1
            """,
            (continuation, max_timestamp, now),
        )

    async def _finish_cursor(self, max_timestamp: int, now: str):
        """Fold the pending maximum into the watermark and drop the continuation."""
        await self.conn.execute(
            """
            UPDATE relay_sync_state
            SET last_continuation = NULL,
                last_processed_timestamp = MAX(
                    last_processed_timestamp, pending_max_timestamp, ?
                ),
                pending_max_timestamp = 0,
                updated_at = ?
            WHERE id = 1
            """,
            (max_timestamp, now),
        )

    async def save_continuation(self, continuation: str | None):
        """Checkpoint the resume position without touching the ledger."""
        now = datetime.now(timezone.utc).isoformat()
        async with self._transaction():
            await self._advance_cursor(continuation, 0, now)

    async def complete_run(self, max_timestamp: int = 0):
        """Advance the watermark (never backwards) and clear the continuation."""
        now = datetime.now(timezone.utc).isoformat()
        async with self._transaction():
            await self._finish_cursor(max_timestamp, now)

    # Wallet Ledger Operations

    async def apply_page(
        self,
        deltas: Iterable[WalletDelta],
        continuation: str | None,
        max_timestamp: int = 0,
        finish: bool = False,
    ) -> int:
        """
        Merge one page of wallet deltas and move the cursor, atomically.

        Args:
            deltas: Per-wallet changes for the page
            continuation: Resume position after this page
            max_timestamp: Highest createdAt (ms) on the page
            finish: Last page of the chain; advance the watermark instead

        Returns:
            Number of distinct wallets written
        """
        deltas = list(deltas)
        now = datetime.now(timezone.utc).isoformat()

        async with self._transaction():
            written = await self._merge_deltas(deltas, now)
            if finish:
                await self._finish_cursor(max_timestamp, now)
            else:
                await self._advance_cursor(continuation, max_timestamp, now)

        return written

    async def _merge_deltas(self, deltas: list[WalletDelta], now: str) -> int:
        if not deltas:
            return 0

        wallets = list(dict.fromkeys(d.wallet for d in deltas))
        placeholders = ",".join("?" * len(wallets))
        totals: dict[str, tuple[Decimal, int]] = {}

        # Read under the write lock so the additive merge cannot race
        async with self.conn.execute(
            f"""
            SELECT wallet_address, total_volume_usd, total_tx
            FROM wallet_volume WHERE wallet_address IN ({placeholders})
            """,
            wallets,
        ) as cursor:
            for row in await cursor.fetchall():
                totals[row["wallet_address"]] = (
                    Decimal(row["total_volume_usd"]),
                    row["total_tx"],
                )

        rows = []
        for delta in deltas:
            volume, tx = totals.get(delta.wallet, (Decimal(0), 0))
            volume = add_usd(volume, delta.volume_delta)
            tx += delta.tx_delta
            totals[delta.wallet] = (volume, tx)
            rows.append((delta.wallet, format_usd(volume), tx, now))

        await self.conn.executemany(
            """
            INSERT INTO wallet_volume (wallet_address, total_volume_usd, total_tx, last_updated)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(wallet_address) DO UPDATE SET
                total_volume_usd = excluded.total_volume_usd,
                total_tx = excluded.total_tx,
                last_updated = excluded.last_updated
            """,
            rows,
        )
        return len(wallets)

    async def count_wallets(self) -> int:
        async with self.conn.execute("SELECT COUNT(*) AS count FROM wallet_volume") as cursor:
            row = await cursor.fetchone()
            return row["count"] if row else 0

    async def iter_ledger(self, batch_size: int = 1000) -> AsyncIterator[LedgerEntry]:
        """Stream every ledger row without loading the table into memory."""
        async with self.conn.execute(
            "SELECT wallet_address, total_volume_usd, total_tx FROM wallet_volume"
        ) as cursor:
            while True:
                rows = await cursor.fetchmany(batch_size)
                if not rows:
                    break
                for row in rows:
                    yield LedgerEntry(
                        wallet_address=row["wallet_address"],
                        total_volume_usd=Decimal(row["total_volume_usd"]),
                        total_tx=row["total_tx"],
                    )

    # Leaderboard Snapshot Operations

    async def replace_snapshot(
        self,
        entries: Iterable[SnapshotEntry],
        updated_at: datetime | None = None,
    ) -> int:
        """
        Publish a new leaderboard in place of the current one.

        The replacement is built in a staging table and renamed over the
        live table inside a single transaction, so other connections see
        either the old leaderboard or the new one.
        """
        stamp = (updated_at or datetime.now(timezone.utc)).isoformat()
        rows = [
            (e.rank, e.wallet_address, format_usd(e.total_volume_usd), e.total_tx, stamp)
            for e in entries
        ]

        async with self._transaction() as conn:
            await conn.execute(f"DROP TABLE IF EXISTS {SNAPSHOT_STAGING_TABLE}")
            await conn.execute(SNAPSHOT_TABLE_DDL.format(table=SNAPSHOT_STAGING_TABLE))
            await conn.executemany(
                f"""
                INSERT INTO {SNAPSHOT_STAGING_TABLE}
                    (rank, wallet_address, total_volume_usd, total_tx, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                rows,
            )
            await conn.execute(f"DROP TABLE IF EXISTS {SNAPSHOT_OLD_TABLE}")
            await conn.execute(f"ALTER TABLE {SNAPSHOT_TABLE} RENAME TO {SNAPSHOT_OLD_TABLE}")
            await conn.execute(f"ALTER TABLE {SNAPSHOT_STAGING_TABLE} RENAME TO {SNAPSHOT_TABLE}")
            # Dropping the old table frees the index name for the new one
            await conn.execute(f"DROP TABLE {SNAPSHOT_OLD_TABLE}")
            await conn.execute(SNAPSHOT_INDEX_DDL)

        return len(rows)

    async def count_snapshot(self) -> int:
        async with self.conn.execute(
            f"SELECT COUNT(*) AS count FROM {SNAPSHOT_TABLE}"
        ) as cursor:
            row = await cursor.fetchone()
            return row["count"] if row else 0

    async def get_snapshot_page(self, limit: int, offset: int) -> list[SnapshotEntry]:
        """Get ranked rows ordered by rank."""
        async with self.conn.execute(
            f"""
            SELECT rank, wallet_address, total_volume_usd, total_tx, updated_at
            FROM {SNAPSHOT_TABLE} ORDER BY rank LIMIT ? OFFSET ?
            """,
            (limit, offset),
        ) as cursor:
            rows = await cursor.fetchall()
            return [_snapshot_entry(row) for row in rows]

    async def read_snapshot_page(
        self, limit: int, offset: int
    ) -> tuple[list[SnapshotEntry], int]:
        """Read a page and the total row count from the same snapshot."""
        async with self._transaction("DEFERRED"):
            entries = await self.get_snapshot_page(limit, offset)
            total = await self.count_snapshot()
        return entries, total

    async def get_snapshot_entry(self, address: str) -> SnapshotEntry | None:
        """Look up a wallet in the published leaderboard."""
        async with self.conn.execute(
            f"""
            SELECT rank, wallet_address, total_volume_usd, total_tx, updated_at
            FROM {SNAPSHOT_TABLE} WHERE wallet_address = ?
            """,
            (address,),
        ) as cursor:
            row = await cursor.fetchone()
            return _snapshot_entry(row) if row else None
