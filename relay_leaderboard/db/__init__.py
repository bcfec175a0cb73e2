"""Database layer."""

from .models import SCHEMA
from .repository import (
    LedgerEntry,
    Repository,
    SnapshotEntry,
    SyncCursor,
    WalletDelta,
    add_usd,
)

__all__ = [
    "SCHEMA",
    "Repository",
    "SyncCursor",
    "WalletDelta",
    "LedgerEntry",
    "SnapshotEntry",
    "add_usd",
]
