"""Incremental Relay sync: aggregation, retry and the sync worker."""

from .aggregator import aggregate_page, normalize_wallet
from .retry import RetryPolicy, is_transient, with_retry
from .worker import PageSource, SyncResult, SyncWorker

__all__ = [
    "aggregate_page",
    "normalize_wallet",
    "RetryPolicy",
    "is_transient",
    "with_retry",
    "PageSource",
    "SyncResult",
    "SyncWorker",
]
