"""Leaderboard snapshot building and reads."""

from .reader import InvalidWalletAddress, LeaderboardPage, LeaderboardReader, WalletRank
from .snapshot import SnapshotBuilder

__all__ = [
    "InvalidWalletAddress",
    "LeaderboardPage",
    "LeaderboardReader",
    "WalletRank",
    "SnapshotBuilder",
]
