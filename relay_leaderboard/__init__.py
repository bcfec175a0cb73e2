"""Relay leaderboard - incremental wallet volume sync and ranked snapshots."""

__version__ = "0.1.0"
