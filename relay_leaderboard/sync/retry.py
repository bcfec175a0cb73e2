"""Bounded retry with exponential backoff for transient I/O failures."""

import asyncio
import logging
import sqlite3
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class RetryPolicy:
    """How many times to try an operation and how long to wait between tries."""

    max_attempts: int = 3
    base_delay: float = 2.0
    multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return self.base_delay * self.multiplier ** (attempt - 1)


def is_transient(exc: BaseException) -> bool:
    """Whether an error is worth retrying."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    if isinstance(exc, httpx.TransportError):
        return True
    # Raised for locked/busy databases and dropped connections
    if isinstance(exc, sqlite3.OperationalError):
        return True
    return isinstance(exc, asyncio.TimeoutError)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    description: str,
    is_retryable: Callable[[BaseException], bool] = is_transient,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Run an async operation, retrying transient failures.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per attempt
        policy: Attempt count and backoff
        description: Used in log messages
        is_retryable: Decides whether a failure may be retried
        sleep: Awaitable sleep, replaceable in tests

    Returns:
        The operation's result

    Raises:
        The last error once attempts are exhausted, or the first
        non-retryable error.
    """
    attempts = max(1, policy.max_attempts)

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not is_retryable(e) or attempt == attempts:
                raise

            delay = policy.delay_for(attempt)
            logger.warning(
                f"{description} failed (attempt {attempt}/{attempts}): {e}; "
                f"retrying in {delay:.1f}s"
            )
            await sleep(delay)

    raise AssertionError("unreachable")
