"""Tests for the retry policy."""

import asyncio
import sqlite3

import httpx
import pytest

from relay_leaderboard.sync import RetryPolicy, is_transient, with_retry


def status_error(code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://relay.test")
    return httpx.HTTPStatusError("err", request=request, response=httpx.Response(code, request=request))


def test_backoff_grows_exponentially():
    policy = RetryPolicy(max_attempts=4, base_delay=2.0, multiplier=2.0)
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]


@pytest.mark.parametrize(
    "error, expected",
    [
        (httpx.ConnectError("x"), True),
        (httpx.ReadTimeout("x"), True),
        (status_error(500), True),
        (status_error(503), True),
        (status_error(429), True),
        (status_error(400), False),
        (status_error(404), False),
        (sqlite3.OperationalError("database is locked"), True),
        (sqlite3.IntegrityError("UNIQUE"), False),
        (asyncio.TimeoutError(), True),
        (ValueError("x"), False),
    ],
)
def test_is_transient(error, expected):
    assert is_transient(error) is expected


async def test_gives_up_after_max_attempts():
    attempts = []
    delays = []

    async def operation():
        attempts.append(1)
        raise httpx.ConnectError("down")

    async def sleep(delay):
        delays.append(delay)

    with pytest.raises(httpx.ConnectError):
        await with_retry(operation, RetryPolicy(3, 0.5, 3.0), "op", sleep=sleep)

    assert len(attempts) == 3
    assert delays == [0.5, 1.5]


async def test_returns_first_success():
    results = iter([sqlite3.OperationalError("locked"), "ok"])

    async def operation():
        value = next(results)
        if isinstance(value, Exception):
            raise value
        return value

    async def sleep(delay):
        pass

    assert await with_retry(operation, RetryPolicy(3, 0, 2), "op", sleep=sleep) == "ok"
