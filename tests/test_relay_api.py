"""Tests for the Relay API client against a mocked transport."""

from decimal import Decimal

import httpx
import pytest

from relay_leaderboard.api import PAGE_LIMIT, RelayApiClient
from relay_leaderboard.sync import aggregate_page


def make_client(handler, **kwargs) -> RelayApiClient:
    return RelayApiClient(
        base_url="https://relay.test",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


async def test_continuation_takes_precedence():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"requests": []})

    client = make_client(handler)
    try:
        await client.fetch_page(continuation="abc", start_timestamp=1700000000000)
    finally:
        await client.close()

    params = seen[0].url.params
    assert seen[0].url.path == "/requests/v2"
    assert params["continuation"] == "abc"
    assert params["limit"] == str(PAGE_LIMIT)
    assert "startTimestamp" not in params


@pytest.mark.parametrize("start, expected", [(0, None), (None, None), (1700000000000, "1700000000000")])
async def test_start_timestamp_only_when_positive(start, expected):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"requests": []})

    client = make_client(handler)
    try:
        await client.fetch_page(start_timestamp=start)
    finally:
        await client.close()

    assert seen[0].url.params.get("startTimestamp") == expected
    assert "continuation" not in seen[0].url.params


async def test_parses_page_and_max_created_at():
    body = {
        "requests": [
            {"id": "1", "status": "success", "user": "0xA", "createdAt": "2024-01-01T00:00:00Z",
             "data": {"metadata": {"currencyIn": {"amountUsd": "10"}}}},
            {"id": "2", "status": "failure", "user": "0xB", "createdAt": "2024-01-02T00:00:00Z"},
            {"id": "3", "status": "success", "user": "0xC", "createdAt": "garbage"},
        ],
        "continuation": "next-token",
    }
    client = make_client(lambda request: httpx.Response(200, json=body))
    try:
        page = await client.fetch_page()
    finally:
        await client.close()

    assert [r.id for r in page.requests] == ["1", "2", "3"]
    assert page.requests[0].user == "0xA"
    assert page.requests[1].data == {}
    assert page.continuation == "next-token"
    # Unparsable timestamps are ignored; non-success requests still count
    assert page.max_created_at_ms == 1704153600000


async def test_empty_page_has_zero_max_and_no_continuation():
    client = make_client(lambda request: httpx.Response(200, json={"requests": []}))
    try:
        page = await client.fetch_page()
    finally:
        await client.close()

    assert page.requests == []
    assert page.continuation is None
    assert page.max_created_at_ms == 0


async def test_api_key_header():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"requests": []})

    client = make_client(handler, api_key="secret")
    try:
        await client.fetch_page()
    finally:
        await client.close()

    assert seen[0].headers["x-relay-api-key"] == "secret"


async def test_http_errors_propagate():
    client = make_client(lambda request: httpx.Response(503, json={"error": "down"}))
    try:
        with pytest.raises(httpx.HTTPStatusError):
            await client.fetch_page()
    finally:
        await client.close()


async def test_non_string_user_is_skipped_not_fatal():
    body = {
        "requests": [
            {"id": "1", "status": "success", "user": 12345, "createdAt": "2024-01-01T00:00:00Z",
             "data": {"metadata": {"currencyIn": {"amountUsd": "10"}}}},
            {"id": "2", "status": "success", "user": {"address": "0xA"}},
            {"id": "3", "status": "success", "user": "0xB",
             "data": {"metadata": {"currencyIn": {"amountUsd": "4"}}}},
        ],
        "continuation": "next",
    }
    client = make_client(lambda request: httpx.Response(200, json=body))
    try:
        page = await client.fetch_page()
    finally:
        await client.close()

    assert [r.user for r in page.requests] == [None, None, "0xB"]
    deltas = aggregate_page(page.requests)
    assert [(d.wallet, d.volume_delta, d.tx_delta) for d in deltas] == [("0xb", Decimal("4"), 1)]


async def test_non_ascii_digit_timestamp_does_not_break_page():
    body = {"requests": [{"id": "1", "status": "success", "user": "0xA", "createdAt": "²"}]}
    client = make_client(lambda request: httpx.Response(200, json=body))
    try:
        page = await client.fetch_page()
    finally:
        await client.close()

    assert page.requests[0].created_at_ms is None
    assert page.max_created_at_ms == 0
