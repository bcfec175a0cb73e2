"""Client for the Relay requests API - pages through settlement requests."""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

PAGE_LIMIT = 50  # Fixed by the upstream protocol

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class RelayRequest:
    """A single transaction request as returned by the Relay API."""

    id: str
    status: str  # success, pending, failure, refund, waiting
    user: str | None
    created_at: str | None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> "RelayRequest":
        data = item.get("data")
        user = item.get("user")
        return cls(
            id=str(item.get("id", "")),
            status=item.get("status", ""),
            user=user if isinstance(user, str) else None,
            created_at=item.get("createdAt"),
            data=data if isinstance(data, dict) else {},
        )

    @property
    def created_at_ms(self) -> int | None:
        return parse_created_at_ms(self.created_at)


@dataclass
class RequestPage:
    """One page of requests plus the token for the next one."""

    requests: list[RelayRequest]
    continuation: str | None
    max_created_at_ms: int


def parse_created_at_ms(value: Any) -> int | None:
    """
    Convert a createdAt value to milliseconds since the epoch.

    Handles ISO-8601 strings and numeric epoch values in seconds or
    milliseconds. Returns None for anything unparsable.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, float) and not math.isfinite(value):
        return None

    if isinstance(value, (int, float)):
        # Treat small values as seconds
        return int(value) if value > 1e12 else int(value * 1000)

    text = str(value).strip()
    if not text:
        return None

    if text.isascii() and text.isdigit():
        return parse_created_at_ms(int(text))

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return (parsed - _EPOCH) // timedelta(milliseconds=1)


def _parse_usd(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return amount


def get_volume_usd(data: dict[str, Any] | None) -> Decimal:
    """
    Extract the USD value of a request.

    Prefers metadata.currencyIn.amountUsd and falls back to amountUsdCurrent.
    Returns 0 when neither holds a usable amount.
    """
    if not data:
        return Decimal(0)

    metadata = data.get("metadata") or {}
    currency_in = metadata.get("currencyIn") if isinstance(metadata, dict) else None
    if not isinstance(currency_in, dict):
        return Decimal(0)

    for key in ("amountUsd", "amountUsdCurrent"):
        amount = _parse_usd(currency_in.get(key))
        if amount is not None:
            return amount

    return Decimal(0)


class RelayApiClient:
    """Client for the Relay requests API."""

    def __init__(
        self,
        base_url: str = "https://api.relay.link",
        requests_path: str = "/requests/v2",
        api_key: str | None = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.requests_path = requests_path
        headers = {"x-relay-api-key": api_key} if api_key else {}
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def fetch_page(
        self,
        continuation: str | None = None,
        start_timestamp: int | None = None,
    ) -> RequestPage:
        """
        Fetch one page of requests.

        Args:
            continuation: Token from the previous page; wins over start_timestamp
            start_timestamp: Lower bound in ms, used only to start a new pagination

        Returns:
            RequestPage with parsed requests and the next continuation token
        """
        params: dict[str, str | int] = {"limit": PAGE_LIMIT}
        if continuation:
            params["continuation"] = continuation
        elif start_timestamp is not None and start_timestamp > 0:
            params["startTimestamp"] = start_timestamp

        response = await self._client.get(
            f"{self.base_url}{self.requests_path}",
            params=params,
        )
        response.raise_for_status()

        data = response.json() or {}

        requests = [
            RelayRequest.from_api(item)
            for item in data.get("requests") or []
            if isinstance(item, dict)
        ]

        max_created_at_ms = 0
        for request in requests:
            ms = request.created_at_ms
            if ms is not None and ms > max_created_at_ms:
                max_created_at_ms = ms

        return RequestPage(
            requests=requests,
            continuation=data.get("continuation") or None,
            max_created_at_ms=max_created_at_ms,
        )
