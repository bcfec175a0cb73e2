"""Relay API client."""

from .relay_api import (
    PAGE_LIMIT,
    RelayApiClient,
    RelayRequest,
    RequestPage,
    get_volume_usd,
    parse_created_at_ms,
)

__all__ = [
    "PAGE_LIMIT",
    "RelayApiClient",
    "RelayRequest",
    "RequestPage",
    "get_volume_usd",
    "parse_created_at_ms",
]
