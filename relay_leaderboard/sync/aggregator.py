"""Page aggregation - reduces raw requests to per-wallet deltas."""

from decimal import Decimal
from typing import Iterable

from ..api import RelayRequest, get_volume_usd
from ..db import WalletDelta, add_usd

SUCCESS_STATUS = "success"


def normalize_wallet(address: str | None) -> str:
    """Trim and lower-case a wallet address; empty string if absent or not a string."""
    if not isinstance(address, str):
        return ""
    return address.strip().lower()


def aggregate_page(requests: Iterable[RelayRequest]) -> list[WalletDelta]:
    """
    Collapse one page of requests into one delta per wallet.

    Only successful requests count. Requests without a user are skipped;
    unusable amounts contribute zero volume but still count as a transaction.

    Args:
        requests: Requests from a single page

    Returns:
        Deltas in the order each wallet first appears in the page
    """
    by_wallet: dict[str, WalletDelta] = {}

    for request in requests:
        if request.status != SUCCESS_STATUS:
            continue

        wallet = normalize_wallet(request.user)
        if not wallet:
            continue

        volume = get_volume_usd(request.data)

        delta = by_wallet.get(wallet)
        if delta is None:
            by_wallet[wallet] = WalletDelta(wallet=wallet, volume_delta=volume, tx_delta=1)
        else:
            delta.volume_delta = add_usd(delta.volume_delta, volume)
            delta.tx_delta += 1

    return list(by_wallet.values())


def total_volume(deltas: Iterable[WalletDelta]) -> Decimal:
    total = Decimal(0)
    for delta in deltas:
        total = add_usd(total, delta.volume_delta)
    return total
