"""HTTP read API over the published leaderboard."""

import logging

from aiohttp import web

from .db import SnapshotEntry
from .leaderboard import InvalidWalletAddress, LeaderboardReader

logger = logging.getLogger(__name__)

READER_KEY = web.AppKey("reader", LeaderboardReader)


def _entry_json(entry: SnapshotEntry) -> dict:
    return {
        "rank": entry.rank,
        "wallet_address": entry.wallet_address,
        "total_volume_usd": float(entry.total_volume_usd),
        "total_tx": entry.total_tx,
    }


def _parse_page(raw: str | None) -> int:
    try:
        return int(raw) if raw is not None else 1
    except ValueError:
        return 1


async def get_leaderboard(request: web.Request) -> web.Response:
    """GET /leaderboard?page=N"""
    reader = request.app[READER_KEY]
    try:
        page = await reader.get_page(_parse_page(request.query.get("page")))
    except Exception:
        logger.error("GET /leaderboard failed", exc_info=True)
        return web.json_response({"error": "Failed to fetch leaderboard"}, status=500)

    return web.json_response(
        {
            "data": [_entry_json(e) for e in page.entries],
            "page": page.page,
            "totalPages": page.total_pages,
            "totalWallets": page.total_wallets,
            "pageSize": page.page_size,
        }
    )


async def get_wallet(request: web.Request) -> web.Response:
    """GET /leaderboard/{wallet}"""
    reader = request.app[READER_KEY]
    try:
        rank = await reader.get_wallet_rank(request.match_info["wallet"])
    except InvalidWalletAddress:
        return web.json_response({"error": "Invalid wallet address"}, status=400)
    except Exception:
        logger.error("GET /leaderboard/{wallet} failed", exc_info=True)
        return web.json_response({"error": "Failed to fetch wallet rank"}, status=500)

    if not rank.in_top:
        return web.json_response({"inTop100k": False, "wallet_address": rank.wallet_address})

    return web.json_response(
        {
            "inTop100k": True,
            "rank": rank.rank,
            "wallet_address": rank.wallet_address,
            "total_volume_usd": float(rank.total_volume_usd),
            "total_tx": rank.total_tx,
        }
    )


def create_app(reader: LeaderboardReader) -> web.Application:
    """Build the aiohttp application serving leaderboard reads."""
    app = web.Application()
    app[READER_KEY] = reader
    app.router.add_get("/leaderboard", get_leaderboard)
    app.router.add_get("/leaderboard/{wallet}", get_wallet)
    return app
