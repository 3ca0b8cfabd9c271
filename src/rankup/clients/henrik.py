# src/rankup/clients/henrik.py

"""Valorant stats via Henrik's unofficial Valorant API."""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

import httpx

from rankup.clients.base import (
    PROVIDER_TIMEOUT_SECONDS,
    check_response,
    provider_call,
    win_rate,
)
from rankup.exceptions import ProviderAccountNotFoundError
from rankup.schemas.common import Game

logger = logging.getLogger(__name__)

HENRIK_API_BASE = os.getenv("HENRIK_API_BASE", "https://api.henrikdev.xyz/valorant")
HENRIK_API_KEY = os.getenv("HENRIK_API_KEY", "")

_SEASON_CODE = re.compile(r"e(\d+)a(\d+)")


def _season_order(code: str) -> tuple[int, int]:
    """'e10a6' -> (10, 6); unknown codes sort first."""
    match = _SEASON_CODE.search(code)
    if not match:
        return (0, 0)
    return (int(match.group(1)), int(match.group(2)))


def latest_season_record(by_season: Mapping[str, Any] | None) -> tuple[int, int]:
    """Return (wins, games) for the most recent season with games played."""
    played = [
        code
        for code, data in (by_season or {}).items()
        if data and (data.get("number_of_games") or 0) > 0
    ]
    if not played:
        return (0, 0)
    latest = max(played, key=_season_order)
    data = by_season[latest]  # type: ignore[index]
    return (int(data.get("wins") or 0), int(data["number_of_games"]))


def normalize_valorant_stats(
    account: Mapping[str, Any], mmr: Mapping[str, Any]
) -> dict[str, Any]:
    """Build the cached Valorant payload from Henrik's v2 MMR response."""
    current = mmr["current_data"]
    wins, games = latest_season_record(mmr.get("by_season"))
    highest = mmr.get("highest_rank") or None
    return {
        "current_rank": current.get("currenttierpatched") or "Unranked",
        "points": int(current.get("ranking_in_tier") or 0),
        "mmr": current.get("elo"),
        "game_name": account.get("game_name"),
        "tag": account.get("tag"),
        "region": account.get("region"),
        "games_played": games,
        "wins": wins,
        "losses": games - wins,
        "win_rate": win_rate(wins, games),
        "highest_rank": (
            {"tier": highest.get("patched_tier"), "season": highest.get("season")}
            if highest
            else None
        ),
    }


class HenrikValorantClient:
    """Fetches a linked account's competitive Valorant stats.

    The account reference is ``{"game_name": ..., "tag": ..., "region": "eu"}``.
    """

    def __init__(
        self,
        api_key: str = HENRIK_API_KEY,
        base_url: str = HENRIK_API_BASE,
        client: httpx.AsyncClient | None = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=PROVIDER_TIMEOUT_SECONDS)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch(
        self, account: Mapping[str, Any], game: Game = Game.VALORANT
    ) -> dict[str, Any]:
        async with provider_call(Game.VALORANT, "mmr"):
            url = "{}/v2/mmr/{}/{}/{}".format(
                self._base_url,
                account["region"],
                quote(account["game_name"], safe=""),
                quote(account["tag"], safe=""),
            )
            headers = {"Authorization": self._api_key} if self._api_key else {}

            logger.info(
                "Fetching Valorant MMR from Henrik",
                extra={"region": account["region"]},
            )
            response = await self._client.get(url, headers=headers)
            check_response(response, Game.VALORANT, "mmr")

            body = response.json()
            if body.get("status") != 200 or not body.get("data"):
                raise ProviderAccountNotFoundError(
                    "Rank data not found for this account", Game.VALORANT.value
                )
            return normalize_valorant_stats(account, body["data"])
