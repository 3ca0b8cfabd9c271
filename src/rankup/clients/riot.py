# src/rankup/clients/riot.py

"""League of Legends stats via the Riot Games API."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Any

import httpx

from rankup.clients.base import (
    PROVIDER_TIMEOUT_SECONDS,
    check_response,
    provider_call,
    win_rate,
)
from rankup.schemas.common import Game

logger = logging.getLogger(__name__)

RIOT_API_KEY = os.getenv("RIOT_API_KEY", "")

SOLO_QUEUE = "RANKED_SOLO_5x5"
FLEX_QUEUE = "RANKED_FLEX_SR"


def _queue_summary(entry: Mapping[str, Any] | None) -> dict[str, Any]:
    if not entry:
        return {
            "tier": "UNRANKED",
            "rank": "",
            "league_points": 0,
            "wins": 0,
            "losses": 0,
            "win_rate": 0.0,
        }
    wins = int(entry.get("wins", 0))
    losses = int(entry.get("losses", 0))
    return {
        "tier": entry["tier"],
        "rank": entry.get("rank", ""),
        "league_points": int(entry.get("leaguePoints", 0)),
        "wins": wins,
        "losses": losses,
        "win_rate": win_rate(wins, wins + losses),
    }


def normalize_league_stats(
    summoner: Mapping[str, Any], entries: list[Mapping[str, Any]]
) -> dict[str, Any]:
    """Build the cached League payload from summoner and league entries."""
    solo = next((e for e in entries if e.get("queueType") == SOLO_QUEUE), None)
    flex = next((e for e in entries if e.get("queueType") == FLEX_QUEUE), None)
    ranked_solo = _queue_summary(solo)

    current_rank = " ".join(
        part for part in (ranked_solo["tier"], ranked_solo["rank"]) if part
    )
    return {
        "current_rank": current_rank,
        "points": ranked_solo["league_points"],
        "summoner_level": summoner.get("summonerLevel", 0),
        "profile_icon_id": summoner.get("profileIconId"),
        "ranked_solo": ranked_solo,
        "ranked_flex": _queue_summary(flex),
    }


class RiotLeagueClient:
    """Fetches a linked account's ranked League stats.

    The account reference is ``{"puuid": ..., "region": "euw1"}``; platform
    routing hosts are ``https://{region}.api.riotgames.com``.
    """

    def __init__(
        self,
        api_key: str = RIOT_API_KEY,
        client: httpx.AsyncClient | None = None,
    ):
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=PROVIDER_TIMEOUT_SECONDS)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, url: str, context: str) -> Any:
        response = await self._client.get(url, headers={"X-Riot-Token": self._api_key})
        check_response(response, Game.LEAGUE, context)
        return response.json()

    async def fetch(
        self, account: Mapping[str, Any], game: Game = Game.LEAGUE
    ) -> dict[str, Any]:
        async with provider_call(Game.LEAGUE, "league"):
            puuid = account["puuid"]
            base = f"https://{account.get('region', 'euw1').lower()}.api.riotgames.com"

            logger.info(
                "Fetching League stats from Riot",
                extra={"region": account.get("region")},
            )
            summoner = await self._get(
                f"{base}/lol/summoner/v4/summoners/by-puuid/{puuid}", "summoner"
            )
            entries = await self._get(
                f"{base}/lol/league/v4/entries/by-puuid/{puuid}", "league entries"
            )
            return normalize_league_stats(summoner, list(entries))
