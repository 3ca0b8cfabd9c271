# src/rankup/dependencies.py

"""Process-wide service wiring for the API.

The services hold no ranking state; they only share HTTP clients and the
session factory. Tests replace these providers via ``app.dependency_overrides``.
"""

from functools import lru_cache

from rankup.clients.base import CompositeStatsProvider
from rankup.clients.expo_push import ExpoPushClient
from rankup.clients.henrik import HenrikValorantClient
from rankup.clients.riot import RiotLeagueClient
from rankup.db.session import AsyncSessionLocal
from rankup.schemas.common import Game
from rankup.services.notification_dispatcher import NotificationDispatcher
from rankup.services.party_completion import PartyCompletionService
from rankup.services.party_update import PartyUpdateOrchestrator
from rankup.services.stats_cache import StatsCache


@lru_cache
def get_riot_client() -> RiotLeagueClient:
    return RiotLeagueClient()


@lru_cache
def get_henrik_client() -> HenrikValorantClient:
    return HenrikValorantClient()


@lru_cache
def get_push_client() -> ExpoPushClient:
    return ExpoPushClient()


@lru_cache
def get_stats_cache() -> StatsCache:
    provider = CompositeStatsProvider(
        {Game.LEAGUE: get_riot_client(), Game.VALORANT: get_henrik_client()}
    )
    return StatsCache(AsyncSessionLocal, provider)


@lru_cache
def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(AsyncSessionLocal, get_push_client())


@lru_cache
def get_orchestrator() -> PartyUpdateOrchestrator:
    return PartyUpdateOrchestrator(
        AsyncSessionLocal, get_stats_cache(), get_dispatcher()
    )


@lru_cache
def get_completion_service() -> PartyCompletionService:
    return PartyCompletionService(
        AsyncSessionLocal, get_stats_cache(), get_dispatcher()
    )


async def close_clients() -> None:
    """Close whichever HTTP clients were created."""
    for factory in (get_riot_client, get_henrik_client, get_push_client):
        if factory.cache_info().currsize:
            await factory().aclose()
            factory.cache_clear()
