# src/rankup/api/stats.py

"""API endpoints for reading a user's game stats."""

from fastapi import APIRouter, Depends, Query

from rankup.dependencies import get_stats_cache
from rankup.schemas.common import Game
from rankup.schemas.stats import StatsResponse
from rankup.services.stats_cache import StatsCache

router = APIRouter(prefix="/users", tags=["Stats"])


@router.get("/{user_id}/stats/{game}", response_model=StatsResponse)
async def read_user_stats(
    user_id: str,
    game: Game,
    force_refresh: bool = Query(False, description="Bypass the cache"),
    stats_cache: StatsCache = Depends(get_stats_cache),
) -> StatsResponse:
    """
    Get a user's stats for a game, refreshing from the provider when needed.

    - **user_id**: The user whose stats to read
    - **game**: `league` or `valorant`
    - **force_refresh**: Fetch from the provider even if the cache is fresh

    Raises:
        404: If the user doesn't exist
        412: If the user has no account linked for the game
        503: If the provider failed and nothing is cached
    """
    result = await stats_cache.get_stats(user_id, game, force_refresh=force_refresh)
    return StatsResponse(
        message=result.message,
        stats=result.stats,
        cached=result.cached,
        stale=result.stale,
        last_updated_at=result.last_updated_at,
    )
