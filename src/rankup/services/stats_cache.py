# src/rankup/services/stats_cache.py

"""Get-or-refresh access to provider stats with a stale-on-error fallback."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rankup.clients.base import StatsProvider
from rankup.db import models
from rankup.exceptions import (
    AccountNotLinkedError,
    ProviderError,
    StatsUnavailableError,
    UserNotFoundError,
)
from rankup.ranking.scorer import scorer_for
from rankup.schemas.common import Game

logger = logging.getLogger(__name__)

# Providers are rate-limited; refetch a user's stats at most this often.
DEFAULT_TTL = timedelta(
    seconds=int(os.getenv("STATS_CACHE_TTL_SECONDS", str(6 * 60 * 60)))
)
GAME_TTLS: dict[Game, timedelta] = {
    Game.LEAGUE: DEFAULT_TTL,
    Game.VALORANT: DEFAULT_TTL,
}


@dataclass(frozen=True)
class StatsResult:
    """Stats handed back to callers.

    Attributes:
        stats: Normalized provider payload
        cached: True when served from the cache rather than a fresh fetch
        stale: True when the provider failed and an expired entry was served
        last_updated_at: When the served stats were fetched
    """

    stats: dict[str, Any]
    cached: bool
    stale: bool
    last_updated_at: datetime

    @property
    def message(self) -> str:
        if self.stale:
            return "Showing cached stats (stats provider unavailable)"
        if self.cached:
            return "Stats retrieved from cache"
        return "Stats updated successfully"


def _with_peak_rank(
    game: Game, fresh: dict[str, Any], previous: dict[str, Any] | None
) -> dict[str, Any]:
    """Carry the best rank ever seen forward, replacing it when beaten."""
    scorer = scorer_for(game)
    current = {"rank": fresh.get("current_rank", ""), "points": fresh.get("points", 0)}
    peak = (previous or {}).get("peak_rank")

    if not scorer.parse(current["rank"]).is_ranked:
        fresh["peak_rank"] = peak
        return fresh

    if peak is None or scorer.score(current["rank"], current["points"]) > scorer.score(
        peak.get("rank"), peak.get("points")
    ):
        peak = current
    fresh["peak_rank"] = peak
    return fresh


class StatsCache:
    """Per-user-per-game stats cache in front of a rate-limited provider.

    Each call opens its own session from ``session_factory`` so that several
    members' stats can be read concurrently.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        provider: StatsProvider,
        ttls: dict[Game, timedelta] | None = None,
        clock: Callable[[], datetime] = models.utcnow,
    ):
        self._session_factory = session_factory
        self._provider = provider
        self._ttls = ttls or GAME_TTLS
        self._clock = clock

    def ttl_for(self, game: Game) -> timedelta:
        return self._ttls.get(game, DEFAULT_TTL)

    def is_fresh(self, entry: models.GameStats, game: Game) -> bool:
        age = self._clock() - models.as_utc(entry.last_updated_at)
        return age <= self.ttl_for(game)

    async def get_stats(
        self, user_id: str, game: Game, force_refresh: bool = False
    ) -> StatsResult:
        """
        Return a user's stats for ``game``, refreshing from the provider when
        the cached entry is missing, expired, or ``force_refresh`` is set.

        Raises:
            UserNotFoundError: If the user does not exist
            AccountNotLinkedError: If the user has no account for the game
            StatsUnavailableError: If the provider failed and nothing is cached
        """
        game = Game(game)
        async with self._session_factory() as db:
            user = await db.get(models.User, user_id)
            if user is None:
                raise UserNotFoundError(user_id)

            account = user.account_for(game.value)
            if not account:
                raise AccountNotLinkedError(user_id, game.value)

            entry = await models.GameStats.find(db, user_id, game.value)

        if entry is not None and not force_refresh and self.is_fresh(entry, game):
            logger.info(
                "Returning cached stats",
                extra={"user_id": user_id, "game": game.value},
            )
            return StatsResult(
                stats=entry.raw_stats,
                cached=True,
                stale=False,
                last_updated_at=models.as_utc(entry.last_updated_at),
            )

        # No session is held while the provider call is in flight.
        logger.info(
            "Fetching fresh stats from provider",
            extra={
                "user_id": user_id,
                "game": game.value,
                "force_refresh": force_refresh,
            },
        )
        try:
            fresh = await self._provider.fetch(account, game)
        except ProviderError as e:
            return self._fallback(user_id, game, entry, e)

        return await self._store(user_id, game, fresh)

    def _fallback(
        self,
        user_id: str,
        game: Game,
        entry: models.GameStats | None,
        error: ProviderError,
    ) -> StatsResult:
        if entry is None:
            logger.error(
                "Provider failed and no cached stats exist",
                extra={"user_id": user_id, "game": game.value, "error": error.message},
            )
            raise StatsUnavailableError(user_id, game.value, error.message) from error

        logger.warning(
            "Returning stale cached stats due to provider error",
            extra={"user_id": user_id, "game": game.value, "error": error.message},
        )
        return StatsResult(
            stats=entry.raw_stats,
            cached=True,
            stale=True,
            last_updated_at=models.as_utc(entry.last_updated_at),
        )

    async def _store(
        self, user_id: str, game: Game, fresh: dict[str, Any]
    ) -> StatsResult:
        now = self._clock()
        async with self._session_factory() as db:
            entry = await models.GameStats.find(db, user_id, game.value)
            if entry is None:
                stats = _with_peak_rank(game, dict(fresh), None)
                entry = models.GameStats(
                    user_id=user_id, game=game.value, raw_stats=stats, last_updated_at=now
                )
                db.add(entry)
            else:
                stats = _with_peak_rank(game, dict(fresh), entry.raw_stats)
                entry.raw_stats = stats
                entry.last_updated_at = max(now, models.as_utc(entry.last_updated_at))

            try:
                await db.commit()
            except IntegrityError:
                # A concurrent fetch created the entry first; overwrite it.
                await db.rollback()
                entry = await models.GameStats.find(db, user_id, game.value)
                if entry is None:
                    raise
                stats = _with_peak_rank(game, dict(fresh), entry.raw_stats)
                entry.raw_stats = stats
                entry.last_updated_at = max(now, models.as_utc(entry.last_updated_at))
                await db.commit()

            last_updated_at = models.as_utc(entry.last_updated_at)

        logger.info(
            "Stored fresh stats",
            extra={"user_id": user_id, "game": game.value},
        )
        return StatsResult(
            stats=stats,
            cached=False,
            stale=False,
            last_updated_at=last_updated_at,
        )
