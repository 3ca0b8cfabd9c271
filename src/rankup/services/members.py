# src/rankup/services/members.py

"""Builds MemberStat values for a party's members, cache first."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rankup.db import models
from rankup.exceptions import RankUpError
from rankup.ranking.types import UNRANKED_LABEL, MemberStat
from rankup.schemas.common import Game
from rankup.services.stats_cache import StatsCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MemberRef:
    """Membership details copied out of the party row."""

    user_id: str
    username: str
    avatar: str

    @classmethod
    def from_model(cls, member: models.PartyMember) -> "MemberRef":
        return cls(
            user_id=member.user_id, username=member.username, avatar=member.avatar
        )


def stat_from_payload(
    member: MemberRef, payload: dict[str, Any] | None
) -> MemberStat | None:
    """MemberStat from a stats payload, or None when it carries no rank."""
    if not payload or not payload.get("current_rank"):
        return None
    try:
        points = float(payload.get("points") or 0)
    except (TypeError, ValueError):
        points = 0.0
    return MemberStat(
        user_id=member.user_id,
        display_name=member.username,
        avatar_ref=member.avatar,
        rank_label=str(payload["current_rank"]),
        primary_metric=points,
    )


class MemberStatsGatherer:
    """Reads every member's stats concurrently and never fails the party.

    Order of preference per member: stats cache (which may refresh from the
    provider), the rank summary on the user's profile, then an Unranked
    placeholder.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        stats_cache: StatsCache,
    ):
        self._session_factory = session_factory
        self._stats_cache = stats_cache

    async def gather(
        self, members: Sequence[MemberRef], game: Game
    ) -> list[MemberStat]:
        """Return one MemberStat per member, in membership order."""
        stats = await asyncio.gather(*(self._member_stat(m, game) for m in members))
        return list(stats)

    async def _member_stat(self, member: MemberRef, game: Game) -> MemberStat:
        try:
            result = await self._stats_cache.get_stats(member.user_id, game)
            stat = stat_from_payload(member, result.stats)
            if stat is not None:
                return stat
        except RankUpError as e:
            logger.warning(
                "Member stats unavailable, falling back to profile",
                extra={
                    "user_id": member.user_id,
                    "game": game.value,
                    "error": e.message,
                },
            )
        except Exception as e:
            logger.error(
                "Unexpected error reading member stats",
                extra={"user_id": member.user_id, "game": game.value, "error": str(e)},
                exc_info=True,
            )

        try:
            stat = stat_from_payload(member, await self._profile_summary(member, game))
            if stat is not None:
                return stat
        except Exception as e:
            logger.error(
                "Could not read profile rank summary",
                extra={"user_id": member.user_id, "error": str(e)},
                exc_info=True,
            )

        logger.info(
            "Scoring member as %s",
            UNRANKED_LABEL,
            extra={"user_id": member.user_id, "game": game.value},
        )
        return MemberStat.unranked(member.user_id, member.username, member.avatar)

    async def _profile_summary(self, member: MemberRef, game: Game) -> dict | None:
        async with self._session_factory() as db:
            user = await db.get(models.User, member.user_id)
            if user is None:
                return None
            return (user.rank_summaries or {}).get(game.value)
