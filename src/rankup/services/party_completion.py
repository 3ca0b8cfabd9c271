# src/rankup/services/party_completion.py

"""Daily check that announces the final standings of parties that ended."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from rankup.db import models
from rankup.ranking.engine import RankingEngine
from rankup.schemas.common import Game
from rankup.services.members import MemberRef, MemberStatsGatherer
from rankup.services.notification_dispatcher import (
    APP_TITLE,
    NotificationDispatcher,
    PushRequest,
)
from rankup.services.stats_cache import StatsCache

logger = logging.getLogger(__name__)

PARTY_COMPLETE_NOTIFICATION = "party_complete"


@dataclass
class CompletionReport:
    checked: int = 0
    completed: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)


class PartyCompletionService:
    """
    Finds parties whose end date was yesterday and tells every member the
    final result. Each party is announced once; the flag is set only after
    its notifications were written.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        stats_cache: StatsCache,
        dispatcher: NotificationDispatcher,
    ):
        self._session_factory = session_factory
        self._gatherer = MemberStatsGatherer(session_factory, stats_cache)
        self._dispatcher = dispatcher

    async def notify_completed_parties(self, today: date) -> CompletionReport:
        report = CompletionReport()
        yesterday = today - timedelta(days=1)

        async with self._session_factory() as db:
            result = await db.execute(
                select(models.Party)
                .where(
                    models.Party.end_date == yesterday,
                    models.Party.completion_notification_sent == False,  # noqa: E712
                )
                .options(selectinload(models.Party.members))
                .order_by(models.Party.id)
            )
            parties = list(result.scalars().all())

        logger.info(
            "Checking for completed parties",
            extra={"ended_on": yesterday.isoformat(), "candidates": len(parties)},
        )
        for party in parties:
            report.checked += 1
            try:
                await self._complete(party)
                report.completed.append(party.id)
            except Exception as e:
                report.failed.append(party.id)
                logger.error(
                    "Error processing completed party",
                    extra={"party_id": party.id, "error": str(e)},
                    exc_info=True,
                )
        return report

    async def _complete(self, party: models.Party) -> None:
        members = [MemberRef.from_model(m) for m in party.members]
        if not members:
            logger.info("Party has no members", extra={"party_id": party.id})
            await self._mark_sent(party.id)
            return

        game = Game(party.game)
        ranking = RankingEngine(game).rank(await self._gatherer.gather(members, game))
        winner = ranking[0]

        records = []
        pushes = []
        for member in ranking:
            is_winner = member.user_id == winner.user_id
            payload = {
                "party_id": party.id,
                "party_name": party.name,
                "game": game.display_name,
                "winner_user_id": winner.user_id,
                "winner_username": winner.display_name,
                "is_winner": is_winner,
                "final_rank": member.position,
            }
            records.append(
                (
                    member.user_id,
                    PARTY_COMPLETE_NOTIFICATION,
                    f"{PARTY_COMPLETE_NOTIFICATION}:{party.id}",
                    payload,
                )
            )
            if is_winner:
                body = f"You won {party.name}! Final rank: #1."
            else:
                body = (
                    f"{party.name} has ended. {winner.display_name} won; "
                    f"you finished #{member.position}."
                )
            pushes.append(
                PushRequest(
                    recipient_user_id=member.user_id,
                    title=APP_TITLE,
                    body=body,
                    data={"type": PARTY_COMPLETE_NOTIFICATION, **payload},
                    category=PARTY_COMPLETE_NOTIFICATION,
                )
            )

        await self._dispatcher.record(records)
        await self._dispatcher.dispatch_messages(pushes)
        await self._mark_sent(party.id)
        logger.info(
            "Sent completion notifications",
            extra={"party_id": party.id, "winner": winner.user_id},
        )

    async def _mark_sent(self, party_id: int) -> None:
        async with self._session_factory() as db:
            party = await db.get(models.Party, party_id)
            if party is None:
                return
            party.completion_notification_sent = True
            party.completion_notification_sent_at = models.utcnow()
            await db.commit()
