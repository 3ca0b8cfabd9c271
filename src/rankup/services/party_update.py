# src/rankup/services/party_update.py

"""Recomputes party leaderboards when a member's stats change."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from rankup.db import models
from rankup.ranking.change_detector import ChangeDetector
from rankup.ranking.engine import RankingEngine
from rankup.ranking.types import (
    NotificationEvent,
    RankedMember,
    RankingSnapshot,
)
from rankup.schemas.common import Game
from rankup.services.members import MemberRef, MemberStatsGatherer
from rankup.services.notification_dispatcher import (
    DispatchResult,
    NotificationDispatcher,
)
from rankup.services.stats_cache import StatsCache

logger = logging.getLogger(__name__)


class PartyUpdateState(str, Enum):
    IDLE = "idle"
    STATS_CHANGED = "stats_changed"
    PARTY_LOOKUP = "party_lookup"
    GATHER_MEMBERS = "gather_members"
    RANK = "rank"
    DIFF = "diff"
    NO_CHANGE = "no_change"
    HAS_CHANGES = "has_changes"
    DISPATCH = "dispatch"
    PERSIST_SNAPSHOT = "persist_snapshot"


@dataclass
class PartyUpdateOutcome:
    """What happened to one party during one stats-update signal."""

    party_id: int
    party_name: str
    ranking: list[RankedMember] = field(default_factory=list)
    events: list[NotificationEvent] = field(default_factory=list)
    dispatch_results: list[DispatchResult] = field(default_factory=list)
    dispatch_failed: bool = False
    snapshot_persisted: bool = False
    error: str | None = None
    states: list[PartyUpdateState] = field(default_factory=list)

    def enter(self, state: PartyUpdateState) -> None:
        self.states.append(state)
        logger.debug(
            "Party update state -> %s",
            state.value,
            extra={"party_id": self.party_id, "state": state.value},
        )


@dataclass(frozen=True)
class _PartyView:
    id: int
    name: str
    members: tuple[MemberRef, ...]
    previous: RankingSnapshot | None


class PartyUpdateOrchestrator:
    """
    Handles "this user's stats for this game changed" signals.

    Each signal is processed on its own: every party the user belongs to for
    the game is re-ranked from the members' current stats, diffed against the
    stored snapshot, notified, and the new snapshot is stored. Re-running the
    same signal re-diffs against the snapshot it just stored, so redelivery is
    harmless.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        stats_cache: StatsCache,
        dispatcher: NotificationDispatcher,
        clock: Callable[[], datetime] = models.utcnow,
    ):
        self._session_factory = session_factory
        self._gatherer = MemberStatsGatherer(session_factory, stats_cache)
        self._dispatcher = dispatcher
        self._clock = clock

    async def handle_stats_updated(
        self, user_id: str, game: Game | str
    ) -> list[PartyUpdateOutcome]:
        """
        Process one stats-update signal. Never raises.

        Each outcome's ``states`` starts with the signal-level states entered
        before the party lookup, followed by that party's own states.
        """
        try:
            game = Game(game)
        except ValueError:
            logger.error("Ignoring stats update for unknown game", extra={"game": game})
            return []

        signal_states: list[PartyUpdateState] = []

        def enter(state: PartyUpdateState) -> None:
            signal_states.append(state)
            logger.debug(
                "Stats update state -> %s",
                state.value,
                extra={"user_id": user_id, "state": state.value},
            )

        enter(PartyUpdateState.STATS_CHANGED)
        logger.info(
            "Game stats updated", extra={"user_id": user_id, "game": game.value}
        )

        enter(PartyUpdateState.PARTY_LOOKUP)
        try:
            parties = await self._find_parties(user_id, game)
        except Exception as e:
            logger.error(
                "Party lookup failed",
                extra={"user_id": user_id, "game": game.value, "error": str(e)},
                exc_info=True,
            )
            enter(PartyUpdateState.IDLE)
            return []

        if not parties:
            logger.info(
                "User is not in any parties for this game",
                extra={"user_id": user_id, "game": game.value},
            )
            enter(PartyUpdateState.IDLE)
            return []

        outcomes = []
        for party in parties:
            outcome = PartyUpdateOutcome(
                party_id=party.id, party_name=party.name, states=list(signal_states)
            )
            try:
                await self._process_party(party, game, outcome)
            except Exception as e:
                outcome.error = str(e)
                logger.error(
                    "Error processing party update",
                    extra={"party_id": party.id, "error": str(e)},
                    exc_info=True,
                )
            outcome.enter(PartyUpdateState.IDLE)
            outcomes.append(outcome)
        return outcomes

    async def _process_party(
        self, party: _PartyView, game: Game, outcome: PartyUpdateOutcome
    ) -> None:
        logger.info(
            "Processing party", extra={"party_id": party.id, "party_name": party.name}
        )

        outcome.enter(PartyUpdateState.GATHER_MEMBERS)
        stats = await self._gatherer.gather(party.members, game)

        outcome.enter(PartyUpdateState.RANK)
        ranking = RankingEngine(game).rank(stats)
        outcome.ranking = ranking

        outcome.enter(PartyUpdateState.DIFF)
        detector = ChangeDetector(party_id=party.id, party_name=party.name)
        previous = party.previous.entries if party.previous is not None else None
        events = detector.diff(previous, ranking)
        outcome.events = events

        if not events:
            outcome.enter(PartyUpdateState.NO_CHANGE)
        else:
            outcome.enter(PartyUpdateState.HAS_CHANGES)
            outcome.enter(PartyUpdateState.DISPATCH)
            try:
                outcome.dispatch_results = await self._dispatcher.dispatch(events)
            except Exception as e:
                # The snapshot must still be stored; it drives the next diff.
                outcome.dispatch_failed = True
                logger.error(
                    "Notification dispatch failed",
                    extra={"party_id": party.id, "error": str(e)},
                    exc_info=True,
                )

        outcome.enter(PartyUpdateState.PERSIST_SNAPSHOT)
        await self._persist_snapshot(party.id, ranking)
        outcome.snapshot_persisted = True
        logger.info(
            "Updated rankings snapshot",
            extra={
                "party_id": party.id,
                "members": len(ranking),
                "events": len(events),
            },
        )

    async def _find_parties(self, user_id: str, game: Game) -> list[_PartyView]:
        async with self._session_factory() as db:
            query = (
                select(models.Party)
                .join(models.PartyMember)
                .where(
                    models.PartyMember.user_id == user_id,
                    models.Party.game == game.value,
                )
                .options(
                    selectinload(models.Party.members),
                    selectinload(models.Party.snapshot),
                )
                .order_by(models.Party.id)
            )
            result = await db.execute(query)
            parties = result.scalars().unique().all()
            return [
                _PartyView(
                    id=p.id,
                    name=p.name,
                    members=tuple(MemberRef.from_model(m) for m in p.members),
                    previous=load_snapshot(p.snapshot),
                )
                for p in parties
            ]

    async def _persist_snapshot(
        self, party_id: int, ranking: list[RankedMember]
    ) -> None:
        await store_snapshot(self._session_factory, party_id, ranking, self._clock())


def load_snapshot(
    record: models.RankingSnapshotRecord | None,
) -> RankingSnapshot | None:
    """The stored ranking as a value, or None if the party was never ranked."""
    if record is None:
        return None
    return RankingSnapshot(
        party_id=record.party_id,
        entries=tuple(RankedMember.from_dict(e) for e in record.entries),
        taken_at=models.as_utc(record.taken_at),
    )


async def store_snapshot(
    session_factory: async_sessionmaker[AsyncSession],
    party_id: int,
    ranking: list[RankedMember],
    taken_at: datetime,
) -> None:
    """Replace a party's snapshot wholesale (last write wins)."""
    entries = [m.to_dict() for m in ranking]
    async with session_factory() as db:
        record = await db.scalar(
            select(models.RankingSnapshotRecord).where(
                models.RankingSnapshotRecord.party_id == party_id
            )
        )
        if record is None:
            db.add(
                models.RankingSnapshotRecord(
                    party_id=party_id, entries=entries, taken_at=taken_at
                )
            )
        else:
            record.entries = entries
            record.taken_at = taken_at
            record.version += 1
        try:
            await db.commit()
        except IntegrityError:
            # Another invocation stored the first snapshot concurrently.
            await db.rollback()
            record = await db.scalar(
                select(models.RankingSnapshotRecord).where(
                    models.RankingSnapshotRecord.party_id == party_id
                )
            )
            if record is None:
                raise
            record.entries = entries
            record.taken_at = taken_at
            record.version += 1
            await db.commit()
