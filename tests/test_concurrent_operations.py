# tests/test_concurrent_operations.py

"""Tests for overlapping signals and writes against one database.

Every service opens its own session per task, so these run truly
concurrently against the file-backed test database.
"""

import asyncio

import pytest
from conftest import START, add_party, add_user
from rankup.db.models import GameStats, Notification, RankingSnapshotRecord
from rankup.ranking.types import RankedMember
from rankup.schemas.common import Game
from rankup.services.party_update import store_snapshot
from sqlalchemy import func, select

RANKS = [
    ("p1", "MASTER I", 120),
    ("p2", "DIAMOND I", 80),
    ("p3", "DIAMOND IV", 10),
    ("p4", "EMERALD II", 55),
    ("p5", "PLATINUM I", 0),
    ("p6", "GOLD III", 40),
    ("p7", "SILVER II", 20),
    ("p8", "BRONZE IV", 5),
]


async def count(session_factory, model) -> int:
    async with session_factory() as db:
        return await db.scalar(select(func.count()).select_from(model))


def ranked(user_id: str, position: int) -> RankedMember:
    return RankedMember(
        user_id=user_id,
        display_name=user_id.capitalize(),
        avatar_ref="",
        rank_label="GOLD I",
        primary_metric=0,
        score=1_000_000,
        position=position,
    )


@pytest.fixture
async def big_party(db_session, provider):
    for user_id, rank, points in RANKS:
        await add_user(db_session, user_id)
        provider.set_rank(user_id, rank, points)
    return await add_party(db_session, "Octet", [u for u, _, _ in RANKS])


@pytest.mark.asyncio
async def test_simultaneous_signals_for_one_party(
    big_party, orchestrator, session_factory
):
    # 1. ARRANGE: a party that has never been ranked.

    # 2. ACT: three members' signals arrive at once.
    results = await asyncio.gather(
        orchestrator.handle_stats_updated("p1", Game.LEAGUE),
        orchestrator.handle_stats_updated("p4", Game.LEAGUE),
        orchestrator.handle_stats_updated("p8", Game.LEAGUE),
    )

    # 3. ASSERT: one snapshot, one cache row per member, nothing failed.
    outcomes = [o for party_outcomes in results for o in party_outcomes]
    assert len(outcomes) == 3
    assert all(o.error is None for o in outcomes)
    assert all(o.snapshot_persisted for o in outcomes)

    assert await count(session_factory, RankingSnapshotRecord) == 1
    assert await count(session_factory, GameStats) == len(RANKS)

    async with session_factory() as db:
        record = await db.scalar(select(RankingSnapshotRecord))
    assert record.version == 3
    assert [e["user_id"] for e in record.entries] == [u for u, _, _ in RANKS]

    # Redelivered bootstrap events share dedup keys, so the top 3 is recorded once.
    assert await count(session_factory, Notification) == 3


@pytest.mark.asyncio
async def test_cache_insert_racing_another_writer_overwrites_it(
    db_session, session_factory, stats_cache, provider, clock, monkeypatch
):
    # 1. ARRANGE: another writer inserts the entry while this fetch is storing.
    await add_user(db_session, "ana")
    provider.set_rank("ana", "GOLD II", 45)

    original_find = GameStats.find
    calls = []

    async def racing_find(db, user_id, game):
        calls.append(user_id)
        found = await original_find(db, user_id, game)
        if len(calls) == 2:
            async with session_factory() as other:
                other.add(
                    GameStats(
                        user_id=user_id,
                        game=game,
                        raw_stats={"current_rank": "SILVER I", "points": 0},
                        last_updated_at=START,
                    )
                )
                await other.commit()
        return found

    monkeypatch.setattr(GameStats, "find", racing_find)
    clock.advance(minutes=5)

    # 2. ACT
    result = await stats_cache.get_stats("ana", Game.LEAGUE)

    # 3. ASSERT: the insert conflicted, was retried as an update, and won.
    assert len(calls) == 3
    assert result.cached is False
    assert result.stats["current_rank"] == "GOLD II"
    assert result.last_updated_at == clock.now

    assert await count(session_factory, GameStats) == 1
    async with session_factory() as db:
        stored = await db.scalar(select(GameStats))
    assert stored.raw_stats["current_rank"] == "GOLD II"


@pytest.mark.asyncio
async def test_first_snapshot_racing_another_writer_is_last_write_wins(
    db_session, session_factory
):
    # 1. ARRANGE: a competing first snapshot lands between our read and commit.
    party = await add_party(db_session, "Duo", [])

    def racing_factory():
        session = session_factory()
        original_scalar = session.scalar

        async def scalar(statement, *args, **kwargs):
            session.scalar = original_scalar
            found = await original_scalar(statement, *args, **kwargs)
            async with session_factory() as other:
                other.add(
                    RankingSnapshotRecord(
                        party_id=party.id,
                        entries=[ranked("zed", 1).to_dict()],
                        taken_at=START,
                    )
                )
                await other.commit()
            return found

        session.scalar = scalar
        return session

    # 2. ACT
    await store_snapshot(
        racing_factory, party.id, [ranked("a", 1), ranked("b", 2)], START
    )

    # 3. ASSERT
    assert await count(session_factory, RankingSnapshotRecord) == 1
    async with session_factory() as db:
        record = await db.scalar(select(RankingSnapshotRecord))
    assert record.version == 2
    assert [e["user_id"] for e in record.entries] == ["a", "b"]
