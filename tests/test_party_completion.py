# tests/test_party_completion.py

"""Tests for the daily completed-party announcement."""

from datetime import date, timedelta

import pytest
from conftest import add_party, add_user
from rankup.db.models import Notification, Party
from rankup.services.party_completion import PARTY_COMPLETE_NOTIFICATION
from sqlalchemy import select

TODAY = date(2026, 10, 18)
YESTERDAY = TODAY - timedelta(days=1)


@pytest.fixture
async def ended_party(db_session, provider):
    for user_id in ("a", "b", "c"):
        await add_user(db_session, user_id)
    provider.set_rank("a", "SILVER I", 0)
    provider.set_rank("b", "EMERALD II", 30)
    provider.set_rank("c", "GOLD III", 70)
    return await add_party(db_session, "Season Race", ["a", "b", "c"], end_date=YESTERDAY)


@pytest.mark.asyncio
async def test_members_learn_the_final_standings(
    ended_party, completion_service, push_client, session_factory
):
    # ACT
    report = await completion_service.notify_completed_parties(TODAY)

    # ASSERT
    assert report.checked == 1
    assert report.completed == [ended_party.id]
    assert report.failed == []

    async with session_factory() as db:
        rows = (await db.execute(select(Notification))).scalars().all()
        party = await db.get(Party, ended_party.id)

    assert {r.type for r in rows} == {PARTY_COMPLETE_NOTIFICATION}
    payloads = {r.user_id: r.payload for r in rows}
    assert payloads["b"]["is_winner"] is True
    assert payloads["c"]["final_rank"] == 2
    assert payloads["a"]["final_rank"] == 3
    assert payloads["a"]["winner_username"] == "B"

    bodies = {m.to: m.body for m in push_client.sent}
    assert len(bodies) == 3
    assert "You won Season Race!" in bodies["ExponentPushToken[b]"]

    assert party.completion_notification_sent is True
    assert party.completion_notification_sent_at is not None


@pytest.mark.asyncio
async def test_each_party_is_announced_once(ended_party, completion_service, push_client):
    await completion_service.notify_completed_parties(TODAY)

    report = await completion_service.notify_completed_parties(TODAY)

    assert report.checked == 0
    assert len(push_client.sent) == 3


@pytest.mark.asyncio
async def test_only_parties_ending_yesterday_are_checked(
    ended_party, db_session, completion_service
):
    await add_party(db_session, "Still Running", ["a"], end_date=TODAY + timedelta(days=3))
    await add_party(db_session, "Open Ended", ["a"])

    report = await completion_service.notify_completed_parties(TODAY)

    assert report.completed == [ended_party.id]


@pytest.mark.asyncio
async def test_empty_party_is_marked_without_notifications(
    db_session, completion_service, push_client, session_factory
):
    empty = await add_party(db_session, "Ghost Town", [], end_date=YESTERDAY)

    report = await completion_service.notify_completed_parties(TODAY)

    assert report.completed == [empty.id]
    assert push_client.sent == []
    async with session_factory() as db:
        assert (await db.get(Party, empty.id)).completion_notification_sent is True
