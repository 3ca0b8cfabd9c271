# tests/test_api.py

"""Tests for the HTTP endpoints."""

from datetime import date

import pytest
from conftest import add_party, add_user
from httpx import AsyncClient
from rankup.exceptions import ProviderUnavailableError


@pytest.mark.asyncio
async def test_health_check(async_client: AsyncClient):
    response = await async_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}
    assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
async def test_request_id_is_echoed(async_client: AsyncClient):
    response = await async_client.get("/health", headers={"X-Request-ID": "abc123"})

    assert response.headers["X-Request-ID"] == "abc123"


class TestStatsEndpoint:
    @pytest.mark.asyncio
    async def test_fresh_then_cached(self, async_client, db_session, provider):
        # ARRANGE
        await add_user(db_session, "ana")
        provider.set_rank("ana", "GOLD II", 45)

        # ACT
        first = await async_client.get("/users/ana/stats/league")
        second = await async_client.get("/users/ana/stats/league")

        # ASSERT
        assert first.status_code == 200
        body = first.json()
        assert body["success"] is True
        assert body["cached"] is False
        assert body["stale"] is False
        assert body["stats"]["current_rank"] == "GOLD II"
        assert body["message"] == "Stats updated successfully"

        assert second.json()["cached"] is True
        assert provider.calls == ["ana"]

    @pytest.mark.asyncio
    async def test_force_refresh(self, async_client, db_session, provider):
        await add_user(db_session, "ana")
        provider.set_rank("ana", "GOLD II", 45)
        await async_client.get("/users/ana/stats/league")

        response = await async_client.get(
            "/users/ana/stats/league", params={"force_refresh": "true"}
        )

        assert response.json()["cached"] is False
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_stale_stats_when_provider_is_down(
        self, async_client, db_session, provider
    ):
        await add_user(db_session, "ana")
        provider.set_rank("ana", "GOLD II", 45)
        await async_client.get("/users/ana/stats/league")
        provider.fail("ana", ProviderUnavailableError("Provider error 502", "league", 502))

        response = await async_client.get(
            "/users/ana/stats/league", params={"force_refresh": "true"}
        )

        assert response.status_code == 200
        assert response.json()["stale"] is True
        assert response.json()["stats"]["current_rank"] == "GOLD II"

    @pytest.mark.asyncio
    async def test_unlinked_account_is_412(self, async_client, db_session):
        await add_user(db_session, "ana", game=None)

        response = await async_client.get("/users/ana/stats/valorant")

        assert response.status_code == 412
        assert response.json()["error_type"] == "AccountNotLinkedError"
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_no_stats_at_all_is_503(self, async_client, db_session, provider):
        await add_user(db_session, "ana")
        provider.fail("ana", ProviderUnavailableError("Rate limit exceeded", "league", 429))

        response = await async_client.get("/users/ana/stats/league")

        assert response.status_code == 503
        assert response.json()["error_type"] == "StatsUnavailableError"

    @pytest.mark.asyncio
    async def test_unknown_user_is_404(self, async_client):
        response = await async_client.get("/users/ghost/stats/league")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_game_is_422(self, async_client):
        response = await async_client.get("/users/ana/stats/chess")

        assert response.status_code == 422


class TestSignalsAndLeaderboard:
    @pytest.fixture
    async def party(self, db_session, provider):
        for user_id, rank in (("a", "GOLD I"), ("b", "GOLD II"), ("c", "GOLD III")):
            await add_user(db_session, user_id)
            provider.set_rank(user_id, rank)
        return await add_party(db_session, "Squad", ["a", "b", "c"])

    @pytest.mark.asyncio
    async def test_signal_then_leaderboard(self, async_client, party):
        # ACT
        signal = await async_client.post(
            "/signals/stats-updated", json={"user_id": "a", "game": "league"}
        )
        board = await async_client.get(f"/parties/{party.id}/leaderboard")

        # ASSERT
        assert signal.status_code == 200
        summary = signal.json()["parties"][0]
        assert summary["party_id"] == party.id
        assert summary["events"] == 3
        assert summary["pushes_sent"] == 3
        assert summary["snapshot_persisted"] is True
        assert summary["final_state"] == "persist_snapshot"

        assert board.status_code == 200
        body = board.json()
        assert body["party_name"] == "Squad"
        assert body["version"] == 1
        assert [e["user_id"] for e in body["entries"]] == ["a", "b", "c"]
        assert [e["position"] for e in body["top3"]] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_redelivered_signal_reports_no_change(self, async_client, party):
        payload = {"user_id": "a", "game": "league"}
        await async_client.post("/signals/stats-updated", json=payload)

        response = await async_client.post("/signals/stats-updated", json=payload)

        summary = response.json()["parties"][0]
        assert summary["events"] == 0
        assert summary["pushes_sent"] == 0

    @pytest.mark.asyncio
    async def test_signal_with_unknown_game_is_422(self, async_client):
        response = await async_client.post(
            "/signals/stats-updated", json={"user_id": "a", "game": "chess"}
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unranked_party_has_empty_leaderboard(self, async_client, party):
        response = await async_client.get(f"/parties/{party.id}/leaderboard")

        assert response.status_code == 200
        assert response.json()["entries"] == []
        assert response.json()["taken_at"] is None

    @pytest.mark.asyncio
    async def test_unknown_party_is_404(self, async_client):
        response = await async_client.get("/parties/999/leaderboard")

        assert response.status_code == 404
        assert response.json()["error_type"] == "PartyNotFoundError"


@pytest.mark.asyncio
async def test_completion_run(async_client, db_session, provider):
    await add_user(db_session, "a")
    provider.set_rank("a", "GOLD I")
    party = await add_party(db_session, "Done", ["a"], end_date=date(2026, 10, 17))

    response = await async_client.post(
        "/parties/completions", json={"today": "2026-10-18"}
    )

    assert response.status_code == 200
    assert response.json() == {"checked": 1, "completed": [party.id], "failed": []}
