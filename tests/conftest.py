# tests/conftest.py

"""Pytest configuration and fixtures."""

from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from rankup.clients.expo_push import PushMessage, PushTicket
from rankup.db.models import Base, Party, PartyMember, User
from rankup.db.session import get_db
from rankup.dependencies import (
    get_completion_service,
    get_orchestrator,
    get_stats_cache,
)
from rankup.exceptions import PushDeliveryError
from rankup.main import app
from rankup.schemas.common import Game
from rankup.services.notification_dispatcher import NotificationDispatcher
from rankup.services.party_completion import PartyCompletionService
from rankup.services.party_update import PartyUpdateOrchestrator
from rankup.services.stats_cache import StatsCache
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

START = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """A clock the test moves by hand."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def account_key(account: Mapping[str, Any]) -> str:
    return account.get("puuid") or account["game_name"]


class FakeStatsProvider:
    """Serves canned payloads (or raises canned errors) per linked account."""

    def __init__(self) -> None:
        self.responses: dict[str, dict[str, Any] | Exception] = {}
        self.calls: list[str] = []

    def set_rank(self, user_id: str, rank: str, points: int = 0) -> None:
        self.responses[user_id] = {"current_rank": rank, "points": points}

    def fail(self, user_id: str, error: Exception) -> None:
        self.responses[user_id] = error

    async def fetch(self, account: Mapping[str, Any], game: Game) -> dict[str, Any]:
        key = account_key(account)
        self.calls.append(key)
        response = self.responses[key]
        if isinstance(response, Exception):
            raise response
        return dict(response)


class FakePushClient:
    """Records every batch; tokens in ``dead_tokens`` come back DeviceNotRegistered."""

    def __init__(self) -> None:
        self.batches: list[list[PushMessage]] = []
        self.dead_tokens: set[str] = set()
        self.fail_batches = False

    @property
    def sent(self) -> list[PushMessage]:
        return [m for batch in self.batches for m in batch]

    async def send(self, messages: list[PushMessage]) -> list[PushTicket]:
        self.batches.append(list(messages))
        if self.fail_batches:
            raise PushDeliveryError("push service down", batch_size=len(messages))
        tickets = []
        for message in messages:
            if message.to in self.dead_tokens:
                tickets.append(
                    PushTicket(
                        status="error",
                        message="not registered",
                        error="DeviceNotRegistered",
                    )
                )
            else:
                tickets.append(PushTicket(status="ok"))
        return tickets


def push_token(user_id: str) -> str:
    return f"ExponentPushToken[{user_id}]"


@pytest.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """A fresh file-backed database per test.

    Services open one session per concurrent task, so an in-memory database
    bound to a single connection would not do.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"timeout": 15},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        bind=engine, expire_on_commit=False, autocommit=False, autoflush=False
    )

    await engine.dispose()


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def provider() -> FakeStatsProvider:
    return FakeStatsProvider()


@pytest.fixture
def push_client() -> FakePushClient:
    return FakePushClient()


@pytest.fixture
def stats_cache(session_factory, provider, clock) -> StatsCache:
    return StatsCache(session_factory, provider, clock=clock)


@pytest.fixture
def dispatcher(session_factory, push_client, clock) -> NotificationDispatcher:
    return NotificationDispatcher(session_factory, push_client, clock=clock)


@pytest.fixture
def orchestrator(
    session_factory, stats_cache, dispatcher, clock
) -> PartyUpdateOrchestrator:
    return PartyUpdateOrchestrator(session_factory, stats_cache, dispatcher, clock=clock)


@pytest.fixture
def completion_service(
    session_factory, stats_cache, dispatcher
) -> PartyCompletionService:
    return PartyCompletionService(session_factory, stats_cache, dispatcher)


async def add_user(
    db: AsyncSession,
    user_id: str,
    game: Game | None = Game.LEAGUE,
    token: str | None = "default",
    **kwargs: Any,
) -> User:
    """Create a user with an account linked for ``game`` and a push token."""
    linked = {}
    if game == Game.LEAGUE:
        linked = {"league": {"puuid": user_id, "region": "euw1"}}
    elif game == Game.VALORANT:
        linked = {"valorant": {"game_name": user_id, "tag": "EUW", "region": "eu"}}
    user = User(
        id=user_id,
        username=kwargs.pop("username", user_id.capitalize()),
        push_token=push_token(user_id) if token == "default" else token,
        linked_accounts=linked,
        **kwargs,
    )
    db.add(user)
    await db.commit()
    return user


async def add_party(
    db: AsyncSession,
    name: str,
    member_ids: list[str],
    game: Game = Game.LEAGUE,
    **kwargs: Any,
) -> Party:
    """Create a party with members in the given order."""
    party = Party(name=name, game=game.value, **kwargs)
    db.add(party)
    await db.flush()
    for user_id in member_ids:
        db.add(
            PartyMember(
                party_id=party.id,
                user_id=user_id,
                username=user_id.capitalize(),
                avatar=f"avatars/{user_id}.png",
            )
        )
    await db.commit()
    return party


@pytest.fixture
async def async_client(
    session_factory, stats_cache, orchestrator, completion_service
) -> AsyncGenerator[AsyncClient, None]:
    """Fixture to provide an async test client for the API."""

    # Override the get_db dependency to use the test database
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stats_cache] = lambda: stats_cache
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_completion_service] = lambda: completion_service

    transport = ASGITransport(app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    # Clean up the overrides after the test
    app.dependency_overrides.clear()
