# src/rankup/db/models.py

"""Database models for the RankUp leaderboard engine."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, List, TypedDict

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    String,
    UniqueConstraint,
    select,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import (
    Mapped,
    declarative_base,
    mapped_column,
    relationship,
)

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ===============================================
# Type Definitions for JSON Fields
# ===============================================


class RankSummary(TypedDict):
    """Lightweight rank kept on the user profile, used when no cache exists.

    Keys:
        current_rank: Rank label, e.g. "GOLD II" or "Diamond 3"
        points: In-tier progress (LP for League, RR for Valorant)
    """

    current_rank: str
    points: float


class LinkedAccount(TypedDict, total=False):
    """Provider account reference stored per game.

    League: {"puuid": ..., "region": "euw1"}
    Valorant: {"game_name": ..., "tag": ..., "region": "eu"}
    """

    puuid: str
    region: str
    game_name: str
    tag: str


# ===============================================
# Mixins for Common Columns
# ===============================================


class TimestampMixin:
    """Mixin providing created_at and updated_at timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        default=None,
        onupdate=utcnow,
        nullable=True,
    )


class VersionMixin:
    """Mixin providing a version counter bumped on every rewrite."""

    version: Mapped[int] = mapped_column(default=1, nullable=False)


# ===============================================
# Users
# ===============================================


class User(Base, TimestampMixin):
    """An app user as seen by the leaderboard engine.

    Attributes:
        linked_accounts: Provider account per game, keyed by game value
        rank_summaries: Profile rank per game, keyed by game value
        notification_preferences: e.g. {"leaderboard": false} to mute pushes
    """

    __tablename__ = "users"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    username: Mapped[str] = mapped_column(String, nullable=False)
    photo_url: Mapped[str] = mapped_column(String, default="", nullable=False)

    push_token: Mapped[str | None] = mapped_column(String, nullable=True)
    push_token_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    notification_preferences: Mapped[dict] = mapped_column(JSON, default=lambda: {})

    # See LinkedAccount and RankSummary TypedDicts for the value structures
    linked_accounts: Mapped[dict] = mapped_column(JSON, default=lambda: {})
    rank_summaries: Mapped[dict] = mapped_column(JSON, default=lambda: {})

    game_stats: Mapped[List["GameStats"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    def __init__(self, **kw: Any):
        super().__init__(**kw)

    def account_for(self, game: str) -> dict | None:
        account = (self.linked_accounts or {}).get(game)
        return account or None

    def wants_leaderboard_pushes(self) -> bool:
        preferences = self.notification_preferences or {}
        return preferences.get("leaderboard", True) is not False


# ===============================================
# Stats Cache
# ===============================================


class GameStats(Base):
    """Cached provider stats for one user and one game.

    Written only after a successful provider fetch. ``last_updated_at`` never
    moves backwards.
    """

    __tablename__ = "game_stats"
    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    game: Mapped[str] = mapped_column(String, nullable=False)

    # Normalized provider payload; always has 'current_rank' and 'points'.
    raw_stats: Mapped[dict] = mapped_column(JSON, nullable=False)
    last_updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    user: Mapped["User"] = relationship(back_populates="game_stats")

    __table_args__ = (UniqueConstraint("user_id", "game", name="_user_game_uc"),)

    @classmethod
    async def find(
        cls, db: AsyncSession, user_id: str, game: str
    ) -> "GameStats | None":
        """Find the cached entry for a user and game."""
        query = select(cls).where(cls.user_id == user_id, cls.game == game)
        result = await db.execute(query)
        return result.scalar_one_or_none()


# ===============================================
# Parties and Rankings
# ===============================================


class Party(Base, TimestampMixin):
    """A group of users competing on one game's leaderboard."""

    __tablename__ = "parties"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    game: Mapped[str] = mapped_column(String, nullable=False, index=True)

    end_date: Mapped[date | None] = mapped_column(nullable=True)
    completion_notification_sent: Mapped[bool] = mapped_column(default=False)
    completion_notification_sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    members: Mapped[List["PartyMember"]] = relationship(
        back_populates="party",
        cascade="all, delete-orphan",
        order_by="PartyMember.id",
    )
    snapshot: Mapped["RankingSnapshotRecord | None"] = relationship(
        back_populates="party", cascade="all, delete-orphan", uselist=False
    )


class PartyMember(Base):
    """Membership row with the member's cached display name and avatar."""

    __tablename__ = "party_members"
    id: Mapped[int] = mapped_column(primary_key=True)
    party_id: Mapped[int] = mapped_column(
        ForeignKey("parties.id"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    username: Mapped[str] = mapped_column(String, nullable=False)
    avatar: Mapped[str] = mapped_column(String, default="", nullable=False)

    party: Mapped["Party"] = relationship(back_populates="members")

    __table_args__ = (UniqueConstraint("party_id", "user_id", name="_party_user_uc"),)


class RankingSnapshotRecord(Base, VersionMixin):
    """The current ranking of a party; one row per party, rewritten wholesale."""

    __tablename__ = "ranking_snapshots"
    id: Mapped[int] = mapped_column(primary_key=True)
    party_id: Mapped[int] = mapped_column(
        ForeignKey("parties.id"), nullable=False, unique=True
    )

    # Ordered list of RankedMember dicts (see rankup.ranking.types)
    entries: Mapped[list] = mapped_column(JSON, nullable=False)
    taken_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    party: Mapped["Party"] = relationship(back_populates="snapshot")


# ===============================================
# In-app Notifications
# ===============================================


class Notification(Base):
    """In-app notification record shown in the user's notification feed.

    ``dedup_key`` makes creation idempotent: writing the same logical
    notification twice leaves a single row.
    """

    __tablename__ = "notifications"
    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String, nullable=False)
    dedup_key: Mapped[str] = mapped_column(String, nullable=False)

    # Ex: {'party_id': 3, 'new_rank': 1, 'old_rank': 2, 'direction': 'moved-up'}
    payload: Mapped[dict] = mapped_column(JSON, default=lambda: {})
    read: Mapped[bool] = mapped_column(default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "dedup_key", name="_notification_dedup_uc"),
    )
