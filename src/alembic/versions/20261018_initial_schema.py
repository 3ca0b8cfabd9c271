"""Initial leaderboard schema

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

Creates:
- users with linked accounts, rank summaries and push address
- game_stats cache (one row per user and game)
- parties, party_members and one ranking snapshot per party
- notifications with a per-user dedup key
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261018_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Create all tables."""
    # === USERS ===
    op.create_table(
        "users",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("photo_url", sa.String(), nullable=False, server_default=""),
        sa.Column("push_token", sa.String(), nullable=True),
        sa.Column("push_token_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notification_preferences", sa.JSON(), nullable=True),
        sa.Column("linked_accounts", sa.JSON(), nullable=True),
        sa.Column("rank_summaries", sa.JSON(), nullable=True),
        *_timestamps(),
    )

    # === GAME_STATS ===
    op.create_table(
        "game_stats",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("game", sa.String(), nullable=False),
        sa.Column("raw_stats", sa.JSON(), nullable=False),
        sa.Column("last_updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "game", name="_user_game_uc"),
    )
    op.create_index("ix_game_stats_user_id", "game_stats", ["user_id"])

    # === PARTIES ===
    op.create_table(
        "parties",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("game", sa.String(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column(
            "completion_notification_sent",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column(
            "completion_notification_sent_at", sa.DateTime(timezone=True), nullable=True
        ),
        *_timestamps(),
    )
    op.create_index("ix_parties_game", "parties", ["game"])

    op.create_table(
        "party_members",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "party_id", sa.Integer(), sa.ForeignKey("parties.id"), nullable=False
        ),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("avatar", sa.String(), nullable=False, server_default=""),
        sa.UniqueConstraint("party_id", "user_id", name="_party_user_uc"),
    )
    op.create_index("ix_party_members_party_id", "party_members", ["party_id"])
    op.create_index("ix_party_members_user_id", "party_members", ["user_id"])

    # === RANKING_SNAPSHOTS ===
    op.create_table(
        "ranking_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "party_id",
            sa.Integer(),
            sa.ForeignKey("parties.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("entries", sa.JSON(), nullable=False),
        sa.Column("taken_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )

    # === NOTIFICATIONS ===
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("dedup_key", sa.String(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "dedup_key", name="_notification_dedup_uc"),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_table("ranking_snapshots")
    op.drop_index("ix_party_members_user_id", table_name="party_members")
    op.drop_index("ix_party_members_party_id", table_name="party_members")
    op.drop_table("party_members")
    op.drop_index("ix_parties_game", table_name="parties")
    op.drop_table("parties")
    op.drop_index("ix_game_stats_user_id", table_name="game_stats")
    op.drop_table("game_stats")
    op.drop_table("users")
