# src/rankup/schemas/leaderboard.py

"""Leaderboard schemas for party rankings."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class LeaderboardEntry(BaseModel):
    """Single entry in a party leaderboard.

    Attributes:
        position: Position in leaderboard (1-indexed)
        user_id: The member's user ID
        display_name: The member's cached username
        avatar_ref: The member's cached avatar
        rank_label: Rank text, e.g. "GOLD II"
        primary_metric: In-tier points (LP or RR)
        score: Comparable rank score used for ordering
    """

    position: int = Field(..., ge=1, description="Position in leaderboard (1-indexed)")
    user_id: str
    display_name: str
    avatar_ref: str = ""
    rank_label: str
    primary_metric: float = 0.0
    score: int = Field(0, ge=0)

    model_config = ConfigDict(from_attributes=True)


class PartyLeaderboard(BaseModel):
    """The stored ranking snapshot of a party."""

    party_id: int
    party_name: str
    game: str
    entries: list[LeaderboardEntry] = Field(default_factory=list)
    top3: list[LeaderboardEntry] = Field(default_factory=list)
    taken_at: datetime | None = None
    version: int = 0
