# src/rankup/schemas/__init__.py

"""Pydantic schemas for API validation and serialization."""

from .common import Game
from .leaderboard import LeaderboardEntry, PartyLeaderboard
from .signal import (
    CompletionRunRequest,
    CompletionRunResponse,
    PartyUpdateSummary,
    StatsUpdatedResponse,
    StatsUpdatedSignal,
)
from .stats import StatsResponse

__all__ = [
    # Common
    "Game",
    # Leaderboard
    "LeaderboardEntry",
    "PartyLeaderboard",
    # Signals and jobs
    "StatsUpdatedSignal",
    "StatsUpdatedResponse",
    "PartyUpdateSummary",
    "CompletionRunRequest",
    "CompletionRunResponse",
    # Stats
    "StatsResponse",
]
