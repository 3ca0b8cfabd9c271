# src/rankup/schemas/signal.py

"""Schemas for stats-update signals and job runs."""

from datetime import date

from pydantic import BaseModel, Field

from .common import Game


class StatsUpdatedSignal(BaseModel):
    """A user's stats document for a game changed (delivered at-least-once)."""

    user_id: str = Field(..., min_length=1)
    game: Game


class PartyUpdateSummary(BaseModel):
    """Per-party result of processing one signal."""

    party_id: int
    party_name: str
    events: int = Field(0, ge=0)
    pushes_sent: int = Field(0, ge=0)
    dispatch_failed: bool = False
    snapshot_persisted: bool = False
    error: str | None = None
    final_state: str


class StatsUpdatedResponse(BaseModel):
    user_id: str
    game: Game
    parties: list[PartyUpdateSummary] = Field(default_factory=list)


class CompletionRunRequest(BaseModel):
    """Run the completed-party check as of ``today`` (defaults to the current date)."""

    today: date | None = None


class CompletionRunResponse(BaseModel):
    checked: int = Field(0, ge=0)
    completed: list[int] = Field(default_factory=list)
    failed: list[int] = Field(default_factory=list)
