# src/rankup/schemas/stats.py

"""Schemas for the get-or-refresh stats endpoint."""

from datetime import datetime

from pydantic import BaseModel, Field


class StatsResponse(BaseModel):
    """Stats for one user and game, plus where they came from.

    Attributes:
        stats: Normalized provider payload (current_rank, points, ...)
        cached: Served from the cache instead of a fresh provider fetch
        stale: The provider was unavailable and expired cached stats were served
        message: Human-readable summary of the above
        last_updated_at: When the stats were fetched from the provider
    """

    success: bool = True
    message: str
    stats: dict = Field(default_factory=dict)
    cached: bool
    stale: bool = False
    last_updated_at: datetime
