# src/rankup/ranking/scorer.py

"""
Rank scoring for party leaderboards.

Each game's rank text (e.g. "GOLD II" or "Diamond 3") is parsed into a tagged
tier/division value and collapsed into one integer that increases strictly with
competitive strength:

    score = tier * TIER_WEIGHT + division * DIVISION_WEIGHT + clamp(points)

Points are clamped below DIVISION_WEIGHT and the highest division weight times
DIVISION_WEIGHT stays below TIER_WEIGHT, so a tier difference always beats any
division/points difference and a division difference beats any points one.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from rankup.schemas.common import Game

DIVISION_WEIGHT = 10_000
TIER_WEIGHT = 1_000_000
MAX_POINTS = DIVISION_WEIGHT - 1


# ===============================================
# == Per-game rank vocabularies
# ===============================================


class LeagueTier(IntEnum):
    UNRANKED = 0
    IRON = 1
    BRONZE = 2
    SILVER = 3
    GOLD = 4
    PLATINUM = 5
    EMERALD = 6
    DIAMOND = 7
    MASTER = 8
    GRANDMASTER = 9
    CHALLENGER = 10


class LeagueDivision(IntEnum):
    """League divisions count down: IV is the entry division, I the best."""

    NONE = 0
    IV = 1
    III = 2
    II = 3
    I = 4  # noqa: E741


class ValorantTier(IntEnum):
    UNRANKED = 0
    IRON = 1
    BRONZE = 2
    SILVER = 3
    GOLD = 4
    PLATINUM = 5
    DIAMOND = 6
    ASCENDANT = 7
    IMMORTAL = 8
    RADIANT = 9


class ValorantDivision(IntEnum):
    """Valorant divisions count up: 1 is the entry division, 3 the best."""

    NONE = 0
    ONE = 1
    TWO = 2
    THREE = 3


@dataclass(frozen=True)
class ParsedRank:
    """A rank label after boundary parsing.

    ``tier`` and ``division`` are members of the game's own enums; an
    unrecognised label parses to the UNRANKED/NONE members.
    """

    tier: IntEnum
    division: IntEnum

    @property
    def is_ranked(self) -> bool:
        return self.tier.value > 0


def _clamp_points(points: float | int | None) -> int:
    try:
        value = int(points or 0)
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, min(value, MAX_POINTS))


# ===============================================
# == Scorers
# ===============================================


class LeagueScorer:
    """Scores League of Legends solo-queue ranks ("GOLD II", "MASTER")."""

    game = Game.LEAGUE

    def parse(self, rank_label: str | None) -> ParsedRank:
        parts = (rank_label or "").upper().split()
        tier = LeagueTier.__members__.get(parts[0]) if parts else None
        if tier is None:
            return ParsedRank(LeagueTier.UNRANKED, LeagueDivision.NONE)
        division = LeagueDivision.NONE
        if len(parts) > 1 and parts[1] in LeagueDivision.__members__:
            division = LeagueDivision[parts[1]]
        return ParsedRank(tier, division)

    def score(self, rank_label: str | None, points: float | int | None = 0) -> int:
        parsed = self.parse(rank_label)
        return _compose(parsed, points)


class ValorantScorer:
    """Scores Valorant competitive ranks ("Diamond 3", "Radiant")."""

    game = Game.VALORANT

    _divisions = {
        "1": ValorantDivision.ONE,
        "2": ValorantDivision.TWO,
        "3": ValorantDivision.THREE,
    }

    def parse(self, rank_label: str | None) -> ParsedRank:
        parts = (rank_label or "").upper().split()
        tier = ValorantTier.__members__.get(parts[0]) if parts else None
        if tier is None:
            return ParsedRank(ValorantTier.UNRANKED, ValorantDivision.NONE)
        division = ValorantDivision.NONE
        if len(parts) > 1:
            division = self._divisions.get(parts[1], ValorantDivision.NONE)
        return ParsedRank(tier, division)

    def score(self, rank_label: str | None, points: float | int | None = 0) -> int:
        parsed = self.parse(rank_label)
        return _compose(parsed, points)


def _compose(parsed: ParsedRank, points: float | int | None) -> int:
    # Points without a recognised tier carry no weight.
    if not parsed.is_ranked:
        return 0
    return (
        parsed.tier.value * TIER_WEIGHT
        + parsed.division.value * DIVISION_WEIGHT
        + _clamp_points(points)
    )


_SCORERS: dict[Game, LeagueScorer | ValorantScorer] = {
    Game.LEAGUE: LeagueScorer(),
    Game.VALORANT: ValorantScorer(),
}


def scorer_for(game: Game) -> LeagueScorer | ValorantScorer:
    """Return the scorer for ``game``."""
    return _SCORERS[Game(game)]


def score(game: Game, rank_label: str | None, points: float | int | None = 0) -> int:
    """Score a rank label for ``game``; never raises on bad input."""
    return scorer_for(game).score(rank_label, points)
