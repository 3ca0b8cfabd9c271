# src/rankup/ranking/engine.py

"""Orders a party's members into a positioned ranking."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from rankup.ranking.scorer import scorer_for
from rankup.ranking.types import MemberStat, RankedMember
from rankup.schemas.common import Game


class RankingEngine:
    """Ranks members of one game's party by their rank score."""

    def __init__(self, game: Game):
        self._scorer = scorer_for(game)

    def rank(self, members: Iterable[MemberStat]) -> list[RankedMember]:
        """
        Sort members by score (highest first) and assign 1-based positions.

        ``sorted`` is stable, so members with equal scores keep the order they
        were given in. Tie-breaks are therefore deterministic for a given
        membership order.
        """
        scored = [
            (self._scorer.score(m.rank_label, m.primary_metric), m) for m in members
        ]
        ordered = sorted(scored, key=lambda pair: pair[0], reverse=True)
        return [
            RankedMember.from_stat(stat, score=value, position=index + 1)
            for index, (value, stat) in enumerate(ordered)
        ]


def rank_members(game: Game, members: Sequence[MemberStat]) -> list[RankedMember]:
    """Convenience wrapper around ``RankingEngine(game).rank``."""
    return RankingEngine(game).rank(members)
