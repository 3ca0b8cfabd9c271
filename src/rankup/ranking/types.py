# src/rankup/ranking/types.py

"""Value types passed between the scorer, ranking engine and change detector."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

UNRANKED_LABEL = "Unranked"

# Only movement into, out of, or within these positions notifies anyone.
TOP_POSITIONS = 3


@dataclass(frozen=True)
class MemberStat:
    """One party member's competitive standing for a single game."""

    user_id: str
    display_name: str
    avatar_ref: str = ""
    rank_label: str = UNRANKED_LABEL
    primary_metric: float = 0.0

    @classmethod
    def unranked(
        cls, user_id: str, display_name: str, avatar_ref: str = ""
    ) -> "MemberStat":
        """Neutral placeholder for a member whose stats are unobtainable."""
        return cls(user_id=user_id, display_name=display_name, avatar_ref=avatar_ref)


@dataclass(frozen=True)
class RankedMember:
    """A MemberStat with its computed score and 1-based position."""

    user_id: str
    display_name: str
    avatar_ref: str
    rank_label: str
    primary_metric: float
    score: int
    position: int

    @classmethod
    def from_stat(cls, stat: MemberStat, score: int, position: int) -> "RankedMember":
        return cls(
            user_id=stat.user_id,
            display_name=stat.display_name,
            avatar_ref=stat.avatar_ref,
            rank_label=stat.rank_label,
            primary_metric=stat.primary_metric,
            score=score,
            position=position,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RankedMember":
        return cls(
            user_id=str(data["user_id"]),
            display_name=data.get("display_name", ""),
            avatar_ref=data.get("avatar_ref", ""),
            rank_label=data.get("rank_label", UNRANKED_LABEL),
            primary_metric=float(data.get("primary_metric", 0.0)),
            score=int(data.get("score", 0)),
            position=int(data["position"]),
        )


@dataclass(frozen=True)
class RankingSnapshot:
    """A party's ranking at one point in time.

    Snapshots are replaced wholesale, never patched, and are handed to the
    change detector by value.
    """

    party_id: int
    entries: tuple[RankedMember, ...]
    taken_at: datetime

    @property
    def top3(self) -> tuple[RankedMember, ...]:
        return tuple(m for m in self.entries if m.position <= TOP_POSITIONS)


class Direction(str, Enum):
    """Why a notification event was produced."""

    NEW_ENTRY = "new-entry"
    MOVED_UP = "moved-up"
    OVERTAKEN_SELF = "overtaken-self"


@dataclass(frozen=True)
class NotificationEvent:
    """A rank change worth telling ``recipient_user_id`` about.

    ``subject_*`` is the member whose position changed; ``cause_*`` is set when
    the change was an overtake and names the member who moved past them.
    """

    recipient_user_id: str
    subject_user_id: str
    subject_display_name: str
    new_rank: int
    direction: Direction
    old_rank: int | None = None
    cause_user_id: str | None = None
    cause_display_name: str | None = None
    party_id: int | None = None
    party_name: str | None = None

    @property
    def dedup_key(self) -> tuple[str, str, int]:
        return (self.recipient_user_id, self.subject_user_id, self.new_rank)


@dataclass
class DiffResult:
    """Events from one diff pass plus the keys already emitted."""

    events: list[NotificationEvent] = field(default_factory=list)
    seen: set[tuple[str, str, int]] = field(default_factory=set)

    def add(self, event: NotificationEvent) -> bool:
        """Append ``event`` unless its dedup key was already produced."""
        if event.dedup_key in self.seen:
            return False
        self.seen.add(event.dedup_key)
        self.events.append(event)
        return True
