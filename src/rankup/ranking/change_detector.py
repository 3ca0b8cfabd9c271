# src/rankup/ranking/change_detector.py

"""
Detects which leaderboard movements are worth a notification.

Only the top of the board matters: a member whose position was worse than
TOP_POSITIONS both before and after a recomputation notifies nobody. Inside
that window, every member whose position changed gets exactly one event:

- ``moved-up`` for a member who improved,
- ``overtaken-self`` for a member who dropped, attributed to the member who
  moved past them when that mover is known,
- ``new-entry`` for a member with no previous position who lands in the top.

All comparisons use positions, never scores.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from rankup.ranking.types import (
    TOP_POSITIONS,
    DiffResult,
    Direction,
    NotificationEvent,
    RankedMember,
)

logger = logging.getLogger(__name__)


class ChangeDetector:
    """Compares two consecutive rankings of the same party."""

    def __init__(
        self,
        party_id: int | None = None,
        party_name: str | None = None,
        top_positions: int = TOP_POSITIONS,
    ):
        self._party_id = party_id
        self._party_name = party_name
        self._top = top_positions

    def diff(
        self,
        old_snapshot: Sequence[RankedMember] | None,
        new_snapshot: Sequence[RankedMember],
    ) -> list[NotificationEvent]:
        """
        Return the deduplicated events produced by moving from
        ``old_snapshot`` to ``new_snapshot``.

        With no previous snapshot, only the current top members are announced.
        """
        result = DiffResult()

        if old_snapshot is None:
            for member in new_snapshot:
                if member.position <= self._top:
                    result.add(self._event(member, member, Direction.NEW_ENTRY, None))
            logger.debug(
                "Bootstrap diff",
                extra={"party_id": self._party_id, "events": len(result.events)},
            )
            return result.events

        old_positions = {m.user_id: m.position for m in old_snapshot}
        new_by_user = {m.user_id: m for m in new_snapshot}

        improved: list[RankedMember] = []
        dropped: list[RankedMember] = []

        for member in new_snapshot:
            old_rank = old_positions.get(member.user_id)

            if old_rank is None:
                # First recorded position for this member only.
                if member.position <= self._top:
                    result.add(self._event(member, member, Direction.NEW_ENTRY, None))
                continue

            if old_rank == member.position:
                continue
            if not self._is_relevant(old_rank, member.position):
                continue

            if member.position < old_rank:
                improved.append(member)
            else:
                dropped.append(member)

        # Movers first, so an overtaken member's event names who passed them.
        for mover in improved:
            mover_old = old_positions[mover.user_id]
            result.add(self._event(mover, mover, Direction.MOVED_UP, mover_old))

            for other in old_snapshot:
                if other.user_id == mover.user_id:
                    continue
                current = new_by_user.get(other.user_id)
                if current is None:
                    continue
                if not (
                    other.position < mover_old
                    and current.position >= mover.position
                    and current.position > other.position
                ):
                    continue
                if not self._is_relevant(other.position, current.position):
                    continue
                result.add(
                    self._event(
                        current,
                        current,
                        Direction.OVERTAKEN_SELF,
                        other.position,
                        cause=mover,
                    )
                )

        for member in dropped:
            # Skipped by dedup when a mover's overtake already covered it.
            result.add(
                self._event(
                    member,
                    member,
                    Direction.OVERTAKEN_SELF,
                    old_positions[member.user_id],
                )
            )

        logger.debug(
            "Steady-state diff",
            extra={
                "party_id": self._party_id,
                "improved": len(improved),
                "dropped": len(dropped),
                "events": len(result.events),
            },
        )
        return result.events

    def _is_relevant(self, old_rank: int, new_rank: int) -> bool:
        return old_rank <= self._top or new_rank <= self._top

    def _event(
        self,
        recipient: RankedMember,
        subject: RankedMember,
        direction: Direction,
        old_rank: int | None,
        cause: RankedMember | None = None,
    ) -> NotificationEvent:
        return NotificationEvent(
            recipient_user_id=recipient.user_id,
            subject_user_id=subject.user_id,
            subject_display_name=subject.display_name,
            new_rank=subject.position,
            old_rank=old_rank,
            direction=direction,
            cause_user_id=cause.user_id if cause else None,
            cause_display_name=cause.display_name if cause else None,
            party_id=self._party_id,
            party_name=self._party_name,
        )


def diff(
    old_snapshot: Sequence[RankedMember] | None,
    new_snapshot: Sequence[RankedMember],
) -> list[NotificationEvent]:
    """Diff two rankings without party context on the events."""
    return ChangeDetector().diff(old_snapshot, new_snapshot)
