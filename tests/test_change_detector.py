# tests/test_change_detector.py

"""Tests for turning ranking changes into notification events."""

from rankup.ranking.change_detector import ChangeDetector, diff
from rankup.ranking.types import Direction, RankedMember


def board(*user_ids: str) -> list[RankedMember]:
    """A ranking with positions following argument order."""
    return [
        RankedMember(
            user_id=user_id,
            display_name=user_id.upper(),
            avatar_ref="",
            rank_label="GOLD IV",
            primary_metric=0.0,
            score=1000 - index,
            position=index + 1,
        )
        for index, user_id in enumerate(user_ids)
    ]


def by_subject(events):
    return {e.subject_user_id: e for e in events}


class TestBootstrap:
    def test_first_ranking_announces_only_the_top_three(self):
        # ACT
        events = diff(None, board("a", "b", "c", "d", "e"))

        # ASSERT
        assert len(events) == 3
        assert [e.new_rank for e in events] == [1, 2, 3]
        assert all(e.direction == Direction.NEW_ENTRY for e in events)
        assert all(e.recipient_user_id == e.subject_user_id for e in events)
        assert all(e.old_rank is None for e in events)

    def test_small_party_announces_everyone(self):
        events = diff(None, board("a", "b"))

        assert [e.subject_user_id for e in events] == ["a", "b"]

    def test_empty_party_produces_nothing(self):
        assert diff(None, []) == []


class TestSteadyState:
    def test_identical_rankings_produce_nothing(self):
        assert diff(board("a", "b", "c", "d"), board("a", "b", "c", "d")) == []

    def test_movement_below_the_top_is_ignored(self):
        events = diff(board("a", "b", "c", "d", "e"), board("a", "b", "c", "e", "d"))

        assert events == []

    def test_overtake_notifies_mover_and_overtaken_once_each(self):
        # ARRANGE: c passes b for second place
        old = board("a", "b", "c", "d")
        new = board("a", "c", "b", "d")

        # ACT
        events = diff(old, new)

        # ASSERT
        assert len(events) == 2
        events = by_subject(events)

        assert events["c"].direction == Direction.MOVED_UP
        assert events["c"].recipient_user_id == "c"
        assert (events["c"].old_rank, events["c"].new_rank) == (3, 2)

        assert events["b"].direction == Direction.OVERTAKEN_SELF
        assert events["b"].recipient_user_id == "b"
        assert (events["b"].old_rank, events["b"].new_rank) == (2, 3)
        assert events["b"].cause_user_id == "c"
        assert events["b"].cause_display_name == "C"

    def test_jump_to_first_overtakes_everyone_passed(self):
        events = by_subject(diff(board("a", "b", "c"), board("c", "a", "b")))

        assert set(events) == {"a", "b", "c"}
        assert events["c"].direction == Direction.MOVED_UP
        assert events["a"].cause_user_id == "c"
        assert events["b"].cause_user_id == "c"
        assert events["a"].new_rank == 2
        assert events["b"].new_rank == 3

    def test_dropping_out_of_the_top_is_reported(self):
        events = by_subject(diff(board("a", "b", "c", "d"), board("a", "b", "d", "c")))

        assert events["c"].direction == Direction.OVERTAKEN_SELF
        assert (events["c"].old_rank, events["c"].new_rank) == (3, 4)
        assert events["c"].cause_user_id == "d"
        assert events["d"].direction == Direction.MOVED_UP

    def test_new_member_in_the_top_is_a_new_entry(self):
        events = by_subject(diff(board("a", "b", "c"), board("n", "a", "b", "c")))

        assert events["n"].direction == Direction.NEW_ENTRY
        assert events["n"].new_rank == 1
        # Everyone pushed down had a position within the top before.
        dropped = {
            s for s, e in events.items() if e.direction == Direction.OVERTAKEN_SELF
        }
        assert dropped == {"a", "b", "c"}
        assert events["c"].new_rank == 4

    def test_new_member_below_the_top_is_silent(self):
        events = diff(board("a", "b", "c"), board("a", "b", "c", "n"))

        assert events == []

    def test_member_leaving_moves_others_up(self):
        events = by_subject(diff(board("a", "b", "c", "d"), board("a", "c", "d")))

        assert set(events) == {"c", "d"}
        assert all(e.direction == Direction.MOVED_UP for e in events.values())

    def test_no_duplicate_recipient_subject_rank(self):
        old = board("a", "b", "c", "d", "e")
        new = board("e", "d", "c", "b", "a")

        events = diff(old, new)

        keys = [e.dedup_key for e in events]
        assert len(keys) == len(set(keys))


def test_events_carry_party_context():
    detector = ChangeDetector(party_id=7, party_name="Squad")

    events = detector.diff(None, board("a"))

    assert events[0].party_id == 7
    assert events[0].party_name == "Squad"
