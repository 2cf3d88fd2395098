"""
tests/test_tally.py — Attempt Aggregation Tests
================================================
Per-participant tallies, completion checks and the team partition.
"""

from __future__ import annotations

from battlepulse.database.models import BattleMode
from battlepulse.engine.tally import (
    AttemptEvent,
    group_successes,
    halves_split,
    is_complete,
    missing_attempts,
    resolve_groups,
    tally_attempts,
)


def _events(*pairs: tuple[str, bool]) -> list[AttemptEvent]:
    return [AttemptEvent(participant_id=pid, success=ok) for pid, ok in pairs]


class TestTallyAttempts:
    def test_counts_attempts_and_successes(self):
        tallies = tally_attempts(
            _events(("a", True), ("a", False), ("b", True), ("a", True)),
            ["a", "b"],
        )
        assert (tallies["a"].attempts, tallies["a"].successes) == (3, 2)
        assert (tallies["b"].attempts, tallies["b"].successes) == (1, 1)

    def test_participant_without_events_gets_zero_tally(self):
        tallies = tally_attempts(_events(("a", True)), ["a", "b"])
        assert tallies["b"].attempts == 0
        assert tallies["b"].successes == 0
        assert tallies["b"].success_rate == 0.0

    def test_events_for_outsiders_are_ignored(self):
        tallies = tally_attempts(_events(("x", True), ("a", False)), ["a"])
        assert set(tallies) == {"a"}
        assert tallies["a"].attempts == 1

    def test_success_rate(self):
        tallies = tally_attempts(
            _events(("a", True), ("a", True), ("a", False), ("a", True), ("a", False)),
            ["a"],
        )
        assert tallies["a"].success_rate == 0.6

    def test_events_past_target_are_ignored(self):
        tallies = tally_attempts(
            _events(("a", False), ("a", True), ("a", True), ("b", True)),
            ["a", "b"],
            target=2,
        )
        assert (tallies["a"].attempts, tallies["a"].successes) == (2, 1)
        assert (tallies["b"].attempts, tallies["b"].successes) == (1, 1)


class TestCompletion:
    def test_complete_when_everyone_reaches_target(self):
        tallies = tally_attempts(_events(("a", True), ("b", False)), ["a", "b"])
        assert is_complete(tallies, ["a", "b"], 1)

    def test_incomplete_reports_missing_attempts(self):
        tallies = tally_attempts(_events(("a", True), ("a", True), ("b", False)), ["a", "b"])
        assert not is_complete(tallies, ["a", "b"], 3)
        assert missing_attempts(tallies, ["a", "b"], 3) == {"a": 1, "b": 2}


class TestGroups:
    def test_duel_has_no_groups(self):
        assert resolve_groups(BattleMode.DUEL, ["a", "b"], [["a"], ["b"]]) == []

    def test_halves_split_puts_extra_member_first(self):
        assert halves_split(["a", "b", "c"]) == [["a", "b"], ["c"]]
        assert halves_split(["a", "b", "c", "d"]) == [["a", "b"], ["c", "d"]]

    def test_halves_split_of_one_drops_empty_group(self):
        assert halves_split(["a"]) == [["a"]]

    def test_teams_use_explicit_partition(self):
        groups = resolve_groups("teams", ["a", "b", "c"], [["a"], ["b"], ["c"]])
        assert groups == [["a"], ["b"], ["c"]]

    def test_lanes_keep_first_two_teams(self):
        groups = resolve_groups("lanes", ["a", "b", "c", "d", "e"], [["a", "b"], ["c", "d"], ["e"]])
        assert groups == [["a", "b"], ["c", "d"]]

    def test_falls_back_to_halves_without_two_teams(self):
        groups = resolve_groups("teams", ["a", "b", "c", "d"], [["a", "b", "c", "d"]])
        assert groups == [["a", "b"], ["c", "d"]]

    def test_non_participants_dropped_from_teams(self):
        groups = resolve_groups("teams", ["a", "b"], [["a", "zz"], ["b"]])
        assert groups == [["a"], ["b"]]

    def test_group_successes_sum_members(self):
        tallies = tally_attempts(
            _events(("a", True), ("b", True), ("b", True), ("c", False)),
            ["a", "b", "c"],
        )
        assert group_successes(tallies, [["a", "b"], ["c"]]) == [3, 0]
