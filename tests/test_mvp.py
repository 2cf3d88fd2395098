"""
tests/test_mvp.py — MVP Selection & Award Tests
================================================
"""

from __future__ import annotations

from battlepulse.database.models import BattleMode
from battlepulse.engine.mvp import amplify, evaluate_mvps, select_mvps
from battlepulse.engine.payout import Payout
from battlepulse.engine.tally import Tally

GROUPS = [["a", "b"], ["c", "d"]]


def _tallies(**pairs: tuple[int, int]) -> dict[str, Tally]:
    """``name=(attempts, successes)``."""
    return {pid: Tally(attempts=att, successes=ok) for pid, (att, ok) in pairs.items()}


class TestAmplify:
    def test_no_bonus(self):
        assert amplify(12, 0) == 12

    def test_applies_percentage(self):
        assert amplify(12, 25) == 15

    def test_percentage_clamped(self):
        assert amplify(10, 250) == 20
        assert amplify(10, -40) == 10


class TestSelectMvps:
    def test_duels_never_have_mvps(self):
        tallies = _tallies(a=(5, 5), b=(5, 1))
        assert select_mvps(BattleMode.DUEL, tallies, []) == []

    def test_best_eligible_member_per_group(self):
        tallies = _tallies(a=(5, 4), b=(5, 3), c=(5, 3), d=(5, 1))
        assert select_mvps(BattleMode.TEAMS, tallies, GROUPS) == ["a", "c"]

    def test_members_tied_at_best_are_all_mvps(self):
        tallies = _tallies(a=(5, 4), b=(5, 4), c=(5, 0), d=(5, 0))
        assert select_mvps(BattleMode.TEAMS, tallies, GROUPS) == ["a", "b"]

    def test_low_success_rate_is_not_eligible(self):
        tallies = _tallies(a=(5, 2), b=(5, 1), c=(5, 3), d=(5, 3))
        assert select_mvps(BattleMode.LANES, tallies, GROUPS) == ["c", "d"]


class TestEvaluateMvps:
    def test_winning_mvp_bonus_is_amplified(self):
        tallies = _tallies(a=(5, 5), b=(5, 1), c=(5, 1), d=(5, 1))
        payout = Payout(deltas={"a": 12, "b": 12, "c": -12, "d": -12})
        result = evaluate_mvps(
            BattleMode.TEAMS, tallies, GROUPS, frozenset({"a", "b"}), payout, {"a": 25},
        )
        assert result.mvp_ids == ("a",)
        award = result.awards[0]
        assert (award.kind, award.base, award.bonus, award.points) == ("bonus", 12, 3, 15)
        assert award.note == "Battle Pulse MVP bonus (+12) (+3 MVP modifier)"
        assert award.category == "manual"

    def test_losing_mvp_refund_is_capped(self):
        tallies = _tallies(a=(5, 5), b=(5, 5), c=(5, 4), d=(5, 0))
        payout = Payout(deltas={"a": 60, "b": 60, "c": -60, "d": -60})
        result = evaluate_mvps(
            BattleMode.LANES, tallies, GROUPS, frozenset({"a", "b"}), payout, {"c": 100},
        )
        refunds = [aw for aw in result.awards if aw.kind == "refund"]
        assert len(refunds) == 1
        assert refunds[0].participant_id == "c"
        assert refunds[0].points == 50
        assert refunds[0].note == "Skill Lanes MVP protection (+50)"
        assert refunds[0].category == "system"

    def test_tie_consolation_is_flat(self):
        tallies = _tallies(a=(5, 3), b=(5, 0), c=(5, 3), d=(5, 0))
        payout = Payout(deltas={pid: 0 for pid in "abcd"})
        result = evaluate_mvps(
            BattleMode.TEAMS, tallies, GROUPS, frozenset(), payout, {"a": 100},
        )
        assert result.mvp_ids == ("a", "c")
        assert [aw.points for aw in result.awards] == [10, 10]
        assert result.deltas() == {"a": 10, "c": 10}

    def test_no_mvps_no_awards(self):
        tallies = _tallies(a=(5, 0), b=(5, 0), c=(5, 0), d=(5, 0))
        payout = Payout(deltas={pid: 0 for pid in "abcd"})
        result = evaluate_mvps(BattleMode.TEAMS, tallies, GROUPS, frozenset(), payout, {})
        assert result.mvp_ids == ()
        assert result.awards == ()
