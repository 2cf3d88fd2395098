"""
tests/test_outcome.py — Winner Resolution & Pool Tests
=======================================================
"""

from __future__ import annotations

from battlepulse.database.models import BattleMode
from battlepulse.engine.outcome import payout_pool, resolve_outcome
from battlepulse.engine.tally import Tally


def _tallies(**successes: int) -> dict[str, Tally]:
    return {pid: Tally(attempts=max(n, 1), successes=n) for pid, n in successes.items()}


class TestDuelOutcome:
    def test_sole_top_scorer_wins(self):
        outcome = resolve_outcome(BattleMode.DUEL, _tallies(a=4, b=2), ["a", "b"])
        assert outcome.winners == frozenset({"a"})
        assert outcome.lead == 2
        assert not outcome.is_tie

    def test_shared_top_score_is_tie(self):
        outcome = resolve_outcome(BattleMode.DUEL, _tallies(a=3, b=3, c=1), ["a", "b", "c"])
        assert outcome.is_tie
        assert outcome.winners == frozenset()
        assert outcome.lead == 0

    def test_lead_is_gap_to_second(self):
        outcome = resolve_outcome(BattleMode.DUEL, _tallies(a=1, b=5, c=3), ["a", "b", "c"])
        assert outcome.winners == frozenset({"b"})
        assert outcome.lead == 2
        assert outcome.scores == (1, 5, 3)


class TestGroupOutcome:
    def test_top_group_members_all_win(self):
        outcome = resolve_outcome(
            BattleMode.TEAMS,
            _tallies(a=3, b=2, c=1, d=1),
            ["a", "b", "c", "d"],
            [["a", "b"], ["c", "d"]],
        )
        assert outcome.winners == frozenset({"a", "b"})
        assert outcome.lead == 3

    def test_equal_groups_tie(self):
        outcome = resolve_outcome(
            BattleMode.LANES,
            _tallies(a=3, b=2, c=4, d=1),
            ["a", "b", "c", "d"],
            [["a", "b"], ["c", "d"]],
        )
        assert outcome.is_tie
        assert outcome.lead == 0

    def test_no_groups_is_tie(self):
        outcome = resolve_outcome(BattleMode.TEAMS, _tallies(a=1), ["a"], [])
        assert outcome.is_tie


class TestPayoutPool:
    def test_rate_mode_duel(self):
        assert payout_pool(
            wager_amount=0, points_per_rep=5, lead=2, participant_count=2, loser_count=1
        ) == 10

    def test_rate_mode_scales_with_losers(self):
        assert payout_pool(
            wager_amount=0, points_per_rep=3, lead=4, participant_count=4, loser_count=2
        ) == 24

    def test_wager_mode_ignores_lead(self):
        assert payout_pool(
            wager_amount=20, points_per_rep=5, lead=0, participant_count=4, loser_count=3
        ) == 80

    def test_zero_lead_is_empty_pool(self):
        assert payout_pool(
            wager_amount=0, points_per_rep=5, lead=0, participant_count=2, loser_count=1
        ) == 0
