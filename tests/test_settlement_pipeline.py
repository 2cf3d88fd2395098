"""
tests/test_settlement_pipeline.py — Settlement Pipeline Tests
==============================================================
End-to-end runs of the pure ``plan_settlement`` pipeline: worked examples,
ledger wording, suppression, and the rules that feed it.

No database required.
"""

from __future__ import annotations

from battlepulse.database.models import BattleMode
from battlepulse.engine.settlement import BattleSnapshot, SettlementRules, plan_settlement
from battlepulse.engine.tally import AttemptEvent


def _reps(pid: str, successes: int, attempts: int) -> list[AttemptEvent]:
    return [
        AttemptEvent(participant_id=pid, success=i < successes)
        for i in range(attempts)
    ]


def _battle(mode=BattleMode.DUEL, ids=("a", "b"), **kw) -> BattleSnapshot:
    return BattleSnapshot(
        battle_id="battle-1",
        mode=mode,
        participant_ids=tuple(ids),
        repetition_target=kw.pop("repetition_target", 5),
        **kw,
    )


BALANCES = {"a": 100, "b": 100, "c": 100, "d": 100}


class TestDuel:
    def test_rate_mode_worked_example(self):
        battle = _battle(points_per_rep=5)
        events = _reps("a", 4, 5) + _reps("b", 2, 5)
        plan = plan_settlement(battle, events, BALANCES)

        assert plan.complete
        assert plan.winner_id == "a"
        assert plan.outcome.lead == 2
        assert plan.pool == 10
        assert plan.total_deltas == {"a": 10, "b": -10}
        notes = {line.participant_id: line.note for line in plan.ledger_lines}
        assert notes == {"a": "Battle Pulse win (+10)", "b": "Battle Pulse loss (-10)"}

    def test_points_per_rep_floor_applies(self):
        battle = _battle(points_per_rep=1)
        events = _reps("a", 3, 5) + _reps("b", 2, 5)
        plan = plan_settlement(battle, events, BALANCES)
        assert plan.pool == 3
        assert plan.total_deltas == {"a": 3, "b": -3}

    def test_tie_has_no_winner_id_and_no_ledger(self):
        battle = _battle()
        events = _reps("a", 3, 5) + _reps("b", 3, 5)
        plan = plan_settlement(battle, events, BALANCES)
        assert plan.winner_id is None
        assert plan.ledger_lines == ()
        assert plan.total_deltas == {"a": 0, "b": 0}

    def test_four_way_wager_worked_example(self):
        ids = ("a", "b", "c", "d")
        battle = _battle(ids=ids, wager_amount=20)
        events = _reps("a", 5, 5) + _reps("b", 3, 5) + _reps("c", 2, 5) + _reps("d", 1, 5)
        plan = plan_settlement(battle, events, BALANCES)

        assert plan.pool == 80
        assert plan.total_deltas == {"a": 60, "b": -20, "c": -20, "d": -20}
        assert sum(plan.total_deltas.values()) == 0

    def test_incomplete_battle_is_flagged_not_rejected(self):
        battle = _battle()
        plan = plan_settlement(battle, _reps("a", 2, 2), BALANCES)
        assert not plan.complete
        assert plan.winner_id == "a"


class TestTeams:
    def test_tie_moves_nothing(self):
        ids = ("a", "b", "c", "d")
        battle = _battle(mode=BattleMode.TEAMS, ids=ids)
        events = _reps("a", 2, 5) + _reps("b", 1, 5) + _reps("c", 1, 5) + _reps("d", 2, 5)
        plan = plan_settlement(battle, events, BALANCES)

        assert plan.outcome.is_tie
        assert plan.transfer_deltas == {pid: 0 for pid in ids}
        assert plan.total_deltas == {pid: 0 for pid in ids}
        assert plan.mvp.mvp_ids == ()

    def test_tie_with_eligible_mvps_pays_consolation(self):
        ids = ("a", "b", "c", "d")
        battle = _battle(mode=BattleMode.TEAMS, ids=ids)
        events = _reps("a", 3, 5) + _reps("b", 0, 5) + _reps("c", 3, 5) + _reps("d", 0, 5)
        plan = plan_settlement(battle, events, BALANCES)

        assert plan.transfer_deltas == {pid: 0 for pid in ids}
        assert plan.total_deltas == {"a": 10, "b": 0, "c": 10, "d": 0}

    def test_halves_split_when_no_teams_given(self):
        ids = ("a", "b", "c", "d")
        battle = _battle(mode=BattleMode.TEAMS, ids=ids)
        plan = plan_settlement(battle, [], BALANCES)
        assert plan.groups == [["a", "b"], ["c", "d"]]


class TestLanes:
    def _plan(self, **kw):
        ids = ("a", "b", "c", "d")
        battle = _battle(
            mode=BattleMode.LANES,
            ids=ids,
            team_ids=(("a", "b"), ("c", "d")),
            points_per_rep=5,
        )
        events = _reps("a", 5, 5) + _reps("b", 3, 5) + _reps("c", 1, 5) + _reps("d", 1, 5)
        return plan_settlement(battle, events, BALANCES, {"a": 20}, **kw)

    def test_winning_mvp_bonus_with_avatar_modifier(self):
        plan = self._plan()

        assert plan.pool == 60
        assert plan.transfer_deltas == {"a": 30, "b": 30, "c": -30, "d": -30}
        assert plan.mvp.mvp_ids == ("a",)
        assert plan.total_deltas == {"a": 66, "b": 30, "c": -30, "d": -30}

        mvp_line = plan.ledger_lines[-1]
        assert mvp_line.note == "Skill Lanes MVP bonus (+30) (+6 MVP modifier)"
        assert mvp_line.category == "system"
        assert mvp_line.points_base == 30
        assert mvp_line.points_multiplier == 1.2

    def test_lanes_never_set_winner_id(self):
        assert self._plan().winner_id is None

    def test_suppressed_plan_keeps_outcome_but_moves_nothing(self):
        plan = self._plan(suppress_effects=True)
        assert plan.suppressed
        assert plan.winners == frozenset({"a", "b"})
        assert plan.outcome.lead == 6
        assert plan.ledger_lines == ()
        assert plan.mvp.mvp_ids == ()
        assert set(plan.total_deltas.values()) == {0}


class TestRules:
    def test_custom_tie_award(self):
        ids = ("a", "b", "c", "d")
        battle = _battle(mode=BattleMode.TEAMS, ids=ids)
        events = _reps("a", 3, 5) + _reps("b", 0, 5) + _reps("c", 3, 5) + _reps("d", 0, 5)
        plan = plan_settlement(battle, events, BALANCES, rules=SettlementRules(mvp_tie_award=25))
        assert plan.total_deltas["a"] == 25

    def test_same_inputs_same_plan(self):
        battle = _battle(points_per_rep=4)
        events = _reps("a", 5, 5) + _reps("b", 1, 5)
        first = plan_settlement(battle, events, BALANCES)
        second = plan_settlement(battle, events, BALANCES)
        assert first.ledger_lines == second.ledger_lines
