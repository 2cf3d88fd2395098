"""
battlepulse.engine.mvp — MVP Selection & Awards
================================================

Picks each group's MVP(s) in teams/lanes battles and prices their awards
on top of the base win/loss transfer.  Duels never award MVPs.

Award rules:

* winning-side MVP → bonus equal to their net win, amplified by the avatar
  bonus percentage: ``round(base * (1 + pct / 100))``
* losing-side MVP  → refund of their debit, capped at ``refund_cap``,
  never amplified
* tie (no winners) → flat ``tie_award`` consolation, never amplified

Pure functions — no DB I/O.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from battlepulse.constants import (
    MVP_CATEGORY,
    MVP_MIN_SUCCESS_RATE,
    MVP_REFUND_CAP,
    MVP_TIE_AWARD,
    note_prefix,
    signed,
)
from battlepulse.database.models import BattleMode
from battlepulse.engine.payout import Payout
from battlepulse.engine.tally import Tally

__all__ = ["MvpAward", "MvpResult", "amplify", "evaluate_mvps", "select_mvps"]


@dataclass(frozen=True, slots=True)
class MvpAward:
    """A single MVP ledger award.

    ``kind`` is one of ``"bonus"``, ``"refund"`` or ``"tie"``.
    ``points == base + bonus``; ``bonus`` is the avatar modifier component.
    """

    participant_id: str
    kind: str
    base: int
    bonus: int
    note: str
    category: str
    bonus_pct: int = 0

    @property
    def points(self) -> int:
        return self.base + self.bonus


@dataclass(frozen=True, slots=True)
class MvpResult:
    mvp_ids: tuple[str, ...] = ()
    awards: tuple[MvpAward, ...] = field(default_factory=tuple)

    def deltas(self) -> dict[str, int]:
        out: dict[str, int] = {}
        for award in self.awards:
            out[award.participant_id] = out.get(award.participant_id, 0) + award.points
        return out


def amplify(base: int, bonus_pct: int) -> int:
    """``round(base * (1 + pct/100))`` with pct clamped to [0, 100]."""
    pct = min(100, max(0, int(bonus_pct)))
    return round(base * (1 + pct / 100))


def select_mvps(
    mode: BattleMode | str,
    tallies: Mapping[str, Tally],
    groups: Sequence[Sequence[str]],
    *,
    min_success_rate: float = MVP_MIN_SUCCESS_RATE,
) -> list[str]:
    """Return MVP ids, group by group.

    Within a group, members with ``success_rate >= min_success_rate`` and at
    least one success are eligible; every eligible member tied at the
    group's best success count is an MVP.
    """
    if BattleMode(mode) == BattleMode.DUEL:
        return []

    mvps: list[str] = []
    for group in groups:
        eligible = [
            pid for pid in group
            if pid in tallies
            and tallies[pid].successes > 0
            and tallies[pid].success_rate >= min_success_rate
        ]
        if not eligible:
            continue
        best = max(tallies[pid].successes for pid in eligible)
        mvps.extend(pid for pid in eligible if tallies[pid].successes == best)
    return mvps


def evaluate_mvps(
    mode: BattleMode | str,
    tallies: Mapping[str, Tally],
    groups: Sequence[Sequence[str]],
    winners: frozenset[str],
    payout: Payout,
    bonus_pct: Mapping[str, int],
    *,
    min_success_rate: float = MVP_MIN_SUCCESS_RATE,
    refund_cap: int = MVP_REFUND_CAP,
    tie_award: int = MVP_TIE_AWARD,
) -> MvpResult:
    """Select MVPs and price their awards against the base payout."""
    mode = BattleMode(mode)
    mvp_ids = select_mvps(mode, tallies, groups, min_success_rate=min_success_rate)
    if not mvp_ids:
        return MvpResult()

    prefix = note_prefix(mode)
    category = MVP_CATEGORY[mode].value
    awards: list[MvpAward] = []

    for pid in mvp_ids:
        if not winners:
            if tie_award > 0:
                awards.append(MvpAward(
                    participant_id=pid,
                    kind="tie",
                    base=tie_award,
                    bonus=0,
                    note=f"{prefix} MVP tie ({signed(tie_award)})",
                    category=category,
                ))
            continue

        if pid in winners:
            base = max(0, payout.deltas.get(pid, 0))
            if base <= 0:
                continue
            pct = min(100, max(0, int(bonus_pct.get(pid, 0))))
            bonus = amplify(base, pct) - base
            note = f"{prefix} MVP bonus ({signed(base)})"
            if bonus > 0:
                note = f"{note} ({signed(bonus)} MVP modifier)"
            awards.append(MvpAward(
                participant_id=pid,
                kind="bonus",
                base=base,
                bonus=bonus,
                note=note,
                category=category,
                bonus_pct=pct,
            ))
            continue

        loss = max(0, -payout.deltas.get(pid, 0))
        refund = min(loss, refund_cap)
        if refund > 0:
            awards.append(MvpAward(
                participant_id=pid,
                kind="refund",
                base=refund,
                bonus=0,
                note=f"{prefix} MVP protection ({signed(refund)})",
                category=category,
            ))

    return MvpResult(mvp_ids=tuple(mvp_ids), awards=tuple(awards))
