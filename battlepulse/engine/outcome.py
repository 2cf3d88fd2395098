"""
battlepulse.engine.outcome — Winner Resolution & Pool Sizing
=============================================================

Decides who won a battle and how large the payout pool is.

Pool formula (one formula for every mode):

* wager mode (``wager_amount > 0``): ``wager_amount × participant_count``
* rate mode: ``lead × points_per_rep × loser_count``

In a two-person duel the rate pool is simply ``lead × points_per_rep``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from battlepulse.database.models import BattleMode
from battlepulse.engine.tally import Tally, group_successes

__all__ = ["Outcome", "payout_pool", "resolve_outcome"]


@dataclass(frozen=True, slots=True)
class Outcome:
    """Result of winner resolution.

    ``winners`` is empty on a tie.  ``scores`` holds per-participant
    successes for duels and per-group sums for teams/lanes.
    """

    winners: frozenset[str]
    lead: int
    scores: tuple[int, ...] = field(default_factory=tuple)

    @property
    def is_tie(self) -> bool:
        return not self.winners


def _top_two(scores: Sequence[int]) -> tuple[int, int]:
    ranked = sorted(scores, reverse=True)
    top = ranked[0] if ranked else 0
    second = ranked[1] if len(ranked) > 1 else 0
    return top, second


def resolve_outcome(
    mode: BattleMode | str,
    tallies: Mapping[str, Tally],
    participant_ids: Sequence[str],
    groups: Sequence[Sequence[str]] = (),
) -> Outcome:
    """Return the winner set and lead for a battle.

    duel
        A sole top scorer wins; a shared top score is a tie.
        ``lead = max(0, top - second)``.
    teams / lanes
        A sole top group wins (all its members); a shared top score is a
        tie.  ``lead`` is the gap between the top two groups (0 with fewer
        than two groups).
    """
    if BattleMode(mode) == BattleMode.DUEL:
        scores = [tallies[pid].successes if pid in tallies else 0 for pid in participant_ids]
        top, second = _top_two(scores)
        leaders = [pid for pid, score in zip(participant_ids, scores) if score == top]
        winners = frozenset(leaders) if len(leaders) == 1 else frozenset()
        return Outcome(winners=winners, lead=max(0, top - second), scores=tuple(scores))

    group_scores = group_successes(tallies, groups)
    if not group_scores:
        return Outcome(winners=frozenset(), lead=0)

    top, second = _top_two(group_scores)
    leading = [group for group, score in zip(groups, group_scores) if score == top]
    winners = frozenset(leading[0]) if len(leading) == 1 else frozenset()
    lead = max(0, top - second) if len(group_scores) >= 2 else 0
    return Outcome(winners=winners, lead=lead, scores=tuple(group_scores))


def payout_pool(
    *,
    wager_amount: int,
    points_per_rep: int,
    lead: int,
    participant_count: int,
    loser_count: int,
) -> int:
    """Size of the pot to be moved from losers to winners."""
    if wager_amount > 0:
        return wager_amount * participant_count
    return lead * points_per_rep * loser_count
