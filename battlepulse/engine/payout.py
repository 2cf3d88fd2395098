"""
battlepulse.engine.payout — Zero-Sum Payout Apportionment
==========================================================

Splits a battle's pool between losers (debits) and winners (credits).

Remainder policy, used for every split in every mode: floor-divide the
amount among the recipients, then hand the whole integer remainder to the
recipient with the largest current balance (first in participant order on
equal balances).

Guarantees:

* ``sum(deltas) == 0``
* no debit exceeds the participant's balance (balances are clamped at 0)
* no winners, or a pool ``<= 0``, means every delta is 0

This is a PURE module — the same inputs always give the same output, so the
preview and the real commit agree.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

__all__ = ["Payout", "apportion", "compute_payout", "largest_balance"]


@dataclass(frozen=True, slots=True)
class Payout:
    """Signed transfer per participant plus the debit/credit breakdown.

    ``debits`` are positive amounts taken from each participant (the loser
    debit in rate mode, the stake in wager mode); ``credits`` are positive
    gross amounts paid to winners.  ``deltas = credits - debits``.
    """

    deltas: dict[str, int]
    debits: dict[str, int] = field(default_factory=dict)
    credits: dict[str, int] = field(default_factory=dict)
    collected: int = 0

    @property
    def has_transfer(self) -> bool:
        return any(self.deltas.values())


def _balance(balances: Mapping[str, int], pid: str) -> int:
    return max(0, int(balances.get(pid, 0)))


def largest_balance(recipients: Sequence[str], balances: Mapping[str, int]) -> str:
    """The recipient that absorbs the remainder.  Ties → earliest in order."""
    best = recipients[0]
    for pid in recipients[1:]:
        if _balance(balances, pid) > _balance(balances, best):
            best = pid
    return best


def apportion(
    amount: int, recipients: Sequence[str], balances: Mapping[str, int]
) -> dict[str, int]:
    """Largest-remainder split of *amount* among *recipients*.

    >>> apportion(10, ["a", "b", "c"], {"a": 5, "b": 9, "c": 1})
    {'a': 3, 'b': 4, 'c': 3}
    """
    if not recipients or amount <= 0:
        return {pid: 0 for pid in recipients}
    share, remainder = divmod(amount, len(recipients))
    shares = {pid: share for pid in recipients}
    if remainder:
        shares[largest_balance(recipients, balances)] += remainder
    return shares


def _rate_mode(
    pool: int,
    participant_ids: Sequence[str],
    winners: Sequence[str],
    balances: Mapping[str, int],
) -> Payout:
    losers = [pid for pid in participant_ids if pid not in winners]
    fair = apportion(pool, losers, balances)
    debits = {pid: min(fair[pid], _balance(balances, pid)) for pid in losers}
    collected = sum(debits.values())
    credits = apportion(collected, winners, balances)

    deltas = {pid: 0 for pid in participant_ids}
    for pid, amount in debits.items():
        deltas[pid] -= amount
    for pid, amount in credits.items():
        deltas[pid] += amount
    return Payout(
        deltas=deltas,
        debits={pid: v for pid, v in debits.items() if v},
        credits={pid: v for pid, v in credits.items() if v},
        collected=collected,
    )


def _wager_mode(
    wager_amount: int,
    participant_ids: Sequence[str],
    winners: Sequence[str],
    balances: Mapping[str, int],
) -> Payout:
    # Everyone stakes the flat wager (capped by what they hold); winners
    # split the collected stakes and net out their own.
    stakes = {pid: min(wager_amount, _balance(balances, pid)) for pid in participant_ids}
    collected = sum(stakes.values())
    credits = apportion(collected, winners, balances)

    deltas = {pid: credits.get(pid, 0) - stakes[pid] for pid in participant_ids}
    return Payout(
        deltas=deltas,
        debits={pid: v for pid, v in stakes.items() if v},
        credits={pid: v for pid, v in credits.items() if v},
        collected=collected,
    )


def compute_payout(
    *,
    pool: int,
    participant_ids: Sequence[str],
    winners: Sequence[str] | frozenset[str],
    balances: Mapping[str, int],
    wager_amount: int = 0,
) -> Payout:
    """Compute signed point deltas for every participant.

    Parameters
    ----------
    pool : pot size from :func:`battlepulse.engine.outcome.payout_pool`
    participant_ids : all participants, in battle order (tie-break order)
    winners : winner set; empty on a tie
    balances : current balance per participant (missing → 0)
    wager_amount : flat stake; 0 selects rate mode
    """
    ordered_winners = [pid for pid in participant_ids if pid in winners]
    if not ordered_winners or pool <= 0:
        return Payout(deltas={pid: 0 for pid in participant_ids})

    if wager_amount > 0:
        return _wager_mode(wager_amount, participant_ids, ordered_winners, balances)
    return _rate_mode(pool, participant_ids, ordered_winners, balances)
