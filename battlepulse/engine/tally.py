"""
battlepulse.engine.tally — Attempt Aggregation
===============================================

Turns the raw, time-ordered attempt log of a battle into per-participant
``{attempts, successes}`` tallies, and resolves the group partition used
by teams/lanes battles.

Pure functions — no DB I/O.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from battlepulse.database.models import BattleMode

__all__ = [
    "AttemptEvent",
    "Tally",
    "group_successes",
    "halves_split",
    "is_complete",
    "missing_attempts",
    "resolve_groups",
    "tally_attempts",
]


@dataclass(frozen=True, slots=True)
class AttemptEvent:
    """One logged repetition.  Immutable once recorded."""

    participant_id: str
    success: bool
    occurred_at: datetime = field(default_factory=datetime.now)


@dataclass(slots=True)
class Tally:
    attempts: int = 0
    successes: int = 0

    @property
    def success_rate(self) -> float:
        return self.successes / self.attempts if self.attempts > 0 else 0.0


def tally_attempts(
    events: Iterable[AttemptEvent],
    participant_ids: Sequence[str],
    target: int | None = None,
) -> dict[str, Tally]:
    """Count attempts and successes per participant.

    Every participant gets an entry (``Tally(0, 0)`` if they never logged a
    rep).  Events for ids outside *participant_ids* are ignored, and so is
    anything a participant logged after reaching *target*.
    """
    tallies = {pid: Tally() for pid in participant_ids}
    for event in events:
        tally = tallies.get(event.participant_id)
        if tally is None:
            continue
        if target is not None and tally.attempts >= target:
            continue
        tally.attempts += 1
        if event.success:
            tally.successes += 1
    return tallies


def halves_split(participant_ids: Sequence[str]) -> list[list[str]]:
    """Deterministic two-group fallback: first ``ceil(n/2)`` vs the rest."""
    cut = max(1, math.ceil(len(participant_ids) / 2))
    first = list(participant_ids[:cut])
    second = [pid for pid in participant_ids if pid not in first]
    return [group for group in (first, second) if group]


def resolve_groups(
    mode: BattleMode | str,
    participant_ids: Sequence[str],
    team_ids: Sequence[Sequence[str]] | None = None,
) -> list[list[str]]:
    """Return the group partition for a battle.

    Duels have no groups.  Teams battles use every non-empty explicit team;
    lanes battles always pit exactly two teams.  Without an explicit
    partition (or with fewer than two non-empty teams) the participants are
    split in halves.
    """
    if BattleMode(mode) == BattleMode.DUEL:
        return []

    explicit = [
        [str(pid) for pid in team if str(pid) in participant_ids]
        for team in (team_ids or [])
    ]
    explicit = [team for team in explicit if team]
    if BattleMode(mode) == BattleMode.LANES:
        explicit = explicit[:2]

    if len(explicit) >= 2:
        return explicit
    return halves_split(participant_ids)


def group_successes(
    tallies: Mapping[str, Tally], groups: Sequence[Sequence[str]]
) -> list[int]:
    """Summed successes for each group, in group order."""
    return [
        sum(tallies[pid].successes for pid in group if pid in tallies)
        for group in groups
    ]


def missing_attempts(
    tallies: Mapping[str, Tally], participant_ids: Sequence[str], target: int
) -> dict[str, int]:
    """Attempts still owed per participant (only those short of *target*)."""
    missing: dict[str, int] = {}
    for pid in participant_ids:
        done = tallies[pid].attempts if pid in tallies else 0
        if done < target:
            missing[pid] = target - done
    return missing


def is_complete(
    tallies: Mapping[str, Tally], participant_ids: Sequence[str], target: int
) -> bool:
    """True once every participant has ``attempts >= target``."""
    return not missing_attempts(tallies, participant_ids, target)
