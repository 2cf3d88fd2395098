"""
battlepulse.config — YAML Configuration Loader
===============================================

Reads ``config.yaml`` for **infrastructure-only** settings (dojo identity,
API port, which operator roles are subject to the rep limit).  Gameplay
tuning (MVP thresholds, wager bounds, anti-gaming window) lives in the
``settings`` database table and is read by
:func:`battlepulse.services.settings_service.load_rules`.

Usage::

    from battlepulse.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.dojo_name)         # "Northside Dojo"
    print(cfg.rate_limited_roles)  # ("skill_user", "skill_pulse")
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import yaml

DEFAULT_RATE_LIMITED_ROLES = ("skill_user", "skill_pulse")


# ---------------------------------------------------------------------------
# Typed settings object — infrastructure/identity only.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BattlePulseConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    dojo_name: str

    # API
    api_port: int = 8000

    # Operators holding any of these roles are checked against the rep limit
    rate_limited_roles: tuple[str, ...] = DEFAULT_RATE_LIMITED_ROLES

    def is_rate_limited(self, roles: Iterable[str] | None) -> bool:
        """True if any of *roles* is subject to the anti-gaming rep limit."""
        return bool(set(roles or ()) & set(self.rate_limited_roles))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> BattlePulseConfig:
    """Read *path* and return a :class:`BattlePulseConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    roles = raw.get("rate_limited_roles")
    return BattlePulseConfig(
        dojo_name=raw["dojo_name"],
        api_port=int(raw.get("api_port", 8000)),
        rate_limited_roles=(
            tuple(str(r) for r in roles) if roles is not None else DEFAULT_RATE_LIMITED_ROLES
        ),
    )
