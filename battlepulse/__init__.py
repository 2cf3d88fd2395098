"""
Battle Pulse — Repetition Battles & Wager Settlement for Dojo Dashboards
=========================================================================
Coaches log each rep of a skill battle as a hit or a miss; once every
contestant has reached the target, the battle is settled exactly once:
winners are decided, points move zero-sum from losers to winners, MVPs
are rewarded, and a before/after snapshot is kept for audit.

Package layout::

    battlepulse/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Ledger wording + default tuning values
    ├── errors.py          # Domain exceptions
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # ORM models (battles, attempts, ledger, …)
    │   └── seed.py        # Default settings seeder
    ├── engine/
    │   ├── tally.py       # Attempt aggregation + group partition
    │   ├── outcome.py     # Winner resolution + pool size
    │   ├── payout.py      # Zero-sum debit/credit apportionment
    │   ├── mvp.py         # MVP selection + awards
    │   ├── anti_gaming.py # Rep-farming check
    │   └── settlement.py  # The shared settlement pipeline
    ├── services/
    │   ├── battle_service.py      # Create battle, log attempts, state
    │   ├── settlement_service.py  # Commit + preview
    │   ├── ledger_service.py      # Balances, ledger, MVP rows
    │   └── settings_service.py    # Settings CRUD + rules loader
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT operator identity, engine, config
        └── routes/        # Battle + settings endpoints
"""

__version__ = "0.1.0"
