"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of battlepulse.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite renders JSONB as TEXT; the JSON bind/result processing still applies.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from battlepulse.database.models import Base  # noqa: E402
from battlepulse.database.seed import seed_default_settings  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Battle Pulse tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used by ``run_db``).  Default
    settings are seeded as on a real startup.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    seed_default_settings(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


def make_token(sub: str = "coach-1", roles: list[str] | None = None) -> str:
    """Create an operator JWT.  Usable from any test module."""
    import jwt

    from battlepulse.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "roles": roles if roles is not None else ["coach"]},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


@pytest.fixture
def token_factory():
    """Factory fixture: ``token_factory(sub=..., roles=[...])``."""
    return make_token


@pytest.fixture
def operator_token():
    return make_token()


@pytest.fixture
def admin_token():
    return make_token(sub="admin-1", roles=["admin"])


@pytest.fixture
def client(db_engine):
    """FastAPI TestClient bound to the in-memory database.

    Overrides are keyed on the dependency objects the routers captured, so
    they still apply after ``battlepulse.api.deps`` has been reloaded.
    """
    from fastapi.testclient import TestClient

    from battlepulse.api.main import app
    from battlepulse.api.routes import battles, settings
    from battlepulse.config import BattlePulseConfig

    cfg = BattlePulseConfig(dojo_name="Test Dojo")
    for module in (battles, settings):
        app.dependency_overrides[module.get_engine] = lambda: db_engine
    app.dependency_overrides[battles.get_config] = lambda: cfg

    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
