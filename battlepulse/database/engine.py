"""
battlepulse.database.engine — Engine, Sessions & the Thread Bridge
===================================================================

One PostgreSQL engine per process, built from ``DATABASE_URL``.  Services
are synchronous; the FastAPI routes reach them through :func:`run_db`.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from battlepulse.database.models import Base
from battlepulse.database.seed import seed_default_settings

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Sized for one dojo's dashboard plus a couple of display screens.
POOL_OPTIONS: dict[str, object] = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_timeout": 10,
    "pool_recycle": 3600,
    "pool_pre_ping": True,
}


def _database_url() -> str:
    url = os.getenv("DATABASE_URL", "").strip()
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and point it at the Battle Pulse database."
        )
    return url


def create_db_engine(url: str | None = None) -> Engine:
    """Engine for *url*, or for ``DATABASE_URL`` when omitted.

    Runs at READ COMMITTED: a settle that loses the claim must see the
    winner's committed snapshot.
    """
    engine = create_engine(
        url or _database_url(),
        isolation_level="READ COMMITTED",
        **POOL_OPTIONS,
    )
    logger.info("Database engine ready (%s on %s)", engine.url.database, engine.url.host)
    return engine


def init_db(engine: Engine) -> None:
    """``create_all`` plus the idempotent settings seed.

    Alembic owns the production schema; this keeps a fresh dev database
    usable without a migration run.
    """
    Base.metadata.create_all(engine)
    seed_default_settings(engine)
    logger.info("Battle Pulse schema checked and settings seeded")


@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Session that commits when the block exits cleanly, else rolls back."""
    with Session(engine) as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise


async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await a synchronous service call on the default thread pool."""
    return await asyncio.to_thread(func, *args, **kwargs)
