"""
battlepulse.__main__ — Entry point for ``python -m battlepulse``
================================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine, ensure tables exist and seed settings.
4. Serve the API with uvicorn (blocking).

Run with::

    python -m battlepulse
"""

from __future__ import annotations

import logging
import sys

import uvicorn
from dotenv import load_dotenv

from battlepulse.config import load_config
from battlepulse.database.engine import create_db_engine, init_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("battlepulse")


def main() -> None:
    """Bootstrap the database and run the Battle Pulse API."""

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    try:
        cfg = load_config()
    except FileNotFoundError as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    logger.info("Config loaded — dojo: %s", cfg.dojo_name)

    # 3. Database.
    try:
        engine = create_db_engine()
    except RuntimeError as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    init_db(engine)

    # 4. API.
    uvicorn.run("battlepulse.api.main:app", host="0.0.0.0", port=cfg.api_port)


if __name__ == "__main__":
    main()
