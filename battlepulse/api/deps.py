"""
battlepulse.api.deps — FastAPI dependency injection
====================================================

Operator identity comes from an HS256 bearer token carrying ``sub`` (the
operator id) and ``roles`` (used to decide whether the anti-gaming rep
limit applies).
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from battlepulse.config import BattlePulseConfig, load_config
from battlepulse.database.engine import create_db_engine

_WEAK_SECRETS = frozenset({
    "battlepulse-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"

ADMIN_ROLE = "admin"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> BattlePulseConfig:
    return load_config()


def get_current_operator(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate the bearer token and return its payload. Raises 401 if invalid."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not payload.get("sub"):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Token has no subject")
    roles = payload.get("roles") or []
    payload["roles"] = [str(r) for r in roles] if isinstance(roles, list) else [str(roles)]
    return payload


def get_current_admin(
    operator: Annotated[dict, Depends(get_current_operator)],
) -> dict:
    """Operator payload that must carry the ``admin`` role. Raises 403 otherwise."""
    if ADMIN_ROLE not in operator["roles"]:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return operator
