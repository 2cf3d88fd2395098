"""
battlepulse.api.routes.battles — Battle lifecycle endpoints
============================================================

Create a battle, log reps, preview and settle.  Every endpoint needs an
operator token; the operator's roles decide whether the anti-gaming rep
limit applies to their settlements.
"""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from battlepulse.api.deps import get_config, get_current_operator, get_engine
from battlepulse.config import BattlePulseConfig
from battlepulse.database.engine import run_db
from battlepulse.errors import (
    BattleError,
    BattleIncomplete,
    BattleNotFound,
    ParticipantNotFound,
    SettlementStorageError,
)
from battlepulse.services import battle_service, settlement_service

router = APIRouter(prefix="/battles", tags=["battles"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class BattleCreate(BaseModel):
    mode: str = "duel"
    participant_ids: list[str] = Field(default_factory=list)
    team_ids: list[list[str]] | None = None
    repetition_target: int = 5
    wager_amount: int = Field(0, ge=0)
    points_per_rep: int | None = None
    skill_name: str | None = None


class AttemptCreate(BaseModel):
    student_id: str
    success: bool


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------
def _http_error(exc: BattleError) -> HTTPException:
    if isinstance(exc, (BattleNotFound, ParticipantNotFound)):
        return HTTPException(status.HTTP_404_NOT_FOUND, str(exc))
    if isinstance(exc, BattleIncomplete):
        return HTTPException(
            status.HTTP_409_CONFLICT,
            detail={"message": str(exc), "missing": exc.missing},
        )
    if isinstance(exc, SettlementStorageError):
        return HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc))
    return HTTPException(status.HTTP_400_BAD_REQUEST, str(exc))


def _battle_dict(battle) -> dict:
    return {
        "id": battle.id,
        "mode": battle.mode,
        "skill_name": battle.skill_name,
        "participant_ids": list(battle.participant_ids or []),
        "team_ids": battle.team_ids,
        "repetition_target": battle.repetition_target,
        "wager_amount": battle.wager_amount,
        "points_per_rep": battle.points_per_rep,
        "created_by": battle.created_by,
        "created_at": battle.created_at.isoformat() if battle.created_at else None,
        "settled_at": battle.settled_at.isoformat() if battle.settled_at else None,
    }


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
@router.post("", status_code=201)
def create_battle(
    body: BattleCreate,
    operator: dict = Depends(get_current_operator),
    engine=Depends(get_engine),
):
    try:
        battle = battle_service.create_battle(
            engine,
            mode=body.mode,
            participant_ids=body.participant_ids,
            team_ids=body.team_ids,
            repetition_target=body.repetition_target,
            wager_amount=body.wager_amount,
            points_per_rep=body.points_per_rep,
            skill_name=body.skill_name,
            created_by=str(operator["sub"]),
        )
    except BattleError as exc:
        raise _http_error(exc)
    return _battle_dict(battle)


@router.get("/{battle_id}")
def get_battle(
    battle_id: str,
    operator: dict = Depends(get_current_operator),
    engine=Depends(get_engine),
):
    try:
        state = battle_service.get_battle_state(engine, battle_id)
    except BattleError as exc:
        raise _http_error(exc)
    return asdict(state)


@router.post("/{battle_id}/attempts", status_code=201)
async def log_attempt(
    battle_id: str,
    body: AttemptCreate,
    operator: dict = Depends(get_current_operator),
    engine=Depends(get_engine),
):
    try:
        result = await run_db(
            battle_service.log_attempt,
            engine,
            battle_id,
            body.student_id,
            body.success,
            operator_id=str(operator["sub"]),
        )
    except BattleError as exc:
        raise _http_error(exc)
    return asdict(result)


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------
@router.get("/{battle_id}/preview")
async def preview_battle(
    battle_id: str,
    operator: dict = Depends(get_current_operator),
    engine=Depends(get_engine),
    cfg: BattlePulseConfig = Depends(get_config),
):
    try:
        preview = await run_db(
            settlement_service.preview_battle,
            engine,
            battle_id,
            operator_id=str(operator["sub"]),
            apply_rep_limit=cfg.is_rate_limited(operator["roles"]),
        )
    except BattleError as exc:
        raise _http_error(exc)
    return asdict(preview)


@router.post("/{battle_id}/settle")
async def settle_battle(
    battle_id: str,
    operator: dict = Depends(get_current_operator),
    engine=Depends(get_engine),
    cfg: BattlePulseConfig = Depends(get_config),
):
    try:
        result = await run_db(
            settlement_service.settle_battle,
            engine,
            battle_id,
            operator_id=str(operator["sub"]),
            apply_rep_limit=cfg.is_rate_limited(operator["roles"]),
        )
    except BattleError as exc:
        raise _http_error(exc)
    return asdict(result)
