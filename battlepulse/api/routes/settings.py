"""
battlepulse.api.routes.settings — Settings, students & manual awards
=====================================================================
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from battlepulse.api.deps import get_current_admin, get_engine
from battlepulse.errors import ParticipantNotFound
from battlepulse.services import battle_service, ledger_service, settings_service

router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class SettingUpdate(BaseModel):
    key: str
    value: Any
    category: str | None = None
    description: str | None = None


class StudentCreate(BaseModel):
    name: str
    opening_balance: int = 0


class ManualAward(BaseModel):
    student_id: str
    points: int
    reason: str = ""


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
@router.get("/settings")
def get_all_settings(
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    rows = settings_service.get_all_settings(engine)
    return {
        "settings": [
            {
                "key": r.key,
                "value": json.loads(r.value_json) if r.value_json else None,
                "category": r.category,
                "description": r.description,
                "updated_at": r.updated_at.isoformat() if r.updated_at else None,
            }
            for r in rows
        ],
    }


@router.put("/settings")
def update_settings(
    body: list[SettingUpdate],
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    for s in body:
        settings_service.upsert_setting(
            engine,
            key=s.key,
            value=s.value,
            category=s.category or "general",
            description=s.description,
        )
    logger.info("Admin %s updated %d setting(s)", admin["sub"], len(body))
    return {"updated": len(body)}


# ---------------------------------------------------------------------------
# Students & manual awards
# ---------------------------------------------------------------------------
@router.post("/students", status_code=201)
def create_student(
    body: StudentCreate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    student = battle_service.create_student(
        engine, body.name, opening_balance=body.opening_balance
    )
    return {"id": student.id, "name": student.name, "points_total": student.points_total}


@router.post("/awards")
def award_points(
    body: ManualAward,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    try:
        balance = ledger_service.award_manual(
            engine,
            student_id=body.student_id,
            points=body.points,
            reason=body.reason,
            admin_id=str(admin["sub"]),
        )
    except ParticipantNotFound as exc:
        raise HTTPException(404, str(exc))
    return {"student_id": body.student_id, "points_total": balance}
