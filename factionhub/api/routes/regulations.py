"""
factionhub.api.routes.regulations — Global war regulations
===========================================================
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from factionhub.api.deps import get_current_actor, get_engine
from factionhub.engine.permissions import Actor
from factionhub.services import regulations_service

router = APIRouter(prefix="/wars/regulations", tags=["regulations"])


class RegulationsUpdate(BaseModel):
    attacking_cooldown_hours: int | None = None
    pk_cooldown_type: str | None = None
    pk_cooldown_days: int | None = None
    max_participants: int | None = None
    max_assault_rifles: int | None = None
    weapon_restrictions: Any = None


def _regulations_dict(row) -> dict:
    return {
        **regulations_service.regulations_snapshot(row),
        "updated_by": str(row.updated_by) if row.updated_by else None,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


@router.get("")
def get_regulations(engine=Depends(get_engine)):
    return _regulations_dict(regulations_service.get_global_regulations(engine))


@router.patch("")
def update_regulations(
    body: RegulationsUpdate,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    row = regulations_service.update_global_regulations(
        engine, body.model_dump(exclude_unset=True), actor
    )
    return _regulations_dict(row)
