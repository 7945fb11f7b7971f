"""
factionhub.api.routes.wars — War lifecycle endpoints
=====================================================

Reads of a single war (detail, PK list, stats, has-kills) are public so
the site can link to them; listing and every mutation need a signed-in
member.  Services decide what each role may do.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from factionhub.api.deps import get_config, get_current_actor, get_engine, get_synchronizer
from factionhub.config import FactionHubConfig
from factionhub.database.engine import run_db
from factionhub.database.models import WarLevel, WarType
from factionhub.engine.permissions import Actor
from factionhub.services import scoreboard_service, war_service
from factionhub.services.discord_sync import EmbedSynchronizer

router = APIRouter(prefix="/wars", tags=["wars"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class WarCreate(BaseModel):
    enemy_faction: str = ""
    war_type: str = WarType.UNCONTROLLED
    war_level: str = WarLevel.NON_LETHAL
    regulations: dict[str, Any] | None = None
    status: str | None = None


class WarUpdate(BaseModel):
    enemy_faction: str | None = None
    war_type: str | None = None
    war_level: str | None = None
    regulations: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
@router.get("")
def list_wars(
    status: str | None = None,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    return {"wars": war_service.list_wars(engine, status)}


@router.get("/{ref}")
def get_war(ref: str, engine=Depends(get_engine)):
    return war_service.war_to_dict(war_service.get_war(engine, ref))


@router.get("/{ref}/has-kills")
def has_kills(ref: str, engine=Depends(get_engine)):
    return {"has_kills": war_service.has_any_kills(engine, ref)}


@router.get("/{ref}/pk-list")
def pk_list(ref: str, engine=Depends(get_engine)):
    entries = scoreboard_service.get_scoreboard(engine, ref)
    return {"entries": [e.to_dict() for e in entries]}


@router.get("/{ref}/stats")
def war_stats(ref: str, engine=Depends(get_engine)):
    overview = scoreboard_service.get_war_stats(engine, ref)
    return {
        "war": war_service.war_to_dict(overview.war),
        "stats": overview.stats.to_dict(),
        "is_hot": overview.is_hot,
    }


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
@router.post("", status_code=201)
async def create_war(
    body: WarCreate,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
    cfg: FactionHubConfig = Depends(get_config),
    sync: EmbedSynchronizer = Depends(get_synchronizer),
):
    result = await war_service.create_war(
        engine, cfg, sync, actor,
        enemy_faction=body.enemy_faction,
        war_type=body.war_type,
        war_level=body.war_level,
        regulations=body.regulations,
        status=body.status,
    )
    return {
        "war": war_service.war_to_dict(result.war),
        "coerced": result.coerced,
        "discord_sent": result.discord_sent,
    }


@router.patch("/{ref}")
async def update_war(
    ref: str,
    body: WarUpdate,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
    cfg: FactionHubConfig = Depends(get_config),
    sync: EmbedSynchronizer = Depends(get_synchronizer),
):
    patch = body.model_dump(exclude_unset=True)
    war = await war_service.update_war(engine, cfg, sync, actor, ref, patch)
    return war_service.war_to_dict(war)


@router.post("/{ref}/activate")
async def activate_war(
    ref: str,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
    cfg: FactionHubConfig = Depends(get_config),
    sync: EmbedSynchronizer = Depends(get_synchronizer),
):
    war = await war_service.activate_war(engine, cfg, sync, actor, ref)
    return war_service.war_to_dict(war)


@router.post("/{ref}/end")
async def end_war(
    ref: str,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
    cfg: FactionHubConfig = Depends(get_config),
    sync: EmbedSynchronizer = Depends(get_synchronizer),
):
    war = await war_service.end_war(engine, cfg, sync, actor, ref)
    has_kills = await run_db(war_service.has_any_kills, engine, war.id)
    return {**war_service.war_to_dict(war), "has_kills": has_kills}
