"""
factionhub.api.routes.logs — Encounter log endpoints
=====================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from factionhub.api.deps import get_config, get_current_actor, get_engine, get_synchronizer
from factionhub.config import FactionHubConfig
from factionhub.engine.permissions import Actor
from factionhub.services import log_service, war_service
from factionhub.services.discord_sync import EmbedSynchronizer

router = APIRouter(prefix="/wars", tags=["logs"])

# Names may arrive as a list or a comma-separated string
NameList = list[str] | str | None


class LogEntry(BaseModel):
    log_type: str | None = None
    date_time: str | None = None
    members_involved: NameList = None
    friends_involved: NameList = None
    players_killed: NameList = None
    notes: str | None = None
    evidence_url: NameList = None


def _log_payload(log, war) -> dict:
    return {**log_service.log_to_dict(log), "war": war_service.war_to_dict(war)}


# Registered before /{ref}/logs so "user" is never read as a war ref
@router.get("/user/logs")
def my_logs(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    """Encounters the caller took part in, newest first."""
    if not actor.display_name:
        return {"logs": []}
    return {"logs": log_service.list_member_logs(engine, actor.display_name, limit, offset)}


@router.get("/{ref}/logs")
def list_logs(ref: str, engine=Depends(get_engine)):
    return {"logs": [log_service.log_to_dict(log) for log in log_service.list_logs(engine, ref)]}


@router.post("/{ref}/logs", status_code=201)
async def append_log(
    ref: str,
    body: LogEntry,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
    cfg: FactionHubConfig = Depends(get_config),
    sync: EmbedSynchronizer = Depends(get_synchronizer),
):
    result = await log_service.append_log(
        engine, cfg, sync, actor, ref, body.model_dump(exclude_unset=True)
    )
    return {
        "log": log_service.log_to_dict(result.log),
        "war": war_service.war_to_dict(result.war),
        "is_first_encounter": result.is_first_encounter,
        "war_level_changed_to_lethal": result.war_level_changed_to_lethal,
        "discord_sent": result.discord_sent,
    }


@router.post("/{ref}/logs/publish-pending")
async def publish_pending(
    ref: str,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
    cfg: FactionHubConfig = Depends(get_config),
    sync: EmbedSynchronizer = Depends(get_synchronizer),
):
    return await log_service.publish_pending_logs(engine, cfg, sync, actor, ref)


@router.patch("/{ref}/logs/{log_id}")
async def edit_log(
    ref: str,
    log_id: int,
    body: LogEntry,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
    cfg: FactionHubConfig = Depends(get_config),
    sync: EmbedSynchronizer = Depends(get_synchronizer),
):
    result = await log_service.edit_log(
        engine, cfg, sync, actor, ref, log_id, body.model_dump(exclude_unset=True)
    )
    return {
        **_log_payload(result.log, result.war),
        "war_level": result.lethality.current,
        "changes": result.changes,
    }


@router.delete("/{ref}/logs/{log_id}")
async def delete_log(
    ref: str,
    log_id: int,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
    cfg: FactionHubConfig = Depends(get_config),
    sync: EmbedSynchronizer = Depends(get_synchronizer),
):
    result = await log_service.delete_log(engine, cfg, sync, actor, ref, log_id)
    return {
        "deleted": log_id,
        "war": war_service.war_to_dict(result.war),
        "war_level": result.lethality.current,
    }
