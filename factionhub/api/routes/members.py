"""
factionhub.api.routes.members — Member roster
==============================================
"""

from __future__ import annotations

import os

from fastapi import APIRouter, Depends, HTTPException

from factionhub.api.deps import get_config, get_current_actor, get_engine, get_privileged_actor
from factionhub.config import FactionHubConfig
from factionhub.engine.permissions import Actor
from factionhub.services import member_service

router = APIRouter(prefix="/members", tags=["members"])


@router.get("")
def list_members(
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    return {"members": member_service.list_members(engine)}


@router.post("/sync")
async def sync_members(
    actor: Actor = Depends(get_privileged_actor),
    engine=Depends(get_engine),
    cfg: FactionHubConfig = Depends(get_config),
):
    """Pull the guild directory into the roster."""
    bot_token = os.getenv("DISCORD_BOT_TOKEN", "").strip()
    if not bot_token:
        raise HTTPException(500, "DISCORD_BOT_TOKEN is not configured")
    synced = await member_service.refresh_roster(
        engine, actor, cfg.guild_id, bot_token, cfg.role_map
    )
    return {"synced": synced}
