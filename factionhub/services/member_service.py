"""
factionhub.services.member_service — Guild Roster
==================================================

The ``members`` table mirrors the Discord guild: snowflake id, username,
display name (server nickname, else global name), avatar hash and the
hub role derived from the member's Discord roles through ``role_map``.

Two consumers:

- login (``api.auth``) upserts the signing-in member;
- the Scoreboard Resolver reads the roster as :class:`Identity` records
  to match free-text names.

Fetching the guild directory is best-effort: any failure is logged and
yields an empty list, never an exception.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

import httpx
from sqlalchemy import select

from factionhub.database.engine import get_session, run_db
from factionhub.database.models import Member, MemberRole
from factionhub.engine.identity import Identity
from factionhub.engine.permissions import Actor, require_privileged, resolve_role

logger = logging.getLogger(__name__)

DISCORD_API = "https://discord.com/api/v10"
_PAGE_SIZE = 1000


@dataclass(slots=True)
class GuildMember:
    """One entry from the guild member directory."""

    id: int
    username: str
    display_name: str | None = None
    avatar_hash: str | None = None
    role_ids: list[int] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Mapping) -> GuildMember:
        user = data.get("user") or {}
        return cls(
            id=int(user["id"]),
            username=user.get("username") or "Unknown",
            display_name=data.get("nick") or user.get("global_name"),
            avatar_hash=data.get("avatar") or user.get("avatar"),
            role_ids=[int(r) for r in data.get("roles", [])],
        )


async def fetch_guild_members(
    guild_id: int,
    bot_token: str,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[GuildMember]:
    """Page through ``GET /guilds/{id}/members``.  ``[]`` on any failure."""
    if not bot_token:
        logger.warning("DISCORD_BOT_TOKEN is not set; guild roster unavailable")
        return []

    members: list[GuildMember] = []
    after = 0
    headers = {"Authorization": f"Bot {bot_token}"}
    try:
        async with httpx.AsyncClient(
            timeout=10, transport=transport or httpx.AsyncHTTPTransport(retries=1)
        ) as client:
            while True:
                resp = await client.get(
                    f"{DISCORD_API}/guilds/{guild_id}/members",
                    params={"limit": _PAGE_SIZE, "after": after},
                    headers=headers,
                )
                resp.raise_for_status()
                page = resp.json()
                members.extend(GuildMember.from_api(m) for m in page if m.get("user"))
                if len(page) < _PAGE_SIZE:
                    break
                after = members[-1].id
    except (httpx.HTTPError, ValueError, KeyError) as exc:
        logger.warning("Guild member directory fetch failed: %s", exc)
        return []

    logger.info("Fetched %d guild members", len(members))
    return members


def upsert_member(session, gm: GuildMember, role_map: Mapping[int, str]) -> Member:
    """Insert or refresh one member; the mapped Discord role is authoritative."""
    row = session.get(Member, gm.id)
    if row is None:
        row = Member(id=gm.id, username=gm.username)
        session.add(row)
    row.username = gm.username
    row.display_name = gm.display_name
    row.avatar_hash = gm.avatar_hash
    row.role = resolve_role(gm.role_ids, role_map)
    return row


def sync_members(engine, roster: Iterable[GuildMember], role_map: Mapping[int, str]) -> int:
    """Upsert every guild member by snowflake.  Returns the number written."""
    count = 0
    with get_session(engine) as session:
        for gm in roster:
            upsert_member(session, gm, role_map)
            count += 1
    logger.info("Synced %d members into roster", count)
    return count


async def refresh_roster(engine, actor: Actor, guild_id: int, bot_token: str,
                         role_map: Mapping[int, str]) -> int:
    """Pull the guild directory into the roster (privileged only)."""
    require_privileged(actor, "sync the member roster")
    roster = await fetch_guild_members(guild_id, bot_token)
    if not roster:
        return 0
    return await run_db(sync_members, engine, roster, role_map)


def get_roster(engine) -> list[Identity]:
    """Every known member as an :class:`Identity`, ordered by snowflake."""
    with get_session(engine) as session:
        rows = session.scalars(select(Member).order_by(Member.id)).all()
        return [
            Identity(
                discord_id=str(m.id),
                username=m.username,
                display_name=m.display_name,
                avatar=m.avatar_hash,
            )
            for m in rows
        ]


def list_members(engine) -> list[dict]:
    with get_session(engine) as session:
        rows = session.scalars(select(Member).order_by(Member.username)).all()
        return [
            {
                "id": str(m.id),
                "username": m.username,
                "display_name": m.display_name,
                "avatar": m.avatar_hash,
                "role": m.role,
            }
            for m in rows
        ]


def load_actor(engine, member_id: int) -> Actor:
    """The actor for *member_id*; unknown members are GUESTs."""
    with get_session(engine) as session:
        row = session.get(Member, member_id)
        if row is None:
            return Actor(member_id=member_id, role=MemberRole.GUEST)
        return Actor(
            member_id=member_id,
            role=row.role,
            display_name=row.display_name or row.username,
        )
