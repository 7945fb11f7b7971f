"""
factionhub.services.embeds — Discord embed builders for wars and encounters
============================================================================

All embed construction lives here so the war and log services only need
to supply data — no layout concerns.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from zoneinfo import ZoneInfo

import discord

from factionhub.constants import (
    DEFAULT_ATTACK_COOLDOWN_HOURS,
    EMBED_COLOR_ENCOUNTER,
    EMBED_COLOR_LETHAL,
    EMBED_COLOR_NON_LETHAL,
    VIDEO_THUMBNAIL_URL,
    ensure_utc,
    is_image_url,
    is_video_url,
    utcnow,
)
from factionhub.database.models import War, WarLevel, WarLog, WarType
from factionhub.engine.scoreboard import KillTotals
from factionhub.engine.stats import CooldownStatus

_SPACER = "\u200b\u2002"


def format_server_time(value: datetime, tz_name: str) -> str:
    """``17/10/2026 8:05 PM`` in the server's timezone."""
    local = ensure_utc(value).astimezone(ZoneInfo(tz_name))
    hour = local.hour % 12 or 12
    return f"{local:%d/%m/%Y} {hour}:{local:%M} {'PM' if local.hour >= 12 else 'AM'}"


def war_url(war: War, site_url: str) -> str | None:
    if not site_url:
        return None
    return f"{site_url.rstrip('/')}/wars/{war.slug or war.id}"


def split_evidence(evidence_url: str | None) -> list[str]:
    if not evidence_url:
        return []
    return [url.strip() for url in evidence_url.split(",") if url.strip()]


# ---------------------------------------------------------------------------
# Current-wars embed
# ---------------------------------------------------------------------------
def _score_text(totals: KillTotals) -> str:
    diff = totals.difference
    if diff > 0:
        return f"+{diff} up"
    if diff < 0:
        return f"{diff} down"
    return "Even"


def _regulations_text(regs: dict | None) -> str:
    regs = regs or {}
    cooldown = regs.get("attacking_cooldown_hours")
    if (regs.get("pk_cooldown_type") or "").lower() == "permanent":
        pk_text = "Permanent"
    elif isinstance(regs.get("pk_cooldown_days"), int):
        pk_text = f"{regs['pk_cooldown_days']} days"
    else:
        pk_text = "Not specified"

    participants = regs.get("max_participants")
    weapons = regs.get("weapon_restrictions")
    if weapons is None:
        weapons_text = "None"
    elif isinstance(weapons, str):
        weapons_text = weapons or "None"
    elif isinstance(weapons, list):
        weapons_text = ", ".join(str(w) for w in weapons) or "None"
    else:
        weapons_text = str(weapons)

    lines = [
        f"**Attack Cooldown:** {cooldown} hours" if isinstance(cooldown, int)
        else "**Attack Cooldown:** Not specified",
        f"**PK Cooldown:** {pk_text}",
        f"**Max Participants:** {participants} members per attack" if isinstance(participants, int)
        else "**Max Participants:** Not specified",
    ]
    if isinstance(regs.get("max_assault_rifles"), int):
        lines.append(f"**Max Assault Rifles:** {regs['max_assault_rifles']}")
    lines.append(f"**Weapon Restrictions:** {weapons_text}")
    return "\n".join(lines)


def _recent_line(log: WarLog, tz_name: str) -> str:
    kills = len(log.players_killed or [])
    deaths = len(log.friends_involved or [])
    return (
        f"`{log.log_type}` {format_server_time(log.date_time, tz_name)} \u2022 "
        f"{kills} kill{'s' if kills != 1 else ''}, {deaths} death{'s' if deaths != 1 else ''}"
    )


def build_war_embed(
    war: War,
    *,
    totals: KillTotals,
    cooldown: CooldownStatus,
    recent_logs: Sequence[WarLog] = (),
    home_faction_name: str,
    site_url: str = "",
    tz_name: str = "Europe/London",
    now: datetime | None = None,
) -> discord.Embed:
    """The live embed in the current-wars channel, one per war."""
    lethal = war.war_level == WarLevel.LETHAL
    faction = war.enemy_faction or "Unknown Faction"

    def _next(value: datetime | None) -> str:
        return format_server_time(value, tz_name) if value else "Now"

    embed = discord.Embed(
        title=faction,
        url=war_url(war, site_url),
        color=EMBED_COLOR_LETHAL if lethal else EMBED_COLOR_NON_LETHAL,
    )
    embed.add_field(
        name="`WAR LEVEL`", value="\U0001f525 Lethal" if lethal else "\U0001f6e1\ufe0f Non-lethal"
    )
    embed.add_field(
        name="`WAR TYPE`",
        value="\U0001f3af Controlled" if war.war_type == WarType.CONTROLLED
        else "\U0001f32a\ufe0f Uncontrolled",
    )
    embed.add_field(
        name="`START DATE`",
        value=format_server_time(war.started_at, tz_name) if war.started_at else "Unknown",
    )
    embed.add_field(name="`SCOREBOARD`", value=_score_text(totals))
    embed.add_field(name="`WAR REGULATIONS`", value=_regulations_text(war.regulations), inline=False)
    embed.add_field(
        name="`COOLDOWN STATUS`",
        value="\n".join([
            f"**{faction}**",
            f"- Next attack: {_next(cooldown.enemy_next_attack)}",
            f"**{home_faction_name}**",
            f"- Next attack: {_next(cooldown.home_next_attack)}",
        ]),
    )
    if recent_logs:
        embed.add_field(
            name="`RECENT ENCOUNTERS`",
            value="\n".join(_recent_line(log, tz_name) for log in recent_logs),
            inline=False,
        )
    embed.set_footer(text=f"Updated on {format_server_time(now or utcnow(), tz_name)}")
    return embed


def war_cooldown_hours(war: War) -> int:
    regs = war.regulations or {}
    value = regs.get("attacking_cooldown_hours")
    return value if isinstance(value, int) and value > 0 else DEFAULT_ATTACK_COOLDOWN_HOURS


# ---------------------------------------------------------------------------
# Encounter embed
# ---------------------------------------------------------------------------
def _format_names(names: Sequence[str]) -> str:
    return "\n".join(f"{_SPACER}{name}" for name in names) if names else " "


def build_encounter_embed(
    log: WarLog,
    *,
    war_name: str,
    war_link: str | None = None,
    author_name: str = "System",
    author_avatar_url: str | None = None,
    is_first_encounter: bool = False,
    war_level: str | None = None,
    changed_to_lethal: bool = False,
    tz_name: str = "Europe/London",
) -> discord.Embed:
    """One embed per encounter, posted to the attack or defense channel.

    Dead members sink to the bottom of the participant list with a skull.
    The first image-like evidence link becomes the embed image; a video
    link gets a play-button thumbnail instead.
    """
    dead = set(log.friends_involved or [])
    members = sorted(log.members_involved or [], key=lambda name: name in dead)
    members = [f"{name} \u2620\ufe0f" if name in dead else name for name in members]

    description = f"{'Attack' if log.log_type == 'ATTACK' else 'Defense'} cooldown triggered."
    if is_first_encounter and war_level:
        description += f"\nLevel: {'Lethal' if war_level == WarLevel.LETHAL else 'Non lethal'}"
    if changed_to_lethal:
        description += "\nWar level changed to Lethal"
    if log.notes:
        description += f"\n\n{log.notes}"

    embed = discord.Embed(
        title=f"New encounter with {war_name or 'Unknown Faction'}",
        url=war_link,
        description=description,
        color=EMBED_COLOR_ENCOUNTER,
    )
    embed.add_field(name="`MEMBERS INVOLVED`", value=_format_names(members))
    embed.add_field(
        name="`ENEMY DEATHS`",
        value=_format_names(log.players_killed) if log.players_killed else "None",
    )

    evidence = split_evidence(log.evidence_url)
    if log.notes or evidence:
        embed.add_field(
            name="`EVIDENCE`",
            value="\n".join(evidence) if evidence else "No evidence provided",
            inline=False,
        )
    first = next((url for url in evidence if is_image_url(url) or is_video_url(url)), None)
    if first and is_video_url(first):
        embed.set_thumbnail(url=VIDEO_THUMBNAIL_URL)
    elif first:
        embed.set_image(url=first)

    footer = f"Posted by {author_name}\u2002\u2022\u2002{format_server_time(log.date_time, tz_name)}"
    embed.set_footer(text=footer, icon_url=author_avatar_url)
    return embed


def avatar_url(discord_id: int | str | None, avatar_hash: str | None) -> str | None:
    if not discord_id or not avatar_hash:
        return None
    if avatar_hash.startswith("http"):
        return avatar_hash
    ext = "gif" if avatar_hash.startswith("a_") else "png"
    return f"https://cdn.discordapp.com/avatars/{discord_id}/{avatar_hash}.{ext}?size=128"
