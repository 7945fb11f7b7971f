"""
factionhub.services.war_service — War Lifecycle Manager
========================================================

Owns every state transition of a :class:`War`:

- **create**    — members get self-service UNCONTROLLED / NON_LETHAL wars;
  privileged roles pick any type and level, with custom regulations for
  CONTROLLED wars.  Uncontrolled wars snapshot the global regulations.
- **update**    — privileged rename / type / level / regulations.  Setting
  NON_LETHAL while any log records a kill is a conflict.
- **activate**  — PENDING → ACTIVE.
- **end**       — ACTIVE/PENDING → ENDED (terminal).  The current-wars
  embed is deleted and its reference cleared in the same unit of work.

DB work lives in sync functions (run via :func:`run_db`); the async
wrappers then talk to Discord, best-effort.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from factionhub.config import FactionHubConfig
from factionhub.constants import ensure_utc, utcnow
from factionhub.database.engine import get_session, run_db
from factionhub.database.models import LogType, War, WarLevel, WarLog, WarStatus, WarType
from factionhub.engine.lethality import LethalityChange, any_kills, resolve_war_level
from factionhub.engine.permissions import (
    Actor,
    require_member,
    require_privileged,
    self_service_war,
)
from factionhub.engine.scoreboard import KillTotals, kill_totals
from factionhub.engine.slug import is_uuid, war_slug
from factionhub.engine.stats import cooldown_status
from factionhub.errors import ConflictError, FieldError, NotFoundError, ValidationError
from factionhub.services import regulations_service
from factionhub.services.audit import log_admin_action, row_to_dict
from factionhub.services.discord_sync import EmbedSynchronizer, SyncChannel
from factionhub.services.embeds import build_war_embed, war_cooldown_hours

logger = logging.getLogger(__name__)

MAX_FACTION_NAME_LENGTH = 100
UPDATABLE_FIELDS = frozenset({"enemy_faction", "war_type", "war_level", "regulations"})


# ---------------------------------------------------------------------------
# Lookups shared with the log ledger
# ---------------------------------------------------------------------------
def resolve_war(session: Session, ref: str) -> War:
    """Find a war by uuid or slug.  Raises :class:`NotFoundError`."""
    war = session.get(War, ref) if is_uuid(ref) else None
    if war is None:
        war = session.scalars(select(War).where(War.slug == ref)).first()
    if war is None and not is_uuid(ref):
        war = session.get(War, ref)
    if war is None:
        raise NotFoundError(f"War not found: {ref}")
    return war


def war_has_kills(session: Session, war_id: str) -> bool:
    """Whether any log of the war records a kill on either side.

    Both the has-kills probe and the non-lethal lock call this, so the
    two can never disagree.
    """
    session.flush()
    rows = session.execute(
        select(WarLog.friends_involved, WarLog.players_killed).where(WarLog.war_id == war_id)
    ).all()
    return any_kills(rows)


def recompute_lethality(session: Session, war: War, *, had_kills: bool) -> LethalityChange:
    """Bring ``war.war_level`` in line with the kills now on record."""
    previous = WarLevel(war.war_level)
    current = resolve_war_level(
        previous, had_kills=had_kills, has_kills=war_has_kills(session, war.id)
    )
    if current != previous:
        war.war_level = current
        logger.info("War %s level %s → %s", war.id, previous.value, current.value)
    return LethalityChange(previous=previous, current=current)


def ensure_not_ended(war: War, action: str) -> None:
    if war.status == WarStatus.ENDED:
        raise ConflictError(
            f"Cannot {action}: the war has ended.",
            state={"status": war.status, "ended_at": _iso(war.ended_at)},
        )


def _iso(value: datetime | None) -> str | None:
    value = ensure_utc(value)
    return value.isoformat() if value else None


def _unique_slug(
    session: Session, enemy_faction: str, started_at: datetime, exclude_id: str | None = None
) -> str:
    counter = 0
    while True:
        slug = war_slug(enemy_faction, started_at, counter)
        query = select(War.id).where(War.slug == slug)
        if exclude_id is not None:
            query = query.where(War.id != exclude_id)
        if session.scalar(query) is None:
            return slug
        counter = 2 if counter == 0 else counter + 1


def war_to_dict(war: War, *, log_count: int | None = None) -> dict:
    data = {
        "id": war.id,
        "slug": war.slug,
        "enemy_faction": war.enemy_faction,
        "status": war.status,
        "war_type": war.war_type,
        "war_level": war.war_level,
        "regulations": war.regulations,
        "started_at": _iso(war.started_at),
        "ended_at": _iso(war.ended_at),
        "started_by": str(war.started_by) if war.started_by else None,
        "discord_message_id": war.discord_message_id,
        "discord_channel_id": war.discord_channel_id,
    }
    if log_count is not None:
        data["log_count"] = log_count
    return data


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def list_wars(engine, status: str | None = None) -> list[dict]:
    """All wars newest first, each with its log count."""
    if status is not None and status not in WarStatus.__members__:
        raise ValidationError([FieldError("status", "Unknown war status", status)])
    with get_session(engine) as session:
        counts = (
            select(WarLog.war_id, func.count(WarLog.id).label("n"))
            .group_by(WarLog.war_id)
            .subquery()
        )
        query = (
            select(War, func.coalesce(counts.c.n, 0))
            .outerjoin(counts, counts.c.war_id == War.id)
            .order_by(War.started_at.desc(), War.created_at.desc())
        )
        if status is not None:
            query = query.where(War.status == status)
        return [war_to_dict(war, log_count=n) for war, n in session.execute(query).all()]


def get_war(engine, ref: str) -> War:
    with get_session(engine) as session:
        war = resolve_war(session, ref)
        session.expunge(war)
        return war


def has_any_kills(engine, ref: str) -> bool:
    with get_session(engine) as session:
        return war_has_kills(session, resolve_war(session, ref).id)


# ---------------------------------------------------------------------------
# Current-wars embed
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class WarEmbedContext:
    war: War
    totals: KillTotals
    last_attack: datetime | None = None
    last_defense: datetime | None = None
    recent_logs: list[WarLog] = field(default_factory=list)


def load_embed_context(engine, war_id: str, recent: int = 3) -> WarEmbedContext:
    with get_session(engine) as session:
        war = resolve_war(session, war_id)
        logs = session.scalars(
            select(WarLog)
            .where(WarLog.war_id == war.id)
            .order_by(WarLog.date_time.desc(), WarLog.id.desc())
        ).all()
        session.expunge_all()

    last_attack = next((log.date_time for log in logs if log.log_type == LogType.ATTACK), None)
    last_defense = next((log.date_time for log in logs if log.log_type == LogType.DEFENSE), None)
    return WarEmbedContext(
        war=war,
        totals=kill_totals(logs),
        last_attack=last_attack,
        last_defense=last_defense,
        recent_logs=list(logs[:recent]),
    )


def _render_war_embed(ctx: WarEmbedContext, cfg: FactionHubConfig):
    return build_war_embed(
        ctx.war,
        totals=ctx.totals,
        cooldown=cooldown_status(ctx.last_attack, ctx.last_defense, war_cooldown_hours(ctx.war)),
        recent_logs=ctx.recent_logs,
        home_faction_name=cfg.home_faction_name,
        site_url=cfg.site_url,
        tz_name=cfg.server_timezone,
    )


def _store_war_message(engine, war_id: str, message_id: str | None, channel_id: str | None) -> None:
    with get_session(engine) as session:
        war = session.get(War, war_id)
        if war is not None:
            war.discord_message_id = message_id
            war.discord_channel_id = channel_id


async def publish_war_embed(
    engine, cfg: FactionHubConfig, synchronizer: EmbedSynchronizer, war_id: str
) -> bool:
    """Post the current-wars embed and remember its message id.  Never raises."""
    try:
        ctx = await run_db(load_embed_context, engine, war_id, cfg.recent_logs_in_embed)
        if ctx.war.status != WarStatus.ACTIVE or ctx.war.discord_message_id:
            return False
        result = await synchronizer.publish(SyncChannel.CURRENT_WARS, _render_war_embed(ctx, cfg))
        if not result.ok or not result.message_id:
            logger.warning("War %s embed not published: %s", war_id, result.error)
            return False
        await run_db(_store_war_message, engine, war_id, result.message_id, result.channel_id)
        return True
    except Exception:
        logger.exception("Publishing war %s embed failed", war_id)
        return False


async def refresh_war_embed(
    engine, cfg: FactionHubConfig, synchronizer: EmbedSynchronizer, war_id: str
) -> bool:
    """Re-render the current-wars embed in place, if the war has one.

    Never raises: a stale Discord message is acceptable, a failed write
    is not.
    """
    try:
        ctx = await run_db(load_embed_context, engine, war_id, cfg.recent_logs_in_embed)
        message_id = ctx.war.discord_message_id
        if not message_id or ctx.war.status == WarStatus.ENDED:
            return False
        ok = await synchronizer.edit(SyncChannel.CURRENT_WARS, message_id, _render_war_embed(ctx, cfg))
        if not ok:
            logger.warning("War %s embed %s not updated", war_id, message_id)
        return ok
    except Exception:
        logger.exception("Refreshing war %s embed failed", war_id)
        return False


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class CreateWarResult:
    war: War
    coerced: bool = False
    discord_sent: bool = False


def _validate_enums(fields: Mapping[str, Any]) -> list[FieldError]:
    errors: list[FieldError] = []
    checks = (("war_type", WarType), ("war_level", WarLevel), ("status", WarStatus))
    for key, enum_cls in checks:
        if key in fields and (
            not isinstance(fields[key], str) or fields[key] not in enum_cls.__members__
        ):
            errors.append(FieldError(
                key, f"Must be one of: {', '.join(enum_cls.__members__)}", fields[key]
            ))
    if "enemy_faction" in fields:
        name = fields["enemy_faction"]
        if name is not None and not isinstance(name, str):
            errors.append(FieldError("enemy_faction", "Must be text", name))
        elif name and len(name) > MAX_FACTION_NAME_LENGTH:
            errors.append(FieldError(
                "enemy_faction", f"At most {MAX_FACTION_NAME_LENGTH} characters", name
            ))
    return errors


def _insert_war(
    engine,
    actor: Actor,
    *,
    enemy_faction: str,
    war_type: WarType,
    war_level: WarLevel,
    regulations: dict | None,
    status: WarStatus,
) -> War:
    started_at = utcnow()
    with get_session(engine) as session:
        if regulations is None:
            current = regulations_service.latest_regulations(session)
            if current is not None:
                regulations = regulations_service.regulations_snapshot(current)
            else:
                logger.warning("No global regulations on record; war created without rules")

        war = War(
            enemy_faction=enemy_faction,
            slug=_unique_slug(session, enemy_faction, started_at),
            status=status,
            war_type=war_type,
            war_level=war_level,
            regulations=regulations,
            started_at=started_at,
            started_by=actor.member_id,
        )
        session.add(war)
        session.flush()
        log_admin_action(
            session,
            actor_id=actor.member_id,
            action_type="CREATE",
            target_table="wars",
            target_id=war.id,
            before=None,
            after=row_to_dict(war),
        )
        session.flush()
        session.expunge(war)
    return war


async def create_war(
    engine,
    cfg: FactionHubConfig,
    synchronizer: EmbedSynchronizer,
    actor: Actor,
    *,
    enemy_faction: str = "",
    war_type: str = WarType.UNCONTROLLED,
    war_level: str = WarLevel.NON_LETHAL,
    regulations: Mapping[str, Any] | None = None,
    status: str | None = None,
) -> CreateWarResult:
    """Start a war.

    Members asking for CONTROLLED or LETHAL are coerced to UNCONTROLLED /
    NON_LETHAL (``coerced=True``) and their custom regulations ignored.
    """
    require_member(actor, "start a war")

    fields: dict[str, Any] = {"enemy_faction": enemy_faction, "war_type": war_type,
                              "war_level": war_level}
    if status is not None:
        fields["status"] = status
    errors = _validate_enums(fields)
    if status == WarStatus.ENDED:
        errors.append(FieldError("status", "A war cannot start ENDED", status))
    custom = None
    if actor.is_privileged and war_type == WarType.CONTROLLED and regulations:
        errors.extend(regulations_service.validate_regulations(regulations, prefix="regulations."))
        custom = {
            **{key: None for key in regulations_service.REGULATION_FIELDS},
            **dict(regulations),
        }
    if errors:
        raise ValidationError(errors, "Invalid war")

    choice = self_service_war(actor, war_type, war_level)
    if actor.is_privileged:
        effective_status = WarStatus(status) if status else WarStatus.ACTIVE
    elif cfg.member_wars_require_approval:
        effective_status = WarStatus.PENDING
    else:
        effective_status = WarStatus.ACTIVE

    war = await run_db(
        _insert_war,
        engine,
        actor,
        enemy_faction=(enemy_faction or "").strip(),
        war_type=choice.war_type,
        war_level=choice.war_level,
        regulations=custom,
        status=effective_status,
    )
    logger.info(
        "War %s (%s) started by %s as %s/%s%s",
        war.id, war.slug, actor.member_id, war.war_type, war.war_level,
        " (coerced)" if choice.coerced else "",
    )

    sent = False
    if war.status == WarStatus.ACTIVE:
        sent = await publish_war_embed(engine, cfg, synchronizer, war.id)
        if sent:
            war = await run_db(get_war, engine, war.id)
    return CreateWarResult(war=war, coerced=choice.coerced, discord_sent=sent)


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------
def _validate_patch(patch: Mapping[str, Any]) -> list[FieldError]:
    errors = [
        FieldError(key, "Field cannot be changed here", patch[key])
        for key in patch if key not in UPDATABLE_FIELDS
    ]
    errors.extend(_validate_enums({k: v for k, v in patch.items() if k != "status"}))
    regs = patch.get("regulations")
    if regs is not None:
        if not isinstance(regs, Mapping):
            errors.append(FieldError("regulations", "Must be an object", regs))
        else:
            errors.extend(regulations_service.validate_regulations(regs, prefix="regulations."))
    return errors


def _apply_war_patch(engine, actor: Actor, ref: str, patch: Mapping[str, Any]) -> War:
    with get_session(engine) as session:
        war = resolve_war(session, ref)
        ensure_not_ended(war, "update the war")

        if patch.get("war_level") == WarLevel.NON_LETHAL and war_has_kills(session, war.id):
            raise ConflictError(
                "Cannot set the war to non-lethal while encounters record kills.",
                state={"war_level": war.war_level, "has_kills": True},
            )

        before = row_to_dict(war)
        if "enemy_faction" in patch:
            name = (patch["enemy_faction"] or "").strip()
            if name != war.enemy_faction:
                war.enemy_faction = name
                war.slug = _unique_slug(session, name, war.started_at, exclude_id=war.id)
        if "war_type" in patch:
            war.war_type = patch["war_type"]
        if "war_level" in patch:
            war.war_level = patch["war_level"]
        if patch.get("regulations") is not None:
            war.regulations = {**(war.regulations or {}), **dict(patch["regulations"])}

        session.flush()
        log_admin_action(
            session,
            actor_id=actor.member_id,
            action_type="UPDATE",
            target_table="wars",
            target_id=war.id,
            before=before,
            after=row_to_dict(war),
        )
        session.flush()
        session.expunge(war)
    return war


async def update_war(
    engine,
    cfg: FactionHubConfig,
    synchronizer: EmbedSynchronizer,
    actor: Actor,
    ref: str,
    patch: Mapping[str, Any],
) -> War:
    """Privileged rename / reclassify.  All-or-nothing."""
    require_privileged(actor, "edit wars")
    errors = _validate_patch(patch)
    if errors:
        raise ValidationError(errors, "Invalid war update")

    war = await run_db(_apply_war_patch, engine, actor, ref, patch)
    logger.info("War %s updated by %s: %s", war.id, actor.member_id, sorted(patch))
    if war.discord_message_id:
        await refresh_war_embed(engine, cfg, synchronizer, war.id)
    return war


# ---------------------------------------------------------------------------
# Activate
# ---------------------------------------------------------------------------
def _activate_tx(engine, actor: Actor, ref: str) -> War:
    with get_session(engine) as session:
        war = resolve_war(session, ref)
        if war.status != WarStatus.PENDING:
            raise ConflictError(
                "Only pending wars can be activated.", state={"status": war.status}
            )
        before = row_to_dict(war)
        war.status = WarStatus.ACTIVE
        session.flush()
        log_admin_action(
            session,
            actor_id=actor.member_id,
            action_type="ACTIVATE",
            target_table="wars",
            target_id=war.id,
            before=before,
            after=row_to_dict(war),
        )
        session.flush()
        session.expunge(war)
    return war


async def activate_war(
    engine, cfg: FactionHubConfig, synchronizer: EmbedSynchronizer, actor: Actor, ref: str
) -> War:
    require_privileged(actor, "approve wars")
    war = await run_db(_activate_tx, engine, actor, ref)
    logger.info("War %s activated by %s", war.id, actor.member_id)
    if await publish_war_embed(engine, cfg, synchronizer, war.id):
        war = await run_db(get_war, engine, war.id)
    return war


# ---------------------------------------------------------------------------
# End
# ---------------------------------------------------------------------------
def _end_tx(engine, actor: Actor, ref: str) -> tuple[War, str | None]:
    """Mark ENDED and clear the embed reference in one transaction.

    Returns the war and the message id that still has to be deleted.
    """
    with get_session(engine) as session:
        war = resolve_war(session, ref)
        ensure_not_ended(war, "end the war")
        before = row_to_dict(war)
        message_id = war.discord_message_id

        war.status = WarStatus.ENDED
        war.ended_at = utcnow()
        war.discord_message_id = None
        war.discord_channel_id = None
        session.flush()
        log_admin_action(
            session,
            actor_id=actor.member_id,
            action_type="END",
            target_table="wars",
            target_id=war.id,
            before=before,
            after=row_to_dict(war),
        )
        session.flush()
        session.expunge(war)
    return war, message_id


async def end_war(
    engine, cfg: FactionHubConfig, synchronizer: EmbedSynchronizer, actor: Actor, ref: str
) -> War:
    """End a war.  The embed reference is cleared whether or not Discord
    accepts the delete."""
    require_privileged(actor, "end wars")
    war, message_id = await run_db(_end_tx, engine, actor, ref)
    logger.info("War %s ended by %s", war.id, actor.member_id)
    if message_id:
        try:
            if not await synchronizer.delete(SyncChannel.CURRENT_WARS, message_id):
                logger.warning("War %s embed %s not deleted from Discord", war.id, message_id)
        except Exception:
            logger.exception("Deleting war %s embed %s failed", war.id, message_id)
    return war
