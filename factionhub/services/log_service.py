"""
factionhub.services.log_service — Encounter Log Ledger
=======================================================

Validated append / edit / delete of :class:`WarLog` rows, each with side
effects on the parent war:

1. The write and the lethality recompute share one transaction, so a
   war is never left LETHAL with the log that made it so rolled back.
2. After commit, Discord is updated best-effort: the per-encounter
   message in the attack/defense channel and the war's current-wars
   embed.  Failures are logged, never raised.

Append requires an ACTIVE war.  Edits go through
:func:`~factionhub.engine.permissions.can_edit_log`; deletes are
privileged-only.  Mutating logs of an ENDED war is a conflict.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import func, select

from factionhub.config import FactionHubConfig
from factionhub.constants import ensure_utc, utcnow
from factionhub.database.engine import get_session, run_db
from factionhub.database.models import LogType, Member, War, WarLog, WarStatus
from factionhub.engine.lethality import LethalityChange
from factionhub.engine.names import split_names, validate_name_lists
from factionhub.engine.permissions import (
    Actor,
    can_delete_log,
    can_edit_log,
    require_member,
    require_privileged,
)
from factionhub.errors import (
    ConflictError,
    FieldError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from factionhub.services.audit import log_admin_action, row_to_dict
from factionhub.services.discord_sync import EmbedSynchronizer, channel_for_log_type
from factionhub.services.embeds import avatar_url, build_encounter_embed, war_url
from factionhub.services.war_service import (
    ensure_not_ended,
    recompute_lethality,
    refresh_war_embed,
    resolve_war,
    war_has_kills,
)

logger = logging.getLogger(__name__)

NAME_FIELDS: tuple[str, ...] = ("members_involved", "friends_involved", "players_killed")
EDITABLE_FIELDS = frozenset({
    "log_type", "date_time", "members_involved", "friends_involved",
    "players_killed", "notes", "evidence_url",
})


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
def _parse_time(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str) and value.strip():
        try:
            return ensure_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


def _join_evidence(value: Any) -> str | None:
    if value is None:
        return None
    urls = split_names(value)
    return ", ".join(urls) or None


def normalize_entry(entry: Mapping[str, Any], *, partial: bool = False) -> dict[str, Any]:
    """Validate an encounter and return clean column values.

    With ``partial`` only the keys present are checked (edits).  Every
    problem is collected before raising one :class:`ValidationError`.
    """
    errors: list[FieldError] = []
    clean: dict[str, Any] = {}

    for key in entry:
        if key not in EDITABLE_FIELDS:
            errors.append(FieldError(key, "Unknown encounter field", entry[key]))

    if not partial or "log_type" in entry:
        log_type = entry.get("log_type")
        if not isinstance(log_type, str) or log_type not in LogType.__members__:
            errors.append(FieldError("log_type", "Must be ATTACK or DEFENSE", log_type))
        else:
            clean["log_type"] = LogType(log_type)

    if not partial or "date_time" in entry:
        when = _parse_time(entry.get("date_time"))
        if when is None:
            errors.append(FieldError("date_time", "A valid date and time is required",
                                     entry.get("date_time")))
        else:
            clean["date_time"] = when

    lists: dict[str, list[str]] = {}
    for name_field in NAME_FIELDS:
        if partial and name_field not in entry:
            continue
        raw = entry.get(name_field)
        if raw is not None and not isinstance(raw, (str, list, tuple)):
            errors.append(FieldError(name_field, "Must be a list of names", raw))
            continue
        lists[name_field] = split_names(raw)
    if "members_involved" in lists and not lists["members_involved"]:
        errors.append(FieldError("members_involved", "At least one member must be involved", []))
    errors.extend(validate_name_lists(lists))
    clean.update(lists)

    if not partial or "notes" in entry:
        notes = entry.get("notes")
        clean["notes"] = (notes.strip() or None) if isinstance(notes, str) else None
    if not partial or "evidence_url" in entry:
        clean["evidence_url"] = _join_evidence(entry.get("evidence_url"))

    if errors:
        raise ValidationError(errors, "Invalid encounter log")
    return clean


# ---------------------------------------------------------------------------
# Serialisation / reads
# ---------------------------------------------------------------------------
def log_to_dict(log: WarLog) -> dict:
    def _iso(value):
        value = ensure_utc(value)
        return value.isoformat() if value else None

    return {
        "id": log.id,
        "war_id": log.war_id,
        "log_type": log.log_type,
        "date_time": _iso(log.date_time),
        "members_involved": list(log.members_involved or []),
        "friends_involved": list(log.friends_involved or []),
        "players_killed": list(log.players_killed or []),
        "notes": log.notes,
        "evidence_url": log.evidence_url,
        "submitted_by": str(log.submitted_by) if log.submitted_by else None,
        "submitted_by_display_name": log.submitted_by_display_name,
        "edited_by": str(log.edited_by) if log.edited_by else None,
        "edited_at": _iso(log.edited_at),
        "discord_message_id": log.discord_message_id,
        "created_at": _iso(log.created_at),
    }


def list_logs(engine, war_ref: str) -> list[WarLog]:
    """Every log of a war, newest first."""
    with get_session(engine) as session:
        war = resolve_war(session, war_ref)
        logs = session.scalars(
            select(WarLog)
            .where(WarLog.war_id == war.id)
            .order_by(WarLog.date_time.desc(), WarLog.id.desc())
        ).all()
        session.expunge_all()
        return list(logs)


def list_member_logs(engine, display_name: str, limit: int = 20, offset: int = 0) -> list[dict]:
    """Logs the member took part in, newest first, with their war."""
    with get_session(engine) as session:
        rows = session.execute(
            select(WarLog, War)
            .join(War, War.id == WarLog.war_id)
            .order_by(WarLog.date_time.desc(), WarLog.id.desc())
        ).all()
        matching = [
            {**log_to_dict(log), "war": {"id": war.id, "slug": war.slug,
                                         "enemy_faction": war.enemy_faction,
                                         "status": war.status}}
            for log, war in rows
            if display_name in (log.members_involved or [])
        ]
    return matching[offset:offset + limit]


def _get_log(session, war: War, log_id: int) -> WarLog:
    log = session.get(WarLog, log_id)
    if log is None or log.war_id != war.id:
        raise NotFoundError(f"Encounter log not found: {log_id}")
    return log


# ---------------------------------------------------------------------------
# Discord (best-effort)
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class _Author:
    name: str
    avatar: str | None = None


def _author_for(engine, member_id: int | None, fallback: str | None) -> _Author:
    with get_session(engine) as session:
        member = session.get(Member, member_id) if member_id else None
        if member is None:
            return _Author(fallback or "System")
        return _Author(
            member.display_name or member.username,
            avatar_url(member.id, member.avatar_hash),
        )


def _store_log_message(engine, log_id: int, message_id: str, channel_id: str | None) -> None:
    with get_session(engine) as session:
        log = session.get(WarLog, log_id)
        if log is not None:
            log.discord_message_id = message_id
            log.discord_channel_id = channel_id


async def _render_encounter(engine, cfg: FactionHubConfig, log: WarLog, war: War, *,
                            is_first: bool = False, changed_to_lethal: bool = False):
    author = await run_db(_author_for, engine, log.submitted_by, log.submitted_by_display_name)
    return build_encounter_embed(
        log,
        war_name=war.enemy_faction,
        war_link=war_url(war, cfg.site_url),
        author_name=author.name,
        author_avatar_url=author.avatar,
        is_first_encounter=is_first,
        war_level=war.war_level,
        changed_to_lethal=changed_to_lethal,
        tz_name=cfg.server_timezone,
    )


async def publish_log(
    engine,
    cfg: FactionHubConfig,
    synchronizer: EmbedSynchronizer,
    log: WarLog,
    war: War,
    *,
    is_first: bool = False,
    changed_to_lethal: bool = False,
) -> bool:
    """Post one encounter embed and store its message id.  Never raises."""
    try:
        embed = await _render_encounter(
            engine, cfg, log, war, is_first=is_first, changed_to_lethal=changed_to_lethal
        )
        result = await synchronizer.publish(channel_for_log_type(log.log_type), embed)
        if not result.ok or not result.message_id:
            logger.warning("Encounter %s not published: %s", log.id, result.error)
            return False
        await run_db(_store_log_message, engine, log.id, result.message_id, result.channel_id)
        log.discord_message_id = result.message_id
        log.discord_channel_id = result.channel_id
        return True
    except Exception:
        logger.exception("Publishing encounter %s failed", log.id)
        return False


async def _edit_log_message(engine, cfg, synchronizer, log: WarLog, war: War,
                            previous_type: str) -> None:
    try:
        if log.log_type != previous_type:
            # Different channel: replace rather than edit in place
            await synchronizer.delete(channel_for_log_type(previous_type), log.discord_message_id)
            await run_db(_store_log_message, engine, log.id, None, None)
            log.discord_message_id = None
            await publish_log(engine, cfg, synchronizer, log, war)
            return
        embed = await _render_encounter(engine, cfg, log, war)
        if not await synchronizer.edit(channel_for_log_type(log.log_type),
                                       log.discord_message_id, embed):
            logger.warning("Encounter %s message %s not updated", log.id, log.discord_message_id)
    except Exception:
        logger.exception("Updating encounter %s message failed", log.id)


async def _delete_log_message(synchronizer, log_type: str, message_id: str) -> None:
    try:
        if not await synchronizer.delete(channel_for_log_type(log_type), message_id):
            logger.warning("Encounter message %s not deleted", message_id)
    except Exception:
        logger.exception("Deleting encounter message %s failed", message_id)


# ---------------------------------------------------------------------------
# Append
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class AppendResult:
    log: WarLog
    war: War
    is_first_encounter: bool
    lethality: LethalityChange
    discord_sent: bool = False

    @property
    def war_level_changed_to_lethal(self) -> bool:
        return self.lethality.changed_to_lethal


def _append_tx(engine, actor: Actor, war_ref: str, clean: dict) -> tuple[WarLog, War, bool, LethalityChange]:
    with get_session(engine) as session:
        war = resolve_war(session, war_ref)
        if war.status != WarStatus.ACTIVE:
            raise ConflictError(
                "Encounters can only be logged against an active war.",
                state={"status": war.status},
            )
        prior = session.scalar(
            select(func.count(WarLog.id)).where(WarLog.war_id == war.id)
        ) or 0
        had_kills = war_has_kills(session, war.id)

        log = WarLog(
            war_id=war.id,
            submitted_by=actor.member_id,
            submitted_by_display_name=actor.display_name,
            **clean,
        )
        session.add(log)
        change = recompute_lethality(session, war, had_kills=had_kills)
        session.flush()
        session.refresh(log)
        session.expunge_all()
    return log, war, prior == 0, change


async def append_log(
    engine,
    cfg: FactionHubConfig,
    synchronizer: EmbedSynchronizer,
    actor: Actor,
    war_ref: str,
    entry: Mapping[str, Any],
) -> AppendResult:
    """Record an encounter against an ACTIVE war.

    The first kill recorded in a NON_LETHAL war flips it to LETHAL and the
    result says so (``war_level_changed_to_lethal``).
    """
    require_member(actor, "log encounters")
    clean = normalize_entry(entry)

    log, war, is_first, change = await run_db(_append_tx, engine, actor, war_ref, clean)
    logger.info(
        "Encounter %s (%s) logged on war %s by %s%s",
        log.id, log.log_type, war.id, actor.member_id,
        ", war is now LETHAL" if change.changed_to_lethal else "",
    )

    sent = await publish_log(
        engine, cfg, synchronizer, log, war,
        is_first=is_first, changed_to_lethal=change.changed_to_lethal,
    )
    if war.discord_message_id:
        await refresh_war_embed(engine, cfg, synchronizer, war.id)
    return AppendResult(
        log=log, war=war, is_first_encounter=is_first, lethality=change, discord_sent=sent
    )


# ---------------------------------------------------------------------------
# Edit
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class LogMutationResult:
    log: WarLog | None
    war: War
    lethality: LethalityChange
    changes: list[str] = field(default_factory=list)


def _edit_tx(
    engine, cfg: FactionHubConfig, actor: Actor, war_ref: str, log_id: int, clean: dict
) -> tuple[WarLog, War, LethalityChange, str]:
    with get_session(engine) as session:
        war = resolve_war(session, war_ref)
        log = _get_log(session, war, log_id)
        if not can_edit_log(
            actor, log, war,
            allow_owner_edits=cfg.allow_owner_log_edits,
            window_hours=cfg.owner_edit_window_hours,
        ):
            raise PermissionDenied("You are not allowed to edit this encounter log.")
        ensure_not_ended(war, "edit encounter logs")

        members = clean.get("members_involved", log.members_involved)
        if not members:
            raise ValidationError(
                [FieldError("members_involved", "At least one member must be involved", [])],
                "Invalid encounter log",
            )

        before = row_to_dict(log)
        previous_type = log.log_type
        had_kills = war_has_kills(session, war.id)
        for key, value in clean.items():
            setattr(log, key, value)
        log.edited_by = actor.member_id
        log.edited_at = utcnow()
        change = recompute_lethality(session, war, had_kills=had_kills)
        session.flush()
        log_admin_action(
            session,
            actor_id=actor.member_id,
            action_type="UPDATE",
            target_table="war_logs",
            target_id=log.id,
            before=before,
            after=row_to_dict(log),
        )
        session.flush()
        session.expunge_all()
    return log, war, change, previous_type


async def edit_log(
    engine,
    cfg: FactionHubConfig,
    synchronizer: EmbedSynchronizer,
    actor: Actor,
    war_ref: str,
    log_id: int,
    patch: Mapping[str, Any],
) -> LogMutationResult:
    """Edit an encounter in place and recompute the war's lethality."""
    clean = normalize_entry(patch, partial=True)
    log, war, change, previous_type = await run_db(
        _edit_tx, engine, cfg, actor, war_ref, log_id, clean
    )
    logger.info("Encounter %s edited by %s: %s", log.id, actor.member_id, sorted(clean))

    if log.discord_message_id:
        await _edit_log_message(engine, cfg, synchronizer, log, war, previous_type)
    if war.discord_message_id:
        await refresh_war_embed(engine, cfg, synchronizer, war.id)
    return LogMutationResult(log=log, war=war, lethality=change, changes=sorted(clean))


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------
def _delete_tx(
    engine, actor: Actor, war_ref: str, log_id: int
) -> tuple[War, LethalityChange, str, str | None]:
    with get_session(engine) as session:
        war = resolve_war(session, war_ref)
        log = _get_log(session, war, log_id)
        ensure_not_ended(war, "delete encounter logs")

        message_id = log.discord_message_id
        log_type = log.log_type
        had_kills = war_has_kills(session, war.id)
        log_admin_action(
            session,
            actor_id=actor.member_id,
            action_type="DELETE",
            target_table="war_logs",
            target_id=log.id,
            before=row_to_dict(log),
            after=None,
        )
        session.delete(log)
        change = recompute_lethality(session, war, had_kills=had_kills)
        session.flush()
        session.expunge(war)
    return war, change, log_type, message_id


async def delete_log(
    engine,
    cfg: FactionHubConfig,
    synchronizer: EmbedSynchronizer,
    actor: Actor,
    war_ref: str,
    log_id: int,
) -> LogMutationResult:
    """Delete an encounter permanently (privileged only).

    The Discord message reference is captured inside the transaction so
    the message can still be removed after the row is gone.
    """
    if not can_delete_log(actor):
        raise PermissionDenied("Only admins, leaders and moderators can delete encounter logs.")
    war, change, log_type, message_id = await run_db(_delete_tx, engine, actor, war_ref, log_id)
    logger.info("Encounter %s deleted from war %s by %s", log_id, war.id, actor.member_id)

    if message_id:
        await _delete_log_message(synchronizer, log_type, message_id)
    if war.discord_message_id:
        await refresh_war_embed(engine, cfg, synchronizer, war.id)
    return LogMutationResult(log=None, war=war, lethality=change)


# ---------------------------------------------------------------------------
# Pending-log publication
# ---------------------------------------------------------------------------
def _pending_logs(engine, war_ref: str) -> tuple[War, list[WarLog]]:
    with get_session(engine) as session:
        war = resolve_war(session, war_ref)
        if war.status != WarStatus.ACTIVE:
            raise ConflictError(
                "Only an active war's encounters can be published.",
                state={"status": war.status},
            )
        logs = session.scalars(
            select(WarLog)
            .where(WarLog.war_id == war.id, WarLog.discord_message_id.is_(None))
            .order_by(WarLog.date_time.asc(), WarLog.id.asc())
        ).all()
        session.expunge_all()
        return war, list(logs)


async def publish_pending_logs(
    engine,
    cfg: FactionHubConfig,
    synchronizer: EmbedSynchronizer,
    actor: Actor,
    war_ref: str,
) -> dict:
    """Publish every unpublished encounter of an ACTIVE war, oldest first."""
    require_privileged(actor, "publish encounter logs")
    war, logs = await run_db(_pending_logs, engine, war_ref)

    sent = 0
    errors: list[dict] = []
    for log in logs:
        if await publish_log(engine, cfg, synchronizer, log, war):
            sent += 1
        else:
            errors.append({"log_id": log.id, "error": "Discord publish failed"})
    if errors:
        logger.warning("War %s: %d of %d pending encounters not published",
                       war.id, len(errors), len(logs))
    return {"sent": sent, "total": len(logs), "errors": errors}
