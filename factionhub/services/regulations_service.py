"""
factionhub.services.regulations_service — Global War Regulations
=================================================================

The most recently updated ``global_war_regulations`` row is the ruleset
in force.  Uncontrolled wars copy it at creation time; controlled wars
carry custom rules validated by the same function.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from factionhub.constants import utcnow
from factionhub.database.engine import get_session
from factionhub.database.models import GlobalWarRegulations
from factionhub.engine.permissions import Actor, require_privileged
from factionhub.errors import FieldError, NotFoundError, ValidationError
from factionhub.services.audit import log_admin_action, row_to_dict

logger = logging.getLogger(__name__)

PK_COOLDOWN_TYPES = frozenset({"days", "permanent"})

REGULATION_FIELDS: tuple[str, ...] = (
    "attacking_cooldown_hours",
    "pk_cooldown_type",
    "pk_cooldown_days",
    "max_participants",
    "max_assault_rifles",
    "weapon_restrictions",
)

_NUMERIC_FIELDS = (
    "attacking_cooldown_hours",
    "pk_cooldown_days",
    "max_participants",
    "max_assault_rifles",
)


def validate_regulations(patch: Mapping[str, Any], *, prefix: str = "") -> list[FieldError]:
    """Every problem with a regulations patch, not just the first."""
    errors: list[FieldError] = []
    for key in patch:
        if key not in REGULATION_FIELDS:
            errors.append(FieldError(f"{prefix}{key}", "Unknown regulation", patch[key]))
    for key in _NUMERIC_FIELDS:
        if key not in patch or patch[key] is None:
            continue
        value = patch[key]
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            errors.append(FieldError(f"{prefix}{key}", "Must be a non-negative whole number", value))
    if patch.get("attacking_cooldown_hours", 0) is None:
        errors.append(FieldError(f"{prefix}attacking_cooldown_hours", "Required", None))
    if "pk_cooldown_type" in patch and patch["pk_cooldown_type"] not in PK_COOLDOWN_TYPES:
        errors.append(FieldError(
            f"{prefix}pk_cooldown_type",
            f"Must be one of: {', '.join(sorted(PK_COOLDOWN_TYPES))}",
            patch["pk_cooldown_type"],
        ))
    return errors


def regulations_snapshot(row: GlobalWarRegulations) -> dict:
    """The part of a regulations row that gets copied into a war."""
    return {key: getattr(row, key) for key in REGULATION_FIELDS}


def latest_regulations(session: Session) -> GlobalWarRegulations | None:
    return session.scalars(
        select(GlobalWarRegulations)
        .order_by(GlobalWarRegulations.updated_at.desc(), GlobalWarRegulations.id.desc())
        .limit(1)
    ).first()


def get_global_regulations(engine) -> GlobalWarRegulations:
    with get_session(engine) as session:
        row = latest_regulations(session)
        if row is None:
            raise NotFoundError("No global war regulations have been configured.")
        session.expunge(row)
        return row


def update_global_regulations(engine, patch: Mapping[str, Any], actor: Actor) -> GlobalWarRegulations:
    """Apply *patch* to the regulations in force (privileged only)."""
    require_privileged(actor, "change war regulations")
    errors = validate_regulations(patch)
    if errors:
        raise ValidationError(errors, "Invalid war regulations")

    with get_session(engine) as session:
        row = latest_regulations(session)
        if row is None:
            row = GlobalWarRegulations()
            session.add(row)
            session.flush()
        before = row_to_dict(row)
        for key, value in patch.items():
            setattr(row, key, value)
        row.updated_by = actor.member_id
        row.updated_at = utcnow()
        session.flush()
        log_admin_action(
            session,
            actor_id=actor.member_id,
            action_type="UPDATE",
            target_table="global_war_regulations",
            target_id=row.id,
            before=before,
            after=row_to_dict(row),
        )
        session.flush()
        session.expunge(row)

    logger.info("Global war regulations updated by %s", actor.member_id)
    return row
