"""
factionhub.engine.permissions — Who May Do What
================================================

ADMIN, LEADER and MODERATOR are interchangeable "privileged" roles for
everything in the war core.  MEMBER may start self-service wars and
append encounter logs.  GUEST may only read.

Log edits go through :func:`can_edit_log`.  Submitters editing their own
logs inside a time window is a config switch
(``allow_owner_log_edits``), off by default, which leaves edits
privileged-only.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from factionhub.constants import PRIVILEGED_ROLES, ROLE_PRECEDENCE, ensure_utc, utcnow
from factionhub.database.models import MemberRole, WarLevel, WarStatus, WarType
from factionhub.errors import PermissionDenied

__all__ = [
    "Actor",
    "SelfServiceWar",
    "can_delete_log",
    "can_edit_log",
    "require_member",
    "require_privileged",
    "resolve_role",
    "self_service_war",
]


@dataclass(frozen=True, slots=True)
class Actor:
    """The authenticated caller: Discord id plus hub role."""

    member_id: int
    role: str = MemberRole.GUEST
    display_name: str | None = None

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES

    @property
    def is_member(self) -> bool:
        return self.is_privileged or self.role == MemberRole.MEMBER


def require_privileged(actor: Actor, action: str) -> None:
    if not actor.is_privileged:
        raise PermissionDenied(f"Only admins, leaders and moderators can {action}.")


def require_member(actor: Actor, action: str) -> None:
    if not actor.is_member:
        raise PermissionDenied(f"Only crew members can {action}.")


def resolve_role(role_ids: Iterable[int | str], role_map: Mapping[int, str]) -> str:
    """Highest hub role among the member's Discord roles; GUEST if none map."""
    mapped = {role_map.get(int(rid)) for rid in role_ids}
    for role in ROLE_PRECEDENCE:
        if role in mapped:
            return role
    return MemberRole.GUEST


# ---------------------------------------------------------------------------
# War creation
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class SelfServiceWar:
    war_type: WarType
    war_level: WarLevel
    coerced: bool


def self_service_war(actor: Actor, war_type: str, war_level: str) -> SelfServiceWar:
    """Effective type/level for a new war.

    Members are limited to UNCONTROLLED / NON_LETHAL; anything else they
    ask for is coerced rather than rejected, and ``coerced`` says so.
    """
    requested_type, requested_level = WarType(war_type), WarLevel(war_level)
    if actor.is_privileged:
        return SelfServiceWar(requested_type, requested_level, coerced=False)
    coerced = (
        requested_type != WarType.UNCONTROLLED
        or requested_level != WarLevel.NON_LETHAL
    )
    return SelfServiceWar(WarType.UNCONTROLLED, WarLevel.NON_LETHAL, coerced=coerced)


# ---------------------------------------------------------------------------
# Log edits / deletes
# ---------------------------------------------------------------------------
class _OwnedLog(Protocol):
    submitted_by: int | None
    created_at: datetime | None


class _WarState(Protocol):
    status: str


def can_edit_log(
    actor: Actor,
    log: _OwnedLog,
    war: _WarState,
    *,
    allow_owner_edits: bool = False,
    window_hours: int = 24,
    now: datetime | None = None,
) -> bool:
    """Whether *actor* may edit *log*.

    Privileged roles always may.  With ``allow_owner_edits`` on, the
    original submitter may edit within ``window_hours`` of creation while
    the war is still ACTIVE.
    """
    if actor.is_privileged:
        return True
    if not allow_owner_edits or not actor.is_member:
        return False
    if log.submitted_by != actor.member_id or war.status != WarStatus.ACTIVE:
        return False
    created = ensure_utc(log.created_at)
    if created is None:
        return False
    return (now or utcnow()) - created <= timedelta(hours=window_hours)


def can_delete_log(actor: Actor) -> bool:
    return actor.is_privileged
