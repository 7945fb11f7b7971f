"""
tests/test_permissions.py — Roles, Coercion and Edit Policy
============================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import pytest

from factionhub.database.models import MemberRole, WarLevel, WarStatus, WarType
from factionhub.engine.permissions import (
    Actor,
    can_delete_log,
    can_edit_log,
    require_member,
    require_privileged,
    resolve_role,
    self_service_war,
)
from factionhub.errors import PermissionDenied

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=UTC)


@dataclass
class _Log:
    submitted_by: int | None
    created_at: datetime | None


@dataclass
class _War:
    status: str


class TestRoles:
    @pytest.mark.parametrize("role", ["ADMIN", "LEADER", "MODERATOR"])
    def test_privileged_roles(self, role):
        actor = Actor(1, role)
        assert actor.is_privileged and actor.is_member
        require_privileged(actor, "do it")

    def test_member_is_not_privileged(self):
        with pytest.raises(PermissionDenied):
            require_privileged(Actor(1, MemberRole.MEMBER), "end wars")

    def test_guest_is_not_member(self):
        with pytest.raises(PermissionDenied, match="crew members"):
            require_member(Actor(1, MemberRole.GUEST), "log encounters")

    def test_resolve_role_highest_wins(self):
        role_map = {10: "MEMBER", 20: "LEADER"}
        assert resolve_role([10, 20], role_map) == "LEADER"
        assert resolve_role(["10"], role_map) == "MEMBER"
        assert resolve_role([99], role_map) == MemberRole.GUEST
        assert resolve_role([], role_map) == MemberRole.GUEST


class TestSelfServiceWar:
    def test_member_request_for_controlled_lethal_is_coerced(self):
        choice = self_service_war(Actor(1, MemberRole.MEMBER), "CONTROLLED", "LETHAL")
        assert choice.war_type == WarType.UNCONTROLLED
        assert choice.war_level == WarLevel.NON_LETHAL
        assert choice.coerced

    def test_member_default_request_is_not_coerced(self):
        choice = self_service_war(Actor(1, MemberRole.MEMBER), "UNCONTROLLED", "NON_LETHAL")
        assert not choice.coerced

    def test_privileged_choice_is_honoured(self):
        choice = self_service_war(Actor(1, MemberRole.LEADER), "CONTROLLED", "LETHAL")
        assert (choice.war_type, choice.war_level, choice.coerced) == (
            WarType.CONTROLLED, WarLevel.LETHAL, False,
        )


class TestCanEditLog:
    def test_privileged_always(self):
        log = _Log(submitted_by=5, created_at=NOW - timedelta(days=30))
        assert can_edit_log(Actor(1, MemberRole.MODERATOR), log, _War(WarStatus.ACTIVE), now=NOW)

    def test_owner_denied_by_default(self):
        log = _Log(submitted_by=5, created_at=NOW)
        assert not can_edit_log(Actor(5, MemberRole.MEMBER), log, _War(WarStatus.ACTIVE), now=NOW)

    def test_owner_within_window_when_enabled(self):
        log = _Log(submitted_by=5, created_at=NOW - timedelta(hours=23))
        assert can_edit_log(
            Actor(5, MemberRole.MEMBER), log, _War(WarStatus.ACTIVE),
            allow_owner_edits=True, window_hours=24, now=NOW,
        )

    def test_owner_outside_window(self):
        log = _Log(submitted_by=5, created_at=NOW - timedelta(hours=25))
        assert not can_edit_log(
            Actor(5, MemberRole.MEMBER), log, _War(WarStatus.ACTIVE),
            allow_owner_edits=True, window_hours=24, now=NOW,
        )

    def test_other_member_or_ended_war(self):
        log = _Log(submitted_by=5, created_at=NOW)
        assert not can_edit_log(
            Actor(6, MemberRole.MEMBER), log, _War(WarStatus.ACTIVE),
            allow_owner_edits=True, now=NOW,
        )
        assert not can_edit_log(
            Actor(5, MemberRole.MEMBER), log, _War(WarStatus.ENDED),
            allow_owner_edits=True, now=NOW,
        )

    def test_naive_created_at_is_treated_as_utc(self):
        log = _Log(submitted_by=5, created_at=(NOW - timedelta(hours=1)).replace(tzinfo=None))
        assert can_edit_log(
            Actor(5, MemberRole.MEMBER), log, _War(WarStatus.ACTIVE),
            allow_owner_edits=True, now=NOW,
        )

    def test_delete_is_privileged_only(self):
        assert can_delete_log(Actor(1, MemberRole.ADMIN))
        assert not can_delete_log(Actor(1, MemberRole.MEMBER))
