"""
tests/test_war_service.py — War Lifecycle Manager
==================================================
Service-level tests against in-memory SQLite with a recording Discord
double: create (incl. member coercion), update (incl. the non-lethal
lock), activate and end.
"""

from __future__ import annotations

from dataclasses import replace

import pytest
from sqlalchemy import select

from conftest import ADMIN_ID, RecordingSynchronizer, run_async
from factionhub.database.engine import get_session
from factionhub.database.models import AdminLog, War, WarLevel, WarStatus, WarType
from factionhub.errors import ConflictError, NotFoundError, PermissionDenied, ValidationError
from factionhub.services import log_service, war_service
from factionhub.services.discord_sync import SyncChannel


def _create(engine, cfg, sync, actor, **kwargs):
    return run_async(war_service.create_war(engine, cfg, sync, actor, **kwargs))


def _kill_log(**overrides) -> dict:
    entry = {
        "log_type": "ATTACK",
        "date_time": "2026-10-17T20:00:00Z",
        "members_involved": ["Jon Smith", "Mike Rowe"],
        "players_killed": ["Jane Roe"],
    }
    entry.update(overrides)
    return entry


# ===========================================================================
# Create
# ===========================================================================
class TestCreateWar:
    def test_privileged_create_is_active_and_published(self, roster, cfg, sync, admin):
        result = _create(roster, cfg, sync, admin, enemy_faction="West Side Crew",
                         war_type="CONTROLLED", war_level="LETHAL")
        war = result.war
        assert war.status == WarStatus.ACTIVE
        assert (war.war_type, war.war_level) == (WarType.CONTROLLED, WarLevel.LETHAL)
        assert not result.coerced
        assert result.discord_sent
        assert war.discord_message_id is not None
        assert war.slug.startswith("west-side-crew-")
        assert len(sync.published_to(SyncChannel.CURRENT_WARS)) == 1

    def test_uncontrolled_war_snapshots_global_regulations(self, roster, cfg, sync, admin):
        war = _create(roster, cfg, sync, admin, enemy_faction="Crew").war
        assert war.regulations["attacking_cooldown_hours"] == 6
        assert war.regulations["pk_cooldown_type"] == "days"

    def test_controlled_war_keeps_custom_regulations(self, roster, cfg, sync, admin):
        war = _create(roster, cfg, sync, admin, enemy_faction="Crew", war_type="CONTROLLED",
                      regulations={"attacking_cooldown_hours": 2, "max_participants": 4}).war
        assert war.regulations["attacking_cooldown_hours"] == 2
        assert war.regulations["max_participants"] == 4
        assert war.regulations["pk_cooldown_type"] is None

    def test_member_request_is_coerced(self, roster, cfg, sync, member):
        result = _create(roster, cfg, sync, member, enemy_faction="Crew",
                         war_type="CONTROLLED", war_level="LETHAL",
                         regulations={"attacking_cooldown_hours": 1})
        assert result.coerced
        assert result.war.war_type == WarType.UNCONTROLLED
        assert result.war.war_level == WarLevel.NON_LETHAL
        # custom rules ignored, defaults copied
        assert result.war.regulations["attacking_cooldown_hours"] == 6

    def test_member_war_pending_when_approval_required(self, roster, cfg, sync, member):
        cfg = replace(cfg, member_wars_require_approval=True)
        result = _create(roster, cfg, sync, member, enemy_faction="Crew")
        assert result.war.status == WarStatus.PENDING
        assert not result.discord_sent
        assert sync.published == []

    def test_guest_cannot_create(self, roster, cfg, sync, guest):
        with pytest.raises(PermissionDenied):
            _create(roster, cfg, sync, guest, enemy_faction="Crew")

    def test_invalid_enums_are_all_reported(self, roster, cfg, sync, admin):
        with pytest.raises(ValidationError) as exc:
            _create(roster, cfg, sync, admin, war_type="SORT_OF", war_level="DEADLY")
        assert {e.field for e in exc.value.errors} == {"war_type", "war_level"}

    def test_same_day_wars_get_distinct_slugs(self, roster, cfg, sync, admin):
        first = _create(roster, cfg, sync, admin, enemy_faction="Crew").war
        second = _create(roster, cfg, sync, admin, enemy_faction="Crew").war
        assert second.slug == f"{first.slug}-2"

    def test_discord_failure_does_not_fail_create(self, roster, cfg, admin):
        result = _create(roster, cfg, RecordingSynchronizer(explode=True), admin,
                         enemy_faction="Crew")
        assert result.war.status == WarStatus.ACTIVE
        assert not result.discord_sent
        assert result.war.discord_message_id is None

    def test_create_is_audited(self, roster, cfg, sync, admin):
        war = _create(roster, cfg, sync, admin, enemy_faction="Crew").war
        with get_session(roster) as session:
            row = session.scalars(select(AdminLog).where(AdminLog.target_id == war.id)).one()
            assert row.action_type == "CREATE"
            assert row.actor_id == ADMIN_ID


# ===========================================================================
# Reads
# ===========================================================================
class TestReads:
    def test_get_by_uuid_or_slug(self, roster, cfg, sync, admin):
        war = _create(roster, cfg, sync, admin, enemy_faction="West Side Crew").war
        assert war_service.get_war(roster, war.id).id == war.id
        assert war_service.get_war(roster, war.slug).id == war.id

    def test_unknown_ref(self, roster):
        with pytest.raises(NotFoundError):
            war_service.get_war(roster, "no-such-war")

    def test_list_with_log_counts_and_status_filter(self, roster, cfg, sync, admin):
        war = _create(roster, cfg, sync, admin, enemy_faction="Crew").war
        _create(roster, cfg, sync, admin, enemy_faction="Other", status="PENDING")
        run_async(log_service.append_log(roster, cfg, sync, admin, war.id, _kill_log()))

        wars = war_service.list_wars(roster)
        assert len(wars) == 2
        counts = {w["id"]: w["log_count"] for w in wars}
        assert counts[war.id] == 1
        assert [w["enemy_faction"] for w in war_service.list_wars(roster, "PENDING")] == ["Other"]

    def test_list_rejects_unknown_status(self, roster):
        with pytest.raises(ValidationError):
            war_service.list_wars(roster, "DONE")


# ===========================================================================
# Update
# ===========================================================================
class TestUpdateWar:
    def test_non_lethal_rejected_while_kills_exist(self, roster, cfg, sync, admin):
        war = _create(roster, cfg, sync, admin, enemy_faction="Crew").war
        run_async(log_service.append_log(roster, cfg, sync, admin, war.id, _kill_log()))

        with pytest.raises(ConflictError) as exc:
            run_async(war_service.update_war(roster, cfg, sync, admin, war.id,
                                             {"war_level": "NON_LETHAL"}))
        assert exc.value.state == {"war_level": WarLevel.LETHAL, "has_kills": True}
        assert war_service.get_war(roster, war.id).war_level == WarLevel.LETHAL

    def test_has_kills_probe_agrees_with_lock(self, roster, cfg, sync, admin):
        war = _create(roster, cfg, sync, admin, enemy_faction="Crew").war
        assert not war_service.has_any_kills(roster, war.id)
        run_async(log_service.append_log(roster, cfg, sync, admin, war.id,
                                         _kill_log(players_killed=[])))
        assert not war_service.has_any_kills(roster, war.id)
        updated = run_async(war_service.update_war(roster, cfg, sync, admin, war.id,
                                                   {"war_level": "NON_LETHAL"}))
        assert updated.war_level == WarLevel.NON_LETHAL

    def test_rename_regenerates_slug_and_refreshes_embed(self, roster, cfg, sync, admin):
        war = _create(roster, cfg, sync, admin, enemy_faction="Crew").war
        updated = run_async(war_service.update_war(roster, cfg, sync, admin, war.id,
                                                   {"enemy_faction": "Ballas"}))
        assert updated.enemy_faction == "Ballas"
        assert updated.slug.startswith("ballas-")
        assert sync.edited and sync.edited[-1][1] == war.discord_message_id

    def test_regulations_are_merged(self, roster, cfg, sync, admin):
        war = _create(roster, cfg, sync, admin, enemy_faction="Crew").war
        updated = run_async(war_service.update_war(roster, cfg, sync, admin, war.id,
                                                   {"regulations": {"max_participants": 6}}))
        assert updated.regulations["max_participants"] == 6
        assert updated.regulations["attacking_cooldown_hours"] == 6

    def test_member_cannot_update(self, roster, cfg, sync, admin, member):
        war = _create(roster, cfg, sync, admin, enemy_faction="Crew").war
        with pytest.raises(PermissionDenied):
            run_async(war_service.update_war(roster, cfg, sync, member, war.id,
                                             {"enemy_faction": "X"}))

    def test_unknown_fields_rejected(self, roster, cfg, sync, admin):
        war = _create(roster, cfg, sync, admin, enemy_faction="Crew").war
        with pytest.raises(ValidationError) as exc:
            run_async(war_service.update_war(roster, cfg, sync, admin, war.id,
                                             {"status": "ENDED", "war_type": "NOPE"}))
        assert {e.field for e in exc.value.errors} == {"status", "war_type"}


# ===========================================================================
# Activate / End
# ===========================================================================
class TestActivateAndEnd:
    def test_activate_pending_publishes_embed(self, roster, cfg, sync, admin):
        war = _create(roster, cfg, sync, admin, enemy_faction="Crew", status="PENDING").war
        assert sync.published == []
        active = run_async(war_service.activate_war(roster, cfg, sync, admin, war.id))
        assert active.status == WarStatus.ACTIVE
        assert active.discord_message_id is not None

    def test_activate_active_is_conflict(self, roster, cfg, sync, admin):
        war = _create(roster, cfg, sync, admin, enemy_faction="Crew").war
        with pytest.raises(ConflictError):
            run_async(war_service.activate_war(roster, cfg, sync, admin, war.id))

    def test_end_deletes_embed_and_clears_reference(self, roster, cfg, sync, admin):
        war = _create(roster, cfg, sync, admin, enemy_faction="Crew").war
        ended = run_async(war_service.end_war(roster, cfg, sync, admin, war.id))
        assert ended.status == WarStatus.ENDED
        assert ended.ended_at is not None
        assert sync.deleted == [(SyncChannel.CURRENT_WARS, war.discord_message_id)]
        stored = war_service.get_war(roster, war.id)
        assert stored.discord_message_id is None
        assert stored.discord_channel_id is None

    def test_end_clears_reference_even_when_delete_fails(self, roster, cfg, admin):
        sync = RecordingSynchronizer()
        war = _create(roster, cfg, sync, admin, enemy_faction="Crew").war
        sync.explode = True
        ended = run_async(war_service.end_war(roster, cfg, sync, admin, war.id))
        assert ended.status == WarStatus.ENDED
        assert war_service.get_war(roster, war.id).discord_message_id is None

    def test_ending_twice_is_conflict(self, roster, cfg, sync, admin):
        war = _create(roster, cfg, sync, admin, enemy_faction="Crew").war
        run_async(war_service.end_war(roster, cfg, sync, admin, war.id))
        with pytest.raises(ConflictError) as exc:
            run_async(war_service.end_war(roster, cfg, sync, admin, war.id))
        assert exc.value.state["status"] == WarStatus.ENDED

    def test_ended_war_rejects_update(self, roster, cfg, sync, admin):
        war = _create(roster, cfg, sync, admin, enemy_faction="Crew").war
        run_async(war_service.end_war(roster, cfg, sync, admin, war.id))
        with pytest.raises(ConflictError):
            run_async(war_service.update_war(roster, cfg, sync, admin, war.id,
                                             {"enemy_faction": "X"}))

    def test_member_cannot_end(self, roster, cfg, sync, admin, member):
        war = _create(roster, cfg, sync, admin, enemy_faction="Crew").war
        with pytest.raises(PermissionDenied):
            run_async(war_service.end_war(roster, cfg, sync, member, war.id))
        with get_session(roster) as session:
            assert session.get(War, war.id).status == WarStatus.ACTIVE

