"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Drives the HTTP surface with the FastAPI TestClient against the in-memory
roster database.  Engine, config and Discord synchronizer are swapped in
through ``app.dependency_overrides``.

These tests verify:
- Auth guards (401 without a token, public reads without one)
- Typed service failures map to 400 / 403 / 404 / 409
- Static ``/wars/...`` paths are not swallowed by ``/wars/{ref}``
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import GUEST_ID, MEMBER_ID, RecordingSynchronizer, make_token
from factionhub.api.deps import get_config, get_engine, get_synchronizer


@pytest.fixture
def recorder() -> RecordingSynchronizer:
    return RecordingSynchronizer()


@pytest.fixture
def client(roster, cfg, recorder):
    """TestClient wired to the roster DB.  Not entered as a context manager,
    so the startup hook never touches a real database."""
    from factionhub.api.main import app

    app.dependency_overrides[get_engine] = lambda: roster
    app.dependency_overrides[get_config] = lambda: cfg
    app.dependency_overrides[get_synchronizer] = lambda: recorder
    yield TestClient(app)
    app.dependency_overrides.clear()


def _auth(sub=None) -> dict:
    token = make_token() if sub is None else make_token(sub)
    return {"Authorization": f"Bearer {token}"}


def _create(client, **body) -> dict:
    body.setdefault("enemy_faction", "West Side Crew")
    resp = client.post("/api/wars", json=body, headers=_auth())
    assert resp.status_code == 201, resp.text
    return resp.json()["war"]


def _log_body(**overrides) -> dict:
    body = {
        "log_type": "ATTACK",
        "date_time": "2026-10-17T20:00:00Z",
        "members_involved": "Jon Smith, Mike Rowe",
        "players_killed": ["Jane Roe"],
    }
    body.update(overrides)
    return body


# ===========================================================================
# Health and auth guards
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestAuthGuards:
    @pytest.mark.parametrize("method,path", [
        ("get", "/api/wars"),
        ("post", "/api/wars"),
        ("get", "/api/wars/user/logs"),
        ("get", "/api/members"),
        ("get", "/api/auth/me"),
    ])
    def test_requires_token(self, client, method, path):
        resp = getattr(client, method)(path)
        assert resp.status_code == 401

    def test_rejects_garbage_token(self, client):
        resp = client.get("/api/wars", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    def test_me_reads_role_from_roster(self, client):
        resp = client.get("/api/auth/me", headers=_auth(MEMBER_ID))
        assert resp.status_code == 200
        data = resp.json()
        assert data["role"] == "MEMBER"
        assert data["display_name"] == "Jon Smith"
        assert data["is_privileged"] is False

    def test_member_sync_needs_privilege(self, client):
        resp = client.post("/api/members/sync", headers=_auth(MEMBER_ID))
        assert resp.status_code == 403


# ===========================================================================
# Wars
# ===========================================================================
class TestWarRoutes:
    def test_create_and_read_back(self, client, recorder):
        resp = client.post("/api/wars", json={"enemy_faction": "West Side Crew"},
                           headers=_auth())
        assert resp.status_code == 201
        payload = resp.json()
        assert payload["discord_sent"] is True
        assert payload["coerced"] is False
        war = payload["war"]

        by_slug = client.get(f"/api/wars/{war['slug']}")
        assert by_slug.status_code == 200
        assert by_slug.json()["id"] == war["id"]
        assert len(recorder.published) == 1

    def test_list_includes_log_counts(self, client):
        war = _create(client)
        client.post(f"/api/wars/{war['id']}/logs", json=_log_body(), headers=_auth())
        wars = client.get("/api/wars", headers=_auth(MEMBER_ID)).json()["wars"]
        assert [(w["id"], w["log_count"]) for w in wars] == [(war["id"], 1)]

    def test_member_create_is_coerced(self, client):
        resp = client.post(
            "/api/wars",
            json={"enemy_faction": "Crew", "war_type": "CONTROLLED", "war_level": "LETHAL"},
            headers=_auth(MEMBER_ID),
        )
        assert resp.status_code == 201
        assert resp.json()["coerced"] is True
        assert resp.json()["war"]["war_level"] == "NON_LETHAL"

    def test_guest_create_is_forbidden(self, client):
        resp = client.post("/api/wars", json={"enemy_faction": "Crew"}, headers=_auth(GUEST_ID))
        assert resp.status_code == 403
        assert "error" in resp.json()

    def test_invalid_enum_is_400_with_every_field(self, client):
        resp = client.post("/api/wars", json={"war_type": "X", "war_level": "Y"},
                           headers=_auth())
        assert resp.status_code == 400
        assert {e["field"] for e in resp.json()["errors"]} == {"war_type", "war_level"}

    def test_unknown_war_is_404(self, client):
        assert client.get("/api/wars/no-such-war").status_code == 404

    def test_non_lethal_lock_is_409_with_state(self, client):
        war = _create(client)
        client.post(f"/api/wars/{war['id']}/logs", json=_log_body(), headers=_auth())
        assert client.get(f"/api/wars/{war['id']}/has-kills").json() == {"has_kills": True}

        resp = client.patch(f"/api/wars/{war['id']}", json={"war_level": "NON_LETHAL"},
                            headers=_auth())
        assert resp.status_code == 409
        assert resp.json()["state"] == {"war_level": "LETHAL", "has_kills": True}

    def test_end_reports_has_kills(self, client, recorder):
        war = _create(client)
        resp = client.post(f"/api/wars/{war['id']}/end", headers=_auth())
        assert resp.status_code == 200
        assert resp.json()["status"] == "ENDED"
        assert resp.json()["has_kills"] is False
        assert resp.json()["discord_message_id"] is None
        assert len(recorder.deleted) == 1

        again = client.post(f"/api/wars/{war['id']}/end", headers=_auth())
        assert again.status_code == 409


# ===========================================================================
# Logs and scoreboard
# ===========================================================================
class TestLogRoutes:
    def test_append_log_makes_war_lethal(self, client):
        war = _create(client)
        resp = client.post(f"/api/wars/{war['slug']}/logs", json=_log_body(), headers=_auth())
        assert resp.status_code == 201
        data = resp.json()
        assert data["war_level_changed_to_lethal"] is True
        assert data["is_first_encounter"] is True
        assert data["log"]["members_involved"] == ["Jon Smith", "Mike Rowe"]
        assert data["war"]["war_level"] == "LETHAL"

        public = client.get(f"/api/wars/{war['slug']}/logs")
        assert public.status_code == 200
        assert len(public.json()["logs"]) == 1

    def test_delete_log_reverts_lethality(self, client):
        war = _create(client)
        log = client.post(f"/api/wars/{war['id']}/logs", json=_log_body(),
                          headers=_auth()).json()["log"]
        resp = client.delete(f"/api/wars/{war['id']}/logs/{log['id']}", headers=_auth())
        assert resp.status_code == 200
        assert resp.json()["war_level"] == "NON_LETHAL"

    def test_pk_list_is_public(self, client):
        war = _create(client)
        client.post(f"/api/wars/{war['id']}/logs", json=_log_body(), headers=_auth())
        entries = client.get(f"/api/wars/{war['id']}/pk-list").json()["entries"]
        assert [(e["player_name"], e["kill_count"]) for e in entries] == [("Jane Roe", 1)]

    def test_user_logs_route_is_not_a_war_ref(self, client):
        war = _create(client)
        client.post(f"/api/wars/{war['id']}/logs", json=_log_body(), headers=_auth())
        resp = client.get("/api/wars/user/logs", headers=_auth(MEMBER_ID))
        assert resp.status_code == 200
        assert [log["war"]["id"] for log in resp.json()["logs"]] == [war["id"]]


# ===========================================================================
# Global regulations
# ===========================================================================
class TestRegulationRoutes:
    def test_regulations_route_is_not_a_war_ref(self, client):
        resp = client.get("/api/wars/regulations")
        assert resp.status_code == 200
        assert resp.json()["attacking_cooldown_hours"] == 6

    def test_admin_updates_regulations(self, client):
        resp = client.patch("/api/wars/regulations", json={"max_participants": 8},
                            headers=_auth())
        assert resp.status_code == 200
        assert resp.json()["max_participants"] == 8
        assert client.get("/api/wars/regulations").json()["max_participants"] == 8

    def test_member_cannot_update_regulations(self, client):
        resp = client.patch("/api/wars/regulations", json={"max_participants": 8},
                            headers=_auth(MEMBER_ID))
        assert resp.status_code == 403
