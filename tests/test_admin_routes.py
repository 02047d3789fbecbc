"""
tests/test_admin_routes.py -- Integration tests for /api/admin/* routes.

Coverage:
  - Gate order: no token 401, bad token 401, wrong role 403
  - Deactivation takes effect on the deactivated user's very next request
  - Toggle: flips the flag, twice restores it, 404 for missing id,
    400 for non-numeric id, the caller's own account is an ordinary target
  - Dashboard: counts, login statistics, recent activity (newest first, at most 10)
  - Logs: pagination metadata, defaults for bad parameters, limit cap
  - Users: camelCase rows, no password hash in the payload
  - require_role(): 401 without an attached identity, 403 outside the role set

Fixtures used (from conftest.py):
  - api_client: (client, token, admin_id) -- logged in as the seeded SUPER_ADMIN
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from auth.dependencies import require_admin, require_super_admin
from auth.models import Identity
from core.errors import AuthenticationError, AuthorizationError
from conftest import audit_records, auth_headers, login, make_user

ADMIN_ROUTES = [
    ("GET", "/api/admin/dashboard"),
    ("GET", "/api/admin/logs"),
    ("GET", "/api/admin/users"),
    ("PATCH", "/api/admin/users/1/toggle-status"),
]


class TestAdminGates:
    @pytest.mark.parametrize("method, path", ADMIN_ROUTES)
    def test_unauthenticated(self, api_client: tuple[TestClient, str, int], method: str, path: str) -> None:
        client, _token, _admin_id = api_client
        resp = client.request(method, path)
        assert resp.status_code == 401
        assert resp.json() == {"message": "Access token required"}

    @pytest.mark.parametrize("method, path", ADMIN_ROUTES)
    def test_invalid_token(self, api_client: tuple[TestClient, str, int], method: str, path: str) -> None:
        client, _token, _admin_id = api_client
        resp = client.request(method, path, headers=auth_headers("not.a.token"))
        assert resp.status_code == 401

    def test_role_outside_allowed_set_is_forbidden(self, api_client: tuple[TestClient, str, int]) -> None:
        """An account whose role is not ADMIN/SUPER_ADMIN authenticates but is refused."""
        client, _token, _admin_id = api_client
        make_user(client, "viewer@example.com", password="viewer-pw", role="VIEWER")
        token = login(client, "viewer@example.com", "viewer-pw")
        resp = client.get("/api/admin/users", headers=auth_headers(token))
        assert resp.status_code == 403
        assert resp.json() == {"message": "Insufficient permissions"}

    def test_plain_admin_is_allowed(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _admin_id = api_client
        make_user(client, "plain-admin@example.com", password="plain-pw")
        token = login(client, "plain-admin@example.com", "plain-pw")
        assert client.get("/api/admin/dashboard", headers=auth_headers(token)).status_code == 200

    def test_deactivation_revokes_live_token(self, api_client: tuple[TestClient, str, int]) -> None:
        """A token issued before deactivation stops working on the next request."""
        client, token, _admin_id = api_client
        uid = make_user(client, "soon-off@example.com", password="soon-off-pw")
        victim_token = login(client, "soon-off@example.com", "soon-off-pw")
        assert client.get("/api/admin/users", headers=auth_headers(victim_token)).status_code == 200

        resp = client.patch(f"/api/admin/users/{uid}/toggle-status", headers=auth_headers(token))
        assert resp.status_code == 200

        resp = client.get("/api/admin/users", headers=auth_headers(victim_token))
        assert resp.status_code == 401
        assert resp.json() == {"message": "User account is deactivated"}


class TestRequireRole:
    """The authorization gate reads only request.state.identity."""

    @staticmethod
    def _request(identity: Identity | None = None) -> SimpleNamespace:
        state = SimpleNamespace()
        if identity is not None:
            state.identity = identity
        return SimpleNamespace(state=state)

    def test_no_identity_is_401(self) -> None:
        with pytest.raises(AuthenticationError):
            require_admin(self._request())

    def test_admin_passes_admin_gate(self) -> None:
        identity = Identity(id=1, email="a@example.com", role="ADMIN", is_active=True)
        assert require_admin(self._request(identity)) is identity

    def test_admin_fails_super_admin_gate(self) -> None:
        identity = Identity(id=1, email="a@example.com", role="ADMIN", is_active=True)
        with pytest.raises(AuthorizationError) as exc_info:
            require_super_admin(self._request(identity))
        assert exc_info.value.status_code == 403


class TestToggleStatus:
    def test_toggle_twice(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _admin_id = api_client
        uid = make_user(client, "toggle-me@example.com")

        first = client.patch(f"/api/admin/users/{uid}/toggle-status", headers=auth_headers(token))
        assert first.status_code == 200
        assert first.json() == {
            "message": "User deactivated successfully",
            "user": {"id": uid, "email": "toggle-me@example.com", "role": "ADMIN", "isActive": False},
        }

        second = client.patch(f"/api/admin/users/{uid}/toggle-status", headers=auth_headers(token))
        assert second.json()["message"] == "User activated successfully"
        assert second.json()["user"]["isActive"] is True

    def test_toggle_leaves_other_users_alone(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _admin_id = api_client
        target = make_user(client, "target@example.com")
        bystander = make_user(client, "bystander@example.com")
        client.patch(f"/api/admin/users/{target}/toggle-status", headers=auth_headers(token))
        assert client.app.state.user_store.get_by_id(bystander).is_active is True

    def test_missing_user_is_404(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _admin_id = api_client
        resp = client.patch("/api/admin/users/987654/toggle-status", headers=auth_headers(token))
        assert resp.status_code == 404
        assert resp.json() == {"message": "User not found"}

    @pytest.mark.parametrize("bad_id", ["abc", "1.5", "one"])
    def test_non_numeric_id_is_400(self, api_client: tuple[TestClient, str, int], bad_id: str) -> None:
        client, token, _admin_id = api_client
        resp = client.patch(f"/api/admin/users/{bad_id}/toggle-status", headers=auth_headers(token))
        assert resp.status_code == 400
        assert resp.json() == {"message": "Invalid user ID"}

    def test_toggling_own_account(self, api_client: tuple[TestClient, str, int]) -> None:
        """The caller's own id is an ordinary target: it deactivates the caller."""
        client, _token, _admin_id = api_client
        uid = make_user(client, "self-toggle@example.com", password="self-pw")
        own_token = login(client, "self-toggle@example.com", "self-pw")

        resp = client.patch(f"/api/admin/users/{uid}/toggle-status", headers=auth_headers(own_token))
        assert resp.status_code == 200, resp.text
        assert resp.json()["message"] == "User deactivated successfully"
        assert resp.json()["user"]["isActive"] is False

        after = client.get("/api/admin/users", headers=auth_headers(own_token))
        assert after.status_code == 401
        assert after.json() == {"message": "User account is deactivated"}


class TestDashboard:
    def test_stats_shape_and_counts(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _admin_id = api_client
        store = client.app.state.user_store
        audit_records(client)  # drain pending writes so totals are stable

        resp = client.get("/api/admin/dashboard", headers=auth_headers(token))
        assert resp.status_code == 200
        stats = resp.json()["stats"]
        assert set(stats) == {"totalUsers", "activeUsers", "totalLogs", "loginAttempts", "successfulLogins"}
        assert stats["totalUsers"] == store.count_users()
        assert stats["activeUsers"] == store.count_active_users()
        assert stats["totalLogs"] >= 1
        assert stats["loginAttempts"] >= stats["successfulLogins"] >= 1

    def test_failed_login_moves_attempts_not_successes(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _admin_id = api_client
        audit_records(client)
        before = client.get("/api/admin/dashboard", headers=auth_headers(token)).json()["stats"]

        client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "x"})
        audit_records(client)
        after = client.get("/api/admin/dashboard", headers=auth_headers(token)).json()["stats"]

        assert after["loginAttempts"] == before["loginAttempts"] + 1
        assert after["successfulLogins"] == before["successfulLogins"]

    def test_recent_activity(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _admin_id = api_client
        for _ in range(12):
            client.get("/api/auth/verify", headers=auth_headers(token))
        audit_records(client)

        activity = client.get("/api/admin/dashboard", headers=auth_headers(token)).json()["recentActivity"]
        assert len(activity) == 10
        assert activity == sorted(activity, key=lambda a: (a["timestamp"], a["id"]), reverse=True)
        assert set(activity[0]) == {"id", "action", "email", "timestamp", "success", "ipAddress"}


class TestLogs:
    def test_pagination(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _admin_id = api_client
        audit_records(client)
        resp = client.get("/api/admin/logs?page=1&limit=5", headers=auth_headers(token))
        assert resp.status_code == 200
        data = resp.json()
        pagination = data["pagination"]
        assert pagination["page"] == 1
        assert pagination["limit"] == 5
        assert len(data["logs"]) == 5
        assert pagination["pages"] == -(-pagination["total"] // 5)
        assert set(data["logs"][0]) == {
            "id", "action", "resource", "email", "timestamp", "success", "ipAddress", "userAgent", "metadata",
        }

    def test_page_past_end_is_empty(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _admin_id = api_client
        data = client.get("/api/admin/logs?page=100000&limit=50", headers=auth_headers(token)).json()
        assert data["logs"] == []
        assert data["pagination"]["page"] == 100000

    @pytest.mark.parametrize("query", ["", "?page=abc&limit=xyz", "?page=0&limit=0", "?page=-3&limit=-1"])
    def test_bad_parameters_fall_back_to_defaults(self, api_client: tuple[TestClient, str, int], query: str) -> None:
        client, token, _admin_id = api_client
        resp = client.get(f"/api/admin/logs{query}", headers=auth_headers(token))
        assert resp.status_code == 200
        assert resp.json()["pagination"]["page"] == 1
        assert resp.json()["pagination"]["limit"] == 50

    def test_limit_is_capped(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _admin_id = api_client
        resp = client.get("/api/admin/logs?limit=5000", headers=auth_headers(token))
        assert resp.json()["pagination"]["limit"] == 100

    def test_failed_login_visible_with_reason(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _admin_id = api_client
        client.post("/api/auth/login", json={"email": "intruder@example.com", "password": "guess"})
        audit_records(client)
        logs = client.get("/api/admin/logs?limit=100", headers=auth_headers(token)).json()["logs"]
        attempt = next(r for r in logs if r["action"] == "LOGIN_ATTEMPT" and r["email"] == "intruder@example.com")
        assert attempt["success"] is False
        assert attempt["metadata"] == {"error": "User not found"}


class TestUsers:
    def test_list_users(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, admin_id = api_client
        resp = client.get("/api/admin/users", headers=auth_headers(token))
        assert resp.status_code == 200
        users = resp.json()["users"]
        assert any(u["id"] == admin_id and u["role"] == "SUPER_ADMIN" for u in users)
        for user in users:
            assert set(user) == {"id", "email", "role", "isActive", "createdAt", "updatedAt"}
        assert "hashed_password" not in resp.text
        assert "$2b$" not in resp.text
