"""
tests/test_api_routes.py -- Integration tests for the /api/v1 routes.

These tests exercise the full stack: FastAPI routing -> auth dependency injection
-> UserService/WorkspaceService -> response model serialization and the error
envelope. Unit testing individual route functions would miss middleware,
dependency injection, and exception handler wiring.

Coverage:
  - Auth failures: 401 on protected routes without a token
  - Sign-up, sign-in, and refresh token rotation scenarios end to end
  - Password length caps: 422 over 72 characters, 400 over 72 bytes
  - Account routes: duplicate email, email-used lookup, self-only PATCH/DELETE,
    PATCH returns a JWT for the replacement user id
  - Workspace routes: create, list, owner-scoped get, soft delete
  - Error envelope shape for service errors, validation errors, unknown paths

Fixtures used (from conftest.py):
  - api_client: (client, token, uid) -- seeded user testuser@example.com / testpass123
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from auth.tokens import create_access_token


@pytest.fixture(autouse=True)
def _fresh_cookies(api_client: tuple[TestClient, str, int]) -> None:
    """The client is module-scoped; never let one test's session cookies leak into the next."""
    api_client[0].cookies.clear()


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _register(client: TestClient, email: str, password: str = "pw1") -> dict:
    resp = client.post(
        "/api/v1/users",
        json={"email": email, "password": password, "confirm_password": password},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["user"]


def _authenticate(client: TestClient, email: str, password: str = "pw1") -> dict:
    resp = client.post("/api/v1/auth/authenticate", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()


class TestApiAuthFailure:
    """Unauthenticated requests to protected API routes must return 401."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/api/v1/auth/me"),
            ("get", "/api/v1/users"),
            ("get", "/api/v1/users/1"),
            ("get", "/api/v1/workspaces"),
            ("post", "/api/v1/workspaces"),
        ],
    )
    def test_protected_routes_require_auth(self, api_client: tuple[TestClient, str, int], method: str, path: str) -> None:
        client, _token, _uid = api_client
        resp = getattr(client, method)(path)
        assert resp.status_code == 401, f"Expected 401, got {resp.status_code}"
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_garbage_bearer_token(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = client.get("/api/v1/auth/me", headers=_bearer("not-a-jwt"))
        assert resp.status_code == 401


class TestAuthScenarios:
    def test_sign_up_then_authenticate(self, api_client: tuple[TestClient, str, int]) -> None:
        """Create a@x.com/pw1, sign in with the right and the wrong password."""
        client, _token, _uid = api_client
        created = _register(client, "a@x.com")

        data = _authenticate(client, "a@x.com")
        assert data["id"] == created["id"]
        assert data["email"] == "a@x.com"
        assert data["jwt_token"]
        assert data["refresh_token"]
        assert data["message"] == "Authenticate process ended with success."

        resp = client.post("/api/v1/auth/authenticate", json={"email": "a@x.com", "password": "wrong"})
        assert resp.status_code == 404
        assert resp.json()["error"] == {"code": "not_found", "message": "User is not found.", "detail": None}

    def test_superseded_refresh_token_is_rejected(self, api_client: tuple[TestClient, str, int]) -> None:
        """authenticate -> refresh -> refresh again with the original token fails."""
        client, _token, _uid = api_client
        _register(client, "rotate@x.com")
        original = _authenticate(client, "rotate@x.com")["refresh_token"]

        resp = client.post("/api/v1/auth/refresh-token", json={"refresh_token": original})
        assert resp.status_code == 200, resp.text
        rotated = resp.json()
        assert rotated["refresh_token"] != original
        assert rotated["jwt_token"]
        assert resp.headers["cache-control"] == "no-store"

        resp = client.post("/api/v1/auth/refresh-token", json={"refresh_token": original})
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"

    def test_refresh_from_cookie(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        _register(client, "cookie@x.com")
        first = _authenticate(client, "cookie@x.com")
        assert client.cookies.get("refresh_token") == first["refresh_token"]

        resp = client.post("/api/v1/auth/refresh-token")
        assert resp.status_code == 200, resp.text
        assert client.cookies.get("refresh_token") == resp.json()["refresh_token"]

    def test_remembered_sign_in_sets_persistent_cookies(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        _register(client, "keep@x.com")
        resp = client.post(
            "/api/v1/auth/authenticate",
            json={"email": "keep@x.com", "password": "pw1", "remembered": True},
        )
        assert resp.status_code == 200, resp.text
        assert resp.cookies.get("remembered") == "1"
        refresh_cookie = next(h for h in resp.headers.get_list("set-cookie") if h.startswith("refresh_token="))
        assert "Max-Age" in refresh_cookie

    def test_refresh_without_token_is_bad_request(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = client.post("/api/v1/auth/refresh-token", json={})
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Token is not set."

    def test_revoke_then_refresh_fails(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        _register(client, "revoke@x.com")
        token = _authenticate(client, "revoke@x.com")["refresh_token"]

        resp = client.post("/api/v1/auth/revoke-token", json={"token": token})
        assert resp.status_code == 200
        assert resp.json()["is_success"] is True

        assert client.post("/api/v1/auth/revoke-token", json={"token": token}).status_code == 404
        assert client.post("/api/v1/auth/refresh-token", json={"refresh_token": token}).status_code == 404

    def test_logout_clears_cookies_and_revokes(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        _register(client, "logout@x.com")
        token = _authenticate(client, "logout@x.com")["refresh_token"]

        resp = client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert "refresh_token" not in client.cookies
        assert client.post("/api/v1/auth/refresh-token", json={"refresh_token": token}).status_code == 404

    def test_me_authenticated(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, uid = api_client
        resp = client.get("/api/v1/auth/me", headers=_bearer(token))
        assert resp.status_code == 200, resp.text
        assert resp.json()["user"] == {"id": uid, "email": "testuser@example.com"}


class TestUserRoutes:
    def test_duplicate_email_conflicts(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = client.post(
            "/api/v1/users",
            json={"email": "TestUser@example.com", "password": "x", "confirm_password": "x"},
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"

    def test_validation_messages(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = client.post("/api/v1/users", json={"email": "bad", "password": "a", "confirm_password": "b"})
        assert resp.status_code == 400
        assert resp.json()["error"]["message"].split("\n") == ["Email is not valid.", "Passwords do not match."]

    def test_password_length_limits(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = client.post(
            "/api/v1/users",
            json={"email": "long@x.com", "password": "a" * 100, "confirm_password": "a" * 100},
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

        # Under the character cap, over bcrypt's 72-byte limit.
        resp = client.post(
            "/api/v1/users",
            json={"email": "long@x.com", "password": "é" * 40, "confirm_password": "é" * 40},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Password is too long."

    def test_email_used(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        used = client.get("/api/v1/users/email-used", params={"email": "testuser@example.com"})
        assert used.status_code == 200
        assert used.json()["is_email_used"] is True
        free = client.get("/api/v1/users/email-used", params={"email": "free@example.com"})
        assert free.json()["is_email_used"] is False

    def test_email_used_requires_email(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        assert client.get("/api/v1/users/email-used").status_code == 400

    def test_list_and_get(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, uid = api_client
        resp = client.get("/api/v1/users", headers=_bearer(token))
        assert resp.status_code == 200
        assert uid in [u["id"] for u in resp.json()["users"]]

        resp = client.get(f"/api/v1/users/{uid}", headers=_bearer(token))
        assert resp.json()["user"]["email"] == "testuser@example.com"

        assert client.get("/api/v1/users/99999", headers=_bearer(token)).status_code == 404

    def test_non_integer_id_is_validation_error(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        resp = client.get("/api/v1/users/abc", headers=_bearer(token))
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_cannot_change_another_account(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        other = _register(client, "other@x.com")
        resp = client.patch(f"/api/v1/users/{other['id']}", json={"email": "mine@x.com"}, headers=_bearer(token))
        assert resp.status_code == 403
        assert client.delete(f"/api/v1/users/{other['id']}", headers=_bearer(token)).status_code == 403

    def test_update_replaces_user_and_reissues_jwt(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        old = _register(client, "change@x.com")
        old_jwt = _authenticate(client, "change@x.com")["jwt_token"]
        client.cookies.clear()

        resp = client.patch(
            f"/api/v1/users/{old['id']}",
            json={"email": "changed@x.com", "current_password": "pw1"},
            headers=_bearer(old_jwt),
        )
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["user"]["email"] == "changed@x.com"
        assert data["user"]["id"] != old["id"]
        assert client.cookies.get("access_token") == data["jwt_token"]
        client.cookies.clear()

        assert client.get("/api/v1/auth/me", headers=_bearer(old_jwt)).status_code == 401
        me = client.get("/api/v1/auth/me", headers=_bearer(data["jwt_token"]))
        assert me.json()["user"]["id"] == data["user"]["id"]

    def test_update_wrong_current_password(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        user = _register(client, "guarded@x.com")
        jwt_token = create_access_token(user["id"], user["email"])
        resp = client.patch(
            f"/api/v1/users/{user['id']}",
            json={"password": "pw2", "confirm_password": "pw2", "current_password": "nope"},
            headers=_bearer(jwt_token),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Current password is incorrect."

    def test_delete_self(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        user = _register(client, "leaving@x.com")
        jwt_token = create_access_token(user["id"], user["email"])

        resp = client.delete(f"/api/v1/users/{user['id']}", headers=_bearer(jwt_token))
        assert resp.status_code == 200
        assert client.get("/api/v1/auth/me", headers=_bearer(jwt_token)).status_code == 401
        assert client.get("/api/v1/users/email-used", params={"email": "leaving@x.com"}).json()["is_email_used"] is False


class TestWorkspaceRoutes:
    def test_workspace_lifecycle(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, uid = api_client
        resp = client.post("/api/v1/workspaces", json={"name": "Novel"}, headers=_bearer(token))
        assert resp.status_code == 201, resp.text
        workspace = resp.json()["workspace"]
        assert workspace["name"] == "Novel"
        assert workspace["user_id"] == uid

        listed = client.get("/api/v1/workspaces", headers=_bearer(token)).json()["workspaces"]
        assert workspace["id"] in [w["id"] for w in listed]

        resp = client.get(f"/api/v1/workspaces/{workspace['id']}", headers=_bearer(token))
        assert resp.status_code == 200
        assert resp.json()["workspace"] == workspace

        assert client.delete(f"/api/v1/workspaces/{workspace['id']}", headers=_bearer(token)).status_code == 200
        assert client.get(f"/api/v1/workspaces/{workspace['id']}", headers=_bearer(token)).status_code == 404

    def test_other_users_workspace_is_not_found(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        workspace = client.post("/api/v1/workspaces", json={"name": "Mine"}, headers=_bearer(token)).json()["workspace"]
        stranger = _register(client, "stranger@x.com")
        stranger_jwt = create_access_token(stranger["id"], stranger["email"])

        assert client.get(f"/api/v1/workspaces/{workspace['id']}", headers=_bearer(stranger_jwt)).status_code == 404
        assert client.delete(f"/api/v1/workspaces/{workspace['id']}", headers=_bearer(stranger_jwt)).status_code == 404

    def test_blank_name_is_bad_request(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        resp = client.post("/api/v1/workspaces", json={"name": "   "}, headers=_bearer(token))
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Name is not set."


def test_unknown_api_path_returns_json_404(api_client: tuple[TestClient, str, int]) -> None:
    client, _token, _uid = api_client
    resp = client.get("/api/v1/nope")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"
