"""
End-to-end tests through the HTTP API.

Each test gets a fresh app on an in-memory database. The TestClient keeps
the session cookie between requests; `client.cookies.clear()` switches to
an anonymous caller and a bearer header switches to a token holder.
"""

import logging

import pytest


def register(client, username, password="password123", email=None):
    response = client.post(
        "/api/users/register",
        json={"username": username, "password": password, "email": email},
    )
    assert response.status_code == 200, response.text
    return response.json()["user"]


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def me(client, **kwargs):
    return client.get("/api/users/me", **kwargs)


def admin_group_id(client, headers):
    groups = client.get("/api/groups/list", headers=headers).json()["groups"]
    return next(g["id"] for g in groups if g["name"] == "Admins")


@pytest.fixture
def admin(client):
    """First user (admin) with a bearer token; the cookie jar is left empty."""
    user = register(client, "alice", email="alice@example.com")
    token = client.post("/api/tokens/create", json={"name": "cli"}).json()["token"]
    client.cookies.clear()
    return {"user": user, "headers": bearer(token)}


# =============================================================================
# Registration and sessions
# =============================================================================


class TestRegistration:
    def test_first_user_is_admin(self, client):
        response = client.post(
            "/api/users/register",
            json={"username": "alice", "password": "password123"},
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Admin account created successfully"
        assert "app_session" in response.cookies
        
        body = me(client).json()
        assert body["user"]["username"] == "alice"
        assert "admin.manage" in body["user"]["permissions"]

    def test_second_user_has_no_permissions(self, client, admin):
        response = client.post(
            "/api/users/register",
            json={"username": "bob", "password": "password456"},
        )
        assert response.json()["message"] == "Account created successfully"
        assert me(client).json()["user"]["permissions"] == []

    def test_duplicate_username(self, client, admin):
        response = client.post(
            "/api/users/register",
            json={"username": "alice", "password": "password456"},
        )
        assert response.status_code == 409
        assert response.json() == {"success": False, "message": "Username already exists"}

    def test_invalid_username(self, client):
        response = client.post(
            "/api/users/register",
            json={"username": "a b", "password": "password123"},
        )
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_malformed_body(self, client):
        response = client.post("/api/users/register", json={"username": ["alice"]})
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid request"

    def test_disabled_registration(self, client, admin):
        response = client.patch(
            "/api/settings/update",
            json={"registrationEnabled": False},
            headers=admin["headers"],
        )
        assert response.status_code == 200
        
        response = client.post(
            "/api/users/register",
            json={"username": "bob", "password": "password456"},
        )
        assert response.status_code == 403


class TestSessions:
    def test_login_and_logout(self, client, admin):
        response = client.post(
            "/api/users/login",
            json={"username": "alice@example.com", "password": "password123"},
        )
        assert response.status_code == 200
        assert me(client).status_code == 200
        
        assert client.post("/api/users/logout").status_code == 200
        assert me(client).status_code == 401

    def test_wrong_password(self, client, admin):
        response = client.post(
            "/api/users/login",
            json={"username": "alice", "password": "not-the-password"},
        )
        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Invalid credentials"}

    def test_missing_fields(self, client):
        response = client.post("/api/users/login", json={"username": "alice"})
        assert response.status_code == 400

    def test_anonymous(self, client):
        assert me(client).status_code == 401

    def test_unknown_cookie(self, client):
        client.cookies.set("app_session", "not-a-session")
        assert me(client).status_code == 401


class TestProfile:
    def test_update_username(self, client, admin):
        register(client, "bob", password="password456")
        response = client.patch("/api/users/profile", json={"username": "robert"})
        
        assert response.status_code == 200
        assert me(client).json()["user"]["username"] == "robert"

    def test_change_password_needs_current(self, client, admin):
        register(client, "bob", password="password456")
        
        response = client.patch("/api/users/profile", json={"newPassword": "newpassword1"})
        assert response.status_code == 400
        
        response = client.patch(
            "/api/users/profile",
            json={"currentPassword": "wrong-password", "newPassword": "newpassword1"},
        )
        assert response.status_code == 401
        
        response = client.patch(
            "/api/users/profile",
            json={"currentPassword": "password456", "newPassword": "newpassword1"},
        )
        assert response.status_code == 200

    def test_nothing_to_update(self, client, admin):
        register(client, "bob", password="password456")
        assert client.patch("/api/users/profile", json={}).status_code == 400


# =============================================================================
# Authorization
# =============================================================================


class TestAuthorization:
    def test_non_admin_is_forbidden(self, client, admin):
        register(client, "bob", password="password456")
        
        response = client.get("/api/users/admin/list")
        assert response.status_code == 403
        assert response.json()["success"] is False
        
        # The token holder is still admin
        client.cookies.clear()
        response = client.get("/api/users/admin/list", headers=admin["headers"])
        assert response.status_code == 200
        assert {u["username"] for u in response.json()["users"]} == {"alice", "bob"}

    def test_forbidden_message_does_not_name_capabilities(self, client, admin, caplog):
        register(client, "bob", password="password456")
        
        with caplog.at_level(logging.INFO, logger="usergate.auth.guard"):
            response = client.get("/api/users/admin/list")
        
        assert response.status_code == 403
        assert response.json()["message"] == "Permission denied"
        assert "admin.manage" not in response.text
        assert "admin.manage" in caplog.text

    def test_bearer_wins_over_cookie(self, client, admin):
        register(client, "bob", password="password456")
        body = me(client, headers=admin["headers"]).json()
        assert body["user"]["username"] == "alice"

    def test_unknown_bearer_falls_back_to_cookie(self, client, admin):
        register(client, "bob", password="password456")
        body = me(client, headers=bearer("bogus")).json()
        assert body["user"]["username"] == "bob"

    def test_group_grant_and_revoke(self, client, admin):
        bob = register(client, "bob", password="password456")
        headers = admin["headers"]
        
        group = client.post(
            "/api/groups/create",
            json={"name": "Reports", "description": "Report viewers"},
            headers=headers,
        ).json()["group"]
        response = client.post(
            "/api/permissions/add",
            json={"groupId": group["id"], "permissionKey": "reports.view"},
            headers=headers,
        )
        assert response.status_code == 200
        assert "reports.view" not in me(client).json()["user"]["permissions"]
        
        client.post("/api/groups/add-member", json={"groupId": group["id"], "userId": bob["id"]}, headers=headers)
        assert me(client).json()["user"]["permissions"] == ["reports.view"]
        
        client.post("/api/groups/remove-member", json={"groupId": group["id"], "userId": bob["id"]}, headers=headers)
        assert me(client).json()["user"]["permissions"] == []

    def test_admin_membership_grants_admin(self, client, admin):
        bob = register(client, "bob", password="password456")
        headers = admin["headers"]
        
        client.post(
            "/api/groups/add-member",
            json={"groupId": admin_group_id(client, headers), "userId": bob["id"]},
            headers=headers,
        )
        assert client.get("/api/users/admin/list").status_code == 200

    def test_token_rate_limit(self, client, admin):
        for _ in range(100):
            assert me(client, headers=admin["headers"]).status_code == 200
        
        response = me(client, headers=admin["headers"])
        assert response.status_code == 429
        assert response.json()["success"] is False


# =============================================================================
# Protected group
# =============================================================================


class TestProtectedGroup:
    def test_cannot_delete(self, client, admin):
        headers = admin["headers"]
        response = client.post(
            "/api/groups/delete",
            json={"groupId": admin_group_id(client, headers)},
            headers=headers,
        )
        assert response.status_code == 409

    def test_cannot_rename_or_publicize(self, client, admin):
        headers = admin["headers"]
        group_id = admin_group_id(client, headers)
        
        response = client.patch("/api/groups/update", json={"groupId": group_id, "name": "Owners"}, headers=headers)
        assert response.status_code == 409
        response = client.patch("/api/groups/update", json={"groupId": group_id, "isPublic": True}, headers=headers)
        assert response.status_code == 409

    def test_description_can_change(self, client, admin):
        headers = admin["headers"]
        group_id = admin_group_id(client, headers)
        
        response = client.patch(
            "/api/groups/update",
            json={"groupId": group_id, "description": "Operators"},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["group"]["description"] == "Operators"

    def test_cannot_remove_admin_grant(self, client, admin):
        headers = admin["headers"]
        group_id = admin_group_id(client, headers)
        
        grants = client.get(f"/api/permissions/group/{group_id}", headers=headers).json()["permissions"]
        grant = next(p for p in grants if p["permissionKey"] == "admin.manage")
        
        response = client.post("/api/permissions/remove", json={"permissionId": grant["id"]}, headers=headers)
        assert response.status_code == 409

    def test_cannot_remove_last_admin(self, client, admin):
        headers = admin["headers"]
        response = client.post(
            "/api/groups/remove-member",
            json={"groupId": admin_group_id(client, headers), "userId": admin["user"]["id"]},
            headers=headers,
        )
        assert response.status_code == 409
        assert me(client, headers=headers).json()["user"]["permissions"] == ["admin.manage"]


# =============================================================================
# Tokens
# =============================================================================


class TestTokens:
    def test_plaintext_shown_once(self, client, admin):
        issued = client.post("/api/tokens/create", json={"name": "deploy"}, headers=admin["headers"]).json()
        assert issued["token"]
        
        listed = client.get("/api/tokens/list", headers=admin["headers"]).json()["tokens"]
        assert {t["name"] for t in listed} == {"cli", "deploy"}
        assert all("token" not in t for t in listed)

    def test_revoke(self, client, admin):
        issued = client.post("/api/tokens/create", json={"name": "deploy"}, headers=admin["headers"]).json()
        assert me(client, headers=bearer(issued["token"])).status_code == 200
        
        response = client.delete(f"/api/tokens/{issued['id']}", headers=admin["headers"])
        assert response.status_code == 200
        assert me(client, headers=bearer(issued["token"])).status_code == 401

    def test_cannot_revoke_others(self, client, admin):
        issued = client.post("/api/tokens/create", json={"name": "deploy"}, headers=admin["headers"]).json()
        register(client, "bob", password="password456")
        
        response = client.delete(f"/api/tokens/{issued['id']}")
        assert response.status_code == 404
        assert response.json()["message"] == "Token not found or does not belong to you"

    def test_name_required(self, client, admin):
        response = client.post("/api/tokens/create", json={"name": "  "}, headers=admin["headers"])
        assert response.status_code == 400


# =============================================================================
# User administration
# =============================================================================


class TestUserAdmin:
    def test_add_and_delete(self, client, admin):
        headers = admin["headers"]
        response = client.post(
            "/api/users/admin/add",
            json={"username": "carol", "password": "password789"},
            headers=headers,
        )
        assert response.status_code == 200
        carol = response.json()["user"]
        
        response = client.post("/api/users/admin/delete", json={"userId": carol["id"]}, headers=headers)
        assert response.status_code == 200
        
        response = client.post("/api/users/admin/delete", json={"userId": carol["id"]}, headers=headers)
        assert response.status_code == 404

    def test_cannot_delete_self(self, client, admin):
        response = client.post(
            "/api/users/admin/delete",
            json={"userId": admin["user"]["id"]},
            headers=admin["headers"],
        )
        assert response.status_code == 400

    def test_reset_password(self, client, admin):
        bob = register(client, "bob", password="password456")
        client.cookies.clear()
        
        response = client.post(
            "/api/users/admin/reset-password",
            json={"userId": bob["id"]},
            headers=admin["headers"],
        )
        password = response.json()["password"]
        assert len(password) == 16
        
        response = client.post("/api/users/login", json={"username": "bob", "password": password})
        assert response.status_code == 200

    def test_reset_password_ends_existing_sessions(self, client, admin):
        bob = register(client, "bob", password="password456")
        bob_session = client.cookies.get("app_session")
        assert me(client).status_code == 200
        client.cookies.clear()
        
        client.post(
            "/api/users/admin/reset-password",
            json={"userId": bob["id"]},
            headers=admin["headers"],
        )
        
        client.cookies.set("app_session", bob_session)
        assert me(client).status_code == 401

    def test_user_groups(self, client, admin):
        headers = admin["headers"]
        response = client.get("/api/users/groups", params={"userId": admin["user"]["id"]}, headers=headers)
        assert [g["name"] for g in response.json()["groups"]] == ["Admins"]
        
        assert client.get("/api/users/groups", headers=headers).status_code == 400


# =============================================================================
# Settings, registry and logs
# =============================================================================


class TestSettingsAndLogs:
    def test_settings_public_read(self, client):
        settings = client.get("/api/settings").json()["settings"]
        assert settings == {
            "registrationEnabled": True,
            "notifyUserCreation": True,
            "notifyAdminRegistration": False,
        }

    def test_settings_update_requires_admin(self, client, admin):
        register(client, "bob", password="password456")
        response = client.patch("/api/settings/update", json={"registrationEnabled": False})
        assert response.status_code == 403

    def test_registered_permissions(self, client):
        permissions = client.get("/api/permissions/registered").json()["permissions"]
        assert {p["key"] for p in permissions} == {"admin.manage", "permissions.list"}

    def test_activity_log(self, client, admin):
        headers = admin["headers"]
        client.post("/api/groups/create", json={"name": "Reports"}, headers=headers)
        
        body = client.get("/api/logs", headers=headers).json()
        activities = [entry["activity"] for entry in body["logs"]]
        assert "user.registered" in activities
        assert "token.created" in activities
        assert "group.created" in activities
        
        body = client.get("/api/logs", params={"search": "Reports"}, headers=headers).json()
        assert [entry["activity"] for entry in body["logs"]] == ["group.created"]
        assert body["logs"][0]["data"]["groupName"] == "Reports"

    def test_activity_log_paging(self, client, admin):
        body = client.get("/api/logs", params={"limit": 1, "offset": 0}, headers=admin["headers"]).json()
        assert body["limit"] == 1
        assert len(body["logs"]) == 1
        assert body["hasMore"] is True

    def test_activity_log_requires_admin(self, client):
        assert client.get("/api/logs").status_code == 401


# =============================================================================
# Health
# =============================================================================


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "up"
        assert body["checks"]["database"]["type"] == "sqlite"

    def test_liveness_and_readiness(self, client):
        assert client.get("/api/healthz").json()["status"] == "ok"
        assert client.get("/api/ready").json()["status"] == "ready"
