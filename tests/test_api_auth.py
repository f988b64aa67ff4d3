from app.core.security import decode_capability_token

from conftest import auth, make_user, promote


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "operational"
    assert body["database"] == "healthy"
    assert body["storage"] == "healthy"


def test_signup_login_and_me(client):
    r = client.post("/api/auth/signup", json={"email": "Pavel@Example.com", "password": "secret123"})
    assert r.status_code == 201
    user_id = r.json()["user_id"]

    r = client.post("/api/auth/signup", json={"email": "pavel@example.com", "password": "other123"})
    assert r.status_code == 409

    r = client.post("/api/auth/login", json={"email": "pavel@example.com", "password": "wrong"})
    assert r.status_code == 401
    assert r.json()["success"] is False

    r = client.post("/api/auth/login", json={"email": "pavel@example.com", "password": "secret123"})
    assert r.status_code == 200
    token = r.json()["access_token"]
    assert r.json()["user_id"] == user_id

    # account exists but registration is not complete yet
    r = client.get("/api/auth/me", headers=auth(token))
    assert r.status_code == 403


def test_me_requires_session(client):
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers=auth("garbage")).status_code == 401


def test_register_creates_then_updates(client):
    r = client.post("/api/auth/signup", json={"email": "ivan@example.com", "password": "secret123"})
    token, user_id = r.json()["access_token"], r.json()["user_id"]
    body = {"id": user_id, "first_name": "Иван", "last_name": "Петров", "email": "ivan@example.com"}

    r = client.post("/api/register", json=body, headers=auth(token))
    assert r.status_code == 200
    assert r.json()["created"] is True
    assert r.json()["data"]["is_admin"] is False
    assert r.json()["data"]["name"] == "Иван Петров"

    r = client.post("/api/register", json={**body, "phone": "+7 911 111-11-11"}, headers=auth(token))
    assert r.status_code == 200
    assert r.json()["created"] is False
    assert r.json()["data"]["phone"] == "+7 911 111-11-11"


def test_register_missing_fields_is_400(client):
    r = client.post("/api/auth/signup", json={"email": "olga@example.com", "password": "secret123"})
    token, user_id = r.json()["access_token"], r.json()["user_id"]

    r = client.post("/api/register", json={"id": user_id, "first_name": "Ольга"}, headers=auth(token))
    assert r.status_code == 400
    assert "last_name" in r.json()["detail"]


def test_register_for_someone_else(client, admin):
    other = make_user(client)
    r = client.post(
        "/api/register",
        json={"id": admin["id"], "first_name": "X", "last_name": "Y", "email": "x@example.com"},
        headers=other["headers"],
    )
    assert r.status_code == 403

    # admins may register any account, but the account has to exist
    r = client.post(
        "/api/register",
        json={"id": "no-such-account", "first_name": "X", "last_name": "Y", "email": "x@example.com"},
        headers=admin["headers"],
    )
    assert r.status_code == 404


def test_profile_self_service(client, user):
    r = client.put(
        "/api/profile",
        json={"address": "ул. Ленина, 1", "first_name": "Мария"},
        headers=user["headers"],
    )
    assert r.status_code == 200
    assert r.json()["address"] == "ул. Ленина, 1"
    assert r.json()["name"] == "Мария Иванова"

    # the admin flag is not a self-service field
    r = client.put("/api/profile", json={"is_admin": True}, headers=user["headers"])
    assert r.status_code == 200
    assert r.json()["is_admin"] is False


def test_admin_check_reasons(client, user):
    r = client.get("/api/auth/admin-check")
    assert r.json() == {
        "authorized": False,
        "reason": "no_session",
        "user_id": None,
        "capability_token": None,
        "expires_at": None,
    }

    r = client.get("/api/auth/admin-check", headers=user["headers"])
    assert r.json()["authorized"] is False
    assert r.json()["reason"] == "not_admin"

    # signed in but no profile row
    r = client.post("/api/auth/signup", json={"email": "ghost@example.com", "password": "secret123"})
    r = client.get("/api/auth/admin-check", headers=auth(r.json()["access_token"]))
    assert r.json()["reason"] == "profile_lookup_failed"


def test_admin_check_grants_capability(client, admin):
    r = client.get("/api/auth/admin-check", headers=admin["headers"])
    body = r.json()
    assert body["authorized"] is True
    assert body["reason"] is None

    claims = decode_capability_token(body["capability_token"])
    assert claims["sub"] == admin["id"]
    assert claims["exp"] == body["expires_at"]


def test_admin_endpoints_gate(client, user):
    assert client.get("/api/admin/orders").status_code == 401
    assert client.get("/api/admin/orders", headers=user["headers"]).status_code == 403
    assert client.get("/api/admin/dashboard", headers=user["headers"]).status_code == 403

    # a capability token is not a session token
    promote(user["id"])
    cap = client.get("/api/auth/admin-check", headers=user["headers"]).json()["capability_token"]
    assert client.get("/api/admin/orders", headers=auth(cap)).status_code == 401


def test_revoked_admin_loses_access_immediately(client, admin):
    other = make_user(client)
    promote(other["id"])
    assert client.get("/api/admin/users", headers=other["headers"]).status_code == 200

    r = client.put(f"/api/admin/users/{other['id']}", json={"is_admin": False}, headers=admin["headers"])
    assert r.status_code == 200
    assert r.json()["is_admin"] is False

    assert client.get("/api/admin/users", headers=other["headers"]).status_code == 403


def test_admin_cannot_demote_self(client, admin):
    r = client.put(f"/api/admin/users/{admin['id']}", json={"is_admin": False}, headers=admin["headers"])
    assert r.status_code == 400
