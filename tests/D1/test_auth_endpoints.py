# tests/D1/test_auth_endpoints.py
from fastapi.testclient import TestClient

from gymdesk.auth.permissions import STAFF, SUPER_ADMIN, TRAINER

PASSWORD = "secret123"


def _login(client, email, password=PASSWORD):
    return client.post("/auth/login", json={"email": email, "password": password})


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["success"] is True


def test_login_returns_access_token_and_refresh_cookie(client, gym_a, assert_iso_timestamp):
    r = _login(client, "owner-a@example.com")
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["data"]["accessToken"]
    assert body["data"]["user"]["role"] == "gymowner"
    assert "passwordHash" not in body["data"]["user"]
    assert_iso_timestamp(body["data"]["user"]["lastLogin"])

    cookie = r.headers["set-cookie"]
    assert "refresh_token=" in cookie
    assert "HttpOnly" in cookie


def test_login_with_wrong_password_is_401(client, gym_a):
    r = _login(client, "owner-a@example.com", "wrong-password")
    assert r.status_code == 401
    body = r.json()
    assert body["success"] is False
    assert body["message"] == "Invalid email or password"


def test_login_unknown_email_is_401(client):
    r = _login(client, "ghost@example.com")
    assert r.status_code == 401


def test_me_requires_token(client):
    r = client.get("/auth/me")
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "unauthenticated"


def test_me_with_garbage_token(client):
    r = client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "token_invalid"


def test_me_returns_caller(client, owner_headers):
    r = client.get("/auth/me", headers=owner_headers)
    assert r.status_code == 200
    assert r.json()["data"]["user"]["email"] == "owner-a@example.com"


def test_refresh_rotates_and_old_token_is_rejected(client, app, gym_a):
    # Scenario E
    _login(client, "owner-a@example.com")
    r1 = client.cookies.get("refresh_token")
    assert r1

    r = client.post("/auth/refresh")
    assert r.status_code == 200
    assert r.json()["data"]["accessToken"]
    r2 = client.cookies.get("refresh_token")
    assert r2 and r2 != r1

    with TestClient(app) as stale:
        again = stale.post("/auth/refresh", headers={"Cookie": f"refresh_token={r1}"})
    assert again.status_code == 401
    assert again.json()["error"]["code"] == "token_invalid"

    # the current token still works
    assert client.post("/auth/refresh").status_code == 200


def test_refresh_without_cookie_is_401(client):
    assert client.post("/auth/refresh").status_code == 401


def test_logout_invalidates_refresh_token(client, app, gym_a):
    login = _login(client, "owner-a@example.com")
    token = client.cookies.get("refresh_token")
    headers = {"Authorization": f"Bearer {login.json()['data']['accessToken']}"}

    assert client.post("/auth/logout", headers=headers).status_code == 200

    with TestClient(app) as other:
        assert other.post("/auth/refresh", headers={"Cookie": f"refresh_token={token}"}).status_code == 401


def test_change_password(client, owner_headers):
    r = client.post("/auth/change-password", headers=owner_headers,
                    json={"currentPassword": "wrong", "newPassword": "another1"})
    assert r.status_code == 401

    r = client.post("/auth/change-password", headers=owner_headers,
                    json={"currentPassword": PASSWORD, "newPassword": "another1"})
    assert r.status_code == 200
    assert _login(client, "owner-a@example.com", "another1").status_code == 200
    assert _login(client, "owner-a@example.com", PASSWORD).status_code == 401


# ---------- register ----------

def test_owner_registers_staff_into_own_gym(client, owner_headers, gym_a):
    r = client.post("/auth/register", headers=owner_headers, json={
        "email": "newstaff@example.com", "password": "abcdef", "name": "New", "phone": "1", "role": STAFF,
    })
    assert r.status_code == 201
    me = _login(client, "newstaff@example.com", "abcdef").json()["data"]["user"]
    assert me["gymId"] == gym_a[0].gym_id


def test_owner_cannot_register_into_another_gym(client, owner_headers, gym_b):
    r = client.post("/auth/register", headers=owner_headers, json={
        "email": "sneaky@example.com", "password": "abcdef", "name": "S", "phone": "1",
        "role": STAFF, "gymId": gym_b[0].gym_id,
    })
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "cross_tenant_access"


def test_owner_cannot_create_superadmin(client, owner_headers):
    r = client.post("/auth/register", headers=owner_headers, json={
        "email": "boss@example.com", "password": "abcdef", "name": "B", "phone": "1", "role": SUPER_ADMIN,
    })
    assert r.status_code == 422


def test_staff_cannot_register(client, staff_headers):
    r = client.post("/auth/register", headers=staff_headers, json={
        "email": "x@example.com", "password": "abcdef", "name": "X", "phone": "1", "role": TRAINER,
    })
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "insufficient_role"


def test_duplicate_email_is_409(client, owner_headers):
    r = client.post("/auth/register", headers=owner_headers, json={
        "email": "OWNER-A@example.com", "password": "abcdef", "name": "Dup", "phone": "1", "role": STAFF,
    })
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "duplicate_identity"


def test_superadmin_registers_into_named_gym(client, superadmin, seed, gym_b):
    headers = seed.headers(superadmin)
    r = client.post("/auth/register", headers=headers, json={
        "email": "trainer-b@example.com", "password": "abcdef", "name": "T", "phone": "1",
        "role": TRAINER, "gymId": gym_b[0].gym_id,
    })
    assert r.status_code == 201
    assert _login(client, "trainer-b@example.com", "abcdef").json()["data"]["user"]["gymId"] == gym_b[0].gym_id

    missing = client.post("/auth/register", headers=headers, json={
        "email": "t2@example.com", "password": "abcdef", "name": "T", "phone": "1",
        "role": TRAINER, "gymId": "GYMDOESNOTEXIST",
    })
    assert missing.status_code == 404


def test_validation_errors_use_envelope(client, owner_headers):
    r = client.post("/auth/register", headers=owner_headers, json={"email": "bad", "password": "1"})
    assert r.status_code == 422
    body = r.json()
    assert body["success"] is False
    assert body["error"]["code"] == "validation_error"
    assert isinstance(body["error"]["details"], list)
