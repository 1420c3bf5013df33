"""Authentication, role guards, error envelope and rate limiting over HTTP."""
import asyncio

from erp_api.core.security import create_refresh_token
from erp_api.repositories.security import SecurityRepository


async def _register(client, email="first@example.com", password="secret123"):
    return await client.post(
        "/api/auth/register",
        json={"email": email, "password": password, "first_name": "Ada", "last_name": "Lovelace"},
    )


async def test_health_and_correlation_id(client):
    resp = await client.get("/api/health", headers={"X-Correlation-ID": "abc-123"})
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Healthy"}
    assert resp.headers["X-Correlation-ID"] == "abc-123"


async def test_unknown_route_uses_error_envelope(client):
    resp = await client.get("/api/nope")
    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert body["path"] == "/api/nope"
    assert body["correlation_id"]


async def test_first_registered_user_is_admin(client):
    first = await _register(client)
    assert first.status_code == 201
    data = first.json()["data"]
    assert data["user"]["role"] == "admin"
    assert data["token"] and data["refresh_token"]
    assert "hashed_password" not in data["user"]

    second = await _register(client, email="second@example.com")
    assert second.status_code == 201
    assert second.json()["data"]["user"]["role"] == "user"


async def test_duplicate_registration_conflicts(client):
    await _register(client)
    resp = await _register(client, email="FIRST@example.com")
    assert resp.status_code == 409
    assert resp.json()["type"] == "conflict"


async def test_concurrent_first_registrations_make_one_admin(client):
    responses = await asyncio.gather(
        _register(client, email="ann@example.com"),
        _register(client, email="bob@example.com"),
    )
    assert [r.status_code for r in responses] == [201, 201]
    roles = sorted(r.json()["data"]["user"]["role"] for r in responses)
    assert roles == ["admin", "user"]


async def test_duplicate_email_insert_is_a_conflict(client, monkeypatch):
    await _register(client)

    async def not_found(self, email):
        return None

    # the pre-check misses, as it would for a concurrent registration; the unique index decides
    monkeypatch.setattr(SecurityRepository, "get_user_by_email", not_found)
    resp = await _register(client, email="first@example.com")
    assert resp.status_code == 409
    assert resp.json()["error"] == "User already exists with this email"


async def test_register_validation_returns_400_with_field_details(client):
    resp = await client.post("/api/auth/register", json={"email": "not-an-email", "password": "x"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["type"] == "validation_error"
    fields = {d["field"] for d in body["details"]}
    assert {"email", "password", "first_name", "last_name"} <= fields


async def test_login_and_me(client):
    await _register(client)
    resp = await client.post("/api/auth/login", json={"email": "first@example.com", "password": "secret123"})
    assert resp.status_code == 200
    token = resp.json()["data"]["token"]

    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["data"]["email"] == "first@example.com"
    assert me.json()["data"]["last_login"] is not None


async def test_login_with_wrong_password(client):
    await _register(client)
    resp = await client.post("/api/auth/login", json={"email": "first@example.com", "password": "nope"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid credentials"


async def test_missing_token_is_rejected(client):
    resp = await client.get("/api/production")
    assert resp.status_code == 401
    assert resp.json()["error"] == "Not authorized, no token"


async def test_garbage_and_refresh_tokens_are_rejected_as_access(client, users):
    resp = await client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Not authorized, token failed"

    refresh = create_refresh_token(subject=str(users["admin"].id))
    resp = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {refresh}"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Not authorized, token failed"


async def test_refresh_issues_new_pair(client, users):
    refresh = create_refresh_token(subject=str(users["operator"].id))
    resp = await client.post("/api/auth/refresh", json={"refresh_token": refresh})
    assert resp.status_code == 200
    assert resp.json()["data"]["user"]["role"] == "operator"


async def test_deactivated_user_is_locked_out(client, users, auth):
    operator_id = str(users["operator"].id)
    resp = await client.put(f"/api/users/{operator_id}", json={"is_active": False}, headers=auth("admin"))
    assert resp.status_code == 200
    assert resp.json()["data"]["is_active"] is False

    resp = await client.get("/api/auth/me", headers=auth("operator"))
    assert resp.status_code == 401
    assert resp.json()["error"] == "Not authorized, account is deactivated"


async def test_user_admin_is_admin_only(client, auth):
    resp = await client.get("/api/users", headers=auth("manager"))
    assert resp.status_code == 403
    assert resp.json()["type"] == "forbidden"

    resp = await client.get("/api/users", headers=auth("admin"))
    assert resp.status_code == 200
    assert resp.json()["pagination"]["total"] == 8


async def test_admin_creates_user_with_role(client, auth):
    resp = await client.post(
        "/api/users",
        json={
            "email": "new.op@example.com",
            "password": "secret123",
            "first_name": "New",
            "last_name": "Operator",
            "role": "operator",
        },
        headers=auth("admin"),
    )
    assert resp.status_code == 201
    assert resp.json()["data"]["role"] == "operator"


async def test_auth_endpoints_are_rate_limited(client):
    await _register(client)
    # registration used one of the five attempts in the window
    for _ in range(4):
        resp = await client.post("/api/auth/login", json={"email": "first@example.com", "password": "secret123"})
        assert resp.status_code == 200

    resp = await client.post("/api/auth/login", json={"email": "first@example.com", "password": "secret123"})
    assert resp.status_code == 429
    body = resp.json()
    assert body["type"] == "rate_limited"
    assert body["error"] == "Too many authentication attempts, please try again later."
    assert int(resp.headers["Retry-After"]) > 0


async def test_rate_limit_does_not_spill_into_other_scopes(client):
    await _register(client)
    for _ in range(5):
        await client.post("/api/auth/login", json={"email": "first@example.com", "password": "bad"})

    resp = await client.get("/api/health")
    assert resp.status_code == 200
