"""Integration tests for the session management routes."""
from conftest import DEFAULT_PASSWORD

REFRESH_HEADERS = {"X-Requested-With": "XMLHttpRequest"}


async def _login(client, email):
    r = await client.post("/auth/login", json={"email": email, "password": DEFAULT_PASSWORD})
    assert r.status_code == 200
    return r


def _bearer(login):
    return {"Authorization": f"Bearer {login.json()['access_token']}"}


async def test_listing_requires_access_token(async_client):
    assert (await async_client.get("/auth/sessions")).status_code == 401

    r = await async_client.get("/auth/sessions", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


async def test_list_sessions_flags_current(async_client, make_user):
    make_user(email="ada@tokenward.io")
    laptop = await _login(async_client, "ada@tokenward.io")
    phone = await _login(async_client, "ada@tokenward.io")

    r = await async_client.get("/auth/sessions", headers=_bearer(phone))

    assert r.status_code == 200
    sessions = r.json()["data"]
    assert len(sessions) == 2
    current = [s for s in sessions if s["current"]]
    assert [s["family_id"] for s in current] == [phone.json()["session_id"]]
    assert {s["family_id"] for s in sessions} == {laptop.json()["session_id"], phone.json()["session_id"]}
    assert all("token_hash" not in s and "jti" not in s for s in sessions)


async def test_sessions_are_private_to_their_owner(async_client, make_user):
    make_user(email="ada@tokenward.io")
    make_user(email="grace@tokenward.io")
    ada = await _login(async_client, "ada@tokenward.io")
    grace = await _login(async_client, "grace@tokenward.io")

    ada_sessions = (await async_client.get("/auth/sessions", headers=_bearer(ada))).json()["data"]
    grace_sessions = (await async_client.get("/auth/sessions", headers=_bearer(grace))).json()["data"]
    assert len(ada_sessions) == len(grace_sessions) == 1

    r = await async_client.delete(f"/auth/sessions/{ada_sessions[0]['id']}", headers=_bearer(grace))
    assert r.status_code == 404

    r = await async_client.delete("/auth/sessions/not-a-session", headers=_bearer(grace))
    assert r.status_code == 404


async def test_revoking_a_session_ends_its_refresh(async_client, make_user, refresh_cookie):
    make_user(email="ada@tokenward.io")
    laptop = await _login(async_client, "ada@tokenward.io")
    phone = await _login(async_client, "ada@tokenward.io")
    laptop_cookie = refresh_cookie(laptop).value

    sessions = (await async_client.get("/auth/sessions", headers=_bearer(phone))).json()["data"]
    target = next(s for s in sessions if s["family_id"] == laptop.json()["session_id"])

    r = await async_client.delete(f"/auth/sessions/{target['id']}", headers=_bearer(phone))
    assert r.status_code == 200
    assert r.json()["success"] is True

    async_client.cookies.clear()
    r = await async_client.post(
        "/auth/refresh", headers={**REFRESH_HEADERS, "Cookie": f"refresh_token={laptop_cookie}"},
    )
    assert r.status_code == 401

    # a second revoke finds nothing live
    r = await async_client.delete(f"/auth/sessions/{target['id']}", headers=_bearer(phone))
    assert r.status_code == 404


async def test_sign_out_everywhere_else(async_client, make_user, refresh_cookie):
    make_user(email="ada@tokenward.io")
    await _login(async_client, "ada@tokenward.io")
    await _login(async_client, "ada@tokenward.io")
    current = await _login(async_client, "ada@tokenward.io")

    r = await async_client.delete("/auth/sessions", headers=_bearer(current))

    assert r.status_code == 200
    assert r.json()["data"]["revoked"] == 2

    remaining = (await async_client.get("/auth/sessions", headers=_bearer(current))).json()["data"]
    assert [s["family_id"] for s in remaining] == [current.json()["session_id"]]

    async_client.cookies.clear()
    r = await async_client.post(
        "/auth/refresh",
        headers={**REFRESH_HEADERS, "Cookie": f"refresh_token={refresh_cookie(current).value}"},
    )
    assert r.status_code == 200
