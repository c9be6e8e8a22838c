"""Tests for session tokens, refresh rotation, logout and session cleanup."""

from datetime import timedelta

from jose import jwt
from sqlalchemy import select

from wishmaker_auth.database import utcnow
from wishmaker_auth.models.auth_session import AuthSession
from wishmaker_auth.security.context import RequestContext
from wishmaker_auth.services.session_service import SessionService

from helpers import EMAIL, PASSWORD, bearer


async def _refresh(client, token, refresh_token):
    return await client.post(
        "/api/auth/refresh",
        json={"refreshToken": refresh_token},
        headers=bearer(token),
    )


async def _sessions(db_session):
    stmt = select(AuthSession).order_by(AuthSession.id).execution_options(populate_existing=True)
    return list((await db_session.execute(stmt)).scalars().all())


async def test_session_row_stores_only_refresh_hash(client, session_tokens, db_session):
    [session] = await _sessions(db_session)

    assert session.is_active is True
    assert session.refresh_token_hash != session_tokens["refresh_token"]
    assert session.refresh_token_hash.startswith("$2")
    assert len(session.device_fingerprint) == 64
    assert session.expires_at - session.created_at == timedelta(hours=24)


async def test_token_claims(client, session_tokens, auth_context):
    claims = jwt.decode(
        session_tokens["session_token"],
        auth_context.signing_secret,
        algorithms=["HS256"],
    )

    assert claims["user_id"] == session_tokens["user"]["id"]
    assert claims["sub"] == str(session_tokens["user"]["id"])
    assert claims["session_id"].startswith("session_")
    assert claims["exp"] - claims["iat"] == 24 * 3600
    assert session_tokens["refresh_token"] not in session_tokens["session_token"]


async def test_me_requires_bearer_token(client):
    response = await client.get("/api/auth/me")

    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHORIZED"


async def test_me_rejects_forged_token(client, session_tokens):
    forged = jwt.encode(
        {"sub": "1", "user_id": 1, "session_id": "session_x"},
        "a-different-secret-of-plenty-of-length",
        algorithm="HS256",
    )

    response = await client.get("/api/auth/me", headers=bearer(forged))

    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_TOKEN"


async def test_refresh_rotates_refresh_token(client, session_tokens, db_session):
    response = await _refresh(
        client, session_tokens["session_token"], session_tokens["refresh_token"]
    )

    assert response.status_code == 200
    session = response.json()["session"]
    assert session["refresh_token"] != session_tokens["refresh_token"]
    assert session["expires_in"] == 24 * 3600

    me = await client.get("/api/auth/me", headers=bearer(session["token"]))
    assert me.status_code == 200

    again = await _refresh(client, session["token"], session["refresh_token"])
    assert again.status_code == 200


async def test_reused_refresh_token_revokes_session(client, session_tokens, db_session):
    rotated = await _refresh(
        client, session_tokens["session_token"], session_tokens["refresh_token"]
    )
    new_token = rotated.json()["session"]["token"]

    replay = await _refresh(client, new_token, session_tokens["refresh_token"])

    assert replay.status_code == 401
    assert replay.json()["code"] == "INVALID_REFRESH_TOKEN"

    [session] = await _sessions(db_session)
    assert session.is_active is False

    me = await client.get("/api/auth/me", headers=bearer(new_token))
    assert me.status_code == 401
    assert me.json()["code"] == "INVALID_SESSION"


async def test_expired_token_can_still_be_refreshed(client, session_tokens, auth_context, db_session):
    [session] = await _sessions(db_session)
    service = SessionService(db_session, auth_context)
    stale_token = service.sign_session_token(
        session.user_id, session.session_token, utcnow() - timedelta(hours=25)
    )

    me = await client.get("/api/auth/me", headers=bearer(stale_token))
    assert me.status_code == 401
    assert me.json()["code"] == "INVALID_TOKEN"

    response = await _refresh(client, stale_token, session_tokens["refresh_token"])
    assert response.status_code == 200


async def test_refresh_requires_refresh_token(client, session_tokens):
    response = await client.post(
        "/api/auth/refresh", json={}, headers=bearer(session_tokens["session_token"])
    )

    assert response.status_code == 400
    assert response.json()["code"] == "MISSING_FIELDS"


async def test_logout_revokes_current_session(client, session_tokens):
    headers = bearer(session_tokens["session_token"])

    response = await client.post("/api/auth/logout", headers=headers)

    assert response.status_code == 200
    assert response.json()["revoked"] == 1

    me = await client.get("/api/auth/me", headers=headers)
    assert me.status_code == 401


async def test_logout_everywhere(client, session_tokens):
    second = await client.post(
        "/api/auth/login", json={"email": EMAIL, "password": PASSWORD}
    )

    response = await client.post(
        "/api/auth/logout",
        json={"allSessions": True},
        headers=bearer(session_tokens["session_token"]),
    )

    assert response.status_code == 200
    assert response.json()["revoked"] == 2

    me = await client.get("/api/auth/me", headers=bearer(second.json()["session_token"]))
    assert me.status_code == 401


async def test_security_events_feed(client, session_tokens):
    response = await client.get(
        "/api/auth/security-events",
        params={"limit": 10},
        headers=bearer(session_tokens["session_token"]),
    )

    assert response.status_code == 200
    event_types = [event["event_type"] for event in response.json()["events"]]
    assert event_types[0] == "login_success"
    assert "user_registered" in event_types


async def test_cleanup_removes_expired_and_idle_sessions(auth_context, db_session, registered_user):
    service = SessionService(db_session, auth_context)
    keep = await service.create_session(registered_user["id"], RequestContext())
    expired = await service.create_session(registered_user["id"], RequestContext())
    idle = await service.create_session(registered_user["id"], RequestContext())

    now = utcnow()
    (await service.get_session(expired.session_id)).expires_at = now - timedelta(minutes=1)
    (await service.get_session(idle.session_id)).last_activity_at = now - timedelta(days=31)
    await db_session.commit()

    assert await service.cleanup_expired_sessions() == 2

    remaining = [session.session_token for session in await _sessions(db_session)]
    assert remaining == [keep.session_id]
