"""Tests for password login, account lockout and two-factor gating."""

from datetime import timedelta

from sqlalchemy import select

from wishmaker_auth.database import utcnow
from wishmaker_auth.models.security_event import SecurityEvent
from wishmaker_auth.models.user import User

from helpers import EMAIL, PASSWORD


async def _login(client, password=PASSWORD, email=EMAIL):
    return await client.post("/api/auth/login", json={"email": email, "password": password})


async def _fetch_user(db_session) -> User:
    stmt = select(User).where(User.email == EMAIL).execution_options(populate_existing=True)
    return (await db_session.execute(stmt)).scalar_one()


async def _event_types(db_session):
    stmt = select(SecurityEvent.event_type).order_by(SecurityEvent.id)
    return list((await db_session.execute(stmt)).scalars().all())


async def test_login_issues_session(client, registered_user, db_session):
    response = await _login(client)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Login successful"
    assert body["session_token"]
    assert body["refresh_token"].startswith("refresh_")
    assert body["expires_in"] == 24 * 3600
    assert body["user"]["email"] == EMAIL
    assert body["user"]["two_factor_enabled"] is False
    assert "password_hash" not in response.text

    user = await _fetch_user(db_session)
    assert user.last_login_at is not None
    assert "login_success" in await _event_types(db_session)


async def test_missing_fields(client):
    response = await client.post("/api/auth/login", json={"email": EMAIL})

    assert response.status_code == 400
    assert response.json()["code"] == "MISSING_FIELDS"


async def test_unknown_email_looks_like_wrong_password(client, registered_user, db_session):
    unknown = await _login(client, email="nobody@x.com")
    wrong = await _login(client, password="WrongPass1!")

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json()["message"] == wrong.json()["message"] == "Invalid credentials"

    stmt = select(SecurityEvent).where(SecurityEvent.event_type == "failed_login")
    events = (await db_session.execute(stmt)).scalars().all()
    assert len(events) == 2
    assert any(event.user_id is None for event in events)


async def test_five_failures_lock_the_account(client, registered_user, db_session):
    for _ in range(4):
        response = await _login(client, password="WrongPass1!")
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid credentials"

    fifth = await _login(client, password="WrongPass1!")
    assert fifth.status_code == 401
    assert fifth.json()["message"].startswith("Too many failed attempts")

    user = await _fetch_user(db_session)
    assert user.failed_login_attempts == 5
    assert user.account_locked_until > utcnow()

    sixth = await _login(client)
    assert sixth.status_code == 423
    assert sixth.json()["code"] == "ACCOUNT_LOCKED"
    assert "session_token" not in sixth.json()
    assert "login_locked" in await _event_types(db_session)


async def test_success_resets_failure_count(client, registered_user, db_session):
    for _ in range(3):
        await _login(client, password="WrongPass1!")

    response = await _login(client)
    assert response.status_code == 200

    user = await _fetch_user(db_session)
    assert user.failed_login_attempts == 0
    assert user.account_locked_until is None


async def test_lapsed_lock_starts_fresh(client, registered_user, db_session):
    user = await _fetch_user(db_session)
    user.failed_login_attempts = 5
    user.account_locked_until = utcnow() - timedelta(minutes=1)
    await db_session.commit()

    wrong = await _login(client, password="WrongPass1!")
    assert wrong.status_code == 401
    assert wrong.json()["message"] == "Invalid credentials"

    user = await _fetch_user(db_session)
    assert user.failed_login_attempts == 1
    assert user.account_locked_until is None


async def test_two_factor_user_gets_challenge_not_session(client, enrolled_user, db_session):
    response = await _login(client)

    assert response.status_code == 200
    body = response.json()
    assert body["require_2fa"] is True
    assert body["message"] == "Password verified. Complete 2FA to continue."
    assert body["challenge"]["challenge"]
    assert body["challenge"]["rpId"] == "localhost"
    assert body["challenge"]["userVerification"] == "preferred"
    assert len(body["challenge"]["allowCredentials"]) == 1
    assert "session_token" not in body
    assert "refresh_token" not in body

    user = await _fetch_user(db_session)
    assert user.last_login_at is not None


async def test_deactivated_user_cannot_log_in(client, registered_user, db_session):
    user = await _fetch_user(db_session)
    user.is_active = False
    await db_session.commit()

    response = await _login(client)
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid credentials"
