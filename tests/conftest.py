"""
Shared pytest fixtures for the WishMaker auth tests.

Provides:
- Settings pointing at a throwaway SQLite database
- The application with its lifespan running, and an httpx client for it
- Direct database sessions
- Registered, enrolled and logged-in users
"""

import httpx
import pytest

from wishmaker_auth.config import Settings
from wishmaker_auth.main import create_app

from helpers import (
    EMAIL,
    PASSWORD,
    SoftAuthenticator,
    enroll,
    make_settings,
    registration_payload,
)


# ============================================================================
# Application Fixtures
# ============================================================================

@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
async def app(settings):
    """Application with its lifespan (secret check, tables) running."""
    application = create_app(settings)
    async with application.router.lifespan_context(application):
        yield application


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http


@pytest.fixture
def auth_context(app):
    return app.state.auth_context


@pytest.fixture
async def db_session(app):
    async with app.state.session_factory() as session:
        yield session


# ============================================================================
# User Fixtures
# ============================================================================

@pytest.fixture
def authenticator() -> SoftAuthenticator:
    return SoftAuthenticator()


@pytest.fixture
async def registered_user(client) -> dict:
    """Register alice_01 and return the user projection."""
    response = await client.post("/api/auth/register", json=registration_payload())
    assert response.status_code == 201, response.text
    return response.json()["user"]


@pytest.fixture
async def enrolled_user(client, registered_user, authenticator) -> dict:
    """alice_01 with one WebAuthn credential, so two-factor login is on."""
    await enroll(client, registered_user["id"], authenticator)
    return registered_user


@pytest.fixture
async def session_tokens(client, registered_user) -> dict:
    """Password login body for a user without two-factor login."""
    response = await client.post(
        "/api/auth/login", json={"email": EMAIL, "password": PASSWORD}
    )
    assert response.status_code == 200, response.text
    return response.json()
