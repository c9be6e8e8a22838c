"""Service layer for business logic."""

from wishmaker_auth.services.auth_service import AuthService
from wishmaker_auth.services.session_service import IssuedSession, SessionService
from wishmaker_auth.services.user_service import UserService
from wishmaker_auth.services.webauthn_service import (
    AuthenticationOutcome,
    AuthenticationResult,
    WebAuthnService,
)

__all__ = [
    "AuthService",
    "AuthenticationOutcome",
    "AuthenticationResult",
    "IssuedSession",
    "SessionService",
    "UserService",
    "WebAuthnService",
]
