"""Database models for the WishMaker authentication core."""

from wishmaker_auth.models.auth_challenge import AuthChallenge, ChallengeType
from wishmaker_auth.models.auth_session import AuthSession
from wishmaker_auth.models.security_event import SecurityEvent, SecurityEventType
from wishmaker_auth.models.user import User
from wishmaker_auth.models.user_preferences import UserPreferences
from wishmaker_auth.models.webauthn_credential import WebAuthnCredential

__all__ = [
    "AuthChallenge",
    "AuthSession",
    "ChallengeType",
    "SecurityEvent",
    "SecurityEventType",
    "User",
    "UserPreferences",
    "WebAuthnCredential",
]
