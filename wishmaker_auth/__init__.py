"""
WishMaker Auth - password and WebAuthn/FIDO2 authentication service for WishMaker.

This package provides the authentication core of WishMaker: password
registration and login, biometric second factor via WebAuthn, session and
refresh-token issuance, account lockout and security-event auditing.
"""

__version__ = "1.0.0"

from .config import Settings, settings
from .exceptions import (
    AccountLockedError,
    AuthError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    SecretValidationError,
    ValidationError,
    WebAuthnError,
)

__all__ = [
    "Settings",
    "settings",
    "AuthError",
    "AuthenticationError",
    "AccountLockedError",
    "ConflictError",
    "NotFoundError",
    "SecretValidationError",
    "ValidationError",
    "WebAuthnError",
]
