"""Pydantic schemas for API request models."""

from wishmaker_auth.schemas.auth import (
    LoginRequest,
    LogoutRequest,
    RefreshTokenRequest,
    RegisterRequest,
)
from wishmaker_auth.schemas.webauthn import (
    WebAuthnRegistrationComplete,
    WebAuthnRegistrationInitiate,
    WebAuthnVerifyRequest,
)

__all__ = [
    "LoginRequest",
    "LogoutRequest",
    "RefreshTokenRequest",
    "RegisterRequest",
    "WebAuthnRegistrationComplete",
    "WebAuthnRegistrationInitiate",
    "WebAuthnVerifyRequest",
]
