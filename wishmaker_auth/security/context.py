"""Process-wide authentication context and per-request client context."""

import hashlib
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from wishmaker_auth.config import Settings
from wishmaker_auth.security.entropy import validate_high_entropy_secret
from wishmaker_auth.security.passwords import PasswordHasher

logger = logging.getLogger(__name__)

FINGERPRINT_HEADERS = (
    "user-agent",
    "accept-language",
    "accept-encoding",
    "x-screen-resolution",
    "x-timezone-offset",
)


@dataclass(frozen=True)
class AuthContext:
    """
    Validated configuration shared by the authentication services.

    Built once at startup; the signing secret inside it has already passed
    the entropy check.
    """

    settings: Settings
    signing_secret: str
    hasher: PasswordHasher

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthContext":
        """
        Validate the signing secret and build the context.

        Raises:
            SecretValidationError: If the secret is missing or weak
        """
        secret = validate_high_entropy_secret(
            settings.jwt_secret,
            min_length=settings.secret_min_length,
            min_entropy_bits=settings.secret_min_entropy_bits,
        )
        logger.info("Signing secret validated")

        return cls(
            settings=settings,
            signing_secret=secret,
            hasher=PasswordHasher(
                password_rounds=settings.password_hash_rounds,
                refresh_token_rounds=settings.refresh_token_hash_rounds,
            ),
        )


@dataclass(frozen=True)
class RequestContext:
    """Client details captured from an incoming request."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    accept_language: Optional[str] = None
    accept_encoding: Optional[str] = None
    screen_resolution: Optional[str] = None
    timezone_offset: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request) -> "RequestContext":
        headers = request.headers
        return cls(
            ip_address=_get_client_ip(request),
            user_agent=headers.get("user-agent"),
            accept_language=headers.get("accept-language"),
            accept_encoding=headers.get("accept-encoding"),
            screen_resolution=headers.get("x-screen-resolution"),
            timezone_offset=headers.get("x-timezone-offset"),
        )

    @property
    def device_fingerprint(self) -> str:
        """SHA-256 hex digest over the fingerprint headers, '|' separated."""
        parts = [
            self.user_agent or "",
            self.accept_language or "",
            self.accept_encoding or "",
            self.screen_resolution or "",
            self.timezone_offset or "",
        ]
        return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


def _get_client_ip(request: Request) -> str:
    """
    Get client IP address from request.

    Args:
        request: FastAPI request object

    Returns:
        Client IP address
    """
    forwarded_ip = request.headers.get("X-Forwarded-For")
    if forwarded_ip:
        # Take the first IP in case of multiple proxies
        return forwarded_ip.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"
