"""Security utilities: secret validation, hashing, request context."""

from wishmaker_auth.security.context import AuthContext, RequestContext
from wishmaker_auth.security.entropy import (
    compute_entropy_bits,
    validate_high_entropy_secret,
)
from wishmaker_auth.security.passwords import PasswordHasher

__all__ = [
    "AuthContext",
    "RequestContext",
    "PasswordHasher",
    "compute_entropy_bits",
    "validate_high_entropy_secret",
]
