"""Typed errors raised by the authentication services."""

from typing import Optional


class AuthError(Exception):
    """
    Base class for client-facing authentication errors.

    Carries a human-readable message, a stable machine-readable code and the
    HTTP status the API layer should answer with.
    """

    status_code: int = 400
    code: str = "AUTH_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        """Response body for this error."""
        return {"success": False, "message": self.message, "code": self.code}


class ValidationError(AuthError):
    """Malformed, missing or policy-violating input."""

    status_code = 400
    code = "VALIDATION_ERROR"


class AuthenticationError(AuthError):
    """Wrong credentials or failed second factor."""

    status_code = 401
    code = "INVALID_CREDENTIALS"


class AccountLockedError(AuthenticationError):
    """Account is temporarily locked after repeated failures."""

    status_code = 423
    code = "ACCOUNT_LOCKED"


class ConflictError(AuthError):
    """Unique value already taken."""

    status_code = 409
    code = "CONFLICT"


class NotFoundError(AuthError):
    """Referenced record does not exist."""

    status_code = 404
    code = "NOT_FOUND"


class WebAuthnError(AuthError):
    """WebAuthn protocol or state error (bad challenge, unknown credential, ...)."""

    status_code = 400
    code = "WEBAUTHN_ERROR"

    def __repr__(self) -> str:
        return f"WebAuthnError(code={self.code!r}, message={self.message!r})"


class SecretValidationError(ValueError):
    """The configured signing secret is missing or too weak to serve traffic."""
