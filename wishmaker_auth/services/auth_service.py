"""
Authentication orchestration.

AuthService drives registration, password login with account lockout, the
WebAuthn enrolment and second-factor flows, and session refresh/logout. It is
the layer that decides which outcomes are written to the security audit
trail; lower-level services raise typed errors and it translates them.
"""

import logging
import re
from typing import Any, Optional, Union

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wishmaker_auth.exceptions import (
    AccountLockedError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from wishmaker_auth.models.auth_session import AuthSession
from wishmaker_auth.models.security_event import SecurityEventType
from wishmaker_auth.models.user import User
from wishmaker_auth.security.context import AuthContext, RequestContext
from wishmaker_auth.services.session_service import SessionService
from wishmaker_auth.services.user_service import UserService
from wishmaker_auth.services.webauthn_service import (
    AuthenticationOutcome,
    WebAuthnService,
)

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{3,30}$")
MIN_PASSWORD_LENGTH = 8
MAX_USER_ID = 2 ** 63 - 1
RESERVED_USERNAMES = frozenset({
    "admin",
    "administrator",
    "root",
    "system",
    "support",
    "user",
    "test",
    "api",
    "null",
    "undefined",
    "wishmaker",
    "moderator",
})


def _coerce_user_id(user_id: Any) -> int:
    if isinstance(user_id, bool):
        raise ValidationError("Invalid user ID", code="INVALID_USER_ID")
    try:
        value = int(user_id)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError("Invalid user ID", code="INVALID_USER_ID")
    if not -MAX_USER_ID - 1 <= value <= MAX_USER_ID:
        raise ValidationError("Invalid user ID", code="INVALID_USER_ID")
    return value


def _login_projection(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "two_factor_enabled": user.two_factor_enabled,
        "email_verified": user.email_verified,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "last_login_at": user.last_login_at.isoformat() if user.last_login_at else None,
    }


class AuthService:
    """Service class for the authentication flows."""

    def __init__(self, db: AsyncSession, context: AuthContext):
        """Initialize auth service with database session and auth context."""
        self.db = db
        self.context = context
        self.settings = context.settings
        self.hasher = context.hasher
        self.users = UserService(db)
        self.webauthn = WebAuthnService(db, context)
        self.sessions = SessionService(db, context)

    async def register(
        self,
        username: Optional[str],
        first_name: Optional[str],
        last_name: Optional[str],
        email: Optional[str],
        password: Optional[str],
        confirm_password: Optional[str],
        request_context: RequestContext,
    ) -> dict:
        """
        Create a user account.

        Args:
            username: Requested username
            first_name: Given name
            last_name: Family name
            email: Email address
            password: Password
            confirm_password: Password confirmation
            request_context: Client details for the audit trail

        Returns:
            dict: Response body with the sanitized user

        Raises:
            ValidationError: Missing fields, password or username policy violations
            ConflictError: Email or username already registered
        """
        if not all([username, first_name, last_name, email, password, confirm_password]):
            raise ValidationError(
                "Username, first name, last name, email, password and password "
                "confirmation are required",
                code="MISSING_FIELDS",
            )

        if password != confirm_password:
            raise ValidationError("Passwords do not match", code="PASSWORD_MISMATCH")

        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
                code="PASSWORD_TOO_WEAK",
            )

        try:
            validate_email(email, check_deliverability=False)
        except EmailNotValidError:
            raise ValidationError("Invalid email address", code="INVALID_EMAIL")

        if await self.users.get_user_by_email(email) is not None:
            raise ConflictError("User with this email already exists", code="EMAIL_TAKEN")

        if not USERNAME_PATTERN.match(username):
            raise ValidationError(
                "Username must be 3-30 characters: letters, digits, underscores or hyphens",
                code="INVALID_USERNAME",
            )

        if username.lower() in RESERVED_USERNAMES:
            raise ValidationError("This username is reserved", code="USERNAME_RESERVED")

        if await self.users.get_user_by_username(username) is not None:
            raise ConflictError("Username is already taken", code="USERNAME_TAKEN")

        password_hash = await self.hasher.hash_password(password)
        try:
            user = await self.users.create_user(
                username=username,
                email=email,
                password_hash=password_hash,
                first_name=first_name,
                last_name=last_name,
            )
            self.users.add_event(
                SecurityEventType.USER_REGISTERED,
                user_id=user.id,
                request_context=request_context,
                metadata={
                    "firstName": first_name,
                    "lastName": last_name,
                    "username": user.username,
                    "email": user.email,
                },
            )
            await self.db.commit()
        except IntegrityError:
            # A concurrent registration took the email or username first
            await self.db.rollback()
            await self._raise_registration_conflict(email, username)
            raise

        logger.info("User registered: %s", user.username)

        return {
            "success": True,
            "message": "User registered successfully",
            "user": {
                "id": user.id,
                "firstName": user.first_name,
                "lastName": user.last_name,
                "username": user.username,
                "email": user.email,
                "display_name": user.display_name,
            },
        }

    async def login(
        self,
        email: Optional[str],
        password: Optional[str],
        request_context: RequestContext,
    ) -> dict:
        """
        Check a password and either issue a session or ask for the second factor.

        Args:
            email: Account email
            password: Password
            request_context: Client details for the session and audit trail

        Returns:
            dict: Session response, or ``require_2fa`` with authentication options

        Raises:
            ValidationError: Missing email or password
            AuthenticationError: Unknown email or wrong password
            AccountLockedError: Account is locked
        """
        if not email or not password:
            raise ValidationError("Email and password are required", code="MISSING_FIELDS")

        user = await self.users.get_user_by_email(email)
        if user is None or not user.is_active:
            await self.hasher.dummy_verify()
            self.users.add_event(
                SecurityEventType.FAILED_LOGIN,
                request_context=request_context,
                metadata={"email": email.lower(), "reason": "unknown_account"},
            )
            await self.db.commit()
            raise AuthenticationError("Invalid credentials")

        if user.is_locked():
            self.users.add_event(
                SecurityEventType.LOGIN_LOCKED,
                user_id=user.id,
                request_context=request_context,
                metadata={"email": user.email},
            )
            await self.db.commit()
            raise AccountLockedError(
                "Account is temporarily locked due to too many failed login attempts"
            )

        self.users.clear_expired_lock(user)

        if not await self.hasher.verify_password(password, user.password_hash):
            locked = self.users.record_failed_login(
                user,
                max_attempts=self.settings.max_login_attempts,
                lockout_minutes=self.settings.lockout_minutes,
            )
            self.users.add_event(
                SecurityEventType.FAILED_LOGIN,
                user_id=user.id,
                request_context=request_context,
                metadata={
                    "email": user.email,
                    "failed_attempts": user.failed_login_attempts,
                    "account_locked": locked,
                },
            )
            await self.db.commit()

            if locked:
                logger.warning("Account %s locked after repeated failures", user.id)
                raise AuthenticationError(
                    "Too many failed attempts. Account locked for "
                    f"{self.settings.lockout_minutes} minutes."
                )
            raise AuthenticationError("Invalid credentials")

        self.users.record_successful_login(user)

        credentials = await self.webauthn.get_user_credentials(user.id, active_only=True)
        if user.two_factor_enabled and credentials:
            # Commits the login bookkeeping together with the challenge
            options = await self.webauthn.generate_authentication_options(user.id)
            return {
                "success": True,
                "require_2fa": True,
                "challenge": options,
                "message": "Password verified. Complete 2FA to continue.",
            }

        self.users.add_event(
            SecurityEventType.LOGIN_SUCCESS,
            user_id=user.id,
            request_context=request_context,
            metadata={"email": user.email},
        )
        await self.db.commit()

        issued = await self.sessions.create_session(user.id, request_context)
        return {
            "success": True,
            "message": "Login successful",
            "user": _login_projection(user),
            "session_token": issued.token,
            "refresh_token": issued.refresh_token,
            "expires_in": issued.expires_in,
        }

    async def initiate_webauthn_registration(self, user_id: Any) -> dict:
        """
        Start enrolling a WebAuthn credential.

        Raises:
            ValidationError: Missing or invalid user id
            NotFoundError: Unknown user
        """
        if user_id is None or user_id == "":
            raise ValidationError("User ID is required", code="MISSING_FIELDS")

        user = await self.users.get_user_by_id(_coerce_user_id(user_id))
        if user is None or not user.is_active:
            raise NotFoundError("User not found", code="USER_NOT_FOUND")

        options = await self.webauthn.generate_registration_options(user.id)
        return {
            "success": True,
            "message": "WebAuthn registration options generated",
            "options": options,
        }

    async def complete_webauthn_registration(
        self,
        user_id: Any,
        credential: Optional[Union[str, dict]],
        challenge: Optional[str],
        device_name: Optional[str],
        request_context: RequestContext,
    ) -> dict:
        """
        Verify a new credential and turn on two-factor login.

        Raises:
            ValidationError: Missing fields
            NotFoundError: Unknown user
            WebAuthnError: Challenge, verification or duplicate-credential failures
        """
        if user_id is None or user_id == "" or not credential or not challenge:
            raise ValidationError(
                "User ID, credential, or challenge are required",
                code="MISSING_FIELDS",
            )

        user = await self.users.get_user_by_id(_coerce_user_id(user_id))
        if user is None or not user.is_active:
            raise NotFoundError("User not found", code="USER_NOT_FOUND")

        result = await self.webauthn.verify_registration(
            user.id, credential, challenge, device_name
        )

        user.two_factor_enabled = True
        self.users.add_event(
            SecurityEventType.WEBAUTHN_CREDENTIAL_ADDED,
            user_id=user.id,
            request_context=request_context,
            metadata={
                "device_name": result.credential.device_name,
                "credential_id": result.credential_id,
            },
        )
        await self.db.commit()

        return {
            "success": True,
            "message": "WebAuthn credential registered successfully",
            **result.to_dict(),
        }

    async def verify_webauthn(
        self,
        credential: Optional[Union[str, dict]],
        challenge: Optional[str],
        request_context: RequestContext,
    ) -> dict:
        """
        Complete the second factor and issue a session.

        The user is taken from the stored credential, never from the request.

        Raises:
            ValidationError: Missing fields
            AuthenticationError: The assertion was rejected or malformed
        """
        if not credential or not challenge:
            raise ValidationError(
                "Credential and challenge are required", code="MISSING_FIELDS"
            )

        result = await self.webauthn.verify_authentication(credential, challenge)

        user = None
        if result.is_verified:
            user = await self.users.get_user_by_id(result.user_id)

        if user is None or not user.is_active:
            metadata = {
                "outcome": result.outcome.value,
                "credential_id": result.credential_id,
            }
            if result.outcome is AuthenticationOutcome.MALFORMED:
                metadata["code"] = result.error.code
            elif result.reason:
                metadata["reason"] = result.reason

            self.users.add_event(
                SecurityEventType.WEBAUTHN_LOGIN_FAILED,
                user_id=result.user_id,
                request_context=request_context,
                metadata=metadata,
            )
            await self.db.commit()

            if result.outcome is AuthenticationOutcome.MALFORMED:
                raise AuthenticationError(result.error.message, code=result.error.code)
            raise AuthenticationError("2FA verification failed", code="VERIFICATION_FAILED")

        self.users.add_event(
            SecurityEventType.WEBAUTHN_LOGIN_SUCCESS,
            user_id=user.id,
            request_context=request_context,
            metadata={"credential_id": result.credential_id},
        )
        await self.db.commit()

        issued = await self.sessions.create_session(user.id, request_context)
        return {
            "success": True,
            "message": "2FA verification successful",
            "user": {
                "id": user.id,
                "username": user.username,
                "email": user.email,
                "display_name": user.display_name,
            },
            "session": issued.to_dict(),
        }

    async def refresh(
        self,
        token: str,
        refresh_token: Optional[str],
        request_context: RequestContext,
    ) -> dict:
        """
        Rotate the refresh token and issue a new session token.

        Raises:
            ValidationError: Missing refresh token
            AuthenticationError: The session cannot be refreshed
        """
        if not refresh_token:
            raise ValidationError("Refresh token is required", code="MISSING_FIELDS")

        try:
            issued, session = await self.sessions.refresh_session(
                token, refresh_token, request_context
            )
        except AuthenticationError as exc:
            self.users.add_event(
                SecurityEventType.SESSION_REFRESH_FAILED,
                user_id=self._token_user_id(token),
                request_context=request_context,
                metadata={"code": exc.code},
            )
            await self.db.commit()
            raise

        self.users.add_event(
            SecurityEventType.SESSION_REFRESHED,
            user_id=session.user_id,
            request_context=request_context,
        )
        await self.db.commit()

        return {
            "success": True,
            "message": "Session refreshed",
            "session": issued.to_dict(),
        }

    async def logout(
        self,
        session: AuthSession,
        request_context: RequestContext,
        all_sessions: bool = False,
    ) -> dict:
        """End the current session, or every session of its user."""
        if all_sessions:
            revoked = await self.sessions.revoke_all_for_user(session.user_id)
        else:
            revoked = int(await self.sessions.revoke_session(session.session_token))

        self.users.add_event(
            SecurityEventType.LOGOUT,
            user_id=session.user_id,
            request_context=request_context,
            metadata={"all_sessions": all_sessions, "revoked": revoked},
        )
        await self.db.commit()
        return {"success": True, "message": "Logged out successfully", "revoked": revoked}

    async def list_credentials(self, user: User) -> dict:
        credentials = await self.webauthn.get_user_credentials(user.id, active_only=True)
        return {
            "success": True,
            "credentials": [credential.to_dict() for credential in credentials],
        }

    async def revoke_credential(
        self,
        user: User,
        credential_id: str,
        request_context: RequestContext,
    ) -> dict:
        """
        Deactivate one of the user's credentials.

        Two-factor login is switched off when the last active credential goes.

        Raises:
            WebAuthnError: CREDENTIAL_NOT_FOUND
        """
        credential = await self.webauthn.deactivate_credential(user.id, credential_id)

        remaining = await self.webauthn.get_user_credentials(user.id, active_only=True)
        if not remaining:
            user.two_factor_enabled = False

        self.users.add_event(
            SecurityEventType.WEBAUTHN_CREDENTIAL_REVOKED,
            user_id=user.id,
            request_context=request_context,
            metadata={
                "credential_id": credential.credential_id,
                "device_name": credential.device_name,
            },
        )
        await self.db.commit()

        return {
            "success": True,
            "message": "WebAuthn credential revoked",
            "two_factor_enabled": user.two_factor_enabled,
        }

    async def recent_security_events(self, user: User, limit: int = 50) -> dict:
        events = await self.users.get_security_events(user.id, limit=limit)
        return {"success": True, "events": [event.to_dict() for event in events]}

    async def _raise_registration_conflict(self, email: str, username: str) -> None:
        if await self.users.get_user_by_email(email) is not None:
            raise ConflictError("User with this email already exists", code="EMAIL_TAKEN")
        if await self.users.get_user_by_username(username) is not None:
            raise ConflictError("Username is already taken", code="USERNAME_TAKEN")

    def _token_user_id(self, token: str) -> Optional[int]:
        try:
            claims = self.sessions.decode_session_token(token, verify_expiry=False)
        except AuthenticationError:
            return None
        return claims.get("user_id")
