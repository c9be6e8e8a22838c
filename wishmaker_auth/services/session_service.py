"""Session issuance, refresh and revocation."""

import calendar
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Tuple

from jose import JWTError, jwt
from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from wishmaker_auth.database import utcnow
from wishmaker_auth.exceptions import AuthenticationError
from wishmaker_auth.models.auth_session import AuthSession
from wishmaker_auth.models.user import User
from wishmaker_auth.security.context import AuthContext, RequestContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedSession:
    """Raw tokens handed to the client. The refresh token is not stored in clear."""

    token: str
    refresh_token: str
    expires_in: int
    session_id: str

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
        }


def generate_session_id() -> str:
    """Generate a unique session identifier."""
    return f"session_{uuid.uuid4()}"


def generate_refresh_token() -> str:
    """Opaque refresh token, independent of the signed session token."""
    return f"refresh_{secrets.token_hex(32)}"


def _timestamp(moment: datetime) -> int:
    return calendar.timegm(moment.utctimetuple())


class SessionService:
    """Service class for server-side sessions."""

    def __init__(self, db: AsyncSession, context: AuthContext):
        """Initialize session service with database session and auth context."""
        self.db = db
        self.context = context
        self.settings = context.settings

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(hours=self.settings.session_ttl_hours)

    def sign_session_token(self, user_id: int, session_id: str, issued_at: datetime) -> str:
        """
        Create the signed session token.

        Args:
            user_id: Session owner
            session_id: Server-side session identifier
            issued_at: Issue time (naive UTC)

        Returns:
            str: Encoded JWT
        """
        payload = {
            "sub": str(user_id),
            "user_id": user_id,
            "session_id": session_id,
            "iat": _timestamp(issued_at),
            "exp": _timestamp(issued_at + self.session_ttl),
        }
        return jwt.encode(
            payload,
            self.context.signing_secret,
            algorithm=self.settings.jwt_algorithm,
        )

    def decode_session_token(self, token: str, verify_expiry: bool = True) -> dict:
        """
        Verify and decode a session token.

        Args:
            token: Encoded JWT
            verify_expiry: Reject tokens past their ``exp`` claim

        Returns:
            dict: Token claims

        Raises:
            AuthenticationError: If the signature or claims are invalid
        """
        try:
            claims = jwt.decode(
                token,
                self.context.signing_secret,
                algorithms=[self.settings.jwt_algorithm],
                options={"verify_exp": verify_expiry},
            )
        except JWTError:
            raise AuthenticationError(
                "Invalid or expired session token", code="INVALID_TOKEN"
            )

        if not claims.get("session_id") or claims.get("user_id") is None:
            raise AuthenticationError("Invalid session token", code="INVALID_TOKEN")

        return claims

    async def create_session(
        self, user_id: int, request_context: RequestContext
    ) -> IssuedSession:
        """
        Issue a new session for a user.

        Args:
            user_id: Authenticated user
            request_context: Client details for the session record

        Returns:
            IssuedSession: Signed token, refresh token and lifetime in seconds
        """
        now = utcnow()
        session_id = generate_session_id()
        refresh_token = generate_refresh_token()
        refresh_hash = await self.context.hasher.hash_refresh_token(refresh_token)

        session = AuthSession(
            user_id=user_id,
            session_token=session_id,
            refresh_token_hash=refresh_hash,
            device_fingerprint=request_context.device_fingerprint,
            ip_address=request_context.ip_address,
            user_agent=request_context.user_agent,
            is_active=True,
            expires_at=now + self.session_ttl,
            created_at=now,
            last_activity_at=now,
        )
        self.db.add(session)
        await self.db.commit()

        logger.info("Session created for user %s", user_id)

        return IssuedSession(
            token=self.sign_session_token(user_id, session_id, now),
            refresh_token=refresh_token,
            expires_in=int(self.session_ttl.total_seconds()),
            session_id=session_id,
        )

    async def get_session(self, session_id: str) -> AuthSession:
        stmt = select(AuthSession).where(AuthSession.session_token == session_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active_session(self, token: str) -> Tuple[AuthSession, User]:
        """
        Resolve a bearer token to its active session and user.

        Bumps the session's last activity time.

        Raises:
            AuthenticationError: If the token, session or user is not usable
        """
        claims = self.decode_session_token(token)
        session = await self.get_session(claims["session_id"])
        if session is None or not session.is_usable() or session.user_id != claims["user_id"]:
            raise AuthenticationError("Session expired or revoked", code="INVALID_SESSION")

        user = await self.db.get(User, session.user_id)
        if user is None or not user.is_active:
            raise AuthenticationError("Session expired or revoked", code="INVALID_SESSION")

        session.last_activity_at = utcnow()
        return session, user

    async def refresh_session(
        self,
        token: str,
        refresh_token: str,
        request_context: RequestContext,
    ) -> Tuple[IssuedSession, AuthSession]:
        """
        Exchange a refresh token for a new signed token.

        The bearer token may be past its ``exp`` claim but its signature must
        verify. The refresh token is rotated and the session expiry slides
        forward. A refresh token that does not match deactivates the session.

        Args:
            token: Current (possibly expired) session token
            refresh_token: Refresh token issued with it
            request_context: Client details

        Returns:
            Tuple[IssuedSession, AuthSession]: New tokens and the session row

        Raises:
            AuthenticationError: If the session cannot be refreshed
        """
        claims = self.decode_session_token(token, verify_expiry=False)
        session = await self.get_session(claims["session_id"])
        if session is None or not session.is_usable() or session.user_id != claims["user_id"]:
            raise AuthenticationError("Session expired or revoked", code="INVALID_SESSION")

        matches = await self.context.hasher.verify_refresh_token(
            refresh_token, session.refresh_token_hash
        )
        if not matches:
            session.is_active = False
            await self.db.commit()
            logger.warning(
                "Refresh token mismatch for session %s, session revoked", session.id
            )
            raise AuthenticationError("Invalid refresh token", code="INVALID_REFRESH_TOKEN")

        now = utcnow()
        new_refresh_token = generate_refresh_token()
        new_hash = await self.context.hasher.hash_refresh_token(new_refresh_token)

        # Rotation only succeeds against the hash that was just verified
        stmt = (
            update(AuthSession)
            .where(
                AuthSession.id == session.id,
                AuthSession.is_active.is_(True),
                AuthSession.refresh_token_hash == session.refresh_token_hash,
            )
            .values(
                refresh_token_hash=new_hash,
                expires_at=now + self.session_ttl,
                last_activity_at=now,
                ip_address=request_context.ip_address,
                user_agent=request_context.user_agent,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount != 1:
            raise AuthenticationError("Invalid refresh token", code="INVALID_REFRESH_TOKEN")
        await self.db.commit()
        await self.db.refresh(session)

        issued = IssuedSession(
            token=self.sign_session_token(session.user_id, session.session_token, now),
            refresh_token=new_refresh_token,
            expires_in=int(self.session_ttl.total_seconds()),
            session_id=session.session_token,
        )
        return issued, session

    async def revoke_session(self, session_id: str) -> bool:
        """Deactivate one session. Returns False if it was not active."""
        stmt = (
            update(AuthSession)
            .where(AuthSession.session_token == session_id, AuthSession.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount == 1

    async def revoke_all_for_user(self, user_id: int) -> int:
        """Deactivate every active session of a user."""
        stmt = (
            update(AuthSession)
            .where(AuthSession.user_id == user_id, AuthSession.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount

    async def cleanup_expired_sessions(self) -> int:
        """
        Delete sessions past expiry or idle beyond the inactivity window.

        Returns:
            int: Number of sessions removed
        """
        now = utcnow()
        idle_cutoff = now - timedelta(days=self.settings.session_inactivity_days)
        stmt = delete(AuthSession).where(
            or_(
                AuthSession.expires_at < now,
                AuthSession.last_activity_at < idle_cutoff,
            )
        )
        result = await self.db.execute(stmt)
        await self.db.commit()

        if result.rowcount:
            logger.info("Removed %d expired sessions", result.rowcount)
        return result.rowcount
