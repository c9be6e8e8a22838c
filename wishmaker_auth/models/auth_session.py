"""Server-side session records."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from wishmaker_auth.database import Base, utcnow


class AuthSession(Base):
    """
    Authenticated session.

    ``session_token`` holds the session identifier carried inside the signed
    token. Only the bcrypt hash of the refresh token is stored.
    """

    __tablename__ = "auth_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        doc="Session owner"
    )

    session_token = Column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
        doc="Session identifier (session_<uuid4>)"
    )

    refresh_token_hash = Column(
        Text,
        nullable=False,
        doc="bcrypt hash of the current refresh token"
    )

    device_fingerprint = Column(
        String(64),
        nullable=True,
        doc="SHA-256 over client headers, informational only"
    )

    ip_address = Column(String(45), nullable=True, doc="Client IP address")
    user_agent = Column(Text, nullable=True, doc="Client user agent")

    is_active = Column(Boolean, default=True, nullable=False)

    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_activity_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<AuthSession(id={self.id}, user_id={self.user_id}, active={self.is_active})>"

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check if the session has run past its expiry."""
        return (now or utcnow()) >= self.expires_at

    def is_usable(self, now: Optional[datetime] = None) -> bool:
        """Active and unexpired."""
        return self.is_active and not self.is_expired(now)
