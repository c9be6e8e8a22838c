"""Single-use challenges for WebAuthn registration and authentication."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String

from wishmaker_auth.database import Base, utcnow


class ChallengeType(str, Enum):
    """Ceremony a challenge was issued for."""

    REGISTRATION = "registration"
    AUTHENTICATION = "authentication"


class AuthChallenge(Base):
    """
    WebAuthn challenge issued by the server.

    A challenge is valid while unused and unexpired. It is consumed at most
    once, by a conditional update on ``used``.
    """

    __tablename__ = "auth_challenges"

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        doc="Unique challenge identifier"
    )

    challenge = Column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
        doc="Base64url encoded challenge bytes"
    )

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
        doc="User the challenge was issued for"
    )

    challenge_type = Column(
        String(20),
        nullable=False,
        doc="Type of challenge (registration or authentication)"
    )

    origin = Column(
        String(255),
        nullable=False,
        doc="Expected origin for the ceremony"
    )

    expires_at = Column(
        DateTime,
        nullable=False,
        index=True,
        doc="Challenge expiration time"
    )

    used = Column(
        Boolean,
        default=False,
        nullable=False,
        doc="Whether the challenge has been consumed"
    )

    created_at = Column(
        DateTime,
        default=utcnow,
        nullable=False,
        doc="Challenge creation timestamp"
    )

    def __repr__(self) -> str:
        """String representation of challenge."""
        return f"<AuthChallenge(id={self.id}, type='{self.challenge_type}', used={self.used})>"

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check if challenge has expired."""
        return (now or utcnow()) >= self.expires_at

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        """Unused and not yet expired."""
        return not self.used and not self.is_expired(now)

    @classmethod
    def create_challenge(
        cls,
        challenge: str,
        challenge_type: ChallengeType,
        origin: str,
        user_id: Optional[int] = None,
        expires_in_minutes: int = 5,
    ) -> "AuthChallenge":
        """
        Create a new WebAuthn challenge.

        Args:
            challenge: Base64url encoded challenge string
            challenge_type: Type of challenge (registration or authentication)
            origin: Origin the ceremony must come from
            user_id: User the challenge is bound to
            expires_in_minutes: Challenge expiration time in minutes

        Returns:
            AuthChallenge: New challenge instance
        """
        return cls(
            challenge=challenge,
            challenge_type=challenge_type.value,
            origin=origin,
            user_id=user_id,
            used=False,
            expires_at=utcnow() + timedelta(minutes=expires_in_minutes),
        )
