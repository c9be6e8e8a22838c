"""User model for the WishMaker authentication core."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from wishmaker_auth.database import Base, utcnow


class User(Base):
    """
    User account.

    Username and email are stored lower-cased so uniqueness is
    case-insensitive. A user is locked while ``account_locked_until`` lies in
    the future.
    """

    __tablename__ = "users"

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        doc="Unique user identifier"
    )

    username = Column(
        String(30),
        unique=True,
        nullable=False,
        index=True,
        doc="Unique username (lower-case)"
    )

    email = Column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
        doc="User's email address (lower-case)"
    )

    password_hash = Column(
        Text,
        nullable=False,
        doc="bcrypt hash of the login password"
    )

    display_name = Column(
        String(255),
        nullable=False,
        doc="Display name shown to the user and to authenticators"
    )

    first_name = Column(String(100), nullable=False, doc="Given name")
    last_name = Column(String(100), nullable=False, doc="Family name")

    # Account status
    is_active = Column(
        Boolean,
        default=True,
        nullable=False,
        doc="Whether the user account is active"
    )

    email_verified = Column(
        Boolean,
        default=False,
        nullable=False,
        doc="Whether the user's email is verified"
    )

    two_factor_enabled = Column(
        Boolean,
        default=False,
        nullable=False,
        doc="Whether login requires a WebAuthn second factor"
    )

    # Security tracking
    failed_login_attempts = Column(
        Integer,
        default=0,
        nullable=False,
        doc="Consecutive failed password attempts"
    )

    account_locked_until = Column(
        DateTime,
        nullable=True,
        doc="Account lock expiration time (UTC)"
    )

    last_login_at = Column(
        DateTime,
        nullable=True,
        doc="Timestamp of last successful password check"
    )

    # Timestamps
    created_at = Column(
        DateTime,
        default=utcnow,
        nullable=False,
        doc="Account creation timestamp"
    )

    updated_at = Column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
        doc="Last account update timestamp"
    )

    # Relationships
    credentials = relationship(
        "WebAuthnCredential",
        back_populates="user",
        cascade="all, delete-orphan",
        doc="User's WebAuthn credentials"
    )

    preferences = relationship(
        "UserPreferences",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
        doc="User's authentication preferences"
    )

    def __repr__(self) -> str:
        """String representation of user."""
        return f"<User(id={self.id}, username='{self.username}')>"

    def is_locked(self, now: Optional[datetime] = None) -> bool:
        """Check if user account is currently locked."""
        if self.account_locked_until is None:
            return False
        return (now or utcnow()) < self.account_locked_until

    def lock_expired(self, now: Optional[datetime] = None) -> bool:
        """A lock was set and has since run out."""
        if self.account_locked_until is None:
            return False
        return not self.is_locked(now)

    def get_webauthn_user_handle(self) -> bytes:
        """WebAuthn user handle: UTF-8 bytes of the user id."""
        return str(self.id).encode("utf-8")

    def to_public_dict(self) -> dict:
        """Fields safe to return to the account owner."""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "display_name": self.display_name,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "two_factor_enabled": self.two_factor_enabled,
            "email_verified": self.email_verified,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
        }
