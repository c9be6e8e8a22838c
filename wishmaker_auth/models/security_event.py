"""Security event model for the append-only audit trail."""

from enum import Enum
from typing import Dict, Optional

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text

from wishmaker_auth.database import Base, utcnow


class SecurityEventType(str, Enum):
    """Types of security events to record."""

    # Account lifecycle
    USER_REGISTERED = "user_registered"

    # Password login
    LOGIN_SUCCESS = "login_success"
    FAILED_LOGIN = "failed_login"
    LOGIN_LOCKED = "login_locked"

    # Credential management
    WEBAUTHN_CREDENTIAL_ADDED = "webauthn_credential_added"
    WEBAUTHN_CREDENTIAL_REVOKED = "webauthn_credential_revoked"

    # Second factor
    WEBAUTHN_LOGIN_SUCCESS = "webauthn_login_success"
    WEBAUTHN_LOGIN_FAILED = "webauthn_login_failed"

    # Sessions
    SESSION_REFRESHED = "session_refreshed"
    SESSION_REFRESH_FAILED = "session_refresh_failed"
    LOGOUT = "logout"


class SecurityEvent(Base):
    """
    Security event record.

    Rows are only ever inserted. ``user_id`` is empty when the event could
    not be tied to an account, e.g. a login attempt for an unknown email.
    """

    __tablename__ = "security_events"

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        doc="Unique event identifier"
    )

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        doc="Reference to the user (if known)"
    )

    event_type = Column(
        String(50),
        nullable=False,
        index=True,
        doc="Type of security event"
    )

    ip_address = Column(
        String(45),  # IPv6 compatible
        nullable=True,
        doc="IP address of the request"
    )

    user_agent = Column(
        Text,
        nullable=True,
        doc="User agent string from the request"
    )

    event_metadata = Column(
        "metadata",
        JSON,
        nullable=True,
        doc="Additional event details (JSON)"
    )

    created_at = Column(
        DateTime,
        default=utcnow,
        nullable=False,
        index=True,
        doc="Event timestamp"
    )

    def __repr__(self) -> str:
        """String representation of security event."""
        return f"<SecurityEvent(id={self.id}, event_type='{self.event_type}')>"

    @classmethod
    def create_event(
        cls,
        event_type: SecurityEventType,
        user_id: Optional[int] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        metadata: Optional[Dict] = None,
    ) -> "SecurityEvent":
        """
        Create a new security event.

        Args:
            event_type: Type of security event
            user_id: User ID (if applicable)
            ip_address: Request IP address
            user_agent: Request user agent
            metadata: Additional details, never secrets

        Returns:
            SecurityEvent: New event instance
        """
        return cls(
            event_type=event_type.value,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            event_metadata=metadata or {},
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "metadata": self.event_metadata or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
