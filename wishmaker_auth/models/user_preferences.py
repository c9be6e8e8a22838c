"""Per-user authentication preferences."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer
from sqlalchemy.orm import relationship

from wishmaker_auth.database import Base, utcnow


class UserPreferences(Base):
    """Authentication and notification preferences, one row per user."""

    __tablename__ = "user_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        doc="Owning user"
    )

    require_biometric_2fa = Column(Boolean, default=False, nullable=False)
    allow_fallback_methods = Column(Boolean, default=True, nullable=False)
    session_timeout_minutes = Column(Integer, default=480, nullable=False)
    require_fresh_auth_minutes = Column(Integer, default=60, nullable=False)
    email_notifications = Column(Boolean, default=True, nullable=False)
    security_alerts = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="preferences")

    def __repr__(self) -> str:
        return f"<UserPreferences(user_id={self.user_id})>"

    @classmethod
    def defaults_for(cls, user_id: int) -> "UserPreferences":
        """Preferences row with default values for a new user."""
        return cls(
            user_id=user_id,
            require_biometric_2fa=False,
            allow_fallback_methods=True,
            session_timeout_minutes=480,
            require_fresh_auth_minutes=60,
            email_notifications=True,
            security_alerts=True,
        )
