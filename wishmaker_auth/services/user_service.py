"""User service for managing user accounts and their audit trail."""

from datetime import timedelta
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wishmaker_auth.database import utcnow
from wishmaker_auth.models.security_event import SecurityEvent, SecurityEventType
from wishmaker_auth.models.user import User
from wishmaker_auth.models.user_preferences import UserPreferences
from wishmaker_auth.security.context import RequestContext


class UserService:
    """Service class for user-related operations."""

    def __init__(self, db: AsyncSession):
        """Initialize user service with database session."""
        self.db = db

    async def create_user(
        self,
        username: str,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
    ) -> User:
        """
        Create a new user account with default preferences.

        The caller is responsible for uniqueness checks and for committing.

        Args:
            username: Validated username
            email: Email address
            password_hash: bcrypt hash of the password
            first_name: Given name
            last_name: Family name

        Returns:
            User: Created user object (flushed, with id)
        """
        user = User(
            username=username.lower(),
            email=email.lower(),
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            display_name=f"{first_name} {last_name}".strip(),
            is_active=True,
            email_verified=False,
            two_factor_enabled=False,
            failed_login_attempts=0,
        )

        self.db.add(user)
        await self.db.flush()  # Flush to get the ID

        self.db.add(UserPreferences.defaults_for(user.id))
        return user

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        """
        Get user by ID.

        Args:
            user_id: User's identifier

        Returns:
            User: User object or None if not found
        """
        return await self.db.get(User, user_id)

    async def get_user_by_username(self, username: str) -> Optional[User]:
        """
        Get user by username (case-insensitive).

        Args:
            username: Username to search for

        Returns:
            User: User object or None if not found
        """
        stmt = select(User).where(User.username == username.lower())
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """
        Get user by email address (case-insensitive).

        Args:
            email: Email address to search for

        Returns:
            User: User object or None if not found
        """
        stmt = select(User).where(User.email == email.lower())
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_preferences(self, user_id: int) -> Optional[UserPreferences]:
        stmt = select(UserPreferences).where(UserPreferences.user_id == user_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    def record_failed_login(
        self, user: User, max_attempts: int, lockout_minutes: int
    ) -> bool:
        """
        Count a wrong password and lock the account at the threshold.

        Args:
            user: User whose password check failed
            max_attempts: Failures that trigger a lock
            lockout_minutes: Lock duration

        Returns:
            bool: True if this failure locked the account
        """
        user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
        if user.failed_login_attempts >= max_attempts:
            user.account_locked_until = utcnow() + timedelta(minutes=lockout_minutes)
            return True
        return False

    def record_successful_login(self, user: User) -> None:
        """Reset failure tracking and stamp the login time."""
        user.failed_login_attempts = 0
        user.account_locked_until = None
        user.last_login_at = utcnow()

    def clear_expired_lock(self, user: User) -> bool:
        """
        Treat a lapsed lock as a fresh start.

        Returns:
            bool: True if a lapsed lock was cleared
        """
        if user.lock_expired():
            user.account_locked_until = None
            user.failed_login_attempts = 0
            return True
        return False

    async def unlock_user(self, email: str) -> Optional[User]:
        """
        Manually unlock a user account.

        Args:
            email: Email of the account to unlock

        Returns:
            User: Unlocked user object or None if not found
        """
        user = await self.get_user_by_email(email)
        if not user:
            return None

        user.account_locked_until = None
        user.failed_login_attempts = 0

        await self.db.commit()
        await self.db.refresh(user)

        return user

    def add_event(
        self,
        event_type: SecurityEventType,
        user_id: Optional[int] = None,
        request_context: Optional[RequestContext] = None,
        metadata: Optional[Dict] = None,
    ) -> SecurityEvent:
        """Stage a security event on the current transaction."""
        event = SecurityEvent.create_event(
            event_type=event_type,
            user_id=user_id,
            ip_address=request_context.ip_address if request_context else None,
            user_agent=request_context.user_agent if request_context else None,
            metadata=metadata,
        )
        self.db.add(event)
        return event

    async def get_security_events(
        self, user_id: int, limit: int = 50
    ) -> List[SecurityEvent]:
        """
        Most recent security events for a user, newest first.

        Args:
            user_id: User's identifier
            limit: Maximum number of events

        Returns:
            List[SecurityEvent]: Events
        """
        stmt = (
            select(SecurityEvent)
            .where(SecurityEvent.user_id == user_id)
            .order_by(SecurityEvent.created_at.desc(), SecurityEvent.id.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
