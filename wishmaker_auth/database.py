"""Database configuration and session management."""

import logging
from datetime import datetime, timezone
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from wishmaker_auth.config import Settings

logger = logging.getLogger(__name__)

# Create declarative base for models
Base = declarative_base()


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Create the async engine for the configured database."""
    url = settings.database_url_async
    engine_kwargs = {
        "echo": settings.debug,
        "future": True,
        "pool_pre_ping": True,
    }
    if not url.startswith("sqlite"):
        engine_kwargs.update(pool_size=5, max_overflow=10, pool_recycle=3600)

    return create_async_engine(url, **engine_kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create the async session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False,
    )


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency function to get database session.

    Yields:
        AsyncSession: Database session
    """
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database tables."""
    async with engine.begin() as conn:
        # Import all models to ensure they are registered
        from wishmaker_auth.models import (  # noqa: F401
            auth_challenge,
            auth_session,
            security_event,
            user,
            user_preferences,
            webauthn_credential,
        )

        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables ready")


async def close_db(engine: AsyncEngine) -> None:
    """Close database connections."""
    await engine.dispose()


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching the stored columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
