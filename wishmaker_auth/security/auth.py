"""FastAPI dependencies for authenticated requests."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from wishmaker_auth.database import get_db
from wishmaker_auth.exceptions import AuthenticationError
from wishmaker_auth.models.auth_session import AuthSession
from wishmaker_auth.models.user import User
from wishmaker_auth.security.context import AuthContext, RequestContext
from wishmaker_auth.services.auth_service import AuthService
from wishmaker_auth.services.session_service import SessionService

# Bearer token scheme
security = HTTPBearer(auto_error=False)


@dataclass
class CurrentSession:
    """The authenticated session and its owner."""

    session: AuthSession
    user: User
    token: str


def get_auth_context(request: Request) -> AuthContext:
    """Validated authentication context built at startup."""
    return request.app.state.auth_context


def get_request_context(request: Request) -> RequestContext:
    return RequestContext.from_request(request)


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Extract the bearer token without validating it.

    Raises:
        AuthenticationError: If no bearer token was sent
    """
    if not credentials or not credentials.credentials:
        raise AuthenticationError("Authentication required", code="UNAUTHORIZED")
    return credentials.credentials


async def get_current_session(
    token: str = Depends(get_bearer_token),
    db: AsyncSession = Depends(get_db),
    context: AuthContext = Depends(get_auth_context),
) -> CurrentSession:
    """
    Resolve the bearer token to an active session.

    Args:
        token: Signed session token
        db: Database session
        context: Authentication context

    Returns:
        CurrentSession: Session and user

    Raises:
        AuthenticationError: If the token or session is not valid
    """
    session_service = SessionService(db, context)
    session, user = await session_service.get_active_session(token)
    return CurrentSession(session=session, user=user, token=token)


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    context: AuthContext = Depends(get_auth_context),
) -> AuthService:
    return AuthService(db, context)
