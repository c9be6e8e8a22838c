"""Password authentication and session endpoints."""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from wishmaker_auth.schemas.auth import (
    LoginRequest,
    LogoutRequest,
    RefreshTokenRequest,
    RegisterRequest,
)
from wishmaker_auth.security.auth import (
    CurrentSession,
    get_auth_service,
    get_bearer_token,
    get_current_session,
    get_request_context,
)
from wishmaker_auth.security.context import RequestContext
from wishmaker_auth.security.rate_limiting import limiter, login_limit, register_limit
from wishmaker_auth.services.auth_service import AuthService

router = APIRouter()


@router.post("/register", status_code=status.HTTP_201_CREATED)
@limiter.limit(register_limit)
async def register_user(
    request: Request,
    payload: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
    request_context: RequestContext = Depends(get_request_context),
) -> Any:
    """
    Register a new user account.

    Creates the account and its default preferences. WebAuthn credentials
    are enrolled separately through the /register/webauthn endpoints.
    """
    return await service.register(
        username=payload.username,
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email,
        password=payload.password,
        confirm_password=payload.confirm_password,
        request_context=request_context,
    )


@router.post("/login")
@limiter.limit(login_limit)
async def login(
    request: Request,
    payload: LoginRequest,
    service: AuthService = Depends(get_auth_service),
    request_context: RequestContext = Depends(get_request_context),
) -> Any:
    """
    Log in with email and password.

    Accounts with two-factor login enabled receive WebAuthn authentication
    options instead of a session and must finish at /verify/biometric.
    """
    return await service.login(payload.email, payload.password, request_context)


@router.post("/refresh")
@limiter.limit(login_limit)
async def refresh_session(
    request: Request,
    payload: RefreshTokenRequest,
    token: str = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
    request_context: RequestContext = Depends(get_request_context),
) -> Any:
    """Exchange the refresh token for a new session token."""
    return await service.refresh(token, payload.refresh_token, request_context)


@router.post("/logout")
async def logout(
    payload: Optional[LogoutRequest] = None,
    current: CurrentSession = Depends(get_current_session),
    service: AuthService = Depends(get_auth_service),
    request_context: RequestContext = Depends(get_request_context),
) -> Any:
    all_sessions = payload.all_sessions if payload else False
    return await service.logout(current.session, request_context, all_sessions)


@router.get("/me")
async def get_current_user_info(
    current: CurrentSession = Depends(get_current_session),
) -> Any:
    """Profile of the authenticated user."""
    return {"success": True, "user": current.user.to_public_dict()}


@router.get("/security-events")
async def list_security_events(
    limit: int = Query(50, ge=1, le=200),
    current: CurrentSession = Depends(get_current_session),
    service: AuthService = Depends(get_auth_service),
) -> Any:
    """Recent security events for the authenticated user, newest first."""
    return await service.recent_security_events(current.user, limit=limit)


@router.get("/health")
async def auth_health() -> dict:
    return {"success": True, "message": "Authentication service is healthy"}
