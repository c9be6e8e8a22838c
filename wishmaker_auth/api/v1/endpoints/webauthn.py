"""WebAuthn enrolment, second-factor and credential endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, Request

from wishmaker_auth.schemas.webauthn import (
    WebAuthnRegistrationComplete,
    WebAuthnRegistrationInitiate,
    WebAuthnVerifyRequest,
)
from wishmaker_auth.security.auth import (
    CurrentSession,
    get_auth_service,
    get_current_session,
    get_request_context,
)
from wishmaker_auth.security.context import RequestContext
from wishmaker_auth.security.rate_limiting import limiter, webauthn_limit
from wishmaker_auth.services.auth_service import AuthService

router = APIRouter()


@router.post("/register/webauthn/initiate")
@limiter.limit(webauthn_limit)
async def initiate_registration(
    request: Request,
    payload: WebAuthnRegistrationInitiate,
    service: AuthService = Depends(get_auth_service),
) -> Any:
    """
    Start WebAuthn credential enrolment.

    Returns PublicKeyCredentialCreationOptions for
    navigator.credentials.create() under ``options``.
    """
    return await service.initiate_webauthn_registration(payload.user_id)


@router.post("/register/webauthn/complete")
@limiter.limit(webauthn_limit)
async def complete_registration(
    request: Request,
    payload: WebAuthnRegistrationComplete,
    service: AuthService = Depends(get_auth_service),
    request_context: RequestContext = Depends(get_request_context),
) -> Any:
    """
    Finish WebAuthn credential enrolment.

    Verifies the attestation against the issued challenge, stores the
    credential and enables two-factor login for the user.
    """
    return await service.complete_webauthn_registration(
        user_id=payload.user_id,
        credential=payload.credential,
        challenge=payload.challenge,
        device_name=payload.device_name,
        request_context=request_context,
    )


@router.post("/verify/biometric")
@limiter.limit(webauthn_limit)
async def verify_biometric(
    request: Request,
    payload: WebAuthnVerifyRequest,
    service: AuthService = Depends(get_auth_service),
    request_context: RequestContext = Depends(get_request_context),
) -> Any:
    """
    Complete the second factor of a login.

    The user is identified by the credential in the assertion.
    """
    return await service.verify_webauthn(
        payload.credential, payload.challenge, request_context
    )


@router.get("/webauthn/credentials")
async def list_credentials(
    current: CurrentSession = Depends(get_current_session),
    service: AuthService = Depends(get_auth_service),
) -> Any:
    return await service.list_credentials(current.user)


@router.delete("/webauthn/credentials/{credential_id}")
async def revoke_credential(
    credential_id: str,
    current: CurrentSession = Depends(get_current_session),
    service: AuthService = Depends(get_auth_service),
    request_context: RequestContext = Depends(get_request_context),
) -> Any:
    """Deactivate one of the authenticated user's credentials."""
    return await service.revoke_credential(current.user, credential_id, request_context)
