"""Main API router for the authentication endpoints."""

from fastapi import APIRouter

from wishmaker_auth.api.v1.endpoints import auth, webauthn

api_router = APIRouter()

# Include sub-routers
api_router.include_router(auth.router, tags=["Authentication"])
api_router.include_router(webauthn.router, tags=["WebAuthn"])
