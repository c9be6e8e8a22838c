"""
Per-IP rate limiting for the authentication endpoints.

Uses slowapi with decorator-based limits. Limits are read from settings at
request time so they can be tuned through the environment.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded

from wishmaker_auth.config import Settings, settings
from wishmaker_auth.security.context import _get_client_ip


def _client_key(request: Request) -> str:
    return _get_client_ip(request)


limiter = Limiter(key_func=_client_key)

# Settings the limits are read from; replaced by configure_rate_limiting
_limit_settings = {"current": settings}


def register_limit() -> str:
    return _limit_settings["current"].register_rate_limit


def login_limit() -> str:
    return _limit_settings["current"].login_rate_limit


def webauthn_limit() -> str:
    return _limit_settings["current"].webauthn_rate_limit


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Render a rate-limit overrun in the service's error format."""
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "message": "Too many requests. Please try again later.",
            "code": "RATE_LIMITED",
        },
        headers={"Retry-After": "60"},
    )


def configure_rate_limiting(app: FastAPI, app_settings: Settings) -> Limiter:
    """
    Attach the limiter to the app and register its error handler.

    Args:
        app: FastAPI application instance
        app_settings: Settings deciding whether limits are enforced

    Returns:
        Limiter instance used by the endpoint decorators
    """
    _limit_settings["current"] = app_settings
    limiter.enabled = app_settings.enable_rate_limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    return limiter
