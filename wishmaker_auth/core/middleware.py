"""
Security middleware for the WishMaker auth service.

Adds security and timing headers to every response.
"""

import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from wishmaker_auth import __version__
from wishmaker_auth.config import Settings

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Security headers middleware.

    This middleware handles:
    - Security headers (and HSTS for https deployments)
    - Request timing
    """

    def __init__(self, app: ASGIApp, settings: Settings):
        """
        Initialize the middleware.

        Args:
            app: Wrapped ASGI application
            settings: Application settings
        """
        super().__init__(app)
        self.settings = settings

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Process incoming requests.

        Args:
            request: FastAPI request object
            call_next: Next middleware/route handler

        Returns:
            FastAPI response object
        """
        start_time = time.time()

        if self.settings.debug:
            logger.debug(f"Processing request: {request.method} {request.url.path}")

        response = await call_next(request)

        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)

        self._add_security_headers(response)

        return response

    def _add_security_headers(self, response: Response) -> None:
        """
        Add security headers to the response.

        Args:
            response: FastAPI response object
        """
        security_headers = {
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            "Referrer-Policy": "strict-origin-when-cross-origin",
            "X-WishMaker-Auth-Version": __version__,
        }

        for header, value in security_headers.items():
            response.headers[header] = value

        if self.settings.enable_hsts and self.settings.origin.startswith("https://"):
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
