"""Main FastAPI application for the WishMaker authentication service."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wishmaker_auth import __version__
from wishmaker_auth.api.v1.router import api_router
from wishmaker_auth.config import Settings, settings as default_settings
from wishmaker_auth.core.middleware import SecurityHeadersMiddleware
from wishmaker_auth.database import (
    close_db,
    create_engine_from_settings,
    create_session_factory,
    init_db,
)
from wishmaker_auth.exceptions import AuthError
from wishmaker_auth.security.context import AuthContext
from wishmaker_auth.security.rate_limiting import configure_rate_limiting
from wishmaker_auth.tasks.scheduler import start_background_tasks, stop_background_tasks

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Validates the signing secret before anything else; a weak or missing
    secret aborts startup. Then opens the database and starts the cleanup
    scheduler.
    """
    settings: Settings = app.state.settings
    logger.info("Starting WishMaker auth service...")

    try:
        app.state.auth_context = AuthContext.from_settings(settings)
    except Exception as e:
        logger.critical(f"Refusing to start: {e}")
        raise

    engine = create_engine_from_settings(settings)
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    scheduler = None

    try:
        await init_db(engine)
        logger.info("Database initialized successfully")

        if settings.enable_background_tasks:
            scheduler = start_background_tasks(
                app.state.session_factory, app.state.auth_context
            )
        app.state.scheduler = scheduler

        yield

    except Exception as e:
        logger.error(f"Failed to initialize application: {e}")
        raise

    finally:
        logger.info("Shutting down WishMaker auth service...")
        await stop_background_tasks(scheduler)
        await close_db(engine)
        logger.info("Database connections closed")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use, defaults to the environment-derived instance

    Returns:
        FastAPI: Configured application
    """
    settings = settings or default_settings
    configure_logging(settings)

    app = FastAPI(
        title="WishMaker Auth",
        description="Password and WebAuthn/FIDO2 authentication for WishMaker",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(SecurityHeadersMiddleware, settings=settings)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=settings.allowed_methods,
        allow_headers=settings.allowed_headers,
    )

    configure_rate_limiting(app, settings)

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        """Render typed service errors with their status and code."""
        if exc.status_code >= 500:
            logger.error(f"Auth error {exc.code}: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        content = {
            "success": False,
            "message": "Invalid request body",
            "code": "INVALID_REQUEST",
        }
        if settings.debug:
            content["errors"] = [
                {"loc": list(error.get("loc", ())), "msg": error.get("msg")}
                for error in exc.errors()
            ]
        return JSONResponse(status_code=400, content=content)

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled errors."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)

        content = {
            "success": False,
            "message": "Internal server error",
            "code": "INTERNAL_ERROR",
        }
        if settings.debug:
            content["error"] = str(exc)
            content["type"] = type(exc).__name__

        return JSONResponse(status_code=500, content=content)

    # Health check endpoint
    @app.get("/health", tags=["Health"])
    async def health_check() -> dict:
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "wishmaker-auth",
            "version": __version__,
            "environment": settings.environment,
        }

    app.include_router(api_router, prefix="/api/auth")

    return app


app = create_app()
