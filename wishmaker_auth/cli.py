"""
WishMaker Auth Command Line Interface.

This module provides CLI commands for running the service, database setup,
housekeeping and signing-secret management.
"""

import asyncio
import secrets
import sys
from typing import Optional

import click

from wishmaker_auth import __version__
from wishmaker_auth.config import Settings
from wishmaker_auth.database import (
    close_db,
    create_engine_from_settings,
    create_session_factory,
    init_db,
)
from wishmaker_auth.exceptions import SecretValidationError
from wishmaker_auth.security.context import AuthContext
from wishmaker_auth.security.entropy import compute_entropy_bits, validate_high_entropy_secret
from wishmaker_auth.services.user_service import UserService
from wishmaker_auth.tasks.scheduler import run_cleanup_now


def _load_settings(database_url: Optional[str] = None) -> Settings:
    if database_url:
        return Settings(database_url=database_url)
    return Settings()


@click.group()
@click.version_option(version=__version__, prog_name="wishmaker-auth")
def main():
    """WishMaker Auth - password and WebAuthn authentication service."""
    pass


@main.command()
@click.option("--host", default="0.0.0.0", help="Host to bind to")
@click.option("--port", default=8000, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload")
def serve(host: str, port: int, reload: bool):
    """Start the authentication server."""
    import uvicorn

    click.echo(f"🚀 Starting WishMaker auth server on {host}:{port}")
    if reload:
        click.echo("🔄 Auto-reload enabled")

    uvicorn.run(
        "wishmaker_auth.main:app",
        host=host,
        port=port,
        reload=reload
    )


@main.group()
def db():
    """Database management commands."""
    pass


@db.command("init")
@click.option("--database-url", help="Database URL")
def db_init(database_url: Optional[str]):
    """Initialize database tables."""
    settings = _load_settings(database_url)

    async def create_tables():
        engine = create_engine_from_settings(settings)
        try:
            await init_db(engine)
        finally:
            await close_db(engine)

    try:
        asyncio.run(create_tables())
    except Exception as e:
        click.echo(f"❌ Database initialization failed: {e}")
        sys.exit(1)

    click.echo("✅ Database initialized successfully!")


@main.command()
@click.option("--database-url", help="Database URL")
def cleanup(database_url: Optional[str]):
    """Delete expired challenges and stale sessions."""
    settings = _load_settings(database_url)

    async def sweep():
        context = AuthContext.from_settings(settings)
        engine = create_engine_from_settings(settings)
        try:
            return await run_cleanup_now(create_session_factory(engine), context)
        finally:
            await close_db(engine)

    try:
        results = asyncio.run(sweep())
    except SecretValidationError as e:
        click.echo(f"❌ {e}")
        sys.exit(1)

    click.echo(f"🧹 Removed {results['challenges_cleaned']} challenges "
               f"and {results['sessions_cleaned']} sessions")


@main.command("generate-secret")
@click.option("--bytes", "num_bytes", default=48, show_default=True, help="Random bytes to encode")
def generate_secret(num_bytes: int):
    """Print a signing secret that passes the startup check."""
    settings = _load_settings()
    secret = secrets.token_urlsafe(num_bytes)
    try:
        validate_high_entropy_secret(
            secret,
            min_length=settings.secret_min_length,
            min_entropy_bits=settings.secret_min_entropy_bits,
        )
    except SecretValidationError as e:
        click.echo(f"❌ {e}. Try a larger --bytes value.")
        sys.exit(1)

    click.echo(secret)


@main.command("check-secret")
def check_secret():
    """Validate the configured JWT_SECRET."""
    settings = _load_settings()
    try:
        validate_high_entropy_secret(
            settings.jwt_secret,
            min_length=settings.secret_min_length,
            min_entropy_bits=settings.secret_min_entropy_bits,
        )
    except SecretValidationError as e:
        click.echo(f"❌ {e}")
        sys.exit(1)

    bits = compute_entropy_bits(settings.jwt_secret)
    click.echo(f"✅ JWT_SECRET is valid ({len(settings.jwt_secret)} characters, {bits:.1f} bits)")


@main.command("unlock-user")
@click.argument("email")
@click.option("--database-url", help="Database URL")
def unlock_user(email: str, database_url: Optional[str]):
    """Clear the lockout of the account registered with EMAIL."""
    settings = _load_settings(database_url)

    async def unlock():
        engine = create_engine_from_settings(settings)
        try:
            async with create_session_factory(engine)() as session:
                return await UserService(session).unlock_user(email)
        finally:
            await close_db(engine)

    user = asyncio.run(unlock())
    if user is None:
        click.echo(f"❌ No user with email {email}")
        sys.exit(1)

    click.echo(f"🔓 Unlocked {user.username}")


@main.command()
def config():
    """Show current configuration (secrets omitted)."""
    settings = _load_settings()

    click.echo("📋 WishMaker Auth Configuration:")
    click.echo(f"Environment: {settings.environment}")
    click.echo(f"Database URL: {settings.database_url}")
    click.echo(f"Debug Mode: {settings.debug}")
    click.echo(f"JWT Secret Set: {bool(settings.jwt_secret)}")
    click.echo(f"Rate Limiting Enabled: {settings.enable_rate_limiting}")
    click.echo(f"Background Tasks Enabled: {settings.enable_background_tasks}")
    click.echo(f"WebAuthn RP ID: {settings.rp_id}")
    click.echo(f"WebAuthn RP Name: {settings.rp_name}")
    click.echo(f"WebAuthn Origin: {settings.origin}")
    click.echo(f"Lockout: {settings.max_login_attempts} attempts / {settings.lockout_minutes} minutes")


if __name__ == "__main__":
    main()
