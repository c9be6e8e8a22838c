"""Application configuration settings."""

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with validation and defaults."""

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./wishmaker_auth.db",
        description="Database connection URL"
    )

    # Security Configuration
    jwt_secret: Optional[str] = Field(
        default=None,
        description="Signing secret for session tokens (validated at startup)"
    )
    jwt_algorithm: str = Field(default="HS256", description="JWT algorithm")
    secret_min_length: int = Field(
        default=16, description="Minimum signing secret length"
    )
    secret_min_entropy_bits: float = Field(
        default=128, description="Minimum total Shannon entropy of the signing secret"
    )
    session_ttl_hours: int = Field(
        default=24, description="Server-side session lifetime"
    )
    session_inactivity_days: int = Field(
        default=30, description="Inactive sessions older than this are purged"
    )
    password_hash_rounds: int = Field(
        default=12, description="bcrypt cost factor for login passwords"
    )
    refresh_token_hash_rounds: int = Field(
        default=10, description="bcrypt cost factor for refresh tokens at rest"
    )

    # Account lockout
    max_login_attempts: int = Field(
        default=5, description="Failed password attempts before the account locks"
    )
    lockout_minutes: int = Field(
        default=15, description="Account lock duration"
    )

    # WebAuthn Configuration
    rp_id: str = Field(default="localhost", description="Relying Party ID")
    rp_name: str = Field(default="WishMaker", description="Relying Party Name")
    origin: str = Field(
        default="http://localhost:3000", description="Application origin URL"
    )
    challenge_ttl_minutes: int = Field(
        default=5, description="Server-side challenge validity"
    )
    webauthn_timeout_ms: int = Field(
        default=60000, description="Client-side ceremony timeout advertised in options"
    )

    # Environment Configuration
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Debug mode")

    # CORS Configuration
    allowed_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )
    allowed_methods: List[str] = Field(
        default=["GET", "POST", "PUT", "DELETE"],
        description="Allowed HTTP methods"
    )
    allowed_headers: List[str] = Field(
        default=["*"], description="Allowed headers"
    )

    # Rate Limiting
    enable_rate_limiting: bool = Field(
        default=True, description="Enable per-IP rate limiting on auth endpoints"
    )
    register_rate_limit: str = Field(default="3/hour")
    login_rate_limit: str = Field(default="5/15minutes")
    webauthn_rate_limit: str = Field(default="10/5minutes")

    # Background tasks
    enable_background_tasks: bool = Field(
        default=True, description="Run periodic cleanup tasks"
    )
    challenge_cleanup_interval: int = Field(
        default=300, description="Seconds between expired challenge sweeps"
    )
    session_cleanup_interval: int = Field(
        default=3600, description="Seconds between expired session sweeps"
    )

    # Security Headers
    enable_hsts: bool = Field(default=True, description="Enable HSTS headers")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        allowed = ["development", "test", "staging", "production"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("origin")
    @classmethod
    def validate_origin(cls, v: str) -> str:
        """Validate origin URL format."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Origin must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("password_hash_rounds", "refresh_token_hash_rounds")
    @classmethod
    def validate_hash_rounds(cls, v: int) -> int:
        """bcrypt accepts cost factors between 4 and 31."""
        if not 4 <= v <= 31:
            raise ValueError("bcrypt rounds must be between 4 and 31")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def database_url_async(self) -> str:
        """Get the async driver URL for the configured database."""
        if self.database_url.startswith("sqlite:///"):
            return self.database_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
        if self.database_url.startswith("postgresql://"):
            return self.database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return self.database_url

    def get_webauthn_config(self) -> dict:
        """Get WebAuthn relying-party configuration."""
        return {
            "rp_id": self.rp_id,
            "rp_name": self.rp_name,
            "origin": self.origin,
        }

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Global settings instance
settings = Settings()
