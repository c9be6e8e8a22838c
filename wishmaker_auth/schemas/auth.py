"""Authentication-related Pydantic schemas."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RequestModel(BaseModel):
    """
    Base for request bodies.

    Fields are optional at the schema level so that missing values are
    reported by the service layer with its own error codes.
    """

    model_config = ConfigDict(populate_by_name=True)


class RegisterRequest(RequestModel):
    """Request schema for account registration."""

    username: Optional[str] = Field(None, description="Requested username")
    first_name: Optional[str] = Field(None, alias="firstName", description="Given name")
    last_name: Optional[str] = Field(None, alias="lastName", description="Family name")
    email: Optional[str] = Field(None, description="Email address")
    password: Optional[str] = Field(None, description="Password")
    confirm_password: Optional[str] = Field(
        None, alias="confirmPassword", description="Password confirmation"
    )


class LoginRequest(RequestModel):
    """Request schema for password login."""

    email: Optional[str] = Field(None, description="Account email")
    password: Optional[str] = Field(None, description="Password")


class RefreshTokenRequest(RequestModel):
    """Request schema for token refresh."""

    refresh_token: Optional[str] = Field(
        None, alias="refreshToken", description="Refresh token"
    )


class LogoutRequest(RequestModel):
    """Request schema for logout."""

    all_sessions: bool = Field(
        False, alias="allSessions", description="End every session of the user"
    )
