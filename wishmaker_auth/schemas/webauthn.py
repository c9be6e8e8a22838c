"""WebAuthn-related Pydantic schemas."""

from typing import Any, Dict, Optional, Union

from pydantic import Field

from wishmaker_auth.schemas.auth import RequestModel


class WebAuthnRegistrationInitiate(RequestModel):
    """Request schema for starting credential enrolment."""

    user_id: Optional[Union[int, str]] = Field(
        None, alias="userId", description="User enrolling a credential"
    )


class WebAuthnRegistrationComplete(RequestModel):
    """Request schema for finishing credential enrolment."""

    user_id: Optional[Union[int, str]] = Field(
        None, alias="userId", description="User enrolling a credential"
    )
    credential: Optional[Union[Dict[str, Any], str]] = Field(
        None, description="Credential returned by navigator.credentials.create()"
    )
    challenge: Optional[str] = Field(None, description="Challenge from the options")
    device_name: Optional[str] = Field(
        None, alias="deviceName", max_length=255, description="Label for the credential"
    )


class WebAuthnVerifyRequest(RequestModel):
    """Request schema for the second-factor assertion."""

    credential: Optional[Union[Dict[str, Any], str]] = Field(
        None, description="Assertion returned by navigator.credentials.get()"
    )
    challenge: Optional[str] = Field(None, description="Challenge from the options")
