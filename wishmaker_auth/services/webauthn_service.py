"""WebAuthn service for registration and authentication ceremonies."""

import json
import logging
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool
from webauthn import (
    generate_authentication_options,
    generate_registration_options,
    options_to_json,
    verify_authentication_response,
    verify_registration_response,
)
from webauthn.helpers import (
    base64url_to_bytes,
    bytes_to_base64url,
    parse_authentication_credential_json,
    parse_registration_credential_json,
)
from webauthn.helpers.exceptions import WebAuthnException
from webauthn.helpers.structs import (
    AttestationConveyancePreference,
    AttestationFormat,
    AuthenticationCredential,
    AuthenticatorAttachment,
    AuthenticatorSelectionCriteria,
    AuthenticatorTransport,
    CredentialDeviceType,
    PublicKeyCredentialDescriptor,
    RegistrationCredential,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)
from webauthn.helpers.cose import COSEAlgorithmIdentifier

from wishmaker_auth.database import utcnow
from wishmaker_auth.exceptions import WebAuthnError
from wishmaker_auth.models.auth_challenge import AuthChallenge, ChallengeType
from wishmaker_auth.models.user import User
from wishmaker_auth.models.webauthn_credential import WebAuthnCredential
from wishmaker_auth.security.context import AuthContext

logger = logging.getLogger(__name__)

DEFAULT_DEVICE_NAME = "Biometric Device"
DEFAULT_TRANSPORTS = ["internal"]
SUPPORTED_ALGORITHMS = [
    COSEAlgorithmIdentifier.ECDSA_SHA_256,
    COSEAlgorithmIdentifier.RSASSA_PKCS1_v1_5_SHA_256,
]
_KNOWN_TRANSPORTS = {transport.value for transport in AuthenticatorTransport}


class AuthenticationOutcome(str, Enum):
    VERIFIED = "verified"
    REJECTED = "rejected"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class AuthenticationResult:
    """
    Outcome of an authentication ceremony.

    ``verified`` carries the user and credential, ``rejected`` a reason for a
    well-formed assertion that did not verify, and ``malformed`` the
    WebAuthnError describing a structurally invalid request.
    """

    outcome: AuthenticationOutcome
    user_id: Optional[int] = None
    credential_id: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[WebAuthnError] = None

    @classmethod
    def verified(cls, user_id: int, credential_id: str) -> "AuthenticationResult":
        return cls(AuthenticationOutcome.VERIFIED, user_id=user_id, credential_id=credential_id)

    @classmethod
    def rejected(
        cls,
        reason: str,
        user_id: Optional[int] = None,
        credential_id: Optional[str] = None,
    ) -> "AuthenticationResult":
        return cls(
            AuthenticationOutcome.REJECTED,
            user_id=user_id,
            credential_id=credential_id,
            reason=reason,
        )

    @classmethod
    def malformed(
        cls,
        error: WebAuthnError,
        user_id: Optional[int] = None,
        credential_id: Optional[str] = None,
    ) -> "AuthenticationResult":
        return cls(
            AuthenticationOutcome.MALFORMED,
            user_id=user_id,
            credential_id=credential_id,
            error=error,
        )

    @property
    def is_verified(self) -> bool:
        return self.outcome is AuthenticationOutcome.VERIFIED


@dataclass(frozen=True)
class RegistrationResult:
    verified: bool
    credential_id: str
    credential: WebAuthnCredential

    def to_dict(self) -> dict:
        return {"verified": self.verified, "credentialId": self.credential_id}


def _descriptor(credential: WebAuthnCredential) -> PublicKeyCredentialDescriptor:
    transports = [
        AuthenticatorTransport(transport)
        for transport in credential.transports_list
        if transport in _KNOWN_TRANSPORTS
    ]
    return PublicKeyCredentialDescriptor(
        id=base64url_to_bytes(credential.credential_id),
        transports=transports or None,
    )


class WebAuthnService:
    """Service class for WebAuthn operations."""

    def __init__(self, db: AsyncSession, context: AuthContext):
        """Initialize WebAuthn service with database session and auth context."""
        self.db = db
        self.settings = context.settings

    # Registration

    async def generate_registration_options(self, user_id: int) -> dict:
        """
        Create registration options for a user and persist the challenge.

        Args:
            user_id: User enrolling a credential

        Returns:
            dict: PublicKeyCredentialCreationOptions as JSON-ready dict

        Raises:
            WebAuthnError: USER_NOT_FOUND if the user does not exist
        """
        user = await self.db.get(User, user_id)
        if user is None or not user.is_active:
            raise WebAuthnError("User not found", code="USER_NOT_FOUND", status_code=404)

        existing = await self.get_user_credentials(user.id, active_only=True)

        options = generate_registration_options(
            rp_id=self.settings.rp_id,
            rp_name=self.settings.rp_name,
            user_id=user.get_webauthn_user_handle(),
            user_name=user.username,
            user_display_name=user.display_name,
            challenge=secrets.token_bytes(32),
            timeout=self.settings.webauthn_timeout_ms,
            attestation=AttestationConveyancePreference.NONE,
            authenticator_selection=AuthenticatorSelectionCriteria(
                authenticator_attachment=AuthenticatorAttachment.PLATFORM,
                resident_key=ResidentKeyRequirement.PREFERRED,
                user_verification=UserVerificationRequirement.REQUIRED,
            ),
            exclude_credentials=[_descriptor(cred) for cred in existing],
            supported_pub_key_algs=SUPPORTED_ALGORITHMS,
        )

        self.db.add(
            AuthChallenge.create_challenge(
                challenge=bytes_to_base64url(options.challenge),
                challenge_type=ChallengeType.REGISTRATION,
                origin=self.settings.origin,
                user_id=user.id,
                expires_in_minutes=self.settings.challenge_ttl_minutes,
            )
        )
        await self.db.commit()

        return json.loads(options_to_json(options))

    async def verify_registration(
        self,
        user_id: int,
        credential: Union[str, dict],
        challenge: str,
        device_name: Optional[str] = None,
    ) -> RegistrationResult:
        """
        Verify a registration response and store the new credential.

        Args:
            user_id: User the challenge was issued to
            credential: Browser credential (JSON string or dict)
            challenge: Challenge string from the registration options
            device_name: Optional label for the credential

        Returns:
            RegistrationResult: Stored credential and its external id

        Raises:
            WebAuthnError: INVALID_CHALLENGE, CHALLENGE_MISMATCH,
                MALFORMED_CREDENTIAL, VERIFICATION_FAILED or CREDENTIAL_EXISTS
        """
        stored_challenge = await self._load_valid_challenge(challenge)
        if (
            stored_challenge.user_id != user_id
            or stored_challenge.challenge_type != ChallengeType.REGISTRATION.value
        ):
            raise WebAuthnError(
                "Challenge was not issued for this registration",
                code="CHALLENGE_MISMATCH",
            )

        parsed = self._parse_registration(credential)

        try:
            verification = await run_in_threadpool(
                verify_registration_response,
                credential=parsed,
                expected_challenge=base64url_to_bytes(stored_challenge.challenge),
                expected_origin=stored_challenge.origin,
                expected_rp_id=self.settings.rp_id,
                require_user_verification=True,
                supported_pub_key_algs=SUPPORTED_ALGORITHMS,
            )
        except WebAuthnException as exc:
            logger.warning("Registration verification failed for user %s: %s", user_id, exc)
            raise WebAuthnError(
                "Registration verification failed", code="VERIFICATION_FAILED"
            )

        credential_id = bytes_to_base64url(verification.credential_id)
        if await self.get_credential_by_id(credential_id) is not None:
            raise WebAuthnError(
                "Credential already registered",
                code="CREDENTIAL_EXISTS",
                status_code=409,
            )

        await self._consume_challenge(stored_challenge)

        transports = [t.value for t in (parsed.response.transports or [])]
        is_multi_device = (
            verification.credential_device_type == CredentialDeviceType.MULTI_DEVICE
        )
        stored = WebAuthnCredential(
            user_id=user_id,
            credential_id=credential_id,
            public_key=verification.credential_public_key,
            counter=verification.sign_count,
            device_type="cross-platform" if is_multi_device else "platform",
            backup_eligible=is_multi_device,
            backup_state=verification.credential_backed_up,
            attestation_type=AttestationFormat(verification.fmt or "none").value,
            aaguid=verification.aaguid or None,
            device_name=device_name or DEFAULT_DEVICE_NAME,
            is_active=True,
        )
        stored.transports_list = transports or DEFAULT_TRANSPORTS
        self.db.add(stored)

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise WebAuthnError(
                "Credential already registered",
                code="CREDENTIAL_EXISTS",
                status_code=409,
            )
        await self.db.refresh(stored)

        logger.info("WebAuthn credential registered for user %s", user_id)
        return RegistrationResult(verified=True, credential_id=credential_id, credential=stored)

    # Authentication

    async def generate_authentication_options(self, user_id: int) -> dict:
        """
        Create authentication options for a user's active credentials.

        Raises:
            WebAuthnError: NO_CREDENTIALS_FOUND if the user has none
        """
        credentials = await self.get_user_credentials(user_id, active_only=True)
        if not credentials:
            raise WebAuthnError(
                "No active credentials found",
                code="NO_CREDENTIALS_FOUND",
                status_code=404,
            )

        options = generate_authentication_options(
            rp_id=self.settings.rp_id,
            challenge=secrets.token_bytes(32),
            timeout=self.settings.webauthn_timeout_ms,
            allow_credentials=[_descriptor(cred) for cred in credentials],
            user_verification=UserVerificationRequirement.PREFERRED,
        )

        self.db.add(
            AuthChallenge.create_challenge(
                challenge=bytes_to_base64url(options.challenge),
                challenge_type=ChallengeType.AUTHENTICATION,
                origin=self.settings.origin,
                user_id=user_id,
                expires_in_minutes=self.settings.challenge_ttl_minutes,
            )
        )
        await self.db.commit()

        return json.loads(options_to_json(options))

    async def verify_authentication(
        self, credential: Union[str, dict], challenge: str
    ) -> AuthenticationResult:
        """
        Verify an assertion. The user is derived from the stored credential.

        Args:
            credential: Browser assertion (JSON string or dict)
            challenge: Challenge string from the authentication options

        Returns:
            AuthenticationResult: verified, rejected or malformed
        """
        try:
            stored_challenge = await self._load_valid_challenge(challenge)
            if stored_challenge.challenge_type != ChallengeType.AUTHENTICATION.value:
                raise WebAuthnError(
                    "Challenge was not issued for authentication",
                    code="CHALLENGE_MISMATCH",
                )
            parsed = self._parse_authentication(credential)
        except WebAuthnError as exc:
            return AuthenticationResult.malformed(exc)

        credential_id = bytes_to_base64url(parsed.raw_id)
        stored = await self.get_credential_by_id(credential_id)
        if stored is None or not stored.is_active:
            return AuthenticationResult.malformed(
                WebAuthnError("Credential not found", code="CREDENTIAL_NOT_FOUND"),
                credential_id=credential_id,
            )

        owner = await self.db.get(User, stored.user_id)
        if owner is None or not owner.is_active:
            return AuthenticationResult.malformed(
                WebAuthnError("Credential not found", code="CREDENTIAL_NOT_FOUND"),
                credential_id=credential_id,
            )

        if stored_challenge.user_id is not None and stored_challenge.user_id != stored.user_id:
            return AuthenticationResult.malformed(
                WebAuthnError(
                    "Challenge was not issued for this credential",
                    code="CHALLENGE_MISMATCH",
                ),
                user_id=stored.user_id,
                credential_id=credential_id,
            )

        try:
            verification = await run_in_threadpool(
                verify_authentication_response,
                credential=parsed,
                expected_challenge=base64url_to_bytes(stored_challenge.challenge),
                expected_origin=stored_challenge.origin,
                expected_rp_id=self.settings.rp_id,
                credential_public_key=stored.public_key,
                credential_current_sign_count=stored.counter,
                require_user_verification=True,
            )
        except WebAuthnException as exc:
            logger.warning("Assertion rejected for credential %s: %s", stored.id, exc)
            return AuthenticationResult.rejected(
                str(exc), user_id=stored.user_id, credential_id=credential_id
            )

        try:
            await self._consume_challenge(stored_challenge)
        except WebAuthnError as exc:
            return AuthenticationResult.malformed(
                exc, user_id=stored.user_id, credential_id=credential_id
            )

        new_counter = verification.new_sign_count
        if not await self._advance_counter(stored, new_counter):
            await self.db.commit()
            logger.warning("Signature counter did not advance for credential %s", stored.id)
            return AuthenticationResult.rejected(
                "Signature counter did not advance",
                user_id=stored.user_id,
                credential_id=credential_id,
            )
        await self.db.commit()

        return AuthenticationResult.verified(user_id=stored.user_id, credential_id=credential_id)

    # Credential management

    async def get_user_credentials(
        self,
        user_id: int,
        active_only: bool = False
    ) -> List[WebAuthnCredential]:
        """
        Get user's WebAuthn credentials.

        Args:
            user_id: User's identifier
            active_only: Whether to return only active credentials

        Returns:
            List[WebAuthnCredential]: User's credentials
        """
        stmt = select(WebAuthnCredential).where(
            WebAuthnCredential.user_id == user_id
        )

        if active_only:
            stmt = stmt.where(WebAuthnCredential.is_active.is_(True))

        stmt = stmt.order_by(WebAuthnCredential.created_at)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_credential_by_id(self, credential_id: str) -> Optional[WebAuthnCredential]:
        """Get credential by its base64url credential ID."""
        stmt = select(WebAuthnCredential).where(
            WebAuthnCredential.credential_id == credential_id
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def deactivate_credential(
        self, user_id: int, credential_id: str
    ) -> WebAuthnCredential:
        """
        Soft-delete one of a user's credentials.

        Raises:
            WebAuthnError: CREDENTIAL_NOT_FOUND if the user has no such active credential
        """
        credential = await self.get_credential_by_id(credential_id)
        if credential is None or credential.user_id != user_id or not credential.is_active:
            raise WebAuthnError(
                "Credential not found",
                code="CREDENTIAL_NOT_FOUND",
                status_code=404,
            )

        credential.is_active = False
        await self.db.commit()
        await self.db.refresh(credential)
        return credential

    async def cleanup_expired_challenges(self) -> int:
        """
        Delete challenges past their expiry, used or not.

        Returns:
            int: Number of challenges removed
        """
        stmt = delete(AuthChallenge).where(AuthChallenge.expires_at < utcnow())
        result = await self.db.execute(stmt)
        await self.db.commit()

        if result.rowcount:
            logger.info("Removed %d expired challenges", result.rowcount)
        return result.rowcount

    # Helpers

    async def _load_valid_challenge(self, challenge: str) -> AuthChallenge:
        stmt = select(AuthChallenge).where(AuthChallenge.challenge == challenge)
        result = await self.db.execute(stmt)
        stored = result.scalar_one_or_none()
        if stored is None or not stored.is_valid():
            raise WebAuthnError("Invalid or expired challenge", code="INVALID_CHALLENGE")
        return stored

    async def _consume_challenge(self, stored: AuthChallenge) -> None:
        """Mark a challenge used. Only one caller can win."""
        stmt = (
            update(AuthChallenge)
            .where(AuthChallenge.id == stored.id, AuthChallenge.used.is_(False))
            .values(used=True)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount != 1:
            raise WebAuthnError("Invalid or expired challenge", code="INVALID_CHALLENGE")

    async def _advance_counter(self, stored: WebAuthnCredential, new_counter: int) -> bool:
        """Move the counter forward only if it strictly increases, or both are zero."""
        if new_counter == 0:
            advances = WebAuthnCredential.counter == 0
        else:
            advances = WebAuthnCredential.counter < new_counter

        stmt = (
            update(WebAuthnCredential)
            .where(WebAuthnCredential.id == stored.id, advances)
            .values(counter=new_counter, last_used_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    def _parse_registration(self, credential: Union[str, dict]) -> RegistrationCredential:
        try:
            return parse_registration_credential_json(credential)
        except (WebAuthnException, ValueError, TypeError, KeyError) as exc:
            raise WebAuthnError(
                f"Malformed credential: {exc}", code="MALFORMED_CREDENTIAL"
            )

    def _parse_authentication(self, credential: Union[str, dict]) -> AuthenticationCredential:
        try:
            return parse_authentication_credential_json(credential)
        except (WebAuthnException, ValueError, TypeError, KeyError) as exc:
            raise WebAuthnError(
                f"Malformed credential: {exc}", code="MALFORMED_CREDENTIAL"
            )
