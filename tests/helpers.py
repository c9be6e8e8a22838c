"""Test helpers: settings factory, request payloads and a software authenticator."""

import hashlib
import json
import secrets
import struct
from typing import Optional

import cbor2
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from webauthn.helpers import bytes_to_base64url

from wishmaker_auth.config import Settings

ORIGIN = "http://localhost:3000"
RP_ID = "localhost"
EMAIL = "a@x.com"
PASSWORD = "Str0ngPass!"

# authenticatorData flag bits
FLAG_UP = 0x01
FLAG_UV = 0x04
FLAG_AT = 0x40


class SoftAuthenticator:
    """
    In-memory platform authenticator with one ES256 key pair.

    Produces ``none`` attestations for navigator.credentials.create() and
    signed assertions for navigator.credentials.get().
    """

    def __init__(self, rp_id: str = RP_ID, origin: str = ORIGIN):
        self.rp_id = rp_id
        self.origin = origin
        self.private_key = ec.generate_private_key(ec.SECP256R1())
        self.credential_id = secrets.token_bytes(32)
        self.sign_count = 0

    @property
    def credential_id_b64(self) -> str:
        return bytes_to_base64url(self.credential_id)

    def _rp_id_hash(self) -> bytes:
        return hashlib.sha256(self.rp_id.encode("utf-8")).digest()

    def _client_data(self, ceremony: str, challenge: str, origin: Optional[str]) -> bytes:
        return json.dumps({
            "type": ceremony,
            "challenge": challenge,
            "origin": origin or self.origin,
            "crossOrigin": False,
        }).encode("utf-8")

    def _cose_public_key(self) -> bytes:
        numbers = self.private_key.public_key().public_numbers()
        return cbor2.dumps({
            1: 2,    # kty: EC2
            3: -7,   # alg: ES256
            -1: 1,   # crv: P-256
            -2: numbers.x.to_bytes(32, "big"),
            -3: numbers.y.to_bytes(32, "big"),
        })

    def create(self, challenge: str, origin: Optional[str] = None) -> dict:
        """Registration response for the given options challenge."""
        auth_data = (
            self._rp_id_hash()
            + bytes([FLAG_UP | FLAG_UV | FLAG_AT])
            + struct.pack(">I", self.sign_count)
            + bytes(16)
            + struct.pack(">H", len(self.credential_id))
            + self.credential_id
            + self._cose_public_key()
        )
        attestation_object = cbor2.dumps({"fmt": "none", "attStmt": {}, "authData": auth_data})
        client_data = self._client_data("webauthn.create", challenge, origin)

        return {
            "id": self.credential_id_b64,
            "rawId": self.credential_id_b64,
            "response": {
                "clientDataJSON": bytes_to_base64url(client_data),
                "attestationObject": bytes_to_base64url(attestation_object),
                "transports": ["internal"],
            },
            "type": "public-key",
            "clientExtensionResults": {},
            "authenticatorAttachment": "platform",
        }

    def get(
        self,
        challenge: str,
        sign_count: Optional[int] = None,
        flags: int = FLAG_UP | FLAG_UV,
        origin: Optional[str] = None,
    ) -> dict:
        """
        Authentication response for the given options challenge.

        The counter advances by one unless ``sign_count`` is given.
        """
        if sign_count is None:
            self.sign_count += 1
            sign_count = self.sign_count

        auth_data = self._rp_id_hash() + bytes([flags]) + struct.pack(">I", sign_count)
        client_data = self._client_data("webauthn.get", challenge, origin)
        signature = self.private_key.sign(
            auth_data + hashlib.sha256(client_data).digest(),
            ec.ECDSA(hashes.SHA256()),
        )

        return {
            "id": self.credential_id_b64,
            "rawId": self.credential_id_b64,
            "response": {
                "clientDataJSON": bytes_to_base64url(client_data),
                "authenticatorData": bytes_to_base64url(auth_data),
                "signature": bytes_to_base64url(signature),
            },
            "type": "public-key",
            "clientExtensionResults": {},
            "authenticatorAttachment": "platform",
        }


def make_settings(tmp_path, **overrides) -> Settings:
    """Fast-hashing settings on a throwaway SQLite file."""
    values = dict(
        database_url=f"sqlite:///{tmp_path / 'wishmaker_auth_test.db'}",
        jwt_secret=secrets.token_hex(32),
        environment="test",
        rp_id=RP_ID,
        rp_name="WishMaker",
        origin=ORIGIN,
        password_hash_rounds=4,
        refresh_token_hash_rounds=4,
        enable_rate_limiting=False,
        enable_background_tasks=False,
    )
    values.update(overrides)
    return Settings(**values)


def registration_payload(**overrides) -> dict:
    payload = {
        "username": "alice_01",
        "firstName": "Alice",
        "lastName": "Smith",
        "email": EMAIL,
        "password": PASSWORD,
        "confirmPassword": PASSWORD,
    }
    payload.update(overrides)
    return payload


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def enroll(client, user_id: int, authenticator: SoftAuthenticator) -> dict:
    """Run both WebAuthn registration requests and return the completion body."""
    initiated = await client.post(
        "/api/auth/register/webauthn/initiate", json={"userId": user_id}
    )
    assert initiated.status_code == 200, initiated.text
    challenge = initiated.json()["options"]["challenge"]

    completed = await client.post(
        "/api/auth/register/webauthn/complete",
        json={
            "userId": user_id,
            "credential": authenticator.create(challenge),
            "challenge": challenge,
            "deviceName": "Test Laptop",
        },
    )
    assert completed.status_code == 200, completed.text
    return completed.json()
