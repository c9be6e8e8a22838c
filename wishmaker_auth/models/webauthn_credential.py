"""WebAuthn credential model for storing user authenticator credentials."""

from typing import List

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
)
from sqlalchemy.orm import relationship

from wishmaker_auth.database import Base, utcnow


class WebAuthnCredential(Base):
    """
    WebAuthn credential model for storing authenticator credentials.

    This model stores the public key produced during WebAuthn registration
    and the signature counter used to detect cloned authenticators. The
    counter never decreases.
    """

    __tablename__ = "webauthn_credentials"

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        doc="Unique credential record identifier"
    )

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        doc="Reference to the user who owns this credential"
    )

    # WebAuthn credential data
    credential_id = Column(
        String(1024),
        unique=True,
        nullable=False,
        index=True,
        doc="WebAuthn credential ID (base64url)"
    )

    public_key = Column(
        LargeBinary,
        nullable=False,
        doc="COSE-encoded public key for verifying assertions"
    )

    counter = Column(
        BigInteger,
        default=0,
        nullable=False,
        doc="Signature counter for clone detection"
    )

    # Authenticator metadata
    device_type = Column(
        String(20),
        nullable=False,
        default="platform",
        doc="Type of device (platform, cross-platform)"
    )

    transports = Column(
        String(255),
        nullable=True,
        doc="Supported transport methods (comma-separated)"
    )

    backup_eligible = Column(
        Boolean,
        default=False,
        nullable=False,
        doc="Whether credential is backup eligible"
    )

    backup_state = Column(
        Boolean,
        default=False,
        nullable=False,
        doc="Whether credential is currently backed up"
    )

    attestation_type = Column(
        String(50),
        nullable=False,
        default="none",
        doc="Attestation conveyance used at registration"
    )

    aaguid = Column(
        String(36),
        nullable=True,
        doc="Authenticator AAGUID"
    )

    device_name = Column(
        String(255),
        nullable=False,
        default="Biometric Device",
        doc="User-friendly name for this credential"
    )

    is_active = Column(
        Boolean,
        default=True,
        nullable=False,
        doc="Whether this credential can be used"
    )

    created_at = Column(
        DateTime,
        default=utcnow,
        nullable=False,
        doc="Credential registration timestamp"
    )

    last_used_at = Column(
        DateTime,
        nullable=True,
        doc="Timestamp of last successful authentication"
    )

    user = relationship(
        "User",
        back_populates="credentials",
        doc="User who owns this credential"
    )

    def __repr__(self) -> str:
        """String representation of credential."""
        return f"<WebAuthnCredential(id={self.id}, user_id={self.user_id})>"

    @property
    def transports_list(self) -> List[str]:
        """Get transports as a list."""
        if not self.transports:
            return []
        return [t.strip() for t in self.transports.split(",") if t.strip()]

    @transports_list.setter
    def transports_list(self, transports: List[str]) -> None:
        """Set transports from a list."""
        self.transports = ",".join(transports) if transports else None

    def to_dict(self) -> dict:
        """Public description of the credential (no key material)."""
        return {
            "id": self.id,
            "credential_id": self.credential_id,
            "device_name": self.device_name,
            "device_type": self.device_type,
            "transports": self.transports_list,
            "backup_eligible": self.backup_eligible,
            "backup_state": self.backup_state,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_used_at": self.last_used_at.isoformat() if self.last_used_at else None,
        }
