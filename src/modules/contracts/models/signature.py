# src/modules/contracts/models/signature.py

from sqlalchemy import Column, Integer, ForeignKey, DateTime, String, Text, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
from enum import Enum as PyEnum
from database import Base

class PartyRole(PyEnum):
    ARTIST = "artist"
    VENUE = "venue"

class SignatureMethod(PyEnum):
    CANVAS = "canvas"
    TYPED = "typed"
    IMAGE = "image"

class Signature(Base):
    """
    One party's signature on a contract, together with the certificate fields
    needed to re-verify it later. Rows are never updated except for the
    verification counters and the expiry reminder stamp.
    """
    __tablename__ = "signatures"
    __table_args__ = (
        UniqueConstraint("contract_id", "signer_id", name="uq_signature_contract_signer"),
        UniqueConstraint("contract_id", "signer_role", name="uq_signature_contract_role"),
    )

    id = Column(Integer, primary_key=True)
    contract_id = Column(Integer, ForeignKey("contracts.id"), nullable=False)
    signer_id   = Column(Integer, ForeignKey("users.id"),     nullable=False)
    signer_role = Column(Enum(PartyRole), nullable=False)
    signer_name = Column(String(255), nullable=False)
    signer_email = Column(String(320), nullable=False)

    signature_data   = Column(Text, nullable=False)
    signature_method = Column(Enum(SignatureMethod), nullable=False)
    ip_address       = Column(String(45), nullable=True)
    user_agent       = Column(Text, nullable=True)
    verification_token = Column(String(36), nullable=False, unique=True)

    # Certificate
    certificate_number = Column(String(50), nullable=False, unique=True)
    signature_hash     = Column(String(64), nullable=False)
    verification_hash  = Column(String(64), nullable=False)
    signed_at  = Column(DateTime, nullable=False)
    issued_at  = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    verification_count = Column(Integer, nullable=False, default=0)
    last_verified_at = Column(DateTime, nullable=True)
    expiry_reminder_sent_at = Column(DateTime, nullable=True)

    contract = relationship("Contract", back_populates="signatures")
    signer   = relationship("User")
