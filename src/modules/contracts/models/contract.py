from sqlalchemy import Column, Integer, String, Text, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from enum import Enum as PyEnum
from database import Base, utcnow

class ContractType(PyEnum):
    RYDER = "ryder"
    PERFORMANCE = "performance"
    CUSTOM = "custom"

class ContractStatus(PyEnum):
    DRAFT = "draft"
    SENT = "sent"
    PENDING_SIGNATURES = "pending_signatures"
    SIGNED = "signed"
    EXECUTED = "executed"
    CANCELLED = "cancelled"

TERMINAL_STATUSES = frozenset({ContractStatus.EXECUTED, ContractStatus.CANCELLED})
SIGNABLE_STATUSES = frozenset({ContractStatus.DRAFT, ContractStatus.SENT, ContractStatus.PENDING_SIGNATURES})

class Contract(Base):
    __tablename__ = 'contracts'

    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, nullable=False, index=True)
    artist_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    venue_id = Column(Integer, ForeignKey('users.id'), nullable=False)

    contract_type = Column(Enum(ContractType), nullable=False, default=ContractType.RYDER)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    status = Column(Enum(ContractStatus), nullable=False, default=ContractStatus.DRAFT)

    artist_signed_at = Column(DateTime, nullable=True)
    venue_signed_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    approval_notes = Column(Text, nullable=True)
    executed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # Rendered PDF
    document_path = Column(String, nullable=True)
    document_sha256 = Column(String(64), nullable=True)

    created_by = Column(Integer, ForeignKey('users.id'), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    artist = relationship("User", foreign_keys=[artist_id])
    venue = relationship("User", foreign_keys=[venue_id])

    signatures = relationship("Signature", back_populates="contract", order_by="Signature.signed_at")
    audit_events = relationship("ContractAuditEvent", back_populates="contract", order_by="ContractAuditEvent.id")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def fully_signed(self) -> bool:
        return self.artist_signed_at is not None and self.venue_signed_at is not None
