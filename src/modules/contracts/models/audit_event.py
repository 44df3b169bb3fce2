from sqlalchemy import Column, Integer, String, Text, DateTime, Enum, ForeignKey, JSON
from sqlalchemy.orm import relationship
from enum import Enum as PyEnum
from database import Base, utcnow

class AuditAction(PyEnum):
    CREATED = "created"
    UPDATED = "updated"
    SENT = "sent"
    SIGNED = "signed"
    REJECTED = "rejected"
    APPROVED = "approved"
    CANCELLED = "cancelled"
    EXECUTED = "executed"
    DOCUMENT_ATTACHED = "document_attached"

class ContractAuditEvent(Base):
    __tablename__ = 'contract_audit_events'

    id = Column(Integer, primary_key=True)
    contract_id = Column(Integer, ForeignKey('contracts.id'), nullable=False, index=True)
    actor_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    actor_role = Column(String(20), nullable=False)
    action = Column(Enum(AuditAction), nullable=False)
    from_status = Column(String(32), nullable=True)
    to_status = Column(String(32), nullable=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    contract = relationship("Contract", back_populates="audit_events")
