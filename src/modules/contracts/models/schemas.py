from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from modules.contracts.models.audit_event import AuditAction
from modules.contracts.models.contract import ContractStatus, ContractType
from modules.contracts.models.signature import PartyRole, SignatureMethod


class ContractCreate(BaseModel):
    booking_id: int
    artist_id: int
    venue_id: int
    contract_type: ContractType = ContractType.RYDER
    title: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1)
    status: ContractStatus = ContractStatus.PENDING_SIGNATURES


class ContractUpdate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=255)
    content: Optional[str] = None


class ContractResponse(BaseModel):
    id: int
    booking_id: int
    artist_id: int
    venue_id: int
    contract_type: ContractType
    title: str
    content: str
    status: ContractStatus
    artist_signed_at: Optional[datetime] = None
    venue_signed_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approval_notes: Optional[str] = None
    executed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    document_sha256: Optional[str] = None
    created_by: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SignRequest(BaseModel):
    signature_data: str = Field(min_length=1)
    signature_method: SignatureMethod
    # Required for admins, who are never implicitly a party
    on_behalf_of: Optional[PartyRole] = None


class RejectRequest(BaseModel):
    reason: str = Field(min_length=1)


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class ApproveRequest(BaseModel):
    notes: Optional[str] = None


class SignatureResponse(BaseModel):
    id: int
    contract_id: int
    signer_id: int
    signer_role: PartyRole
    signer_name: str
    signature_method: SignatureMethod
    signed_at: datetime
    certificate_number: str
    expires_at: datetime
    verification_count: int

    model_config = {"from_attributes": True}


class SignResponse(BaseModel):
    message: str
    signature: SignatureResponse
    verification_token: str
    contract_status: ContractStatus


class AvailableActionsResponse(BaseModel):
    contract_id: int
    current_status: ContractStatus
    available_actions: List[str]
    # Unsigned sides the caller may sign for; admins must send one as on_behalf_of
    signable_parties: List[PartyRole] = Field(default_factory=list)
    can_sign: bool
    can_reject: bool
    can_approve: bool
    can_cancel: bool


class AuditEventResponse(BaseModel):
    id: int
    contract_id: int
    actor_id: int
    actor_role: str
    action: AuditAction
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class CertificateResponse(BaseModel):
    signature_id: Optional[int]
    contract_id: int
    signer_name: str
    signer_email: str
    signer_role: str
    signature_hash: str
    verification_hash: str
    timestamp: datetime
    issued_at: datetime
    expires_at: datetime
    certificate_number: str
    expiring_soon: bool

    model_config = {"from_attributes": True}


class VerifyRequest(BaseModel):
    signature_data: str


class VerificationResponse(BaseModel):
    is_valid: bool
    tamper_detected: bool
    outcome: str
    reason: Optional[str] = None
    timestamp: datetime
    expires_at: datetime

    model_config = {"from_attributes": True}


class BatchVerifyRequest(BaseModel):
    # signature id -> payload to check against that signature's certificate
    payloads: Dict[int, str] = Field(default_factory=dict)


class BatchVerifyResponse(BaseModel):
    contract_id: int
    results: Dict[int, VerificationResponse]
