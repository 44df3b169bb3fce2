from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from modules.contracts.models.audit_event import ContractAuditEvent
from modules.contracts.models.contract import Contract
from modules.contracts.models.signature import PartyRole, Signature


class ContractRepository:
    """
    Storage for contracts, signatures and their audit trail.

    Methods flush but never commit: the calling service owns the transaction
    so a rejected operation can be rolled back as a whole.
    """

    def __init__(self, db_session: Session):
        self.db = db_session

    # --- contracts ---

    def get_contract(self, contract_id: int) -> Optional[Contract]:
        return self.db.get(Contract, contract_id)

    def create_contract(self, contract: Contract) -> Contract:
        self.db.add(contract)
        self.db.flush()
        return contract

    def update_contract(self, contract_id: int, data: Dict) -> Optional[Contract]:
        contract = self.get_contract(contract_id)
        if not contract:
            return None
        for field, value in data.items():
            setattr(contract, field, value)
        self.db.flush()
        return contract

    def list_contracts_for_user(self, user_id: int, include_all: bool = False) -> List[Contract]:
        query = self.db.query(Contract)
        if not include_all:
            query = query.filter(or_(Contract.artist_id == user_id, Contract.venue_id == user_id))
        return query.order_by(Contract.created_at.desc(), Contract.id.desc()).all()

    # --- signatures ---

    def get_signature(self, contract_id: int, signer_id: int) -> Optional[Signature]:
        return (
            self.db.query(Signature)
            .filter(Signature.contract_id == contract_id, Signature.signer_id == signer_id)
            .first()
        )

    def get_signature_for_role(self, contract_id: int, signer_role: PartyRole) -> Optional[Signature]:
        return (
            self.db.query(Signature)
            .filter(Signature.contract_id == contract_id, Signature.signer_role == signer_role)
            .first()
        )

    def get_signature_by_id(self, signature_id: int) -> Optional[Signature]:
        return self.db.get(Signature, signature_id)

    def create_signature(self, signature: Signature) -> Signature:
        self.db.add(signature)
        self.db.flush()
        return signature

    def list_signatures(self, contract_id: int) -> List[Signature]:
        return (
            self.db.query(Signature)
            .filter(Signature.contract_id == contract_id)
            .order_by(Signature.signed_at, Signature.id)
            .all()
        )

    def list_signatures_expiring_before(self, cutoff: datetime) -> List[Signature]:
        return (
            self.db.query(Signature)
            .filter(
                Signature.expires_at <= cutoff,
                Signature.expiry_reminder_sent_at.is_(None),
            )
            .all()
        )

    # --- audit ---

    def add_audit_event(self, event: ContractAuditEvent) -> ContractAuditEvent:
        self.db.add(event)
        self.db.flush()
        return event

    def list_audit_events(self, contract_id: int) -> List[ContractAuditEvent]:
        return (
            self.db.query(ContractAuditEvent)
            .filter(ContractAuditEvent.contract_id == contract_id)
            .order_by(ContractAuditEvent.created_at, ContractAuditEvent.id)
            .all()
        )

    # --- transaction ---

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()

    def refresh(self, instance):
        self.db.refresh(instance)
