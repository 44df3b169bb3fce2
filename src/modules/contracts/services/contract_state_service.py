import logging
import uuid
from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from database import utcnow
from modules.contracts.exceptions import (
    AlreadySigned,
    ContractForbidden,
    ContractNotFound,
    InvalidContractState,
    ContractValidationError,
)
from modules.contracts.models.audit_event import AuditAction, ContractAuditEvent
from modules.contracts.models.contract import (
    SIGNABLE_STATUSES,
    Contract,
    ContractStatus,
)
from modules.contracts.models.signature import PartyRole, Signature, SignatureMethod
from modules.contracts.repositories.contract_repository import ContractRepository
from modules.contracts.services.contract_notifier import ContractNotifier
from modules.contracts.services.permission import Actor, is_party_or_admin, party_role
from modules.contracts.services.signature_verification_service import SignatureVerificationService
from modules.notifications.services.notification_service import CONTRACT_CANCELLED, CONTRACT_SIGNED

logger = logging.getLogger(__name__)

ACTION_SIGN = "sign"
ACTION_REJECT = "reject"
ACTION_APPROVE = "approve"
ACTION_CANCEL = "cancel"


class ContractStateService:
    """
    Owns the contract status field.

    draft -> sent -> pending_signatures -> signed -> executed, with cancelled
    reachable from every non-terminal status. Checks run in the order
    NotFound, Forbidden, InvalidState, AlreadySigned and all of them happen
    before anything is written, so a rejected call leaves the contract as it was.
    """

    def __init__(self, repository: ContractRepository,
                 verification_service: SignatureVerificationService,
                 notifier: Optional[ContractNotifier] = None):
        self.repository = repository
        self.verification_service = verification_service
        self.notifier = notifier

    # --- queries ---

    def get_available_actions(self, contract_id: int, actor: Actor) -> List[str]:
        """
        Actions the actor may take right now, in the order sign, reject,
        approve, cancel. Read only.
        """
        contract = self._get_contract(contract_id)
        if not is_party_or_admin(actor, contract):
            raise ContractForbidden("Unauthorized to view contract status options")

        actions = []
        if contract.status in SIGNABLE_STATUSES:
            if self._can_sign(actor, contract):
                actions.append(ACTION_SIGN)
            actions.append(ACTION_REJECT)

        if actor.is_admin and contract.status == ContractStatus.SIGNED:
            actions.append(ACTION_APPROVE)

        if not contract.is_terminal:
            actions.append(ACTION_CANCEL)

        return actions

    def get_signable_parties(self, contract_id: int, actor: Actor) -> List[PartyRole]:
        """
        Sides the actor can still sign for, artist first. A party only ever gets
        its own side; an admin gets every unsigned side and must pick one as
        ``on_behalf_of`` when signing.
        """
        contract = self._get_contract(contract_id)
        if not is_party_or_admin(actor, contract):
            raise ContractForbidden("Unauthorized to view contract status options")
        if contract.status not in SIGNABLE_STATUSES or not self._can_sign(actor, contract):
            return []

        unsigned = []
        if contract.artist_signed_at is None:
            unsigned.append(PartyRole.ARTIST)
        if contract.venue_signed_at is None:
            unsigned.append(PartyRole.VENUE)
        if actor.is_admin:
            return unsigned
        return [role for role in unsigned if role == party_role(actor, contract)]

    # --- transitions ---

    def sign(self, contract_id: int, actor: Actor, signature_data: str,
             signature_method: SignatureMethod,
             on_behalf_of: Optional[PartyRole] = None) -> Signature:
        """
        Records the actor's signature, issues its certificate and moves the
        contract to pending_signatures, or to signed once both parties signed.
        """
        contract = self._get_contract(contract_id)
        signer_role = self._resolve_signer_role(actor, contract, on_behalf_of)

        if contract.is_terminal:
            raise InvalidContractState(f"Cannot sign a contract that is {contract.status.value}")
        if signer_role is None:
            raise ContractValidationError(
                "Admins must state which party (artist or venue) they sign for"
            )

        if (self.repository.get_signature(contract.id, actor.user_id)
                or self.repository.get_signature_for_role(contract.id, signer_role)):
            raise AlreadySigned(f"Contract {contract.id} already signed by the {signer_role.value} party")

        if contract.status not in SIGNABLE_STATUSES:
            raise InvalidContractState(f"Cannot sign a contract that is {contract.status.value}")

        self.verification_service.validate_signature_data(signature_method, signature_data)

        signed_at = utcnow()
        certificate = self.verification_service.capture_signature(
            signer_name=actor.name,
            signer_email=actor.email,
            signer_role=signer_role.value,
            signature_data=signature_data,
            contract_id=contract.id,
            timestamp=signed_at,
        )

        signature = Signature(
            contract_id=contract.id,
            signer_id=actor.user_id,
            signer_role=signer_role,
            signer_name=actor.name,
            signer_email=actor.email,
            signature_data=signature_data,
            signature_method=signature_method,
            ip_address=actor.ip_address,
            user_agent=actor.user_agent,
            verification_token=str(uuid.uuid4()),
            certificate_number=certificate.certificate_number,
            signature_hash=certificate.signature_hash,
            verification_hash=certificate.verification_hash,
            signed_at=signed_at,
            issued_at=certificate.issued_at,
            expires_at=certificate.expires_at,
        )

        previous_status = contract.status
        updates = {}
        if signer_role == PartyRole.ARTIST:
            updates["artist_signed_at"] = signed_at
            other_signed = contract.venue_signed_at is not None
        else:
            updates["venue_signed_at"] = signed_at
            other_signed = contract.artist_signed_at is not None
        updates["status"] = ContractStatus.SIGNED if other_signed else ContractStatus.PENDING_SIGNATURES

        try:
            self.repository.create_signature(signature)
            self.repository.update_contract(contract.id, updates)
            self._record(contract, actor, AuditAction.SIGNED, previous_status, {
                "signer_role": signer_role.value,
                "signature_method": signature_method.value,
                "certificate_number": certificate.certificate_number,
            })
            self.repository.commit()
        except IntegrityError as e:
            self.repository.rollback()
            logger.warning("Concurrent signature rejected on contract %s: %s", contract_id, e.orig)
            raise AlreadySigned(
                f"Contract {contract_id} already signed by the {signer_role.value} party"
            ) from e

        self._log_transition(contract, previous_status)
        if contract.status == ContractStatus.SIGNED and self.notifier:
            self.notifier.notify(contract, CONTRACT_SIGNED)
        return signature

    def reject(self, contract_id: int, actor: Actor, reason: str) -> Contract:
        contract = self._get_contract(contract_id)
        if not is_party_or_admin(actor, contract):
            raise ContractForbidden("Unauthorized to reject this contract")
        if contract.status not in SIGNABLE_STATUSES:
            raise InvalidContractState(f"Cannot reject a contract that is {contract.status.value}")

        return self._cancel(contract, actor, AuditAction.REJECTED, reason)

    def approve(self, contract_id: int, actor: Actor, notes: Optional[str] = None) -> Contract:
        contract = self._get_contract(contract_id)
        if not actor.is_admin:
            raise ContractForbidden("Only admins can approve contracts")
        if contract.status != ContractStatus.SIGNED:
            raise InvalidContractState(f"Cannot approve a contract that is {contract.status.value}")

        self.repository.update_contract(contract.id, {
            "approved_at": utcnow(),
            "approval_notes": notes,
        })
        self._record(contract, actor, AuditAction.APPROVED, contract.status, {"notes": notes})
        self.repository.commit()
        logger.info("Contract %s approved by admin %s", contract.id, actor.user_id)
        return contract

    def cancel(self, contract_id: int, actor: Actor, reason: Optional[str] = None) -> Contract:
        contract = self._get_contract(contract_id)
        if not is_party_or_admin(actor, contract):
            raise ContractForbidden("Unauthorized to cancel this contract")
        if contract.is_terminal:
            raise InvalidContractState(f"Cannot cancel a contract that is {contract.status.value}")

        return self._cancel(contract, actor, AuditAction.CANCELLED, reason)

    def send_for_signature(self, contract_id: int, actor: Actor) -> Contract:
        """Marks a draft as sent to both parties."""
        contract = self._get_contract(contract_id)
        if not is_party_or_admin(actor, contract):
            raise ContractForbidden("Unauthorized to send this contract")
        if contract.status != ContractStatus.DRAFT:
            raise InvalidContractState(f"Only drafts can be sent, contract is {contract.status.value}")

        return self._transition(contract, actor, AuditAction.SENT, {"status": ContractStatus.SENT})

    def execute(self, contract_id: int, actor: Actor) -> Contract:
        """Event completed: a signed contract becomes executed."""
        contract = self._get_contract(contract_id)
        if not actor.is_admin:
            raise ContractForbidden("Only admins can mark contracts as executed")
        if contract.status != ContractStatus.SIGNED:
            raise InvalidContractState(f"Cannot execute a contract that is {contract.status.value}")

        return self._transition(contract, actor, AuditAction.EXECUTED, {
            "status": ContractStatus.EXECUTED,
            "executed_at": utcnow(),
        })

    # --- helpers ---

    def _get_contract(self, contract_id: int) -> Contract:
        contract = self.repository.get_contract(contract_id)
        if not contract:
            raise ContractNotFound(f"Contract {contract_id} not found")
        return contract

    @staticmethod
    def _resolve_signer_role(actor: Actor, contract: Contract,
                             on_behalf_of: Optional[PartyRole]) -> Optional[PartyRole]:
        """The party being signed for. None when an admin did not say which one."""
        if actor.is_admin:
            return on_behalf_of

        role = party_role(actor, contract)
        if role is None:
            raise ContractForbidden("Unauthorized to sign this contract")
        if on_behalf_of is not None and on_behalf_of != role:
            raise ContractForbidden(f"Only admins can sign on behalf of the {on_behalf_of.value} party")
        return role

    def _can_sign(self, actor: Actor, contract: Contract) -> bool:
        if self.repository.get_signature(contract.id, actor.user_id):
            return False
        if actor.is_admin:
            return contract.artist_signed_at is None or contract.venue_signed_at is None

        role = party_role(actor, contract)
        if role == PartyRole.ARTIST:
            return contract.artist_signed_at is None
        if role == PartyRole.VENUE:
            return contract.venue_signed_at is None
        return False

    def _cancel(self, contract: Contract, actor: Actor, action: AuditAction,
                reason: Optional[str]) -> Contract:
        contract = self._transition(contract, actor, action, {
            "status": ContractStatus.CANCELLED,
            "cancelled_at": utcnow(),
            "cancellation_reason": reason,
        }, {"reason": reason})
        if self.notifier:
            self.notifier.notify(contract, CONTRACT_CANCELLED, reason=reason)
        return contract

    def _transition(self, contract: Contract, actor: Actor, action: AuditAction,
                    updates: dict, details: Optional[dict] = None) -> Contract:
        previous_status = contract.status
        self.repository.update_contract(contract.id, updates)
        self._record(contract, actor, action, previous_status, details)
        self.repository.commit()
        self._log_transition(contract, previous_status)
        return contract

    def _record(self, contract: Contract, actor: Actor, action: AuditAction,
                from_status: ContractStatus, details: Optional[dict] = None):
        self.repository.add_audit_event(ContractAuditEvent(
            contract_id=contract.id,
            actor_id=actor.user_id,
            actor_role=actor.role.value,
            action=action,
            from_status=from_status.value,
            to_status=contract.status.value,
            details=details or {},
            ip_address=actor.ip_address,
            user_agent=actor.user_agent,
        ))

    @staticmethod
    def _log_transition(contract: Contract, previous_status: ContractStatus):
        if previous_status != contract.status:
            logger.info(
                "Contract %s moved from %s to %s",
                contract.id, previous_status.value, contract.status.value
            )
