import hashlib
import io
import logging
import os
from typing import List, Optional

from PyPDF2 import PdfReader
from sqlalchemy.orm import Session

from modules.contracts.exceptions import (
    ContractForbidden,
    ContractNotFound,
    ContractValidationError,
    DocumentIntegrityError,
    InvalidContractState,
)
from modules.contracts.models.audit_event import AuditAction, ContractAuditEvent
from modules.contracts.models.contract import (
    SIGNABLE_STATUSES,
    Contract,
    ContractStatus,
    ContractType,
)
from modules.contracts.models.signature import Signature
from modules.contracts.models.user import User, UserRole
from modules.contracts.repositories.contract_repository import ContractRepository
from modules.contracts.services.permission import Actor, is_party_or_admin

logger = logging.getLogger(__name__)

INITIAL_STATUSES = (ContractStatus.DRAFT, ContractStatus.PENDING_SIGNATURES)


class ContractService:

    @staticmethod
    def create_contract(
        session: Session,
        actor: Actor,
        booking_id: int,
        artist_id: int,
        venue_id: int,
        title: str,
        content: str,
        contract_type: ContractType = ContractType.RYDER,
        status: ContractStatus = ContractStatus.PENDING_SIGNATURES,
    ) -> Contract:
        """
        Creates the contract for a booking between an artist and a venue.
        Only one of the two parties (or an admin) may create it.
        """
        repo = ContractRepository(session)

        # 1) Actor must be one of the parties
        is_artist = actor.role == UserRole.ARTIST and actor.user_id == artist_id
        is_venue = actor.role == UserRole.VENUE and actor.user_id == venue_id
        if not (is_artist or is_venue or actor.is_admin):
            raise ContractForbidden("Unauthorized to create a contract for this booking")

        # 2) Validate fields
        if status not in INITIAL_STATUSES:
            raise ContractValidationError(
                f"Contracts start as draft or pending_signatures, not {status.value}"
            )
        if not title or not title.strip():
            raise ContractValidationError("Contract title is required")
        if not content or not content.strip():
            raise ContractValidationError("Contract content is required")
        ContractService._validate_party(session, artist_id, UserRole.ARTIST)
        ContractService._validate_party(session, venue_id, UserRole.VENUE)

        # 3) Persist
        contract = repo.create_contract(Contract(
            booking_id=booking_id,
            artist_id=artist_id,
            venue_id=venue_id,
            contract_type=contract_type,
            title=title.strip(),
            content=content,
            status=status,
            created_by=actor.user_id,
        ))
        ContractService._record(repo, contract, actor, AuditAction.CREATED, None,
                                {"booking_id": booking_id})
        repo.commit()
        logger.info("Contract %s created for booking %s by user %s", contract.id, booking_id, actor.user_id)
        return contract

    @staticmethod
    def update_contract(
        session: Session,
        contract_id: int,
        actor: Actor,
        title: Optional[str] = None,
        content: Optional[str] = None,
    ) -> Contract:
        """Edits title/content. Not allowed once anybody has signed."""
        repo = ContractRepository(session)
        contract = ContractService.get_contract(session, contract_id, actor)

        if contract.status not in SIGNABLE_STATUSES:
            raise InvalidContractState(f"Cannot update a contract that is {contract.status.value}")
        if contract.artist_signed_at or contract.venue_signed_at:
            raise InvalidContractState("Cannot update a contract that already has a signature")

        updates = {}
        if title is not None:
            if not title.strip():
                raise ContractValidationError("Contract title cannot be empty")
            updates["title"] = title.strip()
        if content is not None:
            if not content.strip():
                raise ContractValidationError("Contract content cannot be empty")
            updates["content"] = content
        if not updates:
            return contract

        repo.update_contract(contract.id, updates)
        ContractService._record(repo, contract, actor, AuditAction.UPDATED, contract.status,
                                {"fields": sorted(updates)})
        repo.commit()
        return contract

    @staticmethod
    def get_contract(session: Session, contract_id: int, actor: Actor) -> Contract:
        contract = ContractRepository(session).get_contract(contract_id)
        if not contract:
            raise ContractNotFound(f"Contract {contract_id} not found")
        if not is_party_or_admin(actor, contract):
            raise ContractForbidden("Unauthorized to view this contract")
        return contract

    @staticmethod
    def list_contracts(session: Session, actor: Actor) -> List[Contract]:
        """
        Artists and venues see the contracts they are a party to, admins see everything
        """
        if actor.role not in (UserRole.ARTIST, UserRole.VENUE, UserRole.ADMIN):
            return []
        return ContractRepository(session).list_contracts_for_user(actor.user_id, include_all=actor.is_admin)

    @staticmethod
    def list_signatures(session: Session, contract_id: int, actor: Actor) -> List[Signature]:
        contract = ContractService.get_contract(session, contract_id, actor)
        return ContractRepository(session).list_signatures(contract.id)

    @staticmethod
    def get_history(session: Session, contract_id: int, actor: Actor) -> List[ContractAuditEvent]:
        contract = ContractService.get_contract(session, contract_id, actor)
        return ContractRepository(session).list_audit_events(contract.id)

    @staticmethod
    def attach_document(
        session: Session,
        contract_id: int,
        actor: Actor,
        file_contents: bytes,
        filename: str,
        content_type: str,
        upload_dir: str,
        max_file_size: int = 10 * 1024 * 1024  # 10 MB by default
    ) -> Contract:
        """
        Stores the rendered PDF of a contract:
        - validates the file
        - writes it under upload_dir
        - records path and SHA-256 on the contract
        """
        repo = ContractRepository(session)
        contract = ContractService.get_contract(session, contract_id, actor)
        if contract.status == ContractStatus.CANCELLED:
            raise InvalidContractState("Cannot attach a document to a cancelled contract")

        # 1) Validations
        ContractService._validate_file(file_contents, filename, content_type, max_file_size)

        # 2) Hash and write
        sha256 = hashlib.sha256(file_contents).hexdigest()
        os.makedirs(upload_dir, exist_ok=True)
        file_path = os.path.join(upload_dir, f"contract_{contract.id}_{sha256[:12]}.pdf")
        with open(file_path, "wb") as f:
            f.write(file_contents)

        # 3) Record
        repo.update_contract(contract.id, {"document_path": file_path, "document_sha256": sha256})
        ContractService._record(repo, contract, actor, AuditAction.DOCUMENT_ATTACHED, contract.status,
                                {"filename": filename, "sha256": sha256, "size": len(file_contents)})
        repo.commit()
        return contract

    @staticmethod
    def read_document(session: Session, contract_id: int, actor: Actor) -> bytes:
        """Returns the PDF only if it still matches the hash recorded when it was attached."""
        contract = ContractService.get_contract(session, contract_id, actor)
        if not contract.document_path:
            raise ContractNotFound(f"Contract {contract_id} has no document")
        if not os.path.exists(contract.document_path):
            raise ContractNotFound(f"Document for contract {contract_id} is missing from storage")

        with open(contract.document_path, "rb") as f:
            data = f.read()
        if hashlib.sha256(data).hexdigest() != contract.document_sha256:
            logger.warning("Document hash mismatch for contract %s", contract.id)
            raise DocumentIntegrityError("Integrity compromised: document hash does not match")
        return data

    @staticmethod
    def _validate_file(file_contents: bytes, filename: str, content_type: str, max_file_size: int):
        if content_type != "application/pdf":
            raise ContractValidationError("The file must be a PDF")
        if not filename or not filename.lower().endswith(".pdf"):
            raise ContractValidationError("The extension must be .pdf")
        if not file_contents:
            raise ContractValidationError("The file is empty")
        if len(file_contents) > max_file_size:
            raise ContractValidationError(f"Maximum size is {max_file_size // (1024 * 1024)} MB")

        try:
            reader = PdfReader(io.BytesIO(file_contents))
            _ = reader.pages
        except Exception as e:
            raise ContractValidationError("Invalid or damaged PDF") from e

    @staticmethod
    def _validate_party(session: Session, user_id: int, role: UserRole):
        user = session.get(User, user_id)
        if not user or user.role != role:
            raise ContractValidationError(f"User {user_id} is not a {role.value}")

    @staticmethod
    def _record(repo: ContractRepository, contract: Contract, actor: Actor, action: AuditAction,
                from_status: Optional[ContractStatus], details: dict):
        repo.add_audit_event(ContractAuditEvent(
            contract_id=contract.id,
            actor_id=actor.user_id,
            actor_role=actor.role.value,
            action=action,
            from_status=from_status.value if from_status else None,
            to_status=contract.status.value,
            details=details,
            ip_address=actor.ip_address,
            user_agent=actor.user_agent,
        ))
