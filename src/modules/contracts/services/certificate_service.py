import logging
from datetime import timedelta
from typing import Dict, List, Tuple

from database import utcnow
from modules.contracts.exceptions import ContractForbidden, ContractNotFound
from modules.contracts.models.signature import Signature
from modules.contracts.repositories.contract_repository import ContractRepository
from modules.contracts.services.contract_notifier import ContractNotifier
from modules.contracts.services.permission import Actor, is_party_or_admin
from modules.contracts.services.signature_verification_service import (
    SignatureCertificate,
    SignatureVerificationService,
    VerificationResult,
)
from modules.notifications.services.notification_service import CERTIFICATE_EXPIRING

logger = logging.getLogger(__name__)


class CertificateService:
    """Certificates of stored signatures: lookup, re-verification and expiry reminders."""

    def __init__(self, repository: ContractRepository,
                 verification_service: SignatureVerificationService):
        self.repository = repository
        self.verification_service = verification_service

    def get_certificate(self, signature_id: int, actor: Actor) -> Tuple[Signature, SignatureCertificate]:
        signature = self._get_signature(signature_id, actor)
        return signature, self.verification_service.certificate_for(signature)

    def verify(self, signature_id: int, actor: Actor, signature_data: str) -> VerificationResult:
        signature, certificate = self.get_certificate(signature_id, actor)
        result = self.verification_service.verify_signature(certificate, signature_data)
        self._mark_verified([signature])
        self._audit(certificate, result, actor)
        return result

    def render(self, signature_id: int, actor: Actor, signature_data: str) -> str:
        """
        Printable certificate checked against ``signature_data``. Rendering is a
        read: it does not count as a verification.
        """
        _, certificate = self.get_certificate(signature_id, actor)
        result = self.verification_service.verify_signature(certificate, signature_data)
        return self.verification_service.render_certificate(certificate, result)

    def batch_verify(self, contract_id: int, actor: Actor,
                     signature_payloads: Dict[int, str]) -> Dict[int, VerificationResult]:
        """Verifies every signature of a contract; missing payloads come back invalid, not as errors."""
        contract = self.repository.get_contract(contract_id)
        if not contract:
            raise ContractNotFound(f"Contract {contract_id} not found")
        if not is_party_or_admin(actor, contract):
            raise ContractForbidden("Unauthorized to verify signatures on this contract")

        signatures = self.repository.list_signatures(contract.id)
        certificates = [self.verification_service.certificate_for(s) for s in signatures]
        results = self.verification_service.batch_verify_signatures(certificates, signature_payloads)
        self._mark_verified([s for s in signatures if s.id in signature_payloads])
        for certificate in certificates:
            if certificate.key in signature_payloads:
                self._audit(certificate, results[certificate.key], actor)
        return results

    def send_expiry_reminders(self, notifier: ContractNotifier, days_threshold: int) -> List[Signature]:
        """
        Notifies each signer whose certificate expires within ``days_threshold``
        days. A signature is stamped in the same commit as its notification, so
        a failed delivery leaves it to be picked up by the next run.
        """
        cutoff = self.verification_service.clock() + timedelta(days=days_threshold)
        reminded = []
        failed = 0
        for signature in self.repository.list_signatures_expiring_before(cutoff):
            certificate = self.verification_service.certificate_for(signature)
            if not self.verification_service.is_expiring_soon(certificate, days_threshold):
                continue
            signature.expiry_reminder_sent_at = utcnow()
            if notifier.notify(signature.contract, CERTIFICATE_EXPIRING, signature=signature):
                reminded.append(signature)
            else:
                self.repository.rollback()
                failed += 1

        if reminded:
            logger.info("Sent %d certificate expiry reminders", len(reminded))
        if failed:
            logger.warning("%d certificate expiry reminders failed and will be retried", failed)
        return reminded

    def _get_signature(self, signature_id: int, actor: Actor) -> Signature:
        signature = self.repository.get_signature_by_id(signature_id)
        if not signature:
            raise ContractNotFound(f"Signature {signature_id} not found")
        if not is_party_or_admin(actor, signature.contract):
            raise ContractForbidden("Unauthorized to view this signature")
        return signature

    def _mark_verified(self, signatures: List[Signature]):
        if not signatures:
            return
        now = utcnow()
        for signature in signatures:
            signature.verification_count = (signature.verification_count or 0) + 1
            signature.last_verified_at = now
        self.repository.commit()

    def _audit(self, certificate: SignatureCertificate, result: VerificationResult, actor: Actor):
        action = "expired" if result.expired else "verified"
        logger.info(self.verification_service.audit_entry(certificate, action, {
            "outcome": result.outcome,
            "verified_by": actor.user_id,
        }))
