from .certificate_service import CertificateService
from .contract_notifier import ContractNotifier
from .contract_service import ContractService
from .contract_state_service import ContractStateService
from .signature_verification_service import SignatureVerificationService

__all__ = [
    'CertificateService',
    'ContractNotifier',
    'ContractService',
    'ContractStateService',
    'SignatureVerificationService',
]
