"""Signature certificates for contract e-signatures.

A certificate binds a SHA-256 digest of the captured signature payload to the
signer's email, the contract and the signing time through an HMAC-SHA256
verification hash keyed with the server secret. Re-verification recomputes both
digests; any difference means the payload or the certificate was altered.
Expiry is reported separately and is never treated as tampering.
"""
import hashlib
import hmac
import json
import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, Optional, Union

from database import utcnow
from modules.contracts.exceptions import ContractValidationError
from modules.contracts.models.signature import Signature, SignatureMethod

logger = logging.getLogger(__name__)

DEFAULT_VALIDITY_DAYS = 365
DEFAULT_EXPIRY_WARNING_DAYS = 30
MAX_TYPED_SIGNATURE_LENGTH = 500

REASON_EXPIRED = "expired"
REASON_PAYLOAD_MISMATCH = "signature payload does not match the signed payload"
REASON_VERIFICATION_MISMATCH = "verification hash mismatch - possible tampering detected"
REASON_PAYLOAD_MISSING = "payload not provided"

_IMAGE_DATA_URL = re.compile(r"^data:image/(png|jpg|jpeg|gif);base64,")
_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"

Payload = Union[str, bytes]


@dataclass(frozen=True)
class SignatureCertificate:
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

    @property
    def key(self) -> Union[int, str]:
        """Identifier used to match batch payloads to certificates."""
        return self.signature_id if self.signature_id is not None else self.certificate_number


@dataclass(frozen=True)
class VerificationResult:
    is_valid: bool
    tamper_detected: bool
    signature_hash: str
    verification_hash: str
    timestamp: datetime
    expires_at: datetime
    reason: Optional[str] = None

    @property
    def expired(self) -> bool:
        return self.reason == REASON_EXPIRED

    @property
    def outcome(self) -> str:
        if self.is_valid:
            return "valid"
        if self.expired:
            return "expired"
        if self.tamper_detected:
            return "tampered"
        return "invalid"


def _base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def _format_timestamp(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds")


class SignatureVerificationService:

    def __init__(self, secret_key: Union[str, bytes],
                 validity_days: int = DEFAULT_VALIDITY_DAYS,
                 clock: Callable[[], datetime] = utcnow):
        if not secret_key:
            raise ValueError("A signature secret key is required")
        self._secret = secret_key.encode("utf-8") if isinstance(secret_key, str) else secret_key
        self.validity_days = validity_days
        self.clock = clock

    # --- hashing ---

    @staticmethod
    def generate_signature_hash(signature_data: Payload) -> str:
        """SHA-256 hex digest of the raw signature payload."""
        if isinstance(signature_data, str):
            try:
                raw = signature_data.encode("utf-8")
            except UnicodeEncodeError as e:
                raise ContractValidationError(f"Signature payload cannot be encoded: {e}") from e
        elif isinstance(signature_data, (bytes, bytearray)):
            raw = bytes(signature_data)
        else:
            raise ContractValidationError(
                f"Unsupported signature payload type: {type(signature_data).__name__}"
            )
        return hashlib.sha256(raw).hexdigest()

    def generate_verification_hash(self, signature_hash: str, timestamp: datetime,
                                   signer_email: str, contract_id: int) -> str:
        message = f"{signature_hash}|{_format_timestamp(timestamp)}|{signer_email}|{contract_id}"
        return hmac.new(self._secret, message.encode("utf-8"), hashlib.sha256).hexdigest()

    def generate_certificate_number(self) -> str:
        millis = int(self.clock().timestamp() * 1000)
        return f"SIG-{_base36(millis).upper()}-{secrets.token_hex(4).upper()}"

    # --- validation ---

    @staticmethod
    def validate_signature_data(method: SignatureMethod, signature_data: Optional[str]) -> None:
        if not signature_data:
            raise ContractValidationError("Signature data is required")

        if method in (SignatureMethod.CANVAS, SignatureMethod.IMAGE):
            if not _IMAGE_DATA_URL.match(signature_data):
                raise ContractValidationError(
                    "Drawn and image signatures must be a base64 PNG, JPEG or GIF data URL"
                )
        elif method == SignatureMethod.TYPED:
            if len(signature_data.strip()) == 0 or len(signature_data) >= MAX_TYPED_SIGNATURE_LENGTH:
                raise ContractValidationError(
                    f"Typed signatures must be 1 to {MAX_TYPED_SIGNATURE_LENGTH - 1} characters"
                )
        else:
            raise ContractValidationError(f"Unknown signature method: {method}")

    # --- certificates ---

    def capture_signature(self, signer_name: str, signer_email: str, signer_role: str,
                          signature_data: Payload, contract_id: int, timestamp: datetime,
                          signature_id: Optional[int] = None) -> SignatureCertificate:
        """
        Hashes the payload and issues a certificate valid for ``validity_days``
        from now.
        """
        if not signature_data:
            raise ContractValidationError("Signature data is required")
        if not signer_email:
            raise ContractValidationError("Signer email is required")
        if contract_id is None:
            raise ContractValidationError("Contract id is required")

        signature_hash = self.generate_signature_hash(signature_data)
        verification_hash = self.generate_verification_hash(
            signature_hash, timestamp, signer_email, contract_id
        )
        issued_at = self.clock()

        certificate = SignatureCertificate(
            signature_id=signature_id,
            contract_id=contract_id,
            signer_name=signer_name,
            signer_email=signer_email,
            signer_role=signer_role,
            signature_hash=signature_hash,
            verification_hash=verification_hash,
            timestamp=timestamp,
            issued_at=issued_at,
            expires_at=issued_at + timedelta(days=self.validity_days),
            certificate_number=self.generate_certificate_number(),
        )
        logger.info(
            "Signature captured for %s (%s) on contract %s, certificate %s",
            signer_name, signer_role, contract_id, certificate.certificate_number
        )
        return certificate

    @staticmethod
    def certificate_for(signature: Signature) -> SignatureCertificate:
        """Rebuilds the certificate stored on a signature row."""
        return SignatureCertificate(
            signature_id=signature.id,
            contract_id=signature.contract_id,
            signer_name=signature.signer_name,
            signer_email=signature.signer_email,
            signer_role=signature.signer_role.value,
            signature_hash=signature.signature_hash,
            verification_hash=signature.verification_hash,
            timestamp=signature.signed_at,
            issued_at=signature.issued_at,
            expires_at=signature.expires_at,
            certificate_number=signature.certificate_number,
        )

    def verify_signature(self, certificate: SignatureCertificate,
                         signature_data: Payload) -> VerificationResult:
        if self.clock() > certificate.expires_at:
            return self._result(certificate, False, False, REASON_EXPIRED)

        provided_hash = self.generate_signature_hash(signature_data)
        hashes_match = hmac.compare_digest(provided_hash, certificate.signature_hash)

        expected_verification_hash = self.generate_verification_hash(
            certificate.signature_hash,
            certificate.timestamp,
            certificate.signer_email,
            certificate.contract_id,
        )
        verification_hash_valid = hmac.compare_digest(
            expected_verification_hash, certificate.verification_hash
        )

        is_valid = hashes_match and verification_hash_valid
        reason = None
        if not hashes_match:
            reason = REASON_PAYLOAD_MISMATCH
        elif not verification_hash_valid:
            reason = REASON_VERIFICATION_MISMATCH

        if not is_valid:
            logger.warning(
                "Certificate %s failed verification: %s", certificate.certificate_number, reason
            )
        return self._result(certificate, is_valid, not is_valid, reason)

    def batch_verify_signatures(self, certificates: Iterable[SignatureCertificate],
                                signature_payloads: Dict[Union[int, str], Payload]
                                ) -> Dict[Union[int, str], VerificationResult]:
        results = {}
        for certificate in certificates:
            signature_data = signature_payloads.get(certificate.key)
            if not signature_data:
                results[certificate.key] = self._result(
                    certificate, False, False, REASON_PAYLOAD_MISSING
                )
                continue
            results[certificate.key] = self.verify_signature(certificate, signature_data)
        return results

    def is_expiring_soon(self, certificate: SignatureCertificate,
                         days_threshold: int = DEFAULT_EXPIRY_WARNING_DAYS) -> bool:
        return certificate.expires_at <= self.clock() + timedelta(days=days_threshold)

    # --- presentation ---

    @staticmethod
    def render_certificate(certificate: SignatureCertificate, result: VerificationResult) -> str:
        status = "VERIFIED" if result.is_valid else "INVALID"
        lines = [
            "DIGITAL SIGNATURE CERTIFICATE",
            "=============================",
            "",
            f"Certificate Number: {certificate.certificate_number}",
            f"Status: {status}",
            f"Signer: {certificate.signer_name}",
            f"Email: {certificate.signer_email}",
            f"Role: {certificate.signer_role}",
            "",
            f"Contract ID: {certificate.contract_id}",
            f"Signed: {_format_timestamp(certificate.timestamp)}",
            f"Issued: {certificate.issued_at.date().isoformat()}",
            f"Expires: {certificate.expires_at.date().isoformat()}",
            "",
            f"Signature Hash: {certificate.signature_hash}",
            f"Verification Hash: {certificate.verification_hash}",
        ]
        if not result.is_valid and result.reason:
            lines.append(f"Reason: {result.reason}")
        return "\n".join(lines)

    def audit_entry(self, certificate: SignatureCertificate, action: str,
                    details: Optional[dict] = None) -> str:
        if action not in ("created", "verified", "expired", "revoked"):
            raise ValueError(f"Unknown certificate audit action: {action}")
        entry = {
            "timestamp": _format_timestamp(self.clock()),
            "action": action,
            "certificateNumber": certificate.certificate_number,
            "signerName": certificate.signer_name,
            "signerEmail": certificate.signer_email,
            "contractId": certificate.contract_id,
            "details": details or {},
        }
        return json.dumps(entry)

    @staticmethod
    def _result(certificate: SignatureCertificate, is_valid: bool, tamper_detected: bool,
                reason: Optional[str]) -> VerificationResult:
        return VerificationResult(
            is_valid=is_valid,
            tamper_detected=tamper_detected,
            signature_hash=certificate.signature_hash,
            verification_hash=certificate.verification_hash,
            timestamp=certificate.timestamp,
            expires_at=certificate.expires_at,
            reason=reason,
        )
