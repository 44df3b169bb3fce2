# src/modules/contracts/controllers/signature_controller.py
from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from modules.auth.dependencies import get_current_actor
from modules.contracts.controllers.contract_controller import get_certificate_service
from modules.contracts.controllers.errors import to_http_exception
from modules.contracts.exceptions import ContractError
from modules.contracts.models.schemas import CertificateResponse, VerificationResponse, VerifyRequest
from modules.contracts.services.certificate_service import CertificateService
from modules.contracts.services.permission import Actor

router = APIRouter(
    prefix="/signatures",
    tags=["signatures"]
)


@router.get("/{signature_id}/certificate", response_model=CertificateResponse)
def get_certificate(
    signature_id: int,
    actor: Actor = Depends(get_current_actor),
    service: CertificateService = Depends(get_certificate_service)
):
    try:
        _, certificate = service.get_certificate(signature_id, actor)
    except ContractError as e:
        raise to_http_exception(e) from e

    return CertificateResponse(
        signature_id=certificate.signature_id,
        contract_id=certificate.contract_id,
        signer_name=certificate.signer_name,
        signer_email=certificate.signer_email,
        signer_role=certificate.signer_role,
        signature_hash=certificate.signature_hash,
        verification_hash=certificate.verification_hash,
        timestamp=certificate.timestamp,
        issued_at=certificate.issued_at,
        expires_at=certificate.expires_at,
        certificate_number=certificate.certificate_number,
        expiring_soon=service.verification_service.is_expiring_soon(certificate),
    )


@router.post("/{signature_id}/verify", response_model=VerificationResponse)
def verify_signature(
    signature_id: int,
    data: VerifyRequest,
    actor: Actor = Depends(get_current_actor),
    service: CertificateService = Depends(get_certificate_service)
):
    """
    Re-checks a stored signature against the payload the caller holds.
    Expired or tampered signatures are a normal 200 response with
    ``is_valid`` false.
    """
    try:
        result = service.verify(signature_id, actor, data.signature_data)
    except ContractError as e:
        raise to_http_exception(e) from e
    return VerificationResponse.model_validate(result)


@router.post("/{signature_id}/certificate/render", response_class=PlainTextResponse)
def render_certificate(
    signature_id: int,
    data: VerifyRequest,
    actor: Actor = Depends(get_current_actor),
    service: CertificateService = Depends(get_certificate_service)
):
    """Printable certificate, stamped VERIFIED or INVALID against the given payload."""
    try:
        return service.render(signature_id, actor, data.signature_data)
    except ContractError as e:
        raise to_http_exception(e) from e
