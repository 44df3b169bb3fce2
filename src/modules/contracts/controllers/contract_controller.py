# src/modules/contracts/controllers/contract_controller.py
from typing import List

from fastapi import APIRouter, Depends, File, Response, UploadFile, status
from sqlalchemy.orm import Session

import config
from database import get_db
from modules.auth.dependencies import get_current_actor, require_permission
from modules.contracts.exceptions import ContractError
from modules.contracts.controllers.errors import to_http_exception
from modules.contracts.models.schemas import (
    ApproveRequest,
    AuditEventResponse,
    AvailableActionsResponse,
    BatchVerifyRequest,
    BatchVerifyResponse,
    CancelRequest,
    ContractCreate,
    ContractResponse,
    ContractUpdate,
    RejectRequest,
    SignatureResponse,
    SignRequest,
    SignResponse,
    VerificationResponse,
)
from modules.contracts.repositories.contract_repository import ContractRepository
from modules.contracts.services.certificate_service import CertificateService
from modules.contracts.services.contract_notifier import ContractNotifier
from modules.contracts.services.contract_service import ContractService
from modules.contracts.services.contract_state_service import (
    ACTION_APPROVE,
    ACTION_CANCEL,
    ACTION_REJECT,
    ACTION_SIGN,
    ContractStateService,
)
from modules.contracts.services.permission import Actor
from modules.contracts.services.signature_verification_service import SignatureVerificationService
from modules.notifications.repositories.notification_repository import NotificationRepository
from modules.notifications.services.notification_service import NotificationService

router = APIRouter(
    prefix="/contracts",
    tags=["contracts"]
)


def get_verification_service() -> SignatureVerificationService:
    return SignatureVerificationService(
        config.SIGNATURE_SECRET_KEY, validity_days=config.SIGNATURE_VALIDITY_DAYS
    )


def get_contract_state_service(
    db: Session = Depends(get_db),
    verification_service: SignatureVerificationService = Depends(get_verification_service),
) -> ContractStateService:
    notifier = ContractNotifier(NotificationService(NotificationRepository(db)))
    return ContractStateService(ContractRepository(db), verification_service, notifier)


def get_certificate_service(
    db: Session = Depends(get_db),
    verification_service: SignatureVerificationService = Depends(get_verification_service),
) -> CertificateService:
    return CertificateService(ContractRepository(db), verification_service)


@router.post("", response_model=ContractResponse, status_code=status.HTTP_201_CREATED)
def create_contract(
    data: ContractCreate,
    actor: Actor = Depends(get_current_actor),
    _user=Depends(require_permission("create")),
    db: Session = Depends(get_db)
):
    try:
        return ContractService.create_contract(
            db, actor,
            booking_id=data.booking_id,
            artist_id=data.artist_id,
            venue_id=data.venue_id,
            title=data.title,
            content=data.content,
            contract_type=data.contract_type,
            status=data.status,
        )
    except ContractError as e:
        raise to_http_exception(e) from e


@router.get("", response_model=List[ContractResponse])
def list_contracts(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    """Contracts the caller is a party to; every contract for admins."""
    return ContractService.list_contracts(db, actor)


@router.get("/{contract_id}", response_model=ContractResponse)
def get_contract(contract_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    try:
        return ContractService.get_contract(db, contract_id, actor)
    except ContractError as e:
        raise to_http_exception(e) from e


@router.put("/{contract_id}", response_model=ContractResponse)
def update_contract(
    contract_id: int,
    data: ContractUpdate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    try:
        return ContractService.update_contract(db, contract_id, actor, title=data.title, content=data.content)
    except ContractError as e:
        raise to_http_exception(e) from e


@router.post("/{contract_id}/send", response_model=ContractResponse)
def send_contract(
    contract_id: int,
    actor: Actor = Depends(get_current_actor),
    _user=Depends(require_permission("send")),
    service: ContractStateService = Depends(get_contract_state_service)
):
    try:
        return service.send_for_signature(contract_id, actor)
    except ContractError as e:
        raise to_http_exception(e) from e


@router.post("/{contract_id}/sign", response_model=SignResponse)
def sign_contract(
    contract_id: int,
    data: SignRequest,
    actor: Actor = Depends(get_current_actor),
    _user=Depends(require_permission("sign")),
    service: ContractStateService = Depends(get_contract_state_service)
):
    """
    Signs for the caller's own side of the contract. Admins must name the
    side they sign for in ``on_behalf_of``.
    """
    try:
        signature = service.sign(
            contract_id, actor,
            signature_data=data.signature_data,
            signature_method=data.signature_method,
            on_behalf_of=data.on_behalf_of,
        )
    except ContractError as e:
        raise to_http_exception(e) from e

    return SignResponse(
        message="Contract signed",
        signature=SignatureResponse.model_validate(signature),
        verification_token=signature.verification_token,
        contract_status=signature.contract.status,
    )


@router.post("/{contract_id}/reject", response_model=ContractResponse)
def reject_contract(
    contract_id: int,
    data: RejectRequest,
    actor: Actor = Depends(get_current_actor),
    _user=Depends(require_permission("reject")),
    service: ContractStateService = Depends(get_contract_state_service)
):
    try:
        return service.reject(contract_id, actor, data.reason)
    except ContractError as e:
        raise to_http_exception(e) from e


@router.post("/{contract_id}/approve", response_model=ContractResponse)
def approve_contract(
    contract_id: int,
    data: ApproveRequest,
    actor: Actor = Depends(get_current_actor),
    _user=Depends(require_permission("approve")),
    service: ContractStateService = Depends(get_contract_state_service)
):
    try:
        return service.approve(contract_id, actor, data.notes)
    except ContractError as e:
        raise to_http_exception(e) from e


@router.post("/{contract_id}/cancel", response_model=ContractResponse)
def cancel_contract(
    contract_id: int,
    data: CancelRequest,
    actor: Actor = Depends(get_current_actor),
    _user=Depends(require_permission("cancel")),
    service: ContractStateService = Depends(get_contract_state_service)
):
    try:
        return service.cancel(contract_id, actor, data.reason)
    except ContractError as e:
        raise to_http_exception(e) from e


@router.post("/{contract_id}/execute", response_model=ContractResponse)
def execute_contract(
    contract_id: int,
    actor: Actor = Depends(get_current_actor),
    _user=Depends(require_permission("execute")),
    service: ContractStateService = Depends(get_contract_state_service)
):
    try:
        return service.execute(contract_id, actor)
    except ContractError as e:
        raise to_http_exception(e) from e


@router.get("/{contract_id}/actions", response_model=AvailableActionsResponse)
def get_available_actions(
    contract_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ContractStateService = Depends(get_contract_state_service)
):
    try:
        actions = service.get_available_actions(contract_id, actor)
        signable_parties = service.get_signable_parties(contract_id, actor)
        contract = service.repository.get_contract(contract_id)
    except ContractError as e:
        raise to_http_exception(e) from e

    return AvailableActionsResponse(
        contract_id=contract.id,
        current_status=contract.status,
        available_actions=actions,
        signable_parties=signable_parties,
        can_sign=ACTION_SIGN in actions,
        can_reject=ACTION_REJECT in actions,
        can_approve=ACTION_APPROVE in actions,
        can_cancel=ACTION_CANCEL in actions,
    )


@router.get("/{contract_id}/signatures", response_model=List[SignatureResponse])
def list_signatures(contract_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    try:
        return ContractService.list_signatures(db, contract_id, actor)
    except ContractError as e:
        raise to_http_exception(e) from e


@router.get("/{contract_id}/history", response_model=List[AuditEventResponse])
def get_history(contract_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    try:
        return ContractService.get_history(db, contract_id, actor)
    except ContractError as e:
        raise to_http_exception(e) from e


@router.post("/{contract_id}/document", response_model=ContractResponse)
async def upload_document(
    contract_id: int,
    file: UploadFile = File(...),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Attaches the rendered PDF of the contract and records its SHA-256."""
    contents = await file.read()
    try:
        return ContractService.attach_document(
            db, contract_id, actor,
            file_contents=contents,
            filename=file.filename,
            content_type=file.content_type,
            upload_dir=config.UPLOAD_DIR,
            max_file_size=config.MAX_FILE_SIZE,
        )
    except ContractError as e:
        raise to_http_exception(e) from e


@router.get("/{contract_id}/document")
def download_document(contract_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    """Returns the PDF only while it still matches its recorded hash."""
    try:
        data = ContractService.read_document(db, contract_id, actor)
    except ContractError as e:
        raise to_http_exception(e) from e
    return Response(content=data, media_type="application/pdf")


@router.post("/{contract_id}/signatures/verify", response_model=BatchVerifyResponse)
def batch_verify_signatures(
    contract_id: int,
    data: BatchVerifyRequest,
    actor: Actor = Depends(get_current_actor),
    service: CertificateService = Depends(get_certificate_service)
):
    try:
        results = service.batch_verify(contract_id, actor, data.payloads)
    except ContractError as e:
        raise to_http_exception(e) from e

    return BatchVerifyResponse(
        contract_id=contract_id,
        results={key: VerificationResponse.model_validate(result) for key, result in results.items()},
    )
