import logging

from fastapi import HTTPException, status

from modules.contracts.exceptions import (
    AlreadySigned,
    ContractError,
    ContractForbidden,
    ContractNotFound,
    ContractValidationError,
    DocumentIntegrityError,
    InvalidContractState,
)

STATUS_CODES = {
    ContractNotFound: status.HTTP_404_NOT_FOUND,
    ContractForbidden: status.HTTP_403_FORBIDDEN,
    InvalidContractState: status.HTTP_409_CONFLICT,
    AlreadySigned: status.HTTP_409_CONFLICT,
    ContractValidationError: status.HTTP_400_BAD_REQUEST,
    DocumentIntegrityError: status.HTTP_409_CONFLICT,
}

logger = logging.getLogger(__name__)


def to_http_exception(error: ContractError) -> HTTPException:
    code = STATUS_CODES.get(type(error), status.HTTP_400_BAD_REQUEST)
    logger.warning("Rejected contract operation (%s): %s", type(error).__name__, error)
    return HTTPException(status_code=code, detail=str(error))
