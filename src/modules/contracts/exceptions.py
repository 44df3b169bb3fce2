class ContractError(Exception):
    """Base class for contract lifecycle errors"""
    pass


class ContractNotFound(ContractError):
    """Contract or signature does not exist"""
    pass


class ContractForbidden(ContractError):
    """Actor is not allowed to perform the action on this contract"""
    pass


class InvalidContractState(ContractError):
    """Transition is not legal from the contract's current status"""
    pass


class AlreadySigned(ContractError):
    """The party already has a signature on this contract"""
    pass


class ContractValidationError(ContractError):
    """Malformed signature payload or missing required fields"""
    pass


class DocumentIntegrityError(ContractError):
    """Stored contract document no longer matches the hash recorded when it was attached"""
    pass
