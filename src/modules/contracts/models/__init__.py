from .user import User, UserRole
from .contract import Contract, ContractStatus, ContractType, TERMINAL_STATUSES, SIGNABLE_STATUSES
from .signature import Signature, PartyRole, SignatureMethod
from .audit_event import ContractAuditEvent, AuditAction

__all__ = [
    'User', 'UserRole',
    'Contract', 'ContractStatus', 'ContractType', 'TERMINAL_STATUSES', 'SIGNABLE_STATUSES',
    'Signature', 'PartyRole', 'SignatureMethod',
    'ContractAuditEvent', 'AuditAction',
]
