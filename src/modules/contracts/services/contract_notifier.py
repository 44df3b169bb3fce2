import logging
from typing import List, Optional

from modules.contracts.models.contract import Contract
from modules.contracts.models.signature import Signature
from modules.notifications.services.notification_service import (
    CERTIFICATE_EXPIRING,
    CONTRACT_CANCELLED,
    CONTRACT_SIGNED,
    CertificateExpiringNotification,
    ContractCancelledNotification,
    ContractSignedNotification,
    NotificationService,
    NotificationTemplate,
)

logger = logging.getLogger(__name__)


class ContractNotifier:
    """
    Fire-and-forget delivery of contract events. A failed delivery is logged
    and never reaches the caller: the contract transition has already committed.
    """

    def __init__(self, notification_service: NotificationService):
        self.notification_service = notification_service

    def notify(self, contract: Contract, event_kind: str, reason: Optional[str] = None,
               signature: Optional[Signature] = None) -> bool:
        """Returns whether the notifications were stored."""
        try:
            templates = self._templates(contract, event_kind, reason, signature)
            self.notification_service.send(templates)
        except Exception:
            logger.exception("Failed to deliver %s notification for contract %s", event_kind, contract.id)
            return False
        logger.info("Sent %s notifications for contract %s", event_kind, contract.id)
        return True

    @staticmethod
    def _templates(contract: Contract, event_kind: str, reason: Optional[str],
                   signature: Optional[Signature]) -> List[NotificationTemplate]:
        parties = [contract.artist_id, contract.venue_id]

        if event_kind == CONTRACT_SIGNED:
            return [ContractSignedNotification(user_id, contract.id, contract.title) for user_id in parties]

        if event_kind == CONTRACT_CANCELLED:
            return [
                ContractCancelledNotification(user_id, contract.id, contract.title, reason)
                for user_id in parties
            ]

        if event_kind == CERTIFICATE_EXPIRING:
            if signature is None:
                raise ValueError("certificate_expiring notifications need the signature")
            return [
                CertificateExpiringNotification(
                    signature.signer_id,
                    contract.id,
                    contract.title,
                    signature.certificate_number,
                    signature.expires_at.date().isoformat(),
                )
            ]

        raise ValueError(f"Unknown contract event: {event_kind}")
