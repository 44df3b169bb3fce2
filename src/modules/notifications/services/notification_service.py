# modules/notifications/services/notification_service.py
from typing import List, Optional

from modules.notifications.models.notification import Notification
from modules.notifications.repositories.notification_repository import NotificationRepository

CONTRACT_SIGNED = "contract_signed"
CONTRACT_CANCELLED = "contract_cancelled"
CERTIFICATE_EXPIRING = "certificate_expiring"

class NotificationTemplate:
    kind = "generic"

    def __init__(self, user_id: int, title: str, message: str, contract_id: Optional[int] = None):
        self.user_id = user_id
        self.title = title
        self.message = message
        self.contract_id = contract_id

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'title': self.title,
            'message': self.message,
            'kind': self.kind,
            'contract_id': self.contract_id,
        }

class ContractSignedNotification(NotificationTemplate):
    kind = CONTRACT_SIGNED

    def __init__(self, user_id: int, contract_id: int, contract_title: str):
        title = "Contract fully signed"
        message = f"Both parties have signed '{contract_title}'. The contract is now binding."
        super().__init__(user_id, title, message, contract_id)

class ContractCancelledNotification(NotificationTemplate):
    kind = CONTRACT_CANCELLED

    def __init__(self, user_id: int, contract_id: int, contract_title: str, reason: Optional[str] = None):
        title = "Contract cancelled"
        message = f"The contract '{contract_title}' has been cancelled."
        if reason:
            message += f" Reason: {reason}"
        super().__init__(user_id, title, message[:1024], contract_id)

class CertificateExpiringNotification(NotificationTemplate):
    kind = CERTIFICATE_EXPIRING

    def __init__(self, user_id: int, contract_id: int, contract_title: str,
                 certificate_number: str, expires_on: str):
        title = "Signature certificate expiring"
        message = (
            f"Your signature certificate {certificate_number} for '{contract_title}' "
            f"expires on {expires_on}."
        )
        super().__init__(user_id, title, message, contract_id)

class NotificationService:
    def __init__(self, repository: NotificationRepository):
        self.notification_repository = repository

    def send(self, templates: List[NotificationTemplate]) -> List[Notification]:
        notifications = [Notification(**template.to_dict()) for template in templates]
        return self.notification_repository.save_all(notifications)

    def get_notifications(self, user_id: int) -> List[Notification]:
        return self.notification_repository.find_by_user_id(user_id)

    def mark_as_read(self, notification_id: int, user_id: int) -> Optional[Notification]:
        notif = self.notification_repository.find_by_id(notification_id)
        if not notif or notif.user_id != user_id:
            return None
        return self.notification_repository.update(notification_id, {"read": True})
