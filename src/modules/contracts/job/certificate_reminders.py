import logging

from apscheduler.schedulers.background import BackgroundScheduler

import config
from database import SessionLocal
from modules.contracts.repositories.contract_repository import ContractRepository
from modules.contracts.services.certificate_service import CertificateService
from modules.contracts.services.contract_notifier import ContractNotifier
from modules.contracts.services.signature_verification_service import SignatureVerificationService
from modules.notifications.repositories.notification_repository import NotificationRepository
from modules.notifications.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


def send_certificate_expiry_reminders(session):
    verification_service = SignatureVerificationService(
        config.SIGNATURE_SECRET_KEY, validity_days=config.SIGNATURE_VALIDITY_DAYS
    )
    certificates = CertificateService(ContractRepository(session), verification_service)
    notifier = ContractNotifier(NotificationService(NotificationRepository(session)))
    return certificates.send_expiry_reminders(notifier, config.CERTIFICATE_EXPIRY_WARNING_DAYS)


def start_certificate_reminder_job() -> BackgroundScheduler:
    scheduler = BackgroundScheduler()

    def job():
        with SessionLocal() as session:
            try:
                send_certificate_expiry_reminders(session)
            except Exception:
                logger.exception("Certificate expiry reminder run failed")
                session.rollback()

    scheduler.add_job(job, 'interval', days=1)  # every 24 hours
    scheduler.start()
    return scheduler
