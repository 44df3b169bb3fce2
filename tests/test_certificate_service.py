from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from database import utcnow
from modules.contracts.exceptions import ContractForbidden, ContractNotFound
from modules.contracts.job import send_certificate_expiry_reminders
from modules.contracts.models import SignatureMethod
from modules.contracts.repositories.contract_repository import ContractRepository
from modules.contracts.services.certificate_service import CertificateService
from modules.contracts.services.contract_notifier import ContractNotifier
from modules.contracts.services.contract_state_service import ContractStateService
from modules.contracts.services.permission import Actor
from modules.contracts.services.signature_verification_service import (
    REASON_PAYLOAD_MISSING,
    SignatureVerificationService,
)
from modules.notifications.models.notification import Notification
from modules.notifications.repositories.notification_repository import NotificationRepository
from modules.notifications.services.notification_service import CERTIFICATE_EXPIRING, NotificationService

import config
from conftest import DRAWN_SIGNATURE, SIGNATURE_SECRET, TYPED_SIGNATURE, create_contract

T0 = datetime(2025, 3, 1, 9, 30, 0)


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock(T0)


@pytest.fixture
def verification_service(clock):
    return SignatureVerificationService(SIGNATURE_SECRET, clock=clock)


@pytest.fixture
def certificate_service(session, verification_service):
    return CertificateService(ContractRepository(session), verification_service)


@pytest.fixture
def notifier(session):
    return ContractNotifier(NotificationService(NotificationRepository(session)))


@pytest.fixture
def signed_contract(session, verification_service, artist, venue):
    states = ContractStateService(ContractRepository(session), verification_service)
    contract = create_contract(session, artist, artist, venue)
    states.sign(contract.id, Actor.from_user(artist), TYPED_SIGNATURE, SignatureMethod.TYPED)
    states.sign(contract.id, Actor.from_user(venue), DRAWN_SIGNATURE, SignatureMethod.CANVAS)
    session.refresh(contract)
    return contract


def test_get_certificate_matches_stored_signature(signed_contract, certificate_service, artist):
    signature = signed_contract.signatures[0]
    stored, certificate = certificate_service.get_certificate(signature.id, Actor.from_user(artist))

    assert stored.id == signature.id
    assert certificate.signature_id == signature.id
    assert certificate.certificate_number == signature.certificate_number
    assert certificate.expires_at == T0 + timedelta(days=365)


def test_outsider_cannot_read_certificate(signed_contract, certificate_service, outsider):
    with pytest.raises(ContractForbidden):
        certificate_service.get_certificate(signed_contract.signatures[0].id, Actor.from_user(outsider))


def test_unknown_signature(certificate_service, artist):
    with pytest.raises(ContractNotFound):
        certificate_service.get_certificate(12345, Actor.from_user(artist))


def test_verify_counts_verifications(session, signed_contract, certificate_service, venue):
    signature = signed_contract.signatures[0]

    assert certificate_service.verify(signature.id, Actor.from_user(venue), TYPED_SIGNATURE).is_valid
    result = certificate_service.verify(signature.id, Actor.from_user(venue), "Someone Else")
    assert result.tamper_detected

    session.refresh(signature)
    assert signature.verification_count == 2
    assert signature.last_verified_at is not None


def test_verify_after_expiry(signed_contract, certificate_service, clock, artist):
    clock.now = T0 + timedelta(days=366)

    result = certificate_service.verify(signed_contract.signatures[0].id, Actor.from_user(artist), TYPED_SIGNATURE)
    assert result.expired
    assert not result.tamper_detected


def test_batch_verify(signed_contract, certificate_service, admin):
    artist_signature, venue_signature = signed_contract.signatures

    results = certificate_service.batch_verify(
        signed_contract.id, Actor.from_user(admin), {artist_signature.id: TYPED_SIGNATURE}
    )

    assert results[artist_signature.id].is_valid
    assert results[venue_signature.id].reason == REASON_PAYLOAD_MISSING


def test_batch_verify_forbidden_for_outsider(signed_contract, certificate_service, outsider):
    with pytest.raises(ContractForbidden):
        certificate_service.batch_verify(signed_contract.id, Actor.from_user(outsider), {})


def test_expiry_reminders_are_sent_once(session, signed_contract, certificate_service, notifier, clock, artist, venue):
    assert certificate_service.send_expiry_reminders(notifier, days_threshold=30) == []

    clock.now = T0 + timedelta(days=340)
    reminded = certificate_service.send_expiry_reminders(notifier, days_threshold=30)
    assert len(reminded) == 2
    assert all(s.expiry_reminder_sent_at is not None for s in reminded)

    sent = session.query(Notification).filter(Notification.kind == CERTIFICATE_EXPIRING).all()
    assert sorted(n.user_id for n in sent) == sorted([artist.id, venue.id])

    assert certificate_service.send_expiry_reminders(notifier, days_threshold=30) == []


def test_reminder_job_uses_configured_window(session, signed_contract, monkeypatch):
    monkeypatch.setattr(config, "SIGNATURE_SECRET_KEY", SIGNATURE_SECRET)
    monkeypatch.setattr(config, "CERTIFICATE_EXPIRY_WARNING_DAYS", 30)
    artist_signature, venue_signature = signed_contract.signatures
    artist_signature.expires_at = utcnow() + timedelta(days=10)
    venue_signature.expires_at = utcnow() + timedelta(days=90)
    session.commit()

    reminded = send_certificate_expiry_reminders(session)

    assert [s.id for s in reminded] == [artist_signature.id]
    notification = session.query(Notification).filter(Notification.kind == CERTIFICATE_EXPIRING).one()
    assert notification.user_id == artist_signature.signer_id
    assert artist_signature.certificate_number in notification.message


def test_failed_reminder_delivery_is_retried(session, signed_contract, certificate_service, notifier, clock,
                                             monkeypatch):
    clock.now = T0 + timedelta(days=340)
    repository = notifier.notification_service.notification_repository
    save_all = repository.save_all
    calls = []

    def save_all_failing_once(notifications):
        calls.append(len(notifications))
        if len(calls) == 1:
            session.rollback()
            raise SQLAlchemyError("database unavailable")
        return save_all(notifications)

    monkeypatch.setattr(repository, "save_all", save_all_failing_once)

    first_run = certificate_service.send_expiry_reminders(notifier, days_threshold=30)
    assert len(first_run) == 1
    session.expire_all()
    stamped = [s for s in signed_contract.signatures if s.expiry_reminder_sent_at is not None]
    assert [s.id for s in stamped] == [first_run[0].id]
    assert session.query(Notification).filter(Notification.kind == CERTIFICATE_EXPIRING).count() == 1

    second_run = certificate_service.send_expiry_reminders(notifier, days_threshold=30)
    assert len(second_run) == 1
    assert second_run[0].id != first_run[0].id
    assert session.query(Notification).filter(Notification.kind == CERTIFICATE_EXPIRING).count() == 2
    assert certificate_service.send_expiry_reminders(notifier, days_threshold=30) == []


def test_reminders_are_not_stamped_when_every_delivery_fails(session, signed_contract, certificate_service,
                                                            notifier, clock, monkeypatch):
    clock.now = T0 + timedelta(days=340)

    def broken_send(templates):
        raise RuntimeError("notification store offline")

    monkeypatch.setattr(notifier.notification_service, "send", broken_send)
    assert certificate_service.send_expiry_reminders(notifier, days_threshold=30) == []

    session.expire_all()
    assert all(s.expiry_reminder_sent_at is None for s in signed_contract.signatures)

    monkeypatch.undo()
    assert len(certificate_service.send_expiry_reminders(notifier, days_threshold=30)) == 2


def test_render_does_not_count_as_verification(session, signed_contract, certificate_service, artist):
    signature = signed_contract.signatures[0]

    text = certificate_service.render(signature.id, Actor.from_user(artist), TYPED_SIGNATURE)
    assert "Status: VERIFIED" in text
    assert signature.certificate_number in text
    assert "Status: INVALID" in certificate_service.render(signature.id, Actor.from_user(artist), "forged")

    session.refresh(signature)
    assert signature.verification_count == 0
    assert signature.last_verified_at is None


def test_render_forbidden_for_outsider(signed_contract, certificate_service, outsider):
    with pytest.raises(ContractForbidden):
        certificate_service.render(signed_contract.signatures[0].id, Actor.from_user(outsider), TYPED_SIGNATURE)
