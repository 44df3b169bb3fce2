import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
from modules.contracts.models import User, UserRole
from modules.contracts.repositories.contract_repository import ContractRepository
from modules.contracts.services.contract_notifier import ContractNotifier
from modules.contracts.services.contract_service import ContractService
from modules.contracts.services.contract_state_service import ContractStateService
from modules.contracts.services.permission import Actor
from modules.contracts.services.signature_verification_service import SignatureVerificationService
from modules.notifications.models.notification import Notification  # noqa: F401
from modules.notifications.repositories.notification_repository import NotificationRepository
from modules.notifications.services.notification_service import NotificationService

SIGNATURE_SECRET = "test-signature-secret"
TYPED_SIGNATURE = "Jane Artist"
DRAWN_SIGNATURE = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def clean_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session():
    db = TestingSessionLocal()
    yield db
    db.close()


def create_user(session, role, name, email, password_hash="not-a-real-hash"):
    user = User(name=name, email=email, password_hash=password_hash, role=role, is_active=True)
    session.add(user)
    session.commit()
    return user


@pytest.fixture
def artist(session):
    return create_user(session, UserRole.ARTIST, "Jane Artist", "jane@artists.test")


@pytest.fixture
def venue(session):
    return create_user(session, UserRole.VENUE, "The Blue Room", "bookings@blueroom.test")


@pytest.fixture
def admin(session):
    return create_user(session, UserRole.ADMIN, "Site Admin", "admin@ologywood.test")


@pytest.fixture
def outsider(session):
    return create_user(session, UserRole.ARTIST, "Other Artist", "other@artists.test")


@pytest.fixture
def verification_service():
    return SignatureVerificationService(SIGNATURE_SECRET)


@pytest.fixture
def state_service(session, verification_service):
    notifier = ContractNotifier(NotificationService(NotificationRepository(session)))
    return ContractStateService(ContractRepository(session), verification_service, notifier)


def create_contract(session, creator, artist, venue, status=None, booking_id=1):
    kwargs = {} if status is None else {"status": status}
    return ContractService.create_contract(
        session, Actor.from_user(creator),
        booking_id=booking_id,
        artist_id=artist.id,
        venue_id=venue.id,
        title="Friday night performance",
        content="The artist performs a 90 minute set. The venue provides sound and lights.",
        **kwargs
    )
