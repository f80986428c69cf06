"""Pytest configuration and shared fixtures."""
import os

# Keep the app module from creating a database file in the working directory
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from negotiation_engine.database import Base
from negotiation_engine.models.domain import Pairing, Negotiation
from negotiation_engine.models.events import NegotiationEvent
from negotiation_engine.models.enums import PairingStatus
from negotiation_engine.services.negotiation_service import NegotiationService

PROVIDER = "provider_123"
SEEKER = "seeker_456"
OUTSIDER = "stranger_789"


class RecordingNotifier:
    """Collects notifications instead of delivering them."""

    def __init__(self):
        self.calls = []

    def notify(self, negotiation_id, status, agreed_value):
        self.calls.append((negotiation_id, status, agreed_value))


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    # StaticPool so the API tests can share the connection across threads
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture
def pairing(db_session):
    """An accepted (active) pairing between PROVIDER and SEEKER."""
    pairing = Pairing(
        id="pairing_1",
        provider_id=PROVIDER,
        seeker_id=SEEKER,
        status=PairingStatus.ACCEPTED
    )
    db_session.add(pairing)
    db_session.commit()
    return pairing


@pytest.fixture
def inactive_pairing(db_session):
    """A pairing the seeker has not accepted yet."""
    pairing = Pairing(
        id="pairing_pending",
        provider_id=PROVIDER,
        seeker_id=SEEKER,
        status=PairingStatus.PENDING
    )
    db_session.add(pairing)
    db_session.commit()
    return pairing


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(db_session, notifier):
    return NegotiationService(db_session, notifier=notifier)


@pytest.fixture
def open_negotiation(service, pairing):
    """A Pending negotiation where the Provider expects 80000."""
    negotiation, _ = service.create(pairing.id, PROVIDER, 80000)
    return negotiation


@pytest.fixture
def active_negotiation(service, open_negotiation):
    """A Negotiating negotiation: Provider expects 80000, Seeker offered 60000."""
    return service.propose_or_counter(open_negotiation.id, SEEKER, 60000)
