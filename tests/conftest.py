"""Pytest configuration and shared fixtures."""
import os
from datetime import date, datetime
from typing import Generator, List, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables BEFORE any revcycle imports
os.environ["TESTING"] = "true"
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"
os.environ.pop("SENTRY_DSN", None)

from fastapi.testclient import TestClient

from revcycle.api.dependencies import get_clearinghouse_gateway, get_deadline_scheduler
from revcycle.config.database import Base, get_all_models, get_db, seed_reference_data
from revcycle.config.settings import RevenueCycleSettings, get_settings
from revcycle.core.application import create_application
from revcycle.services.audit import AuditSink
from revcycle.services.billing.claims import ClaimAssembler
from revcycle.services.billing.ledger import ChargeLedger, ChargeRequest
from revcycle.services.integrations.clearinghouse import ClearinghouseGateway, SubmissionReceipt
from revcycle.services.queue.scheduler import DeadlineScheduler
from revcycle.services.reconciliation.denials import DenialManager
from revcycle.services.reconciliation.processor import RemittanceProcessor
from tests.factories import ALL_FACTORIES, DiagnosisFactory, EncounterFactory, PatientInsuranceFactory

SUBMITTED_AT = datetime(2024, 3, 16, 10, 30, 0)
TODAY = date(2024, 4, 10)


class FakeGateway(ClearinghouseGateway):
    """Records submissions instead of calling out. Set ``fail_with`` to make the next call fail."""

    def __init__(self):
        self.submissions: List[Tuple[str, str, str]] = []
        self.fail_with = None

    def submit_claim(self, edi_content: str, claim_number: str, payer_id: str) -> SubmissionReceipt:
        if self.fail_with is not None:
            raise self.fail_with
        self.submissions.append((edi_content, claim_number, payer_id))
        return SubmissionReceipt(claim_id=f"CH-{claim_number}", status="accepted")


class FakeScheduler(DeadlineScheduler):
    def __init__(self):
        self.scheduled: List[Tuple[int, date]] = []

    def schedule_appeal_deadline(self, denial_id: int, deadline: date) -> None:
        self.scheduled.append((denial_id, deadline))


# Test database setup
@pytest.fixture(scope="function")
def test_db() -> Generator[Session, None, None]:
    """In-memory SQLite database with the schema, sequences and E&M fee schedule."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    get_all_models()
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    seed_reference_data(session)

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_db: Session) -> Generator[Session, None, None]:
    """Provide a database session for tests, with every factory bound to it."""
    for factory_class in ALL_FACTORIES:
        factory_class._meta.sqlalchemy_session = test_db

    yield test_db
    test_db.rollback()


@pytest.fixture
def settings() -> RevenueCycleSettings:
    return RevenueCycleSettings(
        EDI_SUBMITTER_ID="REVCYCLE",
        EDI_RECEIVER_ID="CLEARINGHOUSE",
        APPEAL_WINDOW_DAYS=90,
    )


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


# Services wired the way the API dependencies wire them
@pytest.fixture
def audit(db_session: Session) -> AuditSink:
    return AuditSink(db_session)


@pytest.fixture
def ledger(db_session: Session, audit: AuditSink) -> ChargeLedger:
    return ChargeLedger(db_session, audit)


@pytest.fixture
def assembler(db_session, audit, gateway, settings) -> ClaimAssembler:
    return ClaimAssembler(db_session, audit, gateway, settings, clock=lambda: SUBMITTED_AT)


@pytest.fixture
def denial_manager(db_session, audit, scheduler, settings) -> DenialManager:
    return DenialManager(db_session, audit, scheduler, settings, today=lambda: TODAY)


@pytest.fixture
def processor(db_session, audit, denial_manager) -> RemittanceProcessor:
    return RemittanceProcessor(db_session, audit, denial_manager, today=lambda: TODAY)


# Test data fixtures
@pytest.fixture
def encounter(db_session: Session):
    """Established-patient visit on 2024-03-15 with two ranked diagnoses."""
    encounter = EncounterFactory()
    DiagnosisFactory(encounter=encounter, icd10_code="E11.9", rank=1, is_chronic=True)
    DiagnosisFactory(encounter=encounter, icd10_code="I10", rank=2)
    db_session.refresh(encounter)
    return encounter


@pytest.fixture
def coverage(encounter):
    return PatientInsuranceFactory(patient=encounter.patient)


@pytest.fixture
def submitted_claim(ledger, assembler, encounter, coverage):
    """Claim CLM000000001 for 99214 (165.00) and 99213 (110.00), accepted by the clearinghouse."""
    ledger.add_charge(ChargeRequest(encounter_id=encounter.id, code="99214", diagnosis_pointers=[1, 2])).unwrap()
    ledger.add_charge(ChargeRequest(encounter_id=encounter.id, code="99213", diagnosis_pointers=[2])).unwrap()
    claim = assembler.create_claim(encounter.id, coverage.id).unwrap()
    return assembler.submit_claim(claim.id).unwrap()


@pytest.fixture
def override_get_db(db_session: Session):
    """Override the get_db dependency."""
    def _get_db():
        yield db_session

    return _get_db


@pytest.fixture(scope="function")
def client(override_get_db, gateway, scheduler, settings) -> Generator[TestClient, None, None]:
    """Create a test client with the database, clearinghouse and scheduler swapped out."""
    app = create_application(initialize_database=False)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clearinghouse_gateway] = lambda: gateway
    app.dependency_overrides[get_deadline_scheduler] = lambda: scheduler
    app.dependency_overrides[get_settings] = lambda: settings
    # Set raise_server_exceptions=False so that 500 errors return responses instead of raising
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()
