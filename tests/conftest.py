"""
Pytest Configuration and Shared Fixtures
========================================

This module provides shared fixtures for all AdherenceHub tests.
Fixtures include database sessions, test clients, a controllable clock,
fresh service instances and sample data.
"""

import os
import sys
from datetime import datetime, date, timedelta
from typing import Generator, Dict, Any

# Keep the application engine off disk during tests
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base, get_db
from models import Frequency, MedicationSchedule, RefillReminder
from services.schedule_service import ScheduleService
from services.adherence_service import AdherenceService
from services.refill_service import RefillService
from services.notification_service import NotificationService
from actions.reminder_engine import ReminderEngine
from tools.cache import TTLCache
from tools.change_feed import ChangeFeed
from app import app


# ==================== CLOCK ====================

class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at 07:00 on 2024-03-15"""
    return FakeClock(datetime(2024, 3, 15, 7, 0))


# ==================== DATABASE FIXTURES ====================

@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # Create all tables
    Base.metadata.create_all(bind=engine)

    yield engine

    # Cleanup
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_engine) -> Generator[Session, None, None]:
    """Create a test database session"""
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=test_engine
    )

    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a FastAPI test client with database override"""
    from api.deps import services

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    # Singletons outlive a test; start each one clean
    services.get_schedule_service().cache.clear()
    services.get_reminder_engine().forget()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    services.get_schedule_service().cache.clear()


# ==================== SERVICE FIXTURES ====================

@pytest.fixture
def schedule_service(clock: FakeClock) -> ScheduleService:
    return ScheduleService(cache=TTLCache(default_ttl=60.0), clock=clock)


@pytest.fixture
def adherence_service(schedule_service: ScheduleService, clock: FakeClock) -> AdherenceService:
    return AdherenceService(schedules=schedule_service, clock=clock)


@pytest.fixture
def refill_service(clock: FakeClock) -> RefillService:
    return RefillService(clock=clock)


@pytest.fixture
def notification_service(clock: FakeClock) -> NotificationService:
    return NotificationService(feed=ChangeFeed(), clock=clock)


@pytest.fixture
def reminder_engine(
    adherence_service: AdherenceService,
    refill_service: RefillService,
    notification_service: NotificationService,
    clock: FakeClock
) -> ReminderEngine:
    return ReminderEngine(
        adherence=adherence_service,
        refills=refill_service,
        notifications=notification_service,
        clock=clock
    )


# ==================== SAMPLE DATA FIXTURES ====================

@pytest.fixture
def sample_schedule_data() -> Dict[str, Any]:
    """Twice-daily Metformin starting on the fixed clock's date"""
    return {
        "patient_id": "patient-1",
        "patient_name": "Amina Bello",
        "medication_name": "Metformin",
        "dosage": "500mg",
        "frequency": Frequency.TWICE_DAILY,
        "times": ["08:00", "20:00"],
        "start_date": date(2024, 3, 15),
        "instructions": "Take with meals",
        "doctor_id": "doctor-7",
        "doctor_name": "Dr. Okafor",
    }


@pytest.fixture
def test_schedule(db_session: Session, sample_schedule_data: Dict[str, Any]) -> MedicationSchedule:
    """Create and return a test schedule directly in the database"""
    schedule = MedicationSchedule(active=True, **sample_schedule_data)
    db_session.add(schedule)
    db_session.commit()
    db_session.refresh(schedule)
    return schedule


@pytest.fixture
def test_refill(db_session: Session) -> RefillReminder:
    """Refill due 2024-03-16, three days lead time"""
    reminder = RefillReminder(
        patient_id="patient-1",
        medication_name="Metformin",
        current_quantity=4,
        days_before_refill=3,
        next_refill_date=date(2024, 3, 16),
        reminder_sent=False,
        active=True
    )
    db_session.add(reminder)
    db_session.commit()
    db_session.refresh(reminder)
    return reminder


# ==================== MARKERS ====================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "api: mark test as an API test")
    config.addinivalue_line("markers", "database: mark test as requiring database")
