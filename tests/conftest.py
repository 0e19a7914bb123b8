"""
Shared pytest fixtures for all tests.

Each test gets its own SQLite database file, a seeded doctor, patient and
schedule, and a dispatcher that records events instead of queueing them.
"""

import os
from datetime import date, time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

# Ensure test environment before the app modules read their config
os.environ.setdefault("DATABASE_URL", "sqlite:///./clinicbook_test.db")
os.environ["NOTIFICATIONS_ENABLED"] = "false"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ["CLINIC_TIMEZONE"] = "UTC"

from clinicbook.database import Base, build_engine, get_db  # noqa: E402
from clinicbook.domain.notifications.dispatcher import (  # noqa: E402
    RecordingNotificationDispatcher,
    get_notification_dispatcher,
)
from clinicbook.domain.scheduling.locking import DoctorLockRegistry  # noqa: E402
from clinicbook.domain.scheduling.service import SlotBookingEngine  # noqa: E402
from clinicbook.models import Doctor, Patient, Schedule  # noqa: E402

WORK_DATE = date(2024, 1, 15)


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so worker threads can share the database"""
    engine = build_engine(f"sqlite:///{tmp_path / 'clinicbook.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ============================================================================
# TEST DATA
# ============================================================================


@pytest.fixture
def doctor(db_session) -> Doctor:
    doctor = Doctor(id=1, user_id=101, full_name="Dr. Grey")
    db_session.add(doctor)
    db_session.commit()
    return doctor


@pytest.fixture
def other_doctor(db_session) -> Doctor:
    doctor = Doctor(id=2, user_id=102, full_name="Dr. House")
    db_session.add(doctor)
    db_session.commit()
    return doctor


@pytest.fixture
def patient(db_session) -> Patient:
    patient = Patient(id=7, user_id=207, full_name="Alex Doe")
    db_session.add(patient)
    db_session.commit()
    return patient


@pytest.fixture
def second_patient(db_session) -> Patient:
    patient = Patient(id=8, user_id=208, full_name="Sam Roe")
    db_session.add(patient)
    db_session.commit()
    return patient


@pytest.fixture
def schedule(db_session, doctor) -> Schedule:
    """Doctor 1, 2024-01-15, 08:00-17:00, Available"""
    schedule = Schedule(
        doctor_id=doctor.id,
        work_date=WORK_DATE,
        start_time=time(8, 0),
        end_time=time(17, 0),
        status="Available",
    )
    db_session.add(schedule)
    db_session.commit()
    return schedule


# ============================================================================
# SERVICE FIXTURES
# ============================================================================


@pytest.fixture
def dispatcher() -> RecordingNotificationDispatcher:
    return RecordingNotificationDispatcher()


@pytest.fixture
def locks() -> DoctorLockRegistry:
    return DoctorLockRegistry()


@pytest.fixture
def booking_engine(db_session, dispatcher, locks) -> SlotBookingEngine:
    return SlotBookingEngine(db_session, dispatcher, locks)


@pytest.fixture
def client(session_factory, dispatcher):
    """API client bound to the per-test database and recording dispatcher"""
    from clinicbook.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher

    # No context manager: skip the lifespan so the default engine is never touched
    yield TestClient(app)

    app.dependency_overrides.clear()
