"""
Test configuration and shared fixtures for the MediConnect scheduling test suite.

Uses a temporary SQLite database by default (set TEST_DATABASE_URL to run
against PostgreSQL) with transaction-based isolation. Each test gets a clean
database state via automatic transaction rollback.
"""

import itertools
import os
import tempfile
from datetime import date, time, timedelta
from pathlib import Path
from typing import Generator, List, Optional

import pytest
from alembic import command
from alembic.config import Config
from fastapi.testclient import TestClient
from sqlalchemy import text
from sqlalchemy.orm import Session

from main import app
from core.database import Base, build_engine, get_db
from models import Appointment, Doctor, Patient, SlotRule
from services.jwt_service import jwt_service, TokenPayload
from services.notification_service import NotificationEvent, NotificationService, NotificationSink
from utils.datetime_utils import WEEKDAY_NAMES, dhaka_today


BACKEND_DIR = Path(__file__).resolve().parent.parent


def run_migrations(database_url: str) -> None:
    """Build the schema from scratch by running every alembic migration (base -> head)."""
    alembic_cfg = Config(str(BACKEND_DIR / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(alembic_cfg, "head")


def drop_schema(engine) -> None:
    """Drop every model table plus alembic's version table."""
    Base.metadata.drop_all(bind=engine)
    with engine.begin() as conn:
        conn.execute(text("DROP TABLE IF EXISTS alembic_version"))


@pytest.fixture(scope="session")
def db_engine():
    """
    Create a database engine for the test session.

    The schema is built by running the alembic migrations once per session,
    so every test runs against the migrated schema. It is dropped at the
    end of the session.
    """
    tmp_dir = None
    url = os.getenv("TEST_DATABASE_URL")
    if not url:
        tmp_dir = tempfile.TemporaryDirectory()
        url = f"sqlite:///{Path(tmp_dir.name) / 'test.db'}"

    engine = build_engine(url)
    drop_schema(engine)
    run_migrations(url)

    yield engine

    drop_schema(engine)
    engine.dispose()
    if tmp_dir is not None:
        tmp_dir.cleanup()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """
    Provide a database session for a test with automatic rollback.

    The session joins an outer transaction through savepoints, so
    application code can commit and roll back freely while everything the
    test wrote is discarded at teardown.
    """
    connection = db_engine.connect()
    transaction = connection.begin()

    session = Session(
        bind=connection,
        join_transaction_mode="create_savepoint",
        expire_on_commit=False,
    )

    yield session

    session.close()
    transaction.rollback()
    connection.close()


class RecordingSink(NotificationSink):
    """Collects events instead of delivering them."""

    name = "recording"

    def __init__(self):
        self.events: List[NotificationEvent] = []

    def send(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def types(self) -> List[str]:
        return [event.type.value for event in self.events]


@pytest.fixture
def notifications() -> Generator[RecordingSink, None, None]:
    """Replace the notification sinks with a recorder for the duration of a test."""
    saved = list(NotificationService._sinks)
    sink = RecordingSink()
    NotificationService.clear_sinks()
    NotificationService.register_sink(sink)
    yield sink
    NotificationService.clear_sinks()
    for original in saved:
        NotificationService.register_sink(original)


@pytest.fixture
def client(db_session):
    """TestClient bound to the test session."""
    app.dependency_overrides[get_db] = lambda: db_session
    yield TestClient(app)
    app.dependency_overrides.pop(get_db, None)


# ===== Helpers =====

_email_counter = itertools.count(1)


def next_date_for(day_of_week: str, from_date: Optional[date] = None, include_today: bool = False) -> date:
    """Next calendar date falling on day_of_week, counted from today in Dhaka."""
    start = from_date or dhaka_today()
    offset = (WEEKDAY_NAMES.index(day_of_week) - start.weekday()) % 7
    if offset == 0 and not include_today:
        offset = 7
    return start + timedelta(days=offset)


def today_name() -> str:
    return WEEKDAY_NAMES[dhaka_today().weekday()]


def create_doctor(
    db_session: Session,
    full_name: str = "Dr. Rahman",
    email: Optional[str] = None,
    specialization: str = "Cardiology",
    is_active: bool = True,
) -> Doctor:
    doctor = Doctor(
        full_name=full_name,
        email=email or f"doctor{next(_email_counter)}@example.com",
        specialization=specialization,
        is_active=is_active,
    )
    db_session.add(doctor)
    db_session.commit()
    return doctor


def create_patient(db_session: Session, full_name: str = "Karim Uddin", phone: str = "01711000000") -> Patient:
    patient = Patient(full_name=full_name, phone=phone)
    db_session.add(patient)
    db_session.commit()
    return patient


def create_slot_rule(
    db_session: Session,
    doctor: Doctor,
    day_of_week: str = "SATURDAY",
    start_time: time = time(9, 0),
    end_time: time = time(14, 0),
    consultation_type: str = "PHYSICAL",
    max_patients: int = 2,
    is_active: bool = True,
) -> SlotRule:
    """Insert a rule directly, bypassing SlotRuleService validation."""
    rule = SlotRule(
        doctor_id=doctor.id,
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
        consultation_type=consultation_type,
        max_patients=max_patients,
        is_active=is_active,
    )
    db_session.add(rule)
    db_session.commit()
    return rule


def create_appointment(
    db_session: Session,
    doctor: Doctor,
    patient: Patient,
    appointment_date: date,
    queue_number: int,
    status: str = "CONFIRMED",
    appointment_time: time = time(9, 0),
    rule: Optional[SlotRule] = None,
    seat_number: Optional[int] = None,
) -> Appointment:
    """Insert an appointment directly with the given queue number."""
    appointment = Appointment(
        patient_id=patient.id,
        doctor_id=doctor.id,
        slot_rule_id=rule.id if rule else None,
        appointment_date=appointment_date,
        appointment_time=appointment_time,
        end_time=rule.end_time if rule else None,
        consultation_type="PHYSICAL",
        status=status,
        queue_number=queue_number,
        seat_number=seat_number if seat_number is not None else queue_number,
    )
    db_session.add(appointment)
    db_session.commit()
    return appointment


def create_jwt_token(role: str, profile_id: Optional[int] = None, name: str = "Test User") -> str:
    """Create an access token the way the auth service would."""
    payload = TokenPayload(
        sub=f"{role.lower()}-{profile_id or 0}",
        role=role,
        profile_id=profile_id,
        name=name,
    )
    return jwt_service.create_access_token(payload)


def auth_headers(role: str, profile_id: Optional[int] = None) -> dict:
    return {"Authorization": f"Bearer {create_jwt_token(role, profile_id)}"}
