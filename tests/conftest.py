"""
Shared fixtures: in-memory SQLite per test and a TestClient wired to it.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from careconnect import models
from careconnect.database import Base, get_db
from careconnect.main import app


MONDAY = "2024-08-12"
TUESDAY = "2024-08-13"

WEEK_SCHEDULE = {
    "Monday": {"startTime": "09:00", "endTime": "17:00", "isOff": False},
    "Tuesday": {"startTime": "09:00", "endTime": "17:00", "isOff": True},
    "Wednesday": {"startTime": "10:00", "endTime": "12:00", "isOff": False},
}


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    Session = sessionmaker(bind=db_engine, autoflush=False, future=True)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def doctor(db_session):
    doc = models.Doctor(
        id="doc1",
        name="Dr. John Doe",
        email="john.doe@clinic.com",
        specialty="Cardiologist",
        working_schedule=WEEK_SCHEDULE,
        profile_complete=True,
    )
    db_session.add(doc)
    db_session.commit()
    return doc


@pytest.fixture
def second_doctor(db_session):
    doc = models.Doctor(
        id="doc2",
        name="Dr. Jane Smith",
        email="jane.smith@clinic.com",
        specialty="Dentist",
        working_schedule={"Monday": {"startTime": "09:00", "endTime": "11:00", "isOff": False}},
        profile_complete=True,
    )
    db_session.add(doc)
    db_session.commit()
    return doc


@pytest.fixture
def patient(db_session):
    p = models.Patient(id="pat1", name="Alice Johnson", email="alice@email.com")
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture
def second_patient(db_session):
    """Second patient for double-booking tests"""
    p = models.Patient(id="pat2", name="Bob Williams", email="bob@email.com")
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture
def client(db_session):
    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
