"""
Pytest fixtures for tests.

The database is an in-memory SQLite (StaticPool) shared by the test
session and the app, so DATABASE_URL must be set before anything
imports ``database``. Every test starts from an empty schema and an
empty selection broker / notifier.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient

import models  # noqa: F401  (registers tables on Base.metadata)
from database import Base, SessionLocal, engine
from core.notifier import get_notifier
from core.round_manager import RoundManager
from core.selection_broker import get_selection_broker
from schemas import ReservationForm


@pytest.fixture(autouse=True)
def fresh_state():
    """Recreate the schema and clear process-wide singletons around each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    get_selection_broker().reset()
    get_notifier().reset()
    yield
    get_selection_broker().reset()
    get_notifier().reset()


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def active_round(db):
    """Round #1 at the default price (1000 cents)."""
    return RoundManager.start_round(db)


@pytest.fixture
def make_form():
    def _make(squares, name="Alice", email="alice@example.com", phone="5551234567"):
        return ReservationForm(name=name, email=email, phone=phone, squares=squares)
    return _make


@pytest.fixture
def client():
    """TestClient with lifespan run (seeds Round #1)."""
    from main import app

    with TestClient(app) as test_client:
        yield test_client
