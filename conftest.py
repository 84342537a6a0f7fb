"""
Shared fixtures: an in-memory SQLite database, a fake Firestore client and
FastAPI dependency overrides so routes run without Google credentials.
"""

import os

# Must be set before db.session builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite://")

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import services.session_cleanup
from core.config import school_cache_config, user_cache_config
from core.deps import get_current_user
from core.firebase import get_firestore
from db.session import get_session
from main import app
from models.school import School
from utils.cache import TTLCache

LINCOLN = {
    "id": "LINCOLN-ES",
    "name": "Lincoln Elementary School",
    "address": "1200 Lincoln Ave, Springfield, IL 62703",
    "center_lat": 39.7817,
    "center_lng": -89.6501,
    "radius_meters": 100.0,
}

PROVIDER = {
    "uid": "provider-1",
    "name": "Pat Provider",
    "email": "pat@example.com",
    "role": "provider",
    "assigned_schools": ["LINCOLN-ES"],
    "is_active": True,
}

ADMIN = {
    "uid": "admin-1",
    "name": "Alex Admin",
    "email": "alex@example.com",
    "role": "admin",
    "assigned_schools": [],
    "is_active": True,
}


@pytest.fixture
def engine(monkeypatch):
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(test_engine)
    # The cleanup job opens its own session
    monkeypatch.setattr(services.session_cleanup, "engine", test_engine)
    yield test_engine
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def school(session):
    record = School(**LINCOLN)
    session.add(record)
    session.commit()
    session.refresh(record)
    return record


@pytest.fixture
def fake_db():
    return MagicMock(name="firestore")


@pytest.fixture
def current_user():
    """Mutable so a test can switch roles or assignments."""
    return dict(PROVIDER)


@pytest.fixture
def client(session, fake_db, current_user):
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_firestore] = lambda: fake_db
    app.dependency_overrides[get_current_user] = lambda: current_user
    app.state.school_cache = TTLCache(school_cache_config())
    app.state.user_cache = TTLCache(user_cache_config())

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def admin_client(client, current_user):
    current_user.clear()
    current_user.update(ADMIN)
    return client
