"""Pytest configuration and shared fixtures.

Every test gets a fresh in-memory SQLite database. The application module
reads settings at import time, so DATABASE_URL is pinned before any
``stageflow`` import.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_TO_FILE", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import stageflow.db.models  # noqa: F401
from stageflow.db.base import Base
from stageflow.core.workflow import AdapterRegistry, WorkflowEngine
from stageflow.services.reprint import ReprintRequestAdapter

from tests.factories import RecordingAdapter


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with foreign keys enforced."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    session = sessionmaker(bind=db_engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def ticket_adapter():
    """In-memory adapter for the ``tickets`` request domain."""
    return RecordingAdapter("tickets", known_ids={"T-1", "T-2", "T-3"})


@pytest.fixture
def adapters(db_session, ticket_adapter):
    registry = AdapterRegistry()
    registry.register(ticket_adapter)
    registry.register(ReprintRequestAdapter(db_session))
    return registry


@pytest.fixture
def workflow_engine(db_session, adapters):
    return WorkflowEngine(db_session, adapters)


@pytest.fixture
def client(db_session):
    """Test client whose requests share the test's database session."""
    from stageflow.api.deps import get_db
    from stageflow.api.main import app

    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"X-User-Role": "admin"}
