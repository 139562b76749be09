"""
Pytest configuration and fixtures.

The wizard tests run against FakeDraftStore, an in-process PersistenceClient
that records every call. The API tests run the FastAPI app against an
in-memory SQLite database.
"""
from __future__ import annotations

from typing import Dict

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from coursewizard.db import Base, get_db
from coursewizard.main import app
from coursewizard.routers.auth import Instructor, get_current_user
from coursewizard.wizard.coordinator import SaveCoordinator
from coursewizard.wizard.notifications import Notifier
from coursewizard.wizard.session import WizardSession
from coursewizard.wizard.snapshots import SnapshotRegistry
from fakes import FakeDraftStore


@pytest.fixture
def store() -> FakeDraftStore:
    return FakeDraftStore()


@pytest.fixture
def session() -> WizardSession:
    return WizardSession()


@pytest.fixture
def registry() -> SnapshotRegistry:
    return SnapshotRegistry()


@pytest.fixture
def notifier() -> Notifier:
    return Notifier()


@pytest.fixture
def coordinator(session, store, registry, notifier) -> SaveCoordinator:
    return SaveCoordinator(session, store, registry, notifier)


@pytest.fixture
def db_factory():
    """Session factory bound to a fresh in-memory database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def override_db(db_factory):
    def _get_db():
        db = db_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    yield db_factory
    app.dependency_overrides.clear()


@pytest.fixture
def acting_user(override_db) -> Dict[str, Instructor]:
    """Mutable holder for the user the API sees as logged in."""
    current = {"user": Instructor(username="janet")}
    app.dependency_overrides[get_current_user] = lambda: current["user"]
    return current


@pytest.fixture
def client(acting_user) -> TestClient:
    """FastAPI test client authenticated as ``acting_user``."""
    return TestClient(app)
