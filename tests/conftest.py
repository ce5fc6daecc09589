"""Shared pytest fixtures for the services dashboard tests."""

from __future__ import annotations

import os

# Must be set before the package creates its engine.
os.environ["DATABASE_URL"] = "sqlite://"

from typing import Any

import pytest
from starlette.testclient import TestClient

from services_dashboard import database
from services_dashboard.app import crud, schemas
from services_dashboard.app.gateway import ServiceGateway


@pytest.fixture(autouse=True)
def _fresh_schema():
    """Every test starts from an empty services table."""
    database.create_db_and_tables()
    try:
        yield
    finally:
        database.drop_db_and_tables()


@pytest.fixture
def db():
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


class RecordingNotifier:
    """Collects invalidation events instead of acting on them."""

    def __init__(self) -> None:
        self.events: list[tuple[str, ...]] = []

    def invalidate(self, *tags: str) -> None:
        self.events.append(tags)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def gateway(db, notifier) -> ServiceGateway:
    return ServiceGateway(db, notifier=notifier)


@pytest.fixture
def client() -> TestClient:
    from services_dashboard.main import create_app

    return TestClient(create_app())


# ---------------------------------------------------------------------------
# Shared test helpers
# ---------------------------------------------------------------------------


def service_form(**overrides: Any) -> dict[str, str]:
    """A valid dashboard form submission, with overrides."""
    form = {
        "name": "Consulting",
        "description": "1hr session",
        "price": "99.50",
        "isActive": "true",
        "isFeatured": "false",
    }
    form.update(overrides)
    return form


def add_service(db, **overrides: Any):
    """Insert a service through the crud layer, bypassing the gateway."""
    values = {"name": "Service", "description": "Something", "price": 10.0}
    values.update(overrides)
    return crud.create_service(db, schemas.ServiceForm(**values))


class FakeClock:
    """A monotonic clock that only moves when ``now`` is set."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now
