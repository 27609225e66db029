"""
Shared test fixtures for the WaterKontrol backend test suite.

Provides:
- In-memory SQLite database with all tables created
- Repository instances wired to the test database
- A registered controller seeded from a template
- Recording fakes for the message bus and the event bus

In-memory SQLite connections are per thread, so every fixture and test
touches the store from the main thread only.

Usage:
    def test_example(device_repo, registered_device):
        values = device_repo.get_values_by_type(registered_device.registration_id)
        assert values["ph"] == "7.0"
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from infrastructure.database.repositories.devices import DeviceRepository
from infrastructure.database.repositories.notifications import NotificationRepository
from infrastructure.database.repositories.schedules import ScheduleRepository
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

# ---------------------------------------------------------------------------
# Logging: keep test output clean
# ---------------------------------------------------------------------------
logging.getLogger("infrastructure").setLevel(logging.WARNING)
logging.getLogger("app").setLevel(logging.WARNING)


SERIAL = "WK0001"
TOPIC = f"riego/WK/{SERIAL}"


# ========================== Database Fixtures ==============================


@pytest.fixture()
def db_handler():
    """In-memory SQLite database with all tables created.

    Each test gets a fresh database, no cross-test contamination.
    """
    handler = SQLiteDatabaseHandler(":memory:")
    handler.create_tables()
    yield handler
    handler.close_db()


# ========================== Repository Fixtures ============================


@pytest.fixture()
def device_repo(db_handler):
    return DeviceRepository(db_handler)


@pytest.fixture()
def schedule_repo(db_handler):
    return ScheduleRepository(db_handler)


@pytest.fixture()
def notification_repo(db_handler):
    return NotificationRepository(db_handler)


# ========================== Seed Helpers ===================================


def seed_template(device_repo: DeviceRepository, model: str = "WaterKontrol v1") -> int:
    """Template with ph, conductividad and nivel parameters."""
    template_id = device_repo.create_device_template(abbreviation="WK", model=model, kind="riego", brand="WK")
    assert template_id is not None
    for position, (name, type_, initial) in enumerate(
        [
            ("Potencial de hidrógeno", "ph", "7.0"),
            ("Conductividad eléctrica", "conductividad", "0"),
            ("Nivel del tanque", "nivel", None),
        ]
    ):
        parameter_id = device_repo.create_parameter(name=name, type_=type_)
        assert parameter_id is not None
        assert device_repo.add_template_parameter(template_id, parameter_id, initial, position)
    return template_id


def seed_registration(
    device_repo: DeviceRepository,
    template_id: int,
    *,
    serial: str = SERIAL,
    owner_id: int = 1,
):
    registration = device_repo.register_device(
        owner_id=owner_id,
        template_id=template_id,
        serial_number=serial,
        topic=f"riego/WK/{serial}",
        name=f"Tank {serial}",
    )
    assert registration is not None
    return registration


@pytest.fixture()
def template_id(device_repo):
    return seed_template(device_repo)


@pytest.fixture()
def registered_device(device_repo, template_id):
    """A freshly registered (offline) controller with seeded values."""
    return seed_registration(device_repo, template_id)


# ========================== Fakes ==========================================


class RecordingBus:
    """MessageBus fake that records publishes and subscriptions."""

    def __init__(self, accept: bool = True):
        self.accept = accept
        self.published: list[tuple[str, Any]] = []
        self.subscriptions: list[tuple[str, Any]] = []

    def subscribe(self, topic, callback):
        self.subscriptions.append((topic, callback))
        return True

    def publish(self, topic, payload):
        self.published.append((topic, payload))
        return self.accept

    def deliver(self, topic: str, payload: bytes):
        msg = SimpleNamespace(topic=topic, payload=payload)
        for _pattern, callback in self.subscriptions:
            callback(None, None, msg)


@pytest.fixture()
def recording_bus():
    return RecordingBus()


@pytest.fixture()
def make_bus():
    """Factory for RecordingBus instances, e.g. ``make_bus(accept=False)``."""
    return RecordingBus


@pytest.fixture()
def make_registration(device_repo, template_id):
    """Factory registering further controllers on the seeded template."""

    def _make(serial: str, owner_id: int = 1):
        return seed_registration(device_repo, template_id, serial=serial, owner_id=owner_id)

    return _make


@pytest.fixture()
def mock_event_bus():
    """Mock EventBus that records publish calls."""
    bus = MagicMock()
    bus.publish = MagicMock()
    bus.subscribe = MagicMock(return_value=lambda: None)
    return bus


@pytest.fixture()
def mock_audit_logger():
    logger = MagicMock()
    logger.log_event = MagicMock()
    return logger
