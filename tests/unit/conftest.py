"""Pytest configuration and fixtures for unit tests."""

from datetime import datetime

import pytest

from src.domain.user import Actor, Role
from src.services.channel_registry import ChannelRegistry
from src.services.fanout import FanoutRouter
from src.services.task_service import TaskService
from tests.unit.mocks import FIXED_NOW, InMemoryDBClient


@pytest.fixture
def in_memory_db():
    """Provides a fresh InMemoryDBClient for each test."""
    return InMemoryDBClient()


@pytest.fixture
def patched_db(monkeypatch, in_memory_db):
    """Patches src.core.db_client functions to use InMemoryDBClient and seeds users."""
    in_memory_db.install(monkeypatch)
    for user_id, name, role in (
        ("A1", "Ada Admin", Role.ADMIN),
        ("V1", "Vera Vendor", Role.VENDOR),
        ("V2", "Victor Vendor", Role.VENDOR),
        ("C1", "Cleo Customer", Role.CUSTOMER),
        ("C2", "Carl Customer", Role.CUSTOMER),
    ):
        in_memory_db.seed(
            "users",
            {"id": user_id, "name": name, "email": f"{user_id.lower()}@example.com", "role": role.value, "is_active": True},
        )
    return in_memory_db


@pytest.fixture
def admin():
    return Actor(id="A1", role=Role.ADMIN, name="Ada Admin")


@pytest.fixture
def vendor():
    return Actor(id="V1", role=Role.VENDOR, name="Vera Vendor")


@pytest.fixture
def other_vendor():
    return Actor(id="V2", role=Role.VENDOR, name="Victor Vendor")


@pytest.fixture
def customer():
    return Actor(id="C1", role=Role.CUSTOMER, name="Cleo Customer")


@pytest.fixture
def other_customer():
    return Actor(id="C2", role=Role.CUSTOMER, name="Carl Customer")


@pytest.fixture
def clock():
    """Mutable clock; set ``clock.now`` to move time."""

    class Clock:
        now = FIXED_NOW

        def __call__(self) -> datetime:
            return self.now

    return Clock()


@pytest.fixture
def registry():
    return ChannelRegistry()


@pytest.fixture
def fanout(registry, clock):
    return FanoutRouter(registry, clock=clock)


@pytest.fixture
def task_service(patched_db, fanout, clock):
    """TaskService over the in-memory store with a fixed clock."""
    return TaskService(fanout, clock=clock)
