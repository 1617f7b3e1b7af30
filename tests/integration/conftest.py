"""Pytest configuration and fixtures for integration tests.

HTTP and WebSocket tests run the real app (lifespan included) against a
temporary SQLite file. Users are seeded through the app's own event loop so the
cached store connection is shared with request handlers.
"""

import functools
from collections.abc import Generator
from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from src.domain.create_models import UserCreate
from src.domain.user import Role, User
from src.main import app
from src.services import identity_service, user_service


SEED_USERS = {
    "admin": ("Ada Admin", "ada@example.com", Role.ADMIN),
    "vendor": ("Vera Vendor", "vera@example.com", Role.VENDOR),
    "other_vendor": ("Victor Vendor", "victor@example.com", Role.VENDOR),
    "customer": ("Cleo Customer", "cleo@example.com", Role.CUSTOMER),
    "other_customer": ("Carl Customer", "carl@example.com", Role.CUSTOMER),
}


def future(days: int = 3) -> str:
    return (datetime.now(UTC) + timedelta(days=days)).isoformat()


def past(days: int = 1) -> str:
    return (datetime.now(UTC) - timedelta(days=days)).isoformat()


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(sqlite_path, secret_key) -> Generator[TestClient, None, None]:
    """Test client with the app's lifespan running against a temporary database."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def users(client: TestClient) -> dict[str, User]:
    """Seed one user per role key in SEED_USERS."""
    seeded = {}
    for key, (name, email, role) in SEED_USERS.items():
        create = functools.partial(user_service.create_user, payload=UserCreate(name=name, email=email, role=role))
        seeded[key] = client.portal.call(create)
    return seeded


@pytest.fixture
def tokens(users: dict[str, User]) -> dict[str, str]:
    return {key: identity_service.issue_token(user.id) for key, user in users.items()}


@pytest.fixture
def headers(tokens: dict[str, str]) -> dict[str, dict[str, str]]:
    return {key: auth(token) for key, token in tokens.items()}


@pytest.fixture
def create_task(client: TestClient, users, headers):
    """Create a task over HTTP as the given role key and return its JSON."""

    def _create(as_role: str = "vendor", **overrides) -> dict:
        body = {"title": "Fix bug", "assignee_id": users["customer"].id, "due_date": future()}
        body.update(overrides)
        response = client.post("/api/tasks", json=body, headers=headers[as_role])
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _create
