"""Pytest configuration and shared fixtures."""

import logging
from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from src.core import db_client
from src.core.config import settings


logger = logging.getLogger(__name__)


@pytest.fixture
def sqlite_path(tmp_path: Path, monkeypatch) -> str:
    """Point the store at a fresh SQLite file for this test."""
    path = str(tmp_path / "taskhub-test.db")
    monkeypatch.setattr(settings, "sqlite_db_path", path)
    return path


@pytest.fixture
def secret_key(monkeypatch) -> str:
    monkeypatch.setattr(settings, "secret_key", "integration-test-secret")
    return settings.secret_key


@pytest.fixture
async def sqlite_db(sqlite_path: str) -> AsyncIterator[str]:
    """Initialized SQLite store, closed after the test."""
    await db_client.init_db()
    logger.debug("Initialized test database", extra={"db_path": sqlite_path})
    yield sqlite_path
    await db_client.close_connection()
