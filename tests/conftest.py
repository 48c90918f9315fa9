"""Pytest configuration and shared fixtures."""

import pytest

from familyload.core import db_client
from familyload.core.config import settings


@pytest.fixture
async def sqlite_store(tmp_path, monkeypatch):
    """Real SQLite store in a temporary directory with the schema applied."""
    monkeypatch.setattr(settings, "sqlite_db_path", str(tmp_path / "familyload-test.db"))
    await db_client.init_db()
    yield db_client
    await db_client.close_connection()
