"""Pytest configuration and fixtures for unit tests."""

from datetime import date

import pytest

from familyload.core.cache_client import InMemoryCache
from tests.unit.mocks import InMemoryDBClient


@pytest.fixture
def in_memory_db():
    """Provides a fresh InMemoryDBClient for each test."""
    return InMemoryDBClient()


@pytest.fixture
def patched_db(monkeypatch, in_memory_db):
    """Patches familyload.core.db_client functions to use InMemoryDBClient."""
    monkeypatch.setattr("familyload.core.db_client.create_record", in_memory_db.create_record)
    monkeypatch.setattr("familyload.core.db_client.get_record", in_memory_db.get_record)
    monkeypatch.setattr("familyload.core.db_client.update_record", in_memory_db.update_record)
    monkeypatch.setattr("familyload.core.db_client.delete_record", in_memory_db.delete_record)
    monkeypatch.setattr("familyload.core.db_client.list_records", in_memory_db.list_records)
    monkeypatch.setattr("familyload.core.db_client.list_all_records", in_memory_db.list_all_records)
    monkeypatch.setattr("familyload.core.db_client.get_first_record", in_memory_db.get_first_record)

    return in_memory_db


@pytest.fixture
def cache():
    """Fresh reporting cache, owned by the test."""
    return InMemoryCache(max_entries=16, default_ttl_seconds=60)


@pytest.fixture
def today():
    """Fixed reference day (a Monday)."""
    return date(2026, 3, 16)


@pytest.fixture
async def household(patched_db):
    """Household with two active parents; returns the household id."""
    record = await patched_db.create_record(collection="households", data={"name": "Martin", "country": "FR"})
    household_id = record["id"]
    for user_id, name, role in (("u1", "Alex", "parent"), ("u2", "Sam", "co_parent")):
        await patched_db.create_record(
            collection="household_members",
            data={
                "household_id": household_id,
                "user_id": user_id,
                "display_name": name,
                "role": role,
                "is_active": True,
            },
        )
    return household_id
