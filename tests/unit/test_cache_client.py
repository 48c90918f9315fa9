"""Tests for the in-memory reporting cache."""

from types import SimpleNamespace

import pytest

from familyload.core import cache_client
from familyload.core.cache_client import InMemoryCache


@pytest.fixture
def clock(monkeypatch):
    """Controllable clock for TTL checks."""
    now = [1_000.0]
    monkeypatch.setattr(cache_client, "time", SimpleNamespace(time=lambda: now[0]))
    return now


@pytest.mark.unit
class TestInMemoryCache:
    """Tests for InMemoryCache."""

    async def test_set_and_get(self, cache):
        await cache.set("familyload:balance:1:7:2026-03-16", '{"total_load": 6}')

        assert await cache.get("familyload:balance:1:7:2026-03-16") == '{"total_load": 6}'
        assert await cache.get("missing") is None

    async def test_entries_expire(self, clock):
        cache = InMemoryCache(default_ttl_seconds=60)
        await cache.set("a", "1")
        await cache.set("b", "2", ttl_seconds=120)

        clock[0] += 61

        assert await cache.get("a") is None
        assert await cache.get("b") == "2"

    async def test_zero_ttl_never_expires(self, clock):
        cache = InMemoryCache()
        await cache.set("a", "1", ttl_seconds=0)

        clock[0] += 10**6

        assert await cache.get("a") == "1"

    async def test_oldest_entry_is_evicted(self):
        cache = InMemoryCache(max_entries=2)
        await cache.set("a", "1")
        await cache.set("b", "2")
        await cache.set("a", "1")  # refreshed, so "b" is now the oldest
        await cache.set("c", "3")

        assert await cache.get("b") is None
        assert await cache.get("a") == "1"
        assert await cache.get("c") == "3"
        assert cache.get_health_status()["evictions"] == 1

    async def test_invalidate_by_pattern(self, cache):
        await cache.set("familyload:balance:1:7:2026-03-16", "x")
        await cache.set("familyload:deadlines:1:2026-03-16", "y")
        await cache.set("familyload:balance:2:7:2026-03-16", "z")

        removed = await cache.invalidate("familyload:*:1:*")

        assert removed == 2
        assert await cache.keys("familyload:*") == ["familyload:balance:2:7:2026-03-16"]

    async def test_delete_and_clear(self, cache):
        await cache.set("a", "1")
        await cache.set("b", "2")

        assert await cache.delete() is False
        assert await cache.delete("a") is True
        assert await cache.get("a") is None

        await cache.clear()
        assert await cache.keys("*") == []

    async def test_health_status(self, cache):
        await cache.set("a", "1")
        await cache.get("a")

        status = cache.get_health_status()
        assert status["entries"] == 1
        assert status["max_entries"] == 16
        assert status["total_operations"] == 2

    def test_rejects_empty_capacity(self):
        with pytest.raises(ValueError, match="max_entries"):
            InMemoryCache(max_entries=0)
