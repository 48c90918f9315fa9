"""Bounded in-memory cache with TTL support.

Instances are owned by their caller (the web app, a test, a batch job) and passed
explicitly to the functions that cache; there is no process-wide instance.
"""

import fnmatch
import logging
import threading
import time
from collections import OrderedDict
from typing import Any


logger = logging.getLogger(__name__)


class InMemoryCache:
    """Thread-safe in-memory cache with TTL support and a maximum size."""

    def __init__(self, *, max_entries: int = 256, default_ttl_seconds: int = 60) -> None:
        """Initialize in-memory cache.

        Args:
            max_entries: Maximum number of live entries; the oldest entry is evicted first
            default_ttl_seconds: TTL applied when ``set`` is called without one
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self._max_entries = max_entries
        self._default_ttl_seconds = default_ttl_seconds
        self._data: OrderedDict[str, str] = OrderedDict()
        self._expiry: dict[str, float] = {}
        self._lock = threading.Lock()

        # Health tracking
        self._last_successful_operation: float | None = None
        self._total_operations = 0
        self._evictions = 0

    def get_health_status(self) -> dict[str, Any]:
        """Get cache health status."""
        return {
            "entries": len(self._data),
            "max_entries": self._max_entries,
            "evictions": self._evictions,
            "last_successful_operation": self._last_successful_operation,
            "total_operations": self._total_operations,
        }

    def _record_success(self) -> None:
        self._last_successful_operation = time.time()
        self._total_operations += 1

    def _cleanup_expired(self, keys: list[str] | None = None) -> None:
        """Clean up expired entries.

        Args:
            keys: Specific keys to check. If None, checks all keys.
        """
        now = time.time()
        keys_to_check = list(self._expiry.keys()) if keys is None else keys

        for key in keys_to_check:
            expiry = self._expiry.get(key)
            if expiry and expiry < now:
                self._data.pop(key, None)
                self._expiry.pop(key, None)

    def _evict_overflow(self) -> None:
        while len(self._data) > self._max_entries:
            key, _ = self._data.popitem(last=False)
            self._expiry.pop(key, None)
            self._evictions += 1
            logger.debug("Evicted cache key: %s", key)

    async def get(self, key: str) -> str | None:
        """Get value from cache.

        Returns:
            Cached value or None if not found or expired
        """
        with self._lock:
            self._cleanup_expired([key])

            value = self._data.get(key)
            if value is not None:
                self._record_success()
                logger.debug("Cache hit for key: %s", key)
            return value

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> bool:
        """Set value in cache with TTL.

        Args:
            key: Cache key
            value: Value to cache
            ttl_seconds: Time-to-live in seconds, defaults to the cache's default TTL; 0 means no expiry

        Returns:
            True if successful
        """
        ttl = self._default_ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._data[key] = value
            self._data.move_to_end(key)
            if ttl > 0:
                self._expiry[key] = time.time() + ttl
            else:
                self._expiry.pop(key, None)
            self._cleanup_expired()
            self._evict_overflow()
            self._record_success()
            logger.debug("Cached key: %s (TTL: %ds)", key, ttl)
            return True

    async def delete(self, *keys: str) -> bool:
        """Delete one or more keys from cache."""
        if not keys:
            return False

        with self._lock:
            for key in keys:
                self._data.pop(key, None)
                self._expiry.pop(key, None)
            self._record_success()
            logger.debug("Deleted %d cache key(s)", len(keys))
            return True

    async def keys(self, pattern: str) -> list[str]:
        """Find keys matching a glob pattern (e.g., 'balance:42:*')."""
        with self._lock:
            self._cleanup_expired()
            return [key for key in self._data if fnmatch.fnmatch(key, pattern)]

    async def invalidate(self, pattern: str) -> int:
        """Delete every key matching a glob pattern and return how many were removed."""
        matching = await self.keys(pattern)
        if matching:
            await self.delete(*matching)
        return len(matching)

    async def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._data.clear()
            self._expiry.clear()
            self._record_success()
