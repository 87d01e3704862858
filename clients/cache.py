"""
Key-value cache interface with in-memory and Valkey implementations.

Components depend on CacheClient only. The concrete backend is picked once
at startup by create_cache() from configuration:
- "memory": MemoryCache, process-local, for development and tests
- "valkey": ValkeyClient, networked, for production
"""

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable

logger = logging.getLogger(__name__)

# Module-level alias: inside the cache classes the name "set" is the set() method
Members = set[str]


class CacheClient(ABC):
    """
    Key-value cache contract.

    Values are strings; structured data goes through set_json/get_json.
    TTL semantics follow Redis: ttl() returns -2 for a missing key and -1
    for a key without expiry.
    """

    @abstractmethod
    def ping(self) -> bool:
        """Health check."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Get value by key. None if missing."""

    @abstractmethod
    def set(self, key: str, value: str, expire_seconds: int | None = None) -> None:
        """Set key to value, optionally with expiration."""

    @abstractmethod
    def delete(self, *keys: str) -> int:
        """Delete keys. Returns how many existed."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check if key exists."""

    @abstractmethod
    def ttl(self, key: str) -> int:
        """Remaining TTL in seconds (-2 missing, -1 no expiry)."""

    @abstractmethod
    def incr(self, key: str) -> int:
        """Increment key by 1, creating it at 1. Keeps any existing TTL."""

    @abstractmethod
    def expire(self, key: str, seconds: int) -> bool:
        """Set TTL on an existing key. False if key is missing."""

    @abstractmethod
    def sadd(self, key: str, *members: str) -> int:
        """Add members to a set. Returns number newly added."""

    @abstractmethod
    def srem(self, key: str, *members: str) -> int:
        """Remove members from a set. Returns number removed."""

    @abstractmethod
    def smembers(self, key: str) -> Members:
        """All members of a set (empty if missing)."""

    @abstractmethod
    def close(self) -> None:
        """Release resources."""

    def set_json(self, key: str, value: dict | list, expire_seconds: int | None = None) -> None:
        """Set key to JSON-serialized value."""
        self.set(key, json.dumps(value), expire_seconds)

    def get_json(self, key: str) -> dict | list | None:
        """
        Get and deserialize JSON value.

        Returns None if key doesn't exist.
        Raises ValueError if value is not valid JSON.
        """
        value = self.get(key)
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in key '{key}': {e}")


class MemoryCache(CacheClient):
    """
    Process-local cache with Redis-like TTL semantics.

    Expired keys are dropped lazily on access. All operations take a lock,
    so incr is atomic within one process.

    Usage:
        cache = MemoryCache()
        cache.set("key", "value", expire_seconds=300)
        cache.incr("counter")
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.RLock()
        # key -> (value, expires_at or None); value is str or set[str]
        self._data: dict[str, tuple[str | set[str], float | None]] = {}

    def _live(self, key: str) -> tuple[str | Members, float | None] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return entry

    def _expiry(self, expire_seconds: int | None) -> float | None:
        if expire_seconds is None:
            return None
        return self._clock() + expire_seconds

    def ping(self) -> bool:
        return True

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return None
            value, _ = entry
            if isinstance(value, set):
                raise TypeError(f"Key '{key}' holds a set, not a string")
            return value

    def set(self, key: str, value: str, expire_seconds: int | None = None) -> None:
        with self._lock:
            self._data[key] = (value, self._expiry(expire_seconds))

    def delete(self, *keys: str) -> int:
        removed = 0
        with self._lock:
            for key in keys:
                if self._live(key) is not None:
                    del self._data[key]
                    removed += 1
        return removed

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None

    def ttl(self, key: str) -> int:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return -2
            _, expires_at = entry
            if expires_at is None:
                return -1
            return max(int(round(expires_at - self._clock())), 0)

    def incr(self, key: str) -> int:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                self._data[key] = ("1", None)
                return 1
            value, expires_at = entry
            if isinstance(value, set):
                raise TypeError(f"Key '{key}' holds a set, not a counter")
            count = int(value) + 1
            self._data[key] = (str(count), expires_at)
            return count

    def expire(self, key: str, seconds: int) -> bool:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return False
            value, _ = entry
            self._data[key] = (value, self._expiry(seconds))
            return True

    def sadd(self, key: str, *members: str) -> int:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                current: set[str] = set()
                expires_at = None
            else:
                current, expires_at = entry
                if not isinstance(current, set):
                    raise TypeError(f"Key '{key}' holds a string, not a set")
            added = len(set(members) - current)
            self._data[key] = (current | set(members), expires_at)
            return added

    def srem(self, key: str, *members: str) -> int:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return 0
            current, expires_at = entry
            if not isinstance(current, set):
                raise TypeError(f"Key '{key}' holds a string, not a set")
            removed = len(current & set(members))
            remaining = current - set(members)
            if remaining:
                self._data[key] = (remaining, expires_at)
            else:
                del self._data[key]
            return removed

    def smembers(self, key: str) -> Members:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return set()
            value, _ = entry
            if not isinstance(value, set):
                raise TypeError(f"Key '{key}' holds a string, not a set")
            return set(value)

    def flush(self) -> None:
        """Drop every key."""
        with self._lock:
            self._data.clear()

    def close(self) -> None:
        self.flush()


def create_cache(backend: str, url: str | None = None) -> CacheClient:
    """
    Build the configured cache backend.

    Args:
        backend: "memory" or "valkey"
        url: Valkey connection URL (required for "valkey")

    Raises:
        ValueError: Unknown backend or missing URL
    """
    if backend == "memory":
        logger.info("Using in-memory cache")
        return MemoryCache()

    if backend == "valkey":
        if not url:
            raise ValueError("Valkey backend requires a connection URL")
        from clients.valkey_client import ValkeyClient

        return ValkeyClient(url)

    raise ValueError(f"Unknown cache backend '{backend}'. Expected 'memory' or 'valkey'")
