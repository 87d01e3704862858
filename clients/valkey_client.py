"""
Valkey (Redis-compatible) cache for OTP mirrors, sessions and rate limiting.

Simple wrapper around redis-py. Connection URL from Vault.
Fail-fast: raises on connection failure, never returns fallback values.
Driver errors surface as StoreError.
"""

import logging
from functools import wraps

import redis

from clients.cache import CacheClient, Members
from clients.errors import StoreError

logger = logging.getLogger(__name__)


def _wrap_redis_errors(method):
    """Re-raise redis-py failures as StoreError."""

    @wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except redis.RedisError as e:
            logger.error(f"Valkey {method.__name__} failed: {e}")
            raise StoreError(f"Valkey {method.__name__} failed: {e}") from e

    return wrapper


class ValkeyClient(CacheClient):
    """
    Redis-compatible client for Valkey.

    Usage:
        client = ValkeyClient("redis://localhost:6379/0")
        client.set("key", "value", expire_seconds=300)
        value = client.get("key")  # Returns None if missing
    """

    def __init__(self, url: str):
        """
        Initialize Valkey connection.

        Args:
            url: Redis-compatible connection URL (e.g., redis://localhost:6379/0)

        Raises:
            StoreError: If connection fails
        """
        self._client = redis.from_url(url, decode_responses=True)
        # Verify connectivity immediately (fail-fast)
        self.ping()
        logger.info("ValkeyClient connected")

    @_wrap_redis_errors
    def ping(self) -> bool:
        self._client.ping()
        return True

    @_wrap_redis_errors
    def get(self, key: str) -> str | None:
        return self._client.get(key)

    @_wrap_redis_errors
    def set(self, key: str, value: str, expire_seconds: int | None = None) -> None:
        if expire_seconds is not None:
            self._client.setex(key, expire_seconds, value)
        else:
            self._client.set(key, value)

    @_wrap_redis_errors
    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return self._client.delete(*keys)

    @_wrap_redis_errors
    def exists(self, key: str) -> bool:
        return self._client.exists(key) > 0

    @_wrap_redis_errors
    def ttl(self, key: str) -> int:
        return self._client.ttl(key)

    @_wrap_redis_errors
    def incr(self, key: str) -> int:
        return self._client.incr(key)

    @_wrap_redis_errors
    def expire(self, key: str, seconds: int) -> bool:
        return bool(self._client.expire(key, seconds))

    @_wrap_redis_errors
    def sadd(self, key: str, *members: str) -> int:
        if not members:
            return 0
        return self._client.sadd(key, *members)

    @_wrap_redis_errors
    def srem(self, key: str, *members: str) -> int:
        if not members:
            return 0
        return self._client.srem(key, *members)

    @_wrap_redis_errors
    def smembers(self, key: str) -> Members:
        return set(self._client.smembers(key))

    def close(self) -> None:
        """Close the connection."""
        self._client.close()
        logger.info("ValkeyClient closed")
