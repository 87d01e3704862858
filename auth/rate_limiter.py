"""Fixed-window rate limiting backed by the cache.

Counters live at ratelimit:<purpose>:<key> with a TTL equal to the window.
The first attempt in a window starts the TTL; later attempts increment the
counter without extending it. Nothing is persisted beyond the cache, so a
cache flush resets every limit.
"""

import logging

from clients.cache import CacheClient
from auth.config import AuthConfig
from auth.types import RateDecision

logger = logging.getLogger(__name__)


class RateLimiter:
    """Per-(purpose, key) attempt counters.

    Purposes in use: "send", "resend", "attempts" (keyed by phone number)
    and "ip:<endpoint>" (keyed by client IP).
    """

    def __init__(self, cache: CacheClient, config: AuthConfig):
        self._cache = cache
        self._config = config

    def _key(self, purpose: str, key: str) -> str:
        return f"{self._config.rate_limit_key_prefix}{purpose}:{key}"

    def check_allowed(
        self,
        purpose: str,
        key: str,
        max_count: int,
        window_seconds: int,
    ) -> RateDecision:
        """Check whether another attempt is allowed. Does not count it.

        Not allowed once the counter has reached max_count; the decision
        then carries the remaining window (at least 1 second).
        """
        cache_key = self._key(purpose, key)
        current = self._cache.get(cache_key)

        if current is None or int(current) < max_count:
            return RateDecision(allowed=True)

        ttl = self._cache.ttl(cache_key)
        if ttl < 0:
            # Counter without expiry: repair it so the block is not permanent
            self._cache.expire(cache_key, window_seconds)
            ttl = window_seconds

        logger.info(f"Rate limit hit for {purpose}")
        return RateDecision(allowed=False, retry_after_seconds=max(ttl, 1))

    def record_attempt(self, purpose: str, key: str, window_seconds: int) -> int:
        """Count one attempt. Returns the count within the current window."""
        cache_key = self._key(purpose, key)
        count = self._cache.incr(cache_key)

        # First attempt starts the window; -1 means a previous expire was lost
        if count == 1 or self._cache.ttl(cache_key) == -1:
            self._cache.expire(cache_key, window_seconds)

        return count

    def hit(
        self,
        purpose: str,
        key: str,
        max_count: int,
        window_seconds: int,
    ) -> RateDecision:
        """Check and, when allowed, record in one call."""
        decision = self.check_allowed(purpose, key, max_count, window_seconds)
        if decision.allowed:
            self.record_attempt(purpose, key, window_seconds)
        return decision

    def reset(self, purpose: str, key: str) -> None:
        """Clear the counter. Safe to call when none exists."""
        self._cache.delete(self._key(purpose, key))

    def remaining(self, purpose: str, key: str, max_count: int) -> int:
        """Attempts left before the limit."""
        current = self._cache.get(self._key(purpose, key))
        if current is None:
            return max_count
        return max(max_count - int(current), 0)
