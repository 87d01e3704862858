"""Tests for auth/rate_limiter.py - fixed-window counters in the cache."""

from auth.rate_limiter import RateLimiter


class TestCheckAllowed:

    def test_allowed_when_no_counter(self, rate_limiter):
        decision = rate_limiter.check_allowed("send", "+919876543210", 3, 900)
        assert decision.allowed is True
        assert decision.retry_after_seconds is None

    def test_check_does_not_count(self, rate_limiter, cache):
        """Checking alone never creates or bumps the counter."""
        for _ in range(5):
            rate_limiter.check_allowed("send", "k", 3, 900)
        assert cache.get("ratelimit:send:k") is None

    def test_blocked_once_count_reaches_max(self, rate_limiter):
        for _ in range(3):
            rate_limiter.record_attempt("send", "k", 900)

        decision = rate_limiter.check_allowed("send", "k", 3, 900)
        assert decision.allowed is False
        assert 0 < decision.retry_after_seconds <= 900

    def test_allowed_just_below_max(self, rate_limiter):
        for _ in range(2):
            rate_limiter.record_attempt("send", "k", 900)
        assert rate_limiter.check_allowed("send", "k", 3, 900).allowed is True

    def test_retry_after_is_remaining_window(self, rate_limiter, clock):
        for _ in range(3):
            rate_limiter.record_attempt("send", "k", 900)
        clock.advance(seconds=300)

        decision = rate_limiter.check_allowed("send", "k", 3, 900)
        assert decision.retry_after_seconds == 600

    def test_counter_without_ttl_is_repaired(self, rate_limiter, cache):
        """A counter that lost its TTL gets the window back instead of blocking forever."""
        cache.set("ratelimit:send:k", "5")

        decision = rate_limiter.check_allowed("send", "k", 3, 900)
        assert decision.allowed is False
        assert decision.retry_after_seconds == 900
        assert cache.ttl("ratelimit:send:k") == 900


class TestRecordAttempt:

    def test_first_attempt_starts_window(self, rate_limiter, cache):
        assert rate_limiter.record_attempt("attempts", "k", 600) == 1
        assert cache.ttl("ratelimit:attempts:k") == 600

    def test_later_attempts_do_not_extend_window(self, rate_limiter, cache, clock):
        """Fixed window: the TTL set by the first attempt keeps counting down."""
        rate_limiter.record_attempt("attempts", "k", 600)
        clock.advance(seconds=200)
        assert rate_limiter.record_attempt("attempts", "k", 600) == 2
        assert cache.ttl("ratelimit:attempts:k") == 400

    def test_window_resets_after_expiry(self, rate_limiter, clock):
        for _ in range(3):
            rate_limiter.record_attempt("send", "k", 900)
        clock.advance(seconds=901)

        assert rate_limiter.check_allowed("send", "k", 3, 900).allowed is True
        assert rate_limiter.record_attempt("send", "k", 900) == 1

    def test_keys_are_independent(self, rate_limiter):
        for _ in range(3):
            rate_limiter.record_attempt("send", "a", 900)

        assert rate_limiter.check_allowed("send", "b", 3, 900).allowed is True
        assert rate_limiter.check_allowed("resend", "a", 3, 900).allowed is True


class TestHitResetRemaining:

    def test_hit_records_only_when_allowed(self, rate_limiter, cache):
        results = [rate_limiter.hit("ip:login", "10.0.0.1", 2, 60).allowed for _ in range(4)]
        assert results == [True, True, False, False]
        assert cache.get("ratelimit:ip:login:10.0.0.1") == "2"

    def test_reset_clears_counter(self, rate_limiter):
        for _ in range(3):
            rate_limiter.record_attempt("attempts", "k", 600)
        rate_limiter.reset("attempts", "k")
        assert rate_limiter.check_allowed("attempts", "k", 3, 600).allowed is True

    def test_reset_missing_counter_is_noop(self, rate_limiter):
        rate_limiter.reset("attempts", "never-seen")

    def test_remaining(self, rate_limiter):
        assert rate_limiter.remaining("send", "k", 3) == 3
        rate_limiter.record_attempt("send", "k", 900)
        assert rate_limiter.remaining("send", "k", 3) == 2
        for _ in range(5):
            rate_limiter.record_attempt("send", "k", 900)
        assert rate_limiter.remaining("send", "k", 3) == 0

    def test_uses_configured_prefix(self, cache, config):
        limiter = RateLimiter(cache, config.model_copy(update={"rate_limit_key_prefix": "rl/"}))
        limiter.record_attempt("send", "k", 60)
        assert cache.exists("rl/send:k")
