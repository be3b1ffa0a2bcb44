"""
Tests for the fixed-window rate limiter.
"""

import pytest
from hypothesis import given, strategies as st

from jnx_os.security.rate_limit import (
    FIFTEEN_MINUTES,
    RateLimiter,
    RateLimiterRegistry,
    get_rate_limit_identifier,
)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class TestRateLimiter:
    def test_allows_up_to_max_then_limits(self, clock):
        limiter = RateLimiter(60, 3, clock)

        results = [limiter.check("ip:1") for _ in range(4)]

        assert [r.limited for r in results] == [False, False, False, True]
        assert [r.remaining for r in results] == [2, 1, 0, 0]

    def test_window_resets_after_expiry(self, clock):
        limiter = RateLimiter(60, 1, clock)
        limiter.check("ip:1")
        assert limiter.check("ip:1").limited is True

        clock.advance(61)
        result = limiter.check("ip:1")

        assert result.limited is False
        assert result.remaining == 0
        assert result.reset_time == clock.now + 60

    def test_still_limited_at_reset_boundary(self, clock):
        limiter = RateLimiter(60, 1, clock)
        limiter.check("ip:1")

        clock.advance(60)

        assert limiter.check("ip:1").limited is True

    def test_identifiers_are_independent(self, clock):
        limiter = RateLimiter(60, 1, clock)
        limiter.check("ip:1")

        assert limiter.check("ip:2").limited is False
        assert limiter.check("ip:1").limited is True

    def test_retry_after(self, clock):
        limiter = RateLimiter(60, 1, clock)
        limiter.check("ip:1")
        clock.advance(20.5)

        result = limiter.check("ip:1")

        assert result.retry_after(clock()) == 40

    def test_expired_windows_swept(self, clock):
        limiter = RateLimiter(60, 5, clock)
        limiter.check("ip:1")
        limiter.check("ip:2")
        assert len(limiter) == 2

        clock.advance(61)
        limiter.check("ip:3")

        assert len(limiter) == 1

    def test_reset(self, clock):
        limiter = RateLimiter(60, 1, clock)
        limiter.check("ip:1")
        limiter.check("ip:2")

        limiter.reset("ip:1")
        assert limiter.check("ip:1").limited is False

        limiter.reset()
        assert len(limiter) == 0

    @pytest.mark.parametrize("interval, max_requests", [(0, 1), (-1, 1), (60, 0)])
    def test_invalid_configuration(self, interval, max_requests):
        with pytest.raises(ValueError):
            RateLimiter(interval, max_requests)

    @given(max_requests=st.integers(1, 20), calls=st.integers(1, 60))
    def test_allowed_calls_never_exceed_budget(self, max_requests, calls):
        limiter = RateLimiter(60, max_requests, FakeClock())

        allowed = sum(not limiter.check("ip:1").limited for _ in range(calls))

        assert allowed == min(calls, max_requests)


class TestRegistry:
    def test_presets(self):
        registry = RateLimiterRegistry()

        assert (registry.general.max_requests, registry.general.interval_seconds) == (100, FIFTEEN_MINUTES)
        assert registry.auth.max_requests == 10
        assert registry.strict.max_requests == 5

    def test_unknown_name(self):
        registry = RateLimiterRegistry()

        with pytest.raises(KeyError):
            registry.get("burst")
        with pytest.raises(KeyError):
            registry.get("get")

    def test_shared_clock(self, clock):
        registry = RateLimiterRegistry(clock=clock)

        assert registry.get("auth").clock is clock


class TestIdentifier:
    def test_user_preferred_over_ip(self):
        assert get_rate_limit_identifier("10.0.0.1", "user_1") == "user:user_1"

    def test_ip_fallback(self):
        assert get_rate_limit_identifier("10.0.0.1", None) == "ip:10.0.0.1"

    def test_unknown(self):
        assert get_rate_limit_identifier(None, None) == "unknown"


class TestRateLimitedEndpoint:
    def test_auth_endpoint_returns_429(self, client):
        statuses = [client.post("/api/auth/login", json={}).status_code for _ in range(10)]
        assert set(statuses) == {400}

        response = client.post("/api/auth/login", json={})

        assert response.status_code == 429
        assert response.headers["x-ratelimit-remaining"] == "0"
        assert int(response.headers["retry-after"]) >= 1

    def test_forwarded_for_clients_counted_separately(self, client):
        for _ in range(10):
            client.post("/api/auth/login", json={}, headers={"X-Forwarded-For": "203.0.113.1"})

        limited = client.post("/api/auth/login", json={}, headers={"X-Forwarded-For": "203.0.113.1"})
        other = client.post("/api/auth/login", json={}, headers={"X-Forwarded-For": "203.0.113.2"})

        assert limited.status_code == 429
        assert other.status_code == 400
