"""Tests for the token bucket rate limiter."""

import pytest
from fastapi import HTTPException

from app.core.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def test_burst_then_limited(clock):
    limiter = RateLimiter(requests_per_minute=60, burst_size=3, clock=clock)

    for _ in range(3):
        assert limiter.check_limit("engine:v1") is True

    with pytest.raises(HTTPException) as exc_info:
        limiter.check_limit("engine:v1")

    assert exc_info.value.status_code == 429
    assert exc_info.value.headers == {"Retry-After": "2"}


def test_refills_over_time(clock):
    limiter = RateLimiter(requests_per_minute=60, burst_size=2, clock=clock)
    limiter.check_limit("k")
    limiter.check_limit("k")

    clock.now += 1.0

    assert limiter.check_limit("k") is True


def test_refill_is_capped_at_burst(clock):
    limiter = RateLimiter(requests_per_minute=60, burst_size=2, clock=clock)
    limiter.check_limit("k")

    clock.now += 3600

    assert limiter.get_stats("k")["tokens_remaining"] == 2


def test_keys_are_independent(clock):
    limiter = RateLimiter(requests_per_minute=60, burst_size=1, clock=clock)
    limiter.check_limit("a")

    assert limiter.check_limit("b") is True
    with pytest.raises(HTTPException):
        limiter.check_limit("a")


def test_stats_and_reset(clock):
    limiter = RateLimiter(requests_per_minute=20, burst_size=30, clock=clock)
    limiter.check_limit("k")
    limiter.check_limit("k")

    stats = limiter.get_stats("k")
    assert stats == {
        "tokens_remaining": 28,
        "burst_size": 30,
        "requests_per_minute": 20,
        "total_requests": 2,
    }

    limiter.reset("k")
    assert limiter.get_stats("k")["total_requests"] == 0
    assert limiter.get_stats("k")["tokens_remaining"] == 30
