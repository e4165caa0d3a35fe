from datetime import timedelta

import pytest

from pyrhouse.ratelimit import RateLimiter


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def make(limit, window, clock):
    return RateLimiter(limit, window, clock=clock, cleanup_interval=None)


def test_allows_up_to_limit_then_denies(clock):
    limiter = make(2, 60, clock)
    assert limiter.is_allowed("10.0.0.1") is True
    assert limiter.is_allowed("10.0.0.1") is True
    assert limiter.is_allowed("10.0.0.1") is False


def test_addresses_are_independent(clock):
    limiter = make(1, 60, clock)
    assert limiter.is_allowed("10.0.0.1") is True
    assert limiter.is_allowed("10.0.0.1") is False
    assert limiter.is_allowed("10.0.0.2") is True


def test_remaining_for_unknown_address_is_limit(clock):
    limiter = make(15, 60, clock)
    assert limiter.get_remaining_requests("10.0.0.9") == 15


def test_remaining_decreases_and_reaches_zero(clock):
    limiter = make(3, 60, clock)
    before = limiter.get_remaining_requests("a")
    limiter.is_allowed("a")
    after = limiter.get_remaining_requests("a")
    assert after == before - 1
    limiter.is_allowed("a")
    limiter.is_allowed("a")
    assert limiter.get_remaining_requests("a") == 0
    limiter.is_allowed("a")
    assert limiter.get_remaining_requests("a") == 0


def test_window_expiry_allows_again(clock):
    limiter = make(1, 60, clock)
    assert limiter.is_allowed("a") is True
    clock.advance(30)
    assert limiter.is_allowed("a") is False
    clock.advance(31)
    assert limiter.is_allowed("a") is True


def test_request_exactly_at_window_edge_has_expired(clock):
    limiter = make(1, 60, clock)
    limiter.is_allowed("a")
    clock.advance(60)
    assert limiter.get_remaining_requests("a") == limiter.limit


def test_accepts_timedelta_window(clock):
    limiter = make(1, timedelta(minutes=1), clock)
    assert limiter.window == 60.0
    limiter.is_allowed("a")
    clock.advance(61)
    assert limiter.is_allowed("a") is True


def test_cleanup_drops_expired_addresses(clock):
    limiter = make(5, 60, clock)
    limiter.is_allowed("old")
    clock.advance(50)
    limiter.is_allowed("new")
    clock.advance(20)
    limiter.cleanup()
    assert len(limiter) == 1
    assert limiter.get_remaining_requests("old") == limiter.limit
    assert limiter.get_remaining_requests("new") == limiter.limit - 1


def test_cleanup_on_empty_limiter(clock):
    limiter = make(5, 60, clock)
    limiter.cleanup()
    assert len(limiter) == 0