"""Rate Limiter tests - fixed window per client key.

Tests cover:
    - First `limit` requests in a window are allowed
    - Request limit+1 is refused with retry_after = ceil(remaining seconds)
    - Window expiry resets the counter lazily on next access
    - Keys are independent
"""

from vibestudio.core.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_hundred_allowed_then_refused():
    clock = FakeClock()
    limiter = RateLimiter(limit=100, window_seconds=60, clock=clock)

    for _ in range(100):
        assert limiter.allowed("1.2.3.4").allowed

    clock.now += 20.4
    decision = limiter.allowed("1.2.3.4")
    assert decision.allowed is False
    # 39.6 seconds remain -> rounded up
    assert decision.retry_after == 40


def test_retry_after_never_below_one():
    clock = FakeClock()
    limiter = RateLimiter(limit=1, window_seconds=60, clock=clock)
    limiter.allowed("k")
    clock.now += 59.99
    assert limiter.allowed("k").retry_after == 1


def test_window_expiry_resets_count():
    clock = FakeClock()
    limiter = RateLimiter(limit=2, window_seconds=60, clock=clock)
    limiter.allowed("k")
    limiter.allowed("k")
    assert not limiter.allowed("k").allowed

    clock.now += 60
    assert limiter.allowed("k").allowed
    assert limiter.allowed("k").allowed
    assert not limiter.allowed("k").allowed


def test_keys_are_independent():
    limiter = RateLimiter(limit=1, window_seconds=60, clock=FakeClock())
    assert limiter.allowed("a").allowed
    assert not limiter.allowed("a").allowed
    assert limiter.allowed("b").allowed


def test_reset_clears_all_windows():
    limiter = RateLimiter(limit=1, window_seconds=60, clock=FakeClock())
    limiter.allowed("a")
    limiter.reset()
    assert limiter.allowed("a").allowed
