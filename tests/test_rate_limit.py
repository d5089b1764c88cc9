"""
Tests for the token rate limiter.
"""

from usergate.auth.rate_limit import RateLimitConfig, RateLimiter


class FakeTime:
    def __init__(self):
        self.now = 1000.0
    
    def __call__(self) -> float:
        return self.now


def make_limiter(max_requests=100, window=60.0):
    clock = FakeTime()
    limiter = RateLimiter(RateLimitConfig(max_requests=max_requests, window_seconds=window), clock=clock)
    return limiter, clock


class TestRateLimiter:
    def test_allows_up_to_limit(self):
        limiter, _ = make_limiter()
        assert all(limiter.check("token:abc") for _ in range(100))

    def test_rejects_request_over_limit(self):
        limiter, _ = make_limiter()
        for _ in range(100):
            limiter.check("token:abc")
        
        assert limiter.check("token:abc") is False
        assert limiter.check("token:abc") is False

    def test_keys_are_independent(self):
        limiter, _ = make_limiter(max_requests=1)
        assert limiter.check("a")
        assert not limiter.check("a")
        assert limiter.check("b")

    def test_window_resets(self):
        limiter, clock = make_limiter(max_requests=2)
        limiter.check("k")
        limiter.check("k")
        assert not limiter.check("k")
        
        clock.now += 61
        assert limiter.check("k")

    def test_prune_drops_expired_windows_only(self):
        limiter, clock = make_limiter()
        limiter.check("old")
        clock.now += 30
        limiter.check("new")
        clock.now += 31
        
        assert limiter.prune() == 1
        assert len(limiter) == 1
        assert "new" in limiter._entries

    def test_reset(self):
        limiter, _ = make_limiter()
        limiter.check("k")
        limiter.reset()
        assert len(limiter) == 0
