"""Tests for the token-bucket rate limiter."""

from mcp_chat.rate_limit import RateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_burst_then_denied():
    clock = FakeClock()
    limiter = RateLimiter(5, 10, clock=clock)

    admitted = [limiter.allow() for _ in range(10)]
    assert all(admitted)
    assert limiter.allow() is False


def test_tokens_refill_at_rate():
    clock = FakeClock()
    limiter = RateLimiter(5, 10, clock=clock)
    for _ in range(10):
        limiter.allow()

    clock.advance(0.25)  # 1.25 tokens
    assert limiter.allow() is True
    assert limiter.allow() is False


def test_refill_capped_at_burst():
    clock = FakeClock()
    limiter = RateLimiter(5, 3, clock=clock)
    for _ in range(3):
        limiter.allow()

    clock.advance(100)
    assert [limiter.allow() for _ in range(4)] == [True, True, True, False]


def test_non_positive_settings_disable_limiter():
    for rate, burst in ((0, 10), (5, 0), (-1, -1)):
        limiter = RateLimiter(rate, burst, clock=FakeClock())
        assert limiter.enabled is False
        assert all(limiter.allow() for _ in range(100))
