"""Tests for the fixed-window rate limiter."""

from __future__ import annotations

import threading

import pytest

from src.saas.rate_limit import RateLimiter, RateLimitResult, retry_after_seconds


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def limiter(clock: FakeClock) -> RateLimiter:
    return RateLimiter(window_ms=60_000, default_limit=60, clock=clock)


class TestConsume:
    @pytest.mark.parametrize("limit", [1, 2, 5, 30])
    def test_first_limit_calls_allowed_then_denied(self, limiter: RateLimiter, limit: int) -> None:
        results = [limiter.consume("courses:post:1.2.3.4", limit) for _ in range(limit)]
        assert all(r.allowed for r in results)
        assert [r.remaining for r in results] == list(range(limit - 1, -1, -1))

        denied = limiter.consume("courses:post:1.2.3.4", limit)
        assert denied.allowed is False
        assert denied.remaining == 0
        assert denied.reset_at == results[0].reset_at

    def test_first_call_opens_window(self, limiter: RateLimiter, clock: FakeClock) -> None:
        result = limiter.consume("k", 3)
        assert result == RateLimitResult(allowed=True, remaining=2, reset_at=clock.now + 60_000)

    def test_reset_at_unchanged_while_denied(self, limiter: RateLimiter, clock: FakeClock) -> None:
        first = limiter.consume("k", 1)
        clock.advance(10_000)
        denied_a = limiter.consume("k", 1)
        clock.advance(10_000)
        denied_b = limiter.consume("k", 1)
        assert denied_a.reset_at == denied_b.reset_at == first.reset_at

    def test_fresh_window_after_reset(self, limiter: RateLimiter, clock: FakeClock) -> None:
        for _ in range(5):
            limiter.consume("k", 2)
        clock.advance(60_001)

        result = limiter.consume("k", 2)
        assert result.allowed is True
        assert result.remaining == 1
        assert result.reset_at == clock.now + 60_000

    def test_boundary_instant_still_in_window(self, limiter: RateLimiter, clock: FakeClock) -> None:
        first = limiter.consume("k", 1)
        clock.now = first.reset_at
        assert limiter.consume("k", 1).allowed is False

    def test_keys_are_independent(self, limiter: RateLimiter) -> None:
        assert limiter.consume("a", 1).allowed is True
        assert limiter.consume("a", 1).allowed is False
        assert limiter.consume("b", 1).allowed is True

    def test_default_limit(self, clock: FakeClock) -> None:
        limiter = RateLimiter(window_ms=1000, default_limit=2, clock=clock)
        assert limiter.consume("k").allowed is True
        assert limiter.consume("k").allowed is True
        assert limiter.consume("k").allowed is False


class TestEviction:
    def test_sweep_removes_only_expired(self, limiter: RateLimiter, clock: FakeClock) -> None:
        limiter.consume("old", 5)
        clock.advance(30_000)
        limiter.consume("new", 5)
        clock.advance(30_001)

        assert limiter.sweep() == 1
        assert len(limiter) == 1

    def test_periodic_sweep_bounds_map(self, clock: FakeClock) -> None:
        limiter = RateLimiter(window_ms=1000, clock=clock, sweep_every=10)
        for i in range(9):
            limiter.consume(f"ip-{i}", 5)
        clock.advance(1001)

        limiter.consume("fresh", 5)
        assert len(limiter) == 1

    def test_reset_clears_everything(self, limiter: RateLimiter) -> None:
        limiter.consume("a", 1)
        limiter.reset()
        assert len(limiter) == 0
        assert limiter.consume("a", 1).allowed is True


class TestConcurrency:
    def test_no_lost_increments(self, clock: FakeClock) -> None:
        limiter = RateLimiter(window_ms=60_000, clock=clock)
        limit = 10_000
        per_thread = 500
        threads = [
            threading.Thread(target=lambda: [limiter.consume("shared", limit) for _ in range(per_thread)])
            for _ in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        result = limiter.consume("shared", limit)
        assert result.remaining == limit - 8 * per_thread - 1


class TestRetryAfter:
    def test_rounds_up_to_whole_seconds(self) -> None:
        result = RateLimitResult(allowed=False, remaining=0, reset_at=10_500)
        assert retry_after_seconds(result, now_ms=9_000) == 2

    def test_never_below_one(self) -> None:
        result = RateLimitResult(allowed=False, remaining=0, reset_at=10_000)
        assert retry_after_seconds(result, now_ms=10_000) == 1
