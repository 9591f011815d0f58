"""Tests for the submission rate limiter."""

import pytest

from liberator.core.exceptions import RateLimitError
from liberator.core.rate_limiter import SubmissionRateLimiter


class TestSubmissionRateLimiter:
    def test_allows_up_to_limit(self, clock):
        limiter = SubmissionRateLimiter(calls=3, period=10, clock=clock)
        for _ in range(3):
            limiter.check("client")
        assert limiter.remaining("client") == 0

    def test_rejects_over_limit_with_retry_after(self, clock):
        limiter = SubmissionRateLimiter(calls=2, period=10, clock=clock)
        limiter.check("client")
        clock.advance(1)
        limiter.check("client")
        clock.advance(1)

        with pytest.raises(RateLimitError) as exc_info:
            limiter.check("client")
        assert exc_info.value.retry_after == pytest.approx(8)

    def test_window_slides(self, clock):
        limiter = SubmissionRateLimiter(calls=1, period=10, clock=clock)
        limiter.check("client")
        clock.advance(10)
        limiter.check("client")

    def test_clients_are_independent(self, clock):
        limiter = SubmissionRateLimiter(calls=1, period=10, clock=clock)
        limiter.check("a")
        limiter.check("b")
        with pytest.raises(RateLimitError):
            limiter.check("a")

    def test_rejected_calls_are_not_counted(self, clock):
        limiter = SubmissionRateLimiter(calls=1, period=10, clock=clock)
        limiter.check("a")
        clock.advance(5)
        with pytest.raises(RateLimitError):
            limiter.check("a")
        clock.advance(5)
        limiter.check("a")

    def test_reset(self, clock):
        limiter = SubmissionRateLimiter(calls=1, period=10, clock=clock)
        limiter.check("a")
        limiter.reset()
        assert limiter.remaining("a") == 1
        limiter.check("a")
