"""
Rate Limiter Tests.

============================================================
PURPOSE
============================================================
Tests for the per-venue minimum-interval gate.

============================================================
"""

import asyncio
import time

import pytest

from exchange_gateway import RateLimiter


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 100.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class TestRateLimiter:
    """Tests for RateLimiter."""

    @pytest.mark.asyncio
    async def test_first_call_not_delayed(self):
        """Test first acquire is immediate."""
        clock = FakeClock()
        limiter = RateLimiter({"btctrade": 1.0}, clock=clock, sleep=clock.sleep)

        waited = await limiter.acquire("btctrade")

        assert waited == 0.0
        assert clock.sleeps == []
        assert limiter.state("btctrade").granted == 1

    @pytest.mark.asyncio
    async def test_second_call_waits_remaining_interval(self):
        """Test second acquire waits the rest of the interval."""
        clock = FakeClock()
        limiter = RateLimiter({"btctrade": 1.0}, clock=clock, sleep=clock.sleep)

        await limiter.acquire("btctrade")
        clock.now += 0.25
        waited = await limiter.acquire("btctrade")

        assert waited == pytest.approx(0.75)
        assert limiter.state("btctrade").last_call == pytest.approx(101.0)

    @pytest.mark.asyncio
    async def test_no_wait_after_interval(self):
        """Test no delay once the interval has passed."""
        clock = FakeClock()
        limiter = RateLimiter({"foxbit": 1.0}, clock=clock, sleep=clock.sleep)

        await limiter.acquire("foxbit")
        clock.now += 5
        waited = await limiter.acquire("foxbit")

        assert waited == 0.0

    @pytest.mark.asyncio
    async def test_k_calls_take_at_least_k_minus_one_intervals(self):
        """Test K calls to one venue span >= (K-1) x T of wall-clock time."""
        interval = 0.05
        calls = 4
        limiter = RateLimiter({"btctrade": interval})

        start = time.monotonic()
        await asyncio.gather(*(limiter.acquire("btctrade") for _ in range(calls)))
        elapsed = time.monotonic() - start

        assert elapsed >= (calls - 1) * interval * 0.95
        assert limiter.state("btctrade").granted == calls

    @pytest.mark.asyncio
    async def test_distinct_venues_do_not_block(self):
        """Test calls to two venues run in parallel."""
        interval = 0.2
        limiter = RateLimiter({"btctrade": interval, "foxbit": interval})
        await limiter.acquire("btctrade")

        start = time.monotonic()
        await limiter.acquire("foxbit")
        elapsed = time.monotonic() - start

        assert elapsed < interval / 2

    @pytest.mark.asyncio
    async def test_unconfigured_venue(self):
        """Test acquiring for an unknown venue raises KeyError."""
        with pytest.raises(KeyError):
            await RateLimiter().acquire("nowhere")

    def test_negative_interval(self):
        """Test negative interval is rejected."""
        with pytest.raises(ValueError):
            RateLimiter({"btctrade": -1})

    def test_reconfigure_keeps_state(self):
        """Test configure updates interval in place."""
        limiter = RateLimiter({"btctrade": 1.0})
        state = limiter.state("btctrade")

        limiter.configure("btctrade", 2.0)

        assert limiter.state("btctrade") is state
        assert state.min_interval == 2.0

    @pytest.mark.asyncio
    async def test_get_status(self):
        """Test status report."""
        clock = FakeClock()
        limiter = RateLimiter({"btctrade": 1.0}, clock=clock, sleep=clock.sleep)
        await limiter.acquire("btctrade")
        clock.now += 0.4

        status = limiter.get_status("btctrade")

        assert status["granted"] == 1
        assert status["next_allowed_in"] == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_separate_instances_do_not_interfere(self):
        """Test two limiters keep independent state."""
        first = RateLimiter({"btctrade": 10.0})
        second = RateLimiter({"btctrade": 10.0})

        await first.acquire("btctrade")
        start = time.monotonic()
        await second.acquire("btctrade")

        assert time.monotonic() - start < 1.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
