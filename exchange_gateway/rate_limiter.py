"""
Exchange Gateway - Rate Limiter.

============================================================
PURPOSE
============================================================
Per-venue minimum-interval gate for outbound requests.

CONCURRENCY:
- One asyncio.Lock per venue; the critical section is the
  read-last / wait / update of that venue's timestamp
- asyncio.Lock wakes waiters in arrival order (FIFO)
- Venues never block each other
- A granted slot is never rolled back, even if the call that
  used it later fails or times out

============================================================
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional


logger = logging.getLogger(__name__)


@dataclass
class RateLimitState:
    """Rate limit bookkeeping for one venue."""

    min_interval: float
    """Minimum seconds between granted calls."""

    last_call: Optional[float] = None
    """Monotonic time of the last granted call."""

    granted: int = 0
    """Number of calls granted so far."""


class RateLimiter:
    """
    Minimum-interval limiter keyed by venue id.

    Each adapter owns its own instance unless one is shared
    explicitly, so separate adapters (e.g. in tests) never interfere.
    """

    def __init__(
        self,
        intervals: Optional[Dict[str, float]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize limiter.

        Args:
            intervals: venue id -> minimum interval in seconds
            clock: Monotonic clock (injectable for tests)
            sleep: Coroutine used to wait
        """
        self._states: Dict[str, RateLimitState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._clock = clock
        self._sleep = sleep

        for venue_id, interval in (intervals or {}).items():
            self.configure(venue_id, interval)

    def configure(self, venue_id: str, min_interval: float) -> None:
        """Register or update a venue's minimum interval (seconds)."""
        if min_interval < 0:
            raise ValueError(f"min_interval must be >= 0, got {min_interval}")

        state = self._states.get(venue_id)
        if state is None:
            self._states[venue_id] = RateLimitState(min_interval=min_interval)
        else:
            state.min_interval = min_interval

    def state(self, venue_id: str) -> RateLimitState:
        try:
            return self._states[venue_id]
        except KeyError:
            raise KeyError(f"Venue not configured for rate limiting: {venue_id}")

    def _lock(self, venue_id: str) -> asyncio.Lock:
        lock = self._locks.get(venue_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[venue_id] = lock
        return lock

    async def acquire(self, venue_id: str) -> float:
        """
        Wait until the venue's minimum interval has elapsed, then
        record the grant.

        Args:
            venue_id: Venue identifier

        Returns:
            Seconds spent waiting
        """
        state = self.state(venue_id)
        waited = 0.0

        async with self._lock(venue_id):
            if state.last_call is not None:
                delay = state.last_call + state.min_interval - self._clock()
                if delay > 0:
                    logger.debug(f"Rate limit: {venue_id} waiting {delay:.3f}s")
                    await self._sleep(delay)
                    waited = delay
            state.last_call = self._clock()
            state.granted += 1

        return waited

    def get_status(self, venue_id: str) -> Dict[str, object]:
        """Current rate limit status for a venue."""
        state = self.state(venue_id)
        next_allowed_in = 0.0
        if state.last_call is not None:
            next_allowed_in = max(0.0, state.last_call + state.min_interval - self._clock())
        return {
            "venue_id": venue_id,
            "min_interval": state.min_interval,
            "granted": state.granted,
            "next_allowed_in": next_allowed_in,
        }
