"""Time sources for expiry bookkeeping.

Everything that compares deadlines reads time through a :class:`Clock`
rather than calling :func:`time.monotonic` directly, so tests can move time
forward without sleeping.
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Anything with a ``now()`` returning seconds on a monotonic scale."""

    def now(self) -> float: ...


class MonotonicClock:
    """Production clock backed by :func:`time.monotonic`."""

    def now(self) -> float:
        return time.monotonic()


class ManualClock:
    """Clock that only moves when told to.

    Example::

        clock = ManualClock()
        cache = ExpiringCache(clock=clock)
        cache.set("a", "x", ttl=0.1)
        clock.advance(0.15)
        assert cache.get("a") is None
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        """Move the clock forward by *seconds*."""
        if seconds < 0:
            raise ValueError("ManualClock cannot move backwards")
        self._now += seconds
