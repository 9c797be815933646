"""In-memory time-to-live cache for fetched orbital data.

One TimedCache holds a single value (the current element set, or the latest
live position) together with the moment it was stored.  Staleness is purely
time based; the clock is injectable so tests can step it by hand.

The cache is not thread-safe.  A multi-threaded host should wrap access in a
lock or give each request its own instance.
"""

from __future__ import annotations

import time
from typing import Callable, Generic, TypeVar

T = TypeVar("T")

ELEMENTS_TTL_S = 3600.0   # mean elements: refresh hourly
POSITION_TTL_S = 5.0      # live position: matches the 5 s polling cadence


class TimedCache(Generic[T]):
    """Single-slot cache that forgets its value after ``ttl_seconds``."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        if ttl_seconds < 0:
            raise ValueError(f"ttl_seconds must be >= 0, got {ttl_seconds}")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._value: T | None = None
        self._stored_at: float | None = None

    def get(self) -> T | None:
        """Return the cached value, or None when empty or expired."""
        if not self.fresh:
            return None
        return self._value

    def set(self, value: T) -> None:
        self._value = value
        self._stored_at = self._clock()

    def clear(self) -> None:
        self._value = None
        self._stored_at = None

    def age(self) -> float | None:
        """Seconds since the value was stored (None when empty)."""
        if self._stored_at is None:
            return None
        return self._clock() - self._stored_at

    @property
    def fresh(self) -> bool:
        age = self.age()
        return age is not None and age <= self.ttl_seconds
