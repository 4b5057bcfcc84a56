"""
action_engine/engine/clock.py

Monotonic clocks for rate windows, lock leases and retry backoff.
"""
import threading
import time
from typing import List


class SystemClock:
    """Wall-independent clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class ManualClock:
    """
    Deterministic clock for tests.

    sleep() does not block; it advances the clock and records the delay.

    Example:
        >>> clock = ManualClock()
        >>> clock.sleep(1.5)
        >>> clock.now()
        1.5
        >>> clock.sleeps
        [1.5]
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._lock = threading.Lock()
        self.sleeps: List[float] = []

    def now(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self._now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if seconds > 0:
            self.advance(seconds)


__all__ = ["SystemClock", "ManualClock"]
