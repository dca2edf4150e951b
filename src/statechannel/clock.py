"""
Time sources for channel expiry.

The state machine only ever asks a Clock for now(); it never reads wall-clock
time itself.
"""

import threading
import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> float:
        """Current time in seconds. Must never go backwards."""
        ...


class SystemClock:
    """Wall clock that refuses to step backwards if the host clock does."""

    def __init__(self):
        self._lock = threading.Lock()
        self._last = 0.0

    def now(self) -> float:
        with self._lock:
            self._last = max(self._last, time.time())
            return self._last


class ManualClock:
    """Clock driven explicitly by the caller, for simulations and tests."""

    def __init__(self, start: float = 0.0):
        self._lock = threading.Lock()
        self._now = float(start)

    def now(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise ValueError(f"Cannot advance clock by negative amount: {seconds}")
        with self._lock:
            self._now += seconds
            return self._now

    def set(self, timestamp: float) -> float:
        with self._lock:
            if timestamp < self._now:
                raise ValueError(
                    f"Clock cannot move backwards: {timestamp} < {self._now}"
                )
            self._now = float(timestamp)
            return self._now
