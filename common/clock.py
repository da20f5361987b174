"""
Millisecond clocks and the per-tick stopwatch.

MonotonicClock reads the wall clock; ManualClock only moves when told to,
so loops and delayed deliveries can be driven deterministically.
"""

import threading
import time


class MonotonicClock:
    """Wall-clock time in integer milliseconds."""

    def now_ms(self) -> int:
        return int(time.perf_counter() * 1000)


class ManualClock:
    """Virtual clock advanced explicitly by the caller."""

    def __init__(self, start_ms: int = 0):
        self._now = start_ms
        self._lock = threading.Lock()

    def now_ms(self) -> int:
        with self._lock:
            return self._now

    def advance(self, ms: int) -> int:
        if ms < 0:
            raise ValueError("Cannot move a clock backwards")
        with self._lock:
            self._now += ms
            return self._now


class Stopwatch:
    """Elapsed-time counter with restart, like a tick timer."""

    def __init__(self, clock=None):
        self.clock = clock or MonotonicClock()
        self._started = self.clock.now_ms()

    def elapsed_ms(self) -> int:
        return self.clock.now_ms() - self._started

    def restart(self):
        self._started = self.clock.now_ms()
