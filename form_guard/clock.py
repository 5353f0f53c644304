"""
Clock
=====
Time sources for the limiter. Everything works in float epoch seconds.
"""

import threading
import time
from typing import Protocol


class Clock(Protocol):
    """Anything that returns the current time in epoch seconds."""
    
    def now(self) -> float:
        ...


class SystemClock:
    """Wall clock backed by ``time.time()``."""
    
    def now(self) -> float:
        return time.time()


class FrozenClock:
    """
    Manually driven clock for tests and replays.
    
    Example:
        clock = FrozenClock(1_000.0)
        clock.advance(30)
        assert clock.now() == 1_030.0
    """
    
    def __init__(self, start: float = 0.0):
        self._now = float(start)
        self._lock = threading.Lock()
    
    def now(self) -> float:
        with self._lock:
            return self._now
    
    def advance(self, seconds: float) -> float:
        with self._lock:
            self._now += seconds
            return self._now
    
    def set(self, timestamp: float) -> None:
        with self._lock:
            self._now = float(timestamp)
