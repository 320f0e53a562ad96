from __future__ import annotations

import threading
import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> int: ...


class SystemClock:
    """Wall clock in whole unix seconds."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """Clock driven by the caller. Used by tests and simulations."""

    def __init__(self, start: int = 0) -> None:
        self._lock = threading.Lock()
        self._now = int(start)

    def now(self) -> int:
        with self._lock:
            return self._now

    def set(self, ts: int) -> None:
        with self._lock:
            self._now = int(ts)

    def advance(self, seconds: int) -> int:
        with self._lock:
            self._now += int(seconds)
            return self._now


__all__ = ["Clock", "ManualClock", "SystemClock"]
