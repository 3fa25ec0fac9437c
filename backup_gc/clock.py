"""
Time sources.

The controller never reads the system clock directly; it is handed a Clock
so expiration decisions can be tested under simulated time.
"""

import threading
from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class RealClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FakeClock:
    """
    Manually driven clock for tests.

    Usage:
        clock = FakeClock(datetime(2026, 1, 1, tzinfo=UTC))
        clock.step(timedelta(hours=1))
    """

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime.now(UTC)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, when: datetime) -> None:
        with self._lock:
            self._now = when

    def step(self, delta: timedelta) -> datetime:
        with self._lock:
            self._now = self._now + delta
            return self._now
