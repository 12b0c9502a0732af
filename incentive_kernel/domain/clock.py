"""
Clock -- Injectable time source for batch deadlines.

Engines never read the time.  The calculation orchestrator receives a
Clock so batch timeouts can be exercised deterministically in tests.
"""

import time
from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta


class Clock(ABC):
    """
    Abstract clock interface.

    ``monotonic()`` is for measuring elapsed time; ``now()`` is a
    timezone-aware wall-clock reading for log records.
    """

    @abstractmethod
    def now(self) -> datetime: ...

    @abstractmethod
    def monotonic(self) -> float: ...


class SystemClock(Clock):
    """Production clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def monotonic(self) -> float:
        return time.monotonic()


class DeterministicClock(Clock):
    """
    Test clock that only moves when told to.

    ``step`` seconds are added automatically on every ``monotonic()`` read,
    which lets a test make a batch run out of time after a known number of
    deadline checks.
    """

    def __init__(self, fixed_time: datetime | None = None, step: float = 0.0):
        self._fixed_time = fixed_time or datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)
        self._elapsed = 0.0
        self._step = step

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._elapsed)

    def monotonic(self) -> float:
        current = self._elapsed
        self._elapsed += self._step
        return current

    def advance(self, seconds: float = 1.0) -> None:
        self._elapsed += seconds
