"""
Injectable time source.

Services that stamp records (session start, session archival, audit-log
entries) take a ``Clock`` in their constructor.  Minimum-pay and audit
engines never read the time: windows and weeks are passed in explicitly.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

_DEFAULT_START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current timezone-aware time."""


class SystemClock(Clock):
    """Wall-clock UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    ``now()`` is stable between calls, so records stamped in a test can be
    compared against ``clock.now()`` directly.
    """

    def __init__(self, start: datetime | None = None):
        if start is not None and start.tzinfo is None:
            raise ValueError("DeterministicClock requires a timezone-aware start")
        self._current = start or _DEFAULT_START

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: int | float = 1) -> None:
        self._current += timedelta(seconds=seconds)
