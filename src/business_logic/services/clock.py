"""
Clock - Injectable source of the current time.

The formatter and orchestrator never call datetime.now() themselves;
they ask a Clock. Tests pass a FixedClock to make timestamps
deterministic.
"""

from datetime import datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Anything that can tell the current time."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall-clock time in the local timezone (naive, like the HL7 header)."""

    def now(self) -> datetime:
        return datetime.now()


class FixedClock:
    """
    Clock frozen at a given instant, optionally advancing on every read.

    Args:
        start: Instant returned by the first call to now()
        step: Amount added after each read (zero keeps the clock frozen)
    """

    def __init__(self, start: datetime, step: timedelta = timedelta(0)):
        self._current = start
        self._step = step

    def now(self) -> datetime:
        value = self._current
        self._current = self._current + self._step
        return value

    def advance(self, delta: timedelta) -> None:
        """Move the clock forward."""
        self._current = self._current + delta


def iso_timestamp(moment: datetime) -> str:
    """ISO-8601 text used for created_at / study_date / audit time columns."""
    return moment.isoformat(timespec="microseconds")


def hl7_timestamp(moment: datetime) -> str:
    """
    HL7 DTM at seconds precision: YYYYMMDDHHMMSS.

    No fractional seconds, no timezone suffix.
    """
    return moment.strftime("%Y%m%d%H%M%S")
