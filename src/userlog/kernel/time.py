"""
Time provider abstraction for deterministic testing

Every timestamp the core writes (created_at, updated_at, event created_at)
comes from an injected provider, so tests can pin and advance the clock.

Also home of the timestamp text format used in the database: fixed-width
UTC ISO-8601, so that comparing the stored strings compares the instants.
"""

from datetime import datetime, timedelta, timezone
from typing import Protocol


class TimeProvider(Protocol):
    """Protocol for time providers - allows deterministic testing"""

    def now(self) -> datetime:
        """Return current UTC datetime"""
        ...


class RealTimeProvider:
    """Production time provider using system clock"""

    def now(self) -> datetime:
        """Return current UTC time from system clock"""
        return datetime.now(timezone.utc)


class TestTimeProvider:
    """
    Controllable time provider for deterministic tests

    Allows tests to freeze time, advance time, and ensure
    reproducible event timestamps.
    """

    __test__ = False  # not a pytest test class

    def __init__(self, initial_time: datetime | None = None) -> None:
        """
        Initialize with optional fixed time

        Args:
            initial_time: Starting time (defaults to Unix epoch)
        """
        self._current_time = initial_time or datetime(1970, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        """Return current test time"""
        return self._current_time

    def set_time(self, dt: datetime) -> None:
        """Set current time to specific value"""
        self._current_time = dt

    def advance_seconds(self, seconds: float) -> None:
        """Advance time by specified seconds"""
        self._current_time += timedelta(seconds=seconds)

    def advance_minutes(self, minutes: float) -> None:
        """Advance time by specified minutes"""
        self._current_time += timedelta(minutes=minutes)


def to_utc(dt: datetime) -> datetime:
    """Normalize a datetime to UTC; naive values are taken to be UTC already"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """
    Render a datetime in the storage format

    Always includes microseconds so every value has the same width:
    2025-01-15T12:00:00.000000+00:00
    """
    return to_utc(dt).isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> datetime:
    """Parse a stored timestamp back into an aware UTC datetime"""
    return to_utc(datetime.fromisoformat(value))
