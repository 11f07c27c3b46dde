"""
Time provider abstraction for deterministic testing

Year-to-date projections depend on the current fiscal month and new line
items are stamped with an entry date, so "now" is injectable.
"""

import calendar
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

    Allows tests to freeze time and move it forward by days or by
    calendar months (fiscal-month projections step by month).
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

    def advance_days(self, days: int) -> None:
        """Advance time by specified days"""
        self._current_time += timedelta(days=days)

    def advance_months(self, months: int) -> None:
        """Advance by calendar months, clamping the day to the target month's end"""
        current = self._current_time
        index = current.month - 1 + months
        year, month = current.year + index // 12, index % 12 + 1
        day = min(current.day, calendar.monthrange(year, month)[1])
        self._current_time = current.replace(year=year, month=month, day=day)


default_time_provider: TimeProvider = RealTimeProvider()
