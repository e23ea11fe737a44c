"""Date provider abstraction for testable time operations.

Quest periods are keyed in a fixed timezone, but every instant that enters
the system is a timezone-aware UTC datetime. The provider supplies "now" so
that period rollover can be exercised deterministically in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Optional


class DateProvider(ABC):
    """Abstract interface for date operations."""

    @abstractmethod
    def today(self) -> date:
        """Get the current date in UTC.

        Returns:
            date: Current UTC date
        """
        pass

    @abstractmethod
    def utcnow(self) -> datetime:
        """Get the current datetime in UTC.

        Returns:
            datetime: Current UTC datetime with timezone info
        """
        pass


class UTCDateProvider(DateProvider):
    """Production implementation of DateProvider using the system clock."""

    def today(self) -> date:
        return datetime.now(timezone.utc).date()

    def utcnow(self) -> datetime:
        return datetime.now(timezone.utc)


class MockDateProvider(DateProvider):
    """Test implementation of DateProvider for controlled testing.

    This implementation allows tests to control the current date/time,
    enabling deterministic testing of period rollover.
    """

    def __init__(self, fixed_date: Optional[date] = None, fixed_datetime: Optional[datetime] = None):
        """Initialize with optional fixed dates.

        Args:
            fixed_date: Fixed date to return from today(), defaults to 2024-01-15
            fixed_datetime: Fixed datetime to return from utcnow(), defaults to noon UTC of fixed_date
        """
        if fixed_datetime is not None:
            if fixed_datetime.tzinfo is None:
                fixed_datetime = fixed_datetime.replace(tzinfo=timezone.utc)
            self._fixed_datetime = fixed_datetime
            self._fixed_date = fixed_datetime.astimezone(timezone.utc).date()
        else:
            self._fixed_date = fixed_date or date(2024, 1, 15)
            self._fixed_datetime = self._noon_utc(self._fixed_date)

    @staticmethod
    def _noon_utc(value: date) -> datetime:
        # Noon UTC falls on the same calendar day in every American zone
        return datetime(value.year, value.month, value.day, 12, tzinfo=timezone.utc)

    def today(self) -> date:
        return self._fixed_date

    def utcnow(self) -> datetime:
        return self._fixed_datetime

    def set_date(self, new_date: date) -> None:
        """Update the fixed date for testing.

        Args:
            new_date: New date to return from today()
        """
        self._fixed_date = new_date
        self._fixed_datetime = self._noon_utc(new_date)

    def set_datetime(self, new_datetime: datetime) -> None:
        """Update the fixed datetime for testing.

        Args:
            new_datetime: New datetime to return from utcnow(); naive values are taken as UTC
        """
        if new_datetime.tzinfo is None:
            new_datetime = new_datetime.replace(tzinfo=timezone.utc)
        self._fixed_datetime = new_datetime
        self._fixed_date = new_datetime.astimezone(timezone.utc).date()

    def advance_days(self, days: int) -> None:
        """Advance the current datetime by the specified number of days.

        Args:
            days: Number of days to advance (can be negative)
        """
        self.set_datetime(self._fixed_datetime + timedelta(days=days))


# Global date provider instance
_date_provider: DateProvider = UTCDateProvider()


def get_date_provider() -> DateProvider:
    """Get the current date provider instance."""
    return _date_provider


def set_date_provider(provider: DateProvider) -> None:
    """Set the date provider instance (mainly for testing).

    Args:
        provider: Date provider implementation to use
    """
    global _date_provider
    _date_provider = provider


def reset_date_provider() -> None:
    """Reset to the default production date provider."""
    global _date_provider
    _date_provider = UTCDateProvider()
