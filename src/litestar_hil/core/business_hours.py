"""Business-hours aware deadline arithmetic.

SLA clocks of business-hours-only templates only run inside a daily window on
working days. Everything here works on timezone-aware datetimes and returns
UTC.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

__all__ = ["BusinessHours", "add_sla_hours"]


@dataclass(frozen=True)
class BusinessHours:
    """Daily working window used for business-hours SLAs.

    Attributes:
        start: Local time the working day starts.
        end: Local time the working day ends.
        timezone: IANA timezone name the window is expressed in.
        workdays: Weekday numbers (Monday is 0) that count as working days.

    Example:
        >>> hours = BusinessHours(start=time(9), end=time(18), timezone="America/New_York")
    """

    start: time = time(9, 0)
    end: time = time(18, 0)
    timezone: str = "UTC"
    workdays: frozenset[int] = field(default_factory=lambda: frozenset(range(5)))

    def __post_init__(self) -> None:
        if self.start >= self.end:
            msg = "Business day must end after it starts"
            raise ValueError(msg)
        if not self.workdays:
            msg = "At least one workday is required"
            raise ValueError(msg)

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def _window(self, day: datetime) -> tuple[datetime, datetime]:
        zone = self.zone
        opens = datetime.combine(day.date(), self.start, tzinfo=zone)
        closes = datetime.combine(day.date(), self.end, tzinfo=zone)
        return opens, closes

    def _next_open(self, moment: datetime) -> datetime:
        """Earliest moment at or after ``moment`` that is inside the window."""
        cursor = moment.astimezone(self.zone)
        while True:
            opens, closes = self._window(cursor)
            if cursor.weekday() in self.workdays and cursor < closes:
                return max(cursor, opens)
            next_day = cursor.date() + timedelta(days=1)
            cursor = datetime.combine(next_day, time(0), tzinfo=self.zone)

    def add(self, moment: datetime, hours: float) -> datetime:
        """Add working hours to a moment.

        Args:
            moment: Timezone-aware starting point.
            hours: Working hours to add.

        Returns:
            The resulting moment in UTC.
        """
        remaining = timedelta(hours=hours)
        cursor = self._next_open(moment)
        while True:
            _, closes = self._window(cursor)
            available = closes - cursor
            if remaining <= available:
                return (cursor + remaining).astimezone(timezone.utc)
            remaining -= available
            cursor = self._next_open(closes)


def add_sla_hours(
    moment: datetime,
    hours: float,
    *,
    business_hours: BusinessHours | None = None,
) -> datetime:
    """Compute an SLA due date.

    Args:
        moment: Timezone-aware activation time.
        hours: SLA length in hours.
        business_hours: Working window. None means the clock runs continuously.

    Returns:
        The due date in UTC.
    """
    if business_hours is None:
        return (moment + timedelta(hours=hours)).astimezone(timezone.utc)
    return business_hours.add(moment, hours)
