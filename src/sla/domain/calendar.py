"""
Business Hours Calendar
========================

Answers "is the SLA clock running at this instant?" for a weekly schedule,
a timezone and a holiday list, and converts between business time and
instants.

All arithmetic happens on UTC instants; the schedule's timezone is only used
to locate each local day's opening window, so DST changes never stretch or
shrink business time.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple

from core import ConfigurationException
from sla.domain.value_objects import BusinessHoursSchedule, DayHours, Holiday

# Longest run of closed days tolerated before the schedule is declared unusable
MAX_CLOSED_DAYS = 366 * 2

ONE_DAY = timedelta(days=1)
ZERO = timedelta(0)


def as_utc(instant: datetime) -> datetime:
    """Normalise an aware datetime to UTC; naive datetimes are rejected."""
    if instant.tzinfo is None or instant.utcoffset() is None:
        raise ValueError("instant must be timezone-aware")
    return instant.astimezone(timezone.utc)


class BusinessHoursCalendar:
    """
    Business-hours evaluator for one schedule plus holidays.

    Instances are immutable and safe to share between sweep workers.
    """

    def __init__(
        self,
        schedule: BusinessHoursSchedule,
        holidays: Optional[Iterable[Holiday]] = None
    ):
        self.schedule = schedule
        self.holidays: List[Holiday] = list(holidays or [])
        self.tz = schedule.tz

    def __repr__(self) -> str:
        return f"BusinessHoursCalendar({self.schedule.name!r}, tz={self.schedule.timezone!r})"

    # ========== Day-level queries ==========

    def is_holiday(self, day: date) -> bool:
        return any(holiday.applies_to(day) for holiday in self.holidays)

    def hours_on(self, day: date) -> Optional[DayHours]:
        """Opening hours for a local date, None when closed all day."""
        if self.is_holiday(day):
            return None
        return self.schedule.hours_for_weekday(day.weekday())

    def window(self, day: date) -> Optional[Tuple[datetime, datetime]]:
        """UTC (open, close) instants for a local date, None when closed."""
        hours = self.hours_on(day)
        if hours is None:
            return None
        open_at = datetime.combine(day, hours.start, tzinfo=self.tz)
        close_at = datetime.combine(day, hours.end, tzinfo=self.tz)
        return as_utc(open_at), as_utc(close_at)

    def local_date(self, instant: datetime) -> date:
        return as_utc(instant).astimezone(self.tz).date()

    def next_open_day(self, day: date) -> date:
        """First local date on or after `day` with opening hours."""
        for offset in range(MAX_CLOSED_DAYS + 1):
            candidate = day + timedelta(days=offset)
            if self.hours_on(candidate) is not None:
                return candidate
        raise self._no_open_time(day)

    def open_duration_on(self, day: date) -> timedelta:
        hours = self.hours_on(day)
        return hours.duration if hours else ZERO

    # ========== Instant-level queries ==========

    def is_open_at(self, instant: datetime) -> bool:
        """True when `instant` falls inside its local day's [open, close)."""
        window = self.window(self.local_date(instant))
        if window is None:
            return False
        open_at, close_at = window
        return open_at <= as_utc(instant) < close_at

    def next_open_instant(self, instant: datetime) -> datetime:
        """`instant` itself when open, otherwise the next opening instant."""
        cursor = as_utc(instant)
        if self.is_open_at(cursor):
            return cursor

        day = self.local_date(cursor)
        for _ in range(MAX_CLOSED_DAYS + 1):
            window = self.window(day)
            if window is not None and window[0] > cursor:
                return window[0]
            day += ONE_DAY
        raise self._no_open_time(self.local_date(cursor))

    def add_business_duration(self, start: datetime, duration: timedelta) -> datetime:
        """
        Walk forward from `start` consuming only open time.

        Returns the exact instant the duration is used up. A duration that
        runs out precisely at closing time returns the closing instant rather
        than the next day's opening.
        """
        cursor = as_utc(start)
        if duration <= ZERO:
            return cursor

        remaining = duration
        day = self.local_date(cursor)
        closed_streak = 0

        while True:
            window = self.window(day)
            consumed = False
            if window is not None:
                open_at, close_at = window
                segment_start = max(cursor, open_at)
                if segment_start < close_at:
                    available = close_at - segment_start
                    if remaining <= available:
                        return segment_start + remaining
                    remaining -= available
                    consumed = True

            closed_streak = 0 if consumed else closed_streak + 1
            if closed_streak > MAX_CLOSED_DAYS:
                raise self._no_open_time(day)
            day += ONE_DAY

    def business_duration_between(self, a: datetime, b: datetime) -> timedelta:
        """Open time in [a, b); zero when b is not after a."""
        start, end = as_utc(a), as_utc(b)
        if end <= start:
            return ZERO

        total = ZERO
        day = self.local_date(start)
        last_day = self.local_date(end)
        while day <= last_day:
            window = self.window(day)
            if window is not None:
                low = max(start, window[0])
                high = min(end, window[1])
                if high > low:
                    total += high - low
            day += ONE_DAY
        return total

    def _no_open_time(self, day: date) -> ConfigurationException:
        return ConfigurationException(
            f"Business hours schedule '{self.schedule.name}' has no open time "
            f"within {MAX_CLOSED_DAYS} days of {day.isoformat()}",
            {"schedule": self.schedule.name, "from": day.isoformat()}
        )
