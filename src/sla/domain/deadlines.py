"""
Deadline Calculator
====================

Turns a target (value + unit) into a concrete due instant.
"""

from datetime import datetime, timedelta
from typing import Optional

from config import TargetUnit
from core import ConfigurationException
from sla.domain.calendar import BusinessHoursCalendar, as_utc
from sla.domain.value_objects import SlaTarget

_WALL_CLOCK_UNITS = {
    TargetUnit.MINUTES: timedelta(minutes=1),
    TargetUnit.HOURS: timedelta(hours=1),
    TargetUnit.DAYS: timedelta(days=1),
}


class DeadlineCalculator:
    """
    Pure functions for due-date calculations.

    `minutes`, `hours` and `days` are raw elapsed time and ignore any
    calendar; `business_hours` and `business_days` need one.
    """

    @staticmethod
    def compute_due_at(
        start: datetime,
        target_value: int,
        target_unit: TargetUnit,
        calendar: Optional[BusinessHoursCalendar] = None
    ) -> datetime:
        """
        Calculate the due instant for a target.

        Args:
            start: When the clock starts
            target_value: Positive number of units
            target_unit: Unit of the target
            calendar: Business hours calendar, None for calendar time

        Returns:
            The due instant, in UTC

        Raises:
            ConfigurationException: Business unit without a calendar, or a
                non-positive value
        """
        try:
            unit = TargetUnit(target_unit)
        except ValueError:
            raise ConfigurationException(
                f"Unknown SLA target unit: {target_unit}",
                {"unit": str(target_unit)}
            )
        if target_value is None or target_value <= 0:
            raise ConfigurationException(
                "SLA target value must be a positive integer",
                {"value": target_value, "unit": unit.value}
            )

        start = as_utc(start)

        if unit in _WALL_CLOCK_UNITS:
            return start + _WALL_CLOCK_UNITS[unit] * target_value

        if calendar is None:
            raise ConfigurationException(
                f"{unit.value} target requires a business hours schedule",
                {"unit": unit.value}
            )

        if unit == TargetUnit.BUSINESS_HOURS:
            return calendar.add_business_duration(start, timedelta(hours=target_value))

        return DeadlineCalculator._add_business_days(start, target_value, calendar)

    @staticmethod
    def compute_for_target(
        start: datetime,
        target: SlaTarget,
        calendar: Optional[BusinessHoursCalendar] = None
    ) -> datetime:
        return DeadlineCalculator.compute_due_at(start, target.value, target.unit, calendar)

    @staticmethod
    def _add_business_days(
        start: datetime,
        days: int,
        calendar: BusinessHoursCalendar
    ) -> datetime:
        """
        Same time of day, N open days later.

        The start is first moved to the next open instant; its offset from
        that day's opening time is carried to the final day, clamped to that
        day's closing time when the final day is shorter.
        """
        anchor = calendar.next_open_instant(start)
        day = calendar.local_date(anchor)
        open_at, _ = calendar.window(day)
        offset = anchor - open_at

        for _ in range(days):
            day = calendar.next_open_day(day + timedelta(days=1))

        open_at, close_at = calendar.window(day)
        return min(open_at + offset, close_at)
