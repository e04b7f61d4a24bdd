"""Unit tests for due date calculation."""

from datetime import time

import pytest

from config import TargetUnit
from core import ConfigurationException
from sla.domain import BusinessHoursCalendar, BusinessHoursSchedule, DeadlineCalculator

from tests.factories import make_schedule, utc


@pytest.fixture
def calendar() -> BusinessHoursCalendar:
    return BusinessHoursCalendar(make_schedule())


class TestBusinessDays:

    def test_two_business_days_keep_time_of_day(self, calendar):
        # Wednesday 10:00
        due = DeadlineCalculator.compute_due_at(
            utc(2024, 1, 17, 10, 0), 2, TargetUnit.BUSINESS_DAYS, calendar
        )

        assert due == utc(2024, 1, 19, 10, 0)

    def test_weekend_is_not_counted(self, calendar):
        # Thursday 10:00
        due = DeadlineCalculator.compute_due_at(
            utc(2024, 1, 18, 10, 0), 2, TargetUnit.BUSINESS_DAYS, calendar
        )

        assert due == utc(2024, 1, 22, 10, 0)

    def test_start_outside_hours_counts_from_next_opening(self, calendar):
        # Saturday noon anchors to Monday 09:00
        due = DeadlineCalculator.compute_due_at(
            utc(2024, 1, 13, 12, 0), 1, TargetUnit.BUSINESS_DAYS, calendar
        )

        assert due == utc(2024, 1, 16, 9, 0)

    def test_shorter_final_day_clamps_to_close(self):
        hours = {"start": time(9), "end": time(17)}
        schedule = BusinessHoursSchedule(
            name="Short Fridays",
            weekly_hours={
                "monday": hours, "tuesday": hours, "wednesday": hours, "thursday": hours,
                "friday": {"start": time(9), "end": time(13)},
            },
        )

        due = DeadlineCalculator.compute_due_at(
            utc(2024, 1, 18, 15, 0), 1, TargetUnit.BUSINESS_DAYS, BusinessHoursCalendar(schedule)
        )

        assert due == utc(2024, 1, 19, 13, 0)


class TestWallClock:

    @pytest.mark.parametrize("value, unit, expected", [
        (30, TargetUnit.MINUTES, utc(2024, 1, 19, 16, 30)),
        (4, TargetUnit.HOURS, utc(2024, 1, 19, 20, 0)),
        (2, TargetUnit.DAYS, utc(2024, 1, 21, 16, 0)),
    ])
    def test_calendar_is_ignored(self, calendar, value, unit, expected):
        due = DeadlineCalculator.compute_due_at(utc(2024, 1, 19, 16, 0), value, unit, calendar)

        assert due == expected

    def test_business_hours_use_calendar(self, calendar):
        due = DeadlineCalculator.compute_due_at(
            utc(2024, 1, 19, 16, 0), 4, TargetUnit.BUSINESS_HOURS, calendar
        )

        assert due == utc(2024, 1, 22, 12, 0)


class TestInvalidTargets:

    @pytest.mark.parametrize("unit", [TargetUnit.BUSINESS_HOURS, TargetUnit.BUSINESS_DAYS])
    def test_business_unit_without_calendar(self, unit):
        with pytest.raises(ConfigurationException):
            DeadlineCalculator.compute_due_at(utc(2024, 1, 15, 9, 0), 4, unit, None)

    @pytest.mark.parametrize("value", [0, -3])
    def test_non_positive_value(self, calendar, value):
        with pytest.raises(ConfigurationException):
            DeadlineCalculator.compute_due_at(utc(2024, 1, 15, 9, 0), value, TargetUnit.HOURS, calendar)

    def test_unknown_unit(self):
        with pytest.raises(ConfigurationException):
            DeadlineCalculator.compute_due_at(utc(2024, 1, 15, 9, 0), 1, "fortnights")
