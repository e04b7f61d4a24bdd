"""Unit tests for breach and warning detection."""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from config import SLAState, SLAType, SlaDomain, SlaEventType, TargetUnit
from sla.domain import SlaTracking, due_epoch

from tests.factories import ORG, make_configuration, make_schedule, make_snapshot, utc

SYDNEY = ZoneInfo("Australia/Sydney")


@pytest.fixture
def business_day_tracking():
    """Resolution-only, 8 business hours from Monday 09:00."""
    schedule = make_schedule()
    configuration = make_configuration(
        response_target_value=None,
        response_target_unit=None,
        resolution_target_value=8,
        resolution_target_unit=TargetUnit.BUSINESS_HOURS,
        business_hours_schedule_id=schedule.id,
    )
    tracking, _ = SlaTracking.start(
        ORG, SlaDomain.SUPPORT, "issue", "T-7",
        make_snapshot(configuration, schedule), utc(2024, 1, 15, 9, 0),
    )
    return tracking


def event_types(events):
    return [e.event_type for e in events]


class TestWarnings:

    def test_single_warning_at_threshold(self, business_day_tracking):
        logged = set()

        events = business_day_tracking.evaluate(utc(2024, 1, 15, 15, 0), logged)

        assert event_types(events) == [SlaEventType.RESOLUTION_DUE_WARNING]
        assert events[0].sla_type == SLAType.RESOLUTION
        assert events[0].due_epoch == due_epoch(utc(2024, 1, 15, 17, 0))
        assert events[0].payload["remaining_seconds"] == 7200

        assert business_day_tracking.evaluate(utc(2024, 1, 15, 15, 6), logged) == []

    def test_no_warning_before_threshold(self, business_day_tracking):
        assert business_day_tracking.evaluate(utc(2024, 1, 15, 14, 59)) == []

    def test_new_due_date_allows_a_new_warning(self, business_day_tracking):
        logged = set()
        business_day_tracking.evaluate(utc(2024, 1, 15, 15, 0), logged)

        business_day_tracking.pause(utc(2024, 1, 15, 15, 0))
        business_day_tracking.resume(utc(2024, 1, 15, 16, 0))
        events = business_day_tracking.evaluate(utc(2024, 1, 15, 16, 30), logged)

        assert event_types(events) == [SlaEventType.RESOLUTION_DUE_WARNING]
        assert events[0].due_epoch == due_epoch(utc(2024, 1, 15, 18, 0))


class TestBreaches:

    def test_breach_fires_once(self):
        tracking, _ = SlaTracking.start(
            ORG, SlaDomain.SUPPORT, "issue", "T-1",
            make_snapshot(make_configuration()), utc(2024, 1, 15, 9, 0),
        )
        logged = set()

        first = tracking.evaluate(utc(2024, 1, 15, 13, 5), logged)
        second = tracking.evaluate(utc(2024, 1, 15, 13, 10), logged)

        assert event_types(first) == [SlaEventType.RESPONSE_BREACHED]
        assert tracking.response_breached_at == utc(2024, 1, 15, 13, 0)
        assert second == []

    def test_logged_key_suppresses_event_but_sets_flag(self):
        tracking, _ = SlaTracking.start(
            ORG, SlaDomain.SUPPORT, "issue", "T-1",
            make_snapshot(make_configuration()), utc(2024, 1, 15, 9, 0),
        )
        already = tracking.evaluate(utc(2024, 1, 15, 13, 5))[0]
        tracking.response_breached_at = None

        events = tracking.evaluate(utc(2024, 1, 15, 13, 10), {already.dedupe_key})

        assert events == []
        assert tracking.response_breached_at == utc(2024, 1, 15, 13, 0)

    def test_escalation_follows_breach(self):
        configuration = make_configuration(escalate_on_breach=True, escalate_to_user_id="lead-1")
        tracking, _ = SlaTracking.start(
            ORG, SlaDomain.SUPPORT, "issue", "T-1",
            make_snapshot(configuration), utc(2024, 1, 15, 9, 0),
        )

        events = tracking.evaluate(utc(2024, 1, 16, 10, 0))

        assert event_types(events) == [
            SlaEventType.RESPONSE_BREACHED,
            SlaEventType.ESCALATED,
            SlaEventType.RESOLUTION_BREACHED,
            SlaEventType.ESCALATED,
        ]
        assert events[1].payload["reason"] == "response_breached"
        assert events[1].payload["escalate_to_user_id"] == "lead-1"
        assert len({e.dedupe_key for e in events}) == 4

    def test_paused_record_is_skipped(self):
        tracking, _ = SlaTracking.start(
            ORG, SlaDomain.SUPPORT, "issue", "T-1",
            make_snapshot(make_configuration()), utc(2024, 1, 15, 9, 0),
        )
        tracking.pause(utc(2024, 1, 15, 10, 0))

        assert tracking.evaluate(utc(2024, 1, 16, 10, 0)) == []
        assert tracking.response_breached_at is None

    def test_met_clock_is_not_evaluated(self):
        tracking, _ = SlaTracking.start(
            ORG, SlaDomain.SUPPORT, "issue", "T-1",
            make_snapshot(make_configuration()), utc(2024, 1, 15, 9, 0),
        )
        tracking.record_response(utc(2024, 1, 15, 10, 0))

        events = tracking.evaluate(utc(2024, 1, 15, 14, 0))

        assert events == []
        assert tracking.response_breached_at is None


class TestBusinessTimeThreshold:

    @pytest.fixture
    def sydney_friday_tracking(self):
        """4 business hours from Friday 16:00 Sydney (due Monday 12:00)."""
        schedule = make_schedule("Australia/Sydney")
        configuration = make_configuration(
            response_target_value=None,
            response_target_unit=None,
            resolution_target_value=4,
            resolution_target_unit=TargetUnit.BUSINESS_HOURS,
            business_hours_schedule_id=schedule.id,
        )
        tracking, _ = SlaTracking.start(
            ORG, SlaDomain.SUPPORT, "issue", "T-9",
            make_snapshot(configuration, schedule),
            datetime(2024, 1, 19, 16, 0, tzinfo=SYDNEY),
        )
        return tracking

    def test_weekend_does_not_bring_the_warning_closer(self, sydney_friday_tracking):
        sunday_evening = datetime(2024, 1, 21, 20, 0, tzinfo=SYDNEY)

        assert sydney_friday_tracking.evaluate(sunday_evening) == []
        view = sydney_friday_tracking.status_view(sunday_evening)
        assert view.resolution.state == SLAState.ON_TRACK

    def test_warning_once_a_quarter_of_business_time_is_left(self, sydney_friday_tracking):
        assert sydney_friday_tracking.evaluate(datetime(2024, 1, 22, 10, 59, tzinfo=SYDNEY)) == []

        events = sydney_friday_tracking.evaluate(datetime(2024, 1, 22, 11, 0, tzinfo=SYDNEY))

        assert event_types(events) == [SlaEventType.RESOLUTION_DUE_WARNING]
        assert events[0].payload["remaining_seconds"] == 3600
        assert events[0].due_epoch == due_epoch(datetime(2024, 1, 22, 12, 0, tzinfo=SYDNEY))
