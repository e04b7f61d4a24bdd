"""Unit tests for the tracking record state machine."""

from datetime import timedelta

import pytest

from config import SLAState, SlaDomain, SlaEventType, TargetUnit, TrackingStatus
from core import ConfigurationException, InvalidTransitionException
from sla.domain import Active, Paused, Resolved, Responded, SlaTracking

from tests.factories import ORG, make_configuration, make_schedule, make_snapshot, utc

START = utc(2024, 1, 15, 9, 0)


def start_tracking(configuration=None, schedule=None, at=START):
    snapshot = make_snapshot(configuration or make_configuration(), schedule)
    return SlaTracking.start(ORG, SlaDomain.SUPPORT, "issue", "T-1", snapshot, at)


class TestStart:

    def test_wall_clock_due_dates(self):
        tracking, event = start_tracking()

        assert tracking.state == Active()
        assert tracking.response_due_at == utc(2024, 1, 15, 13, 0)
        assert tracking.resolution_due_at == utc(2024, 1, 16, 9, 0)
        assert tracking.response_target_seconds == 4 * 3600
        assert event.event_type == SlaEventType.STARTED
        assert event.payload["configuration_name"] == "Standard Support"

    def test_business_hours_due_dates(self):
        schedule = make_schedule()
        configuration = make_configuration(
            response_target_unit=TargetUnit.BUSINESS_HOURS,
            resolution_target_value=2,
            resolution_target_unit=TargetUnit.BUSINESS_DAYS,
            business_hours_schedule_id=schedule.id,
        )

        # Friday 16:00
        tracking, _ = start_tracking(configuration, schedule, at=utc(2024, 1, 19, 16, 0))

        assert tracking.response_due_at == utc(2024, 1, 22, 12, 0)
        assert tracking.resolution_due_at == utc(2024, 1, 23, 16, 0)

    def test_missing_target_is_not_applicable(self):
        configuration = make_configuration(response_target_value=None, response_target_unit=None)

        tracking, _ = start_tracking(configuration)

        assert tracking.response_due_at is None
        assert tracking.status_view(START).response.state == SLAState.NOT_APPLICABLE

    def test_business_unit_without_schedule_is_rejected(self):
        configuration = make_configuration(response_target_unit=TargetUnit.BUSINESS_HOURS)

        with pytest.raises(ConfigurationException):
            start_tracking(configuration)

    def test_half_specified_target_is_rejected(self):
        configuration = make_configuration(resolution_target_unit=None)

        with pytest.raises(ConfigurationException):
            start_tracking(configuration)

    def test_dangling_schedule_reference_is_rejected(self):
        schedule = make_schedule()
        configuration = make_configuration(business_hours_schedule_id=schedule.id)

        with pytest.raises(ConfigurationException):
            start_tracking(configuration, schedule=None)


class TestPauseResume:

    def test_pause_shifts_both_due_dates(self):
        tracking, _ = start_tracking()

        tracking.pause(utc(2024, 1, 15, 11, 0), reason="waiting on customer")
        assert tracking.state == Paused(pause_started_at=utc(2024, 1, 15, 11, 0))

        events = tracking.resume(utc(2024, 1, 15, 14, 0))

        assert tracking.state == Active()
        assert tracking.cumulative_paused_seconds == 10800
        assert tracking.response_due_at == utc(2024, 1, 15, 16, 0)
        assert tracking.resolution_due_at == utc(2024, 1, 16, 12, 0)
        assert events[0].event_type == SlaEventType.RESUMED
        assert events[0].payload["pause_duration_seconds"] == 10800

    def test_elapsed_is_frozen_while_paused(self):
        tracking, _ = start_tracking()
        tracking.pause(utc(2024, 1, 15, 10, 0))

        assert tracking.elapsed(utc(2024, 1, 15, 15, 0)) == timedelta(hours=1)

    def test_pause_after_response_returns_to_responded(self):
        tracking, _ = start_tracking()
        tracking.record_response(utc(2024, 1, 15, 10, 0))

        tracking.pause(utc(2024, 1, 15, 11, 0))
        tracking.resume(utc(2024, 1, 15, 12, 0))

        assert tracking.state == Responded()
        assert tracking.response_due_at == utc(2024, 1, 15, 14, 0)

    def test_double_pause_is_rejected(self):
        tracking, _ = start_tracking()
        tracking.pause(utc(2024, 1, 15, 10, 0))

        with pytest.raises(InvalidTransitionException):
            tracking.pause(utc(2024, 1, 15, 10, 30))

    def test_resume_when_not_paused_is_rejected(self):
        tracking, _ = start_tracking()

        with pytest.raises(InvalidTransitionException):
            tracking.resume(utc(2024, 1, 15, 10, 0))


class TestMilestones:

    def test_response_in_time(self):
        tracking, _ = start_tracking()

        events = tracking.record_response(utc(2024, 1, 15, 10, 30))

        assert tracking.state == Responded()
        assert tracking.response_time_seconds == 5400
        assert tracking.response_breached_at is None
        assert events[0].payload["was_breached"] is False

    def test_late_response_is_breached_at_due(self):
        tracking, _ = start_tracking()

        events = tracking.record_response(utc(2024, 1, 15, 14, 0))

        assert tracking.response_breached_at == utc(2024, 1, 15, 13, 0)
        assert events[0].payload["was_breached"] is True
        assert tracking.status_view(utc(2024, 1, 15, 14, 0)).status == TrackingStatus.BREACHED

    def test_second_response_is_rejected(self):
        tracking, _ = start_tracking()
        tracking.record_response(utc(2024, 1, 15, 10, 0))

        with pytest.raises(InvalidTransitionException):
            tracking.record_response(utc(2024, 1, 15, 11, 0))

    def test_resolve_from_paused_closes_the_pause(self):
        tracking, _ = start_tracking()
        tracking.pause(utc(2024, 1, 15, 10, 0))

        tracking.record_resolution(utc(2024, 1, 15, 12, 0))

        assert tracking.state == Resolved(resolved_at=utc(2024, 1, 15, 12, 0))
        assert tracking.cumulative_paused_seconds == 7200
        assert tracking.resolution_time_seconds == 3600

    def test_resolve_after_long_pause_is_not_breached(self):
        tracking, _ = start_tracking()
        tracking.pause(utc(2024, 1, 15, 10, 0))

        events = tracking.record_resolution(utc(2024, 1, 16, 12, 0))

        assert tracking.resolution_time_seconds == 3600
        assert tracking.resolution_due_at == utc(2024, 1, 17, 11, 0)
        assert tracking.response_due_at == utc(2024, 1, 16, 15, 0)
        assert tracking.resolution_breached_at is None
        assert events[0].payload["was_breached"] is False

    def test_response_while_paused_uses_the_stopped_clock(self):
        tracking, _ = start_tracking()
        tracking.pause(utc(2024, 1, 15, 10, 0))

        events = tracking.record_response(utc(2024, 1, 15, 14, 0))

        assert tracking.state == Paused(pause_started_at=utc(2024, 1, 15, 10, 0))
        assert tracking.response_time_seconds == 3600
        assert tracking.response_breached_at is None
        assert events[0].payload["was_breached"] is False

        tracking.resume(utc(2024, 1, 15, 15, 0))
        assert tracking.state == Responded()
        assert tracking.status_view(utc(2024, 1, 15, 15, 0)).response.state == SLAState.MET

    def test_response_while_paused_after_due_stays_breached(self):
        tracking, _ = start_tracking()
        tracking.pause(utc(2024, 1, 15, 13, 30))

        events = tracking.record_response(utc(2024, 1, 15, 14, 0))

        assert tracking.response_breached_at == utc(2024, 1, 15, 13, 0)
        assert events[0].payload["was_breached"] is True

    def test_resolved_is_terminal(self):
        tracking, _ = start_tracking()
        tracking.record_resolution(utc(2024, 1, 15, 10, 0))

        for transition in (tracking.pause, tracking.resume, tracking.record_response,
                           tracking.record_resolution):
            with pytest.raises(InvalidTransitionException):
                transition(utc(2024, 1, 15, 11, 0))

    def test_resolved_status_is_not_shown_as_breached(self):
        tracking, _ = start_tracking()

        tracking.record_resolution(utc(2024, 1, 16, 10, 0))
        view = tracking.status_view(utc(2024, 1, 16, 10, 0))

        assert view.status == TrackingStatus.RESOLVED
        assert view.is_resolution_breached
        assert view.resolution.state == SLAState.BREACHED


class TestStatusView:

    def test_progress_of_next_open_clock(self):
        tracking, _ = start_tracking()

        view = tracking.status_view(utc(2024, 1, 15, 11, 0))

        assert view.status == TrackingStatus.ACTIVE
        assert view.time_remaining_seconds == 7200
        assert view.percent_complete == 50.0
        assert view.response.state == SLAState.ON_TRACK

    def test_at_risk_inside_threshold(self):
        tracking, _ = start_tracking()

        view = tracking.status_view(utc(2024, 1, 15, 12, 30))

        assert view.response.state == SLAState.AT_RISK

    def test_paused_clock_is_not_breached_past_due(self):
        tracking, _ = start_tracking()
        tracking.pause(utc(2024, 1, 15, 12, 0))

        view = tracking.status_view(utc(2024, 1, 15, 18, 0))

        assert view.is_paused
        assert view.response.state == SLAState.AT_RISK
        assert view.time_remaining_seconds == 3600

    def test_to_dict_is_json_ready(self):
        tracking, _ = start_tracking()

        data = tracking.status_view(START).to_dict()

        assert data["status"] == "active"
        assert data["response_due_at"] == "2024-01-15T13:00:00+00:00"
        assert data["response"]["state"] == "on_track"


class TestApplyConfiguration:

    def test_recomputes_from_start_and_keeps_pause_shift(self):
        tracking, _ = start_tracking()
        tracking.pause(utc(2024, 1, 15, 10, 0))
        tracking.resume(utc(2024, 1, 15, 11, 0))

        faster = make_configuration(name="Priority", response_target_value=1)
        events = tracking.apply_configuration(make_snapshot(faster), utc(2024, 1, 15, 11, 30))

        assert tracking.configuration_id == faster.id
        assert tracking.response_due_at == utc(2024, 1, 15, 11, 0)
        assert events[0].event_type == SlaEventType.CONFIG_CHANGED
        assert events[0].payload["old_response_due_at"] == "2024-01-15T14:00:00+00:00"

    def test_keeps_existing_breach(self):
        tracking, _ = start_tracking()
        tracking.evaluate(utc(2024, 1, 15, 13, 30))

        tracking.apply_configuration(
            make_snapshot(make_configuration(response_target_value=8)), utc(2024, 1, 15, 13, 45)
        )

        assert tracking.response_breached_at == utc(2024, 1, 15, 13, 0)

    def test_rejected_when_resolved(self):
        tracking, _ = start_tracking()
        tracking.record_resolution(utc(2024, 1, 15, 10, 0))

        with pytest.raises(InvalidTransitionException):
            tracking.apply_configuration(make_snapshot(make_configuration()), utc(2024, 1, 15, 11, 0))
