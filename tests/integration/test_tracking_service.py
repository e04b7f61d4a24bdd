"""Integration tests for the SLA services over a SQLite database."""

import asyncio
from datetime import date, time
from uuid import uuid4

import pytest

from config import SlaDomain, SlaEventType, TargetUnit, TrackingStatus
from core import (
    ConcurrentModificationException,
    ConfigurationException,
    InvalidTransitionException,
    NoConfigurationFoundException,
    ResourceNotFoundException,
)
from sla.domain import BusinessHoursSchedule, Holiday, SlaConfiguration
from sla.infrastructure import SQLAlchemyUnitOfWork, YAMLCatalogProvider
from sla.services import build_sla_services

from tests.factories import ORG, OTHER_ORG, RecordingNotifier, utc


async def seed(services, organization_id=ORG, **kwargs):
    return await services.admin.seed_default_configurations(organization_id, **kwargs)


async def start(services, entity_id="ISSUE-1", **kwargs):
    return await services.tracking.start_tracking(ORG, SlaDomain.SUPPORT, "issue", entity_id, **kwargs)


class TestStartTracking:

    @pytest.mark.asyncio
    async def test_seeded_default_applies(self, services):
        await seed(services)

        tracking = await start(services)

        assert tracking.configuration.name == "Standard Support"
        assert tracking.response_due_at == utc(2024, 1, 15, 17, 0)
        assert tracking.resolution_due_at == utc(2024, 1, 18, 9, 0)

        events = await services.tracking.get_events(ORG, tracking.id)
        assert [e.event_type for e in events] == [SlaEventType.STARTED]

    @pytest.mark.asyncio
    async def test_match_criteria_select_configuration(self, services):
        await seed(services)
        schedule = (await services.admin.list_schedules(ORG))[0]
        urgent = await services.admin.create_configuration(ORG, SlaConfiguration(
            domain=SlaDomain.SUPPORT,
            name="Urgent",
            response_target_value=30,
            response_target_unit=TargetUnit.MINUTES,
            resolution_target_value=4,
            resolution_target_unit=TargetUnit.BUSINESS_HOURS,
            business_hours_schedule_id=schedule.id,
            priority_order=1,
            match_criteria={"priority": ["urgent", "critical"]},
        ))

        tracking = await start(services, entity_attributes={"priority": "critical"})

        assert tracking.configuration_id == urgent.id
        assert tracking.response_due_at == utc(2024, 1, 15, 9, 30)
        assert tracking.resolution_due_at == utc(2024, 1, 15, 13, 0)

    @pytest.mark.asyncio
    async def test_explicit_assignment(self, services):
        await seed(services)
        low = next(
            c for c in await services.admin.list_configurations(ORG, SlaDomain.SUPPORT)
            if c.name == "Low Priority Support"
        )

        tracking = await start(services, configuration_id=low.id)

        assert tracking.configuration_id == low.id

    @pytest.mark.asyncio
    async def test_no_configuration(self, services):
        with pytest.raises(NoConfigurationFoundException):
            await start(services)

    @pytest.mark.asyncio
    async def test_unusable_configuration_creates_nothing(self, services, session_maker):
        async with SQLAlchemyUnitOfWork(session_maker) as uow:
            await uow.configurations.add(SlaConfiguration(
                organization_id=ORG,
                domain=SlaDomain.SUPPORT,
                name="Broken",
                response_target_value=4,
                response_target_unit=TargetUnit.BUSINESS_HOURS,
                is_default=True,
            ))
            await uow.commit()

        with pytest.raises(ConfigurationException):
            await start(services)

        assert await services.tracking.list_for_entity(ORG, SlaDomain.SUPPORT, "issue", "ISSUE-1") == []

    @pytest.mark.asyncio
    async def test_tenants_are_isolated(self, services):
        await seed(services)
        tracking = await start(services)

        with pytest.raises(ResourceNotFoundException):
            await services.tracking.get_status(OTHER_ORG, tracking.id)
        with pytest.raises(NoConfigurationFoundException):
            await services.tracking.start_tracking(OTHER_ORG, SlaDomain.SUPPORT, "issue", "X-1")


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_pause_resume_respond_resolve(self, services, clock):
        await seed(services)
        tracking = await start(services)

        clock.set(utc(2024, 1, 15, 11, 0))
        await services.tracking.pause(ORG, tracking.id, reason="waiting on customer")
        clock.set(utc(2024, 1, 15, 13, 0))
        resumed = await services.tracking.resume(ORG, tracking.id)

        assert resumed.status == TrackingStatus.ACTIVE
        assert resumed.cumulative_paused_seconds == 7200
        assert resumed.response_due_at == utc(2024, 1, 15, 19, 0)

        clock.set(utc(2024, 1, 15, 14, 0))
        await services.tracking.record_response(ORG, tracking.id)
        clock.set(utc(2024, 1, 16, 10, 0))
        resolved = await services.tracking.record_resolution(ORG, tracking.id)

        assert resolved.status == TrackingStatus.RESOLVED
        assert resolved.response_time_seconds == 3 * 3600
        assert resolved.version_id == 4

        events = await services.tracking.get_events(ORG, tracking.id)
        assert [e.event_type for e in events] == [
            SlaEventType.RESOLVED,
            SlaEventType.RESPONDED,
            SlaEventType.RESUMED,
            SlaEventType.PAUSED,
            SlaEventType.STARTED,
        ]
        assert events[3].payload["reason"] == "waiting on customer"

    @pytest.mark.asyncio
    async def test_invalid_transition_leaves_record_untouched(self, services):
        await seed(services)
        tracking = await start(services)

        with pytest.raises(InvalidTransitionException):
            await services.tracking.resume(ORG, tracking.id)

        stored = await services.tracking.get_tracking(ORG, tracking.id)
        assert stored.version_id == 0
        assert len(await services.tracking.get_events(ORG, tracking.id)) == 1

    @pytest.mark.asyncio
    async def test_unknown_tracking(self, services):
        with pytest.raises(ResourceNotFoundException):
            await services.tracking.pause(ORG, uuid4())

    @pytest.mark.asyncio
    async def test_stale_write_is_rejected(self, services, clock, session_maker):
        await seed(services)
        tracking = await start(services)

        async with SQLAlchemyUnitOfWork(session_maker) as first, \
                SQLAlchemyUnitOfWork(session_maker) as second:
            mine = await first.trackings.get(ORG, tracking.id)
            theirs = await second.trackings.get(ORG, tracking.id)

            mine.pause(clock())
            await first.trackings.save(mine)
            await first.commit()

            theirs.record_response(clock())
            with pytest.raises(ConcurrentModificationException):
                await second.trackings.save(theirs)

        stored = await services.tracking.get_tracking(ORG, tracking.id)
        assert stored.is_paused
        assert stored.responded_at is None

    @pytest.mark.asyncio
    async def test_apply_updated_configuration(self, services, clock):
        await seed(services)
        tracking = await start(services)
        await services.admin.update_configuration(
            ORG, tracking.configuration_id, {"response_target_value": 2}
        )

        unchanged = await services.tracking.get_tracking(ORG, tracking.id)
        assert unchanged.response_due_at == utc(2024, 1, 15, 17, 0)

        clock.set(utc(2024, 1, 15, 10, 0))
        applied = await services.tracking.apply_configuration(ORG, tracking.id)

        assert applied.response_due_at == utc(2024, 1, 15, 11, 0)
        events = await services.tracking.get_events(ORG, tracking.id)
        assert events[0].event_type == SlaEventType.CONFIG_CHANGED


class TestSweep:

    @pytest.mark.asyncio
    async def test_breach_is_recorded_once(self, services, clock, notifier):
        await seed(services)
        tracking = await start(services)

        clock.set(utc(2024, 1, 15, 17, 5))
        first = await services.sweep.run_sweep()
        clock.set(utc(2024, 1, 15, 17, 10))
        second = await services.sweep.run_sweep()

        assert (first.evaluated, first.breached) == (1, 1)
        assert (second.evaluated, second.breached) == (1, 0)

        events = await services.tracking.get_events(ORG, tracking.id)
        breaches = [e for e in events if e.event_type == SlaEventType.RESPONSE_BREACHED]
        assert len(breaches) == 1
        assert breaches[0].due_epoch == int(utc(2024, 1, 15, 17, 0).timestamp())
        assert [n.event_type for n in notifier.notices] == ["response_breached"]

        view = await services.tracking.get_status(ORG, tracking.id)
        assert view.status == TrackingStatus.BREACHED

    @pytest.mark.asyncio
    async def test_warning_then_breach_with_escalation(self, services, clock, notifier):
        await seed(services)
        critical = next(
            c for c in await services.admin.list_configurations(ORG, SlaDomain.SUPPORT)
            if c.name == "Critical Support"
        )
        tracking = await start(services, configuration_id=critical.id)

        clock.set(utc(2024, 1, 15, 9, 50))
        warned = await services.sweep.run_sweep(domain=SlaDomain.SUPPORT)
        clock.set(utc(2024, 1, 15, 10, 1))
        breached = await services.sweep.run_sweep(organization_id=ORG)

        assert warned.warned == 1
        assert breached.breached == 1
        assert [n.event_type for n in notifier.notices] == [
            "response_due_warning", "response_breached", "escalated",
        ]
        assert notifier.notices[0].tracking_id == str(tracking.id)

    @pytest.mark.asyncio
    async def test_paused_and_resolved_are_not_swept(self, services, clock):
        await seed(services)
        paused = await start(services, entity_id="ISSUE-1")
        resolved = await start(services, entity_id="ISSUE-2")
        await services.tracking.pause(ORG, paused.id)
        await services.tracking.record_resolution(ORG, resolved.id)

        clock.set(utc(2024, 2, 1, 9, 0))
        result = await services.sweep.run_sweep()

        assert result.evaluated == 0

    @pytest.mark.asyncio
    async def test_evaluate_on_read(self, services, clock):
        await seed(services)
        tracking = await start(services)

        clock.set(utc(2024, 1, 15, 18, 0))
        view = await services.tracking.get_status(ORG, tracking.id, evaluate=True)

        assert view.is_response_breached
        events = await services.tracking.get_events(ORG, tracking.id)
        assert events[0].event_type == SlaEventType.RESPONSE_BREACHED

    @pytest.mark.asyncio
    async def test_sweep_job_never_raises(self, services):
        result = await services.run_sweep_job()

        assert result.evaluated == 0



class SlowNotifier(RecordingNotifier):
    """Takes longer to deliver than a sweep allows for one record."""

    async def notify(self, notice):
        await asyncio.sleep(0.5)
        return await super().notify(notice)


class TestSweepUnderLoad:

    @pytest.mark.asyncio
    async def test_slow_escalation_does_not_skip_the_record(self, session_maker, test_settings, clock):
        notifier = SlowNotifier()
        services = build_sla_services(
            session_maker,
            test_settings.model_copy(update={"sla_sweep_record_timeout_seconds": 0.2}),
            clock=clock,
            notifier=notifier,
            catalog_provider=YAMLCatalogProvider(test_settings.sla_config_path),
        )
        await seed(services)
        await start(services)

        clock.set(utc(2024, 1, 15, 17, 5))
        result = await services.sweep.run_sweep()

        assert (result.evaluated, result.breached, result.skipped) == (1, 1, 0)
        assert [n.event_type for n in notifier.notices] == ["response_breached"]

    @pytest.mark.asyncio
    async def test_concurrent_sweeps_breach_once(self, session_maker, test_settings, clock, notifier):
        services = build_sla_services(
            session_maker,
            test_settings.model_copy(update={"sla_sweep_concurrency": 4}),
            clock=clock,
            notifier=notifier,
            catalog_provider=YAMLCatalogProvider(test_settings.sla_config_path),
        )
        await seed(services)
        trackings = [await start(services, entity_id=f"ISSUE-{n}") for n in range(3)]

        clock.set(utc(2024, 1, 15, 17, 5))
        first, second = await asyncio.gather(services.sweep.run_sweep(), services.sweep.run_sweep())

        assert first.breached + second.breached == 3
        for tracking in trackings:
            events = await services.tracking.get_events(ORG, tracking.id)
            assert [e.event_type for e in events].count(SlaEventType.RESPONSE_BREACHED) == 1
        assert sorted(n.tracking_id for n in notifier.notices) == sorted(str(t.id) for t in trackings)


class TestMetrics:

    @pytest.mark.asyncio
    async def test_counts_rates_and_averages(self, services, clock):
        await seed(services)
        first = await start(services, entity_id="ISSUE-1")
        second = await services.tracking.start_tracking(ORG, SlaDomain.SUPPORT, "chat", "CHAT-1")

        clock.set(utc(2024, 1, 15, 10, 0))
        await services.tracking.record_response(ORG, first.id)
        clock.set(utc(2024, 1, 15, 18, 0))
        await services.tracking.record_response(ORG, second.id)
        await services.tracking.pause(ORG, first.id)

        metrics = await services.tracking.get_metrics(ORG)

        assert metrics["total"] == 2
        assert metrics["response_breached"] == 1
        assert metrics["response_breach_rate"] == 50.0
        assert metrics["currently_paused"] == 1
        assert metrics["avg_response_time_seconds"] == (3600 + 9 * 3600) // 2

        rows = await services.tracking.get_metrics_by_entity_type(ORG, SlaDomain.SUPPORT)
        by_type = {row["entity_type"]: row for row in rows}
        assert by_type["chat"]["response_breach_rate"] == 100.0
        assert by_type["issue"]["response_breached"] == 0
        assert "currently_paused" not in by_type["issue"]

    @pytest.mark.asyncio
    async def test_date_range_is_inclusive(self, services):
        await seed(services)
        await start(services)

        day = date(2024, 1, 15)
        assert (await services.tracking.get_metrics(ORG, end_date=day))["total"] == 1
        assert (await services.tracking.get_metrics(ORG, start_date=date(2024, 1, 16)))["total"] == 0

    @pytest.mark.asyncio
    async def test_empty_organization(self, services):
        metrics = await services.tracking.get_metrics(OTHER_ORG)

        assert metrics["total"] == 0
        assert metrics["response_breach_rate"] == 0.0
        assert metrics["avg_resolution_time_seconds"] is None


class TestAdmin:

    @pytest.mark.asyncio
    async def test_seed_skips_existing_domains(self, services):
        first = await seed(services)
        second = await seed(services)

        assert first["total_created"] == 11
        assert second["total_created"] == 0
        assert all(r["skipped"] for r in second["results"])

        forced = await seed(services, domains=[SlaDomain.JOBS], skip_existing=False)
        assert forced["total_created"] == 4
        assert len(await services.admin.list_schedules(ORG)) == 1

    @pytest.mark.asyncio
    async def test_has_configurations_and_default(self, services):
        assert (await services.admin.has_configurations(ORG))["has_configurations"] is False
        assert await services.admin.get_default_configuration(ORG, SlaDomain.WARRANTY) is None

        await seed(services, domains=[SlaDomain.WARRANTY])

        assert await services.admin.has_configurations(ORG, SlaDomain.WARRANTY) == {
            "has_configurations": True, "count": 3,
        }
        default = await services.admin.get_default_configuration(ORG, SlaDomain.WARRANTY)
        assert default.name == "Manufacturer Warranty Claim"

    @pytest.mark.asyncio
    async def test_only_one_default_per_domain(self, services):
        await seed(services, domains=[SlaDomain.SUPPORT])
        schedule = (await services.admin.list_schedules(ORG))[0]

        await services.admin.create_configuration(ORG, SlaConfiguration(
            domain=SlaDomain.SUPPORT,
            name="New Default",
            resolution_target_value=2,
            resolution_target_unit=TargetUnit.BUSINESS_DAYS,
            business_hours_schedule_id=schedule.id,
            is_default=True,
        ))

        defaults = [
            c.name for c in await services.admin.list_configurations(ORG, SlaDomain.SUPPORT)
            if c.is_default
        ]
        assert defaults == ["New Default"]

    @pytest.mark.asyncio
    async def test_invalid_configuration_is_rejected(self, services):
        with pytest.raises(ConfigurationException):
            await services.admin.create_configuration(ORG, SlaConfiguration(
                domain=SlaDomain.JOBS,
                name="No calendar",
                response_target_value=2,
                response_target_unit=TargetUnit.BUSINESS_HOURS,
            ))

    @pytest.mark.asyncio
    async def test_holiday_changes_new_due_dates(self, services, clock):
        await seed(services)
        await services.tracking.start_tracking(ORG, SlaDomain.SUPPORT, "issue", "WARM-CACHE")

        await services.admin.create_holiday(
            ORG, Holiday(name="Company day", date=date(2024, 1, 15))
        )
        tracking = await start(services, entity_id="ISSUE-2")

        assert tracking.response_due_at == utc(2024, 1, 16, 17, 0)
        holidays = await services.admin.list_holidays(ORG)
        assert [h.name for h in holidays] == ["Company day"]

    @pytest.mark.asyncio
    async def test_schedule_update(self, services):
        created = await services.admin.create_schedule(
            ORG, BusinessHoursSchedule.standard(name="Sydney", timezone="Australia/Sydney")
        )

        updated = await services.admin.update_schedule(
            ORG, created.id, {"weekly_hours": {"saturday": {"start": time(10), "end": time(14)}}}
        )

        assert updated.hours_for_weekday(5).start == time(10)
        assert updated.hours_for_weekday(0) is None
        fetched = await services.admin.get_schedule(ORG, created.id)
        assert fetched.timezone == "Australia/Sydney"
        assert fetched.weekly_hours == updated.weekly_hours

    @pytest.mark.asyncio
    async def test_unknown_schedule_reference(self, services):
        with pytest.raises(ResourceNotFoundException):
            await services.admin.create_configuration(ORG, SlaConfiguration(
                domain=SlaDomain.JOBS,
                name="Dangling",
                response_target_value=2,
                response_target_unit=TargetUnit.BUSINESS_HOURS,
                business_hours_schedule_id=uuid4(),
            ))
