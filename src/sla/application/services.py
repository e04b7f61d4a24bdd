"""
SLA Application Services
=========================

Repository and unit-of-work ports, the tracking service and the sweep.

Every state change runs inside one unit of work: the tracking row and its
events are committed together or not at all. Escalation happens after commit.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from typing import (
    Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple, TypeVar
)
from uuid import UUID

from config import SlaDomain, SlaEventType
from core import (
    ConcurrentModificationException,
    ConfigurationException,
    NoConfigurationFoundException,
    ResourceNotFoundException,
)
from sla.application.cache import SlaCaches
from sla.application.escalation import EscalationTrigger
from sla.domain import (
    BusinessHoursSchedule,
    ConfigurationSnapshot,
    Holiday,
    SlaConfiguration,
    SlaConfigurationResolver,
    SlaEvent,
    SlaStatusView,
    SlaTracking,
    SweepResult,
)
from sla.domain.entities import DedupeKey
from shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)

T = TypeVar("T")

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITrackingRepository(ABC):
    """Interface for tracking record data access."""

    @abstractmethod
    async def get(
        self,
        organization_id: str,
        tracking_id: UUID,
        for_update: bool = False
    ) -> Optional[SlaTracking]:
        """Get a tracking record, optionally locking the row."""

    @abstractmethod
    async def add(self, tracking: SlaTracking) -> None:
        """Insert a new tracking record."""

    @abstractmethod
    async def save(self, tracking: SlaTracking) -> None:
        """
        Write back a loaded record.

        Raises:
            ConcurrentModificationException: The row changed since it was read
        """

    @abstractmethod
    async def list_open(
        self,
        domain: Optional[SlaDomain] = None,
        organization_id: Optional[str] = None
    ) -> List[Tuple[str, UUID]]:
        """(organization_id, tracking_id) of records that are neither paused nor resolved."""

    @abstractmethod
    async def list_for_entity(
        self,
        organization_id: str,
        domain: SlaDomain,
        entity_type: str,
        entity_id: str
    ) -> List[SlaTracking]:
        """Tracking records of one entity, newest first."""

    @abstractmethod
    async def get_metrics(
        self,
        organization_id: str,
        domain: Optional[SlaDomain] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> Dict[str, Any]:
        """Aggregate counts and averages."""

    @abstractmethod
    async def get_metrics_by_entity_type(
        self,
        organization_id: str,
        domain: Optional[SlaDomain] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> List[Dict[str, Any]]:
        """Aggregates grouped by entity type."""


class IEventRepository(ABC):
    """Interface for the append-only event log."""

    @abstractmethod
    async def append(self, events: Sequence[SlaEvent]) -> None:
        """
        Append events in the current transaction.

        Raises:
            ConcurrentModificationException: A de-duplicated event already exists
        """

    @abstractmethod
    async def list_for_tracking(self, organization_id: str, tracking_id: UUID) -> List[SlaEvent]:
        """Events of a tracking record, newest first."""

    @abstractmethod
    async def logged_keys(self, tracking_id: UUID) -> Set[DedupeKey]:
        """De-duplication keys already present for a tracking record."""


class IConfigurationRepository(ABC):
    """Interface for SLA configuration data access."""

    @abstractmethod
    async def get(self, organization_id: str, configuration_id: UUID) -> Optional[SlaConfiguration]:
        """Get configuration by ID."""

    @abstractmethod
    async def list(
        self,
        organization_id: str,
        domain: Optional[SlaDomain] = None,
        active_only: bool = False
    ) -> List[SlaConfiguration]:
        """List configurations ordered by domain and priority."""

    @abstractmethod
    async def add(self, configuration: SlaConfiguration) -> SlaConfiguration:
        """Create new configuration."""

    @abstractmethod
    async def update(self, configuration: SlaConfiguration) -> SlaConfiguration:
        """Update existing configuration."""

    @abstractmethod
    async def count(self, organization_id: str, domain: Optional[SlaDomain] = None) -> int:
        """Number of configurations."""


class IScheduleRepository(ABC):
    """Interface for business hours schedules and holidays."""

    @abstractmethod
    async def get(self, organization_id: str, schedule_id: UUID) -> Optional[BusinessHoursSchedule]:
        """Get schedule by ID."""

    @abstractmethod
    async def get_default(self, organization_id: str) -> Optional[BusinessHoursSchedule]:
        """The organization's default schedule."""

    @abstractmethod
    async def list(self, organization_id: str) -> List[BusinessHoursSchedule]:
        """List schedules."""

    @abstractmethod
    async def add(self, schedule: BusinessHoursSchedule) -> BusinessHoursSchedule:
        """Create new schedule."""

    @abstractmethod
    async def update(self, schedule: BusinessHoursSchedule) -> BusinessHoursSchedule:
        """Update existing schedule."""

    @abstractmethod
    async def list_holidays(self, organization_id: str) -> List[Holiday]:
        """List holidays ordered by date."""

    @abstractmethod
    async def get_holiday(self, organization_id: str, holiday_id: UUID) -> Optional[Holiday]:
        """Get holiday by ID."""

    @abstractmethod
    async def add_holiday(self, holiday: Holiday) -> Holiday:
        """Create new holiday."""

    @abstractmethod
    async def update_holiday(self, holiday: Holiday) -> Holiday:
        """Update existing holiday."""


class IUnitOfWork(ABC):
    """
    One transaction over all repositories.

    Leaving the context without `commit()` rolls back.
    """

    trackings: ITrackingRepository
    events: IEventRepository
    configurations: IConfigurationRepository
    schedules: IScheduleRepository

    async def __aenter__(self) -> "IUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.rollback()

    @abstractmethod
    async def commit(self) -> None:
        """Commit the transaction."""

    @abstractmethod
    async def rollback(self) -> None:
        """Roll back anything not committed."""


UnitOfWorkFactory = Callable[[], IUnitOfWork]


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int,
    tracking_id: Optional[UUID] = None
) -> T:
    """
    Run `operation`, retrying on optimistic lock conflicts.

    Each attempt must open its own unit of work so it re-reads the row.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except ConcurrentModificationException:
            if attempt >= max_retries:
                logger.warning(
                    "Concurrent modification, giving up",
                    extra={"tracking_id": str(tracking_id), "attempts": attempt + 1}
                )
                raise
            attempt += 1
            logger.info(
                "Concurrent modification, retrying",
                extra={"tracking_id": str(tracking_id), "attempt": attempt}
            )


async def load_snapshot(
    uow: IUnitOfWork,
    caches: SlaCaches,
    organization_id: str,
    configuration: SlaConfiguration,
    captured_at: datetime
) -> ConfigurationSnapshot:
    """Capture the configuration together with its calendar."""
    schedule, holidays = None, []
    schedule_id = configuration.business_hours_schedule_id
    if schedule_id is not None:
        async def load_calendar():
            loaded = await uow.schedules.get(organization_id, schedule_id)
            return loaded, await uow.schedules.list_holidays(organization_id)

        schedule, holidays = await caches.calendars.get_or_load(
            organization_id, schedule_id, load_calendar
        )
        if schedule is None:
            holidays = []

    return ConfigurationSnapshot(
        configuration=configuration,
        schedule=schedule,
        holidays=holidays,
        captured_at=captured_at,
    )


# ========== Application Services ==========

class SlaTrackingService:
    """
    Service for the tracking record lifecycle.

    Coordinates between the domain state machine, the repositories and the
    escalation trigger.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        resolver: SlaConfigurationResolver,
        caches: SlaCaches,
        escalation: Optional[EscalationTrigger] = None,
        clock: Optional[Clock] = None,
        max_conflict_retries: int = 3,
        evaluate_on_read: bool = False
    ):
        self._uow_factory = uow_factory
        self._resolver = resolver
        self._caches = caches
        self._escalation = escalation
        self._clock = clock or utcnow
        self._max_retries = max_conflict_retries
        self._evaluate_on_read = evaluate_on_read

    def now(self) -> datetime:
        return self._clock()

    # ========== Commands ==========

    async def start_tracking(
        self,
        organization_id: str,
        domain: SlaDomain,
        entity_type: str,
        entity_id: str,
        configuration_id: Optional[UUID] = None,
        entity_attributes: Optional[Mapping[str, Any]] = None,
        started_at: Optional[datetime] = None,
        triggered_by_user_id: Optional[str] = None
    ) -> SlaTracking:
        """
        Start tracking an entity.

        Raises:
            NoConfigurationFoundException: No configuration applies
            ConfigurationException: The configuration cannot produce due dates
        """
        domain = SlaDomain(domain)
        now = self._clock()
        log_context = {
            "organization_id": organization_id,
            "domain": domain.value,
            "entity_type": entity_type,
            "entity_id": entity_id,
        }

        async with self._uow_factory() as uow:
            configurations = await self._active_configurations(uow, organization_id, domain)
            if configuration_id is not None and not any(
                c.id == configuration_id for c in configurations
            ):
                logger.warning(
                    "Assigned SLA configuration not found or inactive, resolving by match",
                    extra={**log_context, "configuration_id": str(configuration_id)}
                )

            try:
                configuration = self._resolver.resolve(
                    domain, configurations, entity_attributes, configuration_id
                )
            except NoConfigurationFoundException:
                logger.error("No SLA configuration found", extra=log_context)
                raise

            snapshot = await load_snapshot(uow, self._caches, organization_id, configuration, now)
            try:
                tracking, event = SlaTracking.start(
                    organization_id=organization_id,
                    domain=domain,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    snapshot=snapshot,
                    started_at=started_at or now,
                    triggered_by_user_id=triggered_by_user_id,
                )
            except ConfigurationException as e:
                logger.warning(
                    "SLA configuration cannot be applied",
                    extra={**log_context, "configuration": configuration.name, "error": e.message}
                )
                raise

            await uow.trackings.add(tracking)
            await uow.events.append([event])
            await uow.commit()

        logger.info(
            "SLA tracking started",
            extra={
                **log_context,
                "tracking_id": str(tracking.id),
                "configuration": configuration.name,
                "response_due_at": tracking.response_due_at.isoformat() if tracking.response_due_at else None,
                "resolution_due_at": tracking.resolution_due_at.isoformat() if tracking.resolution_due_at else None,
            }
        )
        return tracking

    async def pause(
        self,
        organization_id: str,
        tracking_id: UUID,
        reason: Optional[str] = None,
        triggered_by_user_id: Optional[str] = None
    ) -> SlaTracking:
        return await self._transition(
            organization_id, tracking_id, "pause",
            lambda t, now: t.pause(now, reason, triggered_by_user_id)
        )

    async def resume(
        self,
        organization_id: str,
        tracking_id: UUID,
        triggered_by_user_id: Optional[str] = None
    ) -> SlaTracking:
        return await self._transition(
            organization_id, tracking_id, "resume",
            lambda t, now: t.resume(now, triggered_by_user_id)
        )

    async def record_response(
        self,
        organization_id: str,
        tracking_id: UUID,
        at: Optional[datetime] = None,
        triggered_by_user_id: Optional[str] = None
    ) -> SlaTracking:
        return await self._transition(
            organization_id, tracking_id, "respond",
            lambda t, now: t.record_response(at or now, triggered_by_user_id)
        )

    async def record_resolution(
        self,
        organization_id: str,
        tracking_id: UUID,
        at: Optional[datetime] = None,
        triggered_by_user_id: Optional[str] = None
    ) -> SlaTracking:
        return await self._transition(
            organization_id, tracking_id, "resolve",
            lambda t, now: t.record_resolution(at or now, triggered_by_user_id)
        )

    async def apply_configuration(
        self,
        organization_id: str,
        tracking_id: UUID,
        configuration_id: Optional[UUID] = None,
        triggered_by_user_id: Optional[str] = None
    ) -> SlaTracking:
        """
        Re-apply a configuration to an in-flight record.

        Without `configuration_id` the record's own configuration is reloaded,
        picking up edits made since tracking started.
        """
        async def attempt() -> Tuple[SlaTracking, List[SlaEvent]]:
            async with self._uow_factory() as uow:
                tracking = await self._get_tracking(uow, organization_id, tracking_id, for_update=True)
                target_id = configuration_id or tracking.configuration_id
                configuration = (
                    await uow.configurations.get(organization_id, target_id) if target_id else None
                )
                if configuration is None:
                    raise ResourceNotFoundException(
                        "SlaConfiguration", str(target_id) if target_id else None
                    )

                now = self._clock()
                snapshot = await load_snapshot(uow, self._caches, organization_id, configuration, now)
                events = tracking.apply_configuration(snapshot, now, triggered_by_user_id)
                await uow.trackings.save(tracking)
                await uow.events.append(events)
                await uow.commit()
                return tracking, events

        tracking, events = await run_with_retry(attempt, self._max_retries, tracking_id)
        logger.info(
            "SLA configuration re-applied",
            extra={
                "organization_id": organization_id,
                "tracking_id": str(tracking_id),
                "configuration_id": str(tracking.configuration_id),
            }
        )
        await self.escalate(events)
        return tracking

    async def evaluate(
        self,
        organization_id: str,
        tracking_id: UUID,
        timeout: Optional[float] = None,
        escalate: bool = True
    ) -> Tuple[SlaTracking, List[SlaEvent]]:
        """
        Run breach / at-risk detection for one record in its own transaction.

        `timeout` bounds the transaction (retries included) and never the
        escalation that follows the commit. With `escalate=False` the caller
        passes the returned events to `escalate()` itself.

        Returns the record and the events newly committed for it.

        Raises:
            asyncio.TimeoutError: The transaction did not finish in `timeout`
        """
        async def attempt() -> Tuple[SlaTracking, List[SlaEvent]]:
            async with self._uow_factory() as uow:
                tracking = await self._get_tracking(uow, organization_id, tracking_id, for_update=True)
                if tracking.is_paused or tracking.is_resolved:
                    return tracking, []

                flags = (tracking.response_breached_at, tracking.resolution_breached_at)
                logged = await uow.events.logged_keys(tracking.id)
                events = tracking.evaluate(self._clock(), logged)
                if not events and flags == (tracking.response_breached_at, tracking.resolution_breached_at):
                    return tracking, []

                await uow.trackings.save(tracking)
                await uow.events.append(events)
                await uow.commit()
                return tracking, events

        transaction = run_with_retry(attempt, self._max_retries, tracking_id)
        if timeout is not None:
            transaction = asyncio.wait_for(transaction, timeout=timeout)
        tracking, events = await transaction
        for event in events:
            log = logger.info if "warning" in event.event_type.value else logger.warning
            log(
                "SLA event emitted",
                extra={
                    "organization_id": organization_id,
                    "tracking_id": str(tracking_id),
                    "event_type": event.event_type.value,
                    "sla_type": event.sla_type.value if event.sla_type else None,
                }
            )
        if escalate:
            await self.escalate(events)
        return tracking, events

    # ========== Queries ==========

    async def get_tracking(self, organization_id: str, tracking_id: UUID) -> SlaTracking:
        async with self._uow_factory() as uow:
            return await self._get_tracking(uow, organization_id, tracking_id)

    async def get_status(
        self,
        organization_id: str,
        tracking_id: UUID,
        evaluate: Optional[bool] = None
    ) -> SlaStatusView:
        """
        Derived status of a record.

        With `evaluate` (default from settings) breach detection runs first,
        so a read never reports a breach the event log does not have.
        """
        should_evaluate = self._evaluate_on_read if evaluate is None else evaluate
        if should_evaluate:
            tracking, _ = await self.evaluate(organization_id, tracking_id)
        else:
            tracking = await self.get_tracking(organization_id, tracking_id)
        return tracking.status_view(self._clock())

    async def get_events(self, organization_id: str, tracking_id: UUID) -> List[SlaEvent]:
        async with self._uow_factory() as uow:
            await self._get_tracking(uow, organization_id, tracking_id)
            return await uow.events.list_for_tracking(organization_id, tracking_id)

    async def list_for_entity(
        self,
        organization_id: str,
        domain: SlaDomain,
        entity_type: str,
        entity_id: str
    ) -> List[SlaTracking]:
        async with self._uow_factory() as uow:
            return await uow.trackings.list_for_entity(
                organization_id, SlaDomain(domain), entity_type, entity_id
            )

    async def get_metrics(
        self,
        organization_id: str,
        domain: Optional[SlaDomain] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> Dict[str, Any]:
        """
        Dashboard metrics: counts, breach rates (percent, one decimal) and
        average response / resolution times in seconds.
        """
        async with self._uow_factory() as uow:
            return await uow.trackings.get_metrics(organization_id, domain, start_date, end_date)

    async def get_metrics_by_entity_type(
        self,
        organization_id: str,
        domain: Optional[SlaDomain] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> List[Dict[str, Any]]:
        async with self._uow_factory() as uow:
            return await uow.trackings.get_metrics_by_entity_type(
                organization_id, domain, start_date, end_date
            )

    # ========== Internals ==========

    async def _active_configurations(
        self,
        uow: IUnitOfWork,
        organization_id: str,
        domain: SlaDomain
    ) -> List[SlaConfiguration]:
        async def load():
            return await uow.configurations.list(organization_id, domain, active_only=True)

        return await self._caches.configurations.get_or_load(organization_id, domain.value, load)

    async def _get_tracking(
        self,
        uow: IUnitOfWork,
        organization_id: str,
        tracking_id: UUID,
        for_update: bool = False
    ) -> SlaTracking:
        tracking = await uow.trackings.get(organization_id, tracking_id, for_update=for_update)
        if tracking is None:
            raise ResourceNotFoundException("SlaTracking", str(tracking_id))
        return tracking

    async def _transition(
        self,
        organization_id: str,
        tracking_id: UUID,
        action: str,
        mutate: Callable[[SlaTracking, datetime], List[SlaEvent]]
    ) -> SlaTracking:
        async def attempt() -> Tuple[SlaTracking, List[SlaEvent]]:
            async with self._uow_factory() as uow:
                tracking = await self._get_tracking(uow, organization_id, tracking_id, for_update=True)
                events = mutate(tracking, self._clock())
                await uow.trackings.save(tracking)
                await uow.events.append(events)
                await uow.commit()
                return tracking, events

        tracking, events = await run_with_retry(attempt, self._max_retries, tracking_id)
        logger.info(
            "SLA tracking updated",
            extra={
                "organization_id": organization_id,
                "tracking_id": str(tracking_id),
                "action": action,
                "status": tracking.status.value,
            }
        )
        await self.escalate(events)
        return tracking

    async def escalate(self, events: List[SlaEvent]) -> None:
        """Hand committed events to the escalation trigger, if one is configured."""
        if self._escalation is not None and events:
            await self._escalation.handle(events)


class SlaSweepService:
    """
    Service for periodic breach / at-risk evaluation.

    Records are fanned out over a fixed number of workers; each record is
    its own transaction, so one slow or failing record only skips itself.
    The per-record timeout covers the transaction; escalation of the
    committed events runs after it.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        tracking_service: SlaTrackingService,
        concurrency: int = 4,
        record_timeout_seconds: float = 10.0
    ):
        self._uow_factory = uow_factory
        self._tracking_service = tracking_service
        self._concurrency = max(1, concurrency)
        self._record_timeout = record_timeout_seconds

    async def run_sweep(
        self,
        domain: Optional[SlaDomain] = None,
        organization_id: Optional[str] = None
    ) -> SweepResult:
        """
        Evaluate every record that is neither paused nor resolved.

        Returns:
            Counts of evaluated, breached, warned and skipped records
        """
        domain = SlaDomain(domain) if domain else None
        with log_latency(logger, "sla_sweep", domain=domain.value if domain else None):
            async with self._uow_factory() as uow:
                candidates = await uow.trackings.list_open(domain, organization_id)

            queue: asyncio.Queue = asyncio.Queue()
            for candidate in candidates:
                queue.put_nowait(candidate)

            results = [SweepResult() for _ in range(min(self._concurrency, len(candidates)) or 1)]
            await asyncio.gather(*(self._worker(queue, result) for result in results))

        total = SweepResult()
        for result in results:
            total.merge(result)

        logger.info(
            "SLA sweep completed",
            extra={
                "domain": domain.value if domain else None,
                "organization_id": organization_id,
                "candidates": len(candidates),
                **total.to_dict(),
            }
        )
        return total

    async def _worker(self, queue: asyncio.Queue, result: SweepResult) -> None:
        while True:
            try:
                organization_id, tracking_id = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            try:
                _, events = await self._tracking_service.evaluate(
                    organization_id,
                    tracking_id,
                    timeout=self._record_timeout,
                    escalate=False
                )
            except asyncio.TimeoutError:
                result.skipped += 1
                logger.warning(
                    "SLA sweep timed out on record",
                    extra={"tracking_id": str(tracking_id), "timeout_seconds": self._record_timeout}
                )
                continue
            except Exception as e:
                result.skipped += 1
                logger.error(
                    "SLA sweep failed on record",
                    extra={"tracking_id": str(tracking_id), "error": str(e)}
                )
                continue
            finally:
                queue.task_done()

            result.evaluated += 1
            result.breached += sum(
                1 for e in events
                if e.event_type in (SlaEventType.RESPONSE_BREACHED, SlaEventType.RESOLUTION_BREACHED)
            )
            result.warned += sum(
                1 for e in events
                if e.event_type in (SlaEventType.RESPONSE_DUE_WARNING, SlaEventType.RESOLUTION_DUE_WARNING)
            )
            # committed already; delivery time is not part of the record budget
            await self._tracking_service.escalate(events)
