"""
SLA Infrastructure Repositories
=================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database.
"""

from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple
from uuid import UUID, uuid4

import yaml
from pydantic import ValidationError
from sqlalchemy import and_, case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import SLAType, SlaDomain, SlaEventType, TrackingStatus
from core import ConcurrentModificationException, ConfigurationException, RepositoryException
from sla.application import (
    DEFAULT_SEED_CATALOG,
    ICatalogProvider,
    IConfigurationRepository,
    IEventRepository,
    IScheduleRepository,
    ITrackingRepository,
    IUnitOfWork,
)
from sla.domain import (
    Active,
    BusinessHoursSchedule,
    ConfigurationSnapshot,
    Holiday,
    Paused,
    Resolved,
    Responded,
    SeedCatalog,
    SlaConfiguration,
    SlaEvent,
    SlaTracking,
)
from sla.domain.entities import DedupeKey
from sla.infrastructure.models import (
    BusinessHoursScheduleModel,
    HolidayModel,
    SlaConfigurationModel,
    SlaEventModel,
    SlaTrackingModel,
)
from shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

_OPEN_STATUSES = (TrackingStatus.ACTIVE.value, TrackingStatus.RESPONDED.value)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _breach_rate(breached: int, total: int) -> float:
    return round(breached / total * 100, 1) if total else 0.0


def _rounded(value: Any) -> Optional[int]:
    return round(float(value)) if value is not None else None


# ========== Mapping ==========

def _schedule_to_domain(model: BusinessHoursScheduleModel) -> BusinessHoursSchedule:
    return BusinessHoursSchedule(
        id=model.id,
        organization_id=model.organization_id,
        name=model.name,
        timezone=model.timezone,
        weekly_hours=model.weekly_hours,
        is_default=model.is_default,
    )


def _weekly_hours_to_json(schedule: BusinessHoursSchedule) -> Dict[str, Any]:
    return {
        day: {"start": hours.start.isoformat(), "end": hours.end.isoformat()} if hours else None
        for day, hours in schedule.weekly_hours.items()
    }


def _holiday_to_domain(model: HolidayModel) -> Holiday:
    return Holiday(
        id=model.id,
        organization_id=model.organization_id,
        name=model.name,
        date=model.date,
        is_recurring=model.is_recurring,
        description=model.description,
    )


_CONFIGURATION_FIELDS = (
    "domain", "name", "description",
    "response_target_value", "response_target_unit",
    "resolution_target_value", "resolution_target_unit",
    "at_risk_threshold_percent", "escalate_on_breach", "escalate_to_user_id",
    "business_hours_schedule_id", "is_default", "priority_order", "is_active",
    "match_criteria",
)


def _configuration_to_domain(model: SlaConfigurationModel) -> SlaConfiguration:
    return SlaConfiguration(
        id=model.id,
        organization_id=model.organization_id,
        **{name: getattr(model, name) for name in _CONFIGURATION_FIELDS},
    )


def _configuration_values(configuration: SlaConfiguration) -> Dict[str, Any]:
    data = configuration.model_dump(mode="json", include=set(_CONFIGURATION_FIELDS))
    data["business_hours_schedule_id"] = configuration.business_hours_schedule_id
    return data


def _tracking_state(model: SlaTrackingModel):
    """Rebuild the lifecycle variant, rejecting rows that break its invariants."""
    status = model.status
    pause_started = model.current_pause_started_at

    if status == TrackingStatus.PAUSED.value:
        if pause_started is None:
            raise RepositoryException(
                "Paused tracking record without pause start",
                {"tracking_id": str(model.id)}
            )
        return Paused(pause_started_at=pause_started)

    if pause_started is not None:
        raise RepositoryException(
            "Tracking record has a pause start but is not paused",
            {"tracking_id": str(model.id), "status": status}
        )
    if status == TrackingStatus.ACTIVE.value:
        return Active()
    if status == TrackingStatus.RESPONDED.value:
        if model.responded_at is None:
            raise RepositoryException(
                "Responded tracking record without response time",
                {"tracking_id": str(model.id)}
            )
        return Responded()
    if status == TrackingStatus.RESOLVED.value:
        if model.resolved_at is None:
            raise RepositoryException(
                "Resolved tracking record without resolution time",
                {"tracking_id": str(model.id)}
            )
        return Resolved(resolved_at=model.resolved_at)

    raise RepositoryException(
        f"Unknown tracking status: {status}",
        {"tracking_id": str(model.id)}
    )


def _tracking_to_domain(model: SlaTrackingModel) -> SlaTracking:
    try:
        snapshot = ConfigurationSnapshot.model_validate(model.configuration_snapshot)
    except ValidationError as e:
        raise RepositoryException(
            "Corrupt configuration snapshot",
            {"tracking_id": str(model.id), "error": str(e)}
        )

    return SlaTracking(
        id=model.id,
        organization_id=model.organization_id,
        domain=SlaDomain(model.domain),
        entity_type=model.entity_type,
        entity_id=model.entity_id,
        configuration_id=model.configuration_id,
        snapshot=snapshot,
        started_at=model.started_at,
        state=_tracking_state(model),
        response_due_at=model.response_due_at,
        resolution_due_at=model.resolution_due_at,
        response_target_seconds=model.response_target_seconds,
        resolution_target_seconds=model.resolution_target_seconds,
        responded_at=model.responded_at,
        response_time_seconds=model.response_time_seconds,
        resolution_time_seconds=model.resolution_time_seconds,
        cumulative_paused_seconds=model.cumulative_paused_seconds,
        response_breached_at=model.response_breached_at,
        resolution_breached_at=model.resolution_breached_at,
        version_id=model.version_id,
    )


def _tracking_values(tracking: SlaTracking) -> Dict[str, Any]:
    return {
        "configuration_id": tracking.configuration_id,
        "status": tracking.status.value,
        "response_due_at": tracking.response_due_at,
        "resolution_due_at": tracking.resolution_due_at,
        "responded_at": tracking.responded_at,
        "resolved_at": tracking.resolved_at,
        "response_target_seconds": tracking.response_target_seconds,
        "resolution_target_seconds": tracking.resolution_target_seconds,
        "response_time_seconds": tracking.response_time_seconds,
        "resolution_time_seconds": tracking.resolution_time_seconds,
        "cumulative_paused_seconds": tracking.cumulative_paused_seconds,
        "current_pause_started_at": tracking.current_pause_started_at,
        "response_breached_at": tracking.response_breached_at,
        "resolution_breached_at": tracking.resolution_breached_at,
        "configuration_snapshot": tracking.snapshot.model_dump(mode="json"),
    }


def _event_to_domain(model: SlaEventModel) -> SlaEvent:
    return SlaEvent(
        id=model.id,
        organization_id=model.organization_id,
        tracking_id=model.tracking_id,
        event_type=SlaEventType(model.event_type),
        occurred_at=model.occurred_at,
        payload=model.payload or {},
        sla_type=SLAType(model.sla_type) if model.sla_type else None,
        due_epoch=model.due_epoch,
        triggered_by_user_id=model.triggered_by_user_id,
    )


# ========== Repositories ==========

class SQLAlchemyTrackingRepository(ITrackingRepository):
    """
    SQLAlchemy implementation of the tracking repository.

    Writes are conditional on `version_id`; a row changed by someone else
    since it was read matches nothing and surfaces as a conflict.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(
        self,
        organization_id: str,
        tracking_id: UUID,
        for_update: bool = False
    ) -> Optional[SlaTracking]:
        stmt = select(SlaTrackingModel).where(
            SlaTrackingModel.id == tracking_id,
            SlaTrackingModel.organization_id == organization_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        stmt = stmt.execution_options(populate_existing=True)

        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return _tracking_to_domain(model) if model else None

    async def add(self, tracking: SlaTracking) -> None:
        model = SlaTrackingModel(
            id=tracking.id,
            organization_id=tracking.organization_id,
            domain=tracking.domain.value,
            entity_type=tracking.entity_type,
            entity_id=tracking.entity_id,
            started_at=tracking.started_at,
            version_id=tracking.version_id,
            **_tracking_values(tracking),
        )
        self._session.add(model)
        await self._session.flush()

    async def save(self, tracking: SlaTracking) -> None:
        stmt = (
            update(SlaTrackingModel)
            .where(
                SlaTrackingModel.id == tracking.id,
                SlaTrackingModel.organization_id == tracking.organization_id,
                SlaTrackingModel.version_id == tracking.version_id,
            )
            .values(
                **_tracking_values(tracking),
                version_id=tracking.version_id + 1,
                updated_at=_utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            raise ConcurrentModificationException(
                str(tracking.id),
                {"expected_version": tracking.version_id}
            )
        tracking.version_id += 1

    async def list_open(
        self,
        domain: Optional[SlaDomain] = None,
        organization_id: Optional[str] = None
    ) -> List[Tuple[str, UUID]]:
        stmt = select(SlaTrackingModel.organization_id, SlaTrackingModel.id).where(
            SlaTrackingModel.status.in_(_OPEN_STATUSES)
        )
        if domain is not None:
            stmt = stmt.where(SlaTrackingModel.domain == SlaDomain(domain).value)
        if organization_id is not None:
            stmt = stmt.where(SlaTrackingModel.organization_id == organization_id)
        stmt = stmt.order_by(SlaTrackingModel.started_at.asc())

        result = await self._session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def list_for_entity(
        self,
        organization_id: str,
        domain: SlaDomain,
        entity_type: str,
        entity_id: str
    ) -> List[SlaTracking]:
        stmt = (
            select(SlaTrackingModel)
            .where(
                SlaTrackingModel.organization_id == organization_id,
                SlaTrackingModel.domain == SlaDomain(domain).value,
                SlaTrackingModel.entity_type == entity_type,
                SlaTrackingModel.entity_id == entity_id,
            )
            .order_by(SlaTrackingModel.started_at.desc())
        )
        result = await self._session.execute(stmt)
        return [_tracking_to_domain(m) for m in result.scalars().all()]

    def _metric_conditions(
        self,
        organization_id: str,
        domain: Optional[SlaDomain],
        start_date: Optional[date],
        end_date: Optional[date]
    ) -> list:
        conditions = [SlaTrackingModel.organization_id == organization_id]
        if domain is not None:
            conditions.append(SlaTrackingModel.domain == SlaDomain(domain).value)
        if start_date is not None:
            conditions.append(SlaTrackingModel.started_at >= _day_start(start_date))
        if end_date is not None:
            # end_date is inclusive
            conditions.append(SlaTrackingModel.started_at < _day_start(end_date + timedelta(days=1)))
        return conditions

    @staticmethod
    def _aggregates() -> list:
        def flagged(condition):
            return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

        return [
            func.count(SlaTrackingModel.id).label("total"),
            flagged(SlaTrackingModel.response_breached_at.is_not(None)).label("response_breached"),
            flagged(SlaTrackingModel.resolution_breached_at.is_not(None)).label("resolution_breached"),
            flagged(SlaTrackingModel.status == TrackingStatus.PAUSED.value).label("currently_paused"),
            flagged(SlaTrackingModel.status == TrackingStatus.RESOLVED.value).label("resolved"),
            func.avg(SlaTrackingModel.response_time_seconds).label("avg_response"),
            func.avg(SlaTrackingModel.resolution_time_seconds).label("avg_resolution"),
        ]

    @staticmethod
    def _metrics_row(row) -> Dict[str, Any]:
        total = int(row.total or 0)
        response_breached = int(row.response_breached or 0)
        resolution_breached = int(row.resolution_breached or 0)
        return {
            "total": total,
            "response_breached": response_breached,
            "resolution_breached": resolution_breached,
            "currently_paused": int(row.currently_paused or 0),
            "resolved": int(row.resolved or 0),
            "response_breach_rate": _breach_rate(response_breached, total),
            "resolution_breach_rate": _breach_rate(resolution_breached, total),
            "avg_response_time_seconds": _rounded(row.avg_response),
            "avg_resolution_time_seconds": _rounded(row.avg_resolution),
        }

    async def get_metrics(
        self,
        organization_id: str,
        domain: Optional[SlaDomain] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> Dict[str, Any]:
        stmt = select(*self._aggregates()).where(
            and_(*self._metric_conditions(organization_id, domain, start_date, end_date))
        )
        result = await self._session.execute(stmt)
        return self._metrics_row(result.one())

    async def get_metrics_by_entity_type(
        self,
        organization_id: str,
        domain: Optional[SlaDomain] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> List[Dict[str, Any]]:
        stmt = (
            select(SlaTrackingModel.entity_type, *self._aggregates())
            .where(and_(*self._metric_conditions(organization_id, domain, start_date, end_date)))
            .group_by(SlaTrackingModel.entity_type)
            .order_by(SlaTrackingModel.entity_type)
        )
        result = await self._session.execute(stmt)

        rows = []
        for row in result.all():
            metrics = self._metrics_row(row)
            metrics.pop("currently_paused")
            rows.append({"entity_type": row.entity_type, **metrics})
        return rows


class SQLAlchemyEventRepository(IEventRepository):
    """
    SQLAlchemy implementation of the SLA event log.

    Insert-only; the unique constraint on the de-duplication key turns a
    racing duplicate into a conflict for the whole unit of work.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def append(self, events: Sequence[SlaEvent]) -> None:
        if not events:
            return

        for event in events:
            self._session.add(SlaEventModel(
                id=event.id,
                organization_id=event.organization_id,
                tracking_id=event.tracking_id,
                event_type=SlaEventType(event.event_type).value,
                sla_type=SLAType(event.sla_type).value if event.sla_type else None,
                due_epoch=event.due_epoch,
                payload=event.payload,
                occurred_at=event.occurred_at,
                triggered_by_user_id=event.triggered_by_user_id,
            ))

        try:
            await self._session.flush()
        except IntegrityError as e:
            raise ConcurrentModificationException(
                str(events[0].tracking_id),
                {"reason": "duplicate event", "error": str(e.orig)}
            )

    async def list_for_tracking(self, organization_id: str, tracking_id: UUID) -> List[SlaEvent]:
        stmt = (
            select(SlaEventModel)
            .where(
                SlaEventModel.tracking_id == tracking_id,
                SlaEventModel.organization_id == organization_id,
            )
            .order_by(SlaEventModel.occurred_at.desc())
        )
        result = await self._session.execute(stmt)
        return [_event_to_domain(m) for m in result.scalars().all()]

    async def logged_keys(self, tracking_id: UUID) -> Set[DedupeKey]:
        stmt = select(
            SlaEventModel.event_type, SlaEventModel.sla_type, SlaEventModel.due_epoch
        ).where(
            SlaEventModel.tracking_id == tracking_id,
            SlaEventModel.due_epoch.is_not(None),
        )
        result = await self._session.execute(stmt)
        return {
            (str(tracking_id), event_type, sla_type or "", int(epoch))
            for event_type, sla_type, epoch in result.all()
        }


class SQLAlchemyConfigurationRepository(IConfigurationRepository):
    """SQLAlchemy implementation of configuration repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, organization_id: str, configuration_id: UUID) -> Optional[SlaConfigurationModel]:
        stmt = select(SlaConfigurationModel).where(
            SlaConfigurationModel.id == configuration_id,
            SlaConfigurationModel.organization_id == organization_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, organization_id: str, configuration_id: UUID) -> Optional[SlaConfiguration]:
        model = await self._get_model(organization_id, configuration_id)
        return _configuration_to_domain(model) if model else None

    async def list(
        self,
        organization_id: str,
        domain: Optional[SlaDomain] = None,
        active_only: bool = False
    ) -> List[SlaConfiguration]:
        stmt = select(SlaConfigurationModel).where(
            SlaConfigurationModel.organization_id == organization_id
        )
        if domain is not None:
            stmt = stmt.where(SlaConfigurationModel.domain == SlaDomain(domain).value)
        if active_only:
            stmt = stmt.where(SlaConfigurationModel.is_active.is_(True))
        stmt = stmt.order_by(SlaConfigurationModel.priority_order.asc(), SlaConfigurationModel.name.asc())

        result = await self._session.execute(stmt)
        return [_configuration_to_domain(m) for m in result.scalars().all()]

    async def add(self, configuration: SlaConfiguration) -> SlaConfiguration:
        model = SlaConfigurationModel(
            id=configuration.id or uuid4(),
            organization_id=configuration.organization_id,
            **_configuration_values(configuration),
        )
        self._session.add(model)
        await self._session.flush()
        return _configuration_to_domain(model)

    async def update(self, configuration: SlaConfiguration) -> SlaConfiguration:
        model = await self._get_model(configuration.organization_id, configuration.id)
        if model is None:
            raise RepositoryException(f"SLA configuration {configuration.id} not found")

        for name, value in _configuration_values(configuration).items():
            setattr(model, name, value)
        model.updated_at = _utcnow()
        await self._session.flush()
        return _configuration_to_domain(model)

    async def count(self, organization_id: str, domain: Optional[SlaDomain] = None) -> int:
        stmt = select(func.count(SlaConfigurationModel.id)).where(
            SlaConfigurationModel.organization_id == organization_id
        )
        if domain is not None:
            stmt = stmt.where(SlaConfigurationModel.domain == SlaDomain(domain).value)
        result = await self._session.execute(stmt)
        return int(result.scalar_one())


class SQLAlchemyScheduleRepository(IScheduleRepository):
    """SQLAlchemy implementation of schedule and holiday repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, organization_id: str, schedule_id: UUID) -> Optional[BusinessHoursScheduleModel]:
        stmt = select(BusinessHoursScheduleModel).where(
            BusinessHoursScheduleModel.id == schedule_id,
            BusinessHoursScheduleModel.organization_id == organization_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, organization_id: str, schedule_id: UUID) -> Optional[BusinessHoursSchedule]:
        model = await self._get_model(organization_id, schedule_id)
        return _schedule_to_domain(model) if model else None

    async def get_default(self, organization_id: str) -> Optional[BusinessHoursSchedule]:
        stmt = (
            select(BusinessHoursScheduleModel)
            .where(
                BusinessHoursScheduleModel.organization_id == organization_id,
                BusinessHoursScheduleModel.is_default.is_(True),
            )
            .order_by(BusinessHoursScheduleModel.created_at.asc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return _schedule_to_domain(model) if model else None

    async def list(self, organization_id: str) -> List[BusinessHoursSchedule]:
        stmt = (
            select(BusinessHoursScheduleModel)
            .where(BusinessHoursScheduleModel.organization_id == organization_id)
            .order_by(BusinessHoursScheduleModel.name.asc())
        )
        result = await self._session.execute(stmt)
        return [_schedule_to_domain(m) for m in result.scalars().all()]

    async def add(self, schedule: BusinessHoursSchedule) -> BusinessHoursSchedule:
        model = BusinessHoursScheduleModel(
            id=schedule.id or uuid4(),
            organization_id=schedule.organization_id,
            name=schedule.name,
            timezone=schedule.timezone,
            weekly_hours=_weekly_hours_to_json(schedule),
            is_default=schedule.is_default,
        )
        self._session.add(model)
        await self._session.flush()
        return _schedule_to_domain(model)

    async def update(self, schedule: BusinessHoursSchedule) -> BusinessHoursSchedule:
        model = await self._get_model(schedule.organization_id, schedule.id)
        if model is None:
            raise RepositoryException(f"Business hours schedule {schedule.id} not found")

        model.name = schedule.name
        model.timezone = schedule.timezone
        model.weekly_hours = _weekly_hours_to_json(schedule)
        model.is_default = schedule.is_default
        model.updated_at = _utcnow()
        await self._session.flush()
        return _schedule_to_domain(model)

    async def _get_holiday_model(self, organization_id: str, holiday_id: UUID) -> Optional[HolidayModel]:
        stmt = select(HolidayModel).where(
            HolidayModel.id == holiday_id,
            HolidayModel.organization_id == organization_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_holidays(self, organization_id: str) -> List[Holiday]:
        stmt = (
            select(HolidayModel)
            .where(HolidayModel.organization_id == organization_id)
            .order_by(HolidayModel.date.asc())
        )
        result = await self._session.execute(stmt)
        return [_holiday_to_domain(m) for m in result.scalars().all()]

    async def get_holiday(self, organization_id: str, holiday_id: UUID) -> Optional[Holiday]:
        model = await self._get_holiday_model(organization_id, holiday_id)
        return _holiday_to_domain(model) if model else None

    async def add_holiday(self, holiday: Holiday) -> Holiday:
        model = HolidayModel(
            id=holiday.id or uuid4(),
            organization_id=holiday.organization_id,
            name=holiday.name,
            date=holiday.date,
            is_recurring=holiday.is_recurring,
            description=holiday.description,
        )
        self._session.add(model)
        await self._session.flush()
        return _holiday_to_domain(model)

    async def update_holiday(self, holiday: Holiday) -> Holiday:
        model = await self._get_holiday_model(holiday.organization_id, holiday.id)
        if model is None:
            raise RepositoryException(f"Holiday {holiday.id} not found")

        model.name = holiday.name
        model.date = holiday.date
        model.is_recurring = holiday.is_recurring
        model.description = holiday.description
        await self._session.flush()
        return _holiday_to_domain(model)


class SQLAlchemyUnitOfWork(IUnitOfWork):
    """
    Unit of work over one AsyncSession.

    Usage:
        async with SQLAlchemyUnitOfWork(session_maker) as uow:
            tracking = await uow.trackings.get(org_id, tracking_id)
            ...
            await uow.commit()
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._session: Optional[AsyncSession] = None

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        self._session = self._session_factory()
        self.trackings = SQLAlchemyTrackingRepository(self._session)
        self.events = SQLAlchemyEventRepository(self._session)
        self.configurations = SQLAlchemyConfigurationRepository(self._session)
        self.schedules = SQLAlchemyScheduleRepository(self._session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await self.rollback()
        finally:
            await self._session.close()
            self._session = None

    async def commit(self) -> None:
        try:
            await self._session.commit()
        except IntegrityError as e:
            await self._session.rollback()
            raise ConcurrentModificationException(
                "unknown",
                {"reason": "constraint violation on commit", "error": str(e.orig)}
            )

    async def rollback(self) -> None:
        if self._session is not None:
            await self._session.rollback()


# ========== Seed catalog ==========

class YAMLCatalogProvider(ICatalogProvider):
    """
    Seed catalog provider that loads from YAML.

    Falls back to the built-in catalog when the file does not exist. The file
    is re-read when its modification time changes.
    """

    def __init__(self, config_path: Path):
        self._config_path = Path(config_path)
        self._catalog: Optional[SeedCatalog] = None
        self._loaded_mtime: Optional[float] = None
        self._load_catalog()

    def _current_mtime(self) -> Optional[float]:
        try:
            return self._config_path.stat().st_mtime
        except FileNotFoundError:
            return None

    def _load_catalog(self) -> None:
        """Load catalog from YAML file."""
        mtime = self._current_mtime()
        if mtime is None:
            logger.info(
                "SLA catalog file not found, using built-in defaults",
                extra={"path": str(self._config_path)}
            )
            self._catalog = DEFAULT_SEED_CATALOG
            self._loaded_mtime = None
            return

        try:
            with open(self._config_path, "r") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ConfigurationException(
                    f"SLA catalog file must be a mapping: {self._config_path}",
                    {"path": str(self._config_path)}
                )
            schedule = data.get("default_schedule") or {}
            if not isinstance(schedule, dict):
                raise ConfigurationException(
                    f"default_schedule must be a mapping: {self._config_path}",
                    {"path": str(self._config_path)}
                )
            self._catalog = SeedCatalog(
                default_schedule_start=schedule.get("start", "09:00"),
                default_schedule_end=schedule.get("end", "17:00"),
                domains=data.get("domains") or {},
            )
        except (yaml.YAMLError, ValidationError) as e:
            raise ConfigurationException(
                f"Invalid SLA catalog file: {self._config_path}",
                {"error": str(e)}
            )
        self._loaded_mtime = mtime

        logger.info(
            "SLA catalog loaded",
            extra={
                "path": str(self._config_path),
                "domains": [d.value for d in self._catalog.domains],
            }
        )

    def get_catalog(self) -> SeedCatalog:
        """Current seed catalog, reloaded first if the file changed."""
        if self._current_mtime() != self._loaded_mtime:
            self.reload()
        return self._catalog

    def reload(self) -> bool:
        """Reload catalog from file; the previous catalog is kept on failure."""
        previous = self._catalog
        try:
            self._load_catalog()
            return True
        except ConfigurationException as e:
            logger.error("Failed to reload SLA catalog", extra={"error": e.message})
            self._catalog = previous
            # don't retry a broken file until it changes again
            self._loaded_mtime = self._current_mtime()
            return False
