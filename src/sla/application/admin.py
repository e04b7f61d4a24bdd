"""
SLA Configuration Management
=============================

Thin data-management surface over schedules, holidays and configurations,
plus seeding of the default configuration catalog.

Every write invalidates the organization's cached calendars and
configurations; in-flight tracking records keep their snapshot.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from pydantic import ValidationError

from config import SlaDomain
from core import ResourceNotFoundException, ValidationException
from sla.application.cache import SlaCaches
from sla.application.services import IUnitOfWork, UnitOfWorkFactory
from sla.domain import BusinessHoursSchedule, Holiday, SeedCatalog, SlaConfiguration
from shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class ICatalogProvider(ABC):
    """Interface for the default configuration catalog."""

    @abstractmethod
    def get_catalog(self) -> SeedCatalog:
        """Get the current seed catalog."""


def _merge(model, changes: Dict[str, Any]):
    """Validated copy of a frozen model with `changes` applied."""
    try:
        return type(model).model_validate({**model.model_dump(), **changes})
    except ValidationError as e:
        raise ValidationException(
            f"Invalid {type(model).__name__} update",
            {"errors": e.errors(include_url=False, include_context=False)}
        )


class SlaAdminService:
    """Service for SLA configuration management and seeding."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        caches: SlaCaches,
        catalog_provider: ICatalogProvider,
        default_timezone: str = "UTC"
    ):
        self._uow_factory = uow_factory
        self._caches = caches
        self._catalog_provider = catalog_provider
        self._default_timezone = default_timezone

    # ========== Business hours schedules ==========

    async def create_schedule(
        self,
        organization_id: str,
        schedule: BusinessHoursSchedule
    ) -> BusinessHoursSchedule:
        schedule = schedule.model_copy(update={"organization_id": organization_id})
        async with self._uow_factory() as uow:
            if schedule.is_default:
                await self._clear_default_schedule(uow, organization_id)
            created = await uow.schedules.add(schedule)
            await uow.commit()

        self._caches.invalidate(organization_id)
        logger.info(
            "Business hours schedule created",
            extra={"organization_id": organization_id, "schedule_id": str(created.id)}
        )
        return created

    async def update_schedule(
        self,
        organization_id: str,
        schedule_id: UUID,
        changes: Dict[str, Any]
    ) -> BusinessHoursSchedule:
        async with self._uow_factory() as uow:
            existing = await uow.schedules.get(organization_id, schedule_id)
            if existing is None:
                raise ResourceNotFoundException("BusinessHoursSchedule", str(schedule_id))

            schedule = _merge(existing, changes)
            if schedule.is_default and not existing.is_default:
                await self._clear_default_schedule(uow, organization_id)
            updated = await uow.schedules.update(schedule)
            await uow.commit()

        self._caches.invalidate(organization_id)
        return updated

    async def list_schedules(self, organization_id: str) -> List[BusinessHoursSchedule]:
        async with self._uow_factory() as uow:
            return await uow.schedules.list(organization_id)

    async def get_schedule(self, organization_id: str, schedule_id: UUID) -> BusinessHoursSchedule:
        async with self._uow_factory() as uow:
            schedule = await uow.schedules.get(organization_id, schedule_id)
        if schedule is None:
            raise ResourceNotFoundException("BusinessHoursSchedule", str(schedule_id))
        return schedule

    # ========== Holidays ==========

    async def create_holiday(self, organization_id: str, holiday: Holiday) -> Holiday:
        holiday = holiday.model_copy(update={"organization_id": organization_id})
        async with self._uow_factory() as uow:
            created = await uow.schedules.add_holiday(holiday)
            await uow.commit()

        self._caches.invalidate(organization_id)
        return created

    async def update_holiday(
        self,
        organization_id: str,
        holiday_id: UUID,
        changes: Dict[str, Any]
    ) -> Holiday:
        async with self._uow_factory() as uow:
            existing = await uow.schedules.get_holiday(organization_id, holiday_id)
            if existing is None:
                raise ResourceNotFoundException("Holiday", str(holiday_id))
            updated = await uow.schedules.update_holiday(_merge(existing, changes))
            await uow.commit()

        self._caches.invalidate(organization_id)
        return updated

    async def list_holidays(self, organization_id: str) -> List[Holiday]:
        async with self._uow_factory() as uow:
            return await uow.schedules.list_holidays(organization_id)

    # ========== Configurations ==========

    async def create_configuration(
        self,
        organization_id: str,
        configuration: SlaConfiguration
    ) -> SlaConfiguration:
        """
        Create a configuration.

        Raises:
            ConfigurationException: Targets cannot produce due dates
            ResourceNotFoundException: Unknown business hours schedule
        """
        configuration = configuration.model_copy(update={"organization_id": organization_id})
        configuration.validate_targets()

        async with self._uow_factory() as uow:
            await self._check_schedule(uow, organization_id, configuration.business_hours_schedule_id)
            if configuration.is_default:
                await self._clear_default_configuration(uow, organization_id, configuration.domain)
            created = await uow.configurations.add(configuration)
            await uow.commit()

        self._caches.invalidate(organization_id)
        logger.info(
            "SLA configuration created",
            extra={
                "organization_id": organization_id,
                "configuration_id": str(created.id),
                "domain": created.domain.value,
            }
        )
        return created

    async def update_configuration(
        self,
        organization_id: str,
        configuration_id: UUID,
        changes: Dict[str, Any]
    ) -> SlaConfiguration:
        async with self._uow_factory() as uow:
            existing = await uow.configurations.get(organization_id, configuration_id)
            if existing is None:
                raise ResourceNotFoundException("SlaConfiguration", str(configuration_id))

            configuration = _merge(existing, changes)
            configuration.validate_targets()
            await self._check_schedule(uow, organization_id, configuration.business_hours_schedule_id)
            if configuration.is_default and not existing.is_default:
                await self._clear_default_configuration(uow, organization_id, configuration.domain)
            updated = await uow.configurations.update(configuration)
            await uow.commit()

        self._caches.invalidate(organization_id)
        logger.info(
            "SLA configuration updated",
            extra={"organization_id": organization_id, "configuration_id": str(configuration_id)}
        )
        return updated

    async def get_configuration(self, organization_id: str, configuration_id: UUID) -> SlaConfiguration:
        async with self._uow_factory() as uow:
            configuration = await uow.configurations.get(organization_id, configuration_id)
        if configuration is None:
            raise ResourceNotFoundException("SlaConfiguration", str(configuration_id))
        return configuration

    async def list_configurations(
        self,
        organization_id: str,
        domain: Optional[SlaDomain] = None,
        is_active: Optional[bool] = None
    ) -> List[SlaConfiguration]:
        async with self._uow_factory() as uow:
            configurations = await uow.configurations.list(organization_id, domain)
        if is_active is not None:
            configurations = [c for c in configurations if c.is_active == is_active]
        return configurations

    async def get_default_configuration(
        self,
        organization_id: str,
        domain: SlaDomain
    ) -> Optional[SlaConfiguration]:
        """The active default, else the active configuration with the lowest priority order."""
        async with self._uow_factory() as uow:
            active = await uow.configurations.list(organization_id, SlaDomain(domain), active_only=True)
        for configuration in active:
            if configuration.is_default:
                return configuration
        return active[0] if active else None

    async def has_configurations(
        self,
        organization_id: str,
        domain: Optional[SlaDomain] = None
    ) -> Dict[str, Any]:
        async with self._uow_factory() as uow:
            count = await uow.configurations.count(organization_id, domain)
        return {"has_configurations": count > 0, "count": count}

    # ========== Seeding ==========

    async def seed_default_configurations(
        self,
        organization_id: str,
        domains: Optional[Iterable[SlaDomain]] = None,
        skip_existing: bool = True
    ) -> Dict[str, Any]:
        """
        Create the catalog's default configurations for an organization.

        Business-hours targets need a calendar, so the organization's default
        schedule is attached to every seeded configuration; a Monday to Friday
        schedule is created first when the organization has none.
        """
        catalog = self._catalog_provider.get_catalog()
        targets = [SlaDomain(d) for d in domains] if domains else list(SlaDomain)
        results = []

        async with self._uow_factory() as uow:
            schedule = None
            for domain in targets:
                if skip_existing and await uow.configurations.count(organization_id, domain) > 0:
                    results.append({"domain": domain.value, "created": 0, "skipped": True})
                    continue

                seeds = catalog.for_domain(domain)
                if seeds and schedule is None:
                    schedule = await self._ensure_default_schedule(uow, organization_id, catalog)

                for seed in seeds:
                    configuration = SlaConfiguration(
                        organization_id=organization_id,
                        domain=domain,
                        business_hours_schedule_id=schedule.id,
                        is_active=True,
                        **seed.model_dump(),
                    )
                    configuration.validate_targets()
                    await uow.configurations.add(configuration)
                results.append({"domain": domain.value, "created": len(seeds), "skipped": False})

            await uow.commit()

        self._caches.invalidate(organization_id)
        total = sum(r["created"] for r in results)
        logger.info(
            "Default SLA configurations seeded",
            extra={"organization_id": organization_id, "total_created": total}
        )
        return {
            "success": True,
            "organization_id": organization_id,
            "results": results,
            "total_created": total,
        }

    # ========== Internals ==========

    async def _ensure_default_schedule(
        self,
        uow: IUnitOfWork,
        organization_id: str,
        catalog: SeedCatalog
    ) -> BusinessHoursSchedule:
        schedule = await uow.schedules.get_default(organization_id)
        if schedule is not None:
            return schedule

        schedule = await uow.schedules.add(
            BusinessHoursSchedule.standard(
                name="Standard Business Hours",
                timezone=self._default_timezone,
                start=catalog.default_schedule_start,
                end=catalog.default_schedule_end,
                organization_id=organization_id,
                is_default=True,
            )
        )
        logger.info(
            "Default business hours schedule created",
            extra={"organization_id": organization_id, "timezone": self._default_timezone}
        )
        return schedule

    async def _check_schedule(
        self,
        uow: IUnitOfWork,
        organization_id: str,
        schedule_id: Optional[UUID]
    ) -> None:
        if schedule_id is not None and await uow.schedules.get(organization_id, schedule_id) is None:
            raise ResourceNotFoundException("BusinessHoursSchedule", str(schedule_id))

    async def _clear_default_schedule(self, uow: IUnitOfWork, organization_id: str) -> None:
        for existing in await uow.schedules.list(organization_id):
            if existing.is_default:
                await uow.schedules.update(existing.model_copy(update={"is_default": False}))

    async def _clear_default_configuration(
        self,
        uow: IUnitOfWork,
        organization_id: str,
        domain: SlaDomain
    ) -> None:
        for existing in await uow.configurations.list(organization_id, domain):
            if existing.is_default:
                await uow.configurations.update(existing.model_copy(update={"is_default": False}))
