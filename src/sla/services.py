"""
SLA Services
============

Wiring of the SLA engine: builds the application services on top of the
SQLAlchemy unit of work, the caches, the catalog provider and the notifier.

The FastAPI app and the tests both build their services here.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import Settings
from sla.application import (
    EscalationTrigger,
    ICatalogProvider,
    INotifier,
    SlaAdminService,
    SlaCaches,
    SlaSweepService,
    SlaTrackingService,
)
from sla.application.services import Clock
from sla.domain import SlaConfigurationResolver, SweepResult
from sla.infrastructure import (
    LoggingNotifier,
    SlackNotifier,
    SQLAlchemyUnitOfWork,
    YAMLCatalogProvider,
)
from shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass
class SlaServices:
    """The engine's services, shared by every request."""

    tracking: SlaTrackingService
    sweep: SlaSweepService
    admin: SlaAdminService
    caches: SlaCaches
    notifier: INotifier

    async def run_sweep_job(self) -> SweepResult:
        """Background sweep job; never raises into the scheduler."""
        try:
            return await self.sweep.run_sweep()
        except Exception as e:
            logger.error("SLA sweep job failed", extra={"error": str(e)})
            return SweepResult()

    async def close(self) -> None:
        await self.notifier.close()


def build_notifier(settings: Settings) -> INotifier:
    """Slack when a webhook is configured, otherwise log only."""
    if settings.slack_webhook_url:
        return SlackNotifier(
            webhook_url=settings.slack_webhook_url,
            channel=settings.slack_channel,
            timeout_seconds=settings.slack_timeout_seconds,
        )
    logger.info("Slack webhook not configured, escalation notices are logged only")
    return LoggingNotifier()


def build_sla_services(
    session_maker: async_sessionmaker[AsyncSession],
    settings: Settings,
    clock: Optional[Clock] = None,
    notifier: Optional[INotifier] = None,
    catalog_provider: Optional[ICatalogProvider] = None
) -> SlaServices:
    """Build the SLA services for one application instance."""
    def uow_factory() -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_maker)

    caches = SlaCaches()
    notifier = notifier or build_notifier(settings)
    catalog_provider = catalog_provider or YAMLCatalogProvider(settings.sla_config_path)

    tracking = SlaTrackingService(
        uow_factory=uow_factory,
        resolver=SlaConfigurationResolver(),
        caches=caches,
        escalation=EscalationTrigger(notifier),
        clock=clock,
        max_conflict_retries=settings.sla_max_conflict_retries,
        evaluate_on_read=settings.sla_evaluate_on_read,
    )
    sweep = SlaSweepService(
        uow_factory=uow_factory,
        tracking_service=tracking,
        concurrency=settings.sla_sweep_concurrency,
        record_timeout_seconds=settings.sla_sweep_record_timeout_seconds,
    )
    admin = SlaAdminService(
        uow_factory=uow_factory,
        caches=caches,
        catalog_provider=catalog_provider,
        default_timezone=settings.default_timezone,
    )

    return SlaServices(
        tracking=tracking,
        sweep=sweep,
        admin=admin,
        caches=caches,
        notifier=notifier,
    )
