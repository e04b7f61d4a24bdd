"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for the SLA engine:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer and unit of work
- External: External service integrations (Slack, scheduler)
"""

from sla.infrastructure.external import (
    CircuitBreaker,
    LoggingNotifier,
    SLAScheduler,
    SlackNotifier,
)
from sla.infrastructure.models import (
    BusinessHoursScheduleModel,
    HolidayModel,
    SlaConfigurationModel,
    SlaEventModel,
    SlaTrackingModel,
)
from sla.infrastructure.repositories import (
    SQLAlchemyConfigurationRepository,
    SQLAlchemyEventRepository,
    SQLAlchemyScheduleRepository,
    SQLAlchemyTrackingRepository,
    SQLAlchemyUnitOfWork,
    YAMLCatalogProvider,
)

__all__ = [
    "BusinessHoursScheduleModel",
    "HolidayModel",
    "SlaConfigurationModel",
    "SlaEventModel",
    "SlaTrackingModel",
    "SQLAlchemyTrackingRepository",
    "SQLAlchemyEventRepository",
    "SQLAlchemyConfigurationRepository",
    "SQLAlchemyScheduleRepository",
    "SQLAlchemyUnitOfWork",
    "YAMLCatalogProvider",
    "CircuitBreaker",
    "SlackNotifier",
    "LoggingNotifier",
    "SLAScheduler",
]
