"""
SLA Application Layer
======================

Application layer for the SLA engine.

Contains:
- Services: Tracking lifecycle, sweep, configuration management
- Escalation: Hands committed events to a notifier
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from sla.application.admin import ICatalogProvider, SlaAdminService
from sla.application.cache import SlaCaches, TenantScopedCache
from sla.application.defaults import DEFAULT_SEED_CATALOG
from sla.application.escalation import EscalationNotice, EscalationTrigger, INotifier
from sla.application.services import (
    IConfigurationRepository,
    IEventRepository,
    IScheduleRepository,
    ITrackingRepository,
    IUnitOfWork,
    SlaSweepService,
    SlaTrackingService,
    UnitOfWorkFactory,
    run_with_retry,
)

__all__ = [
    # Services
    "SlaTrackingService",
    "SlaSweepService",
    "SlaAdminService",
    "run_with_retry",
    # Escalation
    "EscalationTrigger",
    "EscalationNotice",
    "INotifier",
    # Caches and catalog
    "SlaCaches",
    "TenantScopedCache",
    "DEFAULT_SEED_CATALOG",
    "ICatalogProvider",
    # Repository Interfaces
    "ITrackingRepository",
    "IEventRepository",
    "IConfigurationRepository",
    "IScheduleRepository",
    "IUnitOfWork",
    "UnitOfWorkFactory",
]
