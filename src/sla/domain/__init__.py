"""
SLA Domain Layer
================

Domain layer for the SLA engine.

Contains:
- Entities: Tracking record state machine, events and read models
- Value Objects: Schedules, holidays, configurations, snapshots
- Domain Services: BusinessHoursCalendar, DeadlineCalculator,
  SlaConfigurationResolver

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from sla.domain.calendar import BusinessHoursCalendar, as_utc
from sla.domain.deadlines import DeadlineCalculator
from sla.domain.entities import (
    Active,
    ClockView,
    Paused,
    Resolved,
    Responded,
    SlaEvent,
    SlaStatusView,
    SlaTracking,
    SweepResult,
    TrackingState,
    due_epoch,
)
from sla.domain.resolver import MatchPredicate, SlaConfigurationResolver, criteria_predicate
from sla.domain.value_objects import (
    BusinessHoursSchedule,
    ConfigurationSnapshot,
    DayHours,
    DefaultConfigurationSeed,
    Holiday,
    SeedCatalog,
    SlaConfiguration,
    SlaTarget,
)

__all__ = [
    # Entities
    "Active",
    "Paused",
    "Responded",
    "Resolved",
    "TrackingState",
    "SlaTracking",
    "SlaEvent",
    "SlaStatusView",
    "ClockView",
    "SweepResult",
    "due_epoch",
    # Value Objects
    "DayHours",
    "BusinessHoursSchedule",
    "Holiday",
    "SlaTarget",
    "SlaConfiguration",
    "ConfigurationSnapshot",
    "DefaultConfigurationSeed",
    "SeedCatalog",
    # Domain Services
    "BusinessHoursCalendar",
    "DeadlineCalculator",
    "SlaConfigurationResolver",
    "MatchPredicate",
    "criteria_predicate",
    "as_utc",
]
