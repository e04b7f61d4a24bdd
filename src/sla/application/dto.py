"""
SLA Application DTOs
=====================

Data Transfer Objects for SLA API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses. Following YAGNI - only what's needed.
"""

from datetime import date as date_type, datetime, time
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ValidationError, field_validator

from config import SlaDomain, TargetUnit
from core import ValidationException
from sla.domain import (
    BusinessHoursSchedule,
    ClockView,
    Holiday,
    SlaConfiguration,
    SlaEvent,
    SlaStatusView,
)


# ========== Type Aliases for Literals ==========
DomainStr = Literal["support", "warranty", "jobs"]
SLATypeStr = Literal["response", "resolution"]
SLAStateStr = Literal["on_track", "at_risk", "breached", "met", "not_applicable"]
TrackingStatusStr = Literal["active", "paused", "responded", "resolved", "breached"]


def _require_aware(v: Optional[datetime]) -> Optional[datetime]:
    if v is not None and (v.tzinfo is None or v.utcoffset() is None):
        raise ValueError("timestamp must include a timezone offset")
    return v


def _to_domain(model_cls, data: Dict[str, Any]):
    """Build a domain value object, reporting domain validation as a 422."""
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        raise ValidationException(
            f"Invalid {model_cls.__name__}",
            {"errors": e.errors(include_url=False, include_context=False)}
        )


# ========== Tracking Request DTOs ==========

class StartTrackingRequest(BaseModel):
    """Request model for starting SLA tracking on an entity."""
    domain: DomainStr = Field(..., description="Business domain")
    entity_type: str = Field(..., min_length=1, max_length=100, description="Entity type, e.g. issue")
    entity_id: str = Field(..., min_length=1, max_length=255, description="Entity identifier")
    configuration_id: Optional[UUID] = Field(None, description="Explicitly assigned configuration")
    entity_attributes: Dict[str, Any] = Field(
        default_factory=dict,
        description="Attributes matched against configuration criteria"
    )
    started_at: Optional[datetime] = Field(None, description="Clock start, defaults to now")
    triggered_by_user_id: Optional[str] = None

    @field_validator("started_at")
    @classmethod
    def validate_started_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Reject naive timestamps; the engine works on instants."""
        return _require_aware(v)


class PauseRequest(BaseModel):
    """Request model for pausing SLA tracking."""
    reason: Optional[str] = Field(None, max_length=500, description="Why the clock is paused")
    triggered_by_user_id: Optional[str] = None


class ActorRequest(BaseModel):
    """Request model for actions that always happen now."""
    triggered_by_user_id: Optional[str] = None


class TransitionRequest(BaseModel):
    """Request model for resume / respond / resolve."""
    at: Optional[datetime] = Field(None, description="When it happened, defaults to now")
    triggered_by_user_id: Optional[str] = None

    @field_validator("at")
    @classmethod
    def validate_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _require_aware(v)


class ApplyConfigurationRequest(BaseModel):
    """Request model for re-applying a configuration to a tracking record."""
    configuration_id: Optional[UUID] = Field(
        None,
        description="Configuration to apply, defaults to the record's own"
    )
    triggered_by_user_id: Optional[str] = None


class SweepRequest(BaseModel):
    """Request model for a manual sweep."""
    domain: Optional[DomainStr] = None


class SeedRequest(BaseModel):
    """Request model for seeding default configurations."""
    skip_existing: bool = Field(default=True, description="Skip domains that already have configurations")
    domains: Optional[List[DomainStr]] = Field(None, description="Domains to seed, defaults to all")


# ========== Configuration Management DTOs ==========

class DayHoursDTO(BaseModel):
    start: time
    end: time


class ScheduleCreateRequest(BaseModel):
    """Request model for creating a business hours schedule."""
    name: str = Field(..., min_length=1, max_length=255)
    timezone: str = Field(default="UTC", description="IANA timezone")
    weekly_hours: Dict[str, Optional[DayHoursDTO]] = Field(
        ...,
        description="monday..sunday mapped to opening hours or null"
    )
    is_default: bool = False

    def to_domain(self) -> BusinessHoursSchedule:
        return _to_domain(BusinessHoursSchedule, self.model_dump())


class ScheduleUpdateRequest(BaseModel):
    """Request model for updating a business hours schedule."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    timezone: Optional[str] = None
    weekly_hours: Optional[Dict[str, Optional[DayHoursDTO]]] = None
    is_default: Optional[bool] = None


class HolidayCreateRequest(BaseModel):
    """Request model for creating a holiday."""
    name: str = Field(..., min_length=1, max_length=255)
    date: date_type
    is_recurring: bool = False
    description: Optional[str] = None

    def to_domain(self) -> Holiday:
        return _to_domain(Holiday, self.model_dump())


class HolidayUpdateRequest(BaseModel):
    """Request model for updating a holiday."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    date: Optional[date_type] = None
    is_recurring: Optional[bool] = None
    description: Optional[str] = None


class ConfigurationCreateRequest(BaseModel):
    """Request model for creating an SLA configuration."""
    domain: DomainStr
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    response_target_value: Optional[int] = Field(None, gt=0)
    response_target_unit: Optional[TargetUnit] = None
    resolution_target_value: Optional[int] = Field(None, gt=0)
    resolution_target_unit: Optional[TargetUnit] = None
    at_risk_threshold_percent: int = Field(default=25, ge=1, le=99)
    escalate_on_breach: bool = False
    escalate_to_user_id: Optional[str] = None
    business_hours_schedule_id: Optional[UUID] = None
    is_default: bool = False
    priority_order: int = Field(default=100, ge=0)
    is_active: bool = True
    match_criteria: Dict[str, Any] = Field(default_factory=dict)

    def to_domain(self) -> SlaConfiguration:
        return _to_domain(SlaConfiguration, self.model_dump())


class ConfigurationUpdateRequest(BaseModel):
    """Request model for updating an SLA configuration."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    response_target_value: Optional[int] = Field(None, gt=0)
    response_target_unit: Optional[TargetUnit] = None
    resolution_target_value: Optional[int] = Field(None, gt=0)
    resolution_target_unit: Optional[TargetUnit] = None
    at_risk_threshold_percent: Optional[int] = Field(None, ge=1, le=99)
    escalate_on_breach: Optional[bool] = None
    escalate_to_user_id: Optional[str] = None
    business_hours_schedule_id: Optional[UUID] = None
    is_default: Optional[bool] = None
    priority_order: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None
    match_criteria: Optional[Dict[str, Any]] = None


# ========== Response DTOs ==========

class ClockResponse(BaseModel):
    """Response model for a single SLA clock."""
    sla_type: SLATypeStr
    state: SLAStateStr
    due_at: Optional[datetime] = None
    met_at: Optional[datetime] = None
    breached_at: Optional[datetime] = None
    time_remaining_seconds: Optional[float] = None
    percent_complete: Optional[float] = None

    @classmethod
    def from_domain(cls, clock: ClockView) -> "ClockResponse":
        return cls(
            sla_type=clock.sla_type.value,
            state=clock.state.value,
            due_at=clock.due_at,
            met_at=clock.met_at,
            breached_at=clock.breached_at,
            time_remaining_seconds=clock.time_remaining_seconds,
            percent_complete=clock.percent_complete,
        )


class SlaStatusResponse(BaseModel):
    """Response model for the status of a tracking record."""
    tracking_id: UUID
    domain: DomainStr
    entity_type: str
    entity_id: str
    configuration_id: Optional[UUID] = None
    status: TrackingStatusStr = Field(..., description="Display status, breached when any clock breached")
    lifecycle_status: TrackingStatusStr
    is_paused: bool
    is_response_breached: bool
    is_resolution_breached: bool
    started_at: datetime
    response_due_at: Optional[datetime] = None
    resolution_due_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    cumulative_paused_seconds: int = 0
    time_remaining_seconds: Optional[float] = None
    percent_complete: Optional[float] = None
    response: ClockResponse
    resolution: ClockResponse
    evaluated_at: datetime

    @classmethod
    def from_domain(cls, view: SlaStatusView) -> "SlaStatusResponse":
        return cls(
            tracking_id=view.tracking_id,
            domain=view.domain.value,
            entity_type=view.entity_type,
            entity_id=view.entity_id,
            configuration_id=view.configuration_id,
            status=view.status.value,
            lifecycle_status=view.lifecycle_status.value,
            is_paused=view.is_paused,
            is_response_breached=view.is_response_breached,
            is_resolution_breached=view.is_resolution_breached,
            started_at=view.started_at,
            response_due_at=view.response_due_at,
            resolution_due_at=view.resolution_due_at,
            responded_at=view.responded_at,
            resolved_at=view.resolved_at,
            cumulative_paused_seconds=view.cumulative_paused_seconds,
            time_remaining_seconds=view.time_remaining_seconds,
            percent_complete=view.percent_complete,
            response=ClockResponse.from_domain(view.response),
            resolution=ClockResponse.from_domain(view.resolution),
            evaluated_at=view.evaluated_at,
        )


class SlaEventResponse(BaseModel):
    """Response model for an SLA event."""
    id: UUID
    tracking_id: UUID
    event_type: str
    occurred_at: datetime
    sla_type: Optional[SLATypeStr] = None
    due_epoch: Optional[int] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    triggered_by_user_id: Optional[str] = None

    @classmethod
    def from_domain(cls, event: SlaEvent) -> "SlaEventResponse":
        return cls.model_validate(event.to_dict())


class SweepResponse(BaseModel):
    """Response model for a sweep run."""
    evaluated: int
    breached: int
    warned: int
    skipped: int = 0


class MetricsResponse(BaseModel):
    """Response model for SLA dashboard metrics."""
    total: int
    response_breached: int
    resolution_breached: int
    currently_paused: int
    resolved: int
    response_breach_rate: float = Field(..., description="Percent, one decimal")
    resolution_breach_rate: float = Field(..., description="Percent, one decimal")
    avg_response_time_seconds: Optional[int] = None
    avg_resolution_time_seconds: Optional[int] = None


class EntityTypeMetricsResponse(BaseModel):
    """Response model for metrics grouped by entity type."""
    entity_type: str
    total: int
    response_breached: int
    resolution_breached: int
    resolved: int
    response_breach_rate: float
    resolution_breach_rate: float
    avg_response_time_seconds: Optional[int] = None
    avg_resolution_time_seconds: Optional[int] = None


class SeedDomainResult(BaseModel):
    domain: DomainStr
    created: int
    skipped: bool


class SeedResponse(BaseModel):
    """Response model for seeding default configurations."""
    success: bool
    organization_id: str
    results: List[SeedDomainResult]
    total_created: int


class HasConfigurationsResponse(BaseModel):
    has_configurations: bool
    count: int


def domain_or_none(value: Optional[str]) -> Optional[SlaDomain]:
    return SlaDomain(value) if value else None
