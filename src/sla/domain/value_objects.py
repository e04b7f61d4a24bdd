"""
SLA Value Objects
==================

Immutable value objects for SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared, which is what lets the
tenant caches hand the same schedule or configuration to every sweep worker.
"""

from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from config import SLAType, SlaDomain, TargetUnit, WEEKDAYS
from core import ConfigurationException


class DayHours(BaseModel):
    """Opening interval of a single weekday, [start, end)."""
    model_config = ConfigDict(frozen=True)

    start: time
    end: time

    @model_validator(mode="after")
    def validate_order(self) -> "DayHours":
        if self.start >= self.end:
            raise ValueError("start must be before end")
        return self

    @property
    def duration(self) -> timedelta:
        return (
            datetime.combine(date.min, self.end) - datetime.combine(date.min, self.start)
        )


class BusinessHoursSchedule(BaseModel):
    """
    Named weekly schedule in an IANA timezone.

    Days missing from `weekly_hours` (or mapped to None) are closed.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[UUID] = None
    organization_id: Optional[str] = None
    name: str = Field(..., min_length=1)
    timezone: str = Field(default="UTC")
    weekly_hours: Dict[str, Optional[DayHours]] = Field(default_factory=dict)
    is_default: bool = False

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone: {v}")
        return v

    @field_validator("weekly_hours")
    @classmethod
    def validate_weekly_hours(
        cls, v: Dict[str, Optional[DayHours]]
    ) -> Dict[str, Optional[DayHours]]:
        normalised = {}
        for day, hours in v.items():
            key = day.lower()
            if key not in WEEKDAYS:
                raise ValueError(f"unknown weekday: {day}")
            normalised[key] = hours
        if not any(normalised.values()):
            raise ValueError("schedule must have at least one open weekday")
        return {day: normalised.get(day) for day in WEEKDAYS}

    def hours_for_weekday(self, weekday: int) -> Optional[DayHours]:
        """Hours for a `date.weekday()` index (Monday is 0)."""
        return self.weekly_hours.get(WEEKDAYS[weekday])

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def standard(
        cls,
        name: str = "Standard Business Hours",
        timezone: str = "UTC",
        start: time = time(9, 0),
        end: time = time(17, 0),
        **kwargs: Any
    ) -> "BusinessHoursSchedule":
        """Monday to Friday, same hours every day."""
        hours = DayHours(start=start, end=end)
        return cls(
            name=name,
            timezone=timezone,
            weekly_hours={day: hours for day in WEEKDAYS[:5]},
            **kwargs
        )


class Holiday(BaseModel):
    """A whole-day closure, optionally repeating on the same month/day."""
    model_config = ConfigDict(frozen=True)

    id: Optional[UUID] = None
    organization_id: Optional[str] = None
    name: str = Field(..., min_length=1)
    date: date
    is_recurring: bool = False
    description: Optional[str] = None

    def applies_to(self, day: date) -> bool:
        if self.is_recurring:
            return (day.month, day.day) == (self.date.month, self.date.day)
        return day == self.date


class SlaTarget(BaseModel):
    """A target duration, e.g. 4 business_hours."""
    model_config = ConfigDict(frozen=True)

    value: int = Field(..., gt=0)
    unit: TargetUnit


class SlaConfiguration(BaseModel):
    """
    SLA configuration for one domain.

    Target value and unit are stored separately, as they are persisted;
    `response_target` / `resolution_target` assemble them and reject
    half-specified targets.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[UUID] = None
    organization_id: Optional[str] = None
    domain: SlaDomain
    name: str = Field(..., min_length=1)
    description: Optional[str] = None

    response_target_value: Optional[int] = None
    response_target_unit: Optional[TargetUnit] = None
    resolution_target_value: Optional[int] = None
    resolution_target_unit: Optional[TargetUnit] = None

    at_risk_threshold_percent: int = Field(default=25)
    escalate_on_breach: bool = False
    escalate_to_user_id: Optional[str] = None
    business_hours_schedule_id: Optional[UUID] = None

    is_default: bool = False
    priority_order: int = 100
    is_active: bool = True
    match_criteria: Dict[str, Any] = Field(default_factory=dict)

    @property
    def response_target(self) -> Optional[SlaTarget]:
        return self._target(SLAType.RESPONSE)

    @property
    def resolution_target(self) -> Optional[SlaTarget]:
        return self._target(SLAType.RESOLUTION)

    def target_for(self, sla_type: SLAType) -> Optional[SlaTarget]:
        return self._target(sla_type)

    def _target(self, sla_type: SLAType) -> Optional[SlaTarget]:
        value = getattr(self, f"{sla_type.value}_target_value")
        unit = getattr(self, f"{sla_type.value}_target_unit")
        if value is None and unit is None:
            return None
        if value is None or unit is None:
            raise ConfigurationException(
                f"{sla_type.value} target needs both a value and a unit",
                {"configuration": self.name, "value": value, "unit": unit}
            )
        if value <= 0:
            raise ConfigurationException(
                f"{sla_type.value} target value must be positive",
                {"configuration": self.name, "value": value}
            )
        return SlaTarget(value=value, unit=unit)

    def validate_targets(self) -> None:
        """
        Raise ConfigurationException for anything that would make a
        tracking record uncomputable.
        """
        targets = [t for t in (self.response_target, self.resolution_target) if t]
        if not 1 <= self.at_risk_threshold_percent <= 99:
            raise ConfigurationException(
                "at_risk_threshold_percent must be between 1 and 99",
                {"configuration": self.name, "value": self.at_risk_threshold_percent}
            )
        if self.business_hours_schedule_id is None:
            for target in targets:
                if target.unit.needs_calendar:
                    raise ConfigurationException(
                        f"{target.unit.value} target requires a business hours schedule",
                        {"configuration": self.name, "unit": target.unit.value}
                    )


class ConfigurationSnapshot(BaseModel):
    """
    Configuration, schedule and holidays captured when tracking starts.

    In-flight records keep evaluating against this copy, so later edits to
    the configuration or calendar never move an existing due date.
    """
    model_config = ConfigDict(frozen=True)

    configuration: SlaConfiguration
    schedule: Optional[BusinessHoursSchedule] = None
    holidays: List[Holiday] = Field(default_factory=list)
    captured_at: datetime

    def calendar(self):
        """BusinessHoursCalendar for the snapshot, None in calendar-time mode."""
        from sla.domain.calendar import BusinessHoursCalendar

        if self.schedule is None:
            return None
        return BusinessHoursCalendar(self.schedule, self.holidays)


class DefaultConfigurationSeed(BaseModel):
    """One entry of the default configuration catalog."""
    name: str
    description: Optional[str] = None
    response_target_value: Optional[int] = None
    response_target_unit: Optional[TargetUnit] = None
    resolution_target_value: Optional[int] = None
    resolution_target_unit: Optional[TargetUnit] = None
    at_risk_threshold_percent: int = 25
    escalate_on_breach: bool = False
    priority_order: int = 100
    is_default: bool = False


class SeedCatalog(BaseModel):
    """Default configurations per domain, applied when seeding a tenant."""
    default_schedule_start: time = time(9, 0)
    default_schedule_end: time = time(17, 0)
    domains: Dict[SlaDomain, List[DefaultConfigurationSeed]] = Field(default_factory=dict)

    def for_domain(self, domain: SlaDomain) -> List[DefaultConfigurationSeed]:
        return self.domains.get(domain, [])
