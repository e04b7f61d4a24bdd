"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for the SLA engine.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
Every table is scoped by `organization_id`.
"""

from datetime import date as date_type, datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database import Base, UTCDateTime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BusinessHoursScheduleModel(Base):
    """
    Database model for BusinessHoursSchedule.

    Maps to the 'business_hours_schedules' table. The weekly map is stored
    as JSON: {"monday": {"start": "09:00", "end": "17:00"}, "sunday": null, ...}
    """
    __tablename__ = "business_hours_schedules"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    organization_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    weekly_hours: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)


class HolidayModel(Base):
    """
    Database model for Holiday.

    Maps to the 'holidays' table.
    """
    __tablename__ = "holidays"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    organization_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    date: Mapped[date_type] = mapped_column(Date, nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)


class SlaConfigurationModel(Base):
    """
    Database model for SlaConfiguration.

    Maps to the 'sla_configurations' table.
    """
    __tablename__ = "sla_configurations"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    organization_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    domain: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Targets (value and unit are both-or-neither)
    response_target_value: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    response_target_unit: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    resolution_target_value: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    resolution_target_unit: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Escalation
    at_risk_threshold_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=25)
    escalate_on_breach: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    escalate_to_user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    business_hours_schedule_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)

    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    priority_order: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    match_criteria: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_sla_configurations_org_domain", "organization_id", "domain"),
    )


class SlaTrackingModel(Base):
    """
    Database model for SlaTracking.

    Maps to the 'sla_tracking' table. `version_id` is the optimistic lock,
    bumped on every write by the repository.
    """
    __tablename__ = "sla_tracking"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    organization_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Entity reference
    domain: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(255), nullable=False)
    configuration_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)

    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active")

    # Timestamps
    started_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    response_due_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    resolution_due_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    responded_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Targets and reporting
    response_target_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    resolution_target_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    response_time_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    resolution_time_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Pause tracking
    cumulative_paused_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_pause_started_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Breach tracking
    response_breached_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    resolution_breached_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    configuration_snapshot: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_sla_tracking_entity", "organization_id", "domain", "entity_type", "entity_id"),
        Index("ix_sla_tracking_org_status", "organization_id", "status"),
    )


class SlaEventModel(Base):
    """
    Database model for SlaEvent.

    Maps to the 'sla_events' table. Append-only; warning, breach and
    escalated rows are unique per (tracking, type, clock, due epoch).
    """
    __tablename__ = "sla_events"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    organization_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    tracking_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)

    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    sla_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    due_epoch: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    triggered_by_user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "tracking_id", "event_type", "sla_type", "due_epoch",
            name="uq_sla_events_dedupe"
        ),
    )
