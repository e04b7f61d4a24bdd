"""
SLA Engine Configuration
========================

Runtime settings (environment variables or `.env`, via pydantic-settings)
and the engine's string enums.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings shared by the API process and the background sweep."""

    # ========== Application ==========
    app_name: str = Field(default="sla-engine", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/sla",
        description="Async SQLAlchemy connection URL"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Engine ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to the YAML catalog of default SLA configurations"
    )
    sla_evaluation_interval: int = Field(
        default=60,
        description="Seconds between sweep runs (0 disables the scheduler)",
        ge=0
    )
    sla_sweep_concurrency: int = Field(
        default=4,
        description="Number of sweep workers evaluating records in parallel",
        ge=1,
        le=64
    )
    sla_sweep_record_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for a single record's sweep transaction",
        gt=0
    )
    sla_max_conflict_retries: int = Field(
        default=3,
        description="Retries on optimistic lock conflicts before giving up",
        ge=0,
        le=10
    )
    sla_evaluate_on_read: bool = Field(
        default=False,
        description="Run breach detection before answering status reads"
    )
    default_timezone: str = Field(
        default="UTC",
        description="IANA timezone for schedules created by seeding"
    )

    # ========== Slack Integration ==========
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for escalation notices"
    )
    slack_channel: str = Field(
        default="#sla-escalations",
        description="Slack channel for escalation notices"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("default_timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Ensure the default timezone is a known IANA name."""
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone: {v}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class SlaDomain(str, Enum):
    """Business domains that share the SLA engine."""
    SUPPORT = "support"
    WARRANTY = "warranty"
    JOBS = "jobs"


class TargetUnit(str, Enum):
    """Units an SLA target can be expressed in."""
    MINUTES = "minutes"
    HOURS = "hours"
    BUSINESS_HOURS = "business_hours"
    DAYS = "days"
    BUSINESS_DAYS = "business_days"

    @property
    def needs_calendar(self) -> bool:
        return self in (TargetUnit.BUSINESS_HOURS, TargetUnit.BUSINESS_DAYS)


class TrackingStatus(str, Enum):
    """Tracking record statuses (breached is derived, never stored)."""
    ACTIVE = "active"
    PAUSED = "paused"
    RESPONDED = "responded"
    RESOLVED = "resolved"
    BREACHED = "breached"


class SlaEventType(str, Enum):
    """Event types written to the SLA event log."""
    STARTED = "started"
    PAUSED = "paused"
    RESUMED = "resumed"
    RESPONSE_DUE_WARNING = "response_due_warning"
    RESPONSE_BREACHED = "response_breached"
    RESPONDED = "responded"
    RESOLUTION_DUE_WARNING = "resolution_due_warning"
    RESOLUTION_BREACHED = "resolution_breached"
    RESOLVED = "resolved"
    ESCALATED = "escalated"
    CONFIG_CHANGED = "config_changed"


class SLAType(str, Enum):
    """The two SLA clocks of a tracking record."""
    RESPONSE = "response"
    RESOLUTION = "resolution"


class SLAState(str, Enum):
    """Read-side state of a single SLA clock."""
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    BREACHED = "breached"
    MET = "met"
    NOT_APPLICABLE = "not_applicable"


WEEKDAYS = (
    "monday", "tuesday", "wednesday", "thursday",
    "friday", "saturday", "sunday",
)

