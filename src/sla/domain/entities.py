"""
SLA Domain Entities
====================

Pure Python domain entities for SLA tracking.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns. Every method takes
the current instant explicitly, so the whole state machine is deterministic
under test.

The lifecycle state of a tracking record is a tagged variant:

    Active  --pause-->  Paused  --resume-->  Active | Responded
    Active  --respond-> Responded --pause--> Paused
    (any non-resolved) --resolve--> Resolved

Breach timestamps are orthogonal to the variant and never cleared.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, MutableSet, Optional, Tuple, Union
from uuid import UUID, uuid4

from config import SLAState, SLAType, SlaDomain, SlaEventType, TrackingStatus
from core import ConfigurationException, InvalidTransitionException
from sla.domain.calendar import as_utc
from sla.domain.deadlines import DeadlineCalculator
from sla.domain.value_objects import ConfigurationSnapshot


# ========== Lifecycle variants ==========

@dataclass(frozen=True)
class Active:
    """Clocks running, no response recorded yet."""

    status = TrackingStatus.ACTIVE


@dataclass(frozen=True)
class Paused:
    """Clocks stopped since `pause_started_at`."""

    pause_started_at: datetime
    status = TrackingStatus.PAUSED


@dataclass(frozen=True)
class Responded:
    """Response recorded; the resolution clock keeps running."""

    status = TrackingStatus.RESPONDED


@dataclass(frozen=True)
class Resolved:
    """Terminal."""

    resolved_at: datetime
    status = TrackingStatus.RESOLVED


TrackingState = Union[Active, Paused, Responded, Resolved]

DedupeKey = Tuple[str, str, str, int]

_BREACH_EVENTS = {
    SLAType.RESPONSE: SlaEventType.RESPONSE_BREACHED,
    SLAType.RESOLUTION: SlaEventType.RESOLUTION_BREACHED,
}

_WARNING_EVENTS = {
    SLAType.RESPONSE: SlaEventType.RESPONSE_DUE_WARNING,
    SLAType.RESOLUTION: SlaEventType.RESOLUTION_DUE_WARNING,
}


def due_epoch(due_at: Optional[datetime]) -> Optional[int]:
    """Integer epoch seconds of a due date, the de-duplication key part."""
    if due_at is None:
        return None
    return int(as_utc(due_at).timestamp())


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _seconds(delta: timedelta) -> int:
    return max(0, int(delta.total_seconds()))


# ========== Events ==========

@dataclass
class SlaEvent:
    """
    One entry of the append-only SLA event log.

    Warning, breach and escalated events carry the `sla_type` and `due_epoch`
    they refer to; the four together form the de-duplication key.
    """

    organization_id: str
    tracking_id: UUID
    event_type: SlaEventType
    occurred_at: datetime
    payload: Dict[str, Any] = field(default_factory=dict)
    sla_type: Optional[SLAType] = None
    due_epoch: Optional[int] = None
    triggered_by_user_id: Optional[str] = None
    id: UUID = field(default_factory=uuid4)

    @property
    def dedupe_key(self) -> Optional[DedupeKey]:
        if self.due_epoch is None:
            return None
        return (
            str(self.tracking_id),
            SlaEventType(self.event_type).value,
            SLAType(self.sla_type).value if self.sla_type else "",
            self.due_epoch,
        )

    @property
    def is_escalation_relevant(self) -> bool:
        return self.event_type in (
            SlaEventType.RESPONSE_DUE_WARNING,
            SlaEventType.RESOLUTION_DUE_WARNING,
            SlaEventType.RESPONSE_BREACHED,
            SlaEventType.RESOLUTION_BREACHED,
            SlaEventType.ESCALATED,
        )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "tracking_id": str(self.tracking_id),
            "event_type": SlaEventType(self.event_type).value,
            "occurred_at": self.occurred_at.isoformat(),
            "sla_type": SLAType(self.sla_type).value if self.sla_type else None,
            "due_epoch": self.due_epoch,
            "payload": self.payload,
            "triggered_by_user_id": self.triggered_by_user_id,
        }


# ========== Read side ==========

@dataclass
class ClockView:
    """Derived state of one SLA clock at a point in time."""

    sla_type: SLAType
    state: SLAState
    due_at: Optional[datetime] = None
    met_at: Optional[datetime] = None
    breached_at: Optional[datetime] = None
    time_remaining_seconds: Optional[float] = None
    percent_complete: Optional[float] = None

    @property
    def is_breached(self) -> bool:
        return self.state == SLAState.BREACHED

    def to_dict(self) -> dict:
        return {
            "sla_type": self.sla_type.value,
            "state": self.state.value,
            "due_at": _iso(self.due_at),
            "met_at": _iso(self.met_at),
            "breached_at": _iso(self.breached_at),
            "time_remaining_seconds": self.time_remaining_seconds,
            "percent_complete": self.percent_complete,
        }


@dataclass
class SlaStatusView:
    """
    Read model of a tracking record.

    `status` is the display status: `breached` while any breach is flagged
    on an unresolved record, the lifecycle status otherwise.
    Time remaining and percent complete refer to the next open clock.
    """

    tracking_id: UUID
    organization_id: str
    domain: SlaDomain
    entity_type: str
    entity_id: str
    configuration_id: Optional[UUID]
    status: TrackingStatus
    lifecycle_status: TrackingStatus
    is_paused: bool
    is_response_breached: bool
    is_resolution_breached: bool
    started_at: datetime
    response_due_at: Optional[datetime]
    resolution_due_at: Optional[datetime]
    responded_at: Optional[datetime]
    resolved_at: Optional[datetime]
    cumulative_paused_seconds: int
    response: ClockView
    resolution: ClockView
    evaluated_at: datetime
    time_remaining_seconds: Optional[float] = None
    percent_complete: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "tracking_id": str(self.tracking_id),
            "organization_id": self.organization_id,
            "domain": self.domain.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "configuration_id": str(self.configuration_id) if self.configuration_id else None,
            "status": self.status.value,
            "lifecycle_status": self.lifecycle_status.value,
            "is_paused": self.is_paused,
            "is_response_breached": self.is_response_breached,
            "is_resolution_breached": self.is_resolution_breached,
            "started_at": self.started_at.isoformat(),
            "response_due_at": _iso(self.response_due_at),
            "resolution_due_at": _iso(self.resolution_due_at),
            "responded_at": _iso(self.responded_at),
            "resolved_at": _iso(self.resolved_at),
            "cumulative_paused_seconds": self.cumulative_paused_seconds,
            "time_remaining_seconds": self.time_remaining_seconds,
            "percent_complete": self.percent_complete,
            "response": self.response.to_dict(),
            "resolution": self.resolution.to_dict(),
            "evaluated_at": self.evaluated_at.isoformat(),
        }


@dataclass
class SweepResult:
    """Counters returned by a sweep run."""

    evaluated: int = 0
    breached: int = 0
    warned: int = 0
    skipped: int = 0

    def merge(self, other: "SweepResult") -> None:
        self.evaluated += other.evaluated
        self.breached += other.breached
        self.warned += other.warned
        self.skipped += other.skipped

    def to_dict(self) -> dict:
        return {
            "evaluated": self.evaluated,
            "breached": self.breached,
            "warned": self.warned,
            "skipped": self.skipped,
        }


# ========== Tracking record ==========

@dataclass
class SlaTracking:
    """
    SLA tracking record for one entity.

    Mutated only through the transition methods below; each returns the
    events it produced so the caller can append them in the same unit of
    work as the state change.
    """

    organization_id: str
    domain: SlaDomain
    entity_type: str
    entity_id: str
    configuration_id: Optional[UUID]
    snapshot: ConfigurationSnapshot
    started_at: datetime
    state: TrackingState = field(default_factory=Active)

    response_due_at: Optional[datetime] = None
    resolution_due_at: Optional[datetime] = None
    response_target_seconds: Optional[int] = None
    resolution_target_seconds: Optional[int] = None

    responded_at: Optional[datetime] = None
    response_time_seconds: Optional[int] = None
    resolution_time_seconds: Optional[int] = None

    cumulative_paused_seconds: int = 0
    response_breached_at: Optional[datetime] = None
    resolution_breached_at: Optional[datetime] = None

    id: UUID = field(default_factory=uuid4)
    version_id: int = 0

    # ========== Factory ==========

    @classmethod
    def start(
        cls,
        organization_id: str,
        domain: SlaDomain,
        entity_type: str,
        entity_id: str,
        snapshot: ConfigurationSnapshot,
        started_at: datetime,
        triggered_by_user_id: Optional[str] = None,
    ) -> Tuple["SlaTracking", SlaEvent]:
        """
        Create an Active record with due dates computed from `started_at`.

        Raises:
            ConfigurationException: Malformed targets, or a business unit
                without a schedule in the snapshot
        """
        configuration = snapshot.configuration
        configuration.validate_targets()
        if configuration.business_hours_schedule_id is not None and snapshot.schedule is None:
            raise ConfigurationException(
                "Configuration references a business hours schedule that was not found",
                {
                    "configuration": configuration.name,
                    "schedule_id": str(configuration.business_hours_schedule_id),
                }
            )

        started_at = as_utc(started_at)
        tracking = cls(
            organization_id=organization_id,
            domain=SlaDomain(domain),
            entity_type=entity_type,
            entity_id=entity_id,
            configuration_id=configuration.id,
            snapshot=snapshot,
            started_at=started_at,
        )
        tracking._compute_due_dates(shift=timedelta(0))

        event = tracking._event(
            SlaEventType.STARTED,
            started_at,
            {
                "configuration_id": str(configuration.id) if configuration.id else None,
                "configuration_name": configuration.name,
                "response_due_at": _iso(tracking.response_due_at),
                "resolution_due_at": _iso(tracking.resolution_due_at),
            },
            triggered_by_user_id,
        )
        return tracking, event

    # ========== Derived properties ==========

    @property
    def status(self) -> TrackingStatus:
        return self.state.status

    @property
    def is_paused(self) -> bool:
        return isinstance(self.state, Paused)

    @property
    def is_resolved(self) -> bool:
        return isinstance(self.state, Resolved)

    @property
    def current_pause_started_at(self) -> Optional[datetime]:
        return self.state.pause_started_at if isinstance(self.state, Paused) else None

    @property
    def resolved_at(self) -> Optional[datetime]:
        return self.state.resolved_at if isinstance(self.state, Resolved) else None

    @property
    def configuration(self):
        return self.snapshot.configuration

    def due_at(self, sla_type: SLAType) -> Optional[datetime]:
        return getattr(self, f"{sla_type.value}_due_at")

    def breached_at(self, sla_type: SLAType) -> Optional[datetime]:
        return getattr(self, f"{sla_type.value}_breached_at")

    def met_at(self, sla_type: SLAType) -> Optional[datetime]:
        if sla_type == SLAType.RESPONSE:
            return self.responded_at
        return self.resolved_at

    def target_seconds(self, sla_type: SLAType) -> Optional[int]:
        return getattr(self, f"{sla_type.value}_target_seconds")

    def elapsed(self, at: datetime) -> timedelta:
        """
        Pause-excluded time since start.

        Frozen at the pause start while paused and at the resolution instant
        once resolved.
        """
        at = as_utc(at)
        if isinstance(self.state, Paused):
            at = min(at, self.state.pause_started_at)
        elif isinstance(self.state, Resolved):
            at = min(at, self.state.resolved_at)
        elapsed = at - self.started_at - timedelta(seconds=self.cumulative_paused_seconds)
        return max(elapsed, timedelta(0))

    # ========== Transitions ==========

    def pause(
        self,
        at: datetime,
        reason: Optional[str] = None,
        triggered_by_user_id: Optional[str] = None
    ) -> List[SlaEvent]:
        if isinstance(self.state, (Paused, Resolved)):
            raise InvalidTransitionException(self.id, "pause", self.status.value)

        at = as_utc(at)
        self.state = Paused(pause_started_at=at)
        return [self._event(SlaEventType.PAUSED, at, {"reason": reason}, triggered_by_user_id)]

    def resume(
        self,
        at: datetime,
        triggered_by_user_id: Optional[str] = None
    ) -> List[SlaEvent]:
        """Close the pause and shift both due dates forward by its length."""
        if not isinstance(self.state, Paused):
            raise InvalidTransitionException(self.id, "resume", self.status.value)

        at = as_utc(at)
        old_response, old_resolution = self.response_due_at, self.resolution_due_at
        pause = self._close_pause(at)
        self.state = Responded() if self.responded_at else Active()

        payload = {
            "pause_duration_seconds": _seconds(pause),
            "cumulative_paused_seconds": self.cumulative_paused_seconds,
            "old_response_due_at": _iso(old_response),
            "new_response_due_at": _iso(self.response_due_at),
            "old_resolution_due_at": _iso(old_resolution),
            "new_resolution_due_at": _iso(self.resolution_due_at),
        }
        return [self._event(SlaEventType.RESUMED, at, payload, triggered_by_user_id)]

    def record_response(
        self,
        at: datetime,
        triggered_by_user_id: Optional[str] = None
    ) -> List[SlaEvent]:
        if isinstance(self.state, Resolved) or self.responded_at is not None:
            raise InvalidTransitionException(self.id, "respond", self.status.value)

        at = as_utc(at)
        self.responded_at = at
        self.response_time_seconds = _seconds(self.elapsed(at))
        # the clock stopped when the pause began
        clock_at = min(at, self.state.pause_started_at) if isinstance(self.state, Paused) else at
        was_breached = self._close_clock(SLAType.RESPONSE, clock_at)
        if isinstance(self.state, Active):
            self.state = Responded()

        payload = {
            "was_breached": was_breached,
            "response_due_at": _iso(self.response_due_at),
            "response_time_seconds": self.response_time_seconds,
        }
        return [self._event(SlaEventType.RESPONDED, at, payload, triggered_by_user_id)]

    def record_resolution(
        self,
        at: datetime,
        triggered_by_user_id: Optional[str] = None
    ) -> List[SlaEvent]:
        if isinstance(self.state, Resolved):
            raise InvalidTransitionException(self.id, "resolve", self.status.value)

        at = as_utc(at)
        if isinstance(self.state, Paused):
            self._close_pause(at)
            self.state = Responded() if self.responded_at else Active()

        self.resolution_time_seconds = _seconds(self.elapsed(at))
        was_breached = self._close_clock(SLAType.RESOLUTION, at)
        self.state = Resolved(resolved_at=at)

        payload = {
            "was_breached": was_breached,
            "resolution_due_at": _iso(self.resolution_due_at),
            "resolution_time_seconds": self.resolution_time_seconds,
            "responded": self.responded_at is not None,
        }
        return [self._event(SlaEventType.RESOLVED, at, payload, triggered_by_user_id)]

    def apply_configuration(
        self,
        snapshot: ConfigurationSnapshot,
        at: datetime,
        triggered_by_user_id: Optional[str] = None
    ) -> List[SlaEvent]:
        """
        Re-apply a (new or updated) configuration to an in-flight record.

        Due dates are recomputed from `started_at` and shifted by the pauses
        taken so far; breach flags already set are kept.
        """
        if isinstance(self.state, Resolved):
            raise InvalidTransitionException(self.id, "apply_configuration", self.status.value)

        configuration = snapshot.configuration
        configuration.validate_targets()
        if configuration.business_hours_schedule_id is not None and snapshot.schedule is None:
            raise ConfigurationException(
                "Configuration references a business hours schedule that was not found",
                {"configuration": configuration.name}
            )

        at = as_utc(at)
        old_configuration_id = self.configuration_id
        old_response, old_resolution = self.response_due_at, self.resolution_due_at

        self.snapshot = snapshot
        self.configuration_id = configuration.id
        self._compute_due_dates(shift=timedelta(seconds=self.cumulative_paused_seconds))

        payload = {
            "old_configuration_id": str(old_configuration_id) if old_configuration_id else None,
            "new_configuration_id": str(configuration.id) if configuration.id else None,
            "old_response_due_at": _iso(old_response),
            "new_response_due_at": _iso(self.response_due_at),
            "old_resolution_due_at": _iso(old_resolution),
            "new_resolution_due_at": _iso(self.resolution_due_at),
        }
        return [self._event(SlaEventType.CONFIG_CHANGED, at, payload, triggered_by_user_id)]

    # ========== Sweep evaluation ==========

    def evaluate(
        self,
        now: datetime,
        logged_keys: Optional[MutableSet[DedupeKey]] = None
    ) -> List[SlaEvent]:
        """
        Detect breaches and at-risk clocks.

        `logged_keys` holds the de-duplication keys already in the event log
        for this record; keys of newly emitted events are added to it.
        Paused and resolved records are not evaluated.
        """
        if isinstance(self.state, (Paused, Resolved)):
            return []

        now = as_utc(now)
        logged = logged_keys if logged_keys is not None else set()
        configuration = self.configuration
        events: List[SlaEvent] = []

        for sla_type in (SLAType.RESPONSE, SLAType.RESOLUTION):
            due = self.due_at(sla_type)
            if due is None or self.met_at(sla_type) is not None:
                continue
            if self.breached_at(sla_type) is not None:
                continue

            epoch = due_epoch(due)
            if now >= due:
                setattr(self, f"{sla_type.value}_breached_at", due)
                breach = self._clock_event(_BREACH_EVENTS[sla_type], sla_type, now, due)
                if breach.dedupe_key in logged:
                    continue
                logged.add(breach.dedupe_key)
                events.append(breach)

                if configuration.escalate_on_breach:
                    escalation = self._clock_event(SlaEventType.ESCALATED, sla_type, now, due)
                    escalation.payload["reason"] = breach.event_type.value
                    if escalation.dedupe_key not in logged:
                        logged.add(escalation.dedupe_key)
                        events.append(escalation)
                continue

            window = self._risk_window(sla_type, now)
            if self._is_at_risk(window):
                warning = self._clock_event(_WARNING_EVENTS[sla_type], sla_type, now, due)
                warning.payload["remaining_seconds"] = int(window[0])
                if warning.dedupe_key not in logged:
                    logged.add(warning.dedupe_key)
                    events.append(warning)

        return events

    def status_view(self, now: datetime) -> SlaStatusView:
        now = as_utc(now)
        response = self._clock_view(SLAType.RESPONSE, now)
        resolution = self._clock_view(SLAType.RESOLUTION, now)

        breached = (
            self.response_breached_at is not None or self.resolution_breached_at is not None
        )
        display = self.status
        if breached and not self.is_resolved:
            display = TrackingStatus.BREACHED

        upcoming = next(
            (clock for clock in (response, resolution)
             if clock.due_at is not None and clock.met_at is None),
            None
        )

        return SlaStatusView(
            tracking_id=self.id,
            organization_id=self.organization_id,
            domain=self.domain,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            configuration_id=self.configuration_id,
            status=display,
            lifecycle_status=self.status,
            is_paused=self.is_paused,
            is_response_breached=response.is_breached,
            is_resolution_breached=resolution.is_breached,
            started_at=self.started_at,
            response_due_at=self.response_due_at,
            resolution_due_at=self.resolution_due_at,
            responded_at=self.responded_at,
            resolved_at=self.resolved_at,
            cumulative_paused_seconds=self.cumulative_paused_seconds,
            response=response,
            resolution=resolution,
            evaluated_at=now,
            time_remaining_seconds=upcoming.time_remaining_seconds if upcoming else None,
            percent_complete=upcoming.percent_complete if upcoming else None,
        )

    # ========== Internals ==========

    def _compute_due_dates(self, shift: timedelta) -> None:
        calendar = self.snapshot.calendar()
        for sla_type in (SLAType.RESPONSE, SLAType.RESOLUTION):
            target = self.configuration.target_for(sla_type)
            if target is None:
                setattr(self, f"{sla_type.value}_due_at", None)
                setattr(self, f"{sla_type.value}_target_seconds", None)
                continue
            due = DeadlineCalculator.compute_for_target(self.started_at, target, calendar)
            setattr(self, f"{sla_type.value}_due_at", due + shift)
            setattr(self, f"{sla_type.value}_target_seconds", _seconds(due - self.started_at))

    def _close_pause(self, at: datetime) -> timedelta:
        """Add the open pause to the paused total and push both due dates by it."""
        pause = max(at - self.state.pause_started_at, timedelta(0))
        self.cumulative_paused_seconds += _seconds(pause)
        if self.response_due_at is not None:
            self.response_due_at += pause
        if self.resolution_due_at is not None:
            self.resolution_due_at += pause
        return pause

    def _risk_window(self, sla_type: SLAType, at: datetime) -> Optional[Tuple[float, float]]:
        """
        Remaining and total seconds of a running clock at `at`.

        Business-unit targets are measured in open time of the snapshot's
        calendar, so nights and weekends do not bring a warning closer.
        """
        due = self.due_at(sla_type)
        total = self.target_seconds(sla_type)
        if due is None or not total:
            return None

        target = self.configuration.target_for(sla_type)
        calendar = self.snapshot.calendar()
        if target is not None and target.unit.needs_calendar and calendar is not None:
            original_due = due - timedelta(seconds=self.cumulative_paused_seconds)
            business_total = calendar.business_duration_between(self.started_at, original_due)
            remaining = calendar.business_duration_between(at, due)
            return remaining.total_seconds(), business_total.total_seconds()

        return (due - at).total_seconds(), float(total)

    def _is_at_risk(self, window: Optional[Tuple[float, float]]) -> bool:
        if window is None or not window[1]:
            return False
        remaining, total = window
        return remaining <= total * self.configuration.at_risk_threshold_percent / 100

    def _close_clock(self, sla_type: SLAType, at: datetime) -> bool:
        """Flag a late milestone as breached; returns whether it was breached."""
        due = self.due_at(sla_type)
        if self.breached_at(sla_type) is not None:
            return True
        if due is not None and at > due:
            setattr(self, f"{sla_type.value}_breached_at", due)
            return True
        return False

    def _clock_view(self, sla_type: SLAType, now: datetime) -> ClockView:
        due = self.due_at(sla_type)
        met_at = self.met_at(sla_type)
        breached_at = self.breached_at(sla_type)
        if due is None:
            return ClockView(sla_type=sla_type, state=SLAState.NOT_APPLICABLE, met_at=met_at)

        total = self.target_seconds(sla_type) or 0
        if met_at is not None:
            elapsed = (
                self.response_time_seconds if sla_type == SLAType.RESPONSE
                else self.resolution_time_seconds
            ) or 0
            reference = met_at
        else:
            elapsed = self.elapsed(now).total_seconds()
            reference = self.current_pause_started_at or now

        remaining = max((due - reference).total_seconds(), 0.0)
        percent = min(max(elapsed / total * 100, 0.0), 100.0) if total else 100.0

        if breached_at is not None:
            state = SLAState.BREACHED
        elif met_at is not None:
            state = SLAState.MET
        elif not self.is_paused and now >= due:
            state = SLAState.BREACHED
        elif self._is_at_risk(self._risk_window(sla_type, reference)):
            state = SLAState.AT_RISK
        else:
            state = SLAState.ON_TRACK

        return ClockView(
            sla_type=sla_type,
            state=state,
            due_at=due,
            met_at=met_at,
            breached_at=breached_at,
            time_remaining_seconds=remaining,
            percent_complete=round(percent, 2),
        )

    def _clock_event(
        self,
        event_type: SlaEventType,
        sla_type: SLAType,
        now: datetime,
        due: datetime
    ) -> SlaEvent:
        configuration = self.configuration
        payload = {
            "sla_type": sla_type.value,
            "due_at": _iso(due),
            "domain": self.domain.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "configuration_name": configuration.name,
            "escalate_to_user_id": configuration.escalate_to_user_id,
        }
        event = self._event(event_type, now, payload)
        event.sla_type = sla_type
        event.due_epoch = due_epoch(due)
        return event

    def _event(
        self,
        event_type: SlaEventType,
        at: datetime,
        payload: Dict[str, Any],
        triggered_by_user_id: Optional[str] = None
    ) -> SlaEvent:
        return SlaEvent(
            organization_id=self.organization_id,
            tracking_id=self.id,
            event_type=event_type,
            occurred_at=at,
            payload=payload,
            triggered_by_user_id=triggered_by_user_id,
        )
