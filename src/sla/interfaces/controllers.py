"""
SLA Controllers (API Routes)
=============================

FastAPI routes for the SLA engine.

Controllers are thin - they delegate to application services. The tenant
comes from the `X-Organization-ID` header on every route.
"""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, Request, status

from sla.application.dto import (
    ActorRequest,
    ApplyConfigurationRequest,
    ConfigurationCreateRequest,
    ConfigurationUpdateRequest,
    DomainStr,
    EntityTypeMetricsResponse,
    HasConfigurationsResponse,
    HolidayCreateRequest,
    HolidayUpdateRequest,
    MetricsResponse,
    PauseRequest,
    ScheduleCreateRequest,
    ScheduleUpdateRequest,
    SeedRequest,
    SeedResponse,
    SlaEventResponse,
    SlaStatusResponse,
    StartTrackingRequest,
    SweepRequest,
    SweepResponse,
    TransitionRequest,
    domain_or_none,
)
from sla.domain import BusinessHoursSchedule, Holiday, SlaConfiguration, SlaTracking
from sla.services import SlaServices
from shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA Engine"])


# ========== Example payloads for Swagger ==========

STATUS_RESPONSE_EXAMPLE = {
    "tracking_id": "123e4567-e89b-12d3-a456-426614174000",
    "domain": "support",
    "entity_type": "issue",
    "entity_id": "ISSUE-1042",
    "configuration_id": "0f8fad5b-d9cb-469f-a165-70867728950e",
    "status": "active",
    "lifecycle_status": "active",
    "is_paused": False,
    "is_response_breached": False,
    "is_resolution_breached": False,
    "started_at": "2024-01-15T10:00:00Z",
    "response_due_at": "2024-01-15T11:00:00Z",
    "resolution_due_at": "2024-01-16T10:00:00Z",
    "responded_at": None,
    "resolved_at": None,
    "cumulative_paused_seconds": 0,
    "time_remaining_seconds": 1800,
    "percent_complete": 50.0,
    "response": {
        "sla_type": "response",
        "state": "on_track",
        "due_at": "2024-01-15T11:00:00Z",
        "met_at": None,
        "breached_at": None,
        "time_remaining_seconds": 1800,
        "percent_complete": 50.0
    },
    "resolution": {
        "sla_type": "resolution",
        "state": "on_track",
        "due_at": "2024-01-16T10:00:00Z",
        "met_at": None,
        "breached_at": None,
        "time_remaining_seconds": 84600,
        "percent_complete": 2.1
    },
    "evaluated_at": "2024-01-15T10:30:00Z"
}


# ========== Dependencies ==========

def get_services(request: Request) -> SlaServices:
    """SLA services built at startup."""
    return request.app.state.sla_services


def get_organization_id(
    x_organization_id: str = Header(..., min_length=1, description="Tenant identifier")
) -> str:
    return x_organization_id


def _status(services: SlaServices, tracking: SlaTracking) -> SlaStatusResponse:
    return SlaStatusResponse.from_domain(tracking.status_view(services.tracking.now()))


# ========== Tracking lifecycle ==========

@router.post(
    "/tracking",
    response_model=SlaStatusResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start SLA tracking",
    description="""
    Start tracking an entity against the SLA configuration that applies to it.

    **Resolution order**: explicitly assigned `configuration_id`, then the first
    non-default configuration whose `match_criteria` match `entity_attributes`
    (by `priority_order`), then the domain default.

    Returns 422 when no configuration applies or the configuration cannot
    produce due dates.
    """,
    responses={201: {"content": {"application/json": {"example": STATUS_RESPONSE_EXAMPLE}}}}
)
async def start_tracking(
    body: StartTrackingRequest,
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    tracking = await services.tracking.start_tracking(
        organization_id=organization_id,
        domain=body.domain,
        entity_type=body.entity_type,
        entity_id=body.entity_id,
        configuration_id=body.configuration_id,
        entity_attributes=body.entity_attributes,
        started_at=body.started_at,
        triggered_by_user_id=body.triggered_by_user_id,
    )
    return _status(services, tracking)


@router.get(
    "/tracking/{tracking_id}",
    response_model=SlaStatusResponse,
    summary="Get SLA status",
    description="""
    Derived status of a tracking record: per-clock state (on_track, at_risk,
    breached, met, not_applicable), time remaining and percent complete.

    `evaluate=true` runs breach detection first so the event log is current.
    """,
    responses={200: {"content": {"application/json": {"example": STATUS_RESPONSE_EXAMPLE}}}}
)
async def get_status(
    tracking_id: UUID,
    evaluate: Optional[bool] = Query(None, description="Run breach detection before reading"),
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    view = await services.tracking.get_status(organization_id, tracking_id, evaluate=evaluate)
    return SlaStatusResponse.from_domain(view)


@router.get(
    "/tracking/{tracking_id}/events",
    response_model=List[SlaEventResponse],
    summary="List SLA events, newest first"
)
async def get_events(
    tracking_id: UUID,
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    events = await services.tracking.get_events(organization_id, tracking_id)
    return [SlaEventResponse.from_domain(e) for e in events]


@router.post("/tracking/{tracking_id}/pause", response_model=SlaStatusResponse, summary="Pause the SLA clocks")
async def pause_tracking(
    tracking_id: UUID,
    body: Optional[PauseRequest] = None,
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    body = body or PauseRequest()
    tracking = await services.tracking.pause(
        organization_id, tracking_id, body.reason, body.triggered_by_user_id
    )
    return _status(services, tracking)


@router.post(
    "/tracking/{tracking_id}/resume",
    response_model=SlaStatusResponse,
    summary="Resume the SLA clocks",
    description="Open due dates move forward by the length of the pause."
)
async def resume_tracking(
    tracking_id: UUID,
    body: Optional[ActorRequest] = None,
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    body = body or ActorRequest()
    tracking = await services.tracking.resume(organization_id, tracking_id, body.triggered_by_user_id)
    return _status(services, tracking)


@router.post("/tracking/{tracking_id}/respond", response_model=SlaStatusResponse, summary="Record first response")
async def record_response(
    tracking_id: UUID,
    body: Optional[TransitionRequest] = None,
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    body = body or TransitionRequest()
    tracking = await services.tracking.record_response(
        organization_id, tracking_id, body.at, body.triggered_by_user_id
    )
    return _status(services, tracking)


@router.post("/tracking/{tracking_id}/resolve", response_model=SlaStatusResponse, summary="Record resolution")
async def record_resolution(
    tracking_id: UUID,
    body: Optional[TransitionRequest] = None,
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    body = body or TransitionRequest()
    tracking = await services.tracking.record_resolution(
        organization_id, tracking_id, body.at, body.triggered_by_user_id
    )
    return _status(services, tracking)


@router.post(
    "/tracking/{tracking_id}/apply-configuration",
    response_model=SlaStatusResponse,
    summary="Re-apply a configuration",
    description="Recompute open due dates from the given (or the record's own) configuration."
)
async def apply_configuration(
    tracking_id: UUID,
    body: Optional[ApplyConfigurationRequest] = None,
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    body = body or ApplyConfigurationRequest()
    tracking = await services.tracking.apply_configuration(
        organization_id, tracking_id, body.configuration_id, body.triggered_by_user_id
    )
    return _status(services, tracking)


@router.get(
    "/entities/{domain}/{entity_type}/{entity_id}",
    response_model=List[SlaStatusResponse],
    summary="Tracking records of an entity, newest first"
)
async def list_for_entity(
    domain: DomainStr,
    entity_type: str,
    entity_id: str,
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    trackings = await services.tracking.list_for_entity(organization_id, domain, entity_type, entity_id)
    return [_status(services, t) for t in trackings]


# ========== Sweep and metrics ==========

@router.post(
    "/sweep",
    response_model=SweepResponse,
    summary="Run a breach / at-risk sweep",
    description="Evaluates the organization's records that are neither paused nor resolved."
)
async def run_sweep(
    body: Optional[SweepRequest] = None,
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    body = body or SweepRequest()
    result = await services.sweep.run_sweep(domain_or_none(body.domain), organization_id)
    return SweepResponse(**result.to_dict())


@router.get("/metrics", response_model=MetricsResponse, summary="SLA dashboard metrics")
async def get_metrics(
    domain: Optional[DomainStr] = Query(None),
    start_date: Optional[date] = Query(None, description="Tracking started on or after"),
    end_date: Optional[date] = Query(None, description="Tracking started on or before"),
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    metrics = await services.tracking.get_metrics(
        organization_id, domain_or_none(domain), start_date, end_date
    )
    return MetricsResponse(**metrics)


@router.get(
    "/metrics/by-entity-type",
    response_model=List[EntityTypeMetricsResponse],
    summary="SLA metrics grouped by entity type"
)
async def get_metrics_by_entity_type(
    domain: Optional[DomainStr] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    rows = await services.tracking.get_metrics_by_entity_type(
        organization_id, domain_or_none(domain), start_date, end_date
    )
    return [EntityTypeMetricsResponse(**row) for row in rows]


# ========== Business hours schedules ==========

@router.post(
    "/schedules",
    response_model=BusinessHoursSchedule,
    status_code=status.HTTP_201_CREATED,
    summary="Create business hours schedule"
)
async def create_schedule(
    body: ScheduleCreateRequest,
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    return await services.admin.create_schedule(organization_id, body.to_domain())


@router.get("/schedules", response_model=List[BusinessHoursSchedule], summary="List schedules")
async def list_schedules(
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    return await services.admin.list_schedules(organization_id)


@router.get("/schedules/{schedule_id}", response_model=BusinessHoursSchedule, summary="Get schedule")
async def get_schedule(
    schedule_id: UUID,
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    return await services.admin.get_schedule(organization_id, schedule_id)


@router.patch("/schedules/{schedule_id}", response_model=BusinessHoursSchedule, summary="Update schedule")
async def update_schedule(
    schedule_id: UUID,
    body: ScheduleUpdateRequest,
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    return await services.admin.update_schedule(
        organization_id, schedule_id, body.model_dump(exclude_unset=True)
    )


# ========== Holidays ==========

@router.post(
    "/holidays",
    response_model=Holiday,
    status_code=status.HTTP_201_CREATED,
    summary="Create holiday"
)
async def create_holiday(
    body: HolidayCreateRequest,
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    return await services.admin.create_holiday(organization_id, body.to_domain())


@router.get("/holidays", response_model=List[Holiday], summary="List holidays")
async def list_holidays(
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    return await services.admin.list_holidays(organization_id)


@router.patch("/holidays/{holiday_id}", response_model=Holiday, summary="Update holiday")
async def update_holiday(
    holiday_id: UUID,
    body: HolidayUpdateRequest,
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    return await services.admin.update_holiday(
        organization_id, holiday_id, body.model_dump(exclude_unset=True)
    )


# ========== Configurations ==========

@router.post(
    "/configurations",
    response_model=SlaConfiguration,
    status_code=status.HTTP_201_CREATED,
    summary="Create SLA configuration",
    description="""
    Create an SLA configuration for a domain.

    **Target units**: `minutes`, `hours`, `days` (wall clock) and
    `business_hours`, `business_days` (require `business_hours_schedule_id`).

    Marking a configuration as default clears the flag on the domain's other
    configurations.
    """
)
async def create_configuration(
    body: ConfigurationCreateRequest,
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    return await services.admin.create_configuration(organization_id, body.to_domain())


@router.get("/configurations", response_model=List[SlaConfiguration], summary="List SLA configurations")
async def list_configurations(
    domain: Optional[DomainStr] = Query(None),
    is_active: Optional[bool] = Query(None),
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    return await services.admin.list_configurations(organization_id, domain_or_none(domain), is_active)


@router.get(
    "/configurations/default",
    response_model=Optional[SlaConfiguration],
    summary="Default configuration of a domain",
    description="The active default, else the active configuration with the lowest priority order."
)
async def get_default_configuration(
    domain: DomainStr = Query(...),
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    return await services.admin.get_default_configuration(organization_id, domain_or_none(domain))


@router.get(
    "/configurations/exists",
    response_model=HasConfigurationsResponse,
    summary="Whether the organization has configurations"
)
async def has_configurations(
    domain: Optional[DomainStr] = Query(None),
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    result = await services.admin.has_configurations(organization_id, domain_or_none(domain))
    return HasConfigurationsResponse(**result)


@router.post(
    "/configurations/seed",
    response_model=SeedResponse,
    summary="Seed default configurations",
    description="Creates the default catalog for each domain, skipping domains that already have configurations."
)
async def seed_configurations(
    body: Optional[SeedRequest] = None,
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    body = body or SeedRequest()
    domains = [domain_or_none(d) for d in body.domains] if body.domains else None
    return await services.admin.seed_default_configurations(
        organization_id, domains=domains, skip_existing=body.skip_existing
    )


@router.get("/configurations/{configuration_id}", response_model=SlaConfiguration, summary="Get SLA configuration")
async def get_configuration(
    configuration_id: UUID,
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    return await services.admin.get_configuration(organization_id, configuration_id)


@router.patch(
    "/configurations/{configuration_id}",
    response_model=SlaConfiguration,
    summary="Update SLA configuration",
    description="In-flight tracking records keep their snapshot until re-applied."
)
async def update_configuration(
    configuration_id: UUID,
    body: ConfigurationUpdateRequest,
    organization_id: str = Depends(get_organization_id),
    services: SlaServices = Depends(get_services)
):
    return await services.admin.update_configuration(
        organization_id, configuration_id, body.model_dump(exclude_unset=True)
    )


# Export router for inclusion in main app
sla_router = router
