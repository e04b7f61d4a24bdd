"""
SLA engine HTTP entry point.

`create_app()` builds the FastAPI application around the `/sla` router; the
lifespan opens the database, builds the services and starts the periodic
sweep. Run with `uvicorn main:app`.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from config import Settings, settings as default_settings
from infrastructure.database import (
    close_database,
    create_tables,
    get_engine,
    get_session_maker,
    init_database,
)
from shared.api.middleware import RequestContextMiddleware, install_exception_handlers
from shared.infrastructure.logging import get_logger, setup_logging
from sla.infrastructure import SLAScheduler
from sla.interfaces import sla_router
from sla.services import build_sla_services

logger = get_logger(__name__)


def create_app(app_settings: Optional[Settings] = None, **service_overrides) -> FastAPI:
    """
    Build the FastAPI application.

    `service_overrides` are passed to `build_sla_services` (clock, notifier,
    catalog_provider); tests use them to pin time and capture notices.
    """
    app_settings = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        """Wire the engine on startup and tear it down in reverse order."""
        setup_logging(app_settings.log_level, app_settings.environment)
        logger.info("Starting SLA engine", extra={
            "version": app_settings.app_version,
            "environment": app_settings.environment
        })

        init_database(app_settings.database_url)
        # schema is created in place; production deployments run migrations
        await create_tables()

        services = build_sla_services(get_session_maker(), app_settings, **service_overrides)
        app.state.sla_services = services
        app.state.settings = app_settings

        scheduler = None
        if app_settings.sla_evaluation_interval > 0:
            scheduler = SLAScheduler(interval_seconds=app_settings.sla_evaluation_interval)
            await scheduler.start(services.run_sweep_job)
        else:
            logger.info("SLA scheduler disabled")
        app.state.sla_scheduler = scheduler

        logger.info("SLA engine ready", extra={"notifier": type(services.notifier).__name__})

        yield

        if scheduler:
            await scheduler.stop()
        await services.close()
        await close_database()

        logger.info("SLA engine stopped")

    app = FastAPI(
        title="SLA Engine API",
        description=(
            "Response and resolution SLAs for support issues, warranty claims "
            "and service jobs: business-hours calendars, pause and resume, "
            "at-risk warnings, breach detection and Slack escalation.\n\n"
            "Every `/sla` route is scoped by the `X-Organization-ID` header."
        ),
        version=app_settings.app_version,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)
    install_exception_handlers(app)

    app.include_router(sla_router)

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Database reachability, sweep scheduler state and active notifier."""
        scheduler = getattr(request.app.state, "sla_scheduler", None)
        services = getattr(request.app.state, "sla_services", None)

        database = "connected"
        try:
            async with get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as e:
            database = f"error: {e}"

        return {
            "status": "healthy" if database == "connected" else "degraded",
            "version": app_settings.app_version,
            "environment": app_settings.environment,
            "database": database,
            "sweep_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
            "notifier": type(services.notifier).__name__ if services else None,
        }

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "service": "SLA Engine",
            "version": app_settings.app_version,
            "docs": "/docs",
            "health": "/health",
            "routes": {
                "tracking": "/sla/tracking",
                "entities": "/sla/entities/{domain}/{entity_type}/{entity_id}",
                "sweep": "/sla/sweep",
                "metrics": "/sla/metrics",
                "configurations": "/sla/configurations",
                "schedules": "/sla/schedules",
                "holidays": "/sla/holidays",
            },
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.environment == "development",
        log_level=default_settings.log_level.lower()
    )
