"""
DRMS Case Service - Main Application
=====================================

Background job host of the device repair case service.

Modules:
- SLA Monitoring: Evaluate open cases against their SLAs and escalate
- Migrations: Versioned schema changes (see drms.migrations)

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, Slack, workflow service, Grafana
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from drms.config import Settings, get_settings
from drms.infrastructure.database import close_database, get_engine, init_database
from drms.jobs import ScheduledJobsService
from drms.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    MetricsMiddleware,
    register_exception_handlers,
)
from drms.shared.infrastructure.grafana import get_grafana_exporter
from drms.shared.infrastructure.logging import get_logger, setup_logging
from drms.sla.application import SLAMonitoringService
from drms.sla.infrastructure import SlackClient, WorkflowClient, case_repository_scope
from drms.sla.interfaces import jobs_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database
    3. Build the SLA monitor and its Slack / workflow clients
    4. Start the scheduled jobs (runs one SLA pass immediately)

    SHUTDOWN:
    1. Stop the scheduled jobs
    2. Close HTTP clients
    3. Close database connections
    """
    settings: Settings = app.state.settings

    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Case Service", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()

    slack_client = SlackClient(settings)
    workflow_client = WorkflowClient(settings)

    sla_monitoring_service = SLAMonitoringService(
        repository_scope=case_repository_scope,
        notifier=slack_client,
        workflow_client=workflow_client,
        settings=settings
    )

    scheduled_jobs = ScheduledJobsService(
        sla_monitoring_service,
        settings=settings,
        metrics_exporter=get_grafana_exporter()
    )
    app.state.scheduled_jobs = scheduled_jobs

    await scheduled_jobs.start()

    logger.info("Case Service started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Case Service")

    scheduled_jobs.shutdown()
    await slack_client.close()
    await workflow_client.close()
    await close_database()

    logger.info("Case Service shutdown complete")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="DRMS Case Service",
        description="""
    ## Device Repair Case Service - Scheduled Jobs

    ### SLA Monitoring

    **Endpoints:**
    - `POST /api/jobs/sla-monitoring/run` - Run one SLA monitoring pass now
    - `GET /api/jobs/status` - State of the scheduled SLA monitoring job

    **Behaviour:**
    - One pass at startup, then every `SLA_CHECK_INTERVAL_MINUTES`
    - Compliance per case: `on_track`, `at_risk`, `breached`
    - Escalation rules logged, notified to Slack and forwarded to the workflow service
    """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.settings = settings

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Added last runs first: correlation id is set before logging reads it
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    register_exception_handlers(app)

    app.include_router(jobs_router)

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Health check for load balancers and orchestrators."""
        scheduled_jobs: Optional[ScheduledJobsService] = getattr(
            request.app.state, "scheduled_jobs", None
        )

        checks = {
            "database": "connected",
            "sla_monitoring": "running" if scheduled_jobs and scheduled_jobs.is_running else "stopped",
        }

        try:
            async with get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (RuntimeError, SQLAlchemyError, OSError) as e:
            logger.warning("Database health check failed", extra={"error": str(e)})
            checks["database"] = "unavailable"

        return {
            "status": "healthy" if checks["database"] == "connected" else "degraded",
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": checks
        }

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": "Case Service",
            "version": settings.app_version,
            "docs": "/docs",
            "health": "/health",
            "endpoints": [
                "POST /api/jobs/sla-monitoring/run - Run SLA monitoring now",
                "GET /api/jobs/status - Scheduled job status"
            ]
        }

    return app


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "drms.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
