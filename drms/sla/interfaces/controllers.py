"""
Job Controllers (API Routes)
=============================

Admin routes for the scheduled SLA monitoring job.

Controllers are thin - they delegate to the ScheduledJobsService held in
app.state by the application lifespan.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from drms.jobs import ScheduledJobsService
from drms.shared.infrastructure.logging import get_logger
from drms.sla.application import JobStatusResponse, SLAMonitoringRunResponse

logger = get_logger(__name__)
router = APIRouter(prefix="/api/jobs", tags=["Scheduled Jobs"])


RUN_RESPONSE_EXAMPLE = {
    "summary": {
        "total_cases_checked": 3,
        "escalations_triggered": 1,
        "breached_cases": 1,
        "at_risk_cases": 1,
        "duration_ms": 42,
        "timestamp": "2024-01-15T10:00:00Z"
    },
    "results": [
        {
            "case_id": "123e4567-e89b-12d3-a456-426614174000",
            "sla_status": {
                "case_id": "123e4567-e89b-12d3-a456-426614174000",
                "sla_id": "9b2e4c1a-7d3f-4a51-b2d8-3f0c5e6a7b89",
                "status": "breached",
                "response_time_target": 4,
                "response_time_actual": 6.5,
                "resolution_time_target": 24,
                "resolution_time_actual": None,
                "breach_reason": "Response time exceeded",
                "penalty_amount": 50.0
            },
            "escalation_triggered": True,
            "escalation_level": 1,
            "next_check_time": "2024-01-15T10:15:00Z"
        }
    ]
}


def get_scheduled_jobs(request: Request) -> ScheduledJobsService:
    """Dependency: the scheduler created at startup."""
    scheduled_jobs = getattr(request.app.state, "scheduled_jobs", None)
    if scheduled_jobs is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scheduled jobs are not initialized"
        )
    return scheduled_jobs


@router.post(
    "/sla-monitoring/run",
    response_model=SLAMonitoringRunResponse,
    responses={
        200: {"content": {"application/json": {"example": RUN_RESPONSE_EXAMPLE}}},
        500: {"description": "The monitoring pass failed"}
    }
)
async def run_sla_monitoring(
    scheduled_jobs: ScheduledJobsService = Depends(get_scheduled_jobs)
) -> SLAMonitoringRunResponse:
    """
    Run one SLA monitoring pass now, outside the schedule.

    Runs even when the recurring job is disabled; the pass itself still
    honours ENABLE_SLA_MONITORING.
    """
    try:
        return await scheduled_jobs.run_manually()
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to run SLA monitoring"
        ) from exc


@router.get("/status", response_model=JobStatusResponse)
async def get_job_status(
    scheduled_jobs: ScheduledJobsService = Depends(get_scheduled_jobs)
) -> JobStatusResponse:
    """Current state of the scheduled jobs."""
    return JobStatusResponse(sla_monitoring=scheduled_jobs.get_status())
