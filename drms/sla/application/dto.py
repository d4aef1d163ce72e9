"""
SLA Application DTOs
=====================

Data Transfer Objects for the SLA monitoring job surfaces.

These Pydantic models shape what the scheduler returns to its callers
(the admin HTTP routes, the health check) and how run summaries are logged.
"""

from datetime import datetime
from typing import List, Literal, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel, Field

from drms.sla.domain import SLAMonitoringResult, SLAStatus


SLAStateStr = Literal["on_track", "at_risk", "breached"]


class SLAStatusResponse(BaseModel):
    """Compliance of a case against its SLA configuration."""
    case_id: UUID
    sla_id: Optional[UUID] = None
    status: SLAStateStr
    response_time_target: float = Field(..., description="Response target in hours")
    response_time_actual: Optional[float] = Field(None, description="Actual response time in hours")
    resolution_time_target: float = Field(..., description="Resolution target in hours")
    resolution_time_actual: Optional[float] = Field(None, description="Actual resolution time in hours")
    breach_reason: Optional[str] = None
    penalty_amount: float = 0

    @classmethod
    def from_domain(cls, sla_status: SLAStatus) -> "SLAStatusResponse":
        return cls(
            case_id=sla_status.case_id,
            sla_id=sla_status.sla_id,
            status=sla_status.status,
            response_time_target=sla_status.response_time_target,
            response_time_actual=sla_status.response_time_actual,
            resolution_time_target=sla_status.resolution_time_target,
            resolution_time_actual=sla_status.resolution_time_actual,
            breach_reason=sla_status.breach_reason,
            penalty_amount=sla_status.penalty_amount,
        )


class SLAMonitoringResultResponse(BaseModel):
    """Per-case result of a monitoring pass."""
    case_id: UUID
    sla_status: SLAStatusResponse
    escalation_triggered: bool
    escalation_level: Optional[int] = None
    next_check_time: Optional[datetime] = None

    @classmethod
    def from_domain(cls, result: SLAMonitoringResult) -> "SLAMonitoringResultResponse":
        return cls(
            case_id=result.case_id,
            sla_status=SLAStatusResponse.from_domain(result.sla_status),
            escalation_triggered=result.escalation_triggered,
            escalation_level=result.escalation_level,
            next_check_time=result.next_check_time,
        )


class SLAMonitoringSummary(BaseModel):
    """Counts describing one monitoring pass."""
    total_cases_checked: int = Field(..., description="Cases evaluated this pass")
    escalations_triggered: int = Field(..., description="Cases whose escalation fired")
    breached_cases: int = Field(..., description="Cases in breached state")
    at_risk_cases: int = Field(..., description="Cases in at_risk state")
    duration_ms: int = Field(..., description="Wall time of the pass")
    timestamp: datetime = Field(..., description="When the pass finished")

    @classmethod
    def from_results(
        cls,
        results: Sequence[SLAMonitoringResult],
        duration_ms: int,
        timestamp: datetime
    ) -> "SLAMonitoringSummary":
        """Count breaches, risks and escalations; categories may overlap."""
        return cls(
            total_cases_checked=len(results),
            escalations_triggered=sum(1 for r in results if r.escalation_triggered),
            breached_cases=sum(1 for r in results if r.is_breached),
            at_risk_cases=sum(1 for r in results if r.is_at_risk),
            duration_ms=duration_ms,
            timestamp=timestamp,
        )

    @property
    def has_issues(self) -> bool:
        return self.breached_cases > 0 or self.escalations_triggered > 0


class SLAMonitoringRunResponse(BaseModel):
    """Response of a manual monitoring run."""
    summary: SLAMonitoringSummary
    results: List[SLAMonitoringResultResponse] = Field(default_factory=list)


class SLAMonitoringStatus(BaseModel):
    """Current state of the SLA monitoring job."""
    enabled: bool = Field(..., description="Monitoring enabled by configuration")
    running: bool = Field(..., description="Recurring job currently armed")
    interval_minutes: float = Field(..., description="Configured interval")
    last_run: Optional[SLAMonitoringSummary] = Field(None, description="Most recent completed pass")


class JobStatusResponse(BaseModel):
    """Status of every scheduled job hosted by the case service."""
    sla_monitoring: SLAMonitoringStatus
