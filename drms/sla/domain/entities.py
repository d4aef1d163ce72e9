"""
SLA Domain Entities
====================

Pure Python domain entities for SLA monitoring.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from drms.config import (
    CaseStatus, CLOSED_CASE_STATUSES, CustomerTier, Priority,
    ServiceType, SLAState
)


@dataclass
class MonitoredCase:
    """
    A repair case as seen by the SLA monitor.

    Carries the case columns plus the customer tier and service type the
    monitor needs to pick an SLA configuration.
    """

    id: UUID
    case_number: str
    status: CaseStatus
    priority: Priority
    created_at: datetime

    customer_tier: CustomerTier = CustomerTier.STANDARD
    service_type: ServiceType = ServiceType.REPAIR

    updated_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_sla_check: Optional[datetime] = None

    device_id: Optional[UUID] = None
    sla_id: Optional[UUID] = None
    workflow_configuration_id: Optional[UUID] = None
    workflow_instance_id: Optional[UUID] = None
    assigned_technician_id: Optional[UUID] = None
    estimated_value: Optional[float] = None
    escalation_level: int = 0

    @property
    def is_active(self) -> bool:
        """Check if the case is still being worked."""
        return self.status not in CLOSED_CASE_STATUSES


@dataclass
class SLAStatus:
    """Compliance of one case against its SLA configuration."""

    case_id: UUID
    status: SLAState
    sla_id: Optional[UUID] = None
    response_time_target: float = 0
    resolution_time_target: float = 0
    response_time_actual: Optional[float] = None
    resolution_time_actual: Optional[float] = None
    breach_reason: Optional[str] = None
    penalty_amount: float = 0

    def to_dict(self) -> dict:
        """Convert to a JSON-compatible dict (escalation log snapshot)."""
        return {
            "case_id": str(self.case_id),
            "sla_id": str(self.sla_id) if self.sla_id else None,
            "status": self.status,
            "response_time_target": self.response_time_target,
            "response_time_actual": self.response_time_actual,
            "resolution_time_target": self.resolution_time_target,
            "resolution_time_actual": self.resolution_time_actual,
            "breach_reason": self.breach_reason,
            "penalty_amount": self.penalty_amount,
        }


@dataclass
class SLAMonitoringResult:
    """
    Per-case outcome of one monitoring pass.

    Created fresh every pass; only escalation side effects are persisted.
    """

    case_id: UUID
    sla_status: SLAStatus
    escalation_triggered: bool = False
    escalation_level: Optional[int] = None
    next_check_time: Optional[datetime] = None
    hours_overdue: float = 0.0

    @property
    def is_breached(self) -> bool:
        return self.sla_status.status == SLAState.BREACHED

    @property
    def is_at_risk(self) -> bool:
        return self.sla_status.status == SLAState.AT_RISK


@dataclass
class CaseEscalationContext:
    """Payload handed to the workflow service when a case escalates."""

    case_id: UUID
    workflow_instance_id: UUID
    current_status: str
    sla_breach_type: str
    hours_overdue: float
    priority: str
    assigned_technician_id: Optional[UUID] = None

    def to_dict(self) -> dict:
        return {
            "case_id": str(self.case_id),
            "workflow_instance_id": str(self.workflow_instance_id),
            "current_status": self.current_status,
            "sla_breach_type": self.sla_breach_type,
            "hours_overdue": round(self.hours_overdue, 2),
            "priority": self.priority,
            "assigned_technician_id": (
                str(self.assigned_technician_id) if self.assigned_technician_id else None
            ),
        }
