"""
SLA Domain Layer
================

Domain layer for SLA monitoring module.

Contains:
- Entities: MonitoredCase, SLAStatus, SLAMonitoringResult, CaseEscalationContext
- Value Objects: SLAConfiguration and its escalation/penalty rules, ClockCheck
- Domain Services: Stateless business logic (SLACalculator)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from drms.sla.domain.entities import (
    CaseEscalationContext, MonitoredCase, SLAStatus, SLAMonitoringResult
)
from drms.sla.domain.value_objects import (
    ClockCheck,
    SLACalculator,
    SLAConfiguration,
    SLAEscalationRule,
    SLAPenaltyRule,
    as_utc,
    hours_between,
)

__all__ = [
    # Entities
    "CaseEscalationContext",
    "MonitoredCase",
    "SLAStatus",
    "SLAMonitoringResult",
    # Value Objects & Services
    "ClockCheck",
    "SLACalculator",
    "SLAConfiguration",
    "SLAEscalationRule",
    "SLAPenaltyRule",
    "as_utc",
    "hours_between",
]
