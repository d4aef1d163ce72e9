"""
SLA Application Layer
======================

Application layer for SLA monitoring module.

Contains:
- Services: Orchestrate business logic and coordinate with repositories
- DTOs: Data transfer objects for the job surfaces

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from drms.sla.application.dto import (
    SLAStatusResponse,
    SLAMonitoringResultResponse,
    SLAMonitoringSummary,
    SLAMonitoringRunResponse,
    SLAMonitoringStatus,
    JobStatusResponse,
)
from drms.sla.application.services import (
    SLAMonitoringService,
    ICaseRepository,
    IEscalationNotifier,
    IWorkflowEscalationClient,
    RepositoryScope,
)

__all__ = [
    # DTOs
    "SLAStatusResponse",
    "SLAMonitoringResultResponse",
    "SLAMonitoringSummary",
    "SLAMonitoringRunResponse",
    "SLAMonitoringStatus",
    "JobStatusResponse",
    # Services
    "SLAMonitoringService",
    # Interfaces
    "ICaseRepository",
    "IEscalationNotifier",
    "IWorkflowEscalationClient",
    "RepositoryScope",
]
