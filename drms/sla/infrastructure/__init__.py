"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for SLA monitoring:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer
- External: External service integrations (Slack, workflow service)
"""

from drms.sla.infrastructure.models import (
    CustomerModel,
    SLAConfigurationModel,
    WorkflowConfigurationModel,
    RepairCaseModel,
    CaseEscalationModel,
)
from drms.sla.infrastructure.repositories import (
    SQLAlchemyCaseRepository,
    case_repository_scope,
)
from drms.sla.infrastructure.external import (
    CircuitBreaker,
    CircuitState,
    SlackClient,
    SlackEscalationMessage,
    WorkflowClient,
)

__all__ = [
    "CustomerModel",
    "SLAConfigurationModel",
    "WorkflowConfigurationModel",
    "RepairCaseModel",
    "CaseEscalationModel",
    "SQLAlchemyCaseRepository",
    "case_repository_scope",
    "CircuitBreaker",
    "CircuitState",
    "SlackClient",
    "SlackEscalationMessage",
    "WorkflowClient",
]
