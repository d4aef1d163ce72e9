"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: The monitoring service evaluates cases; side effects
  go through the notifier and workflow client it is given
- Dependency Inversion: Depend on abstractions (repositories, clients), not
  concrete implementations
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import AsyncContextManager, Callable, List, Optional
from uuid import UUID

from drms.config import Settings, SLAState, get_settings
from drms.core import RepositoryException, SLAEvaluationException
from drms.sla.domain import (
    CaseEscalationContext, MonitoredCase, SLACalculator, SLAConfiguration,
    SLAMonitoringResult, SLAStatus, hours_between
)
from drms.shared.infrastructure.logging import get_logger


# ========== Repository Interfaces (Dependency Inversion) ==========

class ICaseRepository(ABC):
    """Interface for the case data the SLA monitor reads and writes."""

    @abstractmethod
    async def list_active_cases(self, checked_before: datetime) -> List[MonitoredCase]:
        """List open cases not checked since `checked_before`, most urgent first."""

    @abstractmethod
    async def get_sla_configuration(self, case: MonitoredCase) -> Optional[SLAConfiguration]:
        """Resolve the SLA configuration that applies to a case."""

    @abstractmethod
    async def get_last_escalation_level(self, case_id: UUID) -> int:
        """Highest escalation level recorded for a case (0 if none)."""

    @abstractmethod
    async def record_escalation(
        self,
        case_id: UUID,
        escalation_level: int,
        escalation_type: str,
        sla_status: SLAStatus
    ) -> None:
        """Append an entry to the escalation log."""

    @abstractmethod
    async def update_case_escalation(
        self,
        case_id: UUID,
        sla_status: str,
        escalation_level: int,
        checked_at: datetime
    ) -> None:
        """Stamp the case with its new SLA state and escalation level."""

    @abstractmethod
    def savepoint(self) -> AsyncContextManager:
        """Nested transaction; rolled back alone if the block raises."""


class IEscalationNotifier(ABC):
    """Interface for escalation notifications (Slack)."""

    @abstractmethod
    async def send_escalation(
        self,
        case: MonitoredCase,
        result: SLAMonitoringResult,
        escalation_type: str
    ) -> bool:
        """Notify about an escalation. Returns True if delivered."""


class IWorkflowEscalationClient(ABC):
    """Interface for forwarding escalations to the workflow service."""

    @abstractmethod
    async def escalate(self, context: CaseEscalationContext) -> None:
        """Trigger the escalation path of a workflow instance."""


RepositoryScope = Callable[[], AsyncContextManager[ICaseRepository]]


# ========== Application Services ==========

class SLAMonitoringService:
    """
    Service for evaluating SLA compliance of open repair cases.

    One call to monitor_sla_compliance() is one monitoring pass. The pass
    works in a single repository scope (one session); every case is
    evaluated inside its own savepoint so a failing case is skipped
    without losing the rest of the pass.
    """

    def __init__(
        self,
        repository_scope: RepositoryScope,
        notifier: Optional[IEscalationNotifier] = None,
        workflow_client: Optional[IWorkflowEscalationClient] = None,
        settings: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self._repository_scope = repository_scope
        self._notifier = notifier
        self._workflow_client = workflow_client
        self._settings = settings or get_settings()
        self._logger = logger or get_logger(__name__)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def check_interval(self) -> timedelta:
        return timedelta(minutes=self._settings.sla_check_interval_minutes)

    async def monitor_sla_compliance(self) -> List[SLAMonitoringResult]:
        """
        Run one monitoring pass over all active cases.

        Returns:
            List of per-case results, in evaluation order

        Raises:
            SLAEvaluationException: If the active cases cannot be loaded
        """
        if not self._settings.enable_sla_monitoring:
            self._logger.debug("SLA monitoring disabled, skipping pass")
            return []

        now = self._clock()
        results: List[SLAMonitoringResult] = []

        async with self._repository_scope() as repository:
            try:
                active_cases = await repository.list_active_cases(now - self.check_interval)
            except RepositoryException as exc:
                raise SLAEvaluationException(
                    "Failed to load cases for SLA monitoring",
                    details=exc.details
                ) from exc

            self._logger.info(
                "Checking SLA compliance",
                extra={"active_cases": len(active_cases)}
            )

            for case in active_cases:
                try:
                    async with repository.savepoint():
                        result = await self.check_case_sla_compliance(repository, case, now)
                except Exception:
                    self._logger.exception(
                        "Error checking SLA compliance for case",
                        extra={"case_id": str(case.id), "case_number": case.case_number}
                    )
                    continue

                results.append(result)

                if result.escalation_triggered:
                    await self._handle_sla_escalation(repository, case, result, now)

        return results

    async def check_case_sla_compliance(
        self,
        repository: ICaseRepository,
        case: MonitoredCase,
        now: datetime
    ) -> SLAMonitoringResult:
        """Evaluate one case against its SLA configuration."""
        sla_config = await repository.get_sla_configuration(case)

        if sla_config is None:
            self._logger.debug(
                "No SLA configuration for case",
                extra={"case_id": str(case.id), "customer_tier": case.customer_tier,
                       "service_type": case.service_type}
            )
            return SLAMonitoringResult(
                case_id=case.id,
                sla_status=SLAStatus(case_id=case.id, status=SLAState.ON_TRACK)
            )

        hours_elapsed = hours_between(case.created_at, now)

        response = SLACalculator.check_response_time(
            case.status, case.created_at, case.assigned_at, case.updated_at,
            sla_config.response_time_hours, hours_elapsed
        )
        resolution = SLACalculator.check_resolution_time(
            case.status, case.created_at, case.completed_at,
            sla_config.resolution_time_hours, hours_elapsed
        )
        overall = SLACalculator.determine_overall_status(
            response, resolution, hours_elapsed,
            self._settings.sla_at_risk_threshold
        )

        penalty_amount = 0.0
        if self._settings.sla_penalty_calculation_enabled:
            case_value = case.estimated_value or self._settings.default_case_value
            penalty_amount = SLACalculator.calculate_penalty(
                sla_config.penalty_rules, response, resolution, hours_elapsed, case_value
            )

        last_level = await repository.get_last_escalation_level(case.id)
        escalation_level = SLACalculator.find_escalation_level(
            sla_config.escalation_rules, last_level, hours_elapsed
        )

        sla_status = SLAStatus(
            case_id=case.id,
            status=overall,
            sla_id=sla_config.id,
            response_time_target=sla_config.response_time_hours,
            resolution_time_target=sla_config.resolution_time_hours,
            response_time_actual=response.actual_hours,
            resolution_time_actual=resolution.actual_hours,
            breach_reason=SLACalculator.breach_reason(response, resolution),
            penalty_amount=penalty_amount,
        )

        return SLAMonitoringResult(
            case_id=case.id,
            sla_status=sla_status,
            escalation_triggered=escalation_level is not None,
            escalation_level=escalation_level,
            next_check_time=now + self.check_interval,
            hours_overdue=SLACalculator.hours_overdue(
                hours_elapsed,
                sla_config.response_time_hours,
                sla_config.resolution_time_hours
            ),
        )

    async def _handle_sla_escalation(
        self,
        repository: ICaseRepository,
        case: MonitoredCase,
        result: SLAMonitoringResult,
        now: datetime
    ) -> None:
        """
        Apply the side effects of a fired escalation.

        Workflow escalation, notification and persistence are independent:
        a failure in one is logged and the others still run.
        """
        if not self._settings.sla_escalation_enabled:
            self._logger.debug(
                "SLA escalation disabled, not applying escalation",
                extra={"case_id": str(case.id), "escalation_level": result.escalation_level}
            )
            return

        escalation_type = SLACalculator.escalation_type_for(result.sla_status.status)

        await self._escalate_workflow(case, result)

        if self._notifier is not None:
            try:
                await self._notifier.send_escalation(case, result, escalation_type)
            except Exception:
                self._logger.exception(
                    "Failed to send escalation notification",
                    extra={"case_id": str(case.id), "escalation_level": result.escalation_level}
                )

        try:
            async with repository.savepoint():
                await repository.record_escalation(
                    case.id, result.escalation_level, escalation_type, result.sla_status
                )
                await repository.update_case_escalation(
                    case.id, result.sla_status.status, result.escalation_level, now
                )
        except Exception:
            self._logger.exception(
                "Failed to record SLA escalation",
                extra={"case_id": str(case.id), "escalation_level": result.escalation_level}
            )
            return

        self._logger.warning(
            "SLA escalation triggered",
            extra={
                "case_id": str(case.id),
                "case_number": case.case_number,
                "escalation_level": result.escalation_level,
                "escalation_type": escalation_type,
                "sla_status": result.sla_status.status,
                "hours_overdue": round(result.hours_overdue, 2),
            }
        )

    async def _escalate_workflow(self, case: MonitoredCase, result: SLAMonitoringResult) -> None:
        if self._workflow_client is None or not self._settings.enable_workflow_integration:
            return

        if case.workflow_instance_id is None:
            self._logger.debug(
                "Case has no workflow instance, skipping workflow escalation",
                extra={"case_id": str(case.id)}
            )
            return

        context = CaseEscalationContext(
            case_id=case.id,
            workflow_instance_id=case.workflow_instance_id,
            current_status=case.status,
            sla_breach_type=result.sla_status.status,
            hours_overdue=result.hours_overdue,
            priority=case.priority,
            assigned_technician_id=case.assigned_technician_id,
        )

        try:
            await self._workflow_client.escalate(context)
        except Exception as exc:
            self._logger.exception(
                "Workflow escalation failed",
                extra={"case_id": str(case.id), "error": str(exc)}
            )
