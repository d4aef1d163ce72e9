"""
SLA Infrastructure Repositories
=================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how the SLA monitor reads
cases and SLA configurations and records escalations.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, List, Optional
from uuid import UUID

from sqlalchemy import case as sql_case, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from drms.config import (
    CLOSED_CASE_STATUSES, CustomerTier, PRIORITY_RANK, ServiceType
)
from drms.core import RepositoryException
from drms.infrastructure.database import get_session_context
from drms.sla.application.services import ICaseRepository
from drms.sla.domain import MonitoredCase, SLAConfiguration, SLAStatus, as_utc
from drms.sla.infrastructure.models import (
    CaseEscalationModel, CustomerModel, RepairCaseModel,
    SLAConfigurationModel, WorkflowConfigurationModel
)


def _optional_utc(value: Optional[datetime]) -> Optional[datetime]:
    return as_utc(value) if value is not None else None


class SQLAlchemyCaseRepository(ICaseRepository):
    """
    SQLAlchemy implementation of the case repository.

    Bound to one session for the length of a monitoring pass; the caller
    owns commit and rollback.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def list_active_cases(self, checked_before: datetime) -> List[MonitoredCase]:
        """List open cases due for a check, most urgent and oldest first."""
        priority_rank = sql_case(
            {priority: rank for priority, rank in PRIORITY_RANK.items()},
            value=RepairCaseModel.priority,
            else_=0
        )

        stmt = (
            select(
                RepairCaseModel,
                CustomerModel.tier,
                WorkflowConfigurationModel.service_type,
            )
            .outerjoin(CustomerModel, RepairCaseModel.customer_id == CustomerModel.id)
            .outerjoin(
                WorkflowConfigurationModel,
                RepairCaseModel.workflow_configuration_id == WorkflowConfigurationModel.id
            )
            .where(
                RepairCaseModel.status.not_in(CLOSED_CASE_STATUSES),
                RepairCaseModel.deleted_at.is_(None),
                or_(
                    RepairCaseModel.last_sla_check.is_(None),
                    RepairCaseModel.last_sla_check < checked_before,
                ),
            )
            .order_by(priority_rank.desc(), RepairCaseModel.created_at.asc())
        )

        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as exc:
            raise RepositoryException(
                "Failed to load active cases",
                details={"error": str(exc)}
            ) from exc

        return [
            self._to_entity(model, tier, workflow_service_type)
            for model, tier, workflow_service_type in result.all()
        ]

    async def get_sla_configuration(self, case: MonitoredCase) -> Optional[SLAConfiguration]:
        """
        Resolve the SLA configuration for a case.

        The SLA linked to the case's workflow configuration wins; otherwise
        the highest-priority active SLA for the customer tier and service type.
        """
        model = None

        if case.workflow_configuration_id is not None:
            stmt = (
                select(SLAConfigurationModel)
                .join(
                    WorkflowConfigurationModel,
                    WorkflowConfigurationModel.sla_id == SLAConfigurationModel.id
                )
                .where(
                    WorkflowConfigurationModel.id == case.workflow_configuration_id,
                    SLAConfigurationModel.is_active.is_(True),
                )
            )
            result = await self._session.execute(stmt)
            model = result.scalar_one_or_none()

        if model is None:
            stmt = (
                select(SLAConfigurationModel)
                .where(
                    SLAConfigurationModel.customer_tier == (case.customer_tier or CustomerTier.STANDARD),
                    SLAConfigurationModel.service_type == (case.service_type or ServiceType.REPAIR),
                    SLAConfigurationModel.is_active.is_(True),
                )
                .order_by(SLAConfigurationModel.priority.desc())
                .limit(1)
            )
            result = await self._session.execute(stmt)
            model = result.scalar_one_or_none()

        if model is None:
            return None

        return SLAConfiguration(
            id=model.id,
            name=model.name,
            customer_tier=model.customer_tier,
            service_type=model.service_type,
            response_time_hours=model.response_time_hours,
            resolution_time_hours=model.resolution_time_hours,
            escalation_rules=model.escalation_rules or [],
            penalty_rules=model.penalty_rules or [],
            is_active=model.is_active,
        )

    async def get_last_escalation_level(self, case_id: UUID) -> int:
        stmt = select(func.max(CaseEscalationModel.escalation_level)).where(
            CaseEscalationModel.case_id == case_id
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() or 0

    async def record_escalation(
        self,
        case_id: UUID,
        escalation_level: int,
        escalation_type: str,
        sla_status: SLAStatus
    ) -> None:
        """Append an escalation log entry with a snapshot of the SLA status."""
        model = CaseEscalationModel(
            case_id=case_id,
            escalation_level=escalation_level,
            escalation_type=escalation_type,
            reason=sla_status.breach_reason or f"SLA {sla_status.status}",
            sla_status=sla_status.to_dict(),
            escalated_by="system",
            created_at=datetime.now(timezone.utc),
        )

        self._session.add(model)
        await self._session.flush()

    async def update_case_escalation(
        self,
        case_id: UUID,
        sla_status: str,
        escalation_level: int,
        checked_at: datetime
    ) -> None:
        stmt = (
            update(RepairCaseModel)
            .where(RepairCaseModel.id == case_id)
            .values(
                last_sla_check=checked_at,
                sla_status=sla_status,
                escalation_level=escalation_level,
                escalated_at=checked_at,
                updated_at=checked_at,
            )
        )
        result = await self._session.execute(stmt)

        if result.rowcount == 0:
            raise RepositoryException(f"Case {case_id} not found")

    @asynccontextmanager
    async def savepoint(self) -> AsyncGenerator[None, None]:
        async with self._session.begin_nested():
            yield

    @staticmethod
    def _to_entity(
        model: RepairCaseModel,
        tier: Optional[str],
        workflow_service_type: Optional[str]
    ) -> MonitoredCase:
        return MonitoredCase(
            id=model.id,
            case_number=model.case_number,
            status=model.status,
            priority=model.priority,
            created_at=as_utc(model.created_at),
            customer_tier=tier or CustomerTier.STANDARD,
            service_type=workflow_service_type or model.service_type or ServiceType.REPAIR,
            updated_at=_optional_utc(model.updated_at),
            assigned_at=_optional_utc(model.assigned_at),
            completed_at=_optional_utc(model.completed_at),
            last_sla_check=_optional_utc(model.last_sla_check),
            device_id=model.device_id,
            sla_id=model.sla_id,
            workflow_configuration_id=model.workflow_configuration_id,
            workflow_instance_id=model.workflow_instance_id,
            assigned_technician_id=model.assigned_technician_id,
            estimated_value=model.estimated_value,
            escalation_level=model.escalation_level or 0,
        )


@asynccontextmanager
async def case_repository_scope(
    session_maker: Optional[async_sessionmaker[AsyncSession]] = None
) -> AsyncGenerator[SQLAlchemyCaseRepository, None]:
    """
    One session-backed repository per monitoring pass.

    Commits when the pass completes, rolls back when it raises.
    """
    async with get_session_context(session_maker) as session:
        yield SQLAlchemyCaseRepository(session)
