"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for the tables the SLA monitor reads and writes.

The schema itself is owned by drms.migrations; these mappings cover the
columns the monitor touches and must stay in step with the migrations.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from drms.config import CaseStatus, CustomerTier, Priority, ServiceType, SLAState
from drms.infrastructure.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CustomerModel(Base):
    """Maps to the 'customers' table."""
    __tablename__ = "customers"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    tier: Mapped[CustomerTier] = mapped_column(String(20), nullable=False, default=CustomerTier.STANDARD)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class SLAConfigurationModel(Base):
    """Maps to the 'sla_configurations' table."""
    __tablename__ = "sla_configurations"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_tier: Mapped[CustomerTier] = mapped_column(String(50), nullable=False)
    service_type: Mapped[ServiceType] = mapped_column(String(100), nullable=False)
    response_time_hours: Mapped[float] = mapped_column(Float, nullable=False)
    resolution_time_hours: Mapped[float] = mapped_column(Float, nullable=False)

    # Lists of rule objects; validated into value objects on read
    escalation_rules: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    penalty_rules: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class WorkflowConfigurationModel(Base):
    """Maps to the 'workflow_configurations' table."""
    __tablename__ = "workflow_configurations"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    service_type: Mapped[ServiceType] = mapped_column(String(100), nullable=False, default=ServiceType.REPAIR)
    sla_id: Mapped[Optional[UUID]] = mapped_column(Uuid, ForeignKey("sla_configurations.id"), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class RepairCaseModel(Base):
    """Maps to the 'repair_cases' table."""
    __tablename__ = "repair_cases"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    case_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)

    customer_id: Mapped[Optional[UUID]] = mapped_column(Uuid, ForeignKey("customers.id"), nullable=True)
    device_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    workflow_configuration_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("workflow_configurations.id"), nullable=True
    )
    workflow_instance_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    sla_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    assigned_technician_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)

    service_type: Mapped[ServiceType] = mapped_column(String(50), nullable=False, default=ServiceType.REPAIR)
    status: Mapped[CaseStatus] = mapped_column(String(50), nullable=False, default=CaseStatus.CREATED)
    priority: Mapped[Priority] = mapped_column(String(20), nullable=False, default=Priority.MEDIUM)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    estimated_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # SLA monitoring
    last_sla_check: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sla_status: Mapped[SLAState] = mapped_column(String(20), nullable=False, default=SLAState.ON_TRACK)
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    escalated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class CaseEscalationModel(Base):
    """Maps to the 'case_escalations' table."""
    __tablename__ = "case_escalations"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    case_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("repair_cases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False)
    escalation_type: Mapped[str] = mapped_column(String(50), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sla_status: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    escalated_by: Mapped[str] = mapped_column(String(100), nullable=False, default="system")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
