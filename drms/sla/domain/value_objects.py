"""
SLA Value Objects
==================

Immutable value objects for the SLA domain and the pure calculation rules
applied to them.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from drms.config import (
    BreachType, CaseStatus, EscalationType, SLAState,
    UNRESPONDED_CASE_STATUSES, VALID_BREACH_TYPES, VALID_ESCALATION_TYPES
)


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC so they compare with aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def hours_between(start: datetime, end: datetime) -> float:
    return (as_utc(end) - as_utc(start)).total_seconds() / 3600


class SLAEscalationRule(BaseModel):
    """A single escalation step of an SLA configuration."""
    level: int = Field(ge=1, description="Escalation level (1-based)")
    trigger_after_hours: float = Field(ge=0, description="Case age that triggers this level")
    escalation_type: str = Field(default=EscalationType.WARNING)
    notify_roles: List[str] = Field(default_factory=list)
    actions: List[str] = Field(default_factory=list)

    @field_validator("escalation_type")
    @classmethod
    def validate_escalation_type(cls, v: str) -> str:
        if v not in VALID_ESCALATION_TYPES:
            raise ValueError(f"escalation_type must be one of {VALID_ESCALATION_TYPES}")
        return v


class SLAPenaltyRule(BaseModel):
    """Penalty applied when one SLA clock is breached."""
    breach_type: str
    penalty_percentage: float = Field(ge=0, le=100)
    max_penalty_amount: Optional[float] = Field(default=None, ge=0)
    grace_period_hours: float = Field(default=0, ge=0)

    @field_validator("breach_type")
    @classmethod
    def validate_breach_type(cls, v: str) -> str:
        if v not in VALID_BREACH_TYPES:
            raise ValueError(f"breach_type must be one of {VALID_BREACH_TYPES}")
        return v


class SLAConfiguration(BaseModel):
    """
    SLA definition a case is measured against.

    Loaded from the sla_configurations table; never mutated during a
    monitoring pass.
    """
    id: UUID
    name: str
    customer_tier: str
    service_type: str
    response_time_hours: float = Field(gt=0)
    resolution_time_hours: float = Field(gt=0)
    escalation_rules: List[SLAEscalationRule] = Field(default_factory=list)
    penalty_rules: List[SLAPenaltyRule] = Field(default_factory=list)
    is_active: bool = True

    model_config = {"frozen": True}

    @field_validator("escalation_rules")
    @classmethod
    def sort_escalation_rules(cls, v: List[SLAEscalationRule]) -> List[SLAEscalationRule]:
        """Rules are evaluated lowest level first."""
        return sorted(v, key=lambda rule: rule.level)


@dataclass(frozen=True)
class ClockCheck:
    """Outcome of checking one SLA clock (response or resolution)."""
    breached: bool
    target_hours: float
    actual_hours: Optional[float] = None

    def consumed_hours(self, hours_elapsed: float) -> float:
        """Hours counted against the target: the actual figure once known."""
        return self.actual_hours if self.actual_hours is not None else hours_elapsed

    def overdue_hours(self, hours_elapsed: float) -> float:
        return max(0.0, self.consumed_hours(hours_elapsed) - self.target_hours)


class SLACalculator:
    """
    Pure functions for SLA compliance calculations.

    Stateless utility class: every rule the monitor applies to a case lives
    here so it can be tested without a database.
    """

    @staticmethod
    def check_response_time(
        status: str,
        created_at: datetime,
        assigned_at: Optional[datetime],
        updated_at: Optional[datetime],
        target_hours: float,
        hours_elapsed: float
    ) -> ClockCheck:
        """
        Check the response SLA clock.

        A case counts as responded to once it has left the created/open
        states; the response moment is its assignment time, falling back
        to its last update.
        """
        if status not in UNRESPONDED_CASE_STATUSES:
            first_response_at = assigned_at or updated_at
            actual_hours = (
                hours_between(created_at, first_response_at)
                if first_response_at else None
            )
            return ClockCheck(
                breached=actual_hours is not None and actual_hours > target_hours,
                target_hours=target_hours,
                actual_hours=actual_hours
            )

        return ClockCheck(breached=hours_elapsed > target_hours, target_hours=target_hours)

    @staticmethod
    def check_resolution_time(
        status: str,
        created_at: datetime,
        completed_at: Optional[datetime],
        target_hours: float,
        hours_elapsed: float
    ) -> ClockCheck:
        """Check the resolution SLA clock."""
        if status == CaseStatus.COMPLETED:
            actual_hours = (
                hours_between(created_at, completed_at)
                if completed_at else hours_elapsed
            )
            return ClockCheck(
                breached=actual_hours > target_hours,
                target_hours=target_hours,
                actual_hours=actual_hours
            )

        return ClockCheck(breached=hours_elapsed > target_hours, target_hours=target_hours)

    @staticmethod
    def determine_overall_status(
        response: ClockCheck,
        resolution: ClockCheck,
        hours_elapsed: float,
        at_risk_threshold: float = 0.8
    ) -> str:
        """
        Combine both clocks into one compliance state.

        Returns:
            SLAState: breached if either clock is breached, at_risk if either
            clock has consumed more than the threshold, on_track otherwise
        """
        if response.breached or resolution.breached:
            return SLAState.BREACHED

        for clock in (response, resolution):
            if clock.target_hours <= 0:
                continue
            if clock.consumed_hours(hours_elapsed) / clock.target_hours > at_risk_threshold:
                return SLAState.AT_RISK

        return SLAState.ON_TRACK

    @staticmethod
    def breach_reason(response: ClockCheck, resolution: ClockCheck) -> Optional[str]:
        if response.breached:
            return "Response time exceeded"
        if resolution.breached:
            return "Resolution time exceeded"
        return None

    @staticmethod
    def find_escalation_level(
        rules: List[SLAEscalationRule],
        last_escalation_level: int,
        hours_elapsed: float
    ) -> Optional[int]:
        """
        Find the escalation level that should fire now, if any.

        Only levels above the last recorded one are considered, so each
        level fires at most once per case.
        """
        for rule in sorted(rules, key=lambda r: r.level):
            if rule.level > last_escalation_level and hours_elapsed >= rule.trigger_after_hours:
                return rule.level
        return None

    @staticmethod
    def calculate_penalty(
        rules: List[SLAPenaltyRule],
        response: ClockCheck,
        resolution: ClockCheck,
        hours_elapsed: float,
        case_value: float
    ) -> float:
        """
        Sum the penalties of every breached clock past its grace period.

        Each penalty is a percentage of the case value, optionally capped.
        """
        total = 0.0

        for rule in rules:
            clock = response if rule.breach_type == BreachType.RESPONSE else resolution
            if not clock.breached:
                continue
            if clock.overdue_hours(hours_elapsed) <= rule.grace_period_hours:
                continue

            penalty = case_value * rule.penalty_percentage / 100
            if rule.max_penalty_amount is not None:
                penalty = min(penalty, rule.max_penalty_amount)
            total += penalty

        return total

    @staticmethod
    def escalation_type_for(sla_state: str) -> str:
        if sla_state == SLAState.BREACHED:
            return EscalationType.BREACH
        return EscalationType.WARNING

    @staticmethod
    def hours_overdue(
        hours_elapsed: float,
        response_target_hours: float,
        resolution_target_hours: float
    ) -> float:
        """Hours past the tighter of the two targets (0 when neither is set)."""
        targets = [t for t in (response_target_hours, resolution_target_hours) if t]
        if not targets:
            return 0.0
        return max(0.0, hours_elapsed - min(targets))
