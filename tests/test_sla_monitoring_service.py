"""Tests for SLAMonitoringService against a real (SQLite) database and fakes."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import select

from drms.config import CaseStatus, CustomerTier, EscalationType, Priority, ServiceType, SLAState
from drms.core import RepositoryException, SLAEvaluationException, WorkflowServiceException
from drms.sla.application import SLAMonitoringService
from drms.sla.application.services import ICaseRepository
from drms.sla.domain import MonitoredCase, SLAConfiguration, as_utc
from drms.sla.infrastructure import case_repository_scope
from drms.sla.infrastructure.models import (
    CaseEscalationModel, CustomerModel, RepairCaseModel, SLAConfigurationModel
)

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeNotifier:
    def __init__(self):
        self.sent = []

    async def send_escalation(self, case, result, escalation_type):
        self.sent.append((case.case_number, result.escalation_level, escalation_type))
        return True


class FailingNotifier:
    def __init__(self, error):
        self.error = error
        self.attempts = 0

    async def send_escalation(self, case, result, escalation_type):
        self.attempts += 1
        raise self.error


class FakeWorkflowClient:
    def __init__(self, error=None):
        self.contexts = []
        self.error = error

    async def escalate(self, context):
        self.contexts.append(context)
        if self.error is not None:
            raise self.error


class FakeCaseRepository(ICaseRepository):
    """In-memory repository; per-case SLA lookups can be made to fail."""

    def __init__(self, cases, sla_config=None, failing_case_ids=(), load_error=None):
        self.cases = cases
        self.sla_config = sla_config
        self.failing_case_ids = set(failing_case_ids)
        self.load_error = load_error
        self.escalations = []
        self.updates = []

    async def list_active_cases(self, checked_before):
        if self.load_error is not None:
            raise self.load_error
        return list(self.cases)

    async def get_sla_configuration(self, case):
        if case.id in self.failing_case_ids:
            raise RepositoryException("lookup failed")
        return self.sla_config

    async def get_last_escalation_level(self, case_id):
        levels = [level for cid, level, _ in self.escalations if cid == case_id]
        return max(levels, default=0)

    async def record_escalation(self, case_id, escalation_level, escalation_type, sla_status):
        self.escalations.append((case_id, escalation_level, escalation_type))

    async def update_case_escalation(self, case_id, sla_status, escalation_level, checked_at):
        self.updates.append((case_id, sla_status, escalation_level, checked_at))

    @asynccontextmanager
    async def savepoint(self):
        yield


def fake_scope(repository):
    @asynccontextmanager
    async def scope():
        yield repository
    return scope


def make_case(case_number, age_hours, status=CaseStatus.OPEN, priority=Priority.MEDIUM, **kwargs):
    return MonitoredCase(
        id=uuid4(),
        case_number=case_number,
        status=status,
        priority=priority,
        created_at=NOW - timedelta(hours=age_hours),
        **kwargs
    )


def premium_sla(**overrides):
    values = dict(
        id=uuid4(),
        name="Premium repair",
        customer_tier=CustomerTier.PREMIUM,
        service_type=ServiceType.REPAIR,
        response_time_hours=4,
        resolution_time_hours=24,
        escalation_rules=[
            {"level": 1, "trigger_after_hours": 4, "escalation_type": EscalationType.BREACH},
            {"level": 2, "trigger_after_hours": 12, "escalation_type": EscalationType.CRITICAL},
        ],
        penalty_rules=[
            {"breach_type": "response", "penalty_percentage": 10, "max_penalty_amount": 50},
        ],
    )
    values.update(overrides)
    return SLAConfiguration(**values)


# ========== Database-backed pass ==========

@pytest.fixture
async def seeded(session_maker):
    """Premium and standard SLAs plus a mix of active and excluded cases."""
    premium = CustomerModel(id=uuid4(), name="Acme Hospital", tier=CustomerTier.PREMIUM)
    standard = CustomerModel(id=uuid4(), name="Corner Clinic", tier=CustomerTier.STANDARD)

    premium_config = SLAConfigurationModel(
        id=uuid4(),
        name="Premium repair",
        customer_tier=CustomerTier.PREMIUM,
        service_type=ServiceType.REPAIR,
        response_time_hours=4,
        resolution_time_hours=24,
        escalation_rules=[
            {"level": 1, "trigger_after_hours": 4, "escalation_type": "breach"},
            {"level": 2, "trigger_after_hours": 12, "escalation_type": "critical"},
        ],
        penalty_rules=[
            {"breach_type": "response", "penalty_percentage": 10, "max_penalty_amount": 50},
        ],
    )
    standard_config = SLAConfigurationModel(
        id=uuid4(),
        name="Standard repair",
        customer_tier=CustomerTier.STANDARD,
        service_type=ServiceType.REPAIR,
        response_time_hours=8,
        resolution_time_hours=24,
        escalation_rules=[],
        penalty_rules=[],
    )

    workflow_instance_id = uuid4()
    cases = {
        "urgent_breached": RepairCaseModel(
            id=uuid4(), case_number="CASE-A", customer_id=premium.id,
            status=CaseStatus.OPEN, priority=Priority.URGENT,
            estimated_value=1000, workflow_instance_id=workflow_instance_id,
            created_at=NOW - timedelta(hours=6), updated_at=NOW - timedelta(hours=6),
        ),
        "high_at_risk": RepairCaseModel(
            id=uuid4(), case_number="CASE-B", customer_id=standard.id,
            status=CaseStatus.IN_PROGRESS, priority=Priority.HIGH,
            created_at=NOW - timedelta(hours=20),
            assigned_at=NOW - timedelta(hours=19),
            updated_at=NOW - timedelta(hours=19),
        ),
        "completed": RepairCaseModel(
            id=uuid4(), case_number="CASE-C", customer_id=premium.id,
            status=CaseStatus.COMPLETED, priority=Priority.URGENT,
            created_at=NOW - timedelta(hours=50), updated_at=NOW - timedelta(hours=1),
            completed_at=NOW - timedelta(hours=1),
        ),
        "deleted": RepairCaseModel(
            id=uuid4(), case_number="CASE-D", customer_id=premium.id,
            status=CaseStatus.OPEN, priority=Priority.URGENT,
            created_at=NOW - timedelta(hours=50), updated_at=NOW - timedelta(hours=50),
            deleted_at=NOW - timedelta(hours=2),
        ),
        "recently_checked": RepairCaseModel(
            id=uuid4(), case_number="CASE-E", customer_id=premium.id,
            status=CaseStatus.OPEN, priority=Priority.URGENT,
            created_at=NOW - timedelta(hours=50), updated_at=NOW - timedelta(hours=50),
            last_sla_check=NOW - timedelta(minutes=5),
        ),
        "no_sla": RepairCaseModel(
            id=uuid4(), case_number="CASE-F", service_type=ServiceType.INSPECTION,
            status=CaseStatus.OPEN, priority=Priority.LOW,
            created_at=NOW - timedelta(hours=2), updated_at=NOW - timedelta(hours=2),
        ),
    }

    async with session_maker() as session:
        session.add_all([premium, standard, premium_config, standard_config])
        await session.flush()
        session.add_all(cases.values())
        await session.commit()

    return {"cases": cases, "workflow_instance_id": workflow_instance_id}


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def workflow_client():
    return FakeWorkflowClient()


@pytest.fixture
def build_service(session_maker, settings_factory, notifier, workflow_client):
    def build(now=NOW, **overrides):
        settings = settings_factory(enable_workflow_integration=True, **overrides)
        return SLAMonitoringService(
            repository_scope=lambda: case_repository_scope(session_maker),
            notifier=notifier,
            workflow_client=workflow_client,
            settings=settings,
            clock=lambda: now
        )
    return build


async def load_case(session_maker, case_id):
    async with session_maker() as session:
        return await session.get(RepairCaseModel, case_id)


async def load_escalations(session_maker):
    async with session_maker() as session:
        result = await session.execute(select(CaseEscalationModel))
        return result.scalars().all()


class TestMonitoringPass:
    async def test_evaluates_active_cases_in_priority_order(self, build_service, seeded):
        results = await build_service().monitor_sla_compliance()

        cases = seeded["cases"]
        assert [r.case_id for r in results] == [
            cases["urgent_breached"].id,
            cases["high_at_risk"].id,
            cases["no_sla"].id,
        ]

    async def test_compliance_states(self, build_service, seeded):
        results = await build_service().monitor_sla_compliance()
        by_case = {r.case_id: r for r in results}
        cases = seeded["cases"]

        breached = by_case[cases["urgent_breached"].id]
        assert breached.sla_status.status == SLAState.BREACHED
        assert breached.sla_status.breach_reason == "Response time exceeded"
        assert breached.sla_status.penalty_amount == pytest.approx(50)
        assert breached.escalation_triggered is True
        assert breached.escalation_level == 1
        assert breached.hours_overdue == pytest.approx(2)

        at_risk = by_case[cases["high_at_risk"].id]
        assert at_risk.sla_status.status == SLAState.AT_RISK
        assert at_risk.sla_status.response_time_actual == pytest.approx(1)
        assert at_risk.escalation_triggered is False

        no_sla = by_case[cases["no_sla"].id]
        assert no_sla.sla_status.status == SLAState.ON_TRACK
        assert no_sla.sla_status.sla_id is None

    async def test_escalation_recorded_and_case_stamped(self, build_service, seeded, session_maker):
        await build_service().monitor_sla_compliance()

        cases = seeded["cases"]
        escalations = await load_escalations(session_maker)
        assert len(escalations) == 1
        assert escalations[0].case_id == cases["urgent_breached"].id
        assert escalations[0].escalation_level == 1
        assert escalations[0].escalation_type == EscalationType.BREACH
        assert escalations[0].sla_status["status"] == SLAState.BREACHED

        escalated = await load_case(session_maker, cases["urgent_breached"].id)
        assert escalated.escalation_level == 1
        assert escalated.sla_status == SLAState.BREACHED
        assert as_utc(escalated.last_sla_check) == NOW

        untouched = await load_case(session_maker, cases["high_at_risk"].id)
        assert untouched.escalation_level == 0
        assert untouched.last_sla_check is None

    async def test_escalation_forwarded_to_notifier_and_workflow(
        self, build_service, seeded, notifier, workflow_client
    ):
        await build_service().monitor_sla_compliance()

        assert notifier.sent == [("CASE-A", 1, EscalationType.BREACH)]

        assert len(workflow_client.contexts) == 1
        context = workflow_client.contexts[0]
        assert context.case_id == seeded["cases"]["urgent_breached"].id
        assert context.workflow_instance_id == seeded["workflow_instance_id"]
        assert context.current_status == CaseStatus.OPEN
        assert context.sla_breach_type == SLAState.BREACHED
        assert context.priority == Priority.URGENT
        assert context.hours_overdue == pytest.approx(2)

    async def test_level_fires_once(self, build_service, seeded, session_maker, notifier):
        await build_service().monitor_sla_compliance()
        results = await build_service(now=NOW + timedelta(hours=2)).monitor_sla_compliance()

        case_id = seeded["cases"]["urgent_breached"].id
        second = next(r for r in results if r.case_id == case_id)
        assert second.escalation_triggered is False
        assert len(await load_escalations(session_maker)) == 1
        assert len(notifier.sent) == 1

    async def test_next_level_fires_later(self, build_service, seeded, session_maker):
        await build_service().monitor_sla_compliance()
        results = await build_service(now=NOW + timedelta(hours=7)).monitor_sla_compliance()

        case_id = seeded["cases"]["urgent_breached"].id
        later = next(r for r in results if r.case_id == case_id)
        assert later.escalation_level == 2

        levels = sorted(e.escalation_level for e in await load_escalations(session_maker))
        assert levels == [1, 2]

    async def test_escalation_disabled_has_no_side_effects(
        self, build_service, seeded, session_maker, notifier, workflow_client
    ):
        results = await build_service(sla_escalation_enabled=False).monitor_sla_compliance()

        assert any(r.escalation_triggered for r in results)
        assert notifier.sent == []
        assert workflow_client.contexts == []
        assert await load_escalations(session_maker) == []

    async def test_penalty_disabled(self, build_service, seeded):
        results = await build_service(sla_penalty_calculation_enabled=False).monitor_sla_compliance()

        assert all(r.sla_status.penalty_amount == 0 for r in results)

    async def test_empty_database(self, build_service, db_engine):
        assert await build_service().monitor_sla_compliance() == []


# ========== Fake-repository unit tests ==========

class TestMonitoringServiceUnit:
    async def test_disabled_returns_empty_without_touching_repository(self, settings_factory):
        entered = []

        @asynccontextmanager
        async def scope():
            entered.append(True)
            yield FakeCaseRepository([])

        service = SLAMonitoringService(
            repository_scope=scope,
            settings=settings_factory(enable_sla_monitoring=False)
        )

        assert await service.monitor_sla_compliance() == []
        assert entered == []

    async def test_failing_case_is_skipped(self, settings, caplog):
        caplog.set_level(logging.ERROR, logger="drms")
        broken = make_case("CASE-1", age_hours=6)
        healthy = make_case("CASE-2", age_hours=1)
        repository = FakeCaseRepository(
            [broken, healthy], sla_config=premium_sla(), failing_case_ids=[broken.id]
        )
        service = SLAMonitoringService(
            repository_scope=fake_scope(repository), settings=settings, clock=lambda: NOW
        )

        results = await service.monitor_sla_compliance()

        assert [r.case_id for r in results] == [healthy.id]
        assert "Error checking SLA compliance for case" in caplog.text

    async def test_load_failure_raises_evaluation_error(self, settings):
        repository = FakeCaseRepository([], load_error=RepositoryException("connection lost"))
        service = SLAMonitoringService(repository_scope=fake_scope(repository), settings=settings)

        with pytest.raises(SLAEvaluationException):
            await service.monitor_sla_compliance()

    async def test_workflow_failure_does_not_block_other_side_effects(self, settings_factory, caplog):
        caplog.set_level(logging.ERROR, logger="drms")
        case = make_case("CASE-1", age_hours=6, workflow_instance_id=uuid4())
        repository = FakeCaseRepository([case], sla_config=premium_sla())
        notifier = FakeNotifier()
        workflow_client = FakeWorkflowClient(error=WorkflowServiceException("workflow down"))
        service = SLAMonitoringService(
            repository_scope=fake_scope(repository),
            notifier=notifier,
            workflow_client=workflow_client,
            settings=settings_factory(enable_workflow_integration=True),
            clock=lambda: NOW
        )

        results = await service.monitor_sla_compliance()

        assert results[0].escalation_triggered is True
        assert len(workflow_client.contexts) == 1
        assert notifier.sent == [("CASE-1", 1, EscalationType.BREACH)]
        assert repository.escalations == [(case.id, 1, EscalationType.BREACH)]
        assert repository.updates == [(case.id, SLAState.BREACHED, 1, NOW)]
        assert "Workflow escalation failed" in caplog.text

    async def test_workflow_skipped_without_instance(self, settings_factory):
        case = make_case("CASE-1", age_hours=6)
        workflow_client = FakeWorkflowClient()
        service = SLAMonitoringService(
            repository_scope=fake_scope(FakeCaseRepository([case], sla_config=premium_sla())),
            workflow_client=workflow_client,
            settings=settings_factory(enable_workflow_integration=True),
            clock=lambda: NOW
        )

        await service.monitor_sla_compliance()

        assert workflow_client.contexts == []

    async def test_at_risk_escalation_is_a_warning(self, settings):
        case = make_case(
            "CASE-1", age_hours=20, status=CaseStatus.IN_PROGRESS,
            assigned_at=NOW - timedelta(hours=19)
        )
        config = premium_sla(
            escalation_rules=[{"level": 1, "trigger_after_hours": 18}],
            penalty_rules=[],
        )
        repository = FakeCaseRepository([case], sla_config=config)
        service = SLAMonitoringService(
            repository_scope=fake_scope(repository), settings=settings, clock=lambda: NOW
        )

        results = await service.monitor_sla_compliance()

        assert results[0].sla_status.status == SLAState.AT_RISK
        assert repository.escalations == [(case.id, 1, EscalationType.WARNING)]

    async def test_next_check_time_uses_interval(self, settings):
        case = make_case("CASE-1", age_hours=1)
        service = SLAMonitoringService(
            repository_scope=fake_scope(FakeCaseRepository([case], sla_config=premium_sla())),
            settings=settings,
            clock=lambda: NOW
        )

        results = await service.monitor_sla_compliance()

        assert results[0].next_check_time == NOW + timedelta(minutes=60)

    async def test_notifier_failure_does_not_abort_pass(self, settings, caplog):
        caplog.set_level(logging.ERROR, logger="drms")
        first = make_case("CASE-1", age_hours=10)
        second = make_case("CASE-2", age_hours=10)
        repository = FakeCaseRepository([first, second], sla_config=premium_sla())
        notifier = FailingNotifier(RuntimeError("slack unreachable"))
        service = SLAMonitoringService(
            repository_scope=fake_scope(repository),
            notifier=notifier,
            settings=settings,
            clock=lambda: NOW
        )

        results = await service.monitor_sla_compliance()

        assert [r.case_id for r in results] == [first.id, second.id]
        assert notifier.attempts == 2
        assert repository.escalations == [
            (first.id, 1, EscalationType.BREACH),
            (second.id, 1, EscalationType.BREACH),
        ]
        failures = [
            r for r in caplog.records if r.getMessage() == "Failed to send escalation notification"
        ]
        assert len(failures) == 2
        assert failures[0].exc_info is not None

    async def test_unexpected_workflow_error_is_contained(self, settings_factory, caplog):
        caplog.set_level(logging.ERROR, logger="drms")
        first = make_case("CASE-1", age_hours=10, workflow_instance_id=uuid4())
        second = make_case("CASE-2", age_hours=10, workflow_instance_id=uuid4())
        repository = FakeCaseRepository([first, second], sla_config=premium_sla())
        notifier = FakeNotifier()
        workflow_client = FakeWorkflowClient(error=RuntimeError("unexpected payload"))
        service = SLAMonitoringService(
            repository_scope=fake_scope(repository),
            notifier=notifier,
            workflow_client=workflow_client,
            settings=settings_factory(enable_workflow_integration=True),
            clock=lambda: NOW
        )

        results = await service.monitor_sla_compliance()

        assert [r.case_id for r in results] == [first.id, second.id]
        assert len(workflow_client.contexts) == 2
        assert [sent[0] for sent in notifier.sent] == ["CASE-1", "CASE-2"]
        assert [e[0] for e in repository.escalations] == [first.id, second.id]
        failures = [r for r in caplog.records if r.getMessage() == "Workflow escalation failed"]
        assert len(failures) == 2
        assert failures[0].exc_info is not None
