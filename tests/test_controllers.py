"""Tests for the scheduled job admin routes."""

from uuid import uuid4

import httpx
import pytest

from drms.config import SLAState
from drms.jobs import ScheduledJobsService
from drms.main import create_app
from drms.sla.domain import SLAMonitoringResult, SLAStatus


class StubEvaluator:
    def __init__(self, results=None, error=None):
        self.results = results or []
        self.error = error

    async def monitor_sla_compliance(self):
        if self.error is not None:
            raise self.error
        return list(self.results)


def breached_result():
    case_id = uuid4()
    return SLAMonitoringResult(
        case_id=case_id,
        sla_status=SLAStatus(
            case_id=case_id,
            status=SLAState.BREACHED,
            response_time_target=4,
            resolution_time_target=24,
            breach_reason="Response time exceeded",
            penalty_amount=50,
        ),
        escalation_triggered=True,
        escalation_level=1,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def evaluator():
    return StubEvaluator()


@pytest.fixture
def scheduled_jobs(app, evaluator, settings, scheduler):
    jobs = ScheduledJobsService(evaluator, settings=settings, scheduler=scheduler)
    app.state.scheduled_jobs = jobs
    yield jobs
    jobs.stop()


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


class TestRunSLAMonitoring:
    async def test_manual_run_returns_summary_and_results(self, client, scheduled_jobs, evaluator):
        evaluator.results = [breached_result()]

        response = await client.post("/api/jobs/sla-monitoring/run")

        assert response.status_code == 200
        body = response.json()
        assert body["summary"]["total_cases_checked"] == 1
        assert body["summary"]["breached_cases"] == 1
        assert body["summary"]["escalations_triggered"] == 1
        assert body["results"][0]["sla_status"]["status"] == "breached"
        assert body["results"][0]["sla_status"]["penalty_amount"] == 50
        assert body["results"][0]["escalation_level"] == 1

    async def test_manual_run_failure_is_500(self, client, scheduled_jobs, evaluator):
        evaluator.error = RuntimeError("database unavailable")

        response = await client.post("/api/jobs/sla-monitoring/run")

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to run SLA monitoring"

    async def test_manual_run_records_last_run(self, client, scheduled_jobs):
        await client.post("/api/jobs/sla-monitoring/run")

        response = await client.get("/api/jobs/status")

        assert response.json()["sla_monitoring"]["last_run"]["total_cases_checked"] == 0


class TestJobStatus:
    async def test_status_before_start(self, client, scheduled_jobs):
        response = await client.get("/api/jobs/status")

        assert response.status_code == 200
        assert response.json()["sla_monitoring"] == {
            "enabled": True,
            "running": False,
            "interval_minutes": 60,
            "last_run": None,
        }

    async def test_status_after_start(self, client, scheduled_jobs):
        await scheduled_jobs.start()

        response = await client.get("/api/jobs/status")

        status = response.json()["sla_monitoring"]
        assert status["running"] is True
        assert status["last_run"] is not None

    async def test_not_initialized_is_503(self, client):
        response = await client.get("/api/jobs/status")

        assert response.status_code == 503


class TestApplicationRoutes:
    async def test_correlation_id_echoed(self, client, scheduled_jobs):
        response = await client.get("/api/jobs/status", headers={"X-Correlation-ID": "req-42"})

        assert response.headers["X-Correlation-ID"] == "req-42"
        assert "X-Response-Time" in response.headers

    async def test_correlation_id_generated(self, client, scheduled_jobs):
        response = await client.get("/api/jobs/status")

        assert response.headers["X-Correlation-ID"]

    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["health"] == "/health"
