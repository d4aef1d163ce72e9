"""
Scheduled Jobs
==============

Hosts the recurring SLA monitoring job of the case service.

The job runs once as soon as it is started and then every
SLA_CHECK_INTERVAL_MINUTES on an APScheduler interval trigger. Timer-driven
passes never raise: failures are logged and the job stays armed. Manual
passes (run_manually) propagate failures to the caller.
"""

import logging
import time
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from drms.config import Settings, get_settings
from drms.shared.infrastructure.grafana import GrafanaOTLPExporter
from drms.shared.infrastructure.logging import get_logger
from drms.sla.application import (
    SLAMonitoringResultResponse,
    SLAMonitoringRunResponse,
    SLAMonitoringService,
    SLAMonitoringStatus,
    SLAMonitoringSummary,
)
from drms.sla.domain import SLAMonitoringResult


class ScheduledJobsService:
    """
    Owns the SLA monitoring timer.

    Lifecycle of the timer handle: None until start() arms it, the
    APScheduler Job while armed, None again after stop(). `running` in
    get_status() is true exactly while the handle is held.
    """

    SLA_MONITORING_JOB_ID = "sla_monitoring"

    def __init__(
        self,
        evaluator: SLAMonitoringService,
        settings: Optional[Settings] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
        metrics_exporter: Optional[GrafanaOTLPExporter] = None,
        logger: Optional[logging.Logger] = None
    ):
        self._evaluator = evaluator
        self._settings = settings or get_settings()
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self._metrics_exporter = metrics_exporter
        self._logger = logger or get_logger(__name__)
        self._sla_monitoring_job: Optional[Job] = None
        self._last_run: Optional[SLAMonitoringSummary] = None

    @property
    def interval_seconds(self) -> float:
        return self._settings.sla_check_interval_minutes * 60

    @property
    def is_running(self) -> bool:
        return self._sla_monitoring_job is not None

    @property
    def last_run(self) -> Optional[SLAMonitoringSummary]:
        return self._last_run

    async def start(self) -> None:
        """
        Arm the SLA monitoring job and run one pass immediately.

        No-op when monitoring is disabled or the job is already armed.
        The immediate pass is awaited; its failure is logged, not raised.
        """
        if not self._settings.enable_sla_monitoring:
            self._logger.info("SLA monitoring is disabled, scheduled job not started")
            return

        if self._sla_monitoring_job is not None:
            self._logger.warning("SLA monitoring job already running")
            return

        self._logger.info(
            "Starting SLA monitoring job",
            extra={
                "interval_minutes": self._settings.sla_check_interval_minutes,
                "interval_seconds": self.interval_seconds
            }
        )

        if not self._scheduler.running:
            self._scheduler.start()

        # Armed before the first pass so a stop() during that pass disarms it
        self._sla_monitoring_job = self._scheduler.add_job(
            self._run_scheduled_sla_monitoring,
            IntervalTrigger(seconds=self.interval_seconds, timezone=timezone.utc),
            id=self.SLA_MONITORING_JOB_ID,
            name="SLA Monitoring Job",
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        await self._run_sla_monitoring(trigger="startup")

    def stop(self) -> None:
        """
        Disarm the SLA monitoring job.

        Safe to call at any time, any number of times. A pass already in
        progress is left to finish.
        """
        job = self._sla_monitoring_job
        self._sla_monitoring_job = None

        if job is None:
            return

        try:
            job.remove()
        except JobLookupError:
            self._logger.debug("SLA monitoring job already removed from scheduler")

        self._logger.info("SLA monitoring job stopped")

    def shutdown(self) -> None:
        """Disarm the job and stop the scheduler if it is still running."""
        self.stop()

        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            self._logger.info("Job scheduler shut down")

    async def run_manually(self) -> SLAMonitoringRunResponse:
        """
        Run one SLA monitoring pass outside the schedule.

        Returns:
            The pass summary and per-case results

        Raises:
            Exception: Whatever the evaluation raised, after logging it
        """
        self._logger.info("Manual SLA monitoring run requested")

        try:
            summary, results = await self._evaluate(trigger="manual")
        except Exception:
            self._logger.exception("Manual SLA monitoring run failed")
            raise

        return SLAMonitoringRunResponse(
            summary=summary,
            results=[SLAMonitoringResultResponse.from_domain(r) for r in results]
        )

    def get_status(self) -> SLAMonitoringStatus:
        return SLAMonitoringStatus(
            enabled=self._settings.enable_sla_monitoring,
            running=self.is_running,
            interval_minutes=self._settings.sla_check_interval_minutes,
            last_run=self._last_run
        )

    async def _run_scheduled_sla_monitoring(self) -> None:
        await self._run_sla_monitoring(trigger="timer")

    async def _run_sla_monitoring(self, trigger: str) -> None:
        """Run a pass for the timer or startup path; failures are contained."""
        try:
            await self._evaluate(trigger)
        except Exception as exc:
            self._logger.exception(
                "SLA monitoring job failed",
                extra={"trigger": trigger, "error_type": type(exc).__name__}
            )
            if self._metrics_exporter is not None:
                await self._metrics_exporter.export_sla_run_failure(type(exc).__name__)

    async def _evaluate(
        self,
        trigger: str
    ) -> Tuple[SLAMonitoringSummary, List[SLAMonitoringResult]]:
        start_time = time.perf_counter()
        results = await self._evaluator.monitor_sla_compliance()
        duration_ms = int((time.perf_counter() - start_time) * 1000)

        summary = self._summarize(results, duration_ms)
        self._last_run = summary

        self._logger.info(
            "SLA monitoring completed",
            extra={"trigger": trigger, **summary.model_dump(mode="json")}
        )

        if summary.has_issues:
            self._logger.warning(
                "SLA issues detected",
                extra={
                    "breached_cases": summary.breached_cases,
                    "escalations_triggered": summary.escalations_triggered,
                    "at_risk_cases": summary.at_risk_cases
                }
            )

        if self._metrics_exporter is not None:
            await self._metrics_exporter.export_sla_run_metrics(
                total_cases_checked=summary.total_cases_checked,
                breached_cases=summary.breached_cases,
                at_risk_cases=summary.at_risk_cases,
                escalations_triggered=summary.escalations_triggered,
                duration_ms=summary.duration_ms,
                trigger=trigger
            )

        return summary, results

    @staticmethod
    def _summarize(results: List[SLAMonitoringResult], duration_ms: int) -> SLAMonitoringSummary:
        return SLAMonitoringSummary.from_results(
            results, duration_ms, datetime.now(timezone.utc)
        )
