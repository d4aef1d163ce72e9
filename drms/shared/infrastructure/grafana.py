"""
Grafana OTLP Metrics Exporter
==============================

Pushes SLA monitoring run metrics to Grafana Cloud via OTLP.

Metrics exported:
- sla_cases_checked: Cases evaluated by the last monitoring pass
- sla_cases_breached: Cases found breached
- sla_cases_at_risk: Cases found at risk
- sla_escalations_triggered: Escalations fired
- sla_run_duration_ms: Wall time of the pass in milliseconds
- sla_run_failures_total: Failed timer-driven passes since process start
"""

import base64
import time
from typing import Any, Dict, List, Optional

import httpx

from drms.config import Settings, get_settings
from drms.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class GrafanaOTLPExporter:
    """
    Export SLA monitoring metrics to Grafana Cloud via OTLP HTTP endpoint.

    Uses OpenTelemetry Protocol (OTLP) JSON format. Exporting never raises;
    a failed push is logged and reported as False.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        api_key: Optional[str] = None,
        instance_id: Optional[str] = None,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize Grafana OTLP exporter.

        Args:
            host: Grafana OTLP gateway URL (e.g., https://otlp-gateway-prod-eu-west-0.grafana.net)
            api_key: Grafana API key
            instance_id: Instance ID for authentication
            settings: Settings to read defaults and resource attributes from
            http_client: Shared client to push with; a short-lived one per push otherwise
        """
        self._settings = settings or get_settings()
        self._host = host or self._settings.grafana_host
        self._api_key = api_key or self._settings.grafana_api_key
        self._instance_id = instance_id or self._settings.grafana_instance_id
        self._enabled = bool(self._host and self._api_key and self._instance_id)
        self._run_failures_total = 0
        self._http_client = http_client

        if self._enabled:
            auth_pair = f"{self._instance_id}:{self._api_key}"
            self._auth_encoded = base64.b64encode(auth_pair.encode()).decode()
            # Don't double-append the path if host already includes it
            if "/otlp/v1/metrics" not in self._host:
                self._url = f"{self._host.rstrip('/')}/otlp/v1/metrics"
            else:
                self._url = self._host
            logger.info(
                "Grafana OTLP exporter initialized",
                extra={"host": self._host, "instance_id": self._instance_id}
            )
        else:
            logger.info(
                "Grafana OTLP exporter not configured - metrics will not be exported",
                extra={
                    "host_configured": bool(self._host),
                    "api_key_configured": bool(self._api_key),
                    "instance_id_configured": bool(self._instance_id)
                }
            )

    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def run_failures_total(self) -> int:
        return self._run_failures_total

    async def export_sla_run_metrics(
        self,
        total_cases_checked: int,
        breached_cases: int,
        at_risk_cases: int,
        escalations_triggered: int,
        duration_ms: int,
        trigger: str = "timer"
    ) -> bool:
        """
        Export the counts of one SLA monitoring pass.

        Args:
            total_cases_checked: Cases evaluated
            breached_cases: Cases in breached state
            at_risk_cases: Cases in at_risk state
            escalations_triggered: Escalations fired
            duration_ms: Pass duration in milliseconds
            trigger: What started the pass (startup, timer, manual)

        Returns:
            True if export succeeded, False otherwise
        """
        if not self._enabled:
            logger.debug("Grafana exporter not enabled - skipping metrics export")
            return False

        timestamp_ns = time.time_ns()
        attributes = self._attributes(trigger=trigger)

        metrics = [
            self._gauge("sla_cases_checked", "1", "Cases evaluated by the SLA monitor",
                        total_cases_checked, timestamp_ns, attributes),
            self._gauge("sla_cases_breached", "1", "Cases whose SLA is breached",
                        breached_cases, timestamp_ns, attributes),
            self._gauge("sla_cases_at_risk", "1", "Cases whose SLA is at risk",
                        at_risk_cases, timestamp_ns, attributes),
            self._gauge("sla_escalations_triggered", "1", "Escalations fired by the SLA monitor",
                        escalations_triggered, timestamp_ns, attributes),
            self._gauge("sla_run_duration_ms", "ms", "SLA monitoring pass duration in milliseconds",
                        duration_ms, timestamp_ns, attributes),
        ]

        return await self._push(metrics, {"trigger": trigger, "total_cases_checked": total_cases_checked})

    async def export_sla_run_failure(self, error_type: str) -> bool:
        """Count a failed monitoring pass and export the running total."""
        self._run_failures_total += 1

        if not self._enabled:
            return False

        timestamp_ns = time.time_ns()
        metric = {
            "name": "sla_run_failures_total",
            "unit": "1",
            "description": "Failed SLA monitoring passes",
            "sum": {
                "aggregationTemporality": 2,  # cumulative
                "isMonotonic": True,
                "dataPoints": [
                    {
                        "asInt": self._run_failures_total,
                        "timeUnixNano": timestamp_ns,
                        "attributes": self._attributes(error_type=error_type)
                    }
                ]
            }
        }

        return await self._push([metric], {"error_type": error_type})

    def _attributes(self, **extra: str) -> List[Dict[str, Any]]:
        attributes = [{"key": "service", "value": {"stringValue": self._settings.app_name}}]
        for key, value in extra.items():
            attributes.append({"key": key, "value": {"stringValue": str(value)}})
        return attributes

    @staticmethod
    def _gauge(
        name: str,
        unit: str,
        description: str,
        value: int,
        timestamp_ns: int,
        attributes: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        return {
            "name": name,
            "unit": unit,
            "description": description,
            "gauge": {
                "dataPoints": [
                    {
                        "asInt": value,
                        "timeUnixNano": timestamp_ns,
                        "attributes": attributes
                    }
                ]
            }
        }

    def _payload(self, metrics: List[Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "resourceMetrics": [
                {
                    "resource": {
                        "attributes": [
                            {"key": "service.name", "value": {"stringValue": self._settings.app_name}},
                            {"key": "service.version", "value": {"stringValue": self._settings.app_version}},
                            {"key": "deployment.environment", "value": {"stringValue": self._settings.environment}},
                        ]
                    },
                    "scopeMetrics": [{"metrics": metrics}]
                }
            ]
        }

    async def _push(self, metrics: List[Dict[str, Any]], log_context: Dict[str, Any]) -> bool:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Basic {self._auth_encoded}",
            "X-Grafana-Org-Id": str(self._instance_id)
        }

        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self._url, headers=headers, json=self._payload(metrics)
                )
            else:
                async with httpx.AsyncClient(timeout=10.0) as client:
                    response = await client.post(
                        self._url, headers=headers, json=self._payload(metrics)
                    )
        except httpx.HTTPError as e:
            logger.error(
                "Error exporting metrics to Grafana",
                extra={"error": str(e), **log_context}
            )
            return False

        if response.status_code in (200, 202):
            logger.debug(
                "SLA metrics exported to Grafana",
                extra={"metrics_count": len(metrics), **log_context}
            )
            return True

        logger.warning(
            "Failed to export metrics to Grafana",
            extra={
                "status_code": response.status_code,
                "response": response.text[:500],
                "url": self._url
            }
        )
        return False


# Global exporter instance
_grafana_exporter: Optional[GrafanaOTLPExporter] = None


def get_grafana_exporter() -> GrafanaOTLPExporter:
    """Get or create global Grafana exporter instance."""
    global _grafana_exporter
    if _grafana_exporter is None:
        _grafana_exporter = GrafanaOTLPExporter()
    return _grafana_exporter
