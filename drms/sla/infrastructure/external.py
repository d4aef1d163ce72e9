"""
SLA External Service Integrations
==================================

External services the SLA monitor calls when an escalation fires:
- Slack webhook notifications
- Workflow service escalation endpoint
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx

from drms.config import Settings, SLAState, get_settings
from drms.core import WorkflowServiceException
from drms.shared.infrastructure.logging import get_logger
from drms.sla.application.services import IEscalationNotifier, IWorkflowEscalationClient
from drms.sla.domain import CaseEscalationContext, MonitoredCase, SLAMonitoringResult

logger = get_logger(__name__)


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> str:
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            if self._clock() - self._opened_at >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._opened_at = None
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1

        # A failed trial request in half-open reopens immediately
        if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            self._opened_at = self._clock()
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "circuit": self.name,
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


@dataclass
class SlackEscalationMessage:
    """Slack notification for one escalated case."""
    case_id: str
    case_number: str
    priority: str
    customer_tier: str
    service_type: str
    sla_status: str
    escalation_type: str
    escalation_level: int
    hours_overdue: float
    breach_reason: Optional[str] = None
    penalty_amount: float = 0

    @classmethod
    def from_result(
        cls,
        case: MonitoredCase,
        result: SLAMonitoringResult,
        escalation_type: str
    ) -> "SlackEscalationMessage":
        return cls(
            case_id=str(case.id),
            case_number=case.case_number,
            priority=case.priority,
            customer_tier=case.customer_tier,
            service_type=case.service_type,
            sla_status=result.sla_status.status,
            escalation_type=escalation_type,
            escalation_level=result.escalation_level or 0,
            hours_overdue=result.hours_overdue,
            breach_reason=result.sla_status.breach_reason,
            penalty_amount=result.sla_status.penalty_amount,
        )


class SlackClient(IEscalationNotifier):
    """
    Slack webhook client with circuit breaker and retry logic.

    Handles sending escalation notifications to Slack with:
    - Circuit breaker to prevent cascade failures
    - Exponential backoff retry
    - Timeout handling

    Delivery failures never propagate; send_escalation() reports them
    by returning False.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        max_retries: int = 3,
        retry_base_delay: float = 1.0
    ):
        self._settings = settings or get_settings()
        self._http_client = http_client
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._circuit_breaker = CircuitBreaker("slack", failure_threshold=5, recovery_timeout=60)

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self._settings.slack_timeout_seconds
            )
        return self._http_client

    def _build_message(self, data: SlackEscalationMessage) -> Dict[str, Any]:
        """Build Slack Block Kit message."""
        if data.sla_status == SLAState.BREACHED:
            header_text = ":rotating_light: SLA Breach Escalation"
            status_text = ":red_circle: BREACHED"
        else:
            header_text = ":warning: SLA Escalation"
            status_text = ":large_yellow_circle: AT RISK" if data.sla_status == SLAState.AT_RISK else data.sla_status

        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": header_text, "emoji": True}
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Case:*\n{data.case_number}"},
                    {"type": "mrkdwn", "text": f"*Priority:*\n{data.priority.title()}"},
                    {"type": "mrkdwn", "text": f"*Customer Tier:*\n{data.customer_tier.title()}"},
                    {"type": "mrkdwn", "text": f"*Service Type:*\n{data.service_type.title()}"},
                    {"type": "mrkdwn", "text": f"*Status:*\n{status_text}"},
                    {"type": "mrkdwn", "text": f"*Escalation Level:*\n{data.escalation_level}"}
                ]
            },
        ]

        context = f"Hours overdue: {data.hours_overdue:.1f}"
        if data.breach_reason:
            context += f" | {data.breach_reason}"
        if data.penalty_amount:
            context += f" | Penalty: {data.penalty_amount:.2f}"

        blocks.append({
            "type": "context",
            "elements": [{"type": "mrkdwn", "text": context}]
        })

        return {
            "channel": self._settings.slack_channel,
            "text": f"SLA escalation for case {data.case_number} (level {data.escalation_level})",
            "blocks": blocks
        }

    async def send_escalation(
        self,
        case: MonitoredCase,
        result: SLAMonitoringResult,
        escalation_type: str
    ) -> bool:
        return await self.send_message(
            SlackEscalationMessage.from_result(case, result, escalation_type)
        )

    async def send_message(self, data: SlackEscalationMessage) -> bool:
        """
        Send an escalation message to the Slack webhook.

        Returns:
            True if sent successfully, False otherwise
        """
        if not self._settings.slack_webhook_url:
            logger.debug("Slack webhook URL not configured, skipping notification")
            return False

        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping Slack notification",
                extra={"case_id": data.case_id}
            )
            return False

        message = self._build_message(data)

        for attempt in range(self._max_retries):
            try:
                response = await self._get_client().post(
                    self._settings.slack_webhook_url,
                    json=message
                )

                if response.status_code == 200:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Slack notification sent",
                        extra={
                            "case_id": data.case_id,
                            "escalation_level": data.escalation_level
                        }
                    )
                    return True

                logger.warning(
                    "Slack webhook returned non-200",
                    extra={
                        "status_code": response.status_code,
                        "attempt": attempt + 1
                    }
                )

            except httpx.HTTPError as e:
                logger.error(
                    "Slack notification failed",
                    extra={
                        "error": str(e),
                        "attempt": attempt + 1,
                        "case_id": data.case_id
                    }
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._retry_base_delay * 2 ** attempt)

        self._circuit_breaker.record_failure()
        return False

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class WorkflowClient(IWorkflowEscalationClient):
    """
    HTTP client for the workflow service.

    Raises WorkflowServiceException on any transport error or non-2xx
    response; the caller decides whether that is fatal.
    """

    ESCALATION_PATH = "/api/workflow/escalation"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self._settings = settings or get_settings()
        self._http_client = http_client
        self._circuit_breaker = CircuitBreaker("workflow", failure_threshold=5, recovery_timeout=60)

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self._settings.workflow_service_url,
                timeout=self._settings.workflow_timeout_seconds
            )
        return self._http_client

    async def escalate(self, context: CaseEscalationContext) -> None:
        if not self._circuit_breaker.allow_request():
            raise WorkflowServiceException(
                "Circuit open, escalation not sent",
                details={"case_id": str(context.case_id)}
            )

        try:
            response = await self._get_client().post(self.ESCALATION_PATH, json=context.to_dict())
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self._circuit_breaker.record_failure()
            raise WorkflowServiceException(
                f"Escalation rejected with status {e.response.status_code}",
                details={"case_id": str(context.case_id), "status_code": e.response.status_code}
            ) from e
        except httpx.HTTPError as e:
            self._circuit_breaker.record_failure()
            raise WorkflowServiceException(
                f"Escalation request failed: {e}",
                details={"case_id": str(context.case_id)}
            ) from e

        self._circuit_breaker.record_success()
        logger.info(
            "Workflow escalation sent",
            extra={
                "case_id": str(context.case_id),
                "workflow_instance_id": str(context.workflow_instance_id)
            }
        )

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
