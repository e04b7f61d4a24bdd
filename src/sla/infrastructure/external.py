"""
SLA Outbound Adapters
======================

- SlackNotifier: posts escalation notices to a Slack incoming webhook
- LoggingNotifier: fallback when no webhook is configured
- SLAScheduler: APScheduler job driving the periodic sweep
"""

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from sla.application import EscalationNotice, INotifier
from shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Stops calling a failing endpoint for a while.

    After `failure_threshold` consecutive failed deliveries the breaker opens
    and rejects calls; once `recovery_timeout` seconds have passed it lets a
    single trial request through (half open). A success closes it again.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        if (
            self._state == CircuitState.OPEN
            and self._clock() - self._opened_at >= self.recovery_timeout
        ):
            self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state != CircuitState.OPEN

    def record_success(self) -> None:
        self._consecutive_failures = 0
        self._opened_at = None
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._consecutive_failures += 1
        if (
            self._state == CircuitState.HALF_OPEN
            or self._consecutive_failures >= self.failure_threshold
        ):
            self._state = CircuitState.OPEN
            self._opened_at = self._clock()
            logger.warning(
                "Slack circuit opened",
                extra={
                    "consecutive_failures": self._consecutive_failures,
                    "recovery_timeout": self.recovery_timeout,
                }
            )


class LoggingNotifier(INotifier):
    """Writes escalation notices to the log; breaches at warning level."""

    async def notify(self, notice: EscalationNotice) -> bool:
        log = logger.warning if notice.is_breach else logger.info
        log(
            "SLA escalation notice",
            extra={
                "organization_id": notice.organization_id,
                "tracking_id": notice.tracking_id,
                "event_type": notice.event_type,
                "sla_type": notice.sla_type,
                "due_at": notice.due_at,
                "escalate_to_user_id": notice.escalate_to_user_id,
            }
        )
        return True


def _field(label: str, value: Any) -> Dict[str, str]:
    return {"type": "mrkdwn", "text": f"*{label}:*\n{value if value else '-'}"}


class SlackNotifier(INotifier):
    """
    Delivers escalation notices to a Slack incoming webhook.

    Each notice is attempted up to `max_retries` times with exponential
    backoff (`backoff_base * 2**attempt` seconds); a notice that exhausts its
    attempts counts as one failure for the circuit breaker.
    """

    def __init__(
        self,
        webhook_url: Optional[str],
        channel: str = "#sla-escalations",
        timeout_seconds: float = 5.0,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self._webhook_url = webhook_url
        self._channel = channel
        self._timeout = timeout_seconds
        self._attempts = max(1, max_retries)
        self._backoff_base = backoff_base
        self._client = http_client
        self._breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60.0)

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._breaker

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    def _build_message(self, notice: EscalationNotice) -> Dict[str, Any]:
        title = "SLA Breach" if notice.is_breach else "SLA Warning"
        entity = f"{notice.entity_type or 'entity'} {notice.entity_id or notice.tracking_id}"

        fields: List[Dict[str, str]] = [
            _field("Entity", entity),
            _field("Domain", (notice.domain or "").title()),
            _field("SLA", (notice.sla_type or "").title()),
            _field("State", "BREACHED" if notice.is_breach else "AT RISK"),
            _field("Configuration", notice.configuration_name),
            _field("Due", notice.due_at),
        ]
        if notice.escalate_to_user_id:
            fields.append(_field("Escalate to", notice.escalate_to_user_id))

        footer = [f"Tracking {notice.tracking_id}", f"event {notice.event_type}"]
        if notice.remaining_seconds is not None:
            footer.append(f"{notice.remaining_seconds // 60} min remaining")

        return {
            "channel": self._channel,
            "text": f"{title}: {entity}",
            "blocks": [
                {"type": "header", "text": {"type": "plain_text", "text": title}},
                {"type": "section", "fields": fields},
                {"type": "context", "elements": [{"type": "mrkdwn", "text": " | ".join(footer)}]},
            ],
        }

    async def _post_once(self, message: Dict[str, Any], notice: EscalationNotice, attempt: int) -> bool:
        log_context = {"tracking_id": notice.tracking_id, "attempt": attempt}
        try:
            response = await self._http().post(self._webhook_url, json=message)
        except httpx.HTTPError as e:
            logger.error("Slack webhook request failed", extra={**log_context, "error": str(e)})
            return False

        if response.status_code != 200:
            logger.warning(
                "Slack webhook rejected notice",
                extra={**log_context, "status_code": response.status_code}
            )
            return False
        return True

    async def notify(self, notice: EscalationNotice) -> bool:
        """Returns False when unconfigured, circuit-open, or out of attempts."""
        if not self._webhook_url:
            logger.debug("No Slack webhook configured, notice dropped")
            return False

        if not self._breaker.allow_request():
            logger.warning(
                "Slack circuit open, notice dropped",
                extra={"tracking_id": notice.tracking_id, "event_type": notice.event_type}
            )
            return False

        message = self._build_message(notice)
        for attempt in range(self._attempts):
            if attempt:
                await asyncio.sleep(self._backoff_base * 2 ** (attempt - 1))
            if await self._post_once(message, notice, attempt + 1):
                self._breaker.record_success()
                logger.info(
                    "Escalation notice delivered to Slack",
                    extra={"tracking_id": notice.tracking_id, "event_type": notice.event_type}
                )
                return True

        self._breaker.record_failure()
        return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class SLAScheduler:
    """Runs the sweep job every `interval_seconds` on the event loop."""

    JOB_ID = "sla_sweep"

    def __init__(self, interval_seconds: int = 60):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    async def start(self, job_func: Callable[[], Awaitable[Any]]) -> None:
        if self.is_running:
            logger.warning("SLA scheduler start requested while running")
            return

        scheduler = AsyncIOScheduler()
        # one sweep at a time; missed runs collapse into one
        scheduler.add_job(
            job_func,
            trigger="interval",
            seconds=self.interval_seconds,
            id=self.JOB_ID,
            name="SLA sweep",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.interval_seconds,
            replace_existing=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("SLA scheduler started", extra={"interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("SLA scheduler stopped")
