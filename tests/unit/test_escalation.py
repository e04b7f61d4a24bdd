"""Unit tests for escalation delivery."""

import json
from uuid import uuid4

import httpx
import pytest

from config import SLAType, SlaEventType
from sla.application import EscalationNotice, EscalationTrigger, INotifier
from sla.domain import SlaEvent
from sla.infrastructure import CircuitBreaker, LoggingNotifier, SlackNotifier
from sla.infrastructure.external import CircuitState

from tests.factories import ORG, RecordingNotifier, utc


def make_event(event_type=SlaEventType.RESPONSE_BREACHED, **payload) -> SlaEvent:
    data = {
        "sla_type": "response",
        "due_at": "2024-01-15T13:00:00+00:00",
        "domain": "support",
        "entity_type": "issue",
        "entity_id": "T-1",
        "configuration_name": "Standard Support",
    }
    data.update(payload)
    return SlaEvent(
        organization_id=ORG,
        tracking_id=uuid4(),
        event_type=event_type,
        occurred_at=utc(2024, 1, 15, 13, 5),
        payload=data,
        sla_type=SLAType.RESPONSE,
        due_epoch=1705323600,
    )


class ExplodingNotifier(INotifier):
    async def notify(self, notice):
        raise RuntimeError("notifier down")


class TestEscalationTrigger:

    @pytest.mark.asyncio
    async def test_only_escalation_events_are_forwarded(self):
        notifier = RecordingNotifier()
        trigger = EscalationTrigger(notifier)
        events = [
            make_event(SlaEventType.STARTED),
            make_event(SlaEventType.RESPONSE_DUE_WARNING, remaining_seconds=600),
            make_event(SlaEventType.RESPONSE_BREACHED),
            make_event(SlaEventType.PAUSED),
        ]

        delivered = await trigger.handle(events)

        assert [n.event_type for n in delivered] == ["response_due_warning", "response_breached"]
        assert notifier.notices == delivered
        assert delivered[0].remaining_seconds == 600
        assert delivered[1].entity_id == "T-1"

    @pytest.mark.asyncio
    async def test_notifier_failure_is_swallowed(self):
        trigger = EscalationTrigger(ExplodingNotifier())

        assert await trigger.handle([make_event()]) == []

    @pytest.mark.asyncio
    async def test_logging_notifier_accepts_everything(self):
        notice = EscalationNotice.from_event(make_event(SlaEventType.ESCALATED))

        assert notice.is_breach
        assert await LoggingNotifier().notify(notice) is True


class TestSlackNotifier:

    @staticmethod
    def notifier_for(handler, webhook_url="https://hooks.slack.test/T000/B000"):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return SlackNotifier(webhook_url, backoff_base=0, http_client=client)

    @pytest.mark.asyncio
    async def test_delivers_block_kit_message(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, text="ok")

        notifier = self.notifier_for(handler)
        notice = EscalationNotice.from_event(make_event(escalate_to_user_id="lead-1"))

        assert await notifier.notify(notice) is True
        assert len(requests) == 1
        body = json.loads(requests[0].content)
        assert body["channel"] == "#sla-escalations"
        assert body["blocks"][0]["text"]["text"] == "SLA Breach"
        assert "lead-1" in json.dumps(body["blocks"])
        await notifier.close()

    @pytest.mark.asyncio
    async def test_retries_then_gives_up(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(500)

        notifier = self.notifier_for(handler)

        assert await notifier.notify(EscalationNotice.from_event(make_event())) is False
        assert len(calls) == 3
        await notifier.close()

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200)

        notifier = self.notifier_for(handler)

        assert await notifier.notify(EscalationNotice.from_event(make_event())) is True
        assert len(calls) == 2
        await notifier.close()

    @pytest.mark.asyncio
    async def test_without_webhook_nothing_is_sent(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        notifier = self.notifier_for(handler, webhook_url=None)

        assert await notifier.notify(EscalationNotice.from_event(make_event())) is False
        await notifier.close()

    @pytest.mark.asyncio
    async def test_open_circuit_skips_delivery(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200)

        notifier = self.notifier_for(handler)
        for _ in range(notifier.circuit_breaker.failure_threshold):
            notifier.circuit_breaker.record_failure()

        assert await notifier.notify(EscalationNotice.from_event(make_event())) is False
        assert calls == []
        await notifier.close()


class TestCircuitBreaker:

    def test_opens_after_threshold_and_half_opens_after_timeout(self):
        now = [100.0]
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=30, clock=lambda: now[0])

        breaker.record_failure()
        assert breaker.allow_request()
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        assert not breaker.allow_request()

        now[0] += 30
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.allow_request()

        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED
