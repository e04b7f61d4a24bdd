"""
SLA Escalation
===============

Hands newly committed warning, breach and escalated events to a notifier.

The trigger runs after the unit of work has committed; a failing notifier is
logged and never affects the engine's state.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from config import SlaEventType
from sla.domain import SlaEvent
from shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass
class EscalationNotice:
    """What a notifier needs to tell a human about an SLA event."""

    organization_id: str
    tracking_id: str
    event_type: str
    sla_type: Optional[str]
    due_at: Optional[str]
    occurred_at: datetime
    domain: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    configuration_name: Optional[str] = None
    escalate_to_user_id: Optional[str] = None
    remaining_seconds: Optional[int] = None

    @property
    def is_breach(self) -> bool:
        return self.event_type in (
            SlaEventType.RESPONSE_BREACHED.value,
            SlaEventType.RESOLUTION_BREACHED.value,
            SlaEventType.ESCALATED.value,
        )

    @classmethod
    def from_event(cls, event: SlaEvent) -> "EscalationNotice":
        payload = event.payload or {}
        return cls(
            organization_id=event.organization_id,
            tracking_id=str(event.tracking_id),
            event_type=SlaEventType(event.event_type).value,
            sla_type=payload.get("sla_type"),
            due_at=payload.get("due_at"),
            occurred_at=event.occurred_at,
            domain=payload.get("domain"),
            entity_type=payload.get("entity_type"),
            entity_id=payload.get("entity_id"),
            configuration_name=payload.get("configuration_name"),
            escalate_to_user_id=payload.get("escalate_to_user_id"),
            remaining_seconds=payload.get("remaining_seconds"),
        )


class INotifier(ABC):
    """Interface for escalation notice delivery."""

    @abstractmethod
    async def notify(self, notice: EscalationNotice) -> bool:
        """Deliver a notice. Returns True when delivered."""

    async def close(self) -> None:
        """Release any resources held by the notifier."""


class EscalationTrigger:
    """
    Filters committed events down to the ones worth escalating and forwards
    them to the notifier.
    """

    def __init__(self, notifier: INotifier):
        self._notifier = notifier

    @property
    def notifier(self) -> INotifier:
        return self._notifier

    async def handle(self, events: Iterable[SlaEvent]) -> List[EscalationNotice]:
        """
        Forward escalation-relevant events.

        Returns:
            The notices that were delivered
        """
        delivered = []
        for event in events:
            if not event.is_escalation_relevant:
                continue

            notice = EscalationNotice.from_event(event)
            try:
                ok = await self._notifier.notify(notice)
            except Exception as e:
                logger.error(
                    "Escalation notifier failed",
                    extra={
                        "error": str(e),
                        "tracking_id": notice.tracking_id,
                        "event_type": notice.event_type,
                    }
                )
                continue

            if ok:
                delivered.append(notice)
        return delivered
