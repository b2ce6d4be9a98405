"""Notification dispatchers for request lifecycle events.

Delivery itself (push, SMS, email) belongs to another system. The default
dispatcher only queues an ``outbox_notifications`` row that a transport
worker picks up later.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from assistline.core.db import async_session
from assistline.domain.interfaces import NotificationEvent
from assistline.domain.models import OutboxNotification

logger = logging.getLogger(__name__)


class EventType:
    ASSIGNED = "assistant_request.assigned"
    ACCEPTED = "assistant_request.accepted"
    DECLINED = "assistant_request.declined"
    CANCELLED = "assistant_request.cancelled"
    COMPLETED = "assistant_request.completed"
    CREATED = "assistant_request.created"
    EXPIRED = "assistant_request.expired"


def _normalize_payload(payload: Optional[Dict[str, Any]]) -> Optional[dict]:
    if not payload:
        return None
    return json.loads(json.dumps(payload, default=str))


class OutboxNotificationDispatcher:
    """Writes one outbox row per event in its own session."""

    async def dispatch(self, event: NotificationEvent) -> None:
        row = OutboxNotification(
            type=event.type,
            request_id=event.request_id,
            recipient_id=event.recipient_id,
            payload_json=_normalize_payload(event.payload),
            status="pending",
            attempts=0,
        )
        async with async_session() as session:
            session.add(row)
            await session.commit()
        logger.debug("outbox_notification_queued type=%s request=%s", event.type, event.request_id)


class InMemoryNotificationDispatcher:
    def __init__(self) -> None:
        self.events: List[NotificationEvent] = []

    async def dispatch(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> List[NotificationEvent]:
        return [event for event in self.events if event.type == event_type]


async def safe_dispatch(dispatcher, event: NotificationEvent) -> None:
    """Deliver an event after commit; failures are logged, never raised."""
    if dispatcher is None:
        return
    try:
        await dispatcher.dispatch(event)
    except Exception:
        logger.warning(
            "notification_dispatch_failed type=%s request=%s",
            event.type,
            event.request_id,
            exc_info=True,
        )


__all__ = [
    "EventType",
    "OutboxNotificationDispatcher",
    "InMemoryNotificationDispatcher",
    "safe_dispatch",
]
