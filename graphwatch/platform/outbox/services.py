"""Outbox staging plus the Notifier/Alerter implementations built on it."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from graphwatch.core.clock import utcnow
from graphwatch.core.event_bus import BusEvent, EventBus, event_bus
from graphwatch.core.records import ChangeEvent, SubscriptionAlert
from graphwatch.extensions import db
from graphwatch.platform.outbox.models import OutboxMessage

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_SENDING = "sending"
STATUS_SENT = "sent"
STATUS_RETRY = "retry"
STATUS_FAILED = "failed"

# Event types carried by the outbox
NOTIFICATION_ACCEPTED = "graph.notification.accepted"
ATTENDEE_RESPONSE_CHANGED = "calendar.attendee.response_changed"
SUBSCRIPTION_LAPSED = "subscription.lapsed"
SUBSCRIPTION_REAUTHORIZATION_REQUESTED = "subscription.reauthorization_requested"


def enqueue(
    event_name: str,
    payload: dict,
    available_at: Optional[datetime] = None,
    session=None,
) -> OutboxMessage:
    """
    Stage an event in the outbox. Caller should commit alongside domain changes.
    """
    session = session or db.session
    message = OutboxMessage(
        event_type=event_name,
        payload=payload or {},
        available_at=available_at or utcnow(),
        status=STATUS_PENDING,
        attempts=0,
    )
    session.add(message)
    return message


class OutboxNotifier:
    """Stages ChangeEvents in the caller's transaction; the dispatcher delivers them."""

    def __init__(self, session=None) -> None:
        self._session = session

    def emit(self, event: ChangeEvent) -> None:
        enqueue(ATTENDEE_RESPONSE_CHANGED, event.to_payload(), session=self._session)


class OutboxAlerter:
    """Logs and stages fatal subscription alerts."""

    def __init__(self, session=None) -> None:
        self._session = session

    def alert(self, alert: SubscriptionAlert) -> None:
        logger.critical(
            "Subscription %s lapsed (%s); resource=%s expires_at=%s",
            alert.subscription_id,
            alert.reason,
            alert.resource_path,
            alert.expires_at,
        )
        enqueue(SUBSCRIPTION_LAPSED, alert.to_payload(), session=self._session)


class EventBusAdapter:
    """Publishes delivered outbox messages to the in-process bus (swap for a broker later)."""

    def __init__(self, bus: Optional[EventBus] = None) -> None:
        self.bus = bus or event_bus

    def dispatch(self, message: OutboxMessage) -> None:
        payload = dict(message.payload or {})
        payload.setdefault("external_id", f"{message.event_type}:{message.id}")
        self.bus.publish(BusEvent(event_type=message.event_type, payload=payload, event_id=message.id))
