"""Transactional outbox models and helpers."""

from graphwatch.platform.outbox.models import OutboxMessage
from graphwatch.platform.outbox.services import (
    ATTENDEE_RESPONSE_CHANGED,
    NOTIFICATION_ACCEPTED,
    SUBSCRIPTION_LAPSED,
    SUBSCRIPTION_REAUTHORIZATION_REQUESTED,
    EventBusAdapter,
    OutboxAlerter,
    OutboxNotifier,
    enqueue,
)

__all__ = [
    "OutboxMessage",
    "enqueue",
    "EventBusAdapter",
    "OutboxAlerter",
    "OutboxNotifier",
    "ATTENDEE_RESPONSE_CHANGED",
    "NOTIFICATION_ACCEPTED",
    "SUBSCRIPTION_LAPSED",
    "SUBSCRIPTION_REAUTHORIZATION_REQUESTED",
]
