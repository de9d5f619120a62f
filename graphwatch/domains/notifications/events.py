"""Notification domain event catalog and default bus subscribers."""

from __future__ import annotations

import logging

from graphwatch.core.event_bus import BusEvent, EventBus
from graphwatch.platform.outbox.services import ATTENDEE_RESPONSE_CHANGED, NOTIFICATION_ACCEPTED

logger = logging.getLogger(__name__)

EVENT_CATALOG = {
    NOTIFICATION_ACCEPTED: {
        "version": "v1",
        "payload": {
            "subscription_id": "str",
            "change_type": "str",
            "resource_id": "str",
            "etag": "str",
            "resource_path": "str?",
            "tenant_id": "str?",
            "fingerprint": "str",
        },
    },
    ATTENDEE_RESPONSE_CHANGED: {
        "version": "v1",
        "payload": {
            "resource_id": "str",
            "attendee_id": "str",
            "previous_state": "str",
            "new_state": "str",
            "observed_at": "datetime",
        },
    },
}


def log_attendee_change(event: BusEvent) -> None:
    payload = event.payload
    logger.info(
        "Attendee %s on %s: %s -> %s",
        payload.get("attendee_id"),
        payload.get("resource_id"),
        payload.get("previous_state"),
        payload.get("new_state"),
    )


def register_subscribers(bus: EventBus) -> None:
    bus.subscribe(ATTENDEE_RESPONSE_CHANGED, log_attendee_change)
