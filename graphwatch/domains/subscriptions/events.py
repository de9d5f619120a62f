"""Subscription domain event catalog and default bus subscribers."""

from __future__ import annotations

import logging

from graphwatch.core.event_bus import BusEvent, EventBus
from graphwatch.platform.outbox.services import SUBSCRIPTION_LAPSED, SUBSCRIPTION_REAUTHORIZATION_REQUESTED

logger = logging.getLogger(__name__)

EVENT_CATALOG = {
    SUBSCRIPTION_LAPSED: {
        "version": "v1",
        "payload": {
            "subscription_id": "str",
            "resource_path": "str",
            "reason": "str",
            "expires_at": "datetime?",
            "raised_at": "datetime",
            "details": "dict[str, str]",
        },
    },
    SUBSCRIPTION_REAUTHORIZATION_REQUESTED: {
        "version": "v1",
        "payload": {"subscription_id": "str"},
    },
}


def log_lapsed_subscription(event: BusEvent) -> None:
    payload = event.payload
    logger.critical(
        "ALERT subscription %s lapsed (%s); resource=%s",
        payload.get("subscription_id"),
        payload.get("reason"),
        payload.get("resource_path"),
    )


def register_subscribers(bus: EventBus) -> None:
    bus.subscribe(SUBSCRIPTION_LAPSED, log_lapsed_subscription)
