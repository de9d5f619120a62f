"""Notification domain tasks: periodic maintenance."""

from __future__ import annotations

import logging

from graphwatch.extensions import db
from graphwatch.services import get_services

logger = logging.getLogger(__name__)


def purge_expired_fingerprints() -> int:
    """
    Delete dedupe fingerprints past their retention window.

    Call this periodically (the worker runs it hourly). Requires an app context.
    """
    services = get_services()
    removed = services.ledger.purge_expired(services.clock.now())
    db.session.commit()
    if removed:
        logger.info("Purged %s expired notification fingerprints", removed)
    return removed
