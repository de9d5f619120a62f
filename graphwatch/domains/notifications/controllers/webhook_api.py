"""Inbound webhook: validation handshake and change-notification batches."""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from graphwatch.core.errors import InternalStoreFailure, MalformedRequest
from graphwatch.domains.notifications.schemas import is_notification_batch
from graphwatch.domains.notifications.services.handshake import VALIDATION_TOKEN_PARAM, validation_response
from graphwatch.extensions import limiter
from graphwatch.services import get_services

logger = logging.getLogger(__name__)

webhook_api_bp = Blueprint("webhook_api", __name__)


def _handle_callback():
    # The ownership challenge takes priority over any body.
    if VALIDATION_TOKEN_PARAM in request.args:
        return validation_response(request.args.get(VALIDATION_TOKEN_PARAM, ""))

    body = request.get_json(silent=True, force=True)
    if not is_notification_batch(body):
        raise MalformedRequest("body is neither a validation request nor a notification batch")

    services = get_services()
    try:
        result = services.intake.accept(body["value"])
    except InternalStoreFailure:
        return jsonify({"ok": False, "error": "store_unavailable"}), 500

    services.schedule(current_app._get_current_object(), result.message_ids)
    return jsonify({"ok": True, **result.as_dict()}), 202


@webhook_api_bp.route("/notifications", methods=["GET", "POST"])
@limiter.exempt
def notifications():
    """
    Change-notification callback.

    - `?validationToken=...` → 200 text/plain echo of the token
    - JSON `{"value": [...]}` → 202 once every envelope is authenticated,
      deduplicated and durably staged for processing
    - anything else → 400
    """
    return _handle_callback()


@webhook_api_bp.route("/lifecycle", methods=["GET", "POST"])
@limiter.exempt
def lifecycle():
    """Lifecycle-notification callback; same shapes as the change callback."""
    return _handle_callback()


@webhook_api_bp.get("/validate")
@limiter.exempt
def validate():
    """Manual handshake probe."""
    return validation_response(request.args.get(VALIDATION_TOKEN_PARAM, ""))
