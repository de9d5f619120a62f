"""Subscription admin API controllers."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from graphwatch.core.errors import FatalUpstream, InternalStoreFailure, NotFound, TransientUpstream
from graphwatch.core.utils.decorators import require_roles
from graphwatch.domains.subscriptions.schemas import SubscriptionCreate, SubscriptionListParams
from graphwatch.domains.subscriptions.services.subscription_service import (
    serialize_remote,
    serialize_subscription,
)
from graphwatch.extensions import limiter
from graphwatch.services import get_services

subscription_api_bp = Blueprint("subscription_api", __name__)


def _upstream_error(exc: Exception):
    if isinstance(exc, TransientUpstream):
        return jsonify({"ok": False, "error": "upstream_unavailable"}), 503
    if isinstance(exc, NotFound):
        return jsonify({"ok": False, "error": "upstream_not_found"}), 422
    return jsonify({"ok": False, "error": "upstream_rejected", "detail": str(exc)}), 422


@subscription_api_bp.get("")
@require_roles("subscriptions:read")
@limiter.limit("120/minute")
def list_subscriptions():
    """
    List subscriptions.

    Query Parameters:
    - include_inactive: bool (default true)
    - remote: bool, also list the provider's view (default false)
    """
    try:
        params = SubscriptionListParams.model_validate(request.args.to_dict())
    except Exception:
        return jsonify({"ok": False, "error": "validation_error"}), 400

    service = get_services().subscription_service
    body = {
        "ok": True,
        "subscriptions": [serialize_subscription(row) for row in service.list_local(params.include_inactive)],
    }
    if params.remote:
        try:
            body["remote"] = [serialize_remote(record) for record in service.list_remote()]
        except (TransientUpstream, FatalUpstream) as exc:
            return _upstream_error(exc)
    return jsonify(body), 200


@subscription_api_bp.get("/<subscription_id>")
@require_roles("subscriptions:read")
@limiter.limit("240/minute")
def get_subscription(subscription_id: str):
    row = get_services().subscription_service.get(subscription_id)
    if row is None:
        return jsonify({"ok": False, "error": "not_found"}), 404
    return jsonify({"ok": True, "subscription": serialize_subscription(row)}), 200


@subscription_api_bp.post("")
@require_roles("subscriptions:write")
@limiter.limit("30/minute")
def create_subscription():
    """
    Register a subscription upstream and store it locally.

    Request Body:
    {
      "resource_path": "/users/alice@example.com/events",
      "change_types": "created,updated,deleted",
      "expiration_minutes": 4230
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        data = SubscriptionCreate.model_validate(payload)
    except Exception:
        return jsonify({"ok": False, "error": "validation_error"}), 400

    try:
        row = get_services().subscription_service.create(
            data.resource_path,
            change_types=data.change_types,
            expiration_minutes=data.expiration_minutes,
        )
    except ValueError as exc:
        return jsonify({"ok": False, "error": str(exc)}), 400
    except (TransientUpstream, FatalUpstream) as exc:
        return _upstream_error(exc)
    except InternalStoreFailure:
        return jsonify({"ok": False, "error": "store_unavailable"}), 500

    return jsonify({"ok": True, "subscription": serialize_subscription(row)}), 201


@subscription_api_bp.delete("/<subscription_id>")
@require_roles("subscriptions:write")
@limiter.limit("30/minute")
def delete_subscription(subscription_id: str):
    try:
        deleted = get_services().subscription_service.delete(subscription_id)
    except (TransientUpstream, FatalUpstream) as exc:
        return _upstream_error(exc)
    if not deleted:
        return jsonify({"ok": False, "error": "not_found"}), 404
    return jsonify({"ok": True}), 200


@subscription_api_bp.post("/<subscription_id>/renew")
@require_roles("subscriptions:write")
@limiter.limit("30/minute")
def renew_subscription(subscription_id: str):
    """Renew now; 409 while another renewal of the same record is running."""
    services = get_services()
    row = services.subscription_service.get(subscription_id)
    if row is None:
        return jsonify({"ok": False, "error": "not_found"}), 404
    if not row.active:
        return jsonify({"ok": False, "error": "inactive"}), 409

    outcome = services.lifecycle.renew_now(subscription_id)
    if outcome is None:
        return jsonify({"ok": False, "error": "renewal_in_progress"}), 409

    refreshed = services.subscription_service.get(subscription_id)
    return jsonify({
        "ok": outcome.status == "renewed",
        "outcome": outcome.status,
        "attempts": outcome.attempts,
        "error": outcome.error,
        "subscription": serialize_subscription(refreshed),
    }), 200 if outcome.status == "renewed" else 502
