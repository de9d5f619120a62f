"""graphwatch application factory and bootstrap."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from flask import Flask

from graphwatch.config import config_by_name
from graphwatch.core.event_bus import event_bus
from graphwatch.core.errors import MalformedRequest
from graphwatch.extensions import init_extensions
from graphwatch.services import EXTENSION_KEY, build_services


def create_app(config_name: Optional[str] = None, **overrides) -> Flask:
    """
    Create and configure the graphwatch Flask application.

    Keyword overrides (`clock`, `fetcher`, `remote`, `credentials`) replace the
    collaborators normally built from config.
    """
    env_name = (config_name or os.environ.get("APP_ENV") or "development").lower()
    project_root = Path(__file__).resolve().parent.parent
    instance_root = project_root / "instance"

    app = Flask(__name__, instance_path=str(instance_root), instance_relative_config=True)
    config_cls = config_by_name.get(env_name, config_by_name["development"])
    app.config.from_object(config_cls)
    instance_root.mkdir(parents=True, exist_ok=True)

    # Normalize sqlite path to absolute to avoid "unable to open database file"
    db_uri = app.config.get("SQLALCHEMY_DATABASE_URI") or ""
    if db_uri.startswith("sqlite:///") and not db_uri.startswith("sqlite:////"):
        db_path = db_uri.replace("sqlite:///", "", 1)
        abs_path = project_root / db_path
        abs_path.parent.mkdir(parents=True, exist_ok=True)
        app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{abs_path}"

    init_extensions(app)
    app.extensions[EXTENSION_KEY] = build_services(app, **overrides)
    app.extensions["event_bus"] = event_bus

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_subscribers()

    @app.get("/")
    def index():
        return {
            "service": "graphwatch",
            "description": "Graph change-notification receiver and subscription manager",
            "callback": app.config["WEBHOOK_CALLBACK_PATH"],
        }, 200

    @app.get("/health")
    def health():
        return {"ok": True}, 200

    from graphwatch.scripts.subscription_commands import register_commands

    register_commands(app)

    return app


def _register_blueprints(app: Flask) -> None:
    """Lazy import and register all controllers."""
    from graphwatch.domains.notifications.controllers.webhook_api import webhook_api_bp
    from graphwatch.domains.subscriptions.controllers.subscription_api import subscription_api_bp

    app.register_blueprint(webhook_api_bp, url_prefix="/api/webhook")
    app.register_blueprint(subscription_api_bp, url_prefix="/api/subscriptions")


def _register_error_handlers(app: Flask) -> None:
    """Basic JSON error responses."""
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        return {"ok": False, "error": exc.description}, exc.code

    @app.errorhandler(MalformedRequest)
    def _malformed(exc: MalformedRequest):
        return {"ok": False, "error": "malformed_request"}, 400

    @app.errorhandler(Exception)
    def _generic_error(exc: Exception):
        app.logger.exception("Unhandled error: %s", exc)
        # In debug/testing, surface the exception message to speed up diagnosis
        if app.debug or app.testing:
            return {"ok": False, "error": str(exc)}, 500
        return {"ok": False, "error": "unexpected_error"}, 500


def _register_subscribers() -> None:
    from graphwatch.domains.notifications import events as notification_events
    from graphwatch.domains.subscriptions import events as subscription_events

    notification_events.register_subscribers(event_bus)
    subscription_events.register_subscribers(event_bus)


__all__ = ["create_app"]
