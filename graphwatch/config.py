"""Application configuration for graphwatch."""

from __future__ import annotations

import json
import os
from datetime import timedelta
from typing import Dict, Type

from dotenv import load_dotenv
from sqlalchemy.engine.url import make_url

load_dotenv()


def _engine_options_from_uri(uri: str) -> dict:
    url = make_url(uri)
    # Always keep pool_pre_ping, vary connect_args by dialect.
    if url.get_backend_name() == "sqlite":
        return {
            "pool_pre_ping": True,
            "connect_args": {"timeout": 30, "check_same_thread": False},
        }
    if url.get_backend_name() in {"postgresql", "postgres"}:
        timeout = int(os.environ.get("DB_CONNECT_TIMEOUT_SECONDS", "10"))
        return {"pool_pre_ping": True, "connect_args": {"connect_timeout": timeout}}
    return {"pool_pre_ping": True}


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


# Provider ceilings per resource class, in minutes.
DEFAULT_MAX_LIFETIME_MINUTES = {
    "events": 4230,
    "messages": 4230,
    "contacts": 4230,
    "drive": 42300,
    "chats": 60,
    "default": 4230,
}


def _max_lifetimes() -> Dict[str, int]:
    raw = os.environ.get("SUBSCRIPTION_MAX_LIFETIME_MINUTES")
    if not raw:
        return dict(DEFAULT_MAX_LIFETIME_MINUTES)
    parsed = {str(k).lower(): int(v) for k, v in json.loads(raw).items()}
    parsed.setdefault("default", DEFAULT_MAX_LIFETIME_MINUTES["default"])
    return parsed


class BaseConfig:
    """Base configuration loaded for all environments."""

    SECRET_KEY = os.environ.get("SECRET_KEY", "change-me")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///instance/graphwatch.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options_from_uri(SQLALCHEMY_DATABASE_URI)
    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_CONTENT_LENGTH", str(4 * 1024 * 1024)))

    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", SECRET_KEY)
    JWT_TOKEN_LOCATION = ["headers"]
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=int(os.environ.get("JWT_ACCESS_MINUTES", "60")))

    RATELIMIT_DEFAULT = "200/hour"
    RATELIMIT_STORAGE_URI = os.environ.get("REDIS_URL", "memory://")
    RATELIMIT_ENABLED = _flag("RATELIMIT_ENABLED", "true")

    # Microsoft Graph
    GRAPH_BASE_URL = os.environ.get("GRAPH_BASE_URL", "https://graph.microsoft.com/v1.0")
    GRAPH_TOKEN_URL_TEMPLATE = os.environ.get(
        "GRAPH_TOKEN_URL_TEMPLATE",
        "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token",
    )
    GRAPH_SCOPE = os.environ.get("GRAPH_SCOPE", "https://graph.microsoft.com/.default")
    GRAPH_TENANT_ID = os.environ.get("GRAPH_TENANT_ID", "")
    GRAPH_CLIENT_ID = os.environ.get("GRAPH_CLIENT_ID", "")
    GRAPH_CLIENT_SECRET = os.environ.get("GRAPH_CLIENT_SECRET", "")
    # When set, the static token is used instead of the client-credentials flow.
    GRAPH_STATIC_TOKEN = os.environ.get("GRAPH_STATIC_TOKEN", "")

    # Callback surface
    WEBHOOK_PUBLIC_URL = os.environ.get("WEBHOOK_PUBLIC_URL", "http://localhost:5000")
    WEBHOOK_CALLBACK_PATH = os.environ.get("WEBHOOK_CALLBACK_PATH", "/api/webhook/notifications")
    WEBHOOK_LIFECYCLE_PATH = os.environ.get("WEBHOOK_LIFECYCLE_PATH", "/api/webhook/lifecycle")

    # Subscription lifecycle
    SUBSCRIPTION_CHANGE_TYPES = os.environ.get("SUBSCRIPTION_CHANGE_TYPES", "created,updated,deleted")
    SUBSCRIPTION_MAX_LIFETIME_MINUTES = _max_lifetimes()
    SUBSCRIPTION_DESIRED_LIFETIME_MINUTES = int(os.environ.get("SUBSCRIPTION_DESIRED_LIFETIME_MINUTES", "4230"))
    RENEWAL_LOOKAHEAD_MINUTES = int(os.environ.get("RENEWAL_LOOKAHEAD_MINUTES", str(2 * 24 * 60)))
    RENEWAL_INTERVAL_SECONDS = int(os.environ.get("RENEWAL_INTERVAL_SECONDS", "3600"))
    RENEWAL_CONCURRENCY = int(os.environ.get("RENEWAL_CONCURRENCY", "4"))
    RENEWAL_BACKOFF_BASE_SECONDS = float(os.environ.get("RENEWAL_BACKOFF_BASE_SECONDS", "1"))
    RENEWAL_BACKOFF_CAP_SECONDS = float(os.environ.get("RENEWAL_BACKOFF_CAP_SECONDS", "300"))
    RENEWAL_MAX_ATTEMPTS = int(os.environ.get("RENEWAL_MAX_ATTEMPTS", "5"))
    RENEWAL_EXPIRY_GRACE_MINUTES = int(os.environ.get("RENEWAL_EXPIRY_GRACE_MINUTES", "60"))
    RENEWAL_LEASE_MINUTES = int(os.environ.get("RENEWAL_LEASE_MINUTES", "15"))

    # Notification intake
    DEDUPE_RETENTION_HOURS = int(os.environ.get("DEDUPE_RETENTION_HOURS", "24"))
    RESOURCE_FETCH_TIMEOUT_SECONDS = float(os.environ.get("RESOURCE_FETCH_TIMEOUT_SECONDS", "15"))
    UPSTREAM_TIMEOUT_SECONDS = float(os.environ.get("UPSTREAM_TIMEOUT_SECONDS", "30"))
    SNAPSHOT_CAS_RETRIES = int(os.environ.get("SNAPSHOT_CAS_RETRIES", "3"))
    INTAKE_WORKERS = int(os.environ.get("INTAKE_WORKERS", "4"))

    # Outbox dispatcher
    OUTBOX_BATCH_SIZE = int(os.environ.get("OUTBOX_BATCH_SIZE", "50"))
    OUTBOX_POLL_INTERVAL = float(os.environ.get("OUTBOX_POLL_INTERVAL", "5"))
    OUTBOX_MAX_ATTEMPTS = int(os.environ.get("OUTBOX_MAX_ATTEMPTS", "5"))
    OUTBOX_BACKOFF_SECONDS = float(os.environ.get("OUTBOX_BACKOFF_SECONDS", "5"))
    OUTBOX_BACKOFF_MULTIPLIER = float(os.environ.get("OUTBOX_BACKOFF_MULTIPLIER", "2"))
    OUTBOX_LEASE_SECONDS = float(os.environ.get("OUTBOX_LEASE_SECONDS", "60"))


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    ENV = "development"


class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URL", "sqlite:///instance/test.db")
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options_from_uri(SQLALCHEMY_DATABASE_URI)
    RATELIMIT_ENABLED = False
    JWT_SECRET_KEY = "testing-secret-key-with-enough-length-for-hs256"
    GRAPH_STATIC_TOKEN = "test-token"
    WEBHOOK_PUBLIC_URL = "https://hooks.example.test"
    # Tests drive the processor directly instead of through a thread pool.
    INTAKE_WORKERS = 0
    OUTBOX_POLL_INTERVAL = 0.0


class ProductionConfig(BaseConfig):
    ENV = "production"


config_by_name: Dict[str, Type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    # CI pipelines set APP_ENV=ci; map to testing defaults.
    "ci": TestingConfig,
}
