"""
Gunicorn configuration for the graphwatch webhook receiver.

The provider expects callbacks to be acknowledged within a few seconds, so
requests only validate, dedupe and stage work; processing runs on the
in-process intake pool or the separate worker (`python -m graphwatch.platform.worker.run`).
All settings are environment driven for container deployment.
"""

from __future__ import annotations

import logging
import multiprocessing
import os

# ===== Binding =====
bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8000")
backlog = int(os.environ.get("GUNICORN_BACKLOG", "2048"))

# ===== Workers =====
worker_class = os.environ.get("GUNICORN_WORKER_CLASS", "gthread")
workers = int(os.environ.get("GUNICORN_WORKERS", str(min(multiprocessing.cpu_count() * 2 + 1, 8))))
threads = int(os.environ.get("GUNICORN_THREADS", "8"))
max_requests = int(os.environ.get("GUNICORN_MAX_REQUESTS", "10000"))
max_requests_jitter = int(os.environ.get("GUNICORN_MAX_REQUESTS_JITTER", "1000"))
worker_tmp_dir = os.environ.get("GUNICORN_WORKER_TMP_DIR", "/dev/shm")

# Each worker owns its intake thread pool; it must be created after fork.
preload_app = False

# ===== Timeouts =====
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "30"))
graceful_timeout = int(os.environ.get("GUNICORN_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.environ.get("GUNICORN_KEEPALIVE", "5"))

# ===== Logging =====
accesslog = os.environ.get("GUNICORN_ACCESSLOG", "-")
errorlog = os.environ.get("GUNICORN_ERRORLOG", "-")
loglevel = os.environ.get("GUNICORN_LOGLEVEL", "info")
capture_output = True

# validationToken is echoed in the query string; keep it out of access logs.
access_log_format = os.environ.get(
    "GUNICORN_ACCESS_LOG_FORMAT",
    '{"timestamp": "%(t)s", "remote": "%(h)s", "method": "%(m)s", "path": "%(U)s", '
    '"status": %(s)s, "bytes": %(b)s, "response_time_us": %(D)s, "pid": %(p)s}',
)

# ===== Request limits =====
limit_request_line = int(os.environ.get("GUNICORN_LIMIT_REQUEST_LINE", "8190"))
limit_request_fields = int(os.environ.get("GUNICORN_LIMIT_REQUEST_FIELDS", "100"))
limit_request_field_size = int(os.environ.get("GUNICORN_LIMIT_REQUEST_FIELD_SIZE", "8190"))
forwarded_allow_ips = os.environ.get("GUNICORN_FORWARDED_ALLOW_IPS", "*")

proc_name = os.environ.get("GUNICORN_PROC_NAME", "graphwatch")


def on_starting(server):
    logging.getLogger(__name__).info(
        "graphwatch starting: workers=%s threads=%s timeout=%ss", workers, threads, timeout
    )


def when_ready(server):
    logging.getLogger(__name__).info("graphwatch listening on %s", bind)


def worker_exit(server, worker):
    """Let in-flight intake work finish; unfinished items stay in the outbox."""
    services = getattr(worker.wsgi, "extensions", {}).get("graphwatch")
    if services is not None and services.executor is not None:
        services.executor.shutdown(wait=True, cancel_futures=True)


def worker_abort(worker):
    logging.getLogger(__name__).warning("Worker %s timed out (>%ss), aborting", worker.pid, timeout)
