"""CLI entrypoint to run the background worker (outbox, renewals, purging)."""

from __future__ import annotations

import logging
import os
import time

from flask import Flask

from graphwatch import create_app
from graphwatch.domains.notifications.tasks import purge_expired_fingerprints
from graphwatch.platform.worker.dispatcher import dispatch_ready
from graphwatch.services import get_services

logger = logging.getLogger(__name__)

PURGE_INTERVAL_SECONDS = 3600.0


def run_worker(app: Flask, max_loops: int | None = None) -> None:
    """
    Drive the outbox dispatcher, renewal ticks and fingerprint purging.

    The dispatcher polls every `poll_interval` when idle; a renewal tick runs
    every `RENEWAL_INTERVAL_SECONDS` (and once at start-up).
    """
    services = get_services(app)
    cfg = services.dispatch_config
    next_renewal = 0.0
    next_purge = 0.0
    loops = 0

    logger.info(
        "Starting worker (batch_size=%s, poll_interval=%ss, renewal_interval=%ss)",
        cfg.batch_size,
        cfg.poll_interval,
        services.policy.interval,
    )

    try:
        while max_loops is None or loops < max_loops:
            loops += 1
            with app.app_context():
                now = time.monotonic()
                if now >= next_renewal:
                    try:
                        services.lifecycle.tick()
                    except Exception:
                        logger.exception("Renewal tick aborted")
                    next_renewal = now + services.policy.interval
                if now >= next_purge:
                    try:
                        purge_expired_fingerprints()
                    except Exception:
                        logger.exception("Fingerprint purge failed")
                    next_purge = now + PURGE_INTERVAL_SECONDS
                processed = dispatch_ready(services.router, cfg)

            if max_loops is not None and loops >= max_loops:
                break
            if processed == 0:
                time.sleep(cfg.poll_interval)
            else:
                time.sleep(min(0.1, cfg.poll_interval))
    except KeyboardInterrupt:
        logger.info("Worker stopped by user")


def main() -> None:
    logging.basicConfig(level=os.environ.get("WORKER_LOGLEVEL", "INFO"))
    env = os.environ.get("APP_ENV", "development")
    run_worker(create_app(env))


if __name__ == "__main__":
    main()
