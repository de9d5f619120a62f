"""Clock sources. All instants are naive UTC datetimes."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SystemClock:
    """Wall clock."""

    def now(self) -> datetime:
        return utcnow()


class FixedClock:
    """Manually advanced clock for tests and replays."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or utcnow()
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, delta: timedelta) -> datetime:
        with self._lock:
            self._now = self._now + delta
            return self._now

    def set(self, value: datetime) -> None:
        with self._lock:
            self._now = value


__all__ = ["SystemClock", "FixedClock", "utcnow"]
