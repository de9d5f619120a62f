"""Outbox dispatcher settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class DispatchConfig:
    """
    Knobs for claiming and retrying outbox messages.

    A failed message is retried after `backoff_seconds * backoff_multiplier^(n-1)`
    seconds (n = attempts so far), or later when the upstream asked for a
    longer Retry-After, until `max_attempts` is reached. A claimed message that
    is still 'sending' after `lease_seconds` is considered abandoned.
    """

    batch_size: int
    poll_interval: float
    max_attempts: int
    backoff_seconds: float
    backoff_multiplier: float
    lease_seconds: float = 60.0

    def __post_init__(self) -> None:
        if self.batch_size < 1 or self.max_attempts < 1:
            raise ValueError("batch_size and max_attempts must be >= 1")

    def backoff_for(self, attempts: int) -> float:
        return self.backoff_seconds * self.backoff_multiplier ** max(attempts - 1, 0)

    def retry_delay(self, attempts: int, retry_after: Optional[float] = None) -> float:
        return max(self.backoff_for(attempts), float(retry_after or 0))

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "DispatchConfig":
        return cls(
            batch_size=int(config.get("OUTBOX_BATCH_SIZE", 50)),
            poll_interval=float(config.get("OUTBOX_POLL_INTERVAL", 5)),
            max_attempts=int(config.get("OUTBOX_MAX_ATTEMPTS", 5)),
            backoff_seconds=float(config.get("OUTBOX_BACKOFF_SECONDS", 5)),
            backoff_multiplier=float(config.get("OUTBOX_BACKOFF_MULTIPLIER", 2)),
            lease_seconds=float(config.get("OUTBOX_LEASE_SECONDS", 60)),
        )
