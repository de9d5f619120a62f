"""Worker runtime and dispatch loop for the platform outbox."""

from graphwatch.platform.worker.config import DispatchConfig
from graphwatch.platform.worker.dispatcher import (
    OutboxRouter,
    claim_ready_messages,
    dispatch_ready,
    process_ready_batch,
)

__all__ = [
    "DispatchConfig",
    "OutboxRouter",
    "claim_ready_messages",
    "dispatch_ready",
    "process_ready_batch",
]
