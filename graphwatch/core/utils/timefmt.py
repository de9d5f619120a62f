"""ISO-8601 helpers for provider timestamps (naive UTC in, `Z` suffix out)."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

# Graph emits up to seven fractional digits; datetime accepts six.
_FRACTION = re.compile(r"(\.\d{6})\d+")


def parse_instant(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    raw = _FRACTION.sub(r"\1", raw)
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def format_instant(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"
