"""Callback URL ownership challenge."""

from __future__ import annotations

from typing import Dict, Tuple

VALIDATION_TOKEN_PARAM = "validationToken"


def validation_response(token: str) -> Tuple[str, int, Dict[str, str]]:
    """Echo the challenge token verbatim as text/plain; an empty token echoes empty."""
    return token, 200, {"Content-Type": "text/plain"}


__all__ = ["VALIDATION_TOKEN_PARAM", "validation_response"]
