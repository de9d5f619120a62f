"""Controller decorators for the bearer-protected admin API."""

from __future__ import annotations

import logging
from functools import wraps
from typing import Callable, TypeVar

from flask import jsonify, request
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

F = TypeVar("F", bound=Callable)

ADMIN_ROLE = "admin"

security_logger = logging.getLogger("graphwatch.security")


def token_roles() -> frozenset:
    """Roles claimed by the verified token of the current request."""
    claims = get_jwt() or {}
    return frozenset(claims.get("roles") or ())


def require_roles(*required: str):
    """
    Require a valid bearer token carrying every role in `required`.

    `admin` satisfies any role. Missing or invalid tokens answer 401, tokens
    without the roles answer 403; denials are written to the security log.
    """
    needed = frozenset(required)

    def decorator(fn: F) -> F:
        @wraps(fn)
        def wrapper(*args, **kwargs):  # type: ignore[misc]
            try:
                verify_jwt_in_request()
            except (JWTExtendedException, PyJWTError) as exc:
                security_logger.warning("Admin API %s %s: invalid token (%s)", request.method, request.path, exc)
                return jsonify({"ok": False, "error": "unauthorized"}), 401
            roles = token_roles()
            if ADMIN_ROLE not in roles and not needed <= roles:
                security_logger.warning(
                    "Admin API %s %s denied for %s (needs %s)",
                    request.method,
                    request.path,
                    get_jwt_identity(),
                    ",".join(sorted(needed - roles)),
                )
                return jsonify({"ok": False, "error": "forbidden"}), 403
            return fn(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator
