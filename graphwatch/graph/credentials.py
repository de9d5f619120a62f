"""Bearer credential providers."""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Optional

import requests

from graphwatch.core.clock import SystemClock
from graphwatch.core.contracts import ClockSource
from graphwatch.core.errors import AuthUnavailable

logger = logging.getLogger(__name__)

# Refresh this long before the provider-stated expiry.
REFRESH_MARGIN = timedelta(minutes=5)


class StaticCredentialProvider:
    """Fixed token from configuration."""

    def __init__(self, token: str) -> None:
        self._token = token

    def get_token(self) -> str:
        if not self._token:
            raise AuthUnavailable("No static token configured")
        return self._token


class ClientCredentialProvider:
    """
    OAuth2 client-credentials flow with an in-memory cached token.

    Thread-safe; concurrent callers share one refresh.
    """

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        scope: str,
        clock: Optional[ClockSource] = None,
        timeout: float = 30,
        http: Optional[requests.Session] = None,
    ) -> None:
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope
        self.clock = clock or SystemClock()
        self.timeout = timeout
        self.http = http or requests.Session()
        self._lock = threading.Lock()
        self._token: Optional[str] = None
        self._expires_at = None

    def _valid(self) -> bool:
        return bool(self._token) and self._expires_at is not None and self.clock.now() < self._expires_at

    def get_token(self) -> str:
        with self._lock:
            if self._valid():
                return self._token  # type: ignore[return-value]
            if not (self.client_id and self.client_secret):
                raise AuthUnavailable("Client credentials are not configured")

            payload = {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "scope": self.scope,
                "grant_type": "client_credentials",
            }
            try:
                resp = self.http.post(self.token_url, data=payload, timeout=self.timeout)
                resp.raise_for_status()
                data = resp.json()
            except (requests.RequestException, ValueError) as e:
                logger.error(f"Token acquisition failed: {e}")
                raise AuthUnavailable(f"Failed to acquire token: {e}") from e

            token = data.get("access_token")
            if not token:
                raise AuthUnavailable("Token endpoint returned no access_token")
            lifetime = timedelta(seconds=int(data.get("expires_in", 3600)))
            self._token = token
            self._expires_at = self.clock.now() + max(lifetime - REFRESH_MARGIN, timedelta(seconds=30))
            return token
