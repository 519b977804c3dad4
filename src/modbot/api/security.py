"""Access control for the HTTP API: shared-secret API key and a fixed-window rate limiter.

The API key may be sent as the ``X-API-Key`` header or the ``apiKey`` query
parameter. The limiter keys callers by ``<client ip>:<api key or "anonymous">``.
"""

from __future__ import annotations

import hmac
import math
import time
from typing import Callable, Dict, Optional, Tuple

from fastapi import Header, Query, Request

from modbot.datatypes.errors import AuthorizationError, RateLimitError

DEFAULT_API_KEY = "modbot-api-key-change-me"


def supplied_api_key(request: Request) -> Optional[str]:
    return request.headers.get("x-api-key") or request.query_params.get("apiKey")


def caller_identity(request: Request) -> str:
    client_ip = request.client.host if request.client else "unknown"
    return f"{client_ip}:{supplied_api_key(request) or 'anonymous'}"


class FixedWindowRateLimiter:
    """Allows ``limit`` requests per caller in each ``window_seconds`` window."""

    def __init__(self, limit: int = 100, window_seconds: float = 60, clock: Callable[[], float] = time.monotonic) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}

    def consume(self, key: str) -> int:
        """Count one request for ``key``.

        Returns:
            Requests left in the caller's current window.

        Raises:
            RateLimitError: If the window is exhausted; ``retry_after`` is the
                number of seconds until it resets.
        """
        now = self._clock()
        started, count = self._windows.get(key, (now, 0))
        if now - started >= self.window_seconds:
            started, count = now, 0

        if count >= self.limit:
            retry_after = max(1, math.ceil(started + self.window_seconds - now))
            raise RateLimitError(retry_after)

        self._windows[key] = (started, count + 1)
        if len(self._windows) > 10_000:
            self._prune(now)
        return self.limit - count - 1

    def _prune(self, now: float) -> None:
        expired = [key for key, (started, _) in self._windows.items() if now - started >= self.window_seconds]
        for key in expired:
            del self._windows[key]


async def require_api_key(
    request: Request,
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    api_key: Optional[str] = Query(None, alias="apiKey"),
) -> str:
    """FastAPI dependency guarding the protected endpoints.

    Raises:
        AuthorizationError: If no key was supplied or it does not match.
    """
    expected = request.app.state.context.api_key
    supplied = x_api_key or api_key
    if not supplied or not hmac.compare_digest(supplied.encode(), expected.encode()):
        raise AuthorizationError("Valid API key required")
    return supplied
