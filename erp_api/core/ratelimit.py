from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, Tuple

from fastapi import Request

from erp_api.core.errors import RateLimited
from erp_api.core.settings import AppSettings, get_app_settings

logger = logging.getLogger(__name__)

SCOPE_AUTH = "auth"
SCOPE_GENERAL = "general"
SCOPE_SENSITIVE = "sensitive"

_MESSAGES = {
    SCOPE_AUTH: "Too many authentication attempts, please try again later.",
    SCOPE_GENERAL: "Too many requests, please try again later.",
    SCOPE_SENSITIVE: "Too many requests, please try again later.",
}


def _limit_for(scope: str, settings: AppSettings) -> int:
    if scope == SCOPE_AUTH:
        return settings.RATE_LIMIT_AUTH
    if scope == SCOPE_SENSITIVE:
        return settings.RATE_LIMIT_SENSITIVE
    return settings.RATE_LIMIT_GENERAL


class RateLimiter:
    """
    In-process fixed-window request counter keyed by (scope, client address).

    Counters live in process memory only; a multi-process deployment gets one
    window per worker.
    """

    def __init__(self) -> None:
        self._windows: Dict[Tuple[str, str], Tuple[float, int]] = {}
        self._lock = asyncio.Lock()

    # PUBLIC_INTERFACE
    async def hit(self, scope: str, client: str, limit: int, window_seconds: int) -> None:
        """
        Count one request for (scope, client); raise RateLimited once the window's limit is exceeded.
        """
        now = time.monotonic()
        key = (scope, client)
        async with self._lock:
            started, count = self._windows.get(key, (now, 0))
            if now - started >= window_seconds:
                started, count = now, 0
            count += 1
            self._windows[key] = (started, count)
        if count > limit:
            retry_after = max(1, int(window_seconds - (now - started)))
            logger.warning("Rate limit exceeded scope=%s client=%s", scope, client)
            raise RateLimited(_MESSAGES.get(scope, _MESSAGES[SCOPE_GENERAL]), retry_after=retry_after)

    # PUBLIC_INTERFACE
    def reset(self) -> None:
        """Forget all counters."""
        self._windows.clear()


# Singleton instance
rate_limiter = RateLimiter()


# PUBLIC_INTERFACE
async def enforce_rate_limit(request: Request, scope: str) -> None:
    """Count the request against the scope; for routes where only some requests are limited."""
    settings = get_app_settings()
    if not settings.RATE_LIMIT_ENABLED:
        return
    client = request.client.host if request.client else "unknown"
    await rate_limiter.hit(
        scope,
        client,
        limit=_limit_for(scope, settings),
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    )


# PUBLIC_INTERFACE
def rate_limit(scope: str):
    """Create a dependency that counts the request against the given scope."""

    async def _dep(request: Request) -> None:
        await enforce_rate_limit(request, scope)

    return _dep
