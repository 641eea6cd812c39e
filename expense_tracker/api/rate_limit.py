"""
Per-client rate limiting for the expense and settings routes.

Fixed window per client IP: the first request opens a window, requests
beyond the limit are rejected until the window's reset time passes.
State is process-local; one limiter is created per app.
"""

import time
from dataclasses import dataclass
from typing import Callable

import structlog
from fastapi import Request

from expense_tracker.api.errors import ApiError


logger = structlog.get_logger(__name__)

UNKNOWN_CLIENT = "unknown"


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """Fixed-window request counter keyed by client."""

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 900,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}

    def check(self, key: str) -> bool:
        """Count one request for key; False when the limit is exhausted."""
        now = self._clock()
        window = self._windows.get(key)

        if window is None or now > window.reset_at:
            self._prune(now)
            self._windows[key] = _Window(count=1, reset_at=now + self.window_seconds)
            return True

        if window.count >= self.max_requests:
            return False

        window.count += 1
        return True

    @property
    def tracked_clients(self) -> int:
        return len(self._windows)

    def _prune(self, now: float) -> None:
        """Forget clients whose window has expired."""
        expired = [key for key, window in self._windows.items() if now > window.reset_at]
        for key in expired:
            del self._windows[key]

    def remaining(self, key: str) -> int:
        window = self._windows.get(key)
        if window is None or self._clock() > window.reset_at:
            return self.max_requests
        return max(self.max_requests - window.count, 0)

    def reset(self) -> None:
        self._windows.clear()


def client_ip(request: Request) -> str:
    """
    Best-effort client address: first x-forwarded-for hop, then
    x-real-ip, then x-vercel-forwarded-for, then the socket peer.
    """
    headers = request.headers
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    for header in ("x-real-ip", "x-vercel-forwarded-for"):
        value = headers.get(header)
        if value:
            return value
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def enforce_rate_limit(request: Request) -> None:
    """Route dependency; raises a 429 ApiError when the client is over its limit."""
    limiter: RateLimiter = request.app.state.rate_limiter
    ip = client_ip(request)
    if not limiter.check(ip):
        logger.warning("rate_limit_exceeded", client_ip=ip, path=request.url.path)
        raise ApiError(429, "Rate limit exceeded")
