"""
LexLedger - Rate Limiting

In-memory sliding window per client IP for the credential endpoints. A
single-process store; several workers each keep their own window.
"""

import time
from typing import Callable, Optional

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send


# Stale keys are swept at most this often
SWEEP_INTERVAL_SECONDS = 60


class RateLimitStore:
    """In-memory sliding window rate limit store."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._requests: dict[str, list[float]] = {}
        self._windows: dict[str, int] = {}
        self._last_sweep = clock()

    def is_rate_limited(self, key: str, max_requests: int, window_seconds: int) -> bool:
        """Record a hit for ``key`` unless it already used up its window."""
        now = self._clock()
        self._sweep(now)
        cutoff = now - window_seconds

        recent = [t for t in self._requests.get(key, ()) if t > cutoff]
        self._requests[key] = recent
        self._windows[key] = window_seconds

        if len(recent) >= max_requests:
            return True

        recent.append(now)
        return False

    def _sweep(self, now: float) -> None:
        """Forget keys with no hit left inside their window."""
        if now - self._last_sweep < SWEEP_INTERVAL_SECONDS:
            return
        self._last_sweep = now
        stale = [
            key for key, hits in self._requests.items()
            if not hits or hits[-1] <= now - self._windows[key]
        ]
        for key in stale:
            del self._requests[key]
            del self._windows[key]

    def __len__(self) -> int:
        return len(self._requests)

    def reset(self):
        """Forget every window (tests)."""
        self._requests.clear()
        self._windows.clear()


rate_limit_store = RateLimitStore()

# {path: (max_requests, window_seconds)}
RATE_LIMIT_RULES: dict[str, tuple[int, int]] = {
    "/login": (10, 60),
    "/portal/login": (10, 60),
    "/forgot-password": (5, 60),
    "/reset-password": (10, 60),
}


def rule_for(path: str) -> Optional[tuple[int, int]]:
    for rule_path, limits in RATE_LIMIT_RULES.items():
        if path == rule_path or path.startswith(rule_path + "/"):
            return limits
    return None


class RateLimitMiddleware:
    """Applies ``RATE_LIMIT_RULES`` to POST requests, answering 429 when exceeded."""

    def __init__(self, app: ASGIApp, store: RateLimitStore = rate_limit_store):
        self.app = app
        self.store = store

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        rule = rule_for(request.url.path) if request.method == "POST" else None
        if rule is None:
            await self.app(scope, receive, send)
            return

        max_requests, window_seconds = rule
        client_ip = request.client.host if request.client else "unknown"
        key = f"{client_ip}:{request.url.path}"

        if self.store.is_rate_limited(key, max_requests, window_seconds):
            response = JSONResponse(
                status_code=429,
                content={"detail": "Too many requests. Please try again later."},
                headers={"Retry-After": str(window_seconds)},
            )
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)
