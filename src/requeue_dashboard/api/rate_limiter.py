"""
API Rate Limiting for the dashboard.

Implements:
- Per-IP sliding-window rate limiting across all HTTP endpoints
- Graceful 429 responses with Retry-After headers
- Periodic cleanup of stale entries

Defaults: 1000 requests per IP per 15 minutes (configurable via
``features.rateLimit``). WebSocket traffic is not throttled. X-Forwarded-For
is only honoured with ``trustProxy`` enabled.
"""

import logging
import threading
import time
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."

# Cleanup interval (delete idle entries)
CLEANUP_INTERVAL_SECONDS = 60


class InMemoryRateLimiter:
    """
    In-memory rate limiter.

    Tracks request timestamps per IP using sliding windows.

    Note: state is per process; with multiple workers each one counts
    separately.
    """

    def __init__(self, limit: int, window_seconds: float):
        """
        Initialize rate limiter.

        Args:
            limit: Max requests allowed per window
            window_seconds: Window length in seconds
        """
        self.limit = limit
        self.window_seconds = window_seconds
        self.ip_requests: Dict[str, List[float]] = defaultdict(list)
        self.last_cleanup = time.monotonic()
        self._lock = threading.Lock()

    def _cleanup_old_entries(self, now: float) -> None:
        """Drop IPs with no requests inside the current window."""
        if now - self.last_cleanup < CLEANUP_INTERVAL_SECONDS:
            return

        cutoff = now - self.window_seconds
        for ip in list(self.ip_requests.keys()):
            recent = [ts for ts in self.ip_requests[ip] if ts > cutoff]
            if recent:
                self.ip_requests[ip] = recent
            else:
                del self.ip_requests[ip]

        self.last_cleanup = now
        logger.debug("Rate limiter cleanup complete")

    def check_ip_limit(self, ip: str) -> Tuple[bool, int, int]:
        """
        Check whether ``ip`` may make another request, recording it if so.

        Args:
            ip: Client IP address

        Returns:
            Tuple of (allowed: bool, current_count: int, retry_after_seconds: int)
        """
        with self._lock:
            now = time.monotonic()
            self._cleanup_old_entries(now)

            cutoff = now - self.window_seconds
            recent = [ts for ts in self.ip_requests[ip] if ts > cutoff]
            self.ip_requests[ip] = recent

            if len(recent) >= self.limit:
                oldest = min(recent)
                retry_after = int((oldest + self.window_seconds) - now) + 1
                return False, len(recent), retry_after

            recent.append(now)
            return True, len(recent), 0

    def reset(self) -> None:
        with self._lock:
            self.ip_requests.clear()


def get_client_ip(request: Request, trust_proxy: bool = False) -> str:
    """
    Extract client IP from request.

    The socket peer is used unless ``trust_proxy`` is set, in which case the
    first X-Forwarded-For address (set by the reverse proxy) wins.
    """
    forwarded_for = request.headers.get("x-forwarded-for") if trust_proxy else None
    if forwarded_for:
        # First IP in the list is the original client
        return forwarded_for.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"


class RateLimitMiddleware:
    """Pure ASGI middleware applying the per-IP limit to HTTP requests."""

    def __init__(self, app, limiter: Optional[InMemoryRateLimiter] = None,
                 limit: int = 1000, window_seconds: float = 900.0,
                 trust_proxy: bool = False):
        self.app = app
        self.trust_proxy = trust_proxy
        self.limiter = limiter or InMemoryRateLimiter(limit, window_seconds)

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        ip = get_client_ip(Request(scope), trust_proxy=self.trust_proxy)
        allowed, count, retry_after = self.limiter.check_ip_limit(ip)
        if not allowed:
            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %.0fs",
                ip, count, self.limiter.window_seconds,
            )
            response = JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"error": RATE_LIMIT_MESSAGE},
                headers={"Retry-After": str(retry_after)},
            )
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)
