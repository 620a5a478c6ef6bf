"""
Security headers middleware.

Adds to every HTTP response:
- Content-Security-Policy: same-origin scripts/styles (inline allowed for the
  dashboard page) and ws:/wss: for the real-time connection
- Strict-Transport-Security
- X-Content-Type-Options, X-Frame-Options, Referrer-Policy
"""

import logging
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_CSP_DIRECTIVES: Dict[str, List[str]] = {
    "default-src": ["'self'"],
    "style-src": ["'self'", "'unsafe-inline'"],
    "script-src": ["'self'", "'unsafe-inline'"],
    "connect-src": ["'self'", "ws:", "wss:"],
}


def build_csp(directives: Dict[str, List[str]]) -> str:
    return "; ".join(f"{name} {' '.join(values)}" for name, values in directives.items())


class SecurityHeadersMiddleware:
    """
    Pure ASGI middleware (WebSocket upgrades pass straight through).
    """

    def __init__(
        self,
        app,
        csp_directives: Optional[Dict[str, List[str]]] = None,
        hsts_max_age: int = 15552000,  # 180 days
        hsts_include_subdomains: bool = True,
    ):
        """
        Initialize security headers middleware.

        Args:
            app: ASGI application
            csp_directives: CSP directives (default: DEFAULT_CSP_DIRECTIVES)
            hsts_max_age: HSTS max age in seconds
            hsts_include_subdomains: Include subdomains in HSTS
        """
        self.app = app
        hsts = f"max-age={hsts_max_age}"
        if hsts_include_subdomains:
            hsts += "; includeSubDomains"
        self.headers: List[Tuple[bytes, bytes]] = [
            (b"content-security-policy", build_csp(csp_directives or DEFAULT_CSP_DIRECTIVES).encode()),
            (b"strict-transport-security", hsts.encode()),
            (b"x-content-type-options", b"nosniff"),
            (b"x-frame-options", b"SAMEORIGIN"),
            (b"referrer-policy", b"no-referrer"),
            (b"x-dns-prefetch-control", b"off"),
        ]

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                present = {name.lower() for name, _ in headers}
                for name, value in self.headers:
                    if name not in present:
                        headers.append((name, value))
                message = {**message, "headers": headers}
            await send(message)

        await self.app(scope, receive, send_with_headers)
