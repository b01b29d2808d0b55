"""ASGI middleware for the gateway.

AdmissionMiddleware counts requests under a path prefix against a
per-client fixed-window quota and answers 429 once it is exhausted.
Admitted responses carry X-RateLimit-* headers.

SecurityHeadersMiddleware adds the hardening headers the gateway always
serves and issues a ``csrf-token`` cookie to clients that have none.

    app.add_middleware(AdmissionMiddleware, limiter=limiter)
    app.add_middleware(SecurityHeadersMiddleware, production=True)
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable

from starlette.datastructures import MutableHeaders
from starlette.requests import HTTPConnection
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..exceptions import RateLimitExceeded
from ..ratelimit import UNKNOWN_CLIENT, FixedWindowRateLimiter

logger = logging.getLogger(__name__)

CSRF_COOKIE = "csrf-token"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "X-Powered-By": "rpcgate",
}


def client_key(conn: HTTPConnection, trust_forwarded_for: bool = False) -> str:
    """Identify the client a request is counted against."""
    if trust_forwarded_for:
        forwarded = conn.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if conn.client and conn.client.host:
        return conn.client.host
    return UNKNOWN_CLIENT


class AdmissionMiddleware:
    """Fixed-window rate limiting for requests under ``path_prefix``."""

    def __init__(
        self,
        app: ASGIApp,
        limiter: FixedWindowRateLimiter,
        path_prefix: str = "/api/",
        trust_forwarded_for: bool = False,
        on_reject: Callable[[str], None] | None = None,
    ) -> None:
        self.app = app
        self.limiter = limiter
        self.path_prefix = path_prefix
        self.trust_forwarded_for = trust_forwarded_for
        self.on_reject = on_reject

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not scope.get("path", "").startswith(self.path_prefix):
            await self.app(scope, receive, send)
            return

        key = client_key(HTTPConnection(scope), self.trust_forwarded_for)
        decision = self.limiter.admit(key)
        quota_headers = decision.headers()

        if not decision.allowed:
            if self.on_reject:
                self.on_reject(key)
            error = RateLimitExceeded(retry_after=decision.retry_after)
            response = JSONResponse(
                error.to_dict(),
                status_code=error.status_code,
                headers={**error.headers(), **quota_headers},
            )
            await response(scope, receive, send)
            return

        async def send_with_quota(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in quota_headers.items():
                    headers[name] = value
            await send(message)

        await self.app(scope, receive, send_with_quota)


class SecurityHeadersMiddleware:
    """Adds hardening headers and a CSRF cookie to every HTTP response."""

    def __init__(
        self,
        app: ASGIApp,
        production: bool = False,
        csrf_cookie: bool = True,
        extra_headers: dict[str, str] | None = None,
    ) -> None:
        self.app = app
        self.production = production
        self.csrf_cookie = csrf_cookie
        self.headers = {**SECURITY_HEADERS, **(extra_headers or {})}

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        token = None
        if self.csrf_cookie and not HTTPConnection(scope).cookies.get(CSRF_COOKIE):
            token = secrets.token_hex(16)

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in self.headers.items():
                    headers.setdefault(name, value)
                if token:
                    headers.append("Set-Cookie", self._cookie(token))
                    headers["X-CSRF-Token"] = token
            await send(message)

        await self.app(scope, receive, send_with_headers)

    def _cookie(self, token: str) -> str:
        cookie = f"{CSRF_COOKIE}={token}; Path=/; HttpOnly; SameSite=Strict"
        if self.production:
            cookie += "; Secure"
        return cookie
