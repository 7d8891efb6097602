"""
HTTP middleware: request logging, timeouts, rate limiting, body size limits
and security headers.
"""

from __future__ import annotations

import asyncio
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.datastructures import Headers
from starlette.exceptions import HTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from markdash.config import Settings
from markdash.responses import error

logger = logging.getLogger(__name__)

BODY_TOO_LARGE = "Request body too large"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}
HSTS_HEADER = "max-age=31536000; includeSubDomains"


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
        }


class FixedWindowRateLimiter:
    """Counts requests per client in fixed windows, in process memory."""

    prune_threshold = 10_000

    def __init__(self, window_seconds: int, max_requests: int):
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._windows: Dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()

    def hit(self, client_id: str, now: Optional[float] = None) -> RateLimitDecision:
        now = time.time() if now is None else now
        with self._lock:
            if len(self._windows) > self.prune_threshold:
                self._prune(now)
            count, reset_at = self._windows.get(client_id, (0, 0.0))
            if now >= reset_at:
                count, reset_at = 0, now + self.window_seconds
            count += 1
            self._windows[client_id] = (count, reset_at)
        return RateLimitDecision(
            allowed=count <= self.max_requests,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - count),
            reset_at=reset_at,
        )

    def _prune(self, now: float) -> None:
        expired = [key for key, (_, reset_at) in self._windows.items() if now >= reset_at]
        for key in expired:
            del self._windows[key]


class BodySizeLimitMiddleware:
    """Reject request bodies larger than ``max_body_bytes`` with a 413.

    A declared Content-Length is checked up front. Bodies without one
    (chunked uploads) are counted as they are read, and the read fails
    once the limit is crossed.
    """

    def __init__(self, app: ASGIApp, max_body_bytes: int):
        self.app = app
        self.max_body_bytes = max_body_bytes

    def _too_large(self):
        return error(
            BODY_TOO_LARGE,
            413,
            maxSize=f"{self.max_body_bytes // (1024 * 1024)}MB",
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        content_length = Headers(scope=scope).get("content-length")
        if content_length:
            try:
                size = int(content_length)
            except ValueError:
                await error("Invalid Content-Length header", 400)(scope, receive, send)
                return
            if size > self.max_body_bytes:
                await self._too_large()(scope, receive, send)
                return
            await self.app(scope, receive, send)
            return

        received = 0

        async def counting_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_bytes:
                    raise HTTPException(status_code=413, detail=BODY_TOO_LARGE)
            return message

        await self.app(scope, counting_receive, send)


def client_identifier(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client:
        return request.client.host
    return "unknown"


def install_middleware(app: FastAPI, settings: Settings) -> None:
    """Register middleware; the last one added runs outermost."""
    auth_paths = {f"{settings.api_prefix}/register", f"{settings.api_prefix}/login"}
    general_limiter = FixedWindowRateLimiter(
        settings.rate_limit_window_seconds, settings.rate_limit_max_requests
    )
    auth_limiter = FixedWindowRateLimiter(
        settings.rate_limit_window_seconds, settings.auth_rate_limit_max_requests
    )
    app.state.rate_limiters = {"general": general_limiter, "auth": auth_limiter}

    app.add_middleware(BodySizeLimitMiddleware, max_body_bytes=settings.max_body_bytes)

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        if not settings.rate_limit_enabled or request.method == "OPTIONS":
            return await call_next(request)

        if request.url.path in auth_paths:
            limiter = auth_limiter
            message = "Too many authentication attempts, please try again later"
        else:
            limiter = general_limiter
            message = "Too many requests, please try again later"

        client_id = client_identifier(request)
        decision = limiter.hit(client_id)
        if not decision.allowed:
            logger.warning("Rate limit exceeded for %s on %s", client_id, request.url.path)
            retry_after = max(0, math.ceil(decision.reset_at - time.time()))
            response = error(message, 429, retryAfter=retry_after)
        else:
            response = await call_next(request)
        response.headers.update(decision.headers())
        return response

    @app.middleware("http")
    async def enforce_timeout(request: Request, call_next):
        try:
            return await asyncio.wait_for(
                call_next(request), timeout=settings.request_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.error(
                "Request timed out after %.1fs: %s %s",
                settings.request_timeout_seconds,
                request.method,
                request.url.path,
            )
            return error(
                "Request timeout",
                504,
                message="The request took too long to process",
            )

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = HSTS_HEADER
        return response

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s - %s - %dms",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )
