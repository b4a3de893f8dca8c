"""
Security middleware: per-client rate limits, response hardening headers,
CORS and trusted hosts.
"""
from fastapi import Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
import time
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional, Tuple

from core.logger import logger


class SlidingWindow:
    """Request timestamps per client over the last ``seconds``, capped at ``limit``."""

    def __init__(self, limit: int, seconds: int):
        self.limit = limit
        self.seconds = seconds
        self.hits: Dict[str, Deque[float]] = defaultdict(deque)

    def _trim(self, client: str, now: float) -> Deque[float]:
        hits = self.hits[client]
        while hits and now - hits[0] >= self.seconds:
            hits.popleft()
        return hits

    def is_full(self, client: str, now: float) -> bool:
        return len(self._trim(client, now)) >= self.limit

    def add(self, client: str, now: float):
        self.hits[client].append(now)

    def retry_after(self, client: str, now: float) -> int:
        hits = self.hits.get(client)
        if not hits:
            return 0
        return max(1, int(self.seconds - (now - hits[0])) + 1)

    def prune(self, now: float):
        for client in list(self.hits.keys()):
            if not self._trim(client, now):
                del self.hits[client]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window rate limiting per client IP."""

    def __init__(
        self,
        app,
        requests_per_minute: int = 60,
        requests_per_hour: int = 1000,
        exempt_paths: Optional[List[str]] = None,
    ):
        """
        Args:
            app: FastAPI application
            requests_per_minute: Max requests per minute per IP
            requests_per_hour: Max requests per hour per IP
            exempt_paths: Exact paths never counted (health probes)
        """
        super().__init__(app)
        self.windows: Tuple[SlidingWindow, ...] = (
            SlidingWindow(requests_per_minute, 60),
            SlidingWindow(requests_per_hour, 3600),
        )
        self.exempt_paths = set(exempt_paths or ["/health"])
        self.prune_interval = 300
        self.last_prune = time.time()

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.exempt_paths:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.time()
        if now - self.last_prune > self.prune_interval:
            for window in self.windows:
                window.prune(now)
            self.last_prune = now

        full = [window for window in self.windows if window.is_full(client_ip, now)]
        if full:
            retry_after = max(window.retry_after(client_ip, now) for window in full)
            logger.warning(f"Rate limit exceeded for IP: {client_ip} on {request.method} {request.url.path}")
            # Exceptions raised inside BaseHTTPMiddleware bypass the app handlers
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": "Rate limit exceeded. Please try again later.", "error": "rate_limited"},
                headers={"Retry-After": str(retry_after)},
            )

        for window in self.windows:
            window.add(client_ip, now)
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Hardening headers on every response."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        # No CSP: the API is called cross-origin by the web client
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Token responses must not be cached
        if request.url.path.startswith("/api/auth"):
            response.headers["Cache-Control"] = "no-store"
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


def setup_cors(app, allowed_origins: List[str], allowed_methods: Optional[List[str]] = None):
    """Allow the web client's origins to call the API with credentials."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=allowed_methods or ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
        expose_headers=["Retry-After", "Content-Disposition"],
    )


def setup_trusted_hosts(app, allowed_hosts: List[str]):
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts)
