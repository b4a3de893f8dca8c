"""
Request logging for protected routes.

Token validation happens in the FastAPI dependencies; this middleware only
records protected requests that arrive without credentials.
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from typing import List, Optional

from core.logger import logger

# Exact public paths
PUBLIC_PATHS: List[str] = [
    "/",
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
]

# Public path prefixes
PUBLIC_PREFIXES: List[str] = [
    "/docs/",
    "/api/auth/login",
    "/api/auth/signup",
    "/api/auth/refresh",
    "/api/files/",
    "/api/navigation",
]


def is_public_path(path: str, public_paths: List[str] = None, public_prefixes: List[str] = None) -> bool:
    if path in (public_paths if public_paths is not None else PUBLIC_PATHS):
        return True
    return any(path.startswith(prefix) for prefix in (public_prefixes if public_prefixes is not None else PUBLIC_PREFIXES))


class AuthRequiredMiddleware(BaseHTTPMiddleware):
    """
    Logs unauthenticated requests to protected routes.

    Requests are never blocked here so the dependencies can answer with the
    proper error body.
    """

    def __init__(self, app, public_paths: Optional[List[str]] = None, public_prefixes: Optional[List[str]] = None):
        super().__init__(app)
        self.public_paths = public_paths or PUBLIC_PATHS
        self.public_prefixes = public_prefixes or PUBLIC_PREFIXES

    async def dispatch(self, request: Request, call_next):
        """Process request with authentication check."""
        path = request.url.path

        if request.method == "OPTIONS" or is_public_path(path, self.public_paths, self.public_prefixes):
            return await call_next(request)

        if not request.headers.get("authorization"):
            client = request.client.host if request.client else "unknown"
            logger.warning(f"Request without authentication headers: {request.method} {path} from {client}")

        return await call_next(request)
