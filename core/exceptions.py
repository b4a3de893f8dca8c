"""
Error taxonomy shared by services and routers.

Services raise these; a single handler registered in app.py turns them into
JSON responses with the matching status code.
"""
from typing import Optional


class AppError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 500
    code = "internal_error"
    default_detail = "Internal error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class AuthenticationRequired(AppError):
    """No valid session."""
    status_code = 401
    code = "authentication_required"
    default_detail = "Authentication required"


class AuthorizationDenied(AppError):
    """Valid session, but the principal may not perform the operation."""
    status_code = 403
    code = "authorization_denied"
    default_detail = "Access denied"


class ValidationFailure(AppError):
    """Missing or malformed input."""
    status_code = 400
    code = "validation_failed"
    default_detail = "Invalid request"


class NotFound(AppError):
    """Entity is absent or not visible to the principal."""
    status_code = 404
    code = "not_found"
    default_detail = "Not found"


class TransientBackendFailure(AppError):
    """Storage or database unreachable, timed out, or failed mid-call."""
    status_code = 503
    code = "backend_unavailable"
    default_detail = "Backend temporarily unavailable. Please try again."
