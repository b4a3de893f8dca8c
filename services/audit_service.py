"""
Audit trail of sign-ins, catalog changes and role administration.
"""
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from core.logger import logger
from database.models import AuditLog

# Never written to the audit table even if a caller passes them in details
_REDACTED_KEYS = {"password", "refresh_token", "access_token", "token"}


def _client_address(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()[:45] or None
    return request.client.host if request.client else None


def _scrub(details: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not details:
        return None
    return {key: ("***" if key.lower() in _REDACTED_KEYS else value) for key, value in details.items()}


class AuditService:

    @staticmethod
    def log_action(
        db: Session,
        action: str,
        user_id: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> AuditLog:
        """
        Append one entry to the audit table and commit it.

        Args:
            action: What happened, e.g. "resource_upload", "role_grant"
            user_id: Acting principal; None for anonymous attempts
            resource_type, resource_id: Entity the action touched
            details: Extra JSON context; token and password keys are masked
        """
        entry = AuditLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:500] or None,
            details=_scrub(details),
        )
        db.add(entry)
        db.commit()
        logger.debug(f"Audit: {action} by {user_id or 'anonymous'} on {resource_type}:{resource_id}")
        return entry

    @staticmethod
    def log_from_request(
        db: Session,
        request: Request,
        action: str,
        user_id: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> AuditLog:
        return AuditService.log_action(
            db,
            action,
            user_id=user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            ip_address=_client_address(request),
            user_agent=request.headers.get("user-agent"),
            details=details,
        )
