"""
Role assignment APIs.
"""
from typing import List

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from auth.dependencies import get_current_user, get_db_session
from database.models import RoleAssignment, User
from services.audit_service import AuditService
from services.role_service import parse_role
from services.user_service import UserService


router = APIRouter(prefix="/api/roles", tags=["roles"])


class RoleGrant(BaseModel):
    """Grant role request."""
    userId: str
    role: str


class RoleAssignmentResponse(BaseModel):
    id: str
    userId: str
    role: str
    createdAt: str


def _assignment_response(assignment: RoleAssignment) -> RoleAssignmentResponse:
    return RoleAssignmentResponse(
        id=assignment.id,
        userId=assignment.user_id,
        role=assignment.role.value,
        createdAt=assignment.created_at.isoformat(),
    )


@router.get("", response_model=List[RoleAssignmentResponse])
async def list_own_roles(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """The caller's own role assignments."""
    return [_assignment_response(a) for a in UserService.list_roles(db, current_user.id)]


@router.get("/all", response_model=List[RoleAssignmentResponse])
async def list_all_roles(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Every role assignment for admins; other callers see only their own."""
    return [_assignment_response(a) for a in UserService.list_roles(db, current_user.id, "*")]


@router.get("/user/{user_id}", response_model=List[RoleAssignmentResponse])
async def list_user_roles(
    user_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """A principal's role assignments. Empty unless it is the caller or the caller is an admin."""
    return [_assignment_response(a) for a in UserService.list_roles(db, current_user.id, user_id)]


@router.post("", response_model=RoleAssignmentResponse, status_code=status.HTTP_201_CREATED)
async def grant_role(
    payload: RoleGrant,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Grant a role. Admin only."""
    role = parse_role(payload.role)
    assignment = UserService.grant_role(db, current_user.id, payload.userId, role)
    AuditService.log_from_request(
        db=db, request=request, action="role_grant", user_id=current_user.id,
        resource_type="user_role", resource_id=payload.userId, details={"role": role.value}
    )
    return _assignment_response(assignment)


@router.delete("/{user_id}/{role}")
async def revoke_role(
    user_id: str,
    role: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Revoke a role. Admin only."""
    app_role = parse_role(role)
    UserService.revoke_role(db, current_user.id, user_id, app_role)
    AuditService.log_from_request(
        db=db, request=request, action="role_revoke", user_id=current_user.id,
        resource_type="user_role", resource_id=user_id, details={"role": app_role.value}
    )
    return {"success": True, "userId": user_id, "role": app_role.value}
