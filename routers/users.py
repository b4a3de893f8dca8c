"""
User Management APIs (Admin).
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from auth.dependencies import get_current_user, get_db_session
from database.models import User
from services.audit_service import AuditService
from services.user_service import UserService


router = APIRouter(prefix="/api/users", tags=["users"])


class UserOverviewEntry(BaseModel):
    """One principal in the admin overview."""
    userId: str
    profileId: str
    email: Optional[str]
    fullName: Optional[str]
    avatarUrl: Optional[str]
    roles: List[str]
    resourceCount: int
    createdAt: str


class UserStatsResponse(BaseModel):
    """User stats response. A principal with several roles counts in each."""
    total: int
    students: int
    teachers: int
    admins: int


class UserOverviewResponse(BaseModel):
    """User list response."""
    data: List[UserOverviewEntry]
    stats: UserStatsResponse


def _stats(overview: dict) -> UserStatsResponse:
    return UserStatsResponse(
        total=overview["total"],
        students=overview["students"],
        teachers=overview["teachers"],
        admins=overview["admins"],
    )


@router.get("", response_model=UserOverviewResponse)
async def list_users(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """
    Every profile with its roles and resource count.
    Admin only.
    """
    overview = UserService.overview(db, current_user.id)
    entries = [
        UserOverviewEntry(
            userId=entry["profile"].user_id,
            profileId=entry["profile"].id,
            email=entry["email"],
            fullName=entry["profile"].full_name,
            avatarUrl=entry["profile"].avatar_url,
            roles=entry["roles"],
            resourceCount=entry["resource_count"],
            createdAt=entry["profile"].created_at.isoformat(),
        )
        for entry in overview["users"]
    ]
    return UserOverviewResponse(data=entries, stats=_stats(overview))


@router.get("/stats", response_model=UserStatsResponse)
async def get_user_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """User counts by role. Admin only."""
    return _stats(UserService.overview(db, current_user.id))


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """
    Delete a user with its roles and profile.
    Admin only. Resources the user uploaded are kept.
    """
    UserService.delete_user(db, current_user.id, user_id)
    AuditService.log_from_request(
        db=db, request=request, action="user_delete", user_id=current_user.id,
        resource_type="user", resource_id=user_id
    )
    return {"success": True, "id": user_id}
