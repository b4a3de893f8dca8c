"""
Profile APIs (All Authenticated Users).
"""
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from auth.dependencies import get_current_user, get_db_session
from database.models import Profile, User
from services.profile_service import ProfileService


router = APIRouter(prefix="/api/profile", tags=["profile"])


class ProfileUpdate(BaseModel):
    """Create/update profile request."""
    fullName: Optional[str] = None
    avatarUrl: Optional[str] = None


class ProfileResponse(BaseModel):
    """Profile response model."""
    id: str
    userId: str
    fullName: Optional[str]
    avatarUrl: Optional[str]
    createdAt: str
    updatedAt: str


def _profile_response(profile: Profile) -> ProfileResponse:
    return ProfileResponse(
        id=profile.id,
        userId=profile.user_id,
        fullName=profile.full_name,
        avatarUrl=profile.avatar_url,
        createdAt=profile.created_at.isoformat(),
        updatedAt=profile.updated_at.isoformat(),
    )


@router.get("", response_model=ProfileResponse)
async def get_own_profile(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Get own profile."""
    return _profile_response(ProfileService.get(db, current_user.id, current_user.id))


@router.post("", response_model=ProfileResponse, status_code=status.HTTP_201_CREATED)
async def create_own_profile(
    payload: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Create own profile if sign-in has not already done so."""
    profile = ProfileService.create(db, current_user.id, payload.fullName, payload.avatarUrl)
    return _profile_response(profile)


@router.patch("", response_model=ProfileResponse)
async def update_own_profile(
    payload: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    profile = ProfileService.update(
        db, current_user.id, current_user.id, full_name=payload.fullName, avatar_url=payload.avatarUrl
    )
    return _profile_response(profile)


@router.get("/{user_id}", response_model=ProfileResponse)
async def get_profile(
    user_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Any principal's profile."""
    return _profile_response(ProfileService.get(db, current_user.id, user_id))


@router.patch("/{user_id}", response_model=ProfileResponse)
async def update_profile(
    user_id: str,
    payload: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Only the profile's owner may update it."""
    profile = ProfileService.update(
        db, current_user.id, user_id, full_name=payload.fullName, avatar_url=payload.avatarUrl
    )
    return _profile_response(profile)
