"""
Profiles: display metadata, readable by any signed-in principal, writable by its owner.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from auth.policy import Action, Collection, policy
from core.exceptions import NotFound, ValidationFailure
from database.models import Profile

logger = logging.getLogger(__name__)


class ProfileService:

    @staticmethod
    def get(db: Session, principal_id: Optional[str], user_id: str) -> Profile:
        policy.enforce(db, principal_id, Collection.PROFILE, Action.SELECT)
        profile = db.query(Profile).filter(Profile.user_id == user_id).first()
        if profile is None:
            raise NotFound("Profile not found")
        return profile

    @staticmethod
    def create(
        db: Session,
        principal_id: Optional[str],
        full_name: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> Profile:
        """Self-insert: a principal creates its own profile, once."""
        profile = Profile(user_id=principal_id, full_name=full_name, avatar_url=avatar_url)
        policy.enforce(db, principal_id, Collection.PROFILE, Action.INSERT, row=profile)
        if db.query(Profile).filter(Profile.user_id == principal_id).first():
            raise ValidationFailure("Profile already exists")
        db.add(profile)
        db.commit()
        db.refresh(profile)
        logger.info(f"Created profile for user: {principal_id}")
        return profile

    @staticmethod
    def update(
        db: Session,
        principal_id: Optional[str],
        user_id: str,
        full_name: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> Profile:
        """Update a profile; only its owner may."""
        profile = ProfileService.get(db, principal_id, user_id)
        policy.enforce(db, principal_id, Collection.PROFILE, Action.UPDATE, row=profile)

        if full_name is not None:
            profile.full_name = full_name.strip() or None
        if avatar_url is not None:
            profile.avatar_url = avatar_url.strip() or None
        db.commit()
        db.refresh(profile)
        return profile
