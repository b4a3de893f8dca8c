"""
Role store: which principals hold which roles.
"""
import logging
from typing import List, Optional, Set

from sqlalchemy import exists
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.exceptions import NotFound, ValidationFailure
from database.models import AppRole, RoleAssignment, User

logger = logging.getLogger(__name__)


def parse_role(value: str) -> AppRole:
    """AppRole from its value (case-insensitive) or ValidationFailure."""
    try:
        return AppRole((value or "").strip().lower())
    except ValueError:
        raise ValidationFailure(f"Invalid role: {value}")


class RoleService:
    """
    Queries and mutations on role assignments.

    has_role/get_roles are the trusted path the policy engine calls; they do
    no authorization of their own. Mutations are authorized by the callers in
    services.user_service.
    """

    @staticmethod
    def has_role(db: Session, user_id: Optional[str], role: AppRole) -> bool:
        """True iff an assignment (user_id, role) exists."""
        if not user_id:
            return False
        return bool(db.query(
            exists().where(
                RoleAssignment.user_id == user_id,
                RoleAssignment.role == role,
            )
        ).scalar())

    @staticmethod
    def get_roles(db: Session, user_id: str) -> Set[AppRole]:
        """All roles held by a principal."""
        rows = db.query(RoleAssignment.role).filter(RoleAssignment.user_id == user_id).all()
        return {row[0] for row in rows}

    @staticmethod
    def assignments_for(db: Session, user_id: str) -> List[RoleAssignment]:
        return (
            db.query(RoleAssignment)
            .filter(RoleAssignment.user_id == user_id)
            .order_by(RoleAssignment.created_at)
            .all()
        )

    @staticmethod
    def grant(db: Session, user_id: str, role: AppRole) -> RoleAssignment:
        """
        Assign a role. Granting a role the principal already holds returns
        the existing assignment.
        """
        if db.get(User, user_id) is None:
            raise NotFound("User not found")

        existing = db.query(RoleAssignment).filter(
            RoleAssignment.user_id == user_id,
            RoleAssignment.role == role,
        ).first()
        if existing:
            return existing

        assignment = RoleAssignment(user_id=user_id, role=role)
        db.add(assignment)
        try:
            db.commit()
        except IntegrityError:
            # Lost a race with a concurrent grant of the same pair
            db.rollback()
            return db.query(RoleAssignment).filter(
                RoleAssignment.user_id == user_id,
                RoleAssignment.role == role,
            ).one()
        db.refresh(assignment)
        logger.info(f"Granted role {role.value} to user {user_id}")
        return assignment

    @staticmethod
    def revoke(db: Session, user_id: str, role: AppRole) -> bool:
        """Remove an assignment. Returns False if it did not exist."""
        deleted = db.query(RoleAssignment).filter(
            RoleAssignment.user_id == user_id,
            RoleAssignment.role == role,
        ).delete(synchronize_session=False)
        db.commit()
        if deleted:
            logger.info(f"Revoked role {role.value} from user {user_id}")
        return bool(deleted)
