"""
Admin user overview and role management.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from auth.policy import Action, Collection, policy
from core.exceptions import AuthenticationRequired, NotFound, ValidationFailure
from core.logger import logger
from database.models import AppRole, Profile, Resource, RoleAssignment, User
from services.role_service import RoleService


class UserService:
    """Service for administering principals and their roles."""

    @staticmethod
    def overview(db: Session, principal_id: Optional[str]) -> Dict[str, Any]:
        """
        Every profile with its roles and owned-resource count, plus role counts.

        Roles and counts are fetched with one grouped query each. A principal
        holding several roles is counted once in each of those buckets.
        """
        policy.enforce(db, principal_id, Collection.PROFILE, Action.SELECT)
        # Reading everyone's role rows is admin-only
        policy.enforce(db, principal_id, Collection.ROLE_ASSIGNMENT, Action.SELECT)

        profiles = (
            db.query(Profile, User.email)
            .join(User, Profile.user_id == User.id)
            .order_by(Profile.created_at.desc())
            .all()
        )

        roles_by_user: Dict[str, set] = {}
        for user_id, role in db.query(RoleAssignment.user_id, RoleAssignment.role).all():
            roles_by_user.setdefault(user_id, set()).add(role)

        resources_by_user = dict(
            db.query(Resource.uploaded_by, func.count(Resource.id))
            .filter(Resource.uploaded_by.isnot(None))
            .group_by(Resource.uploaded_by)
            .all()
        )

        users = []
        for profile, email in profiles:
            roles = roles_by_user.get(profile.user_id, set())
            users.append({
                "profile": profile,
                "email": email,
                "roles": sorted(role.value for role in roles),
                "resource_count": int(resources_by_user.get(profile.user_id, 0)),
            })

        def count(role: AppRole) -> int:
            return sum(1 for entry in users if role.value in entry["roles"])

        return {
            "users": users,
            "total": len(users),
            "students": count(AppRole.STUDENT),
            "teachers": count(AppRole.TEACHER),
            "admins": count(AppRole.ADMIN),
        }

    @staticmethod
    def list_roles(
        db: Session,
        principal_id: Optional[str],
        user_id: Optional[str] = None
    ) -> List[RoleAssignment]:
        """
        Role assignments of ``user_id`` (the caller when None), or of everyone
        when ``user_id == "*"``. Rows the caller may not read are left out
        rather than reported as denied; only admins read other principals' rows.
        """
        if principal_id is None:
            raise AuthenticationRequired()

        query = db.query(RoleAssignment)
        if user_id != "*":
            query = query.filter(RoleAssignment.user_id == (user_id or principal_id))
        if not policy.authorize(db, principal_id, Collection.ROLE_ASSIGNMENT, Action.SELECT):
            query = query.filter(RoleAssignment.user_id == principal_id)
        return query.order_by(RoleAssignment.created_at).all()

    @staticmethod
    def grant_role(db: Session, principal_id: Optional[str], user_id: str, role: AppRole) -> RoleAssignment:
        policy.enforce(db, principal_id, Collection.ROLE_ASSIGNMENT, Action.INSERT)
        assignment = RoleService.grant(db, user_id, role)
        logger.info(f"Role {role.value} granted to {user_id} by {principal_id}")
        return assignment

    @staticmethod
    def revoke_role(db: Session, principal_id: Optional[str], user_id: str, role: AppRole) -> None:
        """
        Remove a role. Resources the principal already owns are untouched,
        so it keeps editing them through the ownership rule.
        """
        policy.enforce(db, principal_id, Collection.ROLE_ASSIGNMENT, Action.DELETE)
        if not RoleService.revoke(db, user_id, role):
            raise NotFound(f"User does not hold role {role.value}")
        logger.info(f"Role {role.value} revoked from {user_id} by {principal_id}")

    @staticmethod
    def delete_user(db: Session, principal_id: Optional[str], user_id: str) -> None:
        """
        Delete a principal. Its role assignments, profile and sessions go with
        it; resources it uploaded stay with no owner.
        """
        # Removing a principal removes its role rows, so it takes the same right
        policy.enforce(db, principal_id, Collection.ROLE_ASSIGNMENT, Action.DELETE)
        if user_id == principal_id:
            raise ValidationFailure("Admins cannot delete their own account")
        user = db.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        db.delete(user)
        db.commit()
        logger.info(f"User {user_id} deleted by {principal_id}")
