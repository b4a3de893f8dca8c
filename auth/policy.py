"""
Row-level access policy.

Every service operation on a collection asks the PolicyEngine first. Rules
are evaluated per (collection, action); ownership rules look at the row the
operation targets. Role checks go through RoleService.has_role, a direct
query that never consults the policy itself.

    Collection       select               insert              update           delete
    profiles         authenticated        owner               owner            -
    user_roles       owner or admin       admin               admin            admin
    categories       authenticated        teacher/admin       teacher/admin    teacher/admin
    resources        authenticated        teacher/admin       owner or admin   owner or admin
    resource_views   teacher/admin        self only           -                -
    storage objects  anyone               teacher/admin       authenticated    authenticated
"""
import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from core.exceptions import AuthenticationRequired, AuthorizationDenied
from database.models import AppRole
from services.role_service import RoleService

logger = logging.getLogger(__name__)


class Action(str, enum.Enum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class Collection(str, enum.Enum):
    PROFILE = "profiles"
    ROLE_ASSIGNMENT = "user_roles"
    CATEGORY = "categories"
    RESOURCE = "resources"
    VIEW_EVENT = "resource_views"
    FILE_OBJECT = "storage.objects"


@dataclass
class PolicyContext:
    """What a rule gets to look at."""
    db: Session
    principal_id: Optional[str]
    row: Any = None

    @property
    def authenticated(self) -> bool:
        return self.principal_id is not None

    def has_role(self, role: AppRole) -> bool:
        if self.principal_id is None:
            return False
        return RoleService.has_role(self.db, self.principal_id, role)

    def has_any_role(self, *roles: AppRole) -> bool:
        return any(self.has_role(role) for role in roles)

    def owns(self, owner_attr: str) -> bool:
        if self.principal_id is None or self.row is None:
            return False
        return getattr(self.row, owner_attr, None) == self.principal_id


Rule = Callable[[PolicyContext], bool]


def _authenticated(ctx: PolicyContext) -> bool:
    return ctx.authenticated


def _anyone(ctx: PolicyContext) -> bool:
    return True


def _teacher_or_admin(ctx: PolicyContext) -> bool:
    return ctx.has_any_role(AppRole.TEACHER, AppRole.ADMIN)


def _admin(ctx: PolicyContext) -> bool:
    return ctx.has_role(AppRole.ADMIN)


def _owner(attr: str) -> Rule:
    def rule(ctx: PolicyContext) -> bool:
        return ctx.owns(attr)
    return rule


def _owner_or_admin(attr: str) -> Rule:
    def rule(ctx: PolicyContext) -> bool:
        return ctx.owns(attr) or ctx.has_role(AppRole.ADMIN)
    return rule


RULES: Dict[Tuple[Collection, Action], Rule] = {
    (Collection.PROFILE, Action.SELECT): _authenticated,
    (Collection.PROFILE, Action.INSERT): _owner("user_id"),
    (Collection.PROFILE, Action.UPDATE): _owner("user_id"),

    (Collection.ROLE_ASSIGNMENT, Action.SELECT): _owner_or_admin("user_id"),
    (Collection.ROLE_ASSIGNMENT, Action.INSERT): _admin,
    (Collection.ROLE_ASSIGNMENT, Action.UPDATE): _admin,
    (Collection.ROLE_ASSIGNMENT, Action.DELETE): _admin,

    (Collection.CATEGORY, Action.SELECT): _authenticated,
    (Collection.CATEGORY, Action.INSERT): _teacher_or_admin,
    (Collection.CATEGORY, Action.UPDATE): _teacher_or_admin,
    (Collection.CATEGORY, Action.DELETE): _teacher_or_admin,

    (Collection.RESOURCE, Action.SELECT): _authenticated,
    (Collection.RESOURCE, Action.INSERT): _teacher_or_admin,
    (Collection.RESOURCE, Action.UPDATE): _owner_or_admin("uploaded_by"),
    (Collection.RESOURCE, Action.DELETE): _owner_or_admin("uploaded_by"),

    (Collection.VIEW_EVENT, Action.SELECT): _teacher_or_admin,
    (Collection.VIEW_EVENT, Action.INSERT): _owner("user_id"),

    (Collection.FILE_OBJECT, Action.SELECT): _anyone,
    (Collection.FILE_OBJECT, Action.INSERT): _teacher_or_admin,
    # Deliberately broad, matching the bucket's published policy
    (Collection.FILE_OBJECT, Action.UPDATE): _authenticated,
    (Collection.FILE_OBJECT, Action.DELETE): _authenticated,
}


class PolicyEngine:
    """Evaluates RULES for a principal."""

    def __init__(self, rules: Optional[Dict[Tuple[Collection, Action], Rule]] = None):
        self.rules = rules if rules is not None else RULES

    def authorize(
        self,
        db: Session,
        principal_id: Optional[str],
        collection: Collection,
        action: Action,
        row: Any = None,
    ) -> bool:
        """True if the principal may perform ``action`` on ``collection`` (and ``row``)."""
        rule = self.rules.get((collection, action))
        if rule is None:
            return False
        return bool(rule(PolicyContext(db=db, principal_id=principal_id, row=row)))

    def enforce(
        self,
        db: Session,
        principal_id: Optional[str],
        collection: Collection,
        action: Action,
        row: Any = None,
    ) -> None:
        """
        Raise unless the operation is allowed.

        Anonymous callers get AuthenticationRequired, authenticated ones
        AuthorizationDenied.
        """
        if self.authorize(db, principal_id, collection, action, row):
            return
        logger.info(
            f"Policy denied {action.value} on {collection.value} for "
            f"{principal_id or 'anonymous'}"
        )
        if principal_id is None:
            raise AuthenticationRequired()
        raise AuthorizationDenied(f"Not allowed to {action.value} {collection.value}")


policy = PolicyEngine()
