"""
Role-aware navigation for the web client.

Resolves a client-side route for the caller the same way the app shell's
route guard does, and lists the menu entries the caller may open.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from sqlalchemy.orm import Session

from database.models import AppRole
from services.role_service import RoleService

AUTH_PATH = "/auth"
HOME_PATH = "/dashboard"


@dataclass
class NavRoute:
    """
    One client route.

    Attributes:
        path: Client path
        label: Menu text
        icon: Icon name for the menu
        requires_auth: Needs a signed-in principal
        required_roles: Any one of these roles opens it; empty means any role
        in_menu: Listed in the menu
        order: Menu position
    """
    path: str
    label: str
    icon: str = ""
    requires_auth: bool = True
    required_roles: Set[AppRole] = field(default_factory=set)
    in_menu: bool = True
    order: int = 0

    def allows(self, authenticated: bool, roles: Set[AppRole]) -> bool:
        if not self.requires_auth:
            return True
        if not authenticated:
            return False
        return not self.required_roles or bool(self.required_roles & roles)


ROUTES: List[NavRoute] = [
    NavRoute(path="/", label="Home", icon="home", requires_auth=False, in_menu=False),
    NavRoute(path=AUTH_PATH, label="Sign in", icon="log-in", requires_auth=False, in_menu=False),
    NavRoute(path=HOME_PATH, label="Dashboard", icon="layout-dashboard", order=0),
    NavRoute(
        path="/upload", label="Upload", icon="upload",
        required_roles={AppRole.TEACHER, AppRole.ADMIN}, order=10,
    ),
    NavRoute(
        path="/analytics", label="Analytics", icon="bar-chart",
        required_roles={AppRole.TEACHER, AppRole.ADMIN}, order=20,
    ),
    NavRoute(
        path="/users", label="Users", icon="users",
        required_roles={AppRole.ADMIN}, order=30,
    ),
]

_BY_PATH: Dict[str, NavRoute] = {route.path: route for route in ROUTES}


def _normalize(path: str) -> str:
    path = (path or "").split("?", 1)[0]
    return "/" + path.strip().strip("/")


class NavigationService:

    @staticmethod
    def caller_roles(db: Session, principal_id: Optional[str]) -> Set[AppRole]:
        if not principal_id:
            return set()
        return RoleService.get_roles(db, principal_id)

    @staticmethod
    def resolve(db: Session, principal_id: Optional[str], path: str) -> Dict[str, object]:
        """
        Decide what the client shows for ``path``.

        Returns a dict with ``status`` one of "ok", "redirect", "not_found",
        and ``redirect`` set for redirects: unauthenticated callers go to the
        sign-in page, callers without a required role go to the dashboard.
        """
        normalized = _normalize(path)
        route = _BY_PATH.get(normalized)
        if route is None:
            return {"path": normalized, "status": "not_found", "redirect": None}

        authenticated = principal_id is not None
        roles = NavigationService.caller_roles(db, principal_id)
        if route.allows(authenticated, roles):
            return {"path": normalized, "status": "ok", "redirect": None}
        if not authenticated:
            return {"path": normalized, "status": "redirect", "redirect": AUTH_PATH}
        return {"path": normalized, "status": "redirect", "redirect": HOME_PATH}

    @staticmethod
    def menu(db: Session, principal_id: Optional[str]) -> List[NavRoute]:
        """Menu entries the caller can open, in display order."""
        authenticated = principal_id is not None
        roles = NavigationService.caller_roles(db, principal_id)
        visible = [
            route for route in ROUTES
            if route.in_menu and route.allows(authenticated, roles)
        ]
        return sorted(visible, key=lambda route: route.order)
