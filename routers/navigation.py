"""
Navigation APIs (public; answers depend on who is asking).
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from auth.dependencies import get_current_user_optional, get_db_session
from database.models import User
from services.navigation_service import NavigationService


router = APIRouter(prefix="/api/navigation", tags=["navigation"])


class RouteResolution(BaseModel):
    path: str
    status: str  # ok | redirect | not_found
    redirect: Optional[str] = None


class MenuEntry(BaseModel):
    path: str
    label: str
    icon: str


@router.get("/resolve", response_model=RouteResolution)
async def resolve_route(
    path: str = Query(..., description="Client route, e.g. /upload"),
    current_user: Optional[User] = Depends(get_current_user_optional),
    db: Session = Depends(get_db_session)
):
    """Where the client should go when opening ``path``."""
    result = NavigationService.resolve(db, current_user.id if current_user else None, path)
    return RouteResolution(**result)


@router.get("/menu", response_model=List[MenuEntry])
async def get_menu(
    current_user: Optional[User] = Depends(get_current_user_optional),
    db: Session = Depends(get_db_session)
):
    """Menu entries visible to the caller."""
    routes = NavigationService.menu(db, current_user.id if current_user else None)
    return [MenuEntry(path=r.path, label=r.label, icon=r.icon) for r in routes]
