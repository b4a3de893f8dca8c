"""
Category APIs.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from auth.dependencies import get_current_user, get_db_session
from database.models import Category, User
from services.audit_service import AuditService
from services.category_service import CategoryService


router = APIRouter(prefix="/api/categories", tags=["categories"])


class CategoryCreate(BaseModel):
    name: str
    description: Optional[str] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class CategoryResponse(BaseModel):
    """Category response model."""
    id: str
    name: str
    description: Optional[str]
    createdAt: str


def _category_response(category: Category) -> CategoryResponse:
    return CategoryResponse(
        id=category.id,
        name=category.name,
        description=category.description,
        createdAt=category.created_at.isoformat(),
    )


@router.get("", response_model=List[CategoryResponse])
async def list_categories(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """All categories by name. All authenticated users."""
    return [_category_response(c) for c in CategoryService.list_categories(db, current_user.id)]


@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Teachers and admins."""
    category = CategoryService.create_category(db, current_user.id, payload.name, payload.description)
    AuditService.log_from_request(
        db=db, request=request, action="category_create", user_id=current_user.id,
        resource_type="category", resource_id=category.id
    )
    return _category_response(category)


@router.patch("/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: str,
    payload: CategoryUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Teachers and admins."""
    category = CategoryService.update_category(
        db, current_user.id, category_id, name=payload.name, description=payload.description
    )
    return _category_response(category)


@router.delete("/{category_id}")
async def delete_category(
    category_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """
    Delete a category. Teachers and admins.
    Resources in it remain, shown as Uncategorized.
    """
    affected = CategoryService.delete_category(db, current_user.id, category_id)
    AuditService.log_from_request(
        db=db, request=request, action="category_delete", user_id=current_user.id,
        resource_type="category", resource_id=category_id,
        details={"uncategorized_resources": affected}
    )
    return {"success": True, "id": category_id, "uncategorizedResources": affected}
