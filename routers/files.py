"""
File object APIs for the resource bucket.
"""
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from auth.dependencies import get_current_user, get_current_user_optional, get_db_session, get_storage
from database.models import User
from services.file_service import FileService


router = APIRouter(prefix="/api/files", tags=["files"])


class UploadResponse(BaseModel):
    """Upload response."""
    path: str
    url: str


@router.get("/{key:path}")
async def read_file(
    key: str,
    current_user: Optional[User] = Depends(get_current_user_optional),
    db: Session = Depends(get_db_session),
    storage=Depends(get_storage),
):
    """Public read of an object."""
    data, media_type = FileService.read(db, storage, current_user.id if current_user else None, key)
    return Response(content=data, media_type=media_type)


@router.post("/{key:path}", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    key: str,
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
    storage=Depends(get_storage),
):
    """Store a new object. Teachers and admins."""
    url = FileService.write(db, storage, current_user.id, key, await file.read(), file.content_type)
    return UploadResponse(path=key, url=url)


@router.put("/{key:path}", response_model=UploadResponse)
async def replace_file(
    key: str,
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
    storage=Depends(get_storage),
):
    """Overwrite an existing object. Any authenticated user."""
    url = FileService.write(
        db, storage, current_user.id, key, await file.read(), file.content_type, replace=True
    )
    return UploadResponse(path=key, url=url)


@router.delete("/{key:path}")
async def delete_file(
    key: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
    storage=Depends(get_storage),
):
    """Remove an object. Any authenticated user."""
    FileService.delete(db, storage, current_user.id, key)
    return {"success": True, "path": key}
