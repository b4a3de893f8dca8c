"""
Learning resource APIs: browse, upload, edit, delete, and usage counters.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from auth.dependencies import get_current_user, get_db_session, get_storage
from database.models import Resource, User
from services.audit_service import AuditService
from services.catalog_service import CatalogService, category_name, uploader_name
from services.usage_service import UsageService
from core.logger import logger


router = APIRouter(prefix="/api/resources", tags=["resources"])


class ResourceUpdate(BaseModel):
    """Update resource request. Send categoryId null to clear the category."""
    title: Optional[str] = None
    description: Optional[str] = None
    categoryId: Optional[str] = None


class ResourceResponse(BaseModel):
    """Resource response model."""
    id: str
    title: str
    description: Optional[str]
    categoryId: Optional[str]
    categoryName: str
    fileUrl: str
    fileType: str
    mimeType: Optional[str]
    fileSize: Optional[int]
    uploadedBy: Optional[str]
    uploaderName: Optional[str]
    viewCount: int
    downloadCount: int
    createdAt: str
    updatedAt: str


class ResourceListResponse(BaseModel):
    """Resource list response."""
    data: List[ResourceResponse]
    total: int


class ViewRecordedResponse(BaseModel):
    id: str
    viewCount: int


class DownloadResponse(BaseModel):
    id: str
    fileUrl: str


def resource_response(resource: Resource) -> ResourceResponse:
    return ResourceResponse(
        id=resource.id,
        title=resource.title,
        description=resource.description,
        categoryId=resource.category_id,
        categoryName=category_name(resource),
        fileUrl=resource.file_url,
        fileType=resource.file_type.value,
        mimeType=resource.mime_type,
        fileSize=resource.file_size,
        uploadedBy=resource.uploaded_by,
        uploaderName=uploader_name(resource),
        viewCount=resource.view_count,
        downloadCount=resource.download_count,
        createdAt=resource.created_at.isoformat(),
        updatedAt=resource.updated_at.isoformat(),
    )


@router.get("", response_model=ResourceListResponse)
async def list_resources(
    search: Optional[str] = Query(None, description="Match title or description"),
    category: Optional[str] = Query(None, description="Category name, or 'all'"),
    mine: bool = Query(False, description="Only the caller's own uploads"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """
    List resources, newest first.
    All authenticated users. With mine=true, only the caller's uploads.
    """
    resources = CatalogService.list_resources(
        db,
        current_user.id,
        search=search,
        category=category,
        uploaded_by=current_user.id if mine else None,
    )
    return ResourceListResponse(
        data=[resource_response(r) for r in resources],
        total=len(resources),
    )


@router.get("/{resource_id}", response_model=ResourceResponse)
async def get_resource(
    resource_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    return resource_response(CatalogService.get_resource(db, current_user.id, resource_id))


@router.post("", response_model=ResourceResponse, status_code=status.HTTP_201_CREATED)
async def upload_resource(
    request: Request,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    categoryId: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
    storage=Depends(get_storage),
):
    """
    Upload a file and create its catalog entry.
    Teachers and admins only.
    """
    data = await file.read() if file is not None else None
    logger.info(
        f"Received resource upload from user {current_user.id}: "
        f"{file.filename if file else None} ({len(data) if data else 0} bytes)"
    )
    resource = CatalogService.create_resource(
        db,
        storage,
        current_user.id,
        title=title,
        data=data,
        filename=file.filename if file else None,
        content_type=file.content_type if file else None,
        description=description,
        category_id=categoryId,
    )
    AuditService.log_from_request(
        db=db, request=request, action="resource_upload", user_id=current_user.id,
        resource_type="resource", resource_id=resource.id,
        details={"title": resource.title, "file_type": resource.file_type.value}
    )
    return resource_response(resource)


@router.patch("/{resource_id}", response_model=ResourceResponse)
async def update_resource(
    resource_id: str,
    payload: ResourceUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Edit a resource. Its uploader or an admin."""
    resource = CatalogService.update_resource(
        db,
        current_user.id,
        resource_id,
        title=payload.title,
        description=payload.description,
        category_id=payload.categoryId,
        clear_category="categoryId" in payload.model_fields_set and payload.categoryId is None,
    )
    return resource_response(resource)


@router.delete("/{resource_id}")
async def delete_resource(
    resource_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
    storage=Depends(get_storage),
):
    """Delete a resource. Its uploader or an admin."""
    CatalogService.delete_resource(db, storage, current_user.id, resource_id)
    AuditService.log_from_request(
        db=db, request=request, action="resource_delete", user_id=current_user.id,
        resource_type="resource", resource_id=resource_id
    )
    return {"success": True, "id": resource_id}


@router.post("/{resource_id}/view", response_model=ViewRecordedResponse)
async def record_view(
    resource_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Record that the caller viewed a resource."""
    view_count = UsageService.record_view(db, current_user.id, resource_id)
    return ViewRecordedResponse(id=resource_id, viewCount=view_count)


@router.post("/{resource_id}/download", response_model=DownloadResponse)
async def record_download(
    resource_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Count a download and return the URL to fetch the file from."""
    file_url = UsageService.record_download(db, current_user.id, resource_id)
    return DownloadResponse(id=resource_id, fileUrl=file_url)


@router.get("/{resource_id}/file")
async def read_resource_file(
    resource_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
    storage=Depends(get_storage),
):
    """Stream a resource's file through the API."""
    resource, data = CatalogService.read_file(db, storage, current_user.id, resource_id)
    filename = resource.storage_path.rsplit("/", 1)[-1]
    return Response(
        content=data,
        media_type=resource.mime_type or "application/octet-stream",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )
