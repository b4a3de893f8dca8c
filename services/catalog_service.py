"""
Resource catalog: learning materials, their files, and metadata.
"""
from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from auth.policy import Action, Collection, policy
from core.exceptions import AppError, NotFound, TransientBackendFailure, ValidationFailure
from core.logger import logger
from core.validators import detect_file_type, file_extension, sanitize_filename, validate_file_size
from database.models import Category, FileType, Resource, User
from services.category_service import UNCATEGORIZED
from storage.s3_paths import resource_object_key
import config


def _with_related(query):
    # Category and uploader profile come back in the same SELECT
    return query.options(
        joinedload(Resource.category),
        joinedload(Resource.uploader).joinedload(User.profile),
    )


def category_name(resource: Resource) -> str:
    return resource.category.name if resource.category else UNCATEGORIZED


def uploader_name(resource: Resource) -> Optional[str]:
    if resource.uploader and resource.uploader.profile:
        return resource.uploader.profile.full_name
    return None


class CatalogService:
    """Service for catalog operations. Every call is checked against the access policy."""

    @staticmethod
    def list_resources(
        db: Session,
        principal_id: Optional[str],
        search: Optional[str] = None,
        category: Optional[str] = None,
        uploaded_by: Optional[str] = None,
    ) -> List[Resource]:
        """
        List resources, newest first.

        Args:
            search: Case-insensitive substring of title or description
            category: Category name; None or "all" matches everything.
                Resources without a category only appear under "all".
            uploaded_by: Only resources owned by this principal
        """
        policy.enforce(db, principal_id, Collection.RESOURCE, Action.SELECT)

        query = _with_related(db.query(Resource))

        term = (search or "").strip().lower()
        if term:
            query = query.filter(or_(
                func.lower(Resource.title).contains(term, autoescape=True),
                func.lower(func.coalesce(Resource.description, "")).contains(term, autoescape=True),
            ))

        name = (category or "").strip()
        if name and name.lower() != "all":
            query = query.filter(Resource.category.has(Category.name == name))

        if uploaded_by:
            query = query.filter(Resource.uploaded_by == uploaded_by)

        return query.order_by(Resource.created_at.desc(), Resource.id.desc()).all()

    @staticmethod
    def get_resource(db: Session, principal_id: Optional[str], resource_id: str) -> Resource:
        policy.enforce(db, principal_id, Collection.RESOURCE, Action.SELECT)
        resource = _with_related(db.query(Resource)).filter(Resource.id == resource_id).first()
        if resource is None:
            raise NotFound("Resource not found")
        return resource

    @staticmethod
    def _allocate_key(storage, owner_id: str, extension: str) -> str:
        for _ in range(max(config.STORAGE_NAME_RETRIES, 1)):
            key = resource_object_key(owner_id, extension)
            if not storage.exists(key):
                return key
            logger.warning(f"Storage path collision on {key}, drawing a new name")
        raise TransientBackendFailure("Could not allocate a storage path for the file")

    @staticmethod
    def create_resource(
        db: Session,
        storage,
        principal_id: Optional[str],
        title: str,
        data: Optional[bytes],
        filename: Optional[str],
        content_type: Optional[str] = None,
        description: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> Resource:
        """
        Store a file and create its catalog entry.

        The uploader must be a teacher or admin. The object is written first;
        if the row cannot be saved afterwards the object is removed again.
        """
        policy.enforce(db, principal_id, Collection.RESOURCE, Action.INSERT)
        policy.enforce(db, principal_id, Collection.FILE_OBJECT, Action.INSERT)

        title = (title or "").strip()
        if not title:
            raise ValidationFailure("Title is required")
        if data is None or not filename:
            raise ValidationFailure("File is required")
        is_valid, error_message = validate_file_size(len(data), config.MAX_UPLOAD_SIZE_MB * 1024 * 1024)
        if not is_valid:
            raise ValidationFailure(error_message)
        try:
            safe_name = sanitize_filename(filename)
        except ValueError as e:
            raise ValidationFailure(str(e))

        if category_id:
            if db.get(Category, category_id) is None:
                raise ValidationFailure("Category not found")
        else:
            category_id = None

        mime_type = (content_type or "").strip() or "application/octet-stream"
        key = CatalogService._allocate_key(storage, principal_id, file_extension(safe_name))
        file_url = storage.put(key, data, mime_type)

        resource = Resource(
            title=title,
            description=(description or "").strip() or None,
            category_id=category_id,
            file_url=file_url,
            storage_path=key,
            file_type=FileType(detect_file_type(mime_type)),
            mime_type=mime_type,
            file_size=len(data),
            uploaded_by=principal_id,
            view_count=0,
            download_count=0,
        )
        db.add(resource)
        try:
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.error(f"Failed to save resource row for object {key}, removing object", exc_info=True)
            try:
                storage.delete(key)
            except AppError as cleanup_error:
                logger.error(f"Orphaned object left in storage: {key} ({cleanup_error.detail})")
            raise

        logger.info(f"Resource created: {resource.id} '{title}' ({resource.file_type.value}) by {principal_id}")
        return CatalogService.get_resource(db, principal_id, resource.id)

    @staticmethod
    def update_resource(
        db: Session,
        principal_id: Optional[str],
        resource_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        category_id: Optional[str] = None,
        clear_category: bool = False,
    ) -> Resource:
        """Edit title, description or category; owner or admin only."""
        resource = CatalogService.get_resource(db, principal_id, resource_id)
        policy.enforce(db, principal_id, Collection.RESOURCE, Action.UPDATE, row=resource)

        if title is not None:
            title = title.strip()
            if not title:
                raise ValidationFailure("Title is required")
            resource.title = title
        if description is not None:
            resource.description = description.strip() or None
        # A blank id clears the category the same way an explicit null does
        if clear_category or (category_id is not None and not category_id.strip()):
            resource.category_id = None
        elif category_id:
            if db.get(Category, category_id) is None:
                raise ValidationFailure("Category not found")
            resource.category_id = category_id
        db.commit()
        return CatalogService.get_resource(db, principal_id, resource_id)

    @staticmethod
    def delete_resource(db: Session, storage, principal_id: Optional[str], resource_id: str) -> None:
        """
        Remove a catalog entry; owner or admin only.

        The stored object is removed as well only when PURGE_OBJECTS_ON_DELETE
        is set. Otherwise its path is logged as orphaned.
        """
        resource = CatalogService.get_resource(db, principal_id, resource_id)
        policy.enforce(db, principal_id, Collection.RESOURCE, Action.DELETE, row=resource)

        key = resource.storage_path
        db.delete(resource)
        db.commit()
        logger.info(f"Resource deleted: {resource_id} by {principal_id}")

        if not key:
            return
        if not config.PURGE_OBJECTS_ON_DELETE:
            logger.info(f"Kept stored object for deleted resource {resource_id}: {key}")
            return
        try:
            storage.delete(key)
        except AppError as e:
            logger.error(f"Orphaned object left in storage: {key} ({e.detail})")

    @staticmethod
    def read_file(
        db: Session,
        storage,
        principal_id: Optional[str],
        resource_id: str
    ) -> Tuple[Resource, bytes]:
        """Bytes of a resource's stored file."""
        resource = CatalogService.get_resource(db, principal_id, resource_id)
        policy.enforce(db, principal_id, Collection.FILE_OBJECT, Action.SELECT)
        if not resource.storage_path:
            raise NotFound("File not found")
        return resource, storage.get(resource.storage_path)

