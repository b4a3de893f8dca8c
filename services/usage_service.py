"""
Usage recording: view events and view/download counters.

Counters are bumped with a single UPDATE ... SET n = n + 1 statement so
concurrent requests never lose increments, whatever state the caller's
session holds for the row.
"""
import logging
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth.policy import Action, Collection, policy
from core.exceptions import NotFound
from database.models import Resource, ViewEvent

logger = logging.getLogger(__name__)


class UsageService:

    @staticmethod
    def record_view(db: Session, principal_id: Optional[str], resource_id: str) -> int:
        """
        Log a view by the acting principal and increment the resource's view count.

        Any principal who can read the resource may record a view; the event
        insert and the counter increment commit together.

        Returns:
            The view count after this view
        """
        policy.enforce(db, principal_id, Collection.RESOURCE, Action.SELECT)
        event = ViewEvent(resource_id=resource_id, user_id=principal_id)
        policy.enforce(db, principal_id, Collection.VIEW_EVENT, Action.INSERT, row=event)

        result = db.execute(
            update(Resource)
            .where(Resource.id == resource_id)
            .values(view_count=Resource.view_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.rollback()
            raise NotFound("Resource not found")

        db.add(event)
        try:
            db.commit()
        except IntegrityError:
            # Resource deleted between the update and the insert
            db.rollback()
            raise NotFound("Resource not found")

        view_count = db.query(Resource.view_count).filter(Resource.id == resource_id).scalar()
        logger.debug(f"View recorded on {resource_id} by {principal_id} (now {view_count})")
        return view_count or 0

    @staticmethod
    def record_download(db: Session, principal_id: Optional[str], resource_id: str) -> str:
        """
        Increment the resource's download count.

        Returns:
            The resource's file URL
        """
        policy.enforce(db, principal_id, Collection.RESOURCE, Action.SELECT)

        result = db.execute(
            update(Resource)
            .where(Resource.id == resource_id)
            .values(download_count=Resource.download_count + 1)
            .execution_options(synchronize_session=False)
        )
        # Read before commit while the updated row is still locked
        file_url = db.query(Resource.file_url).filter(Resource.id == resource_id).scalar()
        if result.rowcount == 0 or file_url is None:
            db.rollback()
            raise NotFound("Resource not found")
        db.commit()
        logger.debug(f"Download recorded on {resource_id} by {principal_id}")
        return file_url
