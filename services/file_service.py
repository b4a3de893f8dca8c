"""
Direct access to objects in the resource bucket.

Reads are public. Writing a new object takes a teacher or admin; replacing or
removing an existing one is open to any signed-in principal, which is how the
bucket is published.
"""
import mimetypes
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from auth.policy import Action, Collection, policy
from core.exceptions import NotFound, ValidationFailure
from core.logger import logger
from core.validators import validate_file_size
import config


def _clean_key(key: str) -> str:
    key = (key or "").strip().lstrip("/")
    if not key or ".." in key.split("/"):
        raise ValidationFailure("Invalid object path")
    return key


class FileService:

    @staticmethod
    def read(db: Session, storage, principal_id: Optional[str], key: str) -> Tuple[bytes, str]:
        """Object bytes and a guessed content type."""
        key = _clean_key(key)
        policy.enforce(db, principal_id, Collection.FILE_OBJECT, Action.SELECT)
        data = storage.get(key)
        media_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
        return data, media_type

    @staticmethod
    def write(
        db: Session,
        storage,
        principal_id: Optional[str],
        key: str,
        data: bytes,
        content_type: Optional[str] = None,
        replace: bool = False,
    ) -> str:
        """
        Store an object. ``replace`` overwrites an existing object, otherwise
        the key must be free.

        Returns:
            Public URL of the object
        """
        key = _clean_key(key)
        exists = storage.exists(key)
        if replace:
            if not exists:
                raise NotFound("File not found")
            policy.enforce(db, principal_id, Collection.FILE_OBJECT, Action.UPDATE)
        else:
            policy.enforce(db, principal_id, Collection.FILE_OBJECT, Action.INSERT)
            if exists:
                raise ValidationFailure("An object already exists at this path")

        is_valid, error_message = validate_file_size(len(data or b""), config.MAX_UPLOAD_SIZE_MB * 1024 * 1024)
        if not is_valid:
            raise ValidationFailure(error_message)

        url = storage.put(key, data, content_type)
        logger.info(f"Object {'replaced' if replace else 'stored'} at {key} by {principal_id}")
        return url

    @staticmethod
    def delete(db: Session, storage, principal_id: Optional[str], key: str) -> None:
        key = _clean_key(key)
        policy.enforce(db, principal_id, Collection.FILE_OBJECT, Action.DELETE)
        if not storage.exists(key):
            raise NotFound("File not found")
        storage.delete(key)
        logger.info(f"Object deleted at {key} by {principal_id}")
