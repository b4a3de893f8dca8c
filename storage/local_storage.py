"""
Local-disk object storage, used when STORAGE_BACKEND=local (development, tests).
Objects are served back through the public /api/files route.
"""
import logging
from pathlib import Path
from typing import Optional

from core.exceptions import NotFound, TransientBackendFailure, ValidationFailure

logger = logging.getLogger(__name__)


class LocalStorage:
    """Same interface as S3Client, backed by a directory."""

    def __init__(self, root_dir: Path, bucket_name: str, public_base_url: str):
        self.bucket_name = bucket_name
        self.root = (Path(root_dir) / bucket_name).resolve()
        self.public_base_url = public_base_url.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info(f"Local storage initialized at {self.root}")

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        # Keys come from clients on the files route; keep them inside the bucket dir
        if self.root not in path.parents:
            raise ValidationFailure("Invalid object path")
        return path

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/api/files/{key}"

    def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            logger.error(f"Failed to write object {key}: {e}")
            raise TransientBackendFailure("File storage is unavailable")
        logger.info(f"Stored object locally: {self.bucket_name}/{key}")
        return self.public_url(key)

    def get(self, key: str) -> bytes:
        path = self._path(key)
        if not path.is_file():
            raise NotFound("File not found")
        try:
            return path.read_bytes()
        except OSError as e:
            logger.error(f"Failed to read object {key}: {e}")
            raise TransientBackendFailure("File storage is unavailable")

    def delete(self, key: str) -> bool:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to delete object {key}: {e}")
            raise TransientBackendFailure("File storage is unavailable")
        logger.info(f"Deleted local object: {self.bucket_name}/{key}")
        return True

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def ping(self) -> None:
        if not self.root.is_dir():
            raise OSError(f"Storage directory missing: {self.root}")
