"""
Builds the object storage backend selected by STORAGE_BACKEND.
"""
import logging

import config
from storage.local_storage import LocalStorage
from storage.s3_client import S3Client

logger = logging.getLogger(__name__)


def create_storage():
    """S3Client for "s3", LocalStorage for "local"."""
    backend = config.STORAGE_BACKEND
    if backend == "s3":
        return S3Client(
            bucket_name=config.STORAGE_BUCKET_NAME,
            aws_access_key_id=config.S3_ACCESS_KEY_ID,
            aws_secret_access_key=config.S3_SECRET_ACCESS_KEY,
            region_name=config.S3_REGION,
            endpoint_url=config.S3_ENDPOINT_URL,
            public_base_url=config.S3_PUBLIC_BASE_URL,
            timeout_seconds=config.STORAGE_TIMEOUT_SECONDS,
        )
    if backend == "local":
        return LocalStorage(
            root_dir=config.UPLOADS_DIR,
            bucket_name=config.STORAGE_BUCKET_NAME,
            public_base_url=config.PUBLIC_BASE_URL,
        )
    raise ValueError(f"Unknown STORAGE_BACKEND: {backend}")
