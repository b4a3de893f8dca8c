"""
S3 client for resource file storage.
"""
import logging
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, BotoCoreError

from core.exceptions import NotFound, TransientBackendFailure

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


class S3Client:
    """Stores resource files in one S3 (or S3-compatible) bucket."""

    def __init__(
        self,
        bucket_name: str,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        region_name: str = "us-east-1",
        endpoint_url: Optional[str] = None,  # For S3-compatible services (MinIO, etc.)
        public_base_url: Optional[str] = None,
        timeout_seconds: int = 15,
        auto_create_bucket: bool = True
    ):
        """
        Initialize S3 client.

        Args:
            bucket_name: Bucket holding all resource files
            aws_access_key_id: AWS access key (or from env)
            aws_secret_access_key: AWS secret key (or from env)
            region_name: AWS region
            endpoint_url: Custom endpoint URL (for MinIO, etc.)
            public_base_url: Base URL objects are publicly served from
            timeout_seconds: Connect and read timeout for every call
            auto_create_bucket: Create the bucket if it doesn't exist
        """
        self.bucket_name = bucket_name
        self.region_name = region_name
        self.endpoint_url = endpoint_url
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

        client_kwargs = {
            "region_name": region_name,
            # Bounded calls, failures surface to the caller instead of retrying
            "config": Config(
                connect_timeout=timeout_seconds,
                read_timeout=timeout_seconds,
                retries={"max_attempts": 1, "mode": "standard"},
            ),
        }
        if aws_access_key_id:
            client_kwargs["aws_access_key_id"] = aws_access_key_id
        if aws_secret_access_key:
            client_kwargs["aws_secret_access_key"] = aws_secret_access_key
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url

        self.s3_client = boto3.client("s3", **client_kwargs)

        if auto_create_bucket:
            self._ensure_bucket_exists()

        logger.info(f"S3 client initialized (bucket: {bucket_name})")

    def _ensure_bucket_exists(self):
        """Ensure bucket exists, create if it doesn't."""
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
            logger.debug(f"Bucket {self.bucket_name} exists")
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code not in ("404", "NoSuchBucket"):
                logger.error(f"Error checking bucket {self.bucket_name}: {e}")
                raise
            if self.region_name == "us-east-1":
                self.s3_client.create_bucket(Bucket=self.bucket_name)
            else:
                self.s3_client.create_bucket(
                    Bucket=self.bucket_name,
                    CreateBucketConfiguration={"LocationConstraint": self.region_name}
                )
            logger.info(f"Created bucket: {self.bucket_name}")

    def public_url(self, key: str) -> str:
        """Public HTTPS URL of an object (the bucket is publicly readable)."""
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket_name}/{key}"
        return f"https://{self.bucket_name}.s3.{self.region_name}.amazonaws.com/{key}"

    def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        """
        Upload bytes to the bucket.

        Returns:
            Public URL of the stored object
        """
        extra = {"ContentType": content_type} if content_type else {}
        try:
            self.s3_client.put_object(Bucket=self.bucket_name, Key=key, Body=data, **extra)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload object to S3: {e}")
            raise TransientBackendFailure("File storage is unavailable")
        logger.info(f"Uploaded object to S3: s3://{self.bucket_name}/{key}")
        return self.public_url(key)

    def get(self, key: str) -> bytes:
        """Download an object's bytes."""
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
            return response["Body"].read()
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                logger.debug(f"Object not found in S3: {key}")
                raise NotFound("File not found")
            logger.error(f"Failed to download object from S3: {e}")
            raise TransientBackendFailure("File storage is unavailable")
        except BotoCoreError as e:
            logger.error(f"Failed to download object from S3: {e}")
            raise TransientBackendFailure("File storage is unavailable")

    def delete(self, key: str) -> bool:
        """Delete an object. S3 treats deleting a missing key as success."""
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to delete object from S3: {e}")
            raise TransientBackendFailure("File storage is unavailable")
        logger.info(f"Deleted object from S3: {self.bucket_name}/{key}")
        return True

    def exists(self, key: str) -> bool:
        """Check if an object exists."""
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                return False
            logger.error(f"Failed to check object in S3: {e}")
            raise TransientBackendFailure("File storage is unavailable")
        except BotoCoreError as e:
            logger.error(f"Failed to check object in S3: {e}")
            raise TransientBackendFailure("File storage is unavailable")

    def ping(self) -> None:
        """Raise if the bucket cannot be reached (health check)."""
        self.s3_client.head_bucket(Bucket=self.bucket_name)
