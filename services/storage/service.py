"""S3-compatible object storage service using MinIO.

Backs the storage-based invoice repository: each record is one JSON object
under a configurable prefix.

- Lazy client creation and bucket auto-creation
- Retry logic for transient S3 errors
- Result objects instead of raised SDK exceptions

Based on MinIO Python SDK:
https://min.io/docs/minio/linux/developers/python/API.html
"""

import io
import logging
from typing import BinaryIO

from minio import Minio
from minio.error import S3Error
from pydantic import BaseModel
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from services.shared.config import Settings

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = frozenset({"NoSuchKey", "NoSuchObject"})


class StorageResult(BaseModel):
    """Result of storage operation.

    Attributes:
        success: Whether operation succeeded
        object_name: Full object path in storage
        bucket: Bucket name
        error: Error message if operation failed
        error_code: S3 error code (e.g. NoSuchKey) if available
        data: Object content for downloads
        etag: Object ETag (hash) if available
        size: Object size in bytes if available
    """

    success: bool
    object_name: str | None = None
    bucket: str | None = None
    error: str | None = None
    error_code: str | None = None
    data: bytes | None = None
    etag: str | None = None
    size: int | None = None

    @property
    def not_found(self) -> bool:
        """Whether the operation failed because the object does not exist."""
        return self.error_code in NOT_FOUND_CODES


class StorageService:
    """S3-compatible object storage service."""

    def __init__(self, settings: Settings) -> None:
        """Initialize storage service.

        Args:
            settings: Application settings with storage configuration
        """
        self.settings = settings
        self._client: Minio | None = None
        self._bucket_exists_cache: set[str] = set()

    def _get_client(self) -> Minio:
        """Get or create MinIO client (lazy initialization).

        Returns:
            Configured Minio client instance

        Raises:
            ValueError: If storage credentials are not configured
        """
        if self._client is None:
            if not self.settings.storage_access_key:
                raise ValueError(
                    "Storage access key not configured. "
                    "Set APP_STORAGE_ACCESS_KEY environment variable."
                )
            if not self.settings.storage_secret_key:
                raise ValueError(
                    "Storage secret key not configured. "
                    "Set APP_STORAGE_SECRET_KEY environment variable."
                )

            self._client = Minio(
                endpoint=self.settings.storage_endpoint,
                access_key=self.settings.storage_access_key,
                secret_key=self.settings.storage_secret_key,
                secure=self.settings.storage_secure,
            )
            logger.info(f"MinIO client initialized for endpoint: {self.settings.storage_endpoint}")

        return self._client

    def is_available(self) -> bool:
        """Check if storage credentials are configured.

        Returns:
            True if access and secret keys are set
        """
        return bool(self.settings.storage_access_key and self.settings.storage_secret_key)

    def health_check(self) -> bool:
        """Check if storage backend is reachable.

        Returns:
            True if MinIO server responds to list_buckets
        """
        if not self.is_available():
            return False

        try:
            client = self._get_client()
            client.list_buckets()
            return True
        except Exception as e:
            logger.warning(f"Storage health check failed: {e}")
            return False

    def _ensure_bucket(self, bucket: str) -> None:
        """Ensure bucket exists, create if missing.

        Args:
            bucket: Bucket name to check/create
        """
        if bucket in self._bucket_exists_cache:
            return

        client = self._get_client()
        if not client.bucket_exists(bucket):
            client.make_bucket(bucket)
            logger.info(f"Created bucket: {bucket}")

        self._bucket_exists_cache.add(bucket)

    @staticmethod
    def _s3_failure(e: S3Error, object_name: str | None, bucket: str) -> StorageResult:
        return StorageResult(
            success=False,
            object_name=object_name,
            bucket=bucket,
            error=f"S3 error: {e.code} - {e.message}",
            error_code=e.code,
        )

    @retry(
        retry=retry_if_exception_type(S3Error),
        stop=stop_after_attempt(3),
        wait=wait_exponential_jitter(initial=1, max=10),
        reraise=True,
    )
    def upload_bytes(
        self,
        data: bytes,
        object_name: str,
        content_type: str = "application/json",
        bucket: str | None = None,
    ) -> StorageResult:
        """Upload bytes to storage.

        Args:
            data: Bytes to upload
            object_name: Target object name in storage
            content_type: MIME type of the object
            bucket: Target bucket (defaults to settings.storage_bucket)

        Returns:
            StorageResult with upload details
        """
        bucket = bucket or self.settings.storage_bucket

        try:
            client = self._get_client()
            self._ensure_bucket(bucket)

            data_stream: BinaryIO = io.BytesIO(data)
            data_length = len(data)

            result = client.put_object(
                bucket_name=bucket,
                object_name=object_name,
                data=data_stream,
                length=data_length,
                content_type=content_type,
            )

            logger.info(f"Uploaded {object_name} to {bucket} ({data_length} bytes)")

            return StorageResult(
                success=True,
                object_name=object_name,
                bucket=bucket,
                etag=result.etag,
                size=data_length,
            )

        except S3Error as e:
            logger.error(f"S3 error uploading {object_name}: {e}")
            return self._s3_failure(e, object_name, bucket)
        except Exception as e:
            logger.error(f"Error uploading {object_name}: {e}")
            return StorageResult(
                success=False,
                object_name=object_name,
                bucket=bucket,
                error=str(e),
            )

    def download_bytes(
        self,
        object_name: str,
        bucket: str | None = None,
    ) -> StorageResult:
        """Download an object's content.

        Args:
            object_name: Object name in storage
            bucket: Bucket name (defaults to settings.storage_bucket)

        Returns:
            StorageResult with data, or not_found set when the object is missing
        """
        bucket = bucket or self.settings.storage_bucket

        try:
            client = self._get_client()
            response = client.get_object(bucket_name=bucket, object_name=object_name)
            try:
                data = response.read()
            finally:
                response.close()
                response.release_conn()

            return StorageResult(
                success=True,
                object_name=object_name,
                bucket=bucket,
                data=data,
                size=len(data),
            )

        except S3Error as e:
            if e.code not in NOT_FOUND_CODES:
                logger.error(f"S3 error downloading {object_name}: {e}")
            return self._s3_failure(e, object_name, bucket)
        except Exception as e:
            logger.error(f"Error downloading {object_name}: {e}")
            return StorageResult(
                success=False,
                object_name=object_name,
                bucket=bucket,
                error=str(e),
            )

    def list_object_names(self, prefix: str, bucket: str | None = None) -> list[str]:
        """List object names under a prefix.

        Args:
            prefix: Object name prefix
            bucket: Bucket name (defaults to settings.storage_bucket)

        Returns:
            Object names, empty if the bucket does not exist yet
        """
        bucket = bucket or self.settings.storage_bucket
        client = self._get_client()
        if not client.bucket_exists(bucket):
            return []
        return [obj.object_name for obj in client.list_objects(bucket, prefix=prefix)]

    def delete_object(
        self,
        object_name: str,
        bucket: str | None = None,
    ) -> StorageResult:
        """Delete object from storage.

        Args:
            object_name: Object name to delete
            bucket: Bucket name (defaults to settings.storage_bucket)

        Returns:
            StorageResult indicating success or failure
        """
        bucket = bucket or self.settings.storage_bucket

        try:
            client = self._get_client()
            client.remove_object(bucket_name=bucket, object_name=object_name)

            logger.info(f"Deleted {object_name} from {bucket}")

            return StorageResult(
                success=True,
                object_name=object_name,
                bucket=bucket,
            )

        except S3Error as e:
            logger.error(f"S3 error deleting {object_name}: {e}")
            return self._s3_failure(e, object_name, bucket)
        except Exception as e:
            logger.error(f"Error deleting {object_name}: {e}")
            return StorageResult(
                success=False,
                object_name=object_name,
                bucket=bucket,
                error=str(e),
            )

    def object_exists(
        self,
        object_name: str,
        bucket: str | None = None,
    ) -> bool:
        """Check if object exists in storage.

        Args:
            object_name: Object name to check
            bucket: Bucket name (defaults to settings.storage_bucket)

        Returns:
            True if object exists
        """
        bucket = bucket or self.settings.storage_bucket

        try:
            client = self._get_client()
            client.stat_object(bucket_name=bucket, object_name=object_name)
            return True
        except S3Error:
            return False
