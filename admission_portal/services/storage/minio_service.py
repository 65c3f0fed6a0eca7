import asyncio
from datetime import datetime, timedelta
from io import BytesIO
from typing import Any, Dict, Optional
from uuid import uuid4

from minio import Minio
from minio.error import S3Error
from urllib3.exceptions import HTTPError as UrllibHTTPError

from admission_portal.config.settings import settings
from admission_portal.utils.errors import StorageError, StorageObjectNotFoundError
from admission_portal.utils.logging import get_logger

logger = get_logger()

OBJECT_LOCATOR_SCHEME = "minio://"


def object_locator(object_name: str) -> str:
    return f"{OBJECT_LOCATOR_SCHEME}{object_name}"


class MinIOService:
    """Service for MinIO object storage operations"""

    def __init__(self, client: Optional[Minio] = None, bucket_name: Optional[str] = None):
        self.client = client or Minio(
            endpoint=settings.MINIO_ENDPOINT,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_SECURE,
            region=settings.MINIO_REGION,
        )
        self.bucket_name = bucket_name or settings.MINIO_BUCKET_NAME
        self._bucket_checked = False

    def _ensure_bucket_exists(self):
        """Ensure the bucket exists, create if it doesn't."""
        if self._bucket_checked:
            return
        try:
            if not self.client.bucket_exists(bucket_name=self.bucket_name):
                self.client.make_bucket(bucket_name=self.bucket_name)
            self._bucket_checked = True
        except (S3Error, UrllibHTTPError) as e:
            raise StorageError(f"Failed to ensure bucket exists: {str(e)}")

    async def upload(self, data: bytes, metadata: Dict[str, Any]) -> str:
        """
        Upload bytes and return the locator to store on the application.

        Args:
            data: Raw bytes to upload
            metadata: `file_name`, optional `prefix` and `content_type`

        Returns:
            A `minio://<object_name>` locator
        """
        result = await self.upload_bytes(
            data,
            filename=metadata["file_name"],
            prefix=metadata.get("prefix"),
            content_type=metadata.get("content_type", "application/octet-stream"),
        )
        return object_locator(result["object_name"])

    async def upload_bytes(
        self,
        data: bytes,
        filename: str,
        prefix: Optional[str] = None,
        content_type: str = "application/octet-stream",
    ) -> Dict[str, Any]:
        """
        Upload bytes data to MinIO storage.

        Args:
            data: Raw bytes data to upload
            filename: File name to use in MinIO
            prefix: Optional prefix to add to the object name
            content_type: MIME type of the file

        Returns:
            Dict containing upload information
        """
        # Add timestamp prefix to avoid naming conflicts
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        object_name = (
            f"{prefix}/{uuid4()}_{timestamp}_{filename}"
            if prefix
            else f"{uuid4()}_{timestamp}_{filename}"
        )
        file_size = len(data)

        # MinIO client is synchronous
        def _upload_sync():
            self._ensure_bucket_exists()
            return self.client.put_object(
                bucket_name=self.bucket_name,
                object_name=object_name,
                data=BytesIO(data),
                length=file_size,
                content_type=content_type,
            )

        try:
            loop = asyncio.get_event_loop()
            result = await loop.run_in_executor(None, _upload_sync)
        except (S3Error, UrllibHTTPError) as e:
            raise StorageError(f"Failed to upload bytes to MinIO: {str(e)}")

        logger.info(f"Uploaded {object_name} ({file_size} bytes)")
        return {
            "object_name": object_name,
            "bucket_name": self.bucket_name,
            "size": file_size,
            "content_type": content_type,
            "etag": result.etag,
            "version_id": result.version_id,
        }

    async def generate_presigned_url(
        self,
        object_name: str,
        expires_in_hours: Optional[int] = None,
        bucket_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Generate a presigned URL for accessing a file.

        Args:
            object_name: Name of the object to generate URL for
            expires_in_hours: URL expiration time in hours
            bucket_name: Bucket holding the object, defaults to the configured one

        Returns:
            Dict containing the presigned URL and metadata

        Raises:
            StorageObjectNotFoundError: If the object does not exist
        """
        expires_in_hours = expires_in_hours or settings.PRESIGNED_URL_EXPIRES_HOURS
        bucket_name = bucket_name or self.bucket_name

        def _generate_url_sync():
            try:
                self.client.stat_object(bucket_name=bucket_name, object_name=object_name)
            except S3Error as e:
                if e.code == "NoSuchKey":
                    raise StorageObjectNotFoundError(
                        f"File '{object_name}' not found in bucket '{bucket_name}'",
                        locator=object_locator(object_name),
                    )
                raise
            return self.client.presigned_get_object(
                bucket_name=bucket_name,
                object_name=object_name,
                expires=timedelta(hours=expires_in_hours),
            )

        try:
            loop = asyncio.get_event_loop()
            presigned_url = await loop.run_in_executor(None, _generate_url_sync)
        except (S3Error, UrllibHTTPError) as e:
            raise StorageError(f"Failed to generate presigned URL: {str(e)}")

        return {
            "object_name": object_name,
            "bucket_name": bucket_name,
            "presigned_url": presigned_url,
            "expires_at": (datetime.now() + timedelta(hours=expires_in_hours)).isoformat(),
            "expires_in_hours": expires_in_hours,
        }


def get_minio_service() -> MinIOService:
    """Dependency to get MinIO service instance"""
    return MinIOService()
