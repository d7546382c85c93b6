"""Attachment storage on MinIO (S3-compatible).

The minio SDK is synchronous; calls run in a small thread pool so request
handlers stay non-blocking. Complaint attachments live in one bucket under
``{complaint_id}/{epoch_ms}-{file_name}``.
"""

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from io import BytesIO
from uuid import UUID

from minio import Minio
from minio.error import S3Error

from brocomp.core.config import settings

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=10, thread_name_prefix="minio_")


class ObjectStorageError(Exception):
    """Raised when the object store fails (anything other than not found)."""


def attachment_key(complaint_id: UUID | str, file_name: str, now_ms: int | None = None) -> str:
    """Object key for an attachment. ``file_name`` must already be sanitized."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{complaint_id}/{now_ms}-{file_name}"


class AttachmentStorage:
    """MinIO client scoped to the attachments bucket."""

    def __init__(
        self,
        endpoint: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        secure: bool | None = None,
        bucket: str | None = None,
    ):
        self._client = Minio(
            endpoint or settings.minio_endpoint,
            access_key=access_key or settings.minio_access_key,
            secret_key=secret_key or settings.minio_secret_key,
            secure=secure if secure is not None else settings.minio_secure,
        )
        self.bucket = bucket or settings.minio_bucket
        self._bucket_ready = False

    def _run_sync(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(_executor, partial(func, *args, **kwargs))

    async def ensure_bucket(self) -> None:
        """Create the bucket on first use."""
        if self._bucket_ready:
            return
        try:
            exists = await self._run_sync(self._client.bucket_exists, self.bucket)
            if not exists:
                await self._run_sync(self._client.make_bucket, self.bucket)
                logger.info(f"Created bucket {self.bucket}")
        except S3Error as e:
            logger.error(f"Failed to prepare bucket {self.bucket}: {e}")
            raise ObjectStorageError(f"Failed to prepare bucket: {e}") from e
        self._bucket_ready = True

    async def put_object(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        await self.ensure_bucket()
        try:
            await self._run_sync(
                self._client.put_object,
                self.bucket,
                key,
                BytesIO(data),
                len(data),
                content_type=content_type,
            )
            logger.debug(f"Uploaded {self.bucket}/{key} ({len(data)} bytes)")
        except S3Error as e:
            logger.error(f"Failed to upload {self.bucket}/{key}: {e}")
            raise ObjectStorageError(f"Failed to upload object: {e}") from e

    async def get_object(self, key: str) -> bytes | None:
        """Return object bytes, or None when the key does not exist."""
        try:
            response = await self._run_sync(self._client.get_object, self.bucket, key)
        except S3Error as e:
            if e.code == "NoSuchKey":
                logger.debug(f"Object not found: {self.bucket}/{key}")
                return None
            logger.error(f"Failed to download {self.bucket}/{key}: {e}")
            raise ObjectStorageError(f"Failed to download object: {e}") from e
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    async def delete_object(self, key: str) -> None:
        """Delete object (idempotent)."""
        try:
            await self._run_sync(self._client.remove_object, self.bucket, key)
            logger.debug(f"Deleted {self.bucket}/{key}")
        except S3Error as e:
            if e.code == "NoSuchKey":
                return
            logger.error(f"Failed to delete {self.bucket}/{key}: {e}")
            raise ObjectStorageError(f"Failed to delete object: {e}") from e


_default_storage: AttachmentStorage | None = None


def get_attachment_storage() -> AttachmentStorage:
    """Get the default attachment storage (singleton)."""
    global _default_storage
    if _default_storage is None:
        _default_storage = AttachmentStorage()
    return _default_storage
