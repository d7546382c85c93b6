"""Unit tests for AttachmentStorage.

The underlying ``Minio`` client is patched; calls still go through the
thread pool so the async wrappers are exercised.
"""

from unittest.mock import MagicMock, patch

import pytest
from minio.error import S3Error

from brocomp.services.object_storage import (
    AttachmentStorage,
    ObjectStorageError,
    attachment_key,
)


def _s3_error(code: str) -> S3Error:
    return S3Error(
        code=code,
        message=code,
        resource="/attachments/key",
        request_id="req",
        host_id="host",
        response=MagicMock(),
    )


@pytest.fixture
def mock_minio_client():
    with patch("brocomp.services.object_storage.Minio") as mock_minio_class:
        mock_client = MagicMock()
        mock_client.bucket_exists.return_value = True
        mock_minio_class.return_value = mock_client
        yield mock_client


@pytest.fixture
def storage(mock_minio_client):
    return AttachmentStorage(
        endpoint="localhost:9000",
        access_key="test_access",
        secret_key="test_secret",
        secure=False,
        bucket="attachments",
    )


class TestAttachmentKey:
    def test_key_layout(self):
        assert attachment_key("c-1", "report.pdf", now_ms=1700000000000) == "c-1/1700000000000-report.pdf"

    def test_key_defaults_to_current_time(self):
        complaint_id, rest = attachment_key("c-1", "a.png").split("/")
        timestamp, name = rest.split("-", 1)
        assert complaint_id == "c-1"
        assert timestamp.isdigit()
        assert name == "a.png"


class TestEnsureBucket:
    @pytest.mark.asyncio
    async def test_creates_missing_bucket_once(self, storage, mock_minio_client):
        mock_minio_client.bucket_exists.return_value = False

        await storage.ensure_bucket()
        await storage.ensure_bucket()

        mock_minio_client.make_bucket.assert_called_once_with("attachments")
        mock_minio_client.bucket_exists.assert_called_once()

    @pytest.mark.asyncio
    async def test_bucket_error_is_wrapped(self, storage, mock_minio_client):
        mock_minio_client.bucket_exists.side_effect = _s3_error("AccessDenied")

        with pytest.raises(ObjectStorageError, match="Failed to prepare bucket"):
            await storage.ensure_bucket()


class TestPutObject:
    @pytest.mark.asyncio
    async def test_upload(self, storage, mock_minio_client):
        await storage.put_object("c-1/1-a.png", b"\x89PNG", content_type="image/png")

        args, kwargs = mock_minio_client.put_object.call_args
        assert args[0] == "attachments"
        assert args[1] == "c-1/1-a.png"
        assert args[2].read() == b"\x89PNG"
        assert args[3] == 4
        assert kwargs["content_type"] == "image/png"

    @pytest.mark.asyncio
    async def test_upload_failure(self, storage, mock_minio_client):
        mock_minio_client.put_object.side_effect = _s3_error("InternalError")

        with pytest.raises(ObjectStorageError, match="Failed to upload object"):
            await storage.put_object("k", b"data")


class TestGetObject:
    @pytest.mark.asyncio
    async def test_download_releases_connection(self, storage, mock_minio_client):
        response = MagicMock()
        response.read.return_value = b"content"
        mock_minio_client.get_object.return_value = response

        assert await storage.get_object("k") == b"content"
        response.close.assert_called_once()
        response.release_conn.assert_called_once()

    @pytest.mark.asyncio
    async def test_missing_key_returns_none(self, storage, mock_minio_client):
        mock_minio_client.get_object.side_effect = _s3_error("NoSuchKey")

        assert await storage.get_object("missing") is None

    @pytest.mark.asyncio
    async def test_other_errors_raise(self, storage, mock_minio_client):
        mock_minio_client.get_object.side_effect = _s3_error("AccessDenied")

        with pytest.raises(ObjectStorageError):
            await storage.get_object("k")


class TestDeleteObject:
    @pytest.mark.asyncio
    async def test_delete(self, storage, mock_minio_client):
        await storage.delete_object("k")
        mock_minio_client.remove_object.assert_called_once_with("attachments", "k")

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self, storage, mock_minio_client):
        mock_minio_client.remove_object.side_effect = _s3_error("NoSuchKey")
        await storage.delete_object("k")
