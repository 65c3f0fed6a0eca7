import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from admission_portal.services.storage.document_fetcher import (
    DocumentFetcher,
    LocatorKind,
    classify_locator,
    parse_object_reference,
)
from admission_portal.services.storage.minio_service import MinIOService
from admission_portal.utils.errors import (
    DocumentFetchError,
    DocumentFetchTimeoutError,
    StorageError,
    StorageObjectNotFoundError,
)
from tests.factories import unreachable_minio_service


def fetcher_for(handler, **kwargs) -> DocumentFetcher:
    kwargs.setdefault("base_url", "https://files.example.com/uploads")
    kwargs.setdefault("timeout_seconds", 2)
    return DocumentFetcher(transport=httpx.MockTransport(handler), **kwargs)


def presigning_storage(url: str = "https://minio.local/admissions/a.pdf?X-Amz=1"):
    storage = MagicMock(spec=MinIOService)
    storage.generate_presigned_url = AsyncMock(return_value={"presigned_url": url})
    return storage


class TestLocators:
    @pytest.mark.parametrize(
        "locator, kind",
        [
            ("https://cdn.example.com/a.pdf", LocatorKind.REMOTE_URL),
            ("HTTP://cdn.example.com/a.pdf", LocatorKind.REMOTE_URL),
            ("minio://uploads/a.pdf", LocatorKind.OBJECT_REFERENCE),
            ("s3://archive/2024/a.pdf", LocatorKind.OBJECT_REFERENCE),
            ("uploads/a.pdf", LocatorKind.LOCAL_PATH),
            ("/uploads/a.pdf", LocatorKind.LOCAL_PATH),
        ],
    )
    def test_classify(self, locator, kind):
        assert classify_locator(locator) == kind

    def test_parse_object_reference(self):
        assert parse_object_reference("minio://uploads/a.pdf") == (None, "uploads/a.pdf")
        assert parse_object_reference("s3://archive/2024/a.pdf") == (
            "archive",
            "2024/a.pdf",
        )


class TestFetch:
    """Test downloading documents through each kind of locator."""

    @pytest.mark.asyncio
    async def test_remote_url(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, content=b"%PDF-1.7 data")

        data = await fetcher_for(handler).fetch("https://cdn.example.com/a.pdf")

        assert data == b"%PDF-1.7 data"
        assert seen == ["https://cdn.example.com/a.pdf"]

    @pytest.mark.asyncio
    async def test_local_path_is_joined_to_base_url(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, content=b"data")

        await fetcher_for(handler).fetch("/2024/aadhar.pdf")

        assert seen == ["https://files.example.com/uploads/2024/aadhar.pdf"]

    @pytest.mark.asyncio
    async def test_local_path_without_base_url(self):
        fetcher = fetcher_for(lambda request: httpx.Response(200), base_url="")

        with pytest.raises(DocumentFetchError):
            await fetcher.fetch("2024/aadhar.pdf")

    @pytest.mark.asyncio
    async def test_object_reference_uses_presigned_url(self):
        storage = presigning_storage()
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, content=b"object bytes")

        data = await fetcher_for(handler, storage=storage).fetch("s3://archive/a.pdf")

        assert data == b"object bytes"
        storage.generate_presigned_url.assert_awaited_once_with(
            "a.pdf", bucket_name="archive"
        )
        assert seen == ["https://minio.local/admissions/a.pdf?X-Amz=1"]

    @pytest.mark.asyncio
    async def test_object_reference_without_storage(self):
        fetcher = fetcher_for(lambda request: httpx.Response(200))

        with pytest.raises(DocumentFetchError):
            await fetcher.fetch("minio://uploads/a.pdf")

    @pytest.mark.asyncio
    async def test_storage_failure_becomes_fetch_error(self):
        storage = MagicMock(spec=MinIOService)
        storage.generate_presigned_url = AsyncMock(
            side_effect=StorageError("Failed to generate presigned URL")
        )
        fetcher = fetcher_for(lambda request: httpx.Response(200), storage=storage)

        with pytest.raises(DocumentFetchError) as exc_info:
            await fetcher.fetch("minio://uploads/a.pdf")

        assert exc_info.value.locator == "minio://uploads/a.pdf"


class TestFetchFailures:
    """Test how retrieval failures are classified."""

    @pytest.mark.asyncio
    async def test_missing_document(self):
        fetcher = fetcher_for(lambda request: httpx.Response(404))

        with pytest.raises(StorageObjectNotFoundError):
            await fetcher.fetch("https://cdn.example.com/missing.pdf")

    @pytest.mark.asyncio
    async def test_server_error(self):
        fetcher = fetcher_for(lambda request: httpx.Response(503))

        with pytest.raises(DocumentFetchError) as exc_info:
            await fetcher.fetch("https://cdn.example.com/a.pdf")

        assert exc_info.value.error_code == "DOCUMENT_FETCH_FAILED"

    @pytest.mark.asyncio
    async def test_transport_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(DocumentFetchTimeoutError):
            await fetcher_for(handler).fetch("https://cdn.example.com/a.pdf")

    @pytest.mark.asyncio
    async def test_slow_response_hits_the_deadline(self):
        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, content=b"too late")

        with pytest.raises(DocumentFetchTimeoutError):
            await fetcher_for(handler).fetch(
                "https://cdn.example.com/a.pdf", timeout=0.05
            )

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(DocumentFetchError) as exc_info:
            await fetcher_for(handler).fetch("https://cdn.example.com/a.pdf")

        assert not isinstance(exc_info.value, DocumentFetchTimeoutError)

    @pytest.mark.asyncio
    async def test_invalid_url(self):
        fetcher = fetcher_for(lambda request: httpx.Response(200, content=b"%PDF"))

        with pytest.raises(DocumentFetchError):
            await fetcher.fetch("https://cdn.example.com/a\x01.pdf")

    @pytest.mark.asyncio
    async def test_unreachable_object_storage(self):
        fetcher = fetcher_for(
            lambda request: httpx.Response(200), storage=unreachable_minio_service()
        )

        with pytest.raises(DocumentFetchError) as exc_info:
            await fetcher.fetch("minio://uploads/a.pdf")

        assert exc_info.value.locator == "minio://uploads/a.pdf"
