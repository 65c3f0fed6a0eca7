import asyncio
from enum import Enum
from typing import Optional, Tuple
from urllib.parse import urljoin

import httpx

from admission_portal.config.settings import settings
from admission_portal.services.storage.minio_service import (
    OBJECT_LOCATOR_SCHEME,
    MinIOService,
)
from admission_portal.utils.errors import (
    DocumentFetchError,
    DocumentFetchTimeoutError,
    StorageError,
    StorageObjectNotFoundError,
)
from admission_portal.utils.logging import get_logger

logger = get_logger()

S3_LOCATOR_SCHEME = "s3://"


class LocatorKind(str, Enum):
    REMOTE_URL = "remote_url"
    OBJECT_REFERENCE = "object_reference"
    LOCAL_PATH = "local_path"


def classify_locator(locator: str) -> LocatorKind:
    lowered = locator.lower()
    if lowered.startswith(("http://", "https://")):
        return LocatorKind.REMOTE_URL
    if lowered.startswith((OBJECT_LOCATOR_SCHEME, S3_LOCATOR_SCHEME)):
        return LocatorKind.OBJECT_REFERENCE
    return LocatorKind.LOCAL_PATH


def parse_object_reference(locator: str) -> Tuple[Optional[str], str]:
    """Split an object reference into (bucket, object_name); bucket None means default."""
    if locator.lower().startswith(S3_LOCATOR_SCHEME):
        bucket, _, object_name = locator[len(S3_LOCATOR_SCHEME):].partition("/")
        return bucket or None, object_name
    return None, locator[len(OBJECT_LOCATOR_SCHEME):]


class DocumentFetcher:
    """
    Retrieves stored documents by locator.

    Remote URLs are fetched directly, object references through a presigned
    URL, and bare paths relative to the configured file base URL.
    """

    def __init__(
        self,
        storage: Optional[MinIOService] = None,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.storage = storage
        self.base_url = settings.FILE_BASE_URL if base_url is None else base_url
        self.timeout_seconds = timeout_seconds or settings.DOCUMENT_FETCH_TIMEOUT_SECONDS
        self.transport = transport

    async def resolve_url(self, locator: str) -> str:
        kind = classify_locator(locator)
        if kind == LocatorKind.REMOTE_URL:
            return locator
        if kind == LocatorKind.OBJECT_REFERENCE:
            if self.storage is None:
                raise DocumentFetchError(
                    "Object storage is not configured", locator=locator
                )
            bucket, object_name = parse_object_reference(locator)
            presigned = await self.storage.generate_presigned_url(
                object_name, bucket_name=bucket
            )
            return presigned["presigned_url"]
        if not self.base_url:
            raise DocumentFetchError(
                "FILE_BASE_URL is not configured for local document paths",
                locator=locator,
            )
        return urljoin(self.base_url.rstrip("/") + "/", locator.lstrip("/"))

    async def fetch(self, locator: str, timeout: Optional[float] = None) -> bytes:
        """
        Download a document.

        Raises:
            DocumentFetchTimeoutError: If the download exceeds the timeout
            StorageObjectNotFoundError: If the document does not exist
            DocumentFetchError: For any other retrieval failure
        """
        timeout = timeout or self.timeout_seconds
        try:
            return await asyncio.wait_for(self._fetch(locator, timeout), timeout)
        except asyncio.TimeoutError:
            raise DocumentFetchTimeoutError(
                f"Fetching document timed out after {timeout:g}s", locator=locator
            )

    async def _fetch(self, locator: str, timeout: float) -> bytes:
        try:
            url = await self.resolve_url(locator)
        except DocumentFetchError:
            raise
        except StorageError as e:
            raise DocumentFetchError(e.message, locator=locator)

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(timeout),
                transport=self.transport,
                follow_redirects=True,
            ) as client:
                response = await client.get(url)
        except httpx.TimeoutException:
            raise DocumentFetchTimeoutError(
                f"Fetching document timed out after {timeout:g}s", locator=locator
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise DocumentFetchError(
                f"Failed to fetch document: {str(e)}", locator=locator
            )

        if response.status_code == 404:
            raise StorageObjectNotFoundError("Document not found", locator=locator)
        if response.status_code >= 400:
            raise DocumentFetchError(
                f"Document fetch returned HTTP {response.status_code}", locator=locator
            )
        logger.debug(f"Fetched {len(response.content)} bytes for {locator}")
        return response.content
