import asyncio
import zipfile
from io import BytesIO
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union

import pymupdf
from PIL import Image, ImageOps
from sqlalchemy.exc import SQLAlchemyError

from admission_portal.config.settings import settings
from admission_portal.db.models import ArtifactKind, DocumentStatus
from admission_portal.db.repositories.application_repository import (
    ApplicationRepository,
    get_application_repository,
)
from admission_portal.schemas.application_schemas import (
    Application,
    Artifact,
    SkippedDocument,
    UploadedDocument,
)
from admission_portal.services.storage.document_fetcher import DocumentFetcher
from admission_portal.services.storage.minio_service import (
    MinIOService,
    get_minio_service,
)
from admission_portal.utils.errors import (
    AssemblyFailedError,
    DocumentFetchError,
    NoApprovedDocumentsError,
    NotFoundError,
)
from admission_portal.utils.logging import get_logger
from admission_portal.utils.string_utils import file_extension, sanitize_filename_part

logger = get_logger()

PDF_MIME_TYPE = "application/pdf"
JPEG_MIME_TYPE = "image/jpeg"
PNG_MIME_TYPE = "image/png"
ZIP_MIME_TYPE = "application/zip"

MIME_EXTENSIONS = {
    PDF_MIME_TYPE: "pdf",
    JPEG_MIME_TYPE: "jpg",
    PNG_MIME_TYPE: "png",
}
_MIME_ALIASES = {"image/jpg": JPEG_MIME_TYPE, "image/pjpeg": JPEG_MIME_TYPE}
_EXTENSION_MIME_TYPES = {
    "pdf": PDF_MIME_TYPE,
    "jpg": JPEG_MIME_TYPE,
    "jpeg": JPEG_MIME_TYPE,
    "png": PNG_MIME_TYPE,
}

# US letter, in points
PAGE_WIDTH = 612
PAGE_HEIGHT = 792
PAGE_MARGIN = 6


class FetchedDocument(NamedTuple):
    document: UploadedDocument
    data: bytes
    mime_type: str


def detect_mime_type(
    data: bytes, declared: Optional[str] = None, file_name: Optional[str] = None
) -> Optional[str]:
    """Best guess at a supported MIME type, or None when unsupported."""
    if data.startswith(b"%PDF"):
        return PDF_MIME_TYPE
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return PNG_MIME_TYPE
    if data.startswith(b"\xff\xd8\xff"):
        return JPEG_MIME_TYPE

    if declared:
        declared = declared.split(";", 1)[0].strip().lower()
        declared = _MIME_ALIASES.get(declared, declared)
        if declared in MIME_EXTENSIONS:
            return declared
        return None
    return _EXTENSION_MIME_TYPES.get(file_extension(file_name))


def select_approved_documents(
    application: Application, selected_document_refs: Optional[Iterable[str]] = None
) -> List[UploadedDocument]:
    """Approved active documents, optionally narrowed to ids or types, in upload order."""
    approved = [
        document
        for document in application.active_documents()
        if document.status == DocumentStatus.APPROVED
    ]
    if selected_document_refs is None:
        return approved
    refs = set(selected_document_refs)
    return [
        document
        for document in approved
        if document.id in refs or document.document_type in refs
    ]


class ArtifactAssembler:
    """Builds the combined PDF and the documents ZIP for an application."""

    def __init__(
        self,
        fetcher: DocumentFetcher,
        storage: MinIOService,
        repository: Optional[ApplicationRepository] = None,
        artifact_prefix: Optional[str] = None,
    ):
        self.fetcher = fetcher
        self.storage = storage
        self.repository = repository
        self.artifact_prefix = artifact_prefix or settings.ARTIFACT_PREFIX

    async def assemble_combined_pdf(
        self,
        application: Application,
        selected_document_refs: Optional[Sequence[str]] = None,
    ) -> Artifact:
        """
        Merge the selected approved documents into one PDF.

        PDF documents contribute all of their pages, images one centered page
        each. Documents that cannot be fetched or read are skipped.

        Raises:
            NoApprovedDocumentsError: If nothing approved matches the selection
            AssemblyFailedError: If no selected document could be incorporated
        """
        documents = select_approved_documents(application, selected_document_refs)
        if not documents:
            raise NoApprovedDocumentsError(
                f"Application {application.application_id} has no approved documents to combine"
            )

        fetched, skipped = await self._fetch_all(documents)
        loop = asyncio.get_event_loop()
        data, included, build_skipped = await loop.run_in_executor(
            None, self._build_pdf, fetched
        )
        skipped.extend(build_skipped)
        if not included:
            raise AssemblyFailedError(
                f"None of the documents of {application.application_id} could be combined",
                failures=[f"{s.document_type}: {s.reason}" for s in skipped],
            )

        return await self._publish(
            application,
            ArtifactKind.COMBINED_PDF,
            data,
            f"combined_documents_{application.application_id}.pdf",
            PDF_MIME_TYPE,
            included,
            skipped,
        )

    async def assemble_zip(
        self,
        application: Application,
        selected_document_refs: Optional[Sequence[str]] = None,
    ) -> Artifact:
        """
        Pack the selected approved documents into a ZIP archive.

        Entries are named `<document_type>_<application_id>.<ext>`. The
        application summary PDF is added when one exists.

        Raises:
            NoApprovedDocumentsError: If nothing approved matches the selection
            AssemblyFailedError: If no selected document could be packed
        """
        documents = select_approved_documents(application, selected_document_refs)
        if not documents:
            raise NoApprovedDocumentsError(
                f"Application {application.application_id} has no approved documents to archive"
            )

        fetched, skipped = await self._fetch_all(documents)
        if not fetched:
            raise AssemblyFailedError(
                f"None of the documents of {application.application_id} could be fetched",
                failures=[f"{s.document_type}: {s.reason}" for s in skipped],
            )

        summary = await self._fetch_summary(application)
        loop = asyncio.get_event_loop()
        data = await loop.run_in_executor(
            None, self._build_zip, application.application_id, fetched, summary
        )

        return await self._publish(
            application,
            ArtifactKind.DOCUMENTS_ZIP,
            data,
            f"documents_{application.application_id}.zip",
            ZIP_MIME_TYPE,
            [item.document.id for item in fetched],
            skipped,
        )

    async def _fetch_all(
        self, documents: List[UploadedDocument]
    ) -> Tuple[List[FetchedDocument], List[SkippedDocument]]:
        results = await asyncio.gather(
            *(self._fetch_one(document) for document in documents)
        )
        fetched = [item for item in results if isinstance(item, FetchedDocument)]
        skipped = [item for item in results if isinstance(item, SkippedDocument)]
        return fetched, skipped

    async def _fetch_one(
        self, document: UploadedDocument
    ) -> Union[FetchedDocument, SkippedDocument]:
        if not document.storage_locator:
            return self._skip(document, "no storage locator")
        try:
            data = await self.fetcher.fetch(document.storage_locator)
        except DocumentFetchError as e:
            return self._skip(document, e.message)
        except Exception as e:
            logger.error(
                f"Unexpected error fetching {document.document_type} ({document.id}): {str(e)}"
            )
            return self._skip(document, f"fetch failed: {type(e).__name__}: {e}")

        if not data:
            return self._skip(document, "empty payload")
        mime_type = detect_mime_type(data, document.mime_type, document.file_name)
        if mime_type is None:
            return self._skip(
                document, f"unsupported file type {document.mime_type or 'unknown'}"
            )
        return FetchedDocument(document, data, mime_type)

    async def _fetch_summary(self, application: Application) -> Optional[bytes]:
        if not application.application_pdf_locator:
            return None
        try:
            data = await self.fetcher.fetch(application.application_pdf_locator)
        except DocumentFetchError as e:
            logger.warning(
                f"Application summary of {application.application_id} unavailable: {e.message}"
            )
            return None
        except Exception as e:
            logger.error(
                f"Unexpected error fetching the summary of {application.application_id}: {str(e)}"
            )
            return None
        return data or None

    @staticmethod
    def _skip(document: UploadedDocument, reason: str) -> SkippedDocument:
        logger.warning(
            f"Skipping document {document.document_type} ({document.id}): {reason}"
        )
        return SkippedDocument(
            document_id=document.id,
            document_type=document.document_type,
            reason=reason,
        )

    def _build_pdf(
        self, fetched: List[FetchedDocument]
    ) -> Tuple[bytes, List[str], List[SkippedDocument]]:
        included: List[str] = []
        skipped: List[SkippedDocument] = []
        merged = pymupdf.open()
        try:
            for item in fetched:
                try:
                    if item.mime_type == PDF_MIME_TYPE:
                        with pymupdf.open(stream=item.data, filetype="pdf") as source:
                            merged.insert_pdf(source)
                    else:
                        self._append_image_page(merged, item.data)
                    included.append(item.document.id)
                except Exception as e:
                    skipped.append(self._skip(item.document, f"unreadable file: {e}"))
            data = merged.tobytes(garbage=3, deflate=True) if included else b""
        finally:
            merged.close()
        return data, included, skipped

    @staticmethod
    def _append_image_page(pdf: "pymupdf.Document", data: bytes) -> None:
        """Place an image on its own letter page, scaled to fit and centered."""
        with Image.open(BytesIO(data)) as image:
            image = ImageOps.exif_transpose(image)
            if image.mode != "RGB":
                image = image.convert("RGB")
            buffer = BytesIO()
            image.save(buffer, format="JPEG", quality=90)
            width, height = image.size

        box_width = PAGE_WIDTH - 2 * PAGE_MARGIN
        box_height = PAGE_HEIGHT - 2 * PAGE_MARGIN
        scale = min(box_width / width, box_height / height)
        draw_width, draw_height = width * scale, height * scale
        x0 = (PAGE_WIDTH - draw_width) / 2
        y0 = (PAGE_HEIGHT - draw_height) / 2

        page = pdf.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
        page.insert_image(
            pymupdf.Rect(x0, y0, x0 + draw_width, y0 + draw_height),
            stream=buffer.getvalue(),
        )

    @staticmethod
    def _build_zip(
        application_id: str,
        fetched: List[FetchedDocument],
        summary: Optional[bytes],
    ) -> bytes:
        buffer = BytesIO()
        used_names = set()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            for item in fetched:
                extension = (
                    file_extension(item.document.file_name)
                    or MIME_EXTENSIONS[item.mime_type]
                )
                stem = f"{sanitize_filename_part(item.document.document_type)}_{application_id}"
                name = f"{stem}.{extension}"
                counter = 2
                while name in used_names:
                    name = f"{stem}_{counter}.{extension}"
                    counter += 1
                used_names.add(name)
                archive.writestr(name, item.data)
            if summary:
                archive.writestr(f"application_summary_{application_id}.pdf", summary)
        return buffer.getvalue()

    async def _publish(
        self,
        application: Application,
        kind: ArtifactKind,
        data: bytes,
        file_name: str,
        content_type: str,
        included: List[str],
        skipped: List[SkippedDocument],
    ) -> Artifact:
        locator = await self.storage.upload(
            data,
            {
                "file_name": file_name,
                "prefix": f"{self.artifact_prefix}/{application.application_id}",
                "content_type": content_type,
            },
        )
        if kind == ArtifactKind.COMBINED_PDF:
            application.combined_artifact_locator = locator
        else:
            application.documents_zip_locator = locator

        if self.repository is not None:
            try:
                await self.repository.set_artifact_locator(
                    application.application_id, kind, locator
                )
            except (NotFoundError, SQLAlchemyError) as e:
                logger.error(
                    f"Could not record {kind.value} locator for "
                    f"{application.application_id}: {str(e)}"
                )

        logger.info(
            f"Assembled {kind.value} for {application.application_id}: "
            f"{len(included)} included, {len(skipped)} skipped, {len(data)} bytes"
        )
        return Artifact(
            file_name=file_name,
            byte_size=len(data),
            locator=locator,
            content_type=content_type,
            included_documents=included,
            skipped_documents=skipped,
        )


def get_artifact_assembler() -> ArtifactAssembler:
    """Dependency to get the artifact assembler"""
    storage = get_minio_service()
    return ArtifactAssembler(
        fetcher=DocumentFetcher(storage=storage),
        storage=storage,
        repository=get_application_repository(),
    )
