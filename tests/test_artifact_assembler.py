import zipfile
from io import BytesIO
from unittest.mock import AsyncMock, MagicMock

import httpx
import pymupdf
import pytest
from PIL import Image
from sqlalchemy.exc import OperationalError

from admission_portal.db.models import ActorRole, ArtifactKind, DocumentStatus
from admission_portal.schemas.application_schemas import Application
from admission_portal.services.artifact_service import (
    JPEG_MIME_TYPE,
    PDF_MIME_TYPE,
    PNG_MIME_TYPE,
    ArtifactAssembler,
    detect_mime_type,
    select_approved_documents,
)
from admission_portal.services.storage.document_fetcher import DocumentFetcher
from admission_portal.utils.errors import (
    AssemblyFailedError,
    DocumentFetchTimeoutError,
    NoApprovedDocumentsError,
    StorageObjectNotFoundError,
)
from tests.factories import make_document, unreachable_minio_service

APPLICATION_ID = "APP24000042"


def pdf_bytes(pages: int = 1) -> bytes:
    document = pymupdf.open()
    for number in range(pages):
        page = document.new_page()
        page.insert_text((72, 72), f"Page {number + 1}")
    data = document.tobytes()
    document.close()
    return data


def image_bytes(image_format: str = "PNG", size=(70, 90)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, "white").save(buffer, format=image_format)
    return buffer.getvalue()


class FakeFetcher:
    """Serves payloads by locator; exception payloads are raised."""

    def __init__(self, payloads):
        self.payloads = payloads
        self.requested = []

    async def fetch(self, locator, timeout=None):
        self.requested.append(locator)
        payload = self.payloads.get(locator)
        if isinstance(payload, Exception):
            raise payload
        if payload is None:
            raise StorageObjectNotFoundError("Document not found", locator=locator)
        return payload


def approved(document_type, locator, file_name=None, **kwargs):
    return make_document(
        document_type,
        status=DocumentStatus.APPROVED,
        file_name=file_name,
        storage_locator=locator,
        **kwargs,
    )


def application_with(*documents, **kwargs) -> Application:
    return Application(
        application_id=APPLICATION_ID,
        user_id="student-1",
        submitted_by="student-1",
        submitter_role=ActorRole.STUDENT,
        documents=list(documents),
        **kwargs,
    )


@pytest.fixture
def storage():
    storage = MagicMock()
    storage.upload = AsyncMock(
        side_effect=lambda data, metadata: f"minio://{metadata['prefix']}/{metadata['file_name']}"
    )
    return storage


@pytest.fixture
def artifact_repository():
    repository = MagicMock()
    repository.set_artifact_locator = AsyncMock()
    return repository


def uploaded_bytes(storage) -> bytes:
    return storage.upload.await_args.args[0]


class TestMimeDetection:
    @pytest.mark.parametrize(
        "data, declared, file_name, expected",
        [
            (b"%PDF-1.7", None, None, PDF_MIME_TYPE),
            (b"\x89PNG\r\n\x1a\n....", "application/pdf", None, PNG_MIME_TYPE),
            (b"\xff\xd8\xff\xe0", None, None, JPEG_MIME_TYPE),
            (b"????", "image/jpg", None, JPEG_MIME_TYPE),
            (b"????", "image/gif", "a.png", None),
            (b"????", None, "scan.JPEG", JPEG_MIME_TYPE),
            (b"????", None, "notes.docx", None),
        ],
    )
    def test_detect(self, data, declared, file_name, expected):
        assert detect_mime_type(data, declared, file_name) == expected


class TestSelection:
    def test_only_active_approved_documents_in_order(self):
        first = approved("aadhar_card", "minio://a")
        pending = make_document("income_certificate")
        old = approved("passport_photo", "minio://old", is_active=False)
        second = approved("passport_photo", "minio://b")
        application = application_with(first, pending, old, second)

        assert select_approved_documents(application) == [first, second]
        assert select_approved_documents(application, ["passport_photo"]) == [second]
        assert select_approved_documents(application, [first.id]) == [first]
        assert select_approved_documents(application, []) == []


class TestCombinedPdf:
    """Test merging approved documents into one PDF."""

    @pytest.mark.asyncio
    async def test_one_timeout_still_produces_a_pdf(self, storage, artifact_repository):
        photo = approved("passport_photo", "minio://photo", file_name="photo.png")
        aadhar = approved("aadhar_card", "minio://aadhar")
        marksheet = approved("tenth_marksheet_certificate", "minio://marks")
        fetcher = FakeFetcher(
            {
                "minio://photo": image_bytes(),
                "minio://aadhar": pdf_bytes(pages=2),
                "minio://marks": DocumentFetchTimeoutError(
                    "Fetching document timed out after 30s", locator="minio://marks"
                ),
            }
        )
        assembler = ArtifactAssembler(fetcher, storage, artifact_repository)
        application = application_with(photo, aadhar, marksheet)

        artifact = await assembler.assemble_combined_pdf(application)

        assert artifact.included_documents == [photo.id, aadhar.id]
        assert [s.document_type for s in artifact.skipped_documents] == [
            "tenth_marksheet_certificate"
        ]
        assert artifact.content_type == PDF_MIME_TYPE
        assert artifact.file_name == f"combined_documents_{APPLICATION_ID}.pdf"
        with pymupdf.open(stream=uploaded_bytes(storage), filetype="pdf") as merged:
            assert merged.page_count == 3
        assert artifact.byte_size == len(uploaded_bytes(storage))

    @pytest.mark.asyncio
    async def test_unreachable_object_storage_skips_only_that_document(self, storage):
        def handler(request):
            return httpx.Response(200, content=pdf_bytes(pages=2))

        fetcher = DocumentFetcher(
            storage=unreachable_minio_service(),
            timeout_seconds=5,
            transport=httpx.MockTransport(handler),
        )
        good = approved("aadhar_card", "https://files.example.com/aadhar.pdf")
        unreachable = approved("income_certificate", "minio://uploads/income.pdf")
        application = application_with(good, unreachable)

        artifact = await ArtifactAssembler(fetcher, storage).assemble_combined_pdf(
            application
        )

        assert artifact.included_documents == [good.id]
        assert [s.document_id for s in artifact.skipped_documents] == [unreachable.id]
        with pymupdf.open(stream=uploaded_bytes(storage), filetype="pdf") as merged:
            assert merged.page_count == 2

    @pytest.mark.asyncio
    async def test_unexpected_fetch_error_skips_the_document(self, storage):
        fetcher = FakeFetcher(
            {
                "minio://aadhar": pdf_bytes(),
                "minio://broken": RuntimeError("socket closed"),
            }
        )
        broken = approved("income_certificate", "minio://broken")
        application = application_with(approved("aadhar_card", "minio://aadhar"), broken)

        artifact = await ArtifactAssembler(fetcher, storage).assemble_zip(application)

        assert len(artifact.included_documents) == 1
        assert artifact.skipped_documents[0].document_id == broken.id
        assert "RuntimeError" in artifact.skipped_documents[0].reason

    @pytest.mark.asyncio
    async def test_images_get_a_letter_page_each(self, storage):
        fetcher = FakeFetcher(
            {
                "minio://wide": image_bytes("JPEG", size=(400, 100)),
                "minio://tall": image_bytes("PNG", size=(50, 500)),
            }
        )
        application = application_with(
            approved("custom_1", "minio://wide", file_name="wide.jpg", custom_label="Wide"),
            approved("custom_2", "minio://tall", file_name="tall.png", custom_label="Tall"),
        )

        await ArtifactAssembler(fetcher, storage).assemble_combined_pdf(application)

        with pymupdf.open(stream=uploaded_bytes(storage), filetype="pdf") as merged:
            assert merged.page_count == 2
            for page in merged:
                assert (page.rect.width, page.rect.height) == (612, 792)

    @pytest.mark.asyncio
    async def test_no_approved_documents(self, storage):
        fetcher = FakeFetcher({})
        application = application_with(make_document("aadhar_card"))

        with pytest.raises(NoApprovedDocumentsError):
            await ArtifactAssembler(fetcher, storage).assemble_combined_pdf(application)

        assert fetcher.requested == []
        storage.upload.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_nothing_usable_fails(self, storage):
        fetcher = FakeFetcher({"minio://gif": b"GIF89a...."})
        application = application_with(
            approved("aadhar_card", "minio://missing"),
            approved("passport_photo", "minio://gif", file_name="photo.gif"),
        )

        with pytest.raises(AssemblyFailedError) as exc_info:
            await ArtifactAssembler(fetcher, storage).assemble_combined_pdf(application)

        assert len(exc_info.value.failures) == 2
        storage.upload.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_locator_is_recorded(self, storage, artifact_repository):
        fetcher = FakeFetcher({"minio://aadhar": pdf_bytes()})
        application = application_with(approved("aadhar_card", "minio://aadhar"))

        artifact = await ArtifactAssembler(
            fetcher, storage, artifact_repository
        ).assemble_combined_pdf(application)

        assert artifact.locator == (
            f"minio://artifacts/{APPLICATION_ID}/combined_documents_{APPLICATION_ID}.pdf"
        )
        assert application.combined_artifact_locator == artifact.locator
        artifact_repository.set_artifact_locator.assert_awaited_once_with(
            APPLICATION_ID, ArtifactKind.COMBINED_PDF, artifact.locator
        )

    @pytest.mark.asyncio
    async def test_locator_write_failure_keeps_the_artifact(
        self, storage, artifact_repository
    ):
        artifact_repository.set_artifact_locator.side_effect = OperationalError(
            "UPDATE applications", {}, Exception("database is locked")
        )
        fetcher = FakeFetcher({"minio://aadhar": pdf_bytes()})
        application = application_with(approved("aadhar_card", "minio://aadhar"))

        artifact = await ArtifactAssembler(
            fetcher, storage, artifact_repository
        ).assemble_combined_pdf(application)

        assert artifact.included_documents == [application.documents[0].id]


class TestDocumentsZip:
    """Test packing approved documents into a ZIP archive."""

    @pytest.mark.asyncio
    async def test_entries_are_named_by_type_and_application(self, storage):
        photo = approved("passport_photo", "minio://photo", file_name="IMG_001.JPG")
        aadhar = approved("aadhar_card", "minio://aadhar")
        missing = approved("income_certificate", "minio://income")
        fetcher = FakeFetcher(
            {
                "minio://photo": image_bytes("JPEG"),
                "minio://aadhar": pdf_bytes(),
                "minio://summary": pdf_bytes(),
            }
        )
        application = application_with(
            photo, aadhar, missing, application_pdf_locator="minio://summary"
        )

        artifact = await ArtifactAssembler(fetcher, storage).assemble_zip(application)

        with zipfile.ZipFile(BytesIO(uploaded_bytes(storage))) as archive:
            assert sorted(archive.namelist()) == sorted(
                [
                    f"passport_photo_{APPLICATION_ID}.jpg",
                    f"aadhar_card_{APPLICATION_ID}.pdf",
                    f"application_summary_{APPLICATION_ID}.pdf",
                ]
            )
        assert artifact.included_documents == [photo.id, aadhar.id]
        assert [s.document_id for s in artifact.skipped_documents] == [missing.id]
        assert artifact.file_name == f"documents_{APPLICATION_ID}.zip"
        assert application.documents_zip_locator == artifact.locator

    @pytest.mark.asyncio
    async def test_selection_and_duplicate_names(self, storage):
        fetcher = FakeFetcher({"minio://1": pdf_bytes(), "minio://2": pdf_bytes()})
        first = approved("custom_1", "minio://1", custom_label="Award")
        second = approved("custom_1", "minio://2", custom_label="Award")
        other = approved("aadhar_card", "minio://3")
        application = application_with(first, second, other)

        await ArtifactAssembler(fetcher, storage).assemble_zip(
            application, ["custom_1"]
        )

        with zipfile.ZipFile(BytesIO(uploaded_bytes(storage))) as archive:
            assert archive.namelist() == [
                f"custom_1_{APPLICATION_ID}.pdf",
                f"custom_1_{APPLICATION_ID}_2.pdf",
            ]
        assert "minio://3" not in fetcher.requested

    @pytest.mark.asyncio
    async def test_missing_summary_is_not_fatal(self, storage):
        fetcher = FakeFetcher({"minio://aadhar": pdf_bytes()})
        application = application_with(
            approved("aadhar_card", "minio://aadhar"),
            application_pdf_locator="minio://summary",
        )

        artifact = await ArtifactAssembler(fetcher, storage).assemble_zip(application)

        with zipfile.ZipFile(BytesIO(uploaded_bytes(storage))) as archive:
            assert archive.namelist() == [f"aadhar_card_{APPLICATION_ID}.pdf"]
        assert artifact.skipped_documents == []

    @pytest.mark.asyncio
    async def test_all_fetches_failing(self, storage):
        fetcher = FakeFetcher({})
        application = application_with(approved("aadhar_card", "minio://aadhar"))

        with pytest.raises(AssemblyFailedError):
            await ArtifactAssembler(fetcher, storage).assemble_zip(application)
