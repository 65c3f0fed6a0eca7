import zipfile
from io import BytesIO
from unittest.mock import AsyncMock, MagicMock

import pymupdf
import pytest

from admission_portal.db.models import ActorRole, DocumentStatus
from admission_portal.schemas.application_schemas import Application
from admission_portal.services.application_summary_service import (
    ApplicationSummaryService,
    render_application_summary,
)
from admission_portal.services.artifact_service import ArtifactAssembler
from admission_portal.utils.errors import NotFoundError
from admission_portal.utils.string_utils import humanize_key
from tests.factories import make_document


def page_texts(data: bytes):
    with pymupdf.open(stream=data, filetype="pdf") as document:
        return [page.get_text() for page in document]


@pytest.fixture
def summary_storage():
    storage = MagicMock()
    storage.upload = AsyncMock(
        side_effect=lambda data, metadata: f"minio://{metadata['prefix']}/{metadata['file_name']}"
    )
    return storage


class TestHumanizeKey:
    @pytest.mark.parametrize(
        "key, expected",
        [
            ("firstName", "First Name"),
            ("date_of_birth", "Date Of Birth"),
            ("email", "Email"),
        ],
    )
    def test_humanize(self, key, expected):
        assert humanize_key(key) == expected


class TestRenderSummary:
    """Test the content of the printable form."""

    def test_form_lists_details_and_documents(self, draft_application, catalog):
        text = "\n".join(page_texts(render_application_summary(draft_application, catalog)))

        assert f"Application ID: {draft_application.application_id}" in text
        assert "PERSONAL DETAILS" in text
        assert "First Name" in text
        assert "Asha" in text
        assert "Aadhar Card" in text
        assert "Passport Size Photo" in text
        assert "Terms accepted" in text
        assert "Parent/Guardian Signature" in text

    def test_empty_application(self, catalog):
        application = Application(
            application_id="APP24000099",
            user_id="student-1",
            submitted_by="student-1",
            submitter_role=ActorRole.STUDENT,
        )

        text = "\n".join(page_texts(render_application_summary(application, catalog)))

        assert "No documents uploaded" in text
        assert "Terms not yet accepted." in text

    def test_long_forms_continue_on_new_pages(self, catalog):
        application = Application(
            application_id="APP24000099",
            user_id="student-1",
            submitted_by="student-1",
            submitter_role=ActorRole.STUDENT,
            personal_details={f"field{n}": "value " * 20 for n in range(40)},
            documents=[make_document("aadhar_card")],
        )

        pages = page_texts(render_application_summary(application, catalog))

        assert len(pages) >= 2
        assert f"Page 1 of {len(pages)}" in pages[0]
        assert f"Page {len(pages)} of {len(pages)}" in pages[-1]


class TestGenerateSummary:
    @pytest.mark.asyncio
    async def test_locator_is_stored_with_a_new_version(
        self, repository, catalog, summary_storage, draft_application
    ):
        service = ApplicationSummaryService(summary_storage, repository, catalog)

        artifact = await service.generate(draft_application)

        application_id = draft_application.application_id
        assert artifact.file_name == f"application_summary_{application_id}.pdf"
        assert artifact.locator == (
            f"minio://artifacts/{application_id}/application_summary_{application_id}.pdf"
        )
        assert artifact.byte_size == len(summary_storage.upload.await_args.args[0])
        stored = await repository.load_application(application_id)
        assert stored.application_pdf_locator == artifact.locator
        assert stored.version == draft_application.version + 1
        assert len(stored.workflow_history) == len(draft_application.workflow_history)

    @pytest.mark.asyncio
    async def test_recording_failure_keeps_the_artifact(
        self, catalog, summary_storage, draft_application
    ):
        repository = MagicMock()
        repository.update = AsyncMock(side_effect=NotFoundError("gone"))
        service = ApplicationSummaryService(summary_storage, repository, catalog)

        artifact = await service.generate(draft_application)

        assert artifact.locator.endswith(".pdf")
        assert draft_application.application_pdf_locator == artifact.locator

    @pytest.mark.asyncio
    async def test_generated_form_is_packed_into_the_zip(
        self, catalog, summary_storage
    ):
        application = Application(
            application_id="APP24000042",
            user_id="student-1",
            submitted_by="student-1",
            submitter_role=ActorRole.STUDENT,
            documents=[
                make_document(
                    "aadhar_card",
                    status=DocumentStatus.APPROVED,
                    storage_locator="minio://aadhar",
                )
            ],
        )
        stored = {}

        async def upload(data, metadata):
            locator = f"minio://{metadata['prefix']}/{metadata['file_name']}"
            stored[locator] = data
            return locator

        summary_storage.upload = AsyncMock(side_effect=upload)
        await ApplicationSummaryService(summary_storage, None, catalog).generate(application)

        class StoredFetcher:
            async def fetch(self, locator, timeout=None):
                if locator == "minio://aadhar":
                    with pymupdf.open() as document:
                        document.new_page()
                        return document.tobytes()
                return stored[locator]

        artifact = await ArtifactAssembler(StoredFetcher(), summary_storage).assemble_zip(
            application
        )

        with zipfile.ZipFile(BytesIO(stored[artifact.locator])) as archive:
            assert "application_summary_APP24000042.pdf" in archive.namelist()
