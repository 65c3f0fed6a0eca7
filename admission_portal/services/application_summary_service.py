"""
Printable application form.

Renders the application into the PDF form students sign. Staff get it as an
extra entry of the documents ZIP.
"""

import asyncio
import textwrap
from typing import Any, List, Optional, Tuple

import pymupdf
from sqlalchemy.exc import SQLAlchemyError

from admission_portal.config.document_requirements import (
    DocumentRequirementCatalog,
    get_document_requirement_catalog,
)
from admission_portal.config.settings import settings
from admission_portal.db.repositories.application_repository import (
    ApplicationRepository,
    get_application_repository,
)
from admission_portal.schemas.application_schemas import Application, Artifact
from admission_portal.services.storage.minio_service import (
    MinIOService,
    get_minio_service,
)
from admission_portal.utils.datetime_utils import utc_now
from admission_portal.utils.errors import ConcurrentUpdateError, NotFoundError
from admission_portal.utils.logging import get_logger
from admission_portal.utils.string_utils import humanize_key

logger = get_logger()

PDF_MIME_TYPE = "application/pdf"

# A4, in points
PAGE_WIDTH = 595
PAGE_HEIGHT = 842
MARGIN = 50
HEADER_HEIGHT = 100
FOOTER_HEIGHT = 40
LABEL_WIDTH = 150
ROW_HEIGHT = 14

BRAND_COLOR = (0.118, 0.251, 0.686)
TEXT_COLOR = (0.216, 0.255, 0.318)
MUTED_COLOR = (0.42, 0.447, 0.502)
RULE_COLOR = (0.898, 0.906, 0.922)
FOOTER_FILL = (0.953, 0.957, 0.965)

SECTIONS = (
    ("Personal details", "personal_details"),
    ("Contact details", "contact_details"),
    ("Course details", "course_details"),
    ("Guardian details", "guardian_details"),
)

DEFAULT_TERMS = (
    "Eligibility: the applicant must meet every eligibility criterion of the chosen course.",
    "Documentation: required documents must be genuine. False or misleading "
    "information cancels the admission.",
    "Admission process: admission is subject to document verification, payment "
    "of fees and availability of seats.",
    "Fees: the fee structure is that of the current academic year and may be revised.",
    "Refunds: fees are refunded according to the refund policy. Nothing is "
    "refunded after classes begin.",
    "Conduct: students must follow the code of conduct and disciplinary rules.",
    "Attendance: a minimum of 75% attendance is mandatory.",
    "Amendments: these terms may be amended at any time; students are informed "
    "of every change.",
)

DECLARATION = (
    "I hereby declare that all the information provided above is true and correct "
    "to the best of my knowledge. I understand that any false information may "
    "lead to the cancellation of my admission."
)


def _format_value(value: Any) -> str:
    if value is None or value == "":
        return "N/A"
    if isinstance(value, dict):
        parts = [f"{humanize_key(k)}: {_format_value(v)}" for k, v in value.items()]
        return ", ".join(parts) or "N/A"
    if isinstance(value, (list, tuple)):
        return ", ".join(_format_value(item) for item in value) or "N/A"
    if isinstance(value, bool):
        return "Yes" if value else "No"
    return str(value)


class _PageWriter:
    """Top-down text layout that starts a new page when the current one is full."""

    def __init__(self, document: "pymupdf.Document"):
        self.document = document
        self.page = document.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
        self.y = MARGIN

    def ensure_space(self, height: float) -> None:
        if self.y + height > PAGE_HEIGHT - FOOTER_HEIGHT - 10:
            self.page = self.document.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
            self.y = MARGIN

    def text(
        self,
        x: float,
        text: str,
        fontsize: float = 10,
        fontname: str = "helv",
        color: Tuple[float, float, float] = TEXT_COLOR,
    ) -> None:
        self.page.insert_text(
            (x, self.y + fontsize), text, fontsize=fontsize, fontname=fontname, color=color
        )

    def heading(self, title: str) -> None:
        self.ensure_space(60)
        self.y += 10
        self.text(MARGIN, title.upper(), fontsize=13, fontname="hebo", color=BRAND_COLOR)
        self.y += 20
        self.page.draw_line(
            (MARGIN, self.y), (PAGE_WIDTH - MARGIN, self.y), color=RULE_COLOR, width=1
        )
        self.y += 8

    def row(self, label: str, value: str) -> None:
        lines = textwrap.wrap(value, 60) or [""]
        self.ensure_space(ROW_HEIGHT * len(lines) + 4)
        self.text(MARGIN + 5, label, fontname="hebo")
        for line in lines:
            self.text(MARGIN + LABEL_WIDTH, line, color=MUTED_COLOR)
            self.y += ROW_HEIGHT
        self.y += 4

    def paragraph(self, text: str, fontsize: float = 9, indent: float = 0) -> None:
        for line in textwrap.wrap(text, 100 - int(indent / 5)):
            self.ensure_space(fontsize + 4)
            self.text(MARGIN + indent, line, fontsize=fontsize)
            self.y += fontsize + 4

    def signature_line(self, left: str, right: str) -> None:
        self.ensure_space(45)
        self.y += 25
        self.page.draw_line((MARGIN, self.y), (MARGIN + 150, self.y), color=(0, 0, 0))
        self.page.draw_line((350, self.y), (500, self.y), color=(0, 0, 0))
        self.y += 3
        self.text(MARGIN, left, fontsize=9)
        self.text(350, right, fontsize=9)
        self.y += 14


def _draw_header(writer: _PageWriter, application: Application, generated_on: str) -> None:
    page = writer.page
    page.draw_rect(pymupdf.Rect(0, 0, PAGE_WIDTH, HEADER_HEIGHT), color=None, fill=BRAND_COLOR)
    white = (1, 1, 1)
    page.insert_text((MARGIN, 40), settings.NAME, fontsize=20, fontname="hebo", color=white)
    page.insert_text((MARGIN, 62), "Student Application Form", fontsize=12, color=white)
    page.insert_text(
        (MARGIN, 85), f"Application ID: {application.application_id}", fontsize=10, color=white
    )
    page.insert_text(
        (PAGE_WIDTH - MARGIN - 150, 85), f"Date: {generated_on}", fontsize=10, color=white
    )
    writer.y = HEADER_HEIGHT + 15
    writer.text(
        MARGIN,
        f"Status: {application.status.value.replace('_', ' ').title()}",
        fontsize=9,
        color=MUTED_COLOR,
    )
    writer.y += 14


def _draw_footers(document: "pymupdf.Document") -> None:
    total = document.page_count
    for number, page in enumerate(document, start=1):
        top = PAGE_HEIGHT - FOOTER_HEIGHT
        page.draw_rect(pymupdf.Rect(0, top, PAGE_WIDTH, PAGE_HEIGHT), color=None, fill=FOOTER_FILL)
        page.insert_text(
            (MARGIN, top + 16),
            "This document is computer generated and does not require a signature.",
            fontsize=8,
            color=MUTED_COLOR,
        )
        page.insert_text(
            (PAGE_WIDTH - MARGIN - 60, top + 16),
            f"Page {number} of {total}",
            fontsize=8,
            color=MUTED_COLOR,
        )


def render_application_summary(
    application: Application,
    catalog: DocumentRequirementCatalog,
    terms: Optional[List[str]] = None,
) -> bytes:
    """
    Render the application form as PDF bytes.

    Detail sections come first, then the document list and the signed part.
    """
    document = pymupdf.open()
    try:
        writer = _PageWriter(document)
        _draw_header(writer, application, utc_now().strftime("%d/%m/%Y"))

        number = 0
        for number, (title, field) in enumerate(SECTIONS, start=1):
            writer.heading(f"{number}. {title}")
            details = getattr(application, field) or {}
            if not details:
                writer.row("Not provided", "")
            for key, value in details.items():
                writer.row(humanize_key(key), _format_value(value))

        writer.heading(f"{number + 1}. Uploaded documents")
        documents = application.active_documents()
        if not documents:
            writer.paragraph("No documents uploaded", fontsize=10)
        for index, item in enumerate(documents, start=1):
            label = catalog.label_for(item.document_type, item.custom_label)
            writer.row(
                f"{index}. {label}",
                f"{item.file_name} ({item.status.value.lower()})",
            )

        writer.heading(f"{number + 2}. Terms and conditions")
        for index, term in enumerate(terms or DEFAULT_TERMS, start=1):
            writer.paragraph(f"{index}. {term}")
        if application.terms_accepted:
            accepted_on = (
                f" on {application.terms_accepted_at.strftime('%d/%m/%Y')}"
                if application.terms_accepted_at
                else ""
            )
            writer.paragraph(f"Terms accepted{accepted_on}.", fontsize=10)
        else:
            writer.paragraph("Terms not yet accepted.", fontsize=10)

        writer.heading("Declaration")
        writer.paragraph(DECLARATION)
        writer.signature_line("Student Signature", "Date")
        writer.signature_line("Parent/Guardian Signature", "Date")

        _draw_footers(document)
        return document.tobytes(garbage=3, deflate=True)
    finally:
        document.close()


class ApplicationSummaryService:
    """Generates the application form PDF and records where it is stored."""

    def __init__(
        self,
        storage: MinIOService,
        repository: Optional[ApplicationRepository] = None,
        catalog: Optional[DocumentRequirementCatalog] = None,
        artifact_prefix: Optional[str] = None,
    ):
        self.storage = storage
        self.repository = repository
        self.catalog = catalog or get_document_requirement_catalog()
        self.artifact_prefix = artifact_prefix or settings.ARTIFACT_PREFIX

    async def render(self, application: Application) -> bytes:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None, render_application_summary, application, self.catalog
        )

    async def generate(self, application: Application) -> Artifact:
        """
        Render, upload and record the summary PDF.

        The stored locator is what the documents ZIP picks up. Recording it is
        best effort: a failure is logged and the uploaded artifact still returned.
        """
        data = await self.render(application)
        file_name = f"application_summary_{application.application_id}.pdf"
        locator = await self.storage.upload(
            data,
            {
                "file_name": file_name,
                "prefix": f"{self.artifact_prefix}/{application.application_id}",
                "content_type": PDF_MIME_TYPE,
            },
        )
        application.application_pdf_locator = locator

        if self.repository is not None:
            await self._record_locator(application.application_id, locator)

        logger.info(
            f"Generated application summary for {application.application_id} "
            f"({len(data)} bytes)"
        )
        return Artifact(
            file_name=file_name,
            byte_size=len(data),
            locator=locator,
            content_type=PDF_MIME_TYPE,
            included_documents=[d.id for d in application.active_documents()],
        )

    async def _record_locator(self, application_id: str, locator: str) -> None:
        def set_locator(current: Application) -> None:
            current.application_pdf_locator = locator

        # versioned write, retried like any workflow mutation
        try:
            await self.repository.update(
                application_id, set_locator, max_retries=settings.WORKFLOW_MAX_RETRIES
            )
        except (NotFoundError, ConcurrentUpdateError, SQLAlchemyError) as e:
            logger.error(
                f"Could not record the summary locator for {application_id}: {str(e)}"
            )


def get_application_summary_service() -> ApplicationSummaryService:
    """Dependency to get the application summary service"""
    return ApplicationSummaryService(
        storage=get_minio_service(),
        repository=get_application_repository(),
        catalog=get_document_requirement_catalog(),
    )
