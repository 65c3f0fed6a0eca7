import uuid
from typing import List, Optional

import urllib3
from minio import Minio

from admission_portal.db.models import DocumentStatus
from admission_portal.schemas.application_schemas import (
    NotificationMessage,
    UploadedDocument,
)
from admission_portal.services.notifications import BaseNotificationSender
from admission_portal.services.storage.minio_service import MinIOService
from admission_portal.services.workflow.operations import ApplicationDraftUpdate

REQUIRED_DOCUMENT_TYPES = [
    "passport_photo",
    "aadhar_card",
    "tenth_marksheet_certificate",
    "caste_certificate",
    "income_certificate",
]


class RecordingNotificationSender(BaseNotificationSender):
    """Keeps every notification in memory instead of queuing it."""

    def __init__(self):
        self.messages: List[NotificationMessage] = []

    def send(self, message: NotificationMessage) -> None:
        self.messages.append(message)


class FailingNotificationSender(BaseNotificationSender):
    def __init__(self):
        self.attempts = 0

    def send(self, message: NotificationMessage) -> None:
        self.attempts += 1
        raise ConnectionError("broker unavailable")


def make_document(
    document_type: str,
    status: DocumentStatus = DocumentStatus.PENDING,
    file_name: Optional[str] = None,
    size_bytes: int = 200 * 1024,
    storage_locator: Optional[str] = None,
    **kwargs,
) -> UploadedDocument:
    """Build an uploaded document; reviewed documents get reviewer fields filled in."""
    if status != DocumentStatus.PENDING:
        kwargs.setdefault("reviewed_by", "staff-1")
        if status == DocumentStatus.REJECTED:
            kwargs.setdefault("remarks", "Blurry scan")
    return UploadedDocument(
        document_type=document_type,
        file_name=file_name or f"{document_type}.pdf",
        size_bytes=size_bytes,
        storage_locator=storage_locator or f"minio://uploads/{uuid.uuid4()}.pdf",
        status=status,
        **kwargs,
    )


def complete_documents() -> List[UploadedDocument]:
    documents = []
    for document_type in REQUIRED_DOCUMENT_TYPES:
        file_name = (
            "passport_photo.jpg"
            if document_type == "passport_photo"
            else f"{document_type}.pdf"
        )
        documents.append(make_document(document_type, file_name=file_name))
    return documents


def complete_draft_update(**overrides) -> ApplicationDraftUpdate:
    """Draft data that passes every submission check."""
    data = dict(
        personal_details={"firstName": "Asha", "lastName": "Verma"},
        contact_details={"email": "asha@example.com", "phone": "9876543210"},
        course_details={"course": "B.Sc. Nursing"},
        guardian_details={"fatherName": "Ravi Verma"},
        documents=complete_documents(),
        terms_accepted=True,
    )
    data.update(overrides)
    return ApplicationDraftUpdate(**data)


def unreachable_minio_service() -> MinIOService:
    """MinIO client pointed at a closed port, failing on the first attempt."""
    client = Minio(
        "127.0.0.1:1",
        access_key="test",
        secret_key="test",
        secure=False,
        region="us-east-1",
        http_client=urllib3.PoolManager(retries=urllib3.Retry(total=0)),
    )
    return MinIOService(client=client, bucket_name="admissions")
