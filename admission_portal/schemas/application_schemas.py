from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
import uuid

from pydantic import Field

from admission_portal.db.models import (
    ActorRole,
    ApplicationStage,
    ApplicationStatus,
    DocumentStatus,
    OverallDocumentReviewStatus,
    WorkflowAction,
)
from admission_portal.schemas.camel_base_model import CamelCaseBaseModel
from admission_portal.utils.datetime_utils import utc_now

DETAIL_SECTIONS = (
    "personal_details",
    "contact_details",
    "course_details",
    "guardian_details",
    "financial_details",
)

# sections that must be filled in before an application can be submitted
REQUIRED_DETAIL_SECTIONS = (
    "personal_details",
    "contact_details",
    "course_details",
    "guardian_details",
)


class Actor(CamelCaseBaseModel):
    actor_id: str
    actor_role: ActorRole


class UploadedDocument(CamelCaseBaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    document_type: str
    custom_label: Optional[str] = None
    file_name: str
    storage_locator: Optional[str] = None
    mime_type: Optional[str] = None
    size_bytes: int = 0
    uploaded_at: datetime = Field(default_factory=utc_now)
    document_date: Optional[datetime] = None
    image_width: Optional[int] = None
    image_height: Optional[int] = None
    status: DocumentStatus = DocumentStatus.PENDING
    remarks: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    is_active: bool = True
    superseded_at: Optional[datetime] = None


class DocumentCounts(CamelCaseBaseModel):
    total: int = 0
    approved: int = 0
    rejected: int = 0
    pending: int = 0


class ReviewStatus(CamelCaseBaseModel):
    """Cached copy of the document review aggregate."""

    document_counts: DocumentCounts = Field(default_factory=DocumentCounts)
    overall_document_review_status: OverallDocumentReviewStatus = (
        OverallDocumentReviewStatus.NOT_VERIFIED
    )
    documents_verified: bool = False
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None


class ReviewInfo(CamelCaseBaseModel):
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    remarks: Optional[str] = None
    rejection_reason: Optional[str] = None
    rejection_message: Optional[str] = None


class ResubmissionInfo(CamelCaseBaseModel):
    is_resubmission: bool = False
    resubmission_count: int = 0
    resubmission_reason: Optional[str] = None
    resubmitted_at: Optional[datetime] = None
    resubmitted_by: Optional[str] = None


class WorkflowHistoryEntry(CamelCaseBaseModel):
    stage: ApplicationStage
    status: ApplicationStatus
    actor_id: str
    actor_role: ActorRole
    action: WorkflowAction
    remarks: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)


class Application(CamelCaseBaseModel):
    application_id: str
    user_id: str
    submitted_by: str
    submitter_role: ActorRole
    assigned_agent_id: Optional[str] = None
    status: ApplicationStatus = ApplicationStatus.DRAFT
    current_stage: ApplicationStage = ApplicationStage.REGISTRATION
    personal_details: Dict[str, Any] = Field(default_factory=dict)
    contact_details: Dict[str, Any] = Field(default_factory=dict)
    course_details: Dict[str, Any] = Field(default_factory=dict)
    guardian_details: Dict[str, Any] = Field(default_factory=dict)
    financial_details: Dict[str, Any] = Field(default_factory=dict)
    documents: List[UploadedDocument] = Field(default_factory=list)
    review_status: ReviewStatus = Field(default_factory=ReviewStatus)
    review_info: ReviewInfo = Field(default_factory=ReviewInfo)
    workflow_history: List[WorkflowHistoryEntry] = Field(default_factory=list)
    terms_accepted: bool = False
    terms_accepted_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    withdrawn_date: Optional[datetime] = None
    application_pdf_locator: Optional[str] = None
    combined_artifact_locator: Optional[str] = None
    documents_zip_locator: Optional[str] = None
    resubmission_info: ResubmissionInfo = Field(default_factory=ResubmissionInfo)
    last_modified: datetime = Field(default_factory=utc_now)
    version: int = 0

    def active_documents(self) -> List[UploadedDocument]:
        return [document for document in self.documents if document.is_active]

    def stakeholders(self) -> List[Tuple[str, ActorRole]]:
        """Distinct people who follow this application, student first."""
        candidates = [
            (self.user_id, ActorRole.STUDENT),
            (self.assigned_agent_id, ActorRole.AGENT),
            (self.submitted_by, self.submitter_role),
        ]
        seen: List[Tuple[str, ActorRole]] = []
        for person_id, role in candidates:
            if person_id and person_id not in [existing for existing, _ in seen]:
                seen.append((person_id, role))
        return seen


class DocumentDecision(CamelCaseBaseModel):
    """A staff decision for one document, addressed by id or by type."""

    document_type: Optional[str] = None
    document_id: Optional[str] = None
    status: DocumentStatus
    remarks: Optional[str] = None


class SkippedDocument(CamelCaseBaseModel):
    document_id: str
    document_type: str
    reason: str


class Artifact(CamelCaseBaseModel):
    file_name: str
    byte_size: int
    locator: str
    content_type: str
    included_documents: List[str] = Field(default_factory=list)
    skipped_documents: List[SkippedDocument] = Field(default_factory=list)


class NotificationMessage(CamelCaseBaseModel):
    """One notification for one recipient, handed to the sender as-is."""

    notification_code: str
    application_id: str
    recipient_id: str
    recipient_role: ActorRole
    actor_id: str
    actor_role: ActorRole
    subject: str
    body: str
    status: ApplicationStatus
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
