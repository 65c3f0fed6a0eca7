"""
Workflow operations on an in-memory application.

Each function checks its guards before touching the application, so a raised
error always leaves the application exactly as it was. Persisting the result is
the caller's job (see ApplicationWorkflowService).
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from pydantic import Field

from admission_portal.config.document_requirements import DocumentRequirementCatalog
from admission_portal.db.models import (
    ApplicationStage,
    DocumentStatus,
    OverallDocumentReviewStatus,
)
from admission_portal.schemas.application_schemas import (
    DETAIL_SECTIONS,
    REQUIRED_DETAIL_SECTIONS,
    Actor,
    Application,
    DocumentDecision,
    ReviewInfo,
    UploadedDocument,
)
from admission_portal.schemas.camel_base_model import CamelCaseBaseModel
from admission_portal.services.document_validation_service import (
    DocumentsInput,
    DocumentValidationResult,
    normalize_documents,
    validate_documents,
)
from admission_portal.services.review_aggregator import (
    DocumentReviewAggregate,
    aggregate_document_review,
    refresh_review_status,
)
from admission_portal.services.workflow.transitions import (
    WorkflowEvent,
    apply_transition,
    can_transition,
    get_transition,
)
from admission_portal.utils.datetime_utils import utc_now
from admission_portal.utils.errors import (
    NoOpError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)

DEFAULT_APPROVAL_REMARKS = "Application approved by staff"
DEFAULT_DOCUMENT_APPROVAL_REMARKS = "Document approved"

DRAFT_STAGES = (
    ApplicationStage.REGISTRATION,
    ApplicationStage.DOCUMENTS,
    ApplicationStage.APPLICATION_PDF,
    ApplicationStage.TERMS_CONDITIONS,
)


class ApplicationDraftUpdate(CamelCaseBaseModel):
    """Partial application data sent while the student is still filling it in."""

    personal_details: Optional[Dict[str, Any]] = None
    contact_details: Optional[Dict[str, Any]] = None
    course_details: Optional[Dict[str, Any]] = None
    guardian_details: Optional[Dict[str, Any]] = None
    financial_details: Optional[Dict[str, Any]] = None
    documents: Optional[Any] = None
    terms_accepted: Optional[bool] = None
    application_pdf_locator: Optional[str] = None
    assigned_agent_id: Optional[str] = None
    stage: Optional[ApplicationStage] = None

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class DocumentDecisionOutcome(CamelCaseBaseModel):
    updated_document_ids: List[str] = Field(default_factory=list)
    unmatched_references: List[str] = Field(default_factory=list)
    aggregate: DocumentReviewAggregate


def new_application(
    application_id: str,
    actor: Actor,
    user_id: Optional[str] = None,
    update: Optional[ApplicationDraftUpdate] = None,
    now: Optional[datetime] = None,
) -> Application:
    """Build a fresh DRAFT application with its first history entry."""
    now = now or utc_now()
    update = update or ApplicationDraftUpdate()
    application = Application(
        application_id=application_id,
        user_id=user_id or actor.actor_id,
        submitted_by=actor.actor_id,
        submitter_role=actor.actor_role,
        assigned_agent_id=update.assigned_agent_id,
        last_modified=now,
    )
    for section in DETAIL_SECTIONS:
        value = getattr(update, section)
        if value:
            setattr(application, section, dict(value))
    if update.terms_accepted:
        application.terms_accepted = True
        application.terms_accepted_at = now
    application.application_pdf_locator = update.application_pdf_locator
    documents, _ = normalize_documents(update.documents)
    _attach_uploads(application, documents, now)
    refresh_review_status(application)

    apply_transition(
        application,
        WorkflowEvent.SAVE_DRAFT,
        actor,
        remarks="Application created",
        stage=ApplicationStage.REGISTRATION,
        now=now,
    )
    return application


def _attach_uploads(
    application: Application, uploads: Sequence[UploadedDocument], now: datetime
) -> None:
    known_ids = {document.id for document in application.documents}
    for upload in uploads:
        if upload.id in known_ids:
            continue
        known_ids.add(upload.id)
        for existing in application.active_documents():
            if existing.document_type == upload.document_type:
                existing.is_active = False
                existing.superseded_at = now
        # a fresh upload is never pre-reviewed
        upload.status = DocumentStatus.PENDING
        upload.remarks = None
        upload.reviewed_by = None
        upload.reviewed_at = None
        upload.is_active = True
        upload.superseded_at = None
        # client ids are not trusted as row keys
        upload.id = str(uuid.uuid4())
        application.documents.append(upload)


def save_draft(
    application: Application,
    actor: Actor,
    update: ApplicationDraftUpdate,
    now: Optional[datetime] = None,
) -> List[str]:
    """
    Merge partial data into the application.

    Detail sections are merged key by key; uploaded documents supersede any
    active document of the same type. Returns normalization warnings.
    """
    if update.is_empty():
        raise NoOpError("Draft update contains no changes")
    if update.stage is not None and update.stage not in DRAFT_STAGES:
        raise ValidationError(
            "Invalid draft stage",
            errors=[f"stage {update.stage.value} cannot be set while editing a draft"],
        )
    get_transition(application.status, WorkflowEvent.SAVE_DRAFT)

    now = now or utc_now()
    documents, warnings = normalize_documents(update.documents)

    for section in DETAIL_SECTIONS:
        value = getattr(update, section)
        if value:
            merged = dict(getattr(application, section))
            merged.update(value)
            setattr(application, section, merged)

    if update.terms_accepted is not None:
        application.terms_accepted = update.terms_accepted
        application.terms_accepted_at = now if update.terms_accepted else None
    if update.application_pdf_locator:
        application.application_pdf_locator = update.application_pdf_locator
    if update.assigned_agent_id:
        application.assigned_agent_id = update.assigned_agent_id

    if documents:
        _attach_uploads(application, documents, now)
        refresh_review_status(application)

    apply_transition(
        application,
        WorkflowEvent.SAVE_DRAFT,
        actor,
        remarks="Draft saved",
        stage=update.stage,
        now=now,
    )
    return warnings


def submit(
    application: Application,
    actor: Actor,
    catalog: DocumentRequirementCatalog,
    terms_accepted: bool,
    now: Optional[datetime] = None,
) -> DocumentValidationResult:
    """
    Submit the application for review.

    Raises:
        PreconditionError: If the application is already under review or decided
        ValidationError: If any detail section, the terms or a document is missing
    """
    get_transition(application.status, WorkflowEvent.SUBMIT)
    now = now or utc_now()

    errors: List[str] = []
    for section in REQUIRED_DETAIL_SECTIONS:
        if not getattr(application, section):
            errors.append(f"{section.replace('_', ' ')} are incomplete")
    if not (terms_accepted or application.terms_accepted):
        errors.append("terms and conditions must be accepted")

    result = validate_documents(catalog, application.active_documents(), now)
    errors.extend(result.errors)
    if errors:
        raise ValidationError(
            "Application cannot be submitted",
            errors=errors,
            warnings=result.warnings,
        )

    if not application.terms_accepted:
        application.terms_accepted = True
        application.terms_accepted_at = now
    application.submitted_at = now
    refresh_review_status(application)
    apply_transition(
        application,
        WorkflowEvent.SUBMIT,
        actor,
        remarks="Application submitted for review",
        now=now,
    )
    return result


def _decision_reference(decision: DocumentDecision) -> str:
    return decision.document_id or decision.document_type or ""


def _check_decisions(decisions: Sequence[DocumentDecision]) -> None:
    errors: List[str] = []
    for decision in decisions:
        reference = _decision_reference(decision)
        if not reference:
            errors.append("each decision needs a document id or document type")
        if decision.status == DocumentStatus.PENDING:
            errors.append(f"decision for '{reference}' must be APPROVED or REJECTED")
        if decision.status == DocumentStatus.REJECTED and not (
            decision.remarks and decision.remarks.strip()
        ):
            errors.append(f"remarks are required to reject '{reference}'")
    if errors:
        raise ValidationError("Invalid document decisions", errors=errors)


def decide_documents(
    application: Application,
    actor: Actor,
    decisions: Sequence[DocumentDecision],
    now: Optional[datetime] = None,
) -> DocumentDecisionOutcome:
    """
    Record staff decisions on individual documents and re-derive the status.

    Any rejected document moves the whole application to REJECTED, even when
    other documents are still pending.
    """
    if not decisions:
        raise NoOpError("No document decisions supplied")
    _check_decisions(decisions)
    if not can_transition(application.status, WorkflowEvent.DOCUMENTS_REJECTED):
        raise PreconditionError(
            f"Documents cannot be reviewed while the application is "
            f"{application.status.value}",
            guard="invalid_status",
        )

    active = application.active_documents()
    matches = []
    unmatched: List[str] = []
    for decision in decisions:
        if decision.document_id:
            targets = [d for d in active if d.id == decision.document_id]
        else:
            targets = [d for d in active if d.document_type == decision.document_type]
        if not targets:
            unmatched.append(_decision_reference(decision))
            continue
        matches.append((decision, targets))

    if not matches:
        raise NotFoundError(
            f"None of the referenced documents exist on application "
            f"{application.application_id}",
            error_code="DOCUMENT_NOT_FOUND",
        )

    now = now or utc_now()
    updated: List[str] = []
    for decision, targets in matches:
        for document in targets:
            document.status = decision.status
            document.remarks = (decision.remarks or "").strip() or (
                DEFAULT_DOCUMENT_APPROVAL_REMARKS
                if decision.status == DocumentStatus.APPROVED
                else None
            )
            document.reviewed_by = actor.actor_id
            document.reviewed_at = now
            updated.append(document.id)

    aggregate = refresh_review_status(application, actor.actor_id, now)
    counts = aggregate.document_counts
    if counts.rejected > 0:
        event = WorkflowEvent.DOCUMENTS_REJECTED
    elif aggregate.overall_document_review_status == OverallDocumentReviewStatus.ALL_APPROVED:
        event = WorkflowEvent.DOCUMENTS_ALL_APPROVED
    else:
        event = WorkflowEvent.DOCUMENTS_PARTIALLY_REVIEWED

    apply_transition(
        application,
        event,
        actor,
        remarks=(
            f"Document review: {counts.approved} approved, "
            f"{counts.rejected} rejected, {counts.pending} pending"
        ),
        now=now,
    )
    return DocumentDecisionOutcome(
        updated_document_ids=updated,
        unmatched_references=unmatched,
        aggregate=aggregate,
    )


def approve(
    application: Application,
    actor: Actor,
    remarks: Optional[str] = None,
    now: Optional[datetime] = None,
) -> None:
    """
    Give final approval.

    Raises:
        PreconditionError: guard `invalid_status`, `no_documents`,
            `incomplete_approval` or `verification_incomplete`
    """
    get_transition(application.status, WorkflowEvent.APPROVE)
    counts = aggregate_document_review(application.active_documents()).document_counts
    if counts.total == 0:
        raise PreconditionError("Application has no documents", guard="no_documents")
    if counts.approved != counts.total:
        raise PreconditionError(
            f"Only {counts.approved} of {counts.total} documents are approved",
            guard="incomplete_approval",
        )
    if not application.review_status.documents_verified:
        raise PreconditionError(
            "Document verification is incomplete", guard="verification_incomplete"
        )

    now = now or utc_now()
    remarks = (remarks or "").strip() or DEFAULT_APPROVAL_REMARKS
    application.review_info = ReviewInfo(
        reviewed_by=actor.actor_id, reviewed_at=now, remarks=remarks
    )
    apply_transition(application, WorkflowEvent.APPROVE, actor, remarks=remarks, now=now)


def reject(
    application: Application,
    actor: Actor,
    rejection_reason: Optional[str],
    remarks: Optional[str] = None,
    rejection_message: Optional[str] = None,
    now: Optional[datetime] = None,
) -> None:
    if not rejection_reason or not rejection_reason.strip():
        raise ValidationError(
            "Rejection reason is required", errors=["rejection reason is required"]
        )
    get_transition(application.status, WorkflowEvent.REJECT)

    now = now or utc_now()
    application.review_info = ReviewInfo(
        reviewed_by=actor.actor_id,
        reviewed_at=now,
        remarks=remarks,
        rejection_reason=rejection_reason.strip(),
        rejection_message=rejection_message,
    )
    apply_transition(
        application,
        WorkflowEvent.REJECT,
        actor,
        remarks=remarks or rejection_reason.strip(),
        now=now,
    )


def withdraw(
    application: Application,
    actor: Actor,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> None:
    get_transition(application.status, WorkflowEvent.WITHDRAW)
    now = now or utc_now()
    application.withdrawn_date = now
    apply_transition(
        application,
        WorkflowEvent.WITHDRAW,
        actor,
        remarks=reason or "Application withdrawn",
        now=now,
    )


def request_resubmission(
    application: Application,
    actor: Actor,
    remarks: Optional[str],
    now: Optional[datetime] = None,
) -> None:
    """Send an application under review back to the student for corrections."""
    if not remarks or not remarks.strip():
        raise ValidationError(
            "Remarks are required", errors=["remarks are required to request resubmission"]
        )
    get_transition(application.status, WorkflowEvent.REQUEST_RESUBMISSION)
    now = now or utc_now()
    application.review_info = ReviewInfo(
        reviewed_by=actor.actor_id, reviewed_at=now, remarks=remarks.strip()
    )
    apply_transition(
        application,
        WorkflowEvent.REQUEST_RESUBMISSION,
        actor,
        remarks=remarks.strip(),
        now=now,
    )


def resubmit(
    application: Application,
    actor: Actor,
    catalog: DocumentRequirementCatalog,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> DocumentValidationResult:
    """Put a rejected application back into the review queue."""
    get_transition(application.status, WorkflowEvent.RESUBMIT)
    now = now or utc_now()

    result = validate_documents(catalog, application.active_documents(), now)
    if result.errors:
        raise ValidationError(
            "Application cannot be resubmitted",
            errors=result.errors,
            warnings=result.warnings,
        )

    info = application.resubmission_info
    info.is_resubmission = True
    info.resubmission_count += 1
    info.resubmission_reason = reason
    info.resubmitted_at = now
    info.resubmitted_by = actor.actor_id

    application.review_info = ReviewInfo()
    application.submitted_at = now
    refresh_review_status(application)
    apply_transition(
        application,
        WorkflowEvent.RESUBMIT,
        actor,
        remarks=reason or f"Resubmission #{info.resubmission_count}",
        now=now,
    )
    return result
