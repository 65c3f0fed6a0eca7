from datetime import datetime
from typing import Iterable, Optional

from admission_portal.db.models import DocumentStatus, OverallDocumentReviewStatus
from admission_portal.schemas.application_schemas import (
    Application,
    DocumentCounts,
    ReviewStatus,
    UploadedDocument,
)
from admission_portal.schemas.camel_base_model import CamelCaseBaseModel


class DocumentReviewAggregate(CamelCaseBaseModel):
    document_counts: DocumentCounts
    overall_document_review_status: OverallDocumentReviewStatus
    documents_verified: bool


def aggregate_document_review(
    documents: Iterable[UploadedDocument],
) -> DocumentReviewAggregate:
    """
    Roll per-document review states up into counts and an overall status.

    Anything that is neither APPROVED nor REJECTED counts as pending.
    """
    total = approved = rejected = 0
    for document in documents:
        total += 1
        if document.status == DocumentStatus.APPROVED:
            approved += 1
        elif document.status == DocumentStatus.REJECTED:
            rejected += 1
    pending = total - approved - rejected

    if total == 0 or pending == total:
        overall = OverallDocumentReviewStatus.NOT_VERIFIED
    elif approved == total:
        overall = OverallDocumentReviewStatus.ALL_APPROVED
    elif rejected == total:
        overall = OverallDocumentReviewStatus.ALL_REJECTED
    else:
        overall = OverallDocumentReviewStatus.PARTIALLY_APPROVED

    return DocumentReviewAggregate(
        document_counts=DocumentCounts(
            total=total, approved=approved, rejected=rejected, pending=pending
        ),
        overall_document_review_status=overall,
        documents_verified=total > 0 and approved == total,
    )


def refresh_review_status(
    application: Application,
    reviewed_by: Optional[str] = None,
    reviewed_at: Optional[datetime] = None,
) -> DocumentReviewAggregate:
    """Recompute the aggregate over active documents and write it to the cache."""
    aggregate = aggregate_document_review(application.active_documents())
    application.review_status = ReviewStatus(
        document_counts=aggregate.document_counts,
        overall_document_review_status=aggregate.overall_document_review_status,
        documents_verified=aggregate.documents_verified,
        reviewed_by=reviewed_by or application.review_status.reviewed_by,
        reviewed_at=reviewed_at or application.review_status.reviewed_at,
    )
    return aggregate
