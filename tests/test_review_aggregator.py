import itertools

import pytest

from admission_portal.db.models import (
    ActorRole,
    DocumentStatus,
    OverallDocumentReviewStatus,
)
from admission_portal.schemas.application_schemas import Application
from admission_portal.services.review_aggregator import (
    aggregate_document_review,
    refresh_review_status,
)
from tests.factories import make_document

A = DocumentStatus.APPROVED
R = DocumentStatus.REJECTED
P = DocumentStatus.PENDING


def documents_with(*statuses):
    return [make_document(f"doc_{i}", status=s) for i, s in enumerate(statuses)]


class TestAggregateCounts:
    """Counting properties over every small combination of document states."""

    @pytest.mark.parametrize("size", [0, 1, 2, 3])
    def test_counts_always_add_up(self, size):
        for statuses in itertools.product([A, R, P], repeat=size):
            aggregate = aggregate_document_review(documents_with(*statuses))
            counts = aggregate.document_counts

            assert counts.total == size
            assert counts.approved + counts.rejected + counts.pending == counts.total
            assert aggregate.documents_verified == (
                counts.total > 0 and counts.approved == counts.total
            )

    def test_aggregate_is_idempotent(self):
        documents = documents_with(A, R, P, A)

        assert aggregate_document_review(documents) == aggregate_document_review(
            documents
        )


class TestOverallStatus:
    """Test overall review status derivation."""

    @pytest.mark.parametrize(
        "statuses, expected",
        [
            ((), OverallDocumentReviewStatus.NOT_VERIFIED),
            ((P, P), OverallDocumentReviewStatus.NOT_VERIFIED),
            ((A, A, A), OverallDocumentReviewStatus.ALL_APPROVED),
            ((R, R), OverallDocumentReviewStatus.ALL_REJECTED),
            ((A, P), OverallDocumentReviewStatus.PARTIALLY_APPROVED),
            ((A, R), OverallDocumentReviewStatus.PARTIALLY_APPROVED),
            ((R, P), OverallDocumentReviewStatus.PARTIALLY_APPROVED),
        ],
    )
    def test_overall_status(self, statuses, expected):
        aggregate = aggregate_document_review(documents_with(*statuses))

        assert aggregate.overall_document_review_status == expected

    def test_empty_set_is_never_verified(self):
        aggregate = aggregate_document_review([])

        assert aggregate.documents_verified is False
        assert aggregate.document_counts.total == 0


class TestRefreshReviewStatus:
    """Test writing the aggregate back onto the application cache."""

    def test_only_active_documents_are_counted(self):
        application = Application(
            application_id="APP24000001",
            user_id="student-1",
            submitted_by="student-1",
            submitter_role=ActorRole.STUDENT,
            documents=[
                make_document("aadhar_card", status=A),
                make_document("aadhar_card", status=R, is_active=False),
                make_document("passport_photo", status=A),
            ],
        )

        aggregate = refresh_review_status(application, "staff-1")

        assert application.review_status.document_counts.total == 2
        assert application.review_status.documents_verified is True
        assert application.review_status.reviewed_by == "staff-1"
        assert (
            aggregate.overall_document_review_status
            == OverallDocumentReviewStatus.ALL_APPROVED
        )

    def test_stale_cache_is_overwritten(self):
        application = Application(
            application_id="APP24000002",
            user_id="student-1",
            submitted_by="student-1",
            submitter_role=ActorRole.STUDENT,
            documents=[make_document("aadhar_card", status=P)],
        )
        application.review_status.documents_verified = True

        refresh_review_status(application)

        assert application.review_status.documents_verified is False
        assert (
            application.review_status.overall_document_review_status
            == OverallDocumentReviewStatus.NOT_VERIFIED
        )
