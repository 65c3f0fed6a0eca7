from datetime import timedelta

import pytest

from admission_portal.config.document_requirements import DocumentRequirementCatalog
from admission_portal.schemas.document_requirement_schemas import (
    CustomDocumentPolicy,
    DocumentRequirement,
)
from admission_portal.services.document_validation_service import (
    normalize_documents,
    validate_documents,
)
from admission_portal.utils.datetime_utils import utc_now
from admission_portal.utils.errors import ValidationError
from tests.factories import complete_documents, make_document

NOW = utc_now()
MB = 1024 * 1024


@pytest.fixture
def two_document_catalog():
    """Catalog with a passport photo (<= 5 MB) and an Aadhar card (<= 10 MB)."""
    return DocumentRequirementCatalog(
        [
            DocumentRequirement(
                key="passport_photo",
                label="Passport Size Photo",
                required=True,
                allowed_formats=frozenset({"jpg", "png", "pdf"}),
                max_size_bytes=5 * MB,
            ),
            DocumentRequirement(
                key="aadhar_card",
                label="Aadhar Card",
                required=True,
                allowed_formats=frozenset({"jpg", "png", "pdf"}),
                max_size_bytes=10 * MB,
            ),
        ]
    )


class TestRequiredDocuments:
    """Test detection of missing required documents."""

    def test_missing_aadhar_card_is_the_only_error(self, two_document_catalog):
        """Only a 2 MB passport photo uploaded: exactly the Aadhar card is missing."""
        documents = [
            make_document(
                "passport_photo", file_name="photo.jpg", size_bytes=2 * MB
            )
        ]

        result = validate_documents(two_document_catalog, documents, NOW)

        assert result.errors == ["missing required document: Aadhar Card"]
        assert not result.is_valid

    def test_complete_set_passes_default_catalog(self, catalog):
        result = validate_documents(catalog, complete_documents(), NOW)

        assert result.errors == []
        assert result.is_valid

    def test_superseded_documents_do_not_count(self, two_document_catalog):
        documents = [
            make_document("passport_photo", file_name="photo.jpg"),
            make_document("aadhar_card", is_active=False),
        ]

        result = validate_documents(two_document_catalog, documents, NOW)

        assert result.errors == ["missing required document: Aadhar Card"]

    def test_empty_input_reports_every_required_document(self, catalog):
        result = validate_documents(catalog, None, NOW)

        assert len(result.errors) == len(catalog.required_requirements())
        assert all(e.startswith("missing required document: ") for e in result.errors)


class TestFormatAndSize:
    """Test extension and size limits."""

    def test_extension_check_is_case_insensitive(self, two_document_catalog):
        documents = [
            make_document("passport_photo", file_name="PHOTO.JPG"),
            make_document("aadhar_card", file_name="Aadhar.PDF"),
        ]

        result = validate_documents(two_document_catalog, documents, NOW)

        assert result.errors == []

    def test_disallowed_extension_is_an_error(self, two_document_catalog):
        documents = [
            make_document("passport_photo", file_name="photo.gif"),
            make_document("aadhar_card", file_name="aadhar.pdf"),
        ]

        result = validate_documents(two_document_catalog, documents, NOW)

        assert result.errors == [
            "invalid format for Passport Size Photo: .gif (allowed: jpg, pdf, png)"
        ]

    def test_oversized_file_is_an_error(self, two_document_catalog):
        documents = [
            make_document("passport_photo", file_name="photo.jpg", size_bytes=6 * MB),
            make_document("aadhar_card", file_name="aadhar.pdf", size_bytes=10 * MB),
        ]

        result = validate_documents(two_document_catalog, documents, NOW)

        assert result.errors == [
            "file too large for Passport Size Photo: 6.0 MB exceeds 5.0 MB limit"
        ]


class TestDocumentAge:
    """Test max_age_years handling; staleness is only ever a warning."""

    def test_old_income_certificate_is_a_warning(self, catalog):
        documents = complete_documents()
        income = next(d for d in documents if d.document_type == "income_certificate")
        income.document_date = NOW - timedelta(days=400)

        result = validate_documents(catalog, documents, NOW)

        assert result.errors == []
        assert result.warnings == ["Income Certificate is older than 1 year"]

    def test_upload_date_is_used_without_document_date(self, catalog):
        documents = complete_documents()
        caste = next(d for d in documents if d.document_type == "caste_certificate")
        caste.uploaded_at = NOW - timedelta(days=6 * 365)

        result = validate_documents(catalog, documents, NOW)

        assert result.warnings == ["Caste Certificate is older than 5 years"]

    def test_recent_documents_have_no_warnings(self, catalog):
        documents = complete_documents()
        for document in documents:
            document.uploaded_at = NOW - timedelta(days=30)

        result = validate_documents(catalog, documents, NOW)

        assert result.warnings == []


class TestPassportPhotoShape:
    def test_off_ratio_photo_is_a_warning(self, catalog):
        documents = complete_documents()
        photo = next(d for d in documents if d.document_type == "passport_photo")
        photo.image_width, photo.image_height = 600, 600

        result = validate_documents(catalog, documents, NOW)

        assert result.errors == []
        assert result.warnings == [
            "Passport Size Photo should have a 35:45 aspect ratio"
        ]

    def test_ratio_within_tolerance_is_accepted(self, catalog):
        documents = complete_documents()
        photo = next(d for d in documents if d.document_type == "passport_photo")
        photo.image_width, photo.image_height = 350, 450

        result = validate_documents(catalog, documents, NOW)

        assert result.warnings == []

    def test_small_photo_is_a_warning(self, catalog):
        documents = complete_documents()
        photo = next(d for d in documents if d.document_type == "passport_photo")
        photo.image_width, photo.image_height = 140, 180

        result = validate_documents(catalog, documents, NOW)

        assert result.warnings == [
            "Passport Size Photo resolution 140x180 is below 200x200"
        ]


class TestCustomDocuments:
    """Test document types that are not in the catalog."""

    def test_labelled_custom_document_is_accepted(self, catalog):
        documents = complete_documents() + [
            make_document("custom_1", custom_label="Sports certificate")
        ]

        result = validate_documents(catalog, documents, NOW)

        assert result.errors == []

    def test_custom_document_needs_label(self, catalog):
        documents = complete_documents() + [make_document("custom_1")]

        result = validate_documents(catalog, documents, NOW)

        assert result.errors == ["custom document 'custom_1' requires a label"]

    def test_label_length_is_limited(self, catalog):
        documents = complete_documents() + [
            make_document("custom_1", custom_label="x" * 51)
        ]

        result = validate_documents(catalog, documents, NOW)

        assert len(result.errors) == 1
        assert result.errors[0].startswith(
            "custom document label is longer than 50 characters"
        )

    def test_at_most_five_custom_documents(self, catalog):
        documents = complete_documents() + [
            make_document(f"custom_{i}", custom_label=f"Extra {i}") for i in range(6)
        ]

        result = validate_documents(catalog, documents, NOW)

        assert result.errors == ["too many custom documents: 6 (maximum 5)"]

    def test_unknown_type_rejected_when_custom_documents_disabled(self):
        strict = DocumentRequirementCatalog(
            [DocumentRequirement(key="aadhar_card", label="Aadhar Card", required=True)],
            custom_policy=CustomDocumentPolicy(enabled=False),
        )
        documents = [
            make_document("aadhar_card"),
            make_document("hobby_photo", custom_label="Hobby"),
        ]

        result = validate_documents(strict, documents, NOW)

        assert result.errors == ["unknown document type: hobby_photo"]


class TestNormalizeDocuments:
    """Test the two accepted document shapes."""

    def test_list_form_is_taken_as_is(self):
        documents = [make_document("aadhar_card"), make_document("passport_photo")]

        normalized, warnings = normalize_documents(documents)

        assert [d.document_type for d in normalized] == ["aadhar_card", "passport_photo"]
        assert warnings == []

    def test_list_of_dicts_is_validated(self):
        normalized, _ = normalize_documents(
            [
                {
                    "documentType": "aadhar_card",
                    "fileName": "aadhar.pdf",
                    "storageLocator": "minio://uploads/aadhar.pdf",
                    "sizeBytes": 1024,
                }
            ]
        )

        assert normalized[0].document_type == "aadhar_card"
        assert normalized[0].size_bytes == 1024

    def test_malformed_list_entries_are_reported_by_type(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize_documents(
                [
                    make_document("passport_photo"),
                    {"documentType": "aadhar_card"},
                    {
                        "documentType": "income_certificate",
                        "fileName": "income.pdf",
                        "uploadedAt": "last tuesday",
                    },
                ]
            )

        errors = exc_info.value.errors
        assert errors[0] == "document 'aadhar_card': fileName field required"
        assert errors[1].startswith("document 'income_certificate': uploadedAt ")
        assert len(errors) == 2

    def test_malformed_mapping_entry_is_reported(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize_documents(
                {"aadhar_card": {"url": "minio://uploads/a.pdf", "sizeBytes": "big"}}
            )

        assert exc_info.value.errors[0].startswith("document 'aadhar_card': sizeBytes ")

    def test_mapping_entries_without_locator_are_dropped(self):
        normalized, warnings = normalize_documents(
            {
                "aadhar_card": {
                    "url": "https://files.example.com/aadhar.pdf",
                    "fileName": "aadhar.pdf",
                    "size": 2048,
                },
                "passport_photo": {"fileName": "photo.jpg"},
                "income_certificate": None,
            }
        )

        assert len(normalized) == 1
        document = normalized[0]
        assert document.document_type == "aadhar_card"
        assert document.storage_locator == "https://files.example.com/aadhar.pdf"
        assert document.file_name == "aadhar.pdf"
        assert document.size_bytes == 2048
        assert warnings == [
            "document 'passport_photo' has no storage locator and was ignored",
            "document 'income_certificate' has no storage locator and was ignored",
        ]

    def test_mapping_without_file_name_uses_locator_name(self):
        normalized, _ = normalize_documents(
            {"aadhar_card": {"filePath": "uploads/2024/aadhar.png"}}
        )

        assert normalized[0].file_name == "aadhar.png"

    def test_mapping_form_counts_as_missing_in_validation(self, two_document_catalog):
        result = validate_documents(
            two_document_catalog,
            {
                "passport_photo": {"url": "https://files.example.com/p.jpg"},
                "aadhar_card": {"fileName": "aadhar.pdf"},
            },
            NOW,
        )

        assert result.errors == ["missing required document: Aadhar Card"]
        assert result.warnings == [
            "document 'aadhar_card' has no storage locator and was ignored"
        ]

    def test_validation_does_not_mutate_documents(self, catalog):
        documents = complete_documents()
        before = [d.model_copy(deep=True) for d in documents]

        validate_documents(catalog, documents, NOW)

        assert documents == before
