"""
Document requirement catalog.

The catalog is the only declarative part of the admission workflow: which
documents an application needs, which file formats and sizes are accepted, and
how old a certificate may be. Validation code reads it; nothing writes to it at
runtime.
"""

from typing import Dict, Iterable, List, Optional

from admission_portal.schemas.document_requirement_schemas import (
    AspectRatio,
    CustomDocumentPolicy,
    DocumentRequirement,
    DocumentRequirementCatalogResponse,
)

CATALOG_VERSION = "2024.1"

MB = 1024 * 1024
IMAGE_FORMATS = frozenset({"jpg", "jpeg", "png"})
IMAGE_AND_PDF_FORMATS = frozenset({"jpg", "jpeg", "png", "pdf"})


class DocumentRequirementCatalog:
    """Immutable lookup over a set of document requirements."""

    def __init__(
        self,
        requirements: Iterable[DocumentRequirement],
        custom_policy: Optional[CustomDocumentPolicy] = None,
        upload_order: Optional[List[str]] = None,
        version: str = CATALOG_VERSION,
    ):
        self._requirements: Dict[str, DocumentRequirement] = {}
        for requirement in requirements:
            if requirement.key in self._requirements:
                raise ValueError(f"Duplicate document requirement key: {requirement.key}")
            self._requirements[requirement.key] = requirement

        self.custom_policy = custom_policy or CustomDocumentPolicy()
        self.version = version

        order = list(upload_order or [])
        # keys missing from the explicit order keep declaration order at the end
        order += [key for key in self._requirements if key not in order]
        self.upload_order = [key for key in order if key in self._requirements]

    def __contains__(self, key: str) -> bool:
        return key in self._requirements

    def __iter__(self):
        return (self._requirements[key] for key in self.upload_order)

    def __len__(self) -> int:
        return len(self._requirements)

    def get(self, key: str) -> Optional[DocumentRequirement]:
        return self._requirements.get(key)

    def required_requirements(self) -> List[DocumentRequirement]:
        return [requirement for requirement in self if requirement.required]

    def optional_requirements(self) -> List[DocumentRequirement]:
        return [requirement for requirement in self if not requirement.required]

    def label_for(self, document_type: str, custom_label: Optional[str] = None) -> str:
        """Human readable name of a document type, falling back to the custom label."""
        requirement = self.get(document_type)
        if requirement:
            return requirement.label
        if custom_label:
            return custom_label
        return document_type.replace("_", " ").title()

    def to_response(self) -> DocumentRequirementCatalogResponse:
        return DocumentRequirementCatalogResponse(
            version=self.version,
            required=self.required_requirements(),
            optional=self.optional_requirements(),
            custom=self.custom_policy,
            upload_order=self.upload_order,
        )


DEFAULT_REQUIREMENTS = [
    # Required documents
    DocumentRequirement(
        key="passport_photo",
        label="Passport Size Photo",
        description="Recent passport size photograph (35mm x 45mm)",
        help_text="Upload a clear passport size photo (35mm x 45mm) with white background",
        required=True,
        allowed_formats=IMAGE_FORMATS,
        max_size_bytes=5 * MB,
        aspect_ratio=AspectRatio(width=35, height=45, tolerance=0.1),
        min_width=200,
        min_height=200,
    ),
    DocumentRequirement(
        key="aadhar_card",
        label="Aadhar Card",
        description="Front and back of Aadhar card",
        help_text="Upload both front and back of Aadhar card in a single file or separate files",
        required=True,
        allowed_formats=IMAGE_AND_PDF_FORMATS,
        max_size_bytes=10 * MB,
    ),
    DocumentRequirement(
        key="tenth_marksheet_certificate",
        label="10th Marksheet cum Certificate",
        description="10th class marksheet and certificate (combined document)",
        help_text=(
            "Upload 10th marksheet and certificate. If they are separate documents, "
            "combine them into a single PDF"
        ),
        required=True,
        allowed_formats=IMAGE_AND_PDF_FORMATS,
        max_size_bytes=10 * MB,
    ),
    DocumentRequirement(
        key="caste_certificate",
        label="Caste Certificate",
        description="Caste certificate (not older than 5 years)",
        help_text="Upload caste certificate issued within the last 5 years",
        required=True,
        allowed_formats=IMAGE_AND_PDF_FORMATS,
        max_size_bytes=10 * MB,
        max_age_years=5,
    ),
    DocumentRequirement(
        key="income_certificate",
        label="Income Certificate",
        description="Income certificate (not older than 1 year)",
        help_text="Upload income certificate issued within the last 1 year",
        required=True,
        allowed_formats=IMAGE_AND_PDF_FORMATS,
        max_size_bytes=10 * MB,
        max_age_years=1,
    ),
    # Optional documents
    DocumentRequirement(
        key="resident_certificate",
        label="Resident Certificate",
        description="Resident certificate (optional)",
        help_text="Upload resident certificate if available",
    ),
    DocumentRequirement(
        key="twelfth_marksheet",
        label="+2 Marksheet",
        description="12th standard marksheet (optional)",
        help_text="Upload 12th standard marksheet if available",
    ),
    DocumentRequirement(
        key="twelfth_certificate",
        label="+2 Certificate",
        description="12th standard certificate (optional)",
        help_text="Upload 12th standard certificate if available",
    ),
    DocumentRequirement(
        key="graduation_marksheet",
        label="Graduation Marksheet",
        description="Graduation marksheet (optional)",
        help_text="Upload graduation marksheet if available",
    ),
    DocumentRequirement(
        key="graduation_certificate",
        label="Graduation Certificate",
        description="Graduation certificate (optional)",
        help_text="Upload graduation certificate if available",
    ),
    DocumentRequirement(
        key="pm_kisan_enrollment",
        label="PM Kisan Enrollment",
        description="PM Kisan enrollment certificate (for OBC free education)",
        help_text="Upload PM Kisan enrollment certificate for OBC free education benefit",
        category="obc_benefit",
    ),
    DocumentRequirement(
        key="cm_kisan_enrollment",
        label="CM Kisan Enrollment",
        description="CM Kisan enrollment certificate (for OBC free education)",
        help_text="Upload CM Kisan enrollment certificate for OBC free education benefit",
        category="obc_benefit",
    ),
]

DEFAULT_UPLOAD_ORDER = [
    "passport_photo",
    "aadhar_card",
    "tenth_marksheet_certificate",
    "caste_certificate",
    "income_certificate",
    "resident_certificate",
    "twelfth_marksheet",
    "twelfth_certificate",
    "graduation_marksheet",
    "graduation_certificate",
    "pm_kisan_enrollment",
    "cm_kisan_enrollment",
]

default_catalog = DocumentRequirementCatalog(
    DEFAULT_REQUIREMENTS,
    custom_policy=CustomDocumentPolicy(),
    upload_order=DEFAULT_UPLOAD_ORDER,
)


def get_document_requirement_catalog() -> DocumentRequirementCatalog:
    """Dependency to get the active document requirement catalog"""
    return default_catalog
