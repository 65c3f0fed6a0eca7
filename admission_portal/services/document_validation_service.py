from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import Field
from pydantic import ValidationError as PydanticValidationError

from admission_portal.config.document_requirements import DocumentRequirementCatalog
from admission_portal.schemas.application_schemas import UploadedDocument
from admission_portal.schemas.camel_base_model import CamelCaseBaseModel
from admission_portal.schemas.document_requirement_schemas import DocumentRequirement
from admission_portal.utils.datetime_utils import age_in_years, utc_now
from admission_portal.utils.errors import ValidationError
from admission_portal.utils.string_utils import file_extension

DocumentsInput = Union[
    Sequence[Union[UploadedDocument, Dict[str, Any]]],
    Mapping[str, Optional[Dict[str, Any]]],
]

_LOCATOR_KEYS = (
    "storage_locator",
    "storageLocator",
    "file_path",
    "filePath",
    "url",
    "secure_url",
    "secureUrl",
)


class DocumentValidationResult(CamelCaseBaseModel):
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _format_size(size_bytes: int) -> str:
    return f"{size_bytes / (1024 * 1024):.1f} MB"


def _resolve_locator(entry: Mapping[str, Any]) -> Optional[str]:
    for key in _LOCATOR_KEYS:
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _mapping_entry_data(
    document_type: str, entry: Mapping[str, Any], locator: str
) -> Dict[str, Any]:
    data = {
        key: value
        for key, value in entry.items()
        if key not in _LOCATOR_KEYS and value is not None
    }
    data["document_type"] = document_type
    data["storage_locator"] = locator
    data.setdefault("file_name", data.pop("fileName", None) or locator.rsplit("/", 1)[-1])
    for alias in ("size", "fileSize"):
        if alias in data and "size_bytes" not in data and "sizeBytes" not in data:
            data["size_bytes"] = data.pop(alias)
    data.pop("documentType", None)
    return data


def _describe_errors(document_type: Any, error: PydanticValidationError) -> List[str]:
    label = document_type or "unknown"
    return [
        f"document '{label}': {'.'.join(str(part) for part in detail['loc']) or 'entry'} "
        f"{detail['msg'].lower()}"
        for detail in error.errors()
    ]


def _parse_document(
    document_type: Any, data: Any, errors: List[str]
) -> Optional[UploadedDocument]:
    try:
        return UploadedDocument.model_validate(data)
    except PydanticValidationError as e:
        errors.extend(_describe_errors(document_type, e))
        return None


def normalize_documents(
    documents: Optional[DocumentsInput],
) -> Tuple[List[UploadedDocument], List[str]]:
    """
    Turn either accepted document shape into an ordered list of documents.

    The list form is taken as-is. In the type-keyed mapping form, entries without a
    resolvable storage locator are treated as absent and reported as warnings.

    Returns:
        (documents, warnings)

    Raises:
        ValidationError: If an entry is malformed, naming every bad entry
    """
    if not documents:
        return [], []

    normalized: List[UploadedDocument] = []
    warnings: List[str] = []
    errors: List[str] = []

    if isinstance(documents, Mapping):
        for document_type, entry in documents.items():
            if isinstance(entry, UploadedDocument):
                normalized.append(entry)
                continue
            locator = _resolve_locator(entry) if isinstance(entry, Mapping) else None
            if not locator:
                warnings.append(
                    f"document '{document_type}' has no storage locator and was ignored"
                )
                continue
            document = _parse_document(
                document_type,
                _mapping_entry_data(document_type, entry, locator),
                errors,
            )
            if document is not None:
                normalized.append(document)
    else:
        for entry in documents:
            if isinstance(entry, UploadedDocument):
                normalized.append(entry)
                continue
            document_type = (
                entry.get("documentType") or entry.get("document_type")
                if isinstance(entry, Mapping)
                else None
            )
            document = _parse_document(document_type, entry, errors)
            if document is not None:
                normalized.append(document)

    if errors:
        raise ValidationError("Invalid document data", errors=errors, warnings=warnings)
    return normalized, warnings


def _check_format_and_size(
    label: str,
    document: UploadedDocument,
    allowed_formats,
    max_size_bytes: int,
    errors: List[str],
) -> None:
    extension = file_extension(document.file_name)
    if extension not in allowed_formats:
        shown = f".{extension}" if extension else "no extension"
        errors.append(
            f"invalid format for {label}: {shown} "
            f"(allowed: {', '.join(sorted(allowed_formats))})"
        )
    if document.size_bytes > max_size_bytes:
        errors.append(
            f"file too large for {label}: {_format_size(document.size_bytes)} "
            f"exceeds {_format_size(max_size_bytes)} limit"
        )


def _check_age(
    requirement: DocumentRequirement,
    document: UploadedDocument,
    now: datetime,
    warnings: List[str],
) -> None:
    if requirement.max_age_years is None:
        return
    issued = document.document_date or document.uploaded_at
    if issued is None:
        return
    if age_in_years(issued, now) > requirement.max_age_years:
        years = requirement.max_age_years
        unit = "year" if years == 1 else "years"
        warnings.append(f"{requirement.label} is older than {years:g} {unit}")


def _check_image_dimensions(
    requirement: DocumentRequirement,
    document: UploadedDocument,
    warnings: List[str],
) -> None:
    width, height = document.image_width, document.image_height
    if not width or not height:
        return
    if (requirement.min_width and width < requirement.min_width) or (
        requirement.min_height and height < requirement.min_height
    ):
        warnings.append(
            f"{requirement.label} resolution {width}x{height} is below "
            f"{requirement.min_width or 0}x{requirement.min_height or 0}"
        )
    ratio = requirement.aspect_ratio
    if ratio and abs(width / height - ratio.ratio) > ratio.tolerance:
        warnings.append(
            f"{requirement.label} should have a {ratio.width}:{ratio.height} aspect ratio"
        )


def validate_documents(
    catalog: DocumentRequirementCatalog,
    documents: Optional[DocumentsInput],
    now: Optional[datetime] = None,
) -> DocumentValidationResult:
    """
    Check a document set against the requirement catalog.
    Missing required documents and rule violations are errors; stale
    certificates and badly proportioned photos are warnings. Only active
    documents take part. Nothing is mutated.
    """
    now = now or utc_now()
    normalized, warnings = normalize_documents(documents)
    active = [document for document in normalized if document.is_active]
    errors: List[str] = []

    present_types = {document.document_type for document in active}
    for requirement in catalog.required_requirements():
        if requirement.key not in present_types:
            errors.append(f"missing required document: {requirement.label}")

    custom_documents: List[UploadedDocument] = []
    for document in active:
        requirement = catalog.get(document.document_type)
        if requirement is None:
            custom_documents.append(document)
            continue
        _check_format_and_size(
            requirement.label,
            document,
            requirement.allowed_formats,
            requirement.max_size_bytes,
            errors,
        )
        _check_age(requirement, document, now, warnings)
        _check_image_dimensions(requirement, document, warnings)

    policy = catalog.custom_policy
    if custom_documents and not policy.enabled:
        for document in custom_documents:
            errors.append(f"unknown document type: {document.document_type}")
        return DocumentValidationResult(errors=errors, warnings=warnings)

    if len(custom_documents) > policy.max_custom_documents:
        errors.append(
            f"too many custom documents: {len(custom_documents)} "
            f"(maximum {policy.max_custom_documents})"
        )
    for document in custom_documents:
        label = (document.custom_label or "").strip()
        if policy.label_required and not label:
            errors.append(f"custom document '{document.document_type}' requires a label")
        elif len(label) > policy.max_label_length:
            errors.append(
                f"custom document label is longer than {policy.max_label_length} "
                f"characters: {label[:policy.max_label_length]}..."
            )
        _check_format_and_size(
            catalog.label_for(document.document_type, label),
            document,
            policy.allowed_formats,
            policy.max_size_bytes,
            errors,
        )

    return DocumentValidationResult(errors=errors, warnings=warnings)
