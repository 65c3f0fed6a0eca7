from typing import FrozenSet, List, Optional

from pydantic import ConfigDict, Field

from admission_portal.schemas.camel_base_model import CamelCaseBaseModel


class AspectRatio(CamelCaseBaseModel):
    model_config = ConfigDict(frozen=True)

    width: int
    height: int
    tolerance: float = 0.1

    @property
    def ratio(self) -> float:
        return self.width / self.height


class DocumentRequirement(CamelCaseBaseModel):
    """One entry of the document requirement catalog."""

    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    description: str = ""
    help_text: str = ""
    required: bool = False
    allowed_formats: FrozenSet[str] = Field(
        default_factory=lambda: frozenset({"jpg", "jpeg", "png", "pdf"})
    )
    max_size_bytes: int = 10 * 1024 * 1024
    max_age_years: Optional[float] = None
    aspect_ratio: Optional[AspectRatio] = None
    min_width: Optional[int] = None
    min_height: Optional[int] = None
    category: str = "general"


class CustomDocumentPolicy(CamelCaseBaseModel):
    """Rules for uploads whose type is not a catalog key."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    max_custom_documents: int = 5
    allowed_formats: FrozenSet[str] = Field(
        default_factory=lambda: frozenset({"jpg", "jpeg", "png", "pdf"})
    )
    max_size_bytes: int = 10 * 1024 * 1024
    label_required: bool = True
    max_label_length: int = 50


class DocumentRequirementCatalogResponse(CamelCaseBaseModel):
    version: str
    required: List[DocumentRequirement]
    optional: List[DocumentRequirement]
    custom: CustomDocumentPolicy
    upload_order: List[str]
