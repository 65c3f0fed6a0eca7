from typing import List, Optional

from pydantic import Field

from admission_portal.schemas.application_schemas import DocumentDecision
from admission_portal.schemas.camel_base_model import CamelCaseBaseModel as BaseModel


class DocumentDecisionsRequest(BaseModel):
    decisions: List[DocumentDecision] = Field(
        ..., description="One decision per document, addressed by id or type"
    )


class ApproveApplicationRequest(BaseModel):
    remarks: Optional[str] = Field(None, description="Approval remarks")


class RejectApplicationRequest(BaseModel):
    rejection_reason: str = Field(..., description="Reason shown to the student")
    remarks: Optional[str] = Field(None, description="Internal remarks")
    rejection_message: Optional[str] = Field(
        None, description="Optional longer message for the student"
    )


class RequestResubmissionRequest(BaseModel):
    remarks: str = Field(..., description="What the student has to correct")


class ArtifactRequest(BaseModel):
    document_refs: Optional[List[str]] = Field(
        None,
        description="Document ids or types to include; all approved documents when omitted",
    )
