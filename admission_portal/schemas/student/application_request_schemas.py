from typing import Optional

from pydantic import Field

from admission_portal.schemas.camel_base_model import CamelCaseBaseModel as BaseModel
from admission_portal.services.workflow.operations import ApplicationDraftUpdate


class CreateApplicationRequest(ApplicationDraftUpdate):
    user_id: Optional[str] = Field(
        None, description="Student the application is for; required for agents and staff"
    )

    def to_draft_update(self) -> ApplicationDraftUpdate:
        return ApplicationDraftUpdate.model_validate(
            self.model_dump(exclude={"user_id"})
        )


class SaveDraftRequest(ApplicationDraftUpdate):
    """Any subset of the application; documents may be a list or a type-keyed object."""


class SubmitApplicationRequest(BaseModel):
    terms_accepted: bool = Field(
        False, description="Whether the terms and conditions are accepted now"
    )


class WithdrawApplicationRequest(BaseModel):
    reason: Optional[str] = Field(None, description="Why the application is withdrawn")


class ResubmitApplicationRequest(BaseModel):
    reason: Optional[str] = Field(None, description="What changed since the rejection")
