from io import BytesIO
from typing import Annotated

from fastapi import APIRouter, Depends, Path, Request, status
from fastapi.responses import StreamingResponse

from admission_portal.middlewares.actor_dependencies import require_applicant
from admission_portal.schemas.application_schemas import Actor
from admission_portal.schemas.student.application_request_schemas import (
    CreateApplicationRequest,
    ResubmitApplicationRequest,
    SaveDraftRequest,
    SubmitApplicationRequest,
    WithdrawApplicationRequest,
)
from admission_portal.services.application_summary_service import (
    ApplicationSummaryService,
    get_application_summary_service,
)
from admission_portal.services.application_workflow_service import (
    ApplicationWorkflowService,
    get_application_workflow_service,
)
from admission_portal.utils.responses import ResponseBuilder

applications_router = APIRouter()

ApplicationId = Annotated[str, Path(description="Application ID, e.g. APP24123456")]


@applications_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Start a new application",
)
async def create_application(
    request: Request,
    body: CreateApplicationRequest,
    actor: Actor = Depends(require_applicant),
    workflow_service: ApplicationWorkflowService = Depends(
        get_application_workflow_service
    ),
):
    application = await workflow_service.create_application(
        actor, update=body.to_draft_update(), user_id=body.user_id
    )
    return ResponseBuilder.success(
        request=request,
        data=application.model_dump(by_alias=True),
        message=f"Application {application.application_id} created",
        status_code=status.HTTP_201_CREATED,
    )


@applications_router.get("/{application_id}", summary="Get an application")
async def get_application(
    request: Request,
    application_id: ApplicationId,
    actor: Actor = Depends(require_applicant),
    workflow_service: ApplicationWorkflowService = Depends(
        get_application_workflow_service
    ),
):
    application = await workflow_service.get_application(application_id)
    return ResponseBuilder.success(
        request=request,
        data=application.model_dump(by_alias=True),
        message="Application retrieved",
    )


@applications_router.patch(
    "/{application_id}/draft",
    summary="Save part of the application",
    description="Merge partial details, documents or terms into a draft application",
)
async def save_draft(
    request: Request,
    application_id: ApplicationId,
    body: SaveDraftRequest,
    actor: Actor = Depends(require_applicant),
    workflow_service: ApplicationWorkflowService = Depends(
        get_application_workflow_service
    ),
):
    application, warnings = await workflow_service.save_draft(
        application_id, actor, body
    )
    return ResponseBuilder.with_warnings(
        request=request,
        data=application.model_dump(by_alias=True),
        message="Draft saved",
        warnings=warnings,
    )


@applications_router.post(
    "/{application_id}/submit",
    summary="Submit the application for review",
)
async def submit_application(
    request: Request,
    application_id: ApplicationId,
    body: SubmitApplicationRequest,
    actor: Actor = Depends(require_applicant),
    workflow_service: ApplicationWorkflowService = Depends(
        get_application_workflow_service
    ),
):
    application, result = await workflow_service.submit(
        application_id, actor, terms_accepted=body.terms_accepted
    )
    return ResponseBuilder.with_warnings(
        request=request,
        data=application.model_dump(by_alias=True),
        message="Application submitted",
        warnings=result.warnings,
    )


@applications_router.post(
    "/{application_id}/withdraw",
    summary="Withdraw the application",
)
async def withdraw_application(
    request: Request,
    application_id: ApplicationId,
    body: WithdrawApplicationRequest,
    actor: Actor = Depends(require_applicant),
    workflow_service: ApplicationWorkflowService = Depends(
        get_application_workflow_service
    ),
):
    application = await workflow_service.withdraw(application_id, actor, body.reason)
    return ResponseBuilder.success(
        request=request,
        data=application.model_dump(by_alias=True),
        message="Application withdrawn",
    )


@applications_router.post(
    "/{application_id}/resubmit",
    summary="Resubmit a rejected application",
)
async def resubmit_application(
    request: Request,
    application_id: ApplicationId,
    body: ResubmitApplicationRequest,
    actor: Actor = Depends(require_applicant),
    workflow_service: ApplicationWorkflowService = Depends(
        get_application_workflow_service
    ),
):
    application, result = await workflow_service.resubmit(
        application_id, actor, body.reason
    )
    return ResponseBuilder.with_warnings(
        request=request,
        data=application.model_dump(by_alias=True),
        message="Application resubmitted",
        warnings=result.warnings,
    )


@applications_router.post(
    "/{application_id}/summary-pdf",
    status_code=status.HTTP_201_CREATED,
    summary="Generate the printable application form",
    description="Renders the application form PDF, stores it and records its locator",
)
async def generate_summary_pdf(
    request: Request,
    application_id: ApplicationId,
    actor: Actor = Depends(require_applicant),
    workflow_service: ApplicationWorkflowService = Depends(
        get_application_workflow_service
    ),
    summary_service: ApplicationSummaryService = Depends(
        get_application_summary_service
    ),
):
    application = await workflow_service.get_application(application_id)
    artifact = await summary_service.generate(application)
    return ResponseBuilder.success(
        request=request,
        data=artifact.model_dump(by_alias=True),
        message="Application form generated",
        status_code=status.HTTP_201_CREATED,
    )


@applications_router.get(
    "/{application_id}/summary-pdf",
    summary="Preview the printable application form",
    response_class=StreamingResponse,
)
async def preview_summary_pdf(
    application_id: ApplicationId,
    actor: Actor = Depends(require_applicant),
    workflow_service: ApplicationWorkflowService = Depends(
        get_application_workflow_service
    ),
    summary_service: ApplicationSummaryService = Depends(
        get_application_summary_service
    ),
):
    application = await workflow_service.get_application(application_id)
    data = await summary_service.render(application)
    return StreamingResponse(
        BytesIO(data),
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'inline; filename="application_{application_id}.pdf"'
        },
    )
