from typing import Annotated

from fastapi import APIRouter, Depends, Path, Request, status

from admission_portal.middlewares.actor_dependencies import require_staff
from admission_portal.schemas.application_schemas import Actor
from admission_portal.schemas.staff.review_request_schemas import (
    ApproveApplicationRequest,
    DocumentDecisionsRequest,
    RejectApplicationRequest,
    RequestResubmissionRequest,
)
from admission_portal.services.application_workflow_service import (
    ApplicationWorkflowService,
    get_application_workflow_service,
)
from admission_portal.utils.responses import ResponseBuilder

review_router = APIRouter(dependencies=[Depends(require_staff)])

ApplicationId = Annotated[str, Path(description="Application ID")]


@review_router.get(
    "/{application_id}/review",
    summary="Review summary of an application",
    description="Document counts, overall review status and the active documents with their decisions",
)
async def get_review_summary(
    request: Request,
    application_id: ApplicationId,
    workflow_service: ApplicationWorkflowService = Depends(
        get_application_workflow_service
    ),
):
    summary = await workflow_service.get_review_summary(application_id)
    return ResponseBuilder.success(
        request=request,
        data=summary.model_dump(by_alias=True),
        message=f"Review summary for {application_id}",
    )


@review_router.post(
    "/{application_id}/documents/decisions",
    status_code=status.HTTP_200_OK,
    summary="Approve or reject individual documents",
)
async def decide_documents(
    request: Request,
    application_id: ApplicationId,
    body: DocumentDecisionsRequest,
    actor: Actor = Depends(require_staff),
    workflow_service: ApplicationWorkflowService = Depends(
        get_application_workflow_service
    ),
):
    application, outcome = await workflow_service.decide_documents(
        application_id, actor, body.decisions
    )
    warnings = [
        f"no active document matches '{reference}'"
        for reference in outcome.unmatched_references
    ]
    counts = outcome.aggregate.document_counts
    return ResponseBuilder.with_warnings(
        request=request,
        data={
            "application": application.model_dump(by_alias=True),
            "updatedDocumentIds": outcome.updated_document_ids,
            "aggregate": outcome.aggregate.model_dump(by_alias=True),
        },
        message=(
            f"Recorded {len(outcome.updated_document_ids)} decision"
            f"{'s' if len(outcome.updated_document_ids) != 1 else ''}: "
            f"{counts.approved} approved, {counts.rejected} rejected, "
            f"{counts.pending} pending"
        ),
        warnings=warnings,
    )


@review_router.post("/{application_id}/approve", summary="Approve an application")
async def approve_application(
    request: Request,
    application_id: ApplicationId,
    body: ApproveApplicationRequest,
    actor: Actor = Depends(require_staff),
    workflow_service: ApplicationWorkflowService = Depends(
        get_application_workflow_service
    ),
):
    application = await workflow_service.approve(application_id, actor, body.remarks)
    return ResponseBuilder.success(
        request=request,
        data=application.model_dump(by_alias=True),
        message="Application approved",
    )


@review_router.post("/{application_id}/reject", summary="Reject an application")
async def reject_application(
    request: Request,
    application_id: ApplicationId,
    body: RejectApplicationRequest,
    actor: Actor = Depends(require_staff),
    workflow_service: ApplicationWorkflowService = Depends(
        get_application_workflow_service
    ),
):
    application = await workflow_service.reject(
        application_id,
        actor,
        body.rejection_reason,
        remarks=body.remarks,
        rejection_message=body.rejection_message,
    )
    return ResponseBuilder.success(
        request=request,
        data=application.model_dump(by_alias=True),
        message="Application rejected",
    )


@review_router.post(
    "/{application_id}/request-resubmission",
    summary="Send an application back for corrections",
)
async def request_resubmission(
    request: Request,
    application_id: ApplicationId,
    body: RequestResubmissionRequest,
    actor: Actor = Depends(require_staff),
    workflow_service: ApplicationWorkflowService = Depends(
        get_application_workflow_service
    ),
):
    application = await workflow_service.request_resubmission(
        application_id, actor, body.remarks
    )
    return ResponseBuilder.success(
        request=request,
        data=application.model_dump(by_alias=True),
        message="Resubmission requested",
    )
