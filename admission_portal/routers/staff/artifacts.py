from typing import Annotated

from fastapi import APIRouter, Depends, Path, Request, status

from admission_portal.middlewares.actor_dependencies import require_staff
from admission_portal.schemas.staff.review_request_schemas import ArtifactRequest
from admission_portal.services.application_summary_service import (
    ApplicationSummaryService,
    get_application_summary_service,
)
from admission_portal.services.application_workflow_service import (
    ApplicationWorkflowService,
    get_application_workflow_service,
)
from admission_portal.services.artifact_service import (
    ArtifactAssembler,
    get_artifact_assembler,
)
from admission_portal.utils.responses import ResponseBuilder

artifacts_router = APIRouter(dependencies=[Depends(require_staff)])

ApplicationId = Annotated[str, Path(description="Application ID")]


def _artifact_message(kind: str, included: int, skipped: int) -> str:
    message = f"{kind} generated with {included} document{'s' if included != 1 else ''}"
    if skipped:
        message += f", {skipped} skipped"
    return message


@artifacts_router.post(
    "/{application_id}/combined-pdf",
    status_code=status.HTTP_201_CREATED,
    summary="Merge approved documents into one PDF",
    description="Every call regenerates the PDF; documents that cannot be fetched are skipped",
)
async def generate_combined_pdf(
    request: Request,
    application_id: ApplicationId,
    body: ArtifactRequest,
    workflow_service: ApplicationWorkflowService = Depends(
        get_application_workflow_service
    ),
    assembler: ArtifactAssembler = Depends(get_artifact_assembler),
):
    application = await workflow_service.get_application(application_id)
    artifact = await assembler.assemble_combined_pdf(application, body.document_refs)
    return ResponseBuilder.with_warnings(
        request=request,
        data=artifact.model_dump(by_alias=True),
        message=_artifact_message(
            "Combined PDF",
            len(artifact.included_documents),
            len(artifact.skipped_documents),
        ),
        warnings=[
            f"{skipped.document_type}: {skipped.reason}"
            for skipped in artifact.skipped_documents
        ],
        status_code=status.HTTP_201_CREATED,
    )


@artifacts_router.post(
    "/{application_id}/documents-zip",
    status_code=status.HTTP_201_CREATED,
    summary="Pack approved documents into a ZIP archive",
)
async def generate_documents_zip(
    request: Request,
    application_id: ApplicationId,
    body: ArtifactRequest,
    workflow_service: ApplicationWorkflowService = Depends(
        get_application_workflow_service
    ),
    assembler: ArtifactAssembler = Depends(get_artifact_assembler),
):
    application = await workflow_service.get_application(application_id)
    artifact = await assembler.assemble_zip(application, body.document_refs)
    return ResponseBuilder.with_warnings(
        request=request,
        data=artifact.model_dump(by_alias=True),
        message=_artifact_message(
            "ZIP archive",
            len(artifact.included_documents),
            len(artifact.skipped_documents),
        ),
        warnings=[
            f"{skipped.document_type}: {skipped.reason}"
            for skipped in artifact.skipped_documents
        ],
        status_code=status.HTTP_201_CREATED,
    )


@artifacts_router.post(
    "/{application_id}/summary-pdf",
    status_code=status.HTTP_201_CREATED,
    summary="Generate the application form PDF",
    description="The stored form is added to every later documents ZIP",
)
async def generate_summary_pdf(
    request: Request,
    application_id: ApplicationId,
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
