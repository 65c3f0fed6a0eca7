from fastapi import APIRouter, Depends, Request

from admission_portal.config.document_requirements import (
    DocumentRequirementCatalog,
    get_document_requirement_catalog,
)
from admission_portal.utils.responses import ResponseBuilder

document_requirements_router = APIRouter()


@document_requirements_router.get(
    "",
    summary="List document requirements",
    description="Required and optional documents with their formats, size limits and upload order",
)
async def list_document_requirements(
    request: Request,
    catalog: DocumentRequirementCatalog = Depends(get_document_requirement_catalog),
):
    return ResponseBuilder.success(
        request=request,
        data=catalog.to_response().model_dump(by_alias=True),
        message=f"Retrieved {len(catalog)} document requirements",
        meta={"catalog_version": catalog.version},
    )
