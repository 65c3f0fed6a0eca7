from fastapi import APIRouter

from .health import health_router
from .document_requirements import document_requirements_router

shared_router = APIRouter()

# Include sub-routers
shared_router.include_router(
    health_router, prefix="/health", tags=["Shared - Health Checks"]
)
shared_router.include_router(
    document_requirements_router,
    prefix="/document-requirements",
    tags=["Shared - Document Requirements"],
)
