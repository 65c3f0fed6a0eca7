from fastapi import APIRouter

from .applications import review_router
from .artifacts import artifacts_router

staff_router = APIRouter()

# Include sub-routers
staff_router.include_router(
    review_router, prefix="/applications", tags=["Staff - Application Review"]
)
staff_router.include_router(
    artifacts_router, prefix="/applications", tags=["Staff - Document Artifacts"]
)
