from fastapi import APIRouter

from .applications import applications_router

student_router = APIRouter()

# Include sub-routers
student_router.include_router(
    applications_router, prefix="/applications", tags=["Student - Applications"]
)
