from fastapi import APIRouter

from .shared import shared_router
from .staff import staff_router
from .student import student_router

main_router = APIRouter()

main_router.include_router(shared_router, prefix="/shared")
main_router.include_router(staff_router, prefix="/staff")
main_router.include_router(student_router, prefix="/student")
