"""
API Routes
"""

from fastapi import APIRouter

from .assessments import router as assessments_router

api_router = APIRouter()

api_router.include_router(assessments_router, prefix="/assessments", tags=["Assessments"])
