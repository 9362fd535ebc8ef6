"""APIRouter registration for the assessment engine."""

from __future__ import annotations

from fastapi import APIRouter

from assessment_engine.routes.assessments import router as assessments_router

api_router = APIRouter()
api_router.include_router(assessments_router)

__all__ = ["api_router"]
