"""
API v1 - REST endpoints for budgets, costs and cost analysis.
"""
from fastapi import APIRouter

from .projects import router as projects_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(projects_router, prefix="/projects", tags=["Cost Control"])
