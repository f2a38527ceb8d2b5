"""
API v1 routes.
"""

from fastapi import APIRouter

from gigescrow.api.v1 import deliverables, jobs

router = APIRouter()

router.include_router(jobs.router, prefix="/jobs", tags=["Jobs"])
router.include_router(deliverables.router, tags=["Deliverables"])
