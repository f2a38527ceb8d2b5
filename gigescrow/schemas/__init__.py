"""
Pydantic schemas for API request/response validation.
"""

from gigescrow.schemas.common import ErrorResponse, HealthResponse
from gigescrow.schemas.deliverable import (
    DeliverableDownloadResponse,
    DeliverableSubmitRequest,
    DeliverableSubmitResponse,
)
from gigescrow.schemas.job import ActionResponse, JobActionsResponse, JobResponse, MilestoneResponse

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "DeliverableDownloadResponse",
    "DeliverableSubmitRequest",
    "DeliverableSubmitResponse",
    "ActionResponse",
    "JobActionsResponse",
    "JobResponse",
    "MilestoneResponse",
]
