"""
Common schema types used across the API.
"""

from typing import Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Error body for failed submissions and job actions."""

    detail: str
    stage: Optional[str] = None
    tag: Optional[str] = None
    retry: Optional[str] = None
    digest: Optional[str] = None
    request_id: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str
    network: str
