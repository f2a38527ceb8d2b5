"""Deliverable schemas."""

import base64
import binascii
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from gigescrow.kernel.models.deliverable import DeliverableSubmission
from gigescrow.schemas.job import JobResponse


class DeliverableSubmitRequest(BaseModel):
    """Upload a milestone deliverable. The file travels base64-encoded."""

    preview_url: str = Field(..., max_length=2048)
    filename: str = Field(..., min_length=1, max_length=255)
    content_base64: str = Field(..., min_length=1)
    content_type: Optional[str] = Field(None, max_length=255)

    @field_validator("content_base64")
    @classmethod
    def validate_base64(cls, v: str) -> str:
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("content_base64 is not valid base64")
        return v

    def content(self) -> bytes:
        return base64.b64decode(self.content_base64)


class DeliverableSubmitResponse(BaseModel):
    submission: DeliverableSubmission
    job: JobResponse


class DeliverableDownloadResponse(BaseModel):
    filename: str
    content_base64: str
    size: int
