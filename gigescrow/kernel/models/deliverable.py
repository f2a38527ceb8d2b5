"""
Deliverable input and submission records.

A DeliverableSubmission is built by the orchestrator from the outputs of the
encryption, upload and submission steps. It is immutable, lives only in
memory, and is handed back to the caller once the milestone-submission
transaction has confirmed.
"""

from dataclasses import dataclass, field
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class DeliverableFile:
    """File supplied by the worker. The filename is display metadata only."""

    filename: str
    content: bytes = field(repr=False)
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)


class DeliverableSubmission(BaseModel):
    """Confirmed deliverable submission for one milestone."""

    model_config = ConfigDict(frozen=True)

    content_id: str = Field(..., min_length=1)
    preview_reference: str
    access_list_id: str
    capability_id: str
    nonce: str = Field(..., min_length=1)
    original_filename: str
    original_file_size: int = Field(..., ge=0)
    registration_digest: str
    submission_digest: str
