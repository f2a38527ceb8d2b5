"""Job schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from gigescrow.kernel.models.job import Job, Milestone


class DeliverableInfo(BaseModel):
    content_id: str
    preview_reference: Optional[str] = None
    original_filename: Optional[str] = None


class MilestoneResponse(BaseModel):
    id: int
    description: str
    amount: int
    status: str
    deliverable: Optional[DeliverableInfo] = None
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None

    @classmethod
    def from_milestone(cls, m: Milestone) -> "MilestoneResponse":
        deliverable = None
        if m.deliverable is not None:
            deliverable = DeliverableInfo(
                content_id=m.deliverable.content_id,
                preview_reference=m.deliverable.preview_reference,
                original_filename=m.deliverable.original_filename,
            )
        return cls(
            id=m.id,
            description=m.description,
            amount=m.amount,
            status=m.status.value,
            deliverable=deliverable,
            submitted_at=m.submitted_at,
            approved_at=m.approved_at,
        )


class JobResponse(BaseModel):
    """Job snapshot as read from the ledger."""

    id: str
    title: str
    budget: int
    deadline: datetime
    client: str
    worker: Optional[str] = None
    state: str
    pending_completion: bool = False
    milestones: List[MilestoneResponse]

    @classmethod
    def from_job(cls, job: Job) -> "JobResponse":
        return cls(
            id=job.id,
            title=job.title,
            budget=job.budget,
            deadline=job.deadline,
            client=job.client,
            worker=job.worker,
            state=job.state.name,
            pending_completion=job.has_pending_completion,
            milestones=[MilestoneResponse.from_milestone(m) for m in job.milestones],
        )


class JobActionsResponse(BaseModel):
    """What the calling actor may do with a job right now."""

    can_start: bool
    can_submit: bool
    can_claim_completion: bool
    actions: List[str]


class ActionResponse(BaseModel):
    """A confirmed job action and the re-fetched job."""

    action: str
    digest: str
    job: JobResponse
