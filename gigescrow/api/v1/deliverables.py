"""Milestone deliverable endpoints."""

import base64

from fastapi import APIRouter, Path

from gigescrow.api.deps import Actions, CurrentActor, Ledger, Retrieval
from gigescrow.kernel.models.deliverable import DeliverableFile
from gigescrow.schemas.deliverable import (
    DeliverableDownloadResponse,
    DeliverableSubmitRequest,
    DeliverableSubmitResponse,
)
from gigescrow.schemas.job import JobResponse

router = APIRouter()


@router.post(
    "/jobs/{job_id}/milestones/{milestone_id}/deliverable",
    response_model=DeliverableSubmitResponse,
)
async def submit_deliverable(
    job_id: str,
    data: DeliverableSubmitRequest,
    actor: CurrentActor,
    actions: Actions,
    milestone_id: int = Path(..., ge=0),
):
    """
    Encrypt, store and record a milestone deliverable.

    Responds only after the milestone-submission transaction is confirmed.
    A client disconnect does not abort a submission that has started encrypting.
    """
    file = DeliverableFile(
        filename=data.filename,
        content=data.content(),
        content_type=data.content_type,
    )
    result = await actions.submit_deliverable(job_id, milestone_id, file, data.preview_url, actor)
    return DeliverableSubmitResponse(submission=result.submission, job=JobResponse.from_job(result.job))


@router.post(
    "/jobs/{job_id}/milestones/{milestone_id}/deliverable/download",
    response_model=DeliverableDownloadResponse,
)
async def download_deliverable(
    job_id: str,
    actor: CurrentActor,
    ledger: Ledger,
    retrieval: Retrieval,
    milestone_id: int = Path(..., ge=0),
):
    """Decrypt an approved milestone's deliverable for the job's client."""
    job = await ledger.fetch_job(job_id)
    file = await retrieval.fetch(job, milestone_id, actor)
    return DeliverableDownloadResponse(
        filename=file.filename,
        content_base64=base64.b64encode(file.content).decode("ascii"),
        size=file.size,
    )
