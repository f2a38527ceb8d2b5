"""Job endpoints: snapshot, legal actions, start, claim completion."""

from fastapi import APIRouter

from gigescrow.api.deps import Actions, CurrentActor, Ledger, OptionalActor
from gigescrow.orchestration.state_machine import (
    available_actions,
    can_claim_completion,
    can_start,
    can_submit,
)
from gigescrow.schemas.job import ActionResponse, JobActionsResponse, JobResponse

router = APIRouter()


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, ledger: Ledger):
    """Fetch the job snapshot from the ledger."""
    job = await ledger.fetch_job(job_id)
    return JobResponse.from_job(job)


@router.get("/{job_id}/actions", response_model=JobActionsResponse)
async def get_job_actions(job_id: str, ledger: Ledger, actor: OptionalActor):
    """Actions the calling actor may take on the job right now."""
    job = await ledger.fetch_job(job_id)
    return JobActionsResponse(
        can_start=can_start(job, actor),
        can_submit=can_submit(job, actor),
        can_claim_completion=can_claim_completion(job, actor),
        actions=[a.value for a in available_actions(job, actor)],
    )


@router.post("/{job_id}/start", response_model=ActionResponse)
async def start_job(job_id: str, actor: CurrentActor, actions: Actions):
    """Start an assigned job. Returns once the transaction is confirmed."""
    result = await actions.start_job(job_id, actor)
    return ActionResponse(action=result.action.value, digest=result.digest, job=JobResponse.from_job(result.job))


@router.post("/{job_id}/claim-completion", response_model=ActionResponse)
async def claim_completion(job_id: str, actor: CurrentActor, actions: Actions):
    """Claim a pending job completion."""
    result = await actions.claim_completion(job_id, actor)
    return ActionResponse(action=result.action.value, digest=result.digest, job=JobResponse.from_job(result.job))
