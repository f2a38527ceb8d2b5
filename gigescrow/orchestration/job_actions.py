"""
Worker-side job actions.

Each action follows the same loop: fetch the authoritative snapshot, gate it
with the state machine, execute one transaction, re-fetch, and reconcile the
re-fetched state against the action. Nothing is updated optimistically.

The actor's orchestrator (and the signer behind its executor) is leased only
once the gate has passed, so refused requests never build one.
"""

from typing import AsyncContextManager, Callable, Optional

from pydantic import BaseModel

from gigescrow.kernel.ledger import transactions
from gigescrow.kernel.ledger.client import LedgerReader
from gigescrow.kernel.ledger.errors import (
    ConfirmationTimeoutError,
    LedgerQueryError,
    SignerRejectedError,
    TransactionFailedError,
)
from gigescrow.kernel.ledger.executor import TransactionExecutor, TransactionResult
from gigescrow.kernel.ledger.transactions import TransactionPayload
from gigescrow.kernel.models.deliverable import DeliverableFile, DeliverableSubmission
from gigescrow.kernel.models.job import Job
from gigescrow.logging_config import get_logger
from gigescrow.orchestration.deliverable_orchestrator import DeliverableOrchestrator, check_submitter
from gigescrow.orchestration.errors import (
    ConfirmationAmbiguousError,
    ConfirmedUnverifiedError,
    SubmissionValidationError,
    TransactionRejectedError,
)
from gigescrow.orchestration.progress import ProgressCallback, ProgressReporter
from gigescrow.orchestration.state_machine import (
    JobAction,
    StateReconciliationError,
    can_claim_completion,
    can_start,
    reconcile,
)

logger = get_logger(__name__)

# Yields the acting worker's orchestrator for the duration of one action
OrchestratorLease = Callable[[], AsyncContextManager[DeliverableOrchestrator]]


class ActionResult(BaseModel):
    """A confirmed action and the job as the ledger now reports it."""

    action: JobAction
    digest: str
    job: Job


class SubmissionResult(BaseModel):
    submission: DeliverableSubmission
    job: Job


class JobActions:
    """
    Service wiring the state machine to the ledger for one actor at a time.

    Usage:
        actions = JobActions(ledger, lambda: registry.lease(actor), package_id=pkg)
        result = await actions.start_job(job_id, actor)
    """

    def __init__(
        self,
        ledger: LedgerReader,
        lease: OrchestratorLease,
        *,
        package_id: str,
        clock_id: str = "0x6",
    ):
        self.ledger = ledger
        self.lease = lease
        self.package_id = package_id
        self.clock_id = clock_id

    async def start_job(self, job_id: str, actor: str) -> ActionResult:
        """ASSIGNED -> IN_PROGRESS. The worker must have a registered profile."""
        job = await self.ledger.fetch_job(job_id)
        if not can_start(job, actor):
            raise SubmissionValidationError(
                f"Job {job_id} cannot be started by this actor (state {job.state.name})",
                stage=JobAction.START.value,
            )
        profile = await self.ledger.fetch_profile(actor)
        if profile is None:
            raise SubmissionValidationError(
                "A registered profile is required to start a job",
                stage=JobAction.START.value,
            )

        payload = transactions.start_job(
            self.package_id, job_id=job.id, profile_id=profile.id, clock_id=self.clock_id
        )
        return await self._execute_and_reconcile(JobAction.START, job_id, payload)

    async def claim_completion(self, job_id: str, actor: str) -> ActionResult:
        """Clear the pending-completion flag on a COMPLETED job."""
        job = await self.ledger.fetch_job(job_id)
        if not can_claim_completion(job, actor):
            raise SubmissionValidationError(
                f"Job {job_id} has no completion for this actor to claim",
                stage=JobAction.CLAIM_COMPLETION.value,
            )
        profile = await self.ledger.fetch_profile(actor)
        if profile is None:
            raise SubmissionValidationError(
                "A registered profile is required to claim completion",
                stage=JobAction.CLAIM_COMPLETION.value,
            )

        payload = transactions.claim_job_completion(
            self.package_id, job_id=job.id, profile_id=profile.id, clock_id=self.clock_id
        )
        return await self._execute_and_reconcile(JobAction.CLAIM_COMPLETION, job_id, payload)

    async def submit_deliverable(
        self,
        job_id: str,
        milestone_id: int,
        file: DeliverableFile,
        preview_reference: str,
        actor: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> SubmissionResult:
        job = await self.ledger.fetch_job(job_id)
        try:
            check_submitter(job, actor)
        except SubmissionValidationError as exc:
            await ProgressReporter(on_progress).fail(exc.tag, str(exc))
            raise

        async with self.lease() as orchestrator:
            submission = await orchestrator.submit_deliverable(
                job, milestone_id, file, preview_reference, actor, on_progress
            )
        refreshed = await self._refetch_and_reconcile(
            JobAction.SUBMIT, job_id, submission.submission_digest, submission
        )
        return SubmissionResult(submission=submission, job=refreshed)

    async def _execute_and_reconcile(
        self,
        action: JobAction,
        job_id: str,
        payload: TransactionPayload,
    ) -> ActionResult:
        async with self.lease() as orchestrator:
            result = await self._execute(orchestrator.executor, action, payload)
        refreshed = await self._refetch_and_reconcile(action, job_id, result.digest)
        logger.info(
            "Job action confirmed",
            extra={"action": action.value, "job_id": job_id, "digest": result.digest, "state": refreshed.state.name},
        )
        return ActionResult(action=action, digest=result.digest, job=refreshed)

    async def _refetch_and_reconcile(
        self,
        action: JobAction,
        job_id: str,
        digest: str,
        submission: Optional[DeliverableSubmission] = None,
    ) -> Job:
        """Re-read the job after a confirmed transaction, keeping the digest if that fails."""
        try:
            return reconcile(action, await self.ledger.fetch_job(job_id))
        except StateReconciliationError as exc:
            logger.error(
                "Confirmed action left the job in an unexpected state",
                extra={"action": action.value, "job_id": job_id, "digest": digest, "state": exc.job.state.name},
            )
            raise ConfirmedUnverifiedError(
                f"{action.value} confirmed in {digest}, but {exc}",
                stage=action.value,
                cause=exc,
                digest=digest,
                submission=submission,
                state_mismatch=True,
            ) from exc
        except LedgerQueryError as exc:
            logger.error(
                "Job re-fetch failed after a confirmed action",
                extra={"action": action.value, "job_id": job_id, "digest": digest, "error": str(exc)},
            )
            raise ConfirmedUnverifiedError(
                f"{action.value} confirmed in {digest}, but the job could not be re-read: {exc}",
                stage=action.value,
                cause=exc,
                digest=digest,
                submission=submission,
            ) from exc

    async def _execute(
        self,
        executor: TransactionExecutor,
        action: JobAction,
        payload: TransactionPayload,
    ) -> TransactionResult:
        stage = action.value
        try:
            return await executor.execute(payload)
        except SignerRejectedError as exc:
            raise TransactionRejectedError(f"Signer declined {action.value}: {exc}", stage=stage, cause=exc) from exc
        except TransactionFailedError as exc:
            raise TransactionRejectedError(
                f"{action.value} failed on-ledger: {exc}", stage=stage, cause=exc, digest=exc.digest
            ) from exc
        except ConfirmationTimeoutError as exc:
            raise ConfirmationAmbiguousError(
                f"{action.value} was submitted but not confirmed; re-check the job before retrying",
                stage=stage,
                cause=exc,
                digest=exc.digest,
            ) from exc
