"""
Deliverable submission orchestrator.

Sequences one milestone submission:

    PREPARING   audience = the job's client
    ENCRYPTING  fresh access list + capability, encrypt under the list
    UPLOADING   register storage (confirmed), upload + certify the blob
    SUBMITTING  milestone-submission transaction (confirmed)
    COMPLETE    DeliverableSubmission handed back

The ledger is never told about a deliverable that is not stored and
access-controlled: the milestone transaction is only built from a content id
returned after a confirmed registration and a successful upload.

Steps from ENCRYPTING on have real-world effects and are not rolled back.
Once encryption begins the pipeline runs to a terminal outcome even if the
caller is cancelled.
"""

import asyncio
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Optional, Set, Tuple

from pydantic import HttpUrl, TypeAdapter, ValidationError

from gigescrow.engines.encryption.service import EncryptionService, EncryptionServiceError
from gigescrow.engines.storage.blob_store import BlobStore, BlobStoreError
from gigescrow.kernel.identity.address import is_valid_address
from gigescrow.kernel.ledger import transactions
from gigescrow.kernel.ledger.errors import (
    ConfirmationTimeoutError,
    SignerRejectedError,
    TransactionFailedError,
)
from gigescrow.kernel.ledger.executor import TransactionExecutor, TransactionResult
from gigescrow.kernel.ledger.transactions import TransactionPayload
from gigescrow.kernel.models.deliverable import DeliverableFile, DeliverableSubmission
from gigescrow.kernel.models.job import Job, MilestoneStatus
from gigescrow.kernel.models.transaction import AttemptOutcome, TransactionLog
from gigescrow.logging_config import bind_submission, get_logger, request_id_var
from gigescrow.orchestration.errors import (
    ConfirmationAmbiguousError,
    EncryptionStageError,
    StorageStageError,
    SubmissionError,
    SubmissionInProgressError,
    SubmissionValidationError,
    TransactionRejectedError,
)
from gigescrow.orchestration.progress import ProgressCallback, ProgressReporter, SubmissionStage
from gigescrow.orchestration.state_machine import can_submit, is_assigned_worker

logger = get_logger(__name__)

_URL_ADAPTER = TypeAdapter(HttpUrl)

DEFAULT_MAX_FILE_BYTES = 100 * 1024 * 1024

# Stage percentages
PCT_PREPARING = 5
PCT_ACCESS_LIST = 10
PCT_ENCRYPTING = 20
PCT_ENCRYPTED = 30
PCT_REGISTERING = 50
PCT_UPLOADING = 65
PCT_CERTIFIED = 85
PCT_SUBMITTING = 90
PCT_COMPLETE = 100


@dataclass
class _SubmissionContext:
    job: Job
    milestone_id: int
    file: DeliverableFile
    preview_reference: str
    actor: str
    reporter: ProgressReporter
    tx_log: TransactionLog


def check_submitter(job: Job, actor: str) -> None:
    """
    Raise SubmissionValidationError unless `actor` may submit on `job` now.

    Only reads the snapshot, so callers can gate before building anything.
    """
    stage = SubmissionStage.PREPARING.value
    if not actor or not is_valid_address(actor):
        raise SubmissionValidationError("Actor identity is missing or malformed", stage=stage)
    if not is_assigned_worker(job, actor):
        raise SubmissionValidationError(
            f"Actor is not the assigned worker of job {job.id}", stage=stage
        )
    if not can_submit(job, actor):
        raise SubmissionValidationError(
            f"Job {job.id} is {job.state.name}; deliverables are only accepted while IN_PROGRESS",
            stage=stage,
        )


@contextmanager
def _timed_stage(stage: SubmissionStage) -> Iterator[None]:
    logger.debug("Stage started", extra={"stage": stage.value})
    started = time.perf_counter()
    outcome = "failed"
    try:
        yield
        outcome = "done"
    finally:
        logger.info(
            "Stage finished",
            extra={
                "stage": stage.value,
                "outcome": outcome,
                "duration_ms": round((time.perf_counter() - started) * 1000, 1),
            },
        )


class DeliverableOrchestrator:
    """
    Service that turns a worker's file into a confirmed milestone submission.

    One instance may serve many jobs. Submissions for different
    (job, milestone) keys run independently; a second call for a key that is
    already running is refused.

    Usage:
        orchestrator = DeliverableOrchestrator(encryption, blob_store, executor, package_id=pkg)
        submission = await orchestrator.submit_deliverable(
            job, 0, DeliverableFile("report.pdf", data), "https://preview.example/app", actor,
        )
    """

    def __init__(
        self,
        encryption: EncryptionService,
        blob_store: BlobStore,
        executor: TransactionExecutor,
        *,
        package_id: str,
        clock_id: str = "0x6",
        max_file_bytes: int = DEFAULT_MAX_FILE_BYTES,
        on_idle: Optional[Callable[[], None]] = None,
    ):
        self.encryption = encryption
        self.blob_store = blob_store
        self.executor = executor
        self.package_id = package_id
        self.clock_id = clock_id
        self.max_file_bytes = max_file_bytes
        self._locks: Dict[Tuple[str, int], asyncio.Lock] = {}
        self._pipelines: Set[asyncio.Task] = set()
        self.on_idle = on_idle

    def is_running(self, job_id: str, milestone_id: int) -> bool:
        lock = self._locks.get((job_id, milestone_id))
        return lock is not None and lock.locked()

    @property
    def is_idle(self) -> bool:
        """No submission holds a key and no pipeline is still running."""
        return not self._pipelines and not any(lock.locked() for lock in self._locks.values())

    async def drain(self) -> None:
        """Wait for detached pipelines (callers that were cancelled) to finish."""
        if self._pipelines:
            await asyncio.gather(*self._pipelines, return_exceptions=True)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(
        self,
        job: Job,
        milestone_id: int,
        file: DeliverableFile,
        preview_reference: str,
        actor: str,
    ) -> None:
        """
        Check every precondition against the given snapshot. No external calls.

        Raises:
            SubmissionValidationError: On the first failed precondition
        """
        stage = SubmissionStage.PREPARING.value
        check_submitter(job, actor)

        milestone = job.milestone(milestone_id)
        if milestone is None:
            raise SubmissionValidationError(
                f"Job {job.id} has no milestone {milestone_id}", stage=stage
            )
        if milestone.status in (MilestoneStatus.SUBMITTED, MilestoneStatus.APPROVED):
            raise SubmissionValidationError(
                f"Milestone {milestone_id} is already {milestone.status.value}", stage=stage
            )

        if file is None or not file.content:
            raise SubmissionValidationError("Deliverable file is empty", stage=stage)
        if file.size > self.max_file_bytes:
            raise SubmissionValidationError(
                f"Deliverable is {file.size} bytes; the limit is {self.max_file_bytes}",
                stage=stage,
            )
        if not file.filename or not file.filename.strip():
            raise SubmissionValidationError("Deliverable filename is required", stage=stage)

        try:
            _URL_ADAPTER.validate_python(preview_reference)
        except ValidationError as exc:
            raise SubmissionValidationError(
                f"Preview reference is not a valid http(s) URL: {preview_reference!r}",
                stage=stage,
                cause=exc,
            ) from exc

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit_deliverable(
        self,
        job: Job,
        milestone_id: int,
        file: DeliverableFile,
        preview_reference: str,
        actor: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> DeliverableSubmission:
        """
        Encrypt, store and record a deliverable for one milestone.

        Returns only after the milestone-submission transaction confirms.

        Raises:
            SubmissionError: Subclass tagged with the failing stage
        """
        reporter = ProgressReporter(on_progress)
        token = None
        if request_id_var.get() is None:
            token = request_id_var.set(f"sub-{uuid.uuid4().hex[:12]}")
        try:
            try:
                self.validate(job, milestone_id, file, preview_reference, actor)
            except SubmissionValidationError as exc:
                logger.info(
                    "Deliverable rejected",
                    extra={"job_id": job.id, "milestone_id": milestone_id, "reason": str(exc)},
                )
                await reporter.fail(exc.tag, str(exc))
                raise

            key = (job.id, milestone_id)
            lock = self._locks.setdefault(key, asyncio.Lock())
            if lock.locked():
                exc = SubmissionInProgressError(
                    f"A submission for job {job.id} milestone {milestone_id} is already running",
                    stage=SubmissionStage.PREPARING.value,
                )
                await reporter.fail(exc.tag, str(exc))
                raise exc
            await lock.acquire()

            ctx = _SubmissionContext(
                job=job,
                milestone_id=milestone_id,
                file=file,
                preview_reference=preview_reference,
                actor=actor,
                reporter=reporter,
                tx_log=TransactionLog(),
            )
            try:
                await reporter.report(SubmissionStage.PREPARING, PCT_PREPARING, "Preparing deliverable")
            except BaseException:
                lock.release()
                raise

            task = asyncio.create_task(self._run(ctx))
            self._pipelines.add(task)
            task.add_done_callback(lambda t: self._pipeline_done(t, key, lock))
            return await asyncio.shield(task)
        finally:
            if token is not None:
                request_id_var.reset(token)

    def _pipeline_done(self, task: asyncio.Task, key: Tuple[str, int], lock: asyncio.Lock) -> None:
        self._pipelines.discard(task)
        lock.release()
        if self._locks.get(key) is lock:
            del self._locks[key]
        # Outcome is logged inside the pipeline; mark it retrieved for detached runs
        if not task.cancelled():
            task.exception()
        if self.on_idle is not None and self.is_idle:
            self.on_idle()

    async def _run(self, ctx: _SubmissionContext) -> DeliverableSubmission:
        with bind_submission(ctx.job.id, ctx.milestone_id):
            return await self._run_logged(ctx)

    async def _run_logged(self, ctx: _SubmissionContext) -> DeliverableSubmission:
        log_fields = {
            "job_id": ctx.job.id,
            "milestone_id": ctx.milestone_id,
            "file_bytes": ctx.file.size,
        }
        logger.info("Deliverable submission started", extra=log_fields)
        try:
            submission = await self._pipeline(ctx)
        except SubmissionError as exc:
            exc.attempts = ctx.tx_log.attempts
            logger.error(
                "Deliverable submission failed",
                extra={
                    **log_fields,
                    "stage": exc.stage,
                    "error_tag": exc.tag,
                    "retry": exc.retry_policy.value,
                    "digest": exc.digest,
                    "tx_attempts": len(ctx.tx_log),
                },
            )
            await ctx.reporter.fail(exc.tag, str(exc))
            raise
        except Exception:
            logger.exception("Deliverable submission crashed", extra={**log_fields, "tx_attempts": len(ctx.tx_log)})
            await ctx.reporter.fail("internal", "Unexpected error")
            raise
        logger.info(
            "Deliverable submission confirmed",
            extra={
                **log_fields,
                "content_id": submission.content_id,
                "submission_digest": submission.submission_digest,
                "tx_attempts": len(ctx.tx_log),
            },
        )
        return submission

    async def _pipeline(self, ctx: _SubmissionContext) -> DeliverableSubmission:
        reporter = ctx.reporter
        audience = [ctx.job.client]

        stage = SubmissionStage.ENCRYPTING
        with _timed_stage(stage):
            await reporter.report(stage, PCT_ACCESS_LIST, "Creating access list")
            try:
                handle = await self.encryption.create_access_list(audience)
                await reporter.report(stage, PCT_ENCRYPTING, "Encrypting file")
                encrypted = await self.encryption.encrypt(ctx.file.content, handle.list_id)
            except EncryptionServiceError as exc:
                raise EncryptionStageError(
                    f"Encryption failed ({exc.reason.value}): {exc}", stage=stage.value, cause=exc
                ) from exc
            await reporter.report(stage, PCT_ENCRYPTED, "File encrypted")

        stage = SubmissionStage.UPLOADING
        with _timed_stage(stage):
            try:
                prepared = self.blob_store.prepare(encrypted.ciphertext, ctx.file.filename, owner=ctx.actor)
            except BlobStoreError as exc:
                raise StorageStageError(f"Blob encoding failed: {exc}", stage=stage.value, cause=exc) from exc

            await reporter.report(stage, PCT_REGISTERING, "Registering storage")
            registration = await self._execute(ctx, prepared.registration, stage)

            await reporter.report(stage, PCT_UPLOADING, "Uploading blob")
            try:
                content_id = await self.blob_store.upload(prepared, registration)
            except BlobStoreError as exc:
                raise StorageStageError(
                    f"Blob upload failed: {exc}", stage=stage.value, cause=exc, digest=registration.digest
                ) from exc
            await reporter.report(stage, PCT_CERTIFIED, "Blob stored")

        stage = SubmissionStage.SUBMITTING
        with _timed_stage(stage):
            await reporter.report(stage, PCT_SUBMITTING, "Recording milestone submission")
            payload = transactions.submit_milestone(
                self.package_id,
                job_id=ctx.job.id,
                milestone_id=ctx.milestone_id,
                content_id=content_id,
                preview_reference=ctx.preview_reference,
                capability_id=handle.capability_id,
                access_list_id=handle.list_id,
                nonce=encrypted.nonce,
                original_filename=ctx.file.filename,
                clock_id=self.clock_id,
            )
            submitted = await self._execute(ctx, payload, stage)

        submission = DeliverableSubmission(
            content_id=content_id,
            preview_reference=ctx.preview_reference,
            access_list_id=handle.list_id,
            capability_id=handle.capability_id,
            nonce=encrypted.nonce,
            original_filename=ctx.file.filename,
            original_file_size=ctx.file.size,
            registration_digest=registration.digest,
            submission_digest=submitted.digest,
        )
        await reporter.report(SubmissionStage.COMPLETE, PCT_COMPLETE, "Deliverable submitted")
        return submission

    async def _execute(
        self,
        ctx: _SubmissionContext,
        payload: TransactionPayload,
        stage: SubmissionStage,
    ) -> TransactionResult:
        """Run one transaction through the executor and translate its failure modes."""
        attempt = ctx.tx_log.begin(payload.kind.value)
        try:
            result = await self.executor.execute(payload)
        except SignerRejectedError as exc:
            attempt.finish(AttemptOutcome.FAILED)
            logger.warning("Transaction attempt rejected", extra=attempt.as_log_fields())
            raise TransactionRejectedError(
                f"Signer declined {payload.kind.value}: {exc}", stage=stage.value, cause=exc
            ) from exc
        except TransactionFailedError as exc:
            attempt.finish(AttemptOutcome.FAILED, exc.digest)
            logger.warning("Transaction attempt failed", extra=attempt.as_log_fields())
            raise TransactionRejectedError(
                f"{payload.kind.value} failed on-ledger: {exc}",
                stage=stage.value,
                cause=exc,
                digest=exc.digest,
            ) from exc
        except ConfirmationTimeoutError as exc:
            attempt.finish(AttemptOutcome.TIMED_OUT, exc.digest)
            logger.warning("Transaction attempt timed out", extra=attempt.as_log_fields())
            raise ConfirmationAmbiguousError(
                f"{payload.kind.value} was submitted but not confirmed; re-check the ledger before retrying",
                stage=stage.value,
                cause=exc,
                digest=exc.digest,
            ) from exc

        if not result.confirmed:
            attempt.finish(AttemptOutcome.TIMED_OUT, result.digest)
            raise ConfirmationAmbiguousError(
                f"{payload.kind.value} returned without confirmation",
                stage=stage.value,
                digest=result.digest,
            )
        attempt.finish(AttemptOutcome.CONFIRMED, result.digest)
        logger.info("Transaction attempt confirmed", extra=attempt.as_log_fields())
        return result
