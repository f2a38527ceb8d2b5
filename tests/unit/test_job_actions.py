"""Unit tests for worker job actions: fetch, gate, execute, re-fetch, reconcile."""

import pytest

from gigescrow.kernel.ledger.errors import (
    ConfirmationTimeoutError,
    LedgerQueryError,
    SignerRejectedError,
    TransactionFailedError,
)
from gigescrow.kernel.ledger.transactions import TransactionKind
from gigescrow.kernel.models.job import JobState
from gigescrow.orchestration.errors import (
    ConfirmationAmbiguousError,
    ConfirmedUnverifiedError,
    SubmissionValidationError,
    TransactionRejectedError,
)
from gigescrow.orchestration.job_actions import JobActions
from gigescrow.orchestration.state_machine import JobAction, StateReconciliationError
from tests.fakes import (
    ESCROW_PACKAGE,
    JOB_ID,
    PREVIEW_URL,
    PROFILE_ID,
    STRANGER,
    WORKER,
    FixedLease,
    make_job,
    submitted,
)


@pytest.fixture
def lease(orchestrator) -> FixedLease:
    return FixedLease(orchestrator)


@pytest.fixture
def actions(ledger, lease) -> JobActions:
    return JobActions(ledger, lease, package_id=ESCROW_PACKAGE)


def _ledger_applies(ledger, executor):
    """Make confirmed payloads change the fake ledger the way the contract would."""

    def apply(payload):
        job = ledger.jobs[JOB_ID]
        if payload.kind == TransactionKind.START_JOB:
            ledger.put(job.model_copy(update={"state": JobState.IN_PROGRESS}))
        elif payload.kind == TransactionKind.CLAIM_JOB_COMPLETION:
            ledger.put(job.model_copy(update={"pending_completion": None}))
        elif payload.kind == TransactionKind.SUBMIT_MILESTONE:
            ledger.put(submitted(job))

    executor.on_confirm = apply


class TestStartJob:
    @pytest.mark.asyncio
    async def test_start(self, actions, ledger, executor):
        ledger.put(make_job(JobState.ASSIGNED))
        _ledger_applies(ledger, executor)

        result = await actions.start_job(JOB_ID, WORKER)

        assert result.action == JobAction.START
        assert result.job.state == JobState.IN_PROGRESS
        assert result.digest == "digest-1-start_job"
        payload = executor.payloads[0]
        assert payload.target == f"{ESCROW_PACKAGE}::job_escrow::start_job"
        assert payload.arguments[1].value == PROFILE_ID
        assert ledger.fetches == 2

    @pytest.mark.asyncio
    async def test_wrong_state(self, actions, ledger, executor):
        ledger.put(make_job(JobState.IN_PROGRESS))
        with pytest.raises(SubmissionValidationError):
            await actions.start_job(JOB_ID, WORKER)
        assert executor.payloads == []

    @pytest.mark.asyncio
    async def test_not_assigned_worker(self, actions, ledger, executor):
        ledger.put(make_job(JobState.ASSIGNED))
        with pytest.raises(SubmissionValidationError):
            await actions.start_job(JOB_ID, STRANGER)
        assert executor.payloads == []

    @pytest.mark.asyncio
    async def test_profile_required(self, actions, ledger, executor):
        ledger.put(make_job(JobState.ASSIGNED))
        ledger.profiles.clear()
        with pytest.raises(SubmissionValidationError, match="profile"):
            await actions.start_job(JOB_ID, WORKER)
        assert executor.payloads == []

    @pytest.mark.asyncio
    async def test_unexpected_state_after_confirmation(self, actions, ledger, executor):
        """The ledger still reports ASSIGNED after a confirmed start."""
        ledger.put(make_job(JobState.ASSIGNED))
        with pytest.raises(ConfirmedUnverifiedError) as exc_info:
            await actions.start_job(JOB_ID, WORKER)
        error = exc_info.value
        assert error.tag == "state-reconciliation"
        assert error.digest == "digest-1-start_job"
        assert isinstance(error.cause, StateReconciliationError)
        assert error.cause.job.state == JobState.ASSIGNED
        assert "submission" not in error.to_dict()

    @pytest.mark.asyncio
    async def test_concurrent_cancel_is_accepted(self, actions, ledger, executor):
        ledger.put(make_job(JobState.ASSIGNED))
        executor.on_confirm = lambda p: ledger.put(make_job(JobState.CANCELLED))
        result = await actions.start_job(JOB_ID, WORKER)
        assert result.job.state == JobState.CANCELLED


class TestClaimCompletion:
    @pytest.mark.asyncio
    async def test_claim(self, actions, ledger, executor):
        ledger.put(make_job(JobState.COMPLETED, pending_completion=1_000_000_000))
        _ledger_applies(ledger, executor)

        result = await actions.claim_completion(JOB_ID, WORKER)

        assert result.job.state == JobState.COMPLETED
        assert not result.job.has_pending_completion
        assert executor.kinds == [TransactionKind.CLAIM_JOB_COMPLETION]

    @pytest.mark.asyncio
    async def test_nothing_pending(self, actions, ledger, executor):
        ledger.put(make_job(JobState.COMPLETED))
        with pytest.raises(SubmissionValidationError):
            await actions.claim_completion(JOB_ID, WORKER)
        assert executor.payloads == []

    @pytest.mark.asyncio
    async def test_flag_still_set_after_confirmation(self, actions, ledger):
        ledger.put(make_job(JobState.COMPLETED, pending_completion=5))
        with pytest.raises(ConfirmedUnverifiedError, match="state"):
            await actions.claim_completion(JOB_ID, WORKER)


class TestExecutionErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "failure,expected",
        [
            (SignerRejectedError("declined"), TransactionRejectedError),
            (TransactionFailedError("aborted", digest="d9", status_error="MoveAbort"), TransactionRejectedError),
            (ConfirmationTimeoutError("slow", digest="d9", waited_seconds=60.0), ConfirmationAmbiguousError),
        ],
    )
    async def test_mapping(self, actions, ledger, executor, failure, expected):
        ledger.put(make_job(JobState.ASSIGNED))
        executor.failures[TransactionKind.START_JOB] = failure

        with pytest.raises(expected) as exc_info:
            await actions.start_job(JOB_ID, WORKER)

        assert exc_info.value.stage == JobAction.START.value
        assert exc_info.value.cause is failure
        # No re-fetch after a failed execution
        assert ledger.fetches == 1

    @pytest.mark.asyncio
    async def test_ambiguous_carries_digest(self, actions, ledger, executor):
        ledger.put(make_job(JobState.ASSIGNED))
        executor.failures[TransactionKind.START_JOB] = ConfirmationTimeoutError(
            "slow", digest="d9", waited_seconds=60.0
        )
        with pytest.raises(ConfirmationAmbiguousError) as exc_info:
            await actions.start_job(JOB_ID, WORKER)
        assert exc_info.value.to_dict()["digest"] == "d9"


class TestSubmitDeliverable:
    @pytest.mark.asyncio
    async def test_submit_refetches(self, actions, ledger, executor, deliverable):
        ledger.put(make_job(JobState.IN_PROGRESS))
        _ledger_applies(ledger, executor)

        result = await actions.submit_deliverable(JOB_ID, 0, deliverable, PREVIEW_URL, WORKER)

        assert result.job.state == JobState.SUBMITTED
        assert result.submission.original_filename == "site.zip"
        assert executor.kinds == [TransactionKind.REGISTER_BLOB, TransactionKind.SUBMIT_MILESTONE]
        assert ledger.fetches == 2

    @pytest.mark.asyncio
    async def test_submit_unreconciled_keeps_submission(self, actions, ledger, executor, deliverable):
        """The ledger never moved out of IN_PROGRESS, but the milestone transaction confirmed."""
        ledger.put(make_job(JobState.IN_PROGRESS))
        with pytest.raises(ConfirmedUnverifiedError) as exc_info:
            await actions.submit_deliverable(JOB_ID, 0, deliverable, PREVIEW_URL, WORKER)

        error = exc_info.value
        assert error.tag == "state-reconciliation"
        assert error.submission.original_filename == "site.zip"
        assert error.digest == error.submission.submission_digest == "digest-2-submit_milestone"
        body = error.to_dict()
        assert body["submission_digest"] == "digest-2-submit_milestone"
        assert body["submission"]["content_id"] == error.submission.content_id
        assert body["retry"] == "re-check-ledger-before-retry"

    @pytest.mark.asyncio
    async def test_submit_refetch_failure_keeps_submission(self, actions, ledger, executor, deliverable):
        ledger.put(make_job(JobState.IN_PROGRESS))
        ledger.failures[2] = LedgerQueryError("node unavailable")

        with pytest.raises(ConfirmedUnverifiedError) as exc_info:
            await actions.submit_deliverable(JOB_ID, 0, deliverable, PREVIEW_URL, WORKER)

        error = exc_info.value
        assert error.tag == "confirmed-unverified"
        assert isinstance(error.cause, LedgerQueryError)
        assert error.to_dict()["submission_digest"] == "digest-2-submit_milestone"
        assert executor.kinds == [TransactionKind.REGISTER_BLOB, TransactionKind.SUBMIT_MILESTONE]

    @pytest.mark.asyncio
    async def test_refused_submit_takes_no_lease(self, actions, ledger, lease, deliverable):
        ledger.put(make_job(JobState.ASSIGNED))
        events = []
        with pytest.raises(SubmissionValidationError):
            await actions.submit_deliverable(JOB_ID, 0, deliverable, PREVIEW_URL, WORKER, events.append)
        assert lease.taken == 0
        assert events[-1].error == "validation"


class TestLeasing:
    @pytest.mark.asyncio
    async def test_refused_actions_take_no_lease(self, actions, ledger, lease):
        ledger.put(make_job(JobState.ASSIGNED))
        with pytest.raises(SubmissionValidationError):
            await actions.start_job(JOB_ID, STRANGER)
        with pytest.raises(SubmissionValidationError):
            await actions.claim_completion(JOB_ID, WORKER)
        assert lease.taken == 0

    @pytest.mark.asyncio
    async def test_start_refetch_failure_keeps_digest(self, actions, ledger, executor, lease):
        ledger.put(make_job(JobState.ASSIGNED))
        ledger.failures[2] = LedgerQueryError("node unavailable")

        with pytest.raises(ConfirmedUnverifiedError) as exc_info:
            await actions.start_job(JOB_ID, WORKER)

        assert exc_info.value.digest == "digest-1-start_job"
        assert lease.taken == 1
