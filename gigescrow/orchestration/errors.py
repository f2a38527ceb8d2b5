"""
Submission error taxonomy.

Every failure of a submission is raised as one of these, tagged with the
stage that failed, the underlying cause and what the caller may safely do
next. Nothing is rolled back automatically.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from gigescrow.kernel.models.deliverable import DeliverableSubmission
from gigescrow.kernel.models.transaction import TransactionAttempt


class RetryPolicy(str, Enum):
    AFTER_CORRECTION = "retry-after-correction"
    LATER = "retry-later"
    SAFE = "safe-to-retry"
    SAFE_WHOLE_PIPELINE = "safe-to-retry-whole-pipeline"
    SAFE_FROM_FAILED_STEP = "safe-to-retry-from-failed-step"
    RECHECK_LEDGER_FIRST = "re-check-ledger-before-retry"


class SubmissionError(Exception):
    """Base class. Subclasses fix `tag` and `retry_policy`."""

    tag: str = "submission"
    retry_policy: RetryPolicy = RetryPolicy.SAFE

    def __init__(
        self,
        message: str,
        *,
        stage: str,
        cause: Optional[BaseException] = None,
        attempts: Optional[List[TransactionAttempt]] = None,
        digest: Optional[str] = None,
    ):
        super().__init__(message)
        self.stage = stage
        self.cause = cause
        self.attempts = list(attempts or [])
        self.digest = digest

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "detail": str(self),
            "stage": self.stage,
            "tag": self.tag,
            "retry": self.retry_policy.value,
        }
        if self.digest:
            data["digest"] = self.digest
        return data


class SubmissionValidationError(SubmissionError):
    """Rejected before any external call."""

    tag = "validation"
    retry_policy = RetryPolicy.AFTER_CORRECTION


class SubmissionInProgressError(SubmissionError):
    """Another submission for the same job/milestone is still running."""

    tag = "in-progress"
    retry_policy = RetryPolicy.LATER


class EncryptionStageError(SubmissionError):
    """Access-list creation or encryption failed. Nothing was stored or recorded."""

    tag = "encryption"
    retry_policy = RetryPolicy.SAFE


class StorageStageError(SubmissionError):
    """Blob upload or storage registration failed. A stored blob may be orphaned."""

    tag = "storage"
    retry_policy = RetryPolicy.SAFE_WHOLE_PIPELINE


class TransactionRejectedError(SubmissionError):
    """The signer declined or ledger validation failed."""

    tag = "transaction-rejected"
    retry_policy = RetryPolicy.SAFE_FROM_FAILED_STEP


class ConfirmationAmbiguousError(SubmissionError):
    """
    Submitted but confirmation was not observed in time.

    The transaction may have landed. Re-query the job and milestone before
    resubmitting.
    """

    tag = "confirmation-ambiguous"
    retry_policy = RetryPolicy.RECHECK_LEDGER_FIRST


class ConfirmedUnverifiedError(SubmissionError):
    """
    The transaction confirmed, but the job could not be re-read or is not in
    a state the action leads to.

    The commit stands. `digest` names the confirmed transaction and
    `submission` carries the deliverable record when one was produced, so the
    caller never loses track of what landed on the ledger.
    """

    tag = "confirmed-unverified"
    retry_policy = RetryPolicy.RECHECK_LEDGER_FIRST

    def __init__(
        self,
        message: str,
        *,
        stage: str,
        cause: BaseException,
        digest: str,
        submission: Optional[DeliverableSubmission] = None,
        state_mismatch: bool = False,
    ):
        super().__init__(message, stage=stage, cause=cause, digest=digest)
        self.submission = submission
        self.state_mismatch = state_mismatch
        if state_mismatch:
            self.tag = "state-reconciliation"

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.submission is not None:
            data["submission_digest"] = self.submission.submission_digest
            data["submission"] = self.submission.model_dump(mode="json")
        return data
