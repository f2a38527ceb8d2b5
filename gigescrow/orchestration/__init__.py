"""Orchestration layer - job state machine, deliverable submission, progress reporting."""

from gigescrow.orchestration.deliverable_orchestrator import DeliverableOrchestrator
from gigescrow.orchestration.errors import (
    ConfirmationAmbiguousError,
    ConfirmedUnverifiedError,
    EncryptionStageError,
    RetryPolicy,
    StorageStageError,
    SubmissionError,
    SubmissionInProgressError,
    SubmissionValidationError,
    TransactionRejectedError,
)
from gigescrow.orchestration.job_actions import ActionResult, JobActions, SubmissionResult
from gigescrow.orchestration.progress import (
    ProgressEvent,
    ProgressReporter,
    ProgressStream,
    SubmissionStage,
)
from gigescrow.orchestration.retrieval import DeliverableRetrieval
from gigescrow.orchestration.state_machine import (
    JobAction,
    JobViewState,
    StateReconciliationError,
    available_actions,
    can_claim_completion,
    can_start,
    can_submit,
    reconcile,
)

__all__ = [
    "DeliverableOrchestrator",
    "DeliverableRetrieval",
    "JobActions",
    "ActionResult",
    "SubmissionResult",
    # Errors
    "SubmissionError",
    "SubmissionValidationError",
    "SubmissionInProgressError",
    "EncryptionStageError",
    "StorageStageError",
    "TransactionRejectedError",
    "ConfirmationAmbiguousError",
    "ConfirmedUnverifiedError",
    "RetryPolicy",
    # Progress
    "ProgressEvent",
    "ProgressReporter",
    "ProgressStream",
    "SubmissionStage",
    # State machine
    "JobAction",
    "JobViewState",
    "StateReconciliationError",
    "available_actions",
    "can_claim_completion",
    "can_start",
    "can_submit",
    "reconcile",
]
