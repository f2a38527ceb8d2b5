"""
Kernel Data Models

Ledger snapshots (jobs, milestones, profiles) and the transient records the
orchestrator builds while submitting a deliverable.
"""

from gigescrow.kernel.models.job import (
    DeliverableReference,
    Job,
    JobState,
    Milestone,
    MilestoneStatus,
    Profile,
    ProfileType,
)
from gigescrow.kernel.models.deliverable import DeliverableFile, DeliverableSubmission
from gigescrow.kernel.models.transaction import (
    AttemptOutcome,
    TransactionAttempt,
    TransactionLog,
)

__all__ = [
    # Ledger snapshots
    "DeliverableReference",
    "Job",
    "JobState",
    "Milestone",
    "MilestoneStatus",
    "Profile",
    "ProfileType",
    # Deliverables
    "DeliverableFile",
    "DeliverableSubmission",
    # Transactions
    "AttemptOutcome",
    "TransactionAttempt",
    "TransactionLog",
]
