"""
Job, milestone and profile snapshots as read from the ledger.

The ledger is the single source of truth for these objects. Snapshots are
immutable: the service reads them, proposes transitions through
transactions, and re-fetches after confirmation. Nothing here is ever
mutated locally.
"""

from datetime import datetime
from enum import Enum, IntEnum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class JobState(IntEnum):
    """On-ledger job state. Values match the escrow contract encoding."""

    OPEN = 0
    ASSIGNED = 1
    IN_PROGRESS = 2
    SUBMITTED = 3
    AWAITING_REVIEW = 4
    COMPLETED = 5
    CANCELLED = 6
    DISPUTED = 7


class MilestoneStatus(str, Enum):
    """Status of a single milestone."""

    PENDING = "pending"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class ProfileType(IntEnum):
    """Profile kind, as encoded by the profile contract."""

    FREELANCER = 0
    CLIENT = 1


class DeliverableReference(BaseModel):
    """Deliverable metadata recorded on a milestone by the submission transaction."""

    model_config = ConfigDict(frozen=True)

    content_id: str
    preview_reference: Optional[str] = None
    access_list_id: Optional[str] = None
    escrow_id: Optional[str] = None
    nonce: Optional[str] = None
    original_filename: Optional[str] = None


class Milestone(BaseModel):
    """A separately payable unit of work within a job."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=0)
    description: str = ""
    amount: int = 0
    status: MilestoneStatus = MilestoneStatus.PENDING
    deliverable: Optional[DeliverableReference] = None
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None

    @classmethod
    def derive_status(
        cls,
        completed: bool,
        approved: bool,
        has_submission: bool,
    ) -> MilestoneStatus:
        """
        Map the contract's (completed, approved) flags to a status.

        A revision request clears `completed` but keeps the previous
        submission's blob id, which is how a rejection shows up on-ledger.
        """
        if approved:
            return MilestoneStatus.APPROVED
        if completed:
            return MilestoneStatus.SUBMITTED
        if has_submission:
            return MilestoneStatus.REJECTED
        return MilestoneStatus.PENDING


class Job(BaseModel):
    """Ledger snapshot of an escrowed job."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    budget: int = Field(..., ge=0, description="Amount in the smallest currency unit")
    deadline: datetime
    client: str
    worker: Optional[str] = None
    state: JobState
    milestones: List[Milestone] = Field(default_factory=list)
    description_ref: str = ""
    created_at: Optional[datetime] = None
    # Set when the client approves the final milestone, cleared when the worker claims
    pending_completion: Optional[int] = None

    @property
    def has_pending_completion(self) -> bool:
        return self.pending_completion is not None

    def milestone(self, milestone_id: int) -> Optional[Milestone]:
        for m in self.milestones:
            if m.id == milestone_id:
                return m
        return None


class Profile(BaseModel):
    """Registered on-ledger profile of a participant."""

    model_config = ConfigDict(frozen=True)

    id: str
    owner: str
    profile_type: ProfileType = ProfileType.FREELANCER
    username: str = ""
    completed_jobs: int = 0
    total_jobs: int = 0
