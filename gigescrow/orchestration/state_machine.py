"""
Job lifecycle state machine.

The ledger owns job state. This module only classifies a fetched snapshot:
which actions the actor may attempt, and whether a re-fetched snapshot is a
legal outcome of a confirmed action. It never stores or mutates a Job.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from gigescrow.kernel.identity.address import same_address
from gigescrow.kernel.models.job import Job, JobState


class JobAction(str, Enum):
    START = "start"
    SUBMIT = "submit"
    CLAIM_COMPLETION = "claim_completion"


# Worker-initiated transitions: (from_state, action) -> legal post-confirmation states
_TRANSITIONS: Dict[Tuple[JobState, JobAction], FrozenSet[JobState]] = {
    (JobState.ASSIGNED, JobAction.START): frozenset({JobState.IN_PROGRESS}),
    (JobState.IN_PROGRESS, JobAction.SUBMIT): frozenset({JobState.SUBMITTED, JobState.AWAITING_REVIEW}),
    # Pending-completion flag set -> cleared; state itself does not change
    (JobState.COMPLETED, JobAction.CLAIM_COMPLETION): frozenset({JobState.COMPLETED}),
}

# Side exits driven by external collaborators (client, arbiter), never by this service
_EXTERNAL_EXITS: FrozenSet[JobState] = frozenset({JobState.CANCELLED, JobState.DISPUTED})

_TERMINAL: FrozenSet[JobState] = frozenset({JobState.COMPLETED, JobState.CANCELLED})


class StateReconciliationError(Exception):
    """A re-fetched job is not a legal outcome of the action that just confirmed."""

    def __init__(self, action: JobAction, job: Job, expected: FrozenSet[JobState]):
        names = ", ".join(sorted(s.name for s in expected))
        super().__init__(
            f"After {action.value} on job {job.id}: ledger state is {job.state.name}, expected one of {names}"
        )
        self.action = action
        self.job = job
        self.expected = expected


@dataclass
class JobViewState:
    """
    Optimistic, presentation-owned flags.

    The caller mutates these; the state machine only reads them to hide
    actions that are already in flight.
    """

    starting: bool = False
    submitting: bool = False
    claiming: bool = False
    stage: Optional[str] = None
    percent: int = 0
    last_error: Optional[str] = None

    def busy_with(self, action: JobAction) -> bool:
        return {
            JobAction.START: self.starting,
            JobAction.SUBMIT: self.submitting,
            JobAction.CLAIM_COMPLETION: self.claiming,
        }[action]


def is_terminal(state: JobState) -> bool:
    return state in _TERMINAL


def is_assigned_worker(job: Job, actor: Optional[str]) -> bool:
    return same_address(job.worker, actor)


def can_start(job: Job, actor: Optional[str]) -> bool:
    """ASSIGNED and the actor is the assigned worker."""
    return job.state == JobState.ASSIGNED and is_assigned_worker(job, actor)


def can_submit(job: Job, actor: Optional[str]) -> bool:
    """IN_PROGRESS and the actor is the assigned worker."""
    return job.state == JobState.IN_PROGRESS and is_assigned_worker(job, actor)


def can_claim_completion(job: Job, actor: Optional[str]) -> bool:
    """COMPLETED with the pending-completion flag set, and the actor is the assigned worker."""
    return (
        job.state == JobState.COMPLETED
        and job.has_pending_completion
        and is_assigned_worker(job, actor)
    )


_PREDICATES = {
    JobAction.START: can_start,
    JobAction.SUBMIT: can_submit,
    JobAction.CLAIM_COMPLETION: can_claim_completion,
}


def is_allowed(action: JobAction, job: Job, actor: Optional[str]) -> bool:
    return _PREDICATES[action](job, actor)


def available_actions(
    job: Job,
    actor: Optional[str],
    view: Optional[JobViewState] = None,
) -> List[JobAction]:
    """Actions the actor may attempt now, minus any the view already has in flight."""
    actions = []
    for action in JobAction:
        if not is_allowed(action, job, actor):
            continue
        if view is not None and view.busy_with(action):
            continue
        actions.append(action)
    return actions


def expected_states(action: JobAction) -> FrozenSet[JobState]:
    """Legal post-confirmation states for an action."""
    for (_, a), targets in _TRANSITIONS.items():
        if a == action:
            return targets
    raise ValueError(f"Unknown action: {action}")


def valid_transitions(from_state: JobState) -> Dict[JobAction, FrozenSet[JobState]]:
    """Worker actions available from a state, with their outcomes."""
    return {a: targets for (f, a), targets in _TRANSITIONS.items() if f == from_state}


def reconcile(action: JobAction, refreshed: Job) -> Job:
    """
    Check a re-fetched snapshot against the action that just confirmed.

    A concurrent external exit (cancel, dispute) is accepted: the ledger is
    authoritative and those states are reachable from any non-terminal state.

    Raises:
        StateReconciliationError: If the snapshot is not a legal outcome
    """
    expected = expected_states(action)
    if refreshed.state in _EXTERNAL_EXITS:
        return refreshed
    if refreshed.state not in expected:
        raise StateReconciliationError(action, refreshed, expected)
    if action == JobAction.CLAIM_COMPLETION and refreshed.has_pending_completion:
        raise StateReconciliationError(action, refreshed, expected)
    return refreshed
