"""
State transition validation for jobs and plan tasks.

Job lifecycle: PENDING → PROCESSING → COMPLETED | FAILED | CANCELLED
A PENDING job may also be cancelled, or failed when it cannot be dispatched.

INVARIANT: Terminal job states (COMPLETED, FAILED, CANCELLED) are immutable.
Once a job enters a terminal state, no state transition is allowed.
"""

from typing import FrozenSet, Set, Tuple

from .errors import InvalidStateTransitionError
from .models import JobStatus, PlanStatus, TERMINAL_PLAN_STATES


TERMINAL_JOB_STATES: FrozenSet[JobStatus] = frozenset({
    JobStatus.COMPLETED,
    JobStatus.FAILED,
    JobStatus.CANCELLED,
})


def is_job_terminal(status: JobStatus) -> bool:
    """
    Check if a job status is terminal (immutable).

    Args:
        status: The job status to check

    Returns:
        True if the status is terminal, False otherwise
    """
    return status in TERMINAL_JOB_STATES


_JOB_TRANSITIONS: Set[Tuple[JobStatus, JobStatus]] = {
    # Dispatch
    (JobStatus.PENDING, JobStatus.PROCESSING),
    (JobStatus.PENDING, JobStatus.CANCELLED),
    # Plan regeneration failed, or swept before it ran
    (JobStatus.PENDING, JobStatus.FAILED),

    (JobStatus.PROCESSING, JobStatus.COMPLETED),
    (JobStatus.PROCESSING, JobStatus.FAILED),
    (JobStatus.PROCESSING, JobStatus.CANCELLED),
}


# Retries stay in RUNNING; attempts are counted on the task
_PLAN_TRANSITIONS: Set[Tuple[PlanStatus, PlanStatus]] = {
    (PlanStatus.QUEUED, PlanStatus.RUNNING),
    (PlanStatus.QUEUED, PlanStatus.FAILED),
    (PlanStatus.QUEUED, PlanStatus.CANCELLED),
    (PlanStatus.RUNNING, PlanStatus.COMPLETED),
    (PlanStatus.RUNNING, PlanStatus.FAILED),
    (PlanStatus.RUNNING, PlanStatus.CANCELLED),
}


def can_transition_job(from_status: JobStatus, to_status: JobStatus) -> bool:
    """
    Check if a job state transition is legal.

    INVARIANT: Terminal states cannot transition to any other state.
    """
    # Allow staying in same state (idempotent operations)
    if from_status == to_status:
        return True

    if is_job_terminal(from_status):
        return False

    return (from_status, to_status) in _JOB_TRANSITIONS


def can_transition_plan(from_status: PlanStatus, to_status: PlanStatus) -> bool:
    if from_status == to_status:
        return True
    if from_status in TERMINAL_PLAN_STATES:
        return False
    return (from_status, to_status) in _PLAN_TRANSITIONS


def validate_job_transition(from_status: JobStatus, to_status: JobStatus) -> None:
    """
    Validate a job state transition, raising an exception if illegal.

    Raises:
        InvalidStateTransitionError: If the transition is not allowed
    """
    if not can_transition_job(from_status, to_status):
        raise InvalidStateTransitionError("job", from_status.value, to_status.value)


def validate_plan_transition(from_status: PlanStatus, to_status: PlanStatus) -> None:
    if not can_transition_plan(from_status, to_status):
        raise InvalidStateTransitionError("plan", from_status.value, to_status.value)
