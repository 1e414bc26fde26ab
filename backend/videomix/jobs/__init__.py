"""
Job orchestration: lifecycle, retries, cancellation and restart recovery.
"""

from .errors import (
    JobError,
    JobNotFoundError,
    OutputNotFoundError,
    InvalidStateTransitionError,
    OrchestratorError,
)
from .models import Job, JobStatus, Output, PlanStatus, PlanTask
from .orchestrator import (
    JobOrchestrator,
    InProcessOrchestrator,
    PersistentQueueOrchestrator,
    build_orchestrator,
)
from .recovery import sweep_interrupted_jobs, INTERRUPTED_MESSAGE
from .registry import JobRegistry
from .retry import RetryPolicy
from .runner import JobRunner, summarize_failures
from .state import (
    TERMINAL_JOB_STATES,
    is_job_terminal,
    can_transition_job,
    validate_job_transition,
)

__all__ = [
    "Job",
    "JobStatus",
    "PlanTask",
    "PlanStatus",
    "Output",
    "JobRegistry",
    "JobRunner",
    "RetryPolicy",
    "JobOrchestrator",
    "InProcessOrchestrator",
    "PersistentQueueOrchestrator",
    "build_orchestrator",
    "sweep_interrupted_jobs",
    "summarize_failures",
    "INTERRUPTED_MESSAGE",
    "TERMINAL_JOB_STATES",
    "is_job_terminal",
    "can_transition_job",
    "validate_job_transition",
    "JobError",
    "JobNotFoundError",
    "OutputNotFoundError",
    "InvalidStateTransitionError",
    "OrchestratorError",
]
