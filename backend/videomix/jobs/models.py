"""
Job, PlanTask and Output data models.

A job renders the plans of one generation request. Each plan is tracked by
its own PlanTask and moves through its states independently: one plan
failing never blocks the others.

All models use Pydantic for validation.
State transitions are validated externally (see state.py).
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..execution.failures import FailureClass


class JobStatus(str, Enum):
    """
    Job-level status.
    """

    PENDING = "PENDING"  # Credits reserved, waiting for a worker
    PROCESSING = "PROCESSING"  # At least one plan has been dispatched
    COMPLETED = "COMPLETED"  # At least one output produced, nothing left to run
    FAILED = "FAILED"  # No output produced, or interrupted by restart
    CANCELLED = "CANCELLED"  # Cancelled by the user (terminal)


class PlanStatus(str, Enum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


TERMINAL_PLAN_STATES = frozenset({PlanStatus.COMPLETED, PlanStatus.FAILED, PlanStatus.CANCELLED})


class PlanTask(BaseModel):
    """
    Execution record for one plan of a job.
    """

    model_config = ConfigDict(extra="forbid")

    index: int
    status: PlanStatus = PlanStatus.QUEUED

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    attempts: int = 0
    timeouts: int = 0
    progress_percent: float = 0.0

    # Outcome
    failure_class: Optional[FailureClass] = None
    failure_reason: Optional[str] = None  # Short, user-facing
    diagnostics: Optional[str] = None  # Transcoder output, never shown to users
    output_id: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PLAN_STATES


class Job(BaseModel):
    """
    A mix generation job.

    settings is the validated settings snapshot taken at start; plans are
    regenerated from it deterministically, so it is the only plan input
    stored with the job besides the project id.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    project_id: str
    user_id: str

    status: JobStatus = JobStatus.PENDING
    progress: int = 0

    created_at: datetime = Field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    settings: Dict[str, Any] = Field(default_factory=dict)
    requested_plans: int
    plan_tasks: List[PlanTask] = Field(default_factory=list)
    output_ids: List[str] = Field(default_factory=list)

    credits_reserved: int = 0
    credits_refunded: int = 0
    settled_at: Optional[datetime] = None

    def plan_task(self, index: int) -> PlanTask:
        return self.plan_tasks[index]

    @property
    def terminal_plan_count(self) -> int:
        return sum(1 for task in self.plan_tasks if task.is_terminal)

    def compute_progress(self) -> int:
        """Percentage of requested plans that reached a terminal plan state."""
        if self.requested_plans == 0:
            return 100
        return int(self.terminal_plan_count * 100 / self.requested_plans)

    def failure_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for task in self.plan_tasks:
            if task.status == PlanStatus.FAILED:
                key = task.failure_class.value if task.failure_class else "Unknown"
                counts[key] = counts.get(key, 0) + 1
        return counts

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Job":
        return cls.model_validate(data)


class Output(BaseModel):
    """A produced mix file. Immutable once registered."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    job_id: str
    plan_index: int
    path: str
    filename: str
    format: str
    media_type: str
    duration: Optional[float] = None
    size_bytes: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Output":
        return cls.model_validate(data)
