"""
Execution result models.

Structured outcome of one plan execution. Either the produced file facts
(status SUCCESS) or the classified failure (FAILED / CANCELLED).
"""

from enum import Enum
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

from .failures import FailureClass, is_retryable


class ExecutionStatus(str, Enum):
    """
    SUCCESS: Output written and verified
    FAILED: Invocation failed; see failure_class
    CANCELLED: Invocation terminated by a job cancellation
    """

    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ExecutionResult(BaseModel):
    """
    Result of one plan execution.

    failure_reason is short and user-facing; diagnostics holds the
    transcoder's raw output for operators.
    """

    model_config = ConfigDict(extra="forbid")

    status: ExecutionStatus
    plan_index: int

    output_path: Optional[str] = None
    duration: Optional[float] = None
    size_bytes: Optional[int] = None

    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    failure_class: Optional[FailureClass] = None
    failure_reason: Optional[str] = None
    diagnostics: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    @property
    def retryable(self) -> bool:
        return self.failure_class is not None and is_retryable(self.failure_class)

    def duration_seconds(self) -> Optional[float]:
        """Wall-clock execution time."""
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def summary(self) -> str:
        elapsed = self.duration_seconds()
        timing = f" in {elapsed:.1f}s" if elapsed is not None else ""
        if self.succeeded:
            return f"Plan {self.plan_index}: SUCCESS{timing} -> {self.output_path}"
        label = self.failure_class.value if self.failure_class else self.status.value.upper()
        return f"Plan {self.plan_index}: {label}{timing}: {self.failure_reason}"
