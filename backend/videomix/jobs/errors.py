"""
Errors raised by the job registry and orchestrators.

Routes map JobNotFoundError and OutputNotFoundError to 404 and
InvalidStateTransitionError to 409.
"""


class JobError(Exception):
    """Base class for job failures."""
    pass


class JobNotFoundError(JobError):
    """Raised when a job id is unknown to the registry and the database."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class OutputNotFoundError(JobError):
    """Raised when an output id is unknown or its file is gone."""

    def __init__(self, output_id: str, reason: str = "not found"):
        self.output_id = output_id
        self.reason = reason
        super().__init__(f"Output {output_id}: {reason}")


class InvalidStateTransitionError(JobError):
    """Raised when a job or plan task change is not allowed by its state machine."""

    def __init__(self, entity_type: str, current_state: str, target_state: str):
        self.entity_type = entity_type
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Invalid {entity_type} state transition: "
            f"{current_state} -> {target_state}"
        )


class OrchestratorError(JobError):
    """Raised when a job cannot be handed to the orchestrator."""

    def __init__(self, job_id: str, reason: str):
        self.job_id = job_id
        self.reason = reason
        super().__init__(f"Cannot dispatch job {job_id}: {reason}")
