"""
Job registry.

Write-through cache over the persistence layer. Every state change is
persisted before the call returns, so a restart sees exactly what the
last caller saw.

All mutations run under one registry lock; plan workers of the same job
update their tasks concurrently.
"""

import threading
from datetime import datetime
from typing import Dict, List, Optional

from ..persistence import PersistenceManager
from .errors import InvalidStateTransitionError, JobNotFoundError, OutputNotFoundError
from .models import Job, JobStatus, Output, PlanStatus
from .state import is_job_terminal, validate_job_transition, validate_plan_transition


class JobRegistry:
    """
    Stores jobs and outputs and applies validated state changes.
    """

    def __init__(self, persistence: PersistenceManager):
        self._persistence = persistence
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.RLock()

    # Lookup

    def register(self, job: Job) -> None:
        """Cache a job whose row was written elsewhere (the credit reservation)."""
        with self._lock:
            self._jobs[job.id] = job

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is not None:
                return job
            data = self._persistence.load_job(job_id)
            if data is None:
                return None
            job = Job.from_record(data)
            self._jobs[job.id] = job
            return job

    def get_job_or_raise(self, job_id: str) -> Job:
        """
        Raises:
            JobNotFoundError: If the job does not exist
        """
        job = self.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(self, status: Optional[JobStatus] = None) -> List[Job]:
        """Jobs ordered by creation time, cached instances preferred."""
        rows = (
            self._persistence.load_jobs_by_status(status.value)
            if status is not None
            else self._persistence.load_all_jobs()
        )
        with self._lock:
            jobs = []
            for row in rows:
                job = self._jobs.get(row["id"])
                if job is None:
                    job = Job.from_record(row)
                    self._jobs[job.id] = job
                jobs.append(job)
            return jobs

    def count_by_status(self) -> Dict[str, int]:
        return self._persistence.count_jobs_by_status()

    # Mutation

    def save_job(self, job: Job) -> None:
        with self._lock:
            self._persistence.save_job(job.to_record())

    def transition(self, job: Job, target: JobStatus, error_message: Optional[str] = None) -> JobStatus:
        """
        Move a job to target and persist it.

        Returns:
            The status the job had before the call

        Raises:
            InvalidStateTransitionError: If the transition is not allowed
        """
        with self._lock:
            previous = job.status
            validate_job_transition(previous, target)
            if previous == target:
                return previous
            job.status = target
            now = datetime.now()
            if target == JobStatus.PROCESSING and job.started_at is None:
                job.started_at = now
            if is_job_terminal(target):
                job.completed_at = now
            if error_message is not None:
                job.error_message = error_message
            self.save_job(job)
            return previous

    def try_transition(self, job: Job, target: JobStatus, error_message: Optional[str] = None) -> bool:
        try:
            self.transition(job, target, error_message)
            return True
        except InvalidStateTransitionError:
            return False

    def update_plan(self, job: Job, index: int, **changes) -> None:
        """
        Apply changes to one plan task, refresh job progress and persist.

        A status change is validated against the plan state machine.
        """
        with self._lock:
            task = job.plan_task(index)
            status = changes.get("status")
            if status is not None:
                validate_plan_transition(task.status, status)
                now = datetime.now()
                if status == PlanStatus.RUNNING and task.started_at is None:
                    changes.setdefault("started_at", now)
                if status in (PlanStatus.COMPLETED, PlanStatus.FAILED, PlanStatus.CANCELLED):
                    changes.setdefault("completed_at", now)
            for field_name, value in changes.items():
                setattr(task, field_name, value)
            job.progress = max(job.progress, job.compute_progress())
            self.save_job(job)

    def set_plan_progress(self, job: Job, index: int, percent: float) -> None:
        """Live per-plan progress. Kept in memory only."""
        with self._lock:
            task = job.plan_task(index)
            task.progress_percent = max(task.progress_percent, percent)

    # Outputs

    def add_output(self, job: Job, output: Output) -> None:
        """Register an output and link it to its job and plan task."""
        with self._lock:
            self._persistence.save_output(output.to_record())
            job.output_ids.append(output.id)
            job.plan_task(output.plan_index).output_id = output.id
            self.save_job(job)

    def get_output_or_raise(self, output_id: str) -> Output:
        data = self._persistence.load_output(output_id)
        if data is None:
            raise OutputNotFoundError(output_id)
        return Output.from_record(data)

    def list_outputs(self, job_id: str) -> List[Output]:
        """
        Raises:
            JobNotFoundError: If the job does not exist
        """
        self.get_job_or_raise(job_id)
        return [Output.from_record(row) for row in self._persistence.load_outputs_for_job(job_id)]
