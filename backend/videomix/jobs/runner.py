"""
Job runner.

Executes one job end to end on the calling thread:

1. Regenerate the plans from the job's settings snapshot
2. Move the job to PROCESSING
3. Compile and execute every plan on the shared plan pool, with retries
4. Register each produced output as it completes
5. Decide the terminal state and settle credits

Design rules:
- One plan failing never aborts the job; the job fails only when nothing was produced
- Cancellation stops dispatch, terminates in-flight transcodes and keeps produced outputs
- A service shutdown is not a cancellation: stopped plans are InterruptedByRestart and
  the job fails the way the restart sweep would fail it
- Settlement runs after every plan is terminal, whatever the outcome
"""

import logging
import threading
from concurrent.futures import Executor, wait
from pathlib import Path
from typing import List, Optional

from ..catalog import CatalogError, ClipCatalog, load_project_material
from ..config import EngineConfig
from ..credits import CreditLedger
from ..execution import ExecutionStatus, FailureClass, TranscodeExecutor, user_message
from ..mixing import MixingError, MixPlan, MixPlanGenerator, MixSettings
from ..pipeline import CompileError, PipelineCompiler
from .models import Job, JobStatus, Output, PlanStatus
from .recovery import INTERRUPTED_MESSAGE
from .registry import JobRegistry
from .retry import RetryPolicy
from .state import is_job_terminal

logger = logging.getLogger(__name__)


def summarize_failures(job: Job) -> str:
    """One-line failure summary: counts per class plus the first user-facing reason."""
    counts = job.failure_counts()
    failed = sum(counts.values())
    detail = ", ".join(f"{name}: {count}" for name, count in sorted(counts.items()))
    first_reason = next(
        (task.failure_reason for task in job.plan_tasks if task.failure_reason),
        "no output was produced",
    )
    if not failed:
        return f"No outputs produced: {first_reason}"
    return f"All {failed} mix(es) failed ({detail}): {first_reason}"


def cancel_unstarted(registry: JobRegistry, job: Job) -> None:
    for task in job.plan_tasks:
        if task.status == PlanStatus.QUEUED:
            registry.update_plan(
                job, task.index,
                status=PlanStatus.CANCELLED,
                failure_class=FailureClass.CANCELLED,
                failure_reason=user_message(FailureClass.CANCELLED),
            )


class JobRunner:
    """
    Runs jobs. Shared by every orchestrator; holds no per-job state.
    """

    def __init__(
        self,
        registry: JobRegistry,
        ledger: CreditLedger,
        catalog: ClipCatalog,
        executor: TranscodeExecutor,
        plan_pool: Executor,
        config: EngineConfig,
        generator: Optional[MixPlanGenerator] = None,
        compiler: Optional[PipelineCompiler] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.registry = registry
        self.ledger = ledger
        self.catalog = catalog
        self.executor = executor
        self.plan_pool = plan_pool
        self.config = config
        self.generator = generator or MixPlanGenerator(config.max_output_count)
        self.compiler = compiler or PipelineCompiler()
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=config.max_attempts,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
        )

    def run(
        self,
        job_id: str,
        cancel_event: threading.Event,
        stop_event: Optional[threading.Event] = None,
    ) -> Job:
        """
        Run a job to a terminal state.

        cancel_event is set for a user cancel and for a shutdown; stop_event is
        set only for a shutdown.

        Returns:
            The job after settlement
        """
        job = self.registry.get_job_or_raise(job_id)

        if is_job_terminal(job.status):
            # Cancelled (or swept) before a worker picked it up
            cancel_unstarted(self.registry, job)
            self.ledger.settle(job)
            self.registry.save_job(job)
            return job

        try:
            settings = MixSettings.parse(job.settings)
            plans = self._regenerate(job, settings)
        except (CatalogError, MixingError) as e:
            logger.error(f"[Runner] Job {job.id} could not regenerate its plans: {e}")
            self.registry.try_transition(job, JobStatus.FAILED, error_message=str(e))
            self._fail_unstarted(job, str(e))
            return self._finish(job)

        if not self.registry.try_transition(job, JobStatus.PROCESSING):
            logger.info(f"[Runner] Job {job.id} is {job.status.value}, not starting")
            cancel_unstarted(self.registry, job)
            return self._finish(job)

        logger.info(f"[Runner] Job {job.id} started: {len(plans)} mix(es)")

        futures = [
            self.plan_pool.submit(self._run_plan, job, plan, settings, cancel_event, stop_event)
            for plan in plans
        ]
        wait(futures)
        for future in futures:
            error = future.exception()
            if error is not None:
                logger.error(f"[Runner] Plan worker for job {job.id} crashed: {error!r}")

        interrupted = [
            task.index for task in job.plan_tasks
            if task.failure_class == FailureClass.INTERRUPTED_BY_RESTART
        ]
        if interrupted and not is_job_terminal(job.status):
            logger.warning(f"[Runner] Job {job.id} stopped by shutdown: plans {interrupted} interrupted")
            self._fail_unstarted(job, user_message(FailureClass.INTERRUPTED_BY_RESTART))
            self.registry.try_transition(job, JobStatus.FAILED, error_message=INTERRUPTED_MESSAGE)
            return self._finish(job)

        # Any task a crashed worker left behind
        self._fail_unstarted(job, "Mix could not be processed")

        if job.output_ids:
            self.registry.try_transition(job, JobStatus.COMPLETED)
        else:
            self.registry.try_transition(job, JobStatus.FAILED, error_message=summarize_failures(job))

        return self._finish(job)

    def _regenerate(self, job: Job, settings: MixSettings) -> List[MixPlan]:
        material = load_project_material(self.catalog, job.project_id)
        plans = self.generator.generate(material.groups, settings, material.ungrouped)
        if len(plans) < job.requested_plans:
            logger.warning(
                f"[Runner] Job {job.id}: source material now allows {len(plans)} of "
                f"{job.requested_plans} mixes"
            )
            for task in job.plan_tasks[len(plans):]:
                self.registry.update_plan(
                    job,
                    task.index,
                    status=PlanStatus.FAILED,
                    failure_reason="Mix no longer achievable from the project's clips",
                )
        return plans[:job.requested_plans]

    def _fail_unstarted(self, job: Job, reason: str) -> None:
        for task in job.plan_tasks:
            if not task.is_terminal:
                self.registry.update_plan(job, task.index, status=PlanStatus.FAILED, failure_reason=reason)

    def _finish(self, job: Job) -> Job:
        refund = self.ledger.settle(job)
        self.registry.save_job(job)
        logger.info(
            f"[Runner] Job {job.id} {job.status.value}: {len(job.output_ids)}/"
            f"{job.requested_plans} produced, {refund} credits refunded"
        )
        return job

    def _stop_plan(self, job: Job, index: int, stop_event: Optional[threading.Event]) -> None:
        """Record a plan stopped before it produced an output."""
        if stop_event is not None and stop_event.is_set() and job.status != JobStatus.CANCELLED:
            failure_class = FailureClass.INTERRUPTED_BY_RESTART
            status = PlanStatus.FAILED
        else:
            failure_class = FailureClass.CANCELLED
            status = PlanStatus.CANCELLED
        self.registry.update_plan(
            job, index,
            status=status,
            failure_class=failure_class,
            failure_reason=user_message(failure_class),
        )

    def _run_plan(
        self,
        job: Job,
        plan: MixPlan,
        settings: MixSettings,
        cancel_event: threading.Event,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        index = plan.index
        if cancel_event.is_set() or (stop_event is not None and stop_event.is_set()):
            self._stop_plan(job, index, stop_event)
            return

        try:
            spec = self.compiler.compile(plan, settings)
        except CompileError as e:
            logger.error(f"[Runner] Job {job.id} plan {index} did not compile: {e}")
            self.registry.update_plan(
                job, index,
                status=PlanStatus.FAILED,
                failure_class=FailureClass.PIPELINE_INVALID,
                failure_reason=user_message(FailureClass.PIPELINE_INVALID),
                diagnostics=str(e),
            )
            return

        self.registry.update_plan(job, index, status=PlanStatus.RUNNING, warnings=list(plan.warnings))
        task = job.plan_task(index)
        work_dir = str(Path(self.config.output_dir) / job.id)
        cancel_key = f"{job.id}:{index}"

        while True:
            attempts = task.attempts + 1
            self.registry.update_plan(job, index, attempts=attempts)
            result = self.executor.execute(
                spec,
                work_dir,
                on_progress=lambda percent: self.registry.set_plan_progress(job, index, percent),
                timeout=self.config.transcode_timeout,
                cancel_key=cancel_key,
            )

            if result.status == ExecutionStatus.SUCCESS:
                output = Output(
                    job_id=job.id,
                    plan_index=index,
                    path=result.output_path,
                    filename=Path(result.output_path).name,
                    format=spec.encode.extension,
                    media_type=spec.encode.media_type,
                    duration=result.duration,
                    size_bytes=result.size_bytes,
                    metadata={
                        "source_clip_ids": list(spec.source_clip_ids),
                        "creation_time": spec.metadata.get("creation_time"),
                        "tags": dict(spec.metadata),
                    },
                )
                self.registry.add_output(job, output)
                self.registry.update_plan(job, index, status=PlanStatus.COMPLETED, progress_percent=100.0)
                return

            if result.status == ExecutionStatus.CANCELLED or cancel_event.is_set():
                self._stop_plan(job, index, stop_event)
                return

            failure_class = result.failure_class or FailureClass.TRANSCODE_FAILED
            timeouts = task.timeouts + (1 if failure_class == FailureClass.TRANSCODE_TIMEOUT else 0)
            self.registry.update_plan(job, index, timeouts=timeouts, diagnostics=result.diagnostics)

            if not self.retry_policy.should_retry(failure_class, attempts, timeouts):
                logger.warning(
                    f"[Runner] Job {job.id} plan {index} failed after {attempts} attempt(s): "
                    f"{failure_class.value}"
                )
                self.registry.update_plan(
                    job, index,
                    status=PlanStatus.FAILED,
                    failure_class=failure_class,
                    failure_reason=user_message(failure_class),
                )
                return

            delay = self.retry_policy.delay_for(attempts)
            logger.info(
                f"[Runner] Job {job.id} plan {index} attempt {attempts} failed "
                f"({failure_class.value}), retrying in {delay:g}s"
            )
            if cancel_event.wait(delay):
                self._stop_plan(job, index, stop_event)
                return
