"""
Mix service facade.

The operations exposed to callers (HTTP routes, CLI). Wires the catalog,
generator, credit ledger, registry and orchestrator together; holds no state
of its own.

start_job is the admission path:
1. Validate settings and the encoding profile (nothing charged on failure)
2. Generate plans to learn the achievable count
3. Compile every plan (nothing charged when one cannot be built)
4. Price and reserve credits for that count, creating the job atomically
5. Hand the job to the orchestrator
"""

import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from .catalog import ClipCatalog, SettingsSource, load_project_material
from .config import EngineConfig
from .credits import CreditEstimate, CreditLedger
from .jobs import (
    InvalidStateTransitionError,
    Job,
    JobOrchestrator,
    JobRegistry,
    JobStatus,
    OrchestratorError,
    Output,
    OutputNotFoundError,
    PlanTask,
)
from .jobs.runner import cancel_unstarted
from .mixing import InsufficientSourceMaterial, MixPlan, MixPlanGenerator, MixSettings
from .pipeline import PipelineCompiler, build_encode_profile

logger = logging.getLogger(__name__)

# Rough transcode speed used for the user-facing time estimate
REALTIME_FACTOR = 4.0


class JobStarted(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    job_id: str
    credits_deducted: int
    planned_outputs: int
    requested_outputs: int
    estimated_duration: str
    warnings: List[str] = Field(default_factory=list)


class JobStatusView(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    job_id: str
    status: JobStatus
    progress: int
    error_message: Optional[str] = None
    planned_outputs: int
    produced_outputs: int
    credits_reserved: int
    credits_refunded: int


class DownloadTarget(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    path: str
    media_type: str
    filename: str


def estimate_processing_time(plans: Sequence[MixPlan]) -> str:
    """Human estimate of wall time for rendering plans."""
    total = sum(plan.target_duration for plan in plans)
    minutes = max(1, math.ceil(total / 60 / REALTIME_FACTOR))
    if minutes < 60:
        return f"{minutes} minutes"
    hours, remainder = divmod(minutes, 60)
    return f"{hours} hours {remainder} minutes" if remainder else f"{hours} hours"


class MixService:
    """
    Facade over the mix engine.
    """

    def __init__(
        self,
        config: EngineConfig,
        catalog: ClipCatalog,
        settings_source: SettingsSource,
        registry: JobRegistry,
        ledger: CreditLedger,
        orchestrator: JobOrchestrator,
        generator: Optional[MixPlanGenerator] = None,
        compiler: Optional[PipelineCompiler] = None,
    ):
        self.config = config
        self.catalog = catalog
        self.settings_source = settings_source
        self.registry = registry
        self.ledger = ledger
        self.orchestrator = orchestrator
        self.generator = generator or MixPlanGenerator(config.max_output_count)
        self.compiler = compiler or PipelineCompiler()

    # Planning

    def load_settings(self, project_id: str) -> MixSettings:
        return MixSettings.parse(self.settings_source.get_settings(project_id))

    def preview_plans(self, project_id: str, settings: Optional[MixSettings] = None) -> List[MixPlan]:
        """
        Generate a project's plans without charging or running anything.

        Raises:
            InvalidSettings, InsufficientSourceMaterial, CatalogError
        """
        settings = settings or self.load_settings(project_id)
        material = load_project_material(self.catalog, project_id)
        return self.generator.generate(material.groups, settings, material.ungrouped)

    def estimate_credits(
        self,
        output_count: int,
        settings: Union[MixSettings, Dict[str, Any]],
    ) -> CreditEstimate:
        if not isinstance(settings, MixSettings):
            settings = MixSettings.parse(settings)
        return self.ledger.estimate(output_count, settings)

    # Jobs

    def start_job(self, project_id: str, user_id: str) -> JobStarted:
        """
        Admit and dispatch a generation job.

        Raises:
            InvalidSettings: Settings failed validation
            EncodingProfileInvalid: Format/codec/resolution combination unsupported
            UnsupportedTransitionCombination: A plan's transitions cannot be built
            InsufficientSourceMaterial: The project cannot fill a plan
            CatalogError: The project cannot be read
            InsufficientCredits: Balance does not cover the achievable count
        """
        settings = self.load_settings(project_id)
        build_encode_profile(settings)

        plans = self.preview_plans(project_id, settings)
        if not plans:
            raise InsufficientSourceMaterial("No mix can be built from the project's clips")
        for plan in plans:
            self.compiler.compile(plan, settings)

        planned = len(plans)
        cost = self.ledger.estimate(planned, settings).credits_required
        job = Job(
            project_id=project_id,
            user_id=user_id,
            settings=settings.snapshot(),
            requested_plans=planned,
            plan_tasks=[PlanTask(index=plan.index) for plan in plans],
            credits_reserved=cost,
        )

        self.ledger.reserve(
            user_id,
            cost,
            job.id,
            f"Mix generation: {planned} output(s) for project {project_id}",
            job_record=job.to_record(),
        )
        self.registry.register(job)
        logger.info(
            f"[LIFECYCLE] Job {job.id} created: {planned}/{settings.output_count} mixes, {cost} credits"
        )

        try:
            self.orchestrator.submit(job.id)
        except OrchestratorError as e:
            logger.error(f"[LIFECYCLE] {e}")
            self.registry.try_transition(job, JobStatus.FAILED, error_message="Job could not be dispatched")
            cancel_unstarted(self.registry, job)
            self.ledger.settle(job)
            self.registry.save_job(job)
            raise

        warnings = sorted({warning for plan in plans for warning in plan.warnings})
        return JobStarted(
            job_id=job.id,
            credits_deducted=cost,
            planned_outputs=planned,
            requested_outputs=settings.output_count,
            estimated_duration=estimate_processing_time(plans),
            warnings=warnings,
        )

    def get_job(self, job_id: str) -> Job:
        return self.registry.get_job_or_raise(job_id)

    def get_job_status(self, job_id: str) -> JobStatusView:
        job = self.registry.get_job_or_raise(job_id)
        return JobStatusView(
            job_id=job.id,
            status=job.status,
            progress=job.progress,
            error_message=job.error_message,
            planned_outputs=job.requested_plans,
            produced_outputs=len(job.output_ids),
            credits_reserved=job.credits_reserved,
            credits_refunded=job.credits_refunded,
        )

    def cancel_job(self, job_id: str) -> Job:
        """
        Cancel a pending or processing job.

        Produced outputs are kept. A pending job is settled here; a running
        job is settled by its runner once in-flight work has stopped.

        Raises:
            JobNotFoundError: Unknown job
            InvalidStateTransitionError: The job is already terminal
        """
        job = self.registry.get_job_or_raise(job_id)
        previous = self.registry.transition(job, JobStatus.CANCELLED, error_message="Cancelled by user")
        if previous == JobStatus.CANCELLED:
            raise InvalidStateTransitionError("job", previous.value, JobStatus.CANCELLED.value)

        signalled = self.orchestrator.cancel(job.id)
        logger.info(f"[LIFECYCLE] Job {job.id} cancelled from {previous.value} ({signalled} process(es) stopped)")

        if previous == JobStatus.PENDING:
            cancel_unstarted(self.registry, job)
            self.ledger.settle(job)
            self.registry.save_job(job)
        return job

    # Outputs

    def list_outputs(self, job_id: str) -> List[Output]:
        return self.registry.list_outputs(job_id)

    def download_output(self, output_id: str) -> DownloadTarget:
        """
        Raises:
            OutputNotFoundError: Unknown output, or its file no longer exists
        """
        output = self.registry.get_output_or_raise(output_id)
        if not Path(output.path).is_file():
            raise OutputNotFoundError(output_id, "file no longer exists")
        return DownloadTarget(path=output.path, media_type=output.media_type, filename=output.filename)

    # Operations

    def health(self) -> Dict[str, Any]:
        return {
            "status": "ok",
            "transcoder": {
                "name": self.orchestrator.transcoder.name,
                "available": self.orchestrator.transcoder.available,
            },
            "jobs": self.registry.count_by_status(),
            "orchestrator": self.orchestrator.stats(),
        }
