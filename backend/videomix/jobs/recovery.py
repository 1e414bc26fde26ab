"""
Restart sweep.

A process that dies mid-job leaves it PROCESSING with nobody running it.
There is no resume: the sweep fails such jobs, marks their unfinished plans
InterruptedByRestart and settles their credits, so the unproduced portion is
refunded.

Also settles terminal jobs whose settlement was cut off by the crash.

Idempotent: a second sweep finds nothing to do.
"""

import logging
from typing import List

from ..credits import CreditLedger
from ..execution.failures import FailureClass, user_message
from .models import JobStatus, PlanStatus
from .registry import JobRegistry
from .state import TERMINAL_JOB_STATES

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Job interrupted by restart"


def sweep_interrupted_jobs(registry: JobRegistry, ledger: CreditLedger) -> List[str]:
    """
    Fail every PROCESSING job and settle unsettled terminal jobs.

    Must run once at startup, before the orchestrator starts dispatching.

    Returns:
        Ids of the jobs moved to FAILED
    """
    swept: List[str] = []

    for job in registry.list_jobs(JobStatus.PROCESSING):
        for task in job.plan_tasks:
            if not task.is_terminal:
                registry.update_plan(
                    job,
                    task.index,
                    status=PlanStatus.FAILED,
                    failure_class=FailureClass.INTERRUPTED_BY_RESTART,
                    failure_reason=user_message(FailureClass.INTERRUPTED_BY_RESTART),
                )
        registry.transition(job, JobStatus.FAILED, error_message=INTERRUPTED_MESSAGE)
        ledger.settle(job)
        registry.save_job(job)
        swept.append(job.id)
        logger.warning(
            f"[LIFECYCLE] Job {job.id} interrupted by restart: "
            f"{len(job.output_ids)}/{job.requested_plans} produced, "
            f"{job.credits_refunded} credits refunded"
        )

    for status in TERMINAL_JOB_STATES:
        for job in registry.list_jobs(status):
            if job.settled_at is None:
                refund = ledger.settle(job)
                registry.save_job(job)
                logger.info(f"[LIFECYCLE] Settled job {job.id} left unsettled ({refund} credits refunded)")

    if swept:
        logger.info(f"[LIFECYCLE] Restart sweep failed {len(swept)} interrupted job(s)")
    return swept
