"""
Job orchestrators.

Two interchangeable implementations, selected by EngineConfig.queue_backend:

- InProcessOrchestrator: jobs go straight onto an in-process job pool
- PersistentQueueOrchestrator: jobs go into the SQLite job_queue table and a
  dispatcher thread claims them; queued jobs survive a restart

Both own the same three bounded pools:
- job pool (max_concurrent_jobs): one thread per running job
- plan pool (max_concurrent_mixes): shared by all jobs, one transcode per thread
- aux pool (aux_concurrency): output probing

Cancellation is cooperative: a per-job event stops dispatch and retries, and
the transcoder terminates the job's in-flight processes.

A shutdown without waiting uses the same signals plus a stop event, so the
runner records the stopped plans as interrupted rather than cancelled.
"""

import logging
import os
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional

from ..catalog import ClipCatalog
from ..config import EngineConfig, QUEUE_BACKEND_SQLITE
from ..credits import CreditLedger
from ..execution import OutputProbe, TranscodeExecutor, Transcoder
from ..persistence import PersistenceManager
from .errors import OrchestratorError
from .models import JobStatus
from .registry import JobRegistry
from .runner import JobRunner

logger = logging.getLogger(__name__)


class JobOrchestrator(ABC):
    """
    Dispatches jobs to workers and routes cancellation.
    """

    def __init__(
        self,
        config: EngineConfig,
        registry: JobRegistry,
        ledger: CreditLedger,
        catalog: ClipCatalog,
        transcoder: Transcoder,
        probe: Optional[OutputProbe] = None,
    ):
        self.config = config
        self.registry = registry
        self.transcoder = transcoder

        self.job_pool = ThreadPoolExecutor(max_workers=config.max_concurrent_jobs, thread_name_prefix="videomix-job")
        self.plan_pool = ThreadPoolExecutor(max_workers=config.max_concurrent_mixes, thread_name_prefix="videomix-mix")
        self.aux_pool = ThreadPoolExecutor(max_workers=config.aux_concurrency, thread_name_prefix="videomix-aux")

        executor = TranscodeExecutor(transcoder, probe=probe, aux_pool=self.aux_pool)
        self.runner = JobRunner(registry, ledger, catalog, executor, self.plan_pool, config)

        self._lock = threading.Lock()
        self._cancel_events: Dict[str, threading.Event] = {}
        self._active: set = set()
        self._started = False
        # Set by shutdown(wait=False); distinguishes a shutdown from a user cancel
        self._stopping = threading.Event()

    @abstractmethod
    def submit(self, job_id: str) -> None:
        """Hand a PENDING job over for execution."""
        ...

    def start(self) -> None:
        """Begin dispatching. Re-dispatches jobs left PENDING by a previous process."""
        with self._lock:
            if self._started:
                return
            self._started = True
        pending = self.registry.list_jobs(JobStatus.PENDING)
        for job in pending:
            self.submit(job.id)
        if pending:
            logger.info(f"[Orchestrator] Re-dispatched {len(pending)} pending job(s)")

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop the pools.

        wait=True drains every submitted job. wait=False stops in-flight
        plans as interrupted (not cancelled) and leaves jobs no worker has
        started PENDING for the next start.
        """
        logger.info("[Orchestrator] Shutting down")
        if not wait:
            self._stopping.set()
        with self._lock:
            active = list(self._active)
        if not wait:
            for job_id in active:
                self._event_for(job_id).set()
                self.transcoder.cancel(job_id)
        self.job_pool.shutdown(wait=wait)
        self.plan_pool.shutdown(wait=wait)
        self.aux_pool.shutdown(wait=wait)

    def cancel(self, job_id: str) -> int:
        """
        Stop a job's remaining work.

        Returns:
            Number of transcoder processes signalled
        """
        self._event_for(job_id).set()
        return self.transcoder.cancel(job_id)

    def is_active(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._active

    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def stats(self) -> Dict[str, Any]:
        return {
            "backend": self.config.queue_backend,
            "active_jobs": self.active_count(),
            "max_concurrent_jobs": self.config.max_concurrent_jobs,
            "max_concurrent_mixes": self.config.max_concurrent_mixes,
        }

    def _event_for(self, job_id: str) -> threading.Event:
        with self._lock:
            event = self._cancel_events.get(job_id)
            if event is None:
                event = threading.Event()
                self._cancel_events[job_id] = event
            return event

    def _execute(self, job_id: str) -> None:
        """Job pool entry point."""
        if self._stopping.is_set():
            logger.info(f"[Orchestrator] Job {job_id} left pending at shutdown")
            return
        event = self._event_for(job_id)
        with self._lock:
            self._active.add(job_id)
        try:
            self.runner.run(job_id, event, self._stopping)
        except Exception:
            logger.exception(f"[Orchestrator] Job {job_id} crashed")
            job = self.registry.get_job(job_id)
            if job is not None and self.registry.try_transition(
                job, JobStatus.FAILED, error_message="Internal error while processing job"
            ):
                self.runner.ledger.settle(job)
                self.registry.save_job(job)
        finally:
            self.transcoder.forget(job_id)
            with self._lock:
                self._active.discard(job_id)
                self._cancel_events.pop(job_id, None)


class InProcessOrchestrator(JobOrchestrator):
    """Jobs queue on the job pool's in-memory work queue."""

    def submit(self, job_id: str) -> None:
        try:
            self.job_pool.submit(self._execute, job_id)
        except RuntimeError as e:
            # Pool already shut down
            raise OrchestratorError(job_id, str(e)) from e
        logger.info(f"[Orchestrator] Job {job_id} submitted")


class PersistentQueueOrchestrator(JobOrchestrator):
    """
    Jobs queue in SQLite; a dispatcher thread claims them while the job
    pool has a free slot.
    """

    def __init__(self, *args, persistence: PersistenceManager, **kwargs):
        super().__init__(*args, **kwargs)
        self.persistence = persistence
        self.worker_id = f"{os.getpid()}-{id(self):x}"
        self._stop = threading.Event()
        self._wake = threading.Event()
        self._dispatcher: Optional[threading.Thread] = None
        # Claimed by the dispatcher, not yet picked up by a job worker
        self._claimed: set = set()

    def submit(self, job_id: str) -> None:
        self.persistence.enqueue_job(job_id)
        self._wake.set()
        logger.info(f"[Orchestrator] Job {job_id} enqueued")

    def start(self) -> None:
        released = self.persistence.release_claims()
        if released:
            logger.info(f"[Orchestrator] Released {released} stale queue claim(s)")
        super().start()
        self._dispatcher = threading.Thread(target=self._dispatch_loop, name="videomix-dispatcher", daemon=True)
        self._dispatcher.start()

    def shutdown(self, wait: bool = True) -> None:
        self._stop.set()
        self._wake.set()
        if self._dispatcher is not None:
            self._dispatcher.join(timeout=5)
        super().shutdown(wait=wait)

    def stats(self) -> Dict[str, Any]:
        stats = super().stats()
        stats["queue_depth"] = self.persistence.queue_depth()
        return stats

    def _dispatch_loop(self) -> None:
        while not self._stop.is_set():
            if self.active_count() + self._claimed_pending() >= self.config.max_concurrent_jobs:
                self._sleep()
                continue
            job_id = self.persistence.claim_next_job(self.worker_id)
            if job_id is None:
                self._sleep()
                continue
            self._reserve_slot(job_id)
            try:
                self.job_pool.submit(self._execute_queued, job_id)
            except RuntimeError:
                # Shutting down; the claim is released on next start
                logger.info(f"[Orchestrator] Job {job_id} left queued at shutdown")
                return

    def _sleep(self) -> None:
        self._wake.wait(self.config.queue_poll_interval)
        self._wake.clear()

    def _claimed_pending(self) -> int:
        with self._lock:
            return len(self._claimed)

    def _reserve_slot(self, job_id: str) -> None:
        with self._lock:
            self._claimed.add(job_id)

    def _execute_queued(self, job_id: str) -> None:
        if self._stopping.is_set():
            # The claim is released on next start
            with self._lock:
                self._claimed.discard(job_id)
            logger.info(f"[Orchestrator] Job {job_id} left queued at shutdown")
            return
        with self._lock:
            self._active.add(job_id)
            self._claimed.discard(job_id)
        try:
            self._execute(job_id)
        finally:
            with self._lock:
                self._active.discard(job_id)
            self.persistence.complete_queue_entry(job_id)
            self._wake.set()


def build_orchestrator(
    config: EngineConfig,
    registry: JobRegistry,
    ledger: CreditLedger,
    catalog: ClipCatalog,
    transcoder: Transcoder,
    persistence: PersistenceManager,
    probe: Optional[OutputProbe] = None,
) -> JobOrchestrator:
    """Create the orchestrator named by config.queue_backend."""
    if config.queue_backend == QUEUE_BACKEND_SQLITE:
        return PersistentQueueOrchestrator(
            config, registry, ledger, catalog, transcoder, probe, persistence=persistence,
        )
    return InProcessOrchestrator(config, registry, ledger, catalog, transcoder, probe)
