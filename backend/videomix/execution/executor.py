"""
Transcode executor.

Runs one PipelineSpec through a Transcoder and turns the outcome into an
ExecutionResult. The executor owns everything around the invocation:

- output file naming inside the work directory
- monotonic progress reporting
- output verification (exists, non-empty) and duration probing
- removal of partial output after a failure

It never retries; retry policy belongs to the job runner.
"""

import logging
from concurrent.futures import Executor
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from ..pipeline.models import PipelineSpec
from .base import Transcoder
from .errors import TranscodeError
from .failures import FailureClass, user_message
from .probe import OutputProbe
from .results import ExecutionResult, ExecutionStatus

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


class TranscodeExecutor:
    """
    Executes compiled pipelines.

    Args:
        transcoder: Capability that runs the invocation
        probe: Duration lookup for produced files (None = trust the plan)
        aux_pool: Optional pool for probing, separate from transcode workers
    """

    def __init__(
        self,
        transcoder: Transcoder,
        probe: Optional[OutputProbe] = None,
        aux_pool: Optional[Executor] = None,
    ):
        self.transcoder = transcoder
        self.probe = probe
        self.aux_pool = aux_pool

    def execute(
        self,
        spec: PipelineSpec,
        work_dir: str,
        on_progress: Optional[ProgressCallback] = None,
        timeout: Optional[float] = None,
        cancel_key: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> ExecutionResult:
        """
        Run one pipeline.

        Args:
            spec: Compiled pipeline
            work_dir: Directory the output is written to (created if missing)
            on_progress: Called with non-decreasing percentages (0-100)
            timeout: Wall-clock limit for the invocation
            cancel_key: Passed through to the transcoder
            filename: Output file stem (default mix_<plan index>)

        Returns:
            ExecutionResult; never raises for transcode failures
        """
        started_at = datetime.now()
        directory = Path(work_dir)
        directory.mkdir(parents=True, exist_ok=True)
        stem = filename or f"mix_{spec.plan_index:04d}"
        output_path = directory / f"{stem}.{spec.encode.extension}"

        last_percent = -1.0

        def report(percent: float) -> None:
            nonlocal last_percent
            percent = max(0.0, min(100.0, percent))
            if percent <= last_percent:
                return
            last_percent = percent
            if on_progress:
                on_progress(percent)

        report(0.0)
        try:
            for event in self.transcoder.run(spec, str(output_path), timeout=timeout, cancel_key=cancel_key):
                report(event.percent)
        except TranscodeError as e:
            self._discard(output_path)
            status = (
                ExecutionStatus.CANCELLED
                if e.failure_class == FailureClass.CANCELLED
                else ExecutionStatus.FAILED
            )
            if e.diagnostics:
                logger.debug(f"[Executor] Plan {spec.plan_index} diagnostics:\n{e.diagnostics}")
            return ExecutionResult(
                status=status,
                plan_index=spec.plan_index,
                started_at=started_at,
                completed_at=datetime.now(),
                failure_class=e.failure_class,
                failure_reason=str(e),
                diagnostics=e.diagnostics or None,
            )

        if not output_path.is_file() or output_path.stat().st_size == 0:
            self._discard(output_path)
            return ExecutionResult(
                status=ExecutionStatus.FAILED,
                plan_index=spec.plan_index,
                started_at=started_at,
                completed_at=datetime.now(),
                failure_class=FailureClass.TRANSCODE_FAILED,
                failure_reason=user_message(FailureClass.TRANSCODE_FAILED),
                diagnostics=f"{self.transcoder.name} exited cleanly but wrote no output to {output_path}",
            )

        duration = self._probe_duration(str(output_path)) or spec.target_duration
        report(100.0)

        result = ExecutionResult(
            status=ExecutionStatus.SUCCESS,
            plan_index=spec.plan_index,
            output_path=str(output_path),
            duration=duration,
            size_bytes=output_path.stat().st_size,
            started_at=started_at,
            completed_at=datetime.now(),
        )
        logger.info(f"[Executor] {result.summary()}")
        return result

    def _probe_duration(self, path: str) -> Optional[float]:
        if self.probe is None:
            return None
        if self.aux_pool is not None:
            return self.aux_pool.submit(self.probe.duration, path).result()
        return self.probe.duration(path)

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"[Executor] Could not remove partial output {path}: {e}")
