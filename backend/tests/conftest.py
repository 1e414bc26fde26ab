"""
Shared fixtures for the videomix test suite.

Nothing here needs FFmpeg. Jobs run against ScriptedTranscoder, which
writes a small file per plan and can be told to fail, time out or hang
until its job is cancelled.
"""

import sys
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from videomix.catalog import Clip, Group, InMemoryCatalog
from videomix.config import EngineConfig
from videomix.credits import CreditLedger
from videomix.execution import ProgressEvent, Transcoder
from videomix.execution.errors import TranscodeCancelled, TranscodeTimeout, error_for
from videomix.execution.failures import FailureClass
from videomix.jobs import JobRegistry, is_job_terminal
from videomix.main import build_service
from videomix.persistence import PersistenceManager


# =============================================================================
# Builders
# =============================================================================

def make_clip(clip_id: str, duration: float = 10.0, group_id: Optional[str] = None, has_audio: bool = True) -> Clip:
    return Clip(
        id=clip_id,
        path=f"/media/{clip_id}.mp4",
        duration=duration,
        group_id=group_id,
        has_audio=has_audio,
    )


def make_group(group_id: str, clip_ids: List[str], order: int = 0, duration: float = 10.0) -> Group:
    return Group(
        id=group_id,
        name=group_id.upper(),
        order=order,
        clips=[make_clip(clip_id, duration, group_id=group_id) for clip_id in clip_ids],
    )


def wait_for(predicate: Callable[[], bool], timeout: float = 10.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


# =============================================================================
# Fake transcoder
# =============================================================================

class ScriptedTranscoder(Transcoder):
    """
    Transcoder double.

    fail(plan, *classes) queues one failure per attempt for a plan index;
    hang(plan) makes that plan block until its job is cancelled; release(plan)
    undoes it for later runs.
    """

    HANG_LIMIT = 10.0

    def __init__(self, write_output: bool = True):
        self.write_output = write_output
        self.calls: List[Tuple[int, Optional[str]]] = []
        self.started = threading.Event()
        self._failures: Dict[int, List[FailureClass]] = {}
        self._hanging: Set[int] = set()
        self._cancelled: Set[str] = set()
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "Scripted"

    @property
    def available(self) -> bool:
        return True

    def fail(self, plan_index: int, *classes: FailureClass) -> None:
        self._failures.setdefault(plan_index, []).extend(classes)

    def hang(self, plan_index: int) -> None:
        self._hanging.add(plan_index)

    def release(self, plan_index: int) -> None:
        self._hanging.discard(plan_index)

    def attempts_for(self, plan_index: int) -> int:
        return sum(1 for index, _ in self.calls if index == plan_index)

    def _is_cancelled(self, key: Optional[str]) -> bool:
        if key is None:
            return False
        return any(key == target or key.startswith(f"{target}:") for target in self._cancelled)

    def run(self, spec, output_path, timeout=None, cancel_key=None) -> Iterator[ProgressEvent]:
        with self._lock:
            self.calls.append((spec.plan_index, cancel_key))
            if self._is_cancelled(cancel_key):
                raise TranscodeCancelled()
            script = self._failures.get(spec.plan_index)
            failure = script.pop(0) if script else None

        yield ProgressEvent(seconds=0.0, percent=10.0)

        if spec.plan_index in self._hanging:
            self.started.set()
            deadline = time.monotonic() + self.HANG_LIMIT
            while time.monotonic() < deadline:
                with self._lock:
                    if self._is_cancelled(cancel_key):
                        raise TranscodeCancelled(diagnostics="terminated")
                time.sleep(0.01)
            raise TranscodeTimeout(self.HANG_LIMIT)

        if failure == FailureClass.TRANSCODE_TIMEOUT:
            raise TranscodeTimeout(timeout or 1.0, diagnostics="timed out")
        if failure is not None:
            raise error_for(failure, diagnostics=f"scripted {failure.value}", exit_code=1)

        if self.write_output:
            Path(output_path).write_bytes(b"\x00" * 1024)
        yield ProgressEvent(seconds=spec.target_duration / 2, percent=50.0)
        yield ProgressEvent(seconds=spec.target_duration, percent=100.0)

    def cancel(self, key: str) -> int:
        with self._lock:
            self._cancelled.add(key)
        return 1

    def forget(self, key: str) -> None:
        with self._lock:
            self._cancelled.discard(key)

    def is_cancelled(self, key: str) -> bool:
        with self._lock:
            return self._is_cancelled(key)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def config(tmp_path):
    return EngineConfig(
        db_path=str(tmp_path / "videomix.db"),
        work_dir=str(tmp_path / "work"),
        output_dir=str(tmp_path / "outputs"),
        queue_poll_interval=0.05,
        max_concurrent_jobs=2,
        max_concurrent_mixes=2,
        transcode_timeout=30.0,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
    )


@pytest.fixture
def persistence(config):
    return PersistenceManager(db_path=config.db_path)


@pytest.fixture
def registry(persistence):
    return JobRegistry(persistence)


@pytest.fixture
def ledger(persistence):
    return CreditLedger(persistence)


@pytest.fixture
def catalog():
    """
    Projects:
        flat    - three ungrouped clips, default settings with outputCount 3
        grouped - three groups of two clips, group mixing on, order mixing off
    """
    catalog = InMemoryCatalog()
    catalog.add_project(
        "flat",
        clips=[make_clip("c1", 10.0), make_clip("c2", 12.0), make_clip("c3", 8.0)],
        settings={"outputCount": 3},
    )
    groups = [
        make_group("hooks", ["h1", "h2"], order=0),
        make_group("bodies", ["b1", "b2"], order=1),
        make_group("ctas", ["t1", "t2"], order=2),
    ]
    catalog.add_project(
        "grouped",
        clips=[clip for group in groups for clip in group.clips],
        groups=groups,
        settings={"outputCount": 4, "groupMixing": True, "orderMixing": False},
    )
    return catalog


@pytest.fixture
def transcoder():
    return ScriptedTranscoder()


@pytest.fixture
def make_service(config, catalog, transcoder):
    """Factory for a wired MixService; orchestrators are shut down after the test."""
    services = []

    def factory(engine_config: Optional[EngineConfig] = None, start: bool = True):
        service = build_service(engine_config or config, catalog=catalog, transcoder=transcoder)
        if start:
            service.orchestrator.start()
        services.append(service)
        return service

    yield factory

    for service in services:
        service.orchestrator.shutdown(wait=False)


def wait_for_settled(service, job_id: str, timeout: float = 10.0):
    """Block until the job is terminal, settled and no longer held by a worker."""
    def done():
        job = service.get_job(job_id)
        return (
            is_job_terminal(job.status)
            and job.settled_at is not None
            and not service.orchestrator.is_active(job_id)
        )

    assert wait_for(done, timeout), f"job {job_id} did not settle in {timeout}s"
    return service.get_job(job_id)
