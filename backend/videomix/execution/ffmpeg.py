"""
FFmpeg transcoder.

Design rules:
- One subprocess per plan (failures stay isolated)
- Progress streamed from `-progress pipe:1` on stdout
- stderr drained on a reader thread, tail kept as diagnostics
- Wall-clock timeout enforced by a watchdog timer
- SIGTERM -> SIGKILL escalation for cancellation and timeout
- Full command string logged for audit
"""

import logging
import os
import shutil
import subprocess
import threading
from collections import deque
from typing import Deque, Dict, Iterator, Optional, Set

from ..pipeline.models import PipelineSpec
from .base import ProgressEvent, Transcoder
from .errors import TranscodeCancelled, TranscodeTimeout, TranscoderUnavailable, error_for
from .failures import classify_failure
from .filtergraph import build_command
from .progress import ProgressParser

logger = logging.getLogger(__name__)

# Lines of stderr kept for diagnostics
DIAGNOSTIC_TAIL_LINES = 200

# Seconds to wait after SIGTERM before SIGKILL
TERMINATE_GRACE_SECONDS = 5


def _terminate(process: subprocess.Popen) -> None:
    """SIGTERM, then SIGKILL if the process is still alive after the grace period."""
    if process.poll() is not None:
        return
    logger.info(f"[FFmpeg] Sending SIGTERM to PID {process.pid}")
    try:
        process.terminate()
        try:
            process.wait(timeout=TERMINATE_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            logger.warning(f"[FFmpeg] PID {process.pid} did not terminate, sending SIGKILL")
            process.kill()
            process.wait()
    except ProcessLookupError:
        pass  # Already gone


class FFmpegTranscoder(Transcoder):
    """FFmpeg-based transcoder using subprocess.Popen."""

    def __init__(self, ffmpeg_path: Optional[str] = None):
        self._ffmpeg_path = ffmpeg_path
        self._lock = threading.Lock()
        self._active_processes: Dict[str, subprocess.Popen] = {}
        self._cancelled_keys: Set[str] = set()

    @property
    def name(self) -> str:
        return "FFmpeg"

    @property
    def available(self) -> bool:
        return self._find_ffmpeg() is not None

    def _find_ffmpeg(self) -> Optional[str]:
        """Find ffmpeg binary path."""
        if self._ffmpeg_path:
            return self._ffmpeg_path

        ffmpeg_path = shutil.which("ffmpeg")
        if ffmpeg_path:
            self._ffmpeg_path = ffmpeg_path
            return ffmpeg_path

        common_paths = [
            "/usr/local/bin/ffmpeg",
            "/usr/bin/ffmpeg",
            "/opt/homebrew/bin/ffmpeg",
        ]
        for path in common_paths:
            if os.path.isfile(path) and os.access(path, os.X_OK):
                self._ffmpeg_path = path
                return path

        return None

    @staticmethod
    def _matches(key: str, target: str) -> bool:
        return key == target or key.startswith(f"{target}:")

    def _is_cancelled(self, key: Optional[str]) -> bool:
        if key is None:
            return False
        return any(self._matches(key, target) for target in self._cancelled_keys)

    def run(
        self,
        spec: PipelineSpec,
        output_path: str,
        timeout: Optional[float] = None,
        cancel_key: Optional[str] = None,
    ) -> Iterator[ProgressEvent]:
        ffmpeg = self._find_ffmpeg()
        if ffmpeg is None:
            raise TranscoderUnavailable(diagnostics="ffmpeg binary not found")

        cmd = build_command(spec, output_path, ffmpeg)
        key = cancel_key or f"plan:{spec.plan_index}:{id(spec)}"
        logger.info(f"[FFmpeg] Executing: {' '.join(cmd)}")

        with self._lock:
            if self._is_cancelled(key):
                raise TranscodeCancelled()
            try:
                process = subprocess.Popen(
                    cmd,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                )
            except OSError as e:
                raise TranscoderUnavailable(diagnostics=f"Could not start ffmpeg: {e}") from e
            self._active_processes[key] = process

        logger.info(f"[FFmpeg] Started PID {process.pid} for plan {spec.plan_index}")

        stderr_tail: Deque[str] = deque(maxlen=DIAGNOSTIC_TAIL_LINES)

        def drain_stderr():
            for line in process.stderr:
                stderr_tail.append(line.rstrip())

        reader = threading.Thread(target=drain_stderr, name=f"ffmpeg-stderr-{process.pid}", daemon=True)
        reader.start()

        timed_out = threading.Event()

        def expire():
            timed_out.set()
            logger.warning(f"[FFmpeg] PID {process.pid} exceeded {timeout}s timeout")
            _terminate(process)

        watchdog = threading.Timer(timeout, expire) if timeout else None
        if watchdog:
            watchdog.daemon = True
            watchdog.start()

        parser = ProgressParser(duration=spec.target_duration)
        try:
            for line in process.stdout:
                event = parser.parse_line(line)
                if event:
                    yield event
            exit_code = process.wait()
        finally:
            if watchdog:
                watchdog.cancel()
            # Consumer stopped early: do not leave the process running
            if process.poll() is None:
                _terminate(process)
            reader.join(timeout=TERMINATE_GRACE_SECONDS)
            with self._lock:
                self._active_processes.pop(key, None)

        diagnostics = "\n".join(stderr_tail)
        logger.info(f"[FFmpeg] PID {process.pid} exited with code {exit_code}")

        with self._lock:
            cancelled = self._is_cancelled(key)
        if cancelled:
            raise TranscodeCancelled(diagnostics=diagnostics, exit_code=exit_code)
        if timed_out.is_set():
            raise TranscodeTimeout(timeout, diagnostics=diagnostics)
        if exit_code != 0:
            failure_class = classify_failure(exit_code, diagnostics)
            logger.error(f"[FFmpeg] Plan {spec.plan_index} failed ({failure_class.value}), exit code {exit_code}")
            raise error_for(failure_class, diagnostics=diagnostics, exit_code=exit_code)

    def cancel(self, key: str) -> int:
        """Terminate every process under key; refuse later starts under it."""
        with self._lock:
            self._cancelled_keys.add(key)
            targets = [
                process for active_key, process in self._active_processes.items()
                if self._matches(active_key, key)
            ]

        logger.info(f"[FFmpeg] Cancelling {len(targets)} process(es) for {key}")
        for process in targets:
            _terminate(process)
        return len(targets)

    def forget(self, key: str) -> None:
        with self._lock:
            self._cancelled_keys.discard(key)

    def active_count(self) -> int:
        with self._lock:
            return len(self._active_processes)
