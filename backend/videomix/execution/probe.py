"""
Output probing with ffprobe.

Reads the real duration of a finished output. A failed probe is not a
failed plan: callers fall back to the plan's target duration.
"""

import json
import logging
import shutil
import subprocess
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class OutputProbe:
    """Duration lookup for produced files."""

    def __init__(self, ffprobe_path: Optional[str] = None, timeout: float = 30.0):
        self._ffprobe_path = ffprobe_path
        self.timeout = timeout

    @property
    def available(self) -> bool:
        return self._find_ffprobe() is not None

    def _find_ffprobe(self) -> Optional[str]:
        if self._ffprobe_path:
            return self._ffprobe_path
        found = shutil.which("ffprobe")
        if found:
            self._ffprobe_path = found
        return found

    def _run_ffprobe(self, ffprobe: str, filepath: str) -> Dict[str, Any]:
        cmd = [
            ffprobe,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            filepath,
        ]
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=True,
            timeout=self.timeout,
        )
        return json.loads(result.stdout)

    def duration(self, filepath: str) -> Optional[float]:
        """
        Returns:
            Duration in seconds, or None if it could not be determined
        """
        ffprobe = self._find_ffprobe()
        if ffprobe is None:
            return None
        try:
            data = self._run_ffprobe(ffprobe, filepath)
            return round(float(data["format"]["duration"]), 3)
        except subprocess.CalledProcessError as e:
            logger.warning(f"[Probe] ffprobe exited with code {e.returncode} for {filepath}")
        except subprocess.TimeoutExpired:
            logger.warning(f"[Probe] ffprobe timed out for {filepath}")
        except (OSError, ValueError, KeyError) as e:
            logger.warning(f"[Probe] Could not read duration of {filepath}: {e}")
        return None
