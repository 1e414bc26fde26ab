"""
FFmpeg progress parsing.

The transcoder runs FFmpeg with `-progress pipe:1`, which writes blocks of
key=value lines to stdout:

    frame=240
    fps=60.0
    out_time_us=4000000
    out_time=00:00:04.000000
    progress=continue

The classic stderr stats line is accepted too:

    frame=   24 fps= 12 q=28.0 size=       0kB time=00:00:01.00 bitrate=   0.0kbits/s

Percent is computed against the plan's target duration and never moves
backwards.
"""

import re
from typing import Callable, Optional

from .base import ProgressEvent


# out_time=00:00:04.000000 (progress pipe) or time=00:00:01.00 (stderr stats)
TIME_PATTERN = re.compile(r'(?:out_)?time=(\d{2,}):(\d{2}):(\d{2})(?:\.(\d+))?')

# out_time_us=4000000 / out_time_ms=4000000 (FFmpeg reports microseconds in both)
MICROSECONDS_PATTERN = re.compile(r'out_time_(?:us|ms)=(\d+)')

END_PATTERN = re.compile(r'progress=end')


class ProgressParser:
    """
    Turn FFmpeg progress output into monotonic ProgressEvents.

    Usage:
        parser = ProgressParser(duration=30.0)
        for line in process.stdout:
            event = parser.parse_line(line)
            if event:
                report(event.percent)
    """

    def __init__(
        self,
        duration: float,
        on_progress: Optional[Callable[[ProgressEvent], None]] = None,
    ):
        """
        Args:
            duration: Expected output duration in seconds
            on_progress: Optional callback for each new event
        """
        self.duration = duration
        self.on_progress = on_progress
        self._seconds = 0.0
        self._percent = 0.0

    @property
    def percent(self) -> float:
        return self._percent

    def parse_line(self, line: str) -> Optional[ProgressEvent]:
        """
        Parse one line of output.

        Returns:
            A new ProgressEvent if the line advanced progress, None otherwise
        """
        if END_PATTERN.search(line):
            return self._advance(self.duration, 100.0)

        seconds = None
        micro_match = MICROSECONDS_PATTERN.search(line)
        if micro_match:
            seconds = int(micro_match.group(1)) / 1_000_000
        else:
            time_match = TIME_PATTERN.search(line)
            if time_match:
                hours = int(time_match.group(1))
                minutes = int(time_match.group(2))
                whole = int(time_match.group(3))
                fraction = time_match.group(4) or "0"
                seconds = hours * 3600 + minutes * 60 + whole + float(f"0.{fraction}")

        if seconds is None:
            return None

        if self.duration > 0:
            percent = min(100.0, (seconds / self.duration) * 100.0)
        else:
            percent = 0.0
        return self._advance(seconds, percent)

    def _advance(self, seconds: float, percent: float) -> Optional[ProgressEvent]:
        if percent <= self._percent and seconds <= self._seconds:
            return None
        self._seconds = max(self._seconds, seconds)
        self._percent = max(self._percent, percent)
        event = ProgressEvent(seconds=self._seconds, percent=round(self._percent, 2))
        if self.on_progress:
            self.on_progress(event)
        return event
