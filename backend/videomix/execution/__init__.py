"""
Transcode execution.

Runs compiled pipelines as external invocations behind the Transcoder
capability interface.
"""

from .base import Transcoder, ProgressEvent
from .errors import (
    TranscodeError,
    TranscodeFailed,
    TranscodeTimeout,
    InputCorrupt,
    TranscodeCancelled,
    TranscoderUnavailable,
)
from .executor import TranscodeExecutor
from .failures import FailureClass, classify_failure, is_retryable, user_message
from .ffmpeg import FFmpegTranscoder
from .filtergraph import build_command, build_filter_graph
from .probe import OutputProbe
from .progress import ProgressParser
from .results import ExecutionResult, ExecutionStatus

__all__ = [
    "Transcoder",
    "ProgressEvent",
    "FFmpegTranscoder",
    "TranscodeExecutor",
    "OutputProbe",
    "ProgressParser",
    "build_command",
    "build_filter_graph",
    "ExecutionResult",
    "ExecutionStatus",
    "FailureClass",
    "classify_failure",
    "is_retryable",
    "user_message",
    "TranscodeError",
    "TranscodeFailed",
    "TranscodeTimeout",
    "InputCorrupt",
    "TranscodeCancelled",
    "TranscoderUnavailable",
]
