"""
Transcode failure taxonomy.

Classifies a failed invocation from its exit code and diagnostic output.
Classification decides retry policy:

    TRANSCODE_FAILED        retryable (bounded attempts)
    TRANSCODE_TIMEOUT       retryable once
    INPUT_CORRUPT           never retried, no retry budget consumed
    PIPELINE_INVALID        never retried; the plan cannot be compiled
    TRANSCODER_UNAVAILABLE  never retried
    CANCELLED               not a failure; plan stops
    INTERRUPTED_BY_RESTART  set by the startup sweep only

Pattern matching is heuristic. Unknown output falls back to
TRANSCODE_FAILED so that a transient fault still gets its retries.
"""

from enum import Enum
from typing import Dict, Optional


class FailureClass(str, Enum):
    TRANSCODE_FAILED = "TranscodeFailed"
    TRANSCODE_TIMEOUT = "TranscodeTimeout"
    INPUT_CORRUPT = "InputCorrupt"
    PIPELINE_INVALID = "PipelineInvalid"
    TRANSCODER_UNAVAILABLE = "TranscoderUnavailable"
    CANCELLED = "Cancelled"
    INTERRUPTED_BY_RESTART = "InterruptedByRestart"


# Substrings (lower case) that mean a source clip cannot be read
INPUT_CORRUPT_PATTERNS = (
    "invalid data found when processing input",
    "moov atom not found",
    "could not find codec parameters",
    "no such file or directory",
    "error opening input",
    "invalid nal unit size",
    "corrupt",
)

# Short, generic messages shown to end users. Diagnostics stay on the record.
USER_MESSAGES: Dict[FailureClass, str] = {
    FailureClass.TRANSCODE_FAILED: "Video processing failed",
    FailureClass.TRANSCODE_TIMEOUT: "Video processing took too long",
    FailureClass.INPUT_CORRUPT: "A source clip could not be read",
    FailureClass.PIPELINE_INVALID: "The mix could not be built from its clips",
    FailureClass.TRANSCODER_UNAVAILABLE: "Video processing is unavailable",
    FailureClass.CANCELLED: "Cancelled by user",
    FailureClass.INTERRUPTED_BY_RESTART: "Job interrupted by restart",
}

RETRYABLE = frozenset({FailureClass.TRANSCODE_FAILED, FailureClass.TRANSCODE_TIMEOUT})


def classify_failure(exit_code: Optional[int], diagnostics: str) -> FailureClass:
    """
    Classify a non-zero exit.

    Args:
        exit_code: Process exit code (None if unknown)
        diagnostics: Captured stderr

    Returns:
        INPUT_CORRUPT when the output names an unreadable input,
        TRANSCODE_FAILED otherwise
    """
    text = (diagnostics or "").lower()
    if any(pattern in text for pattern in INPUT_CORRUPT_PATTERNS):
        return FailureClass.INPUT_CORRUPT
    return FailureClass.TRANSCODE_FAILED


def is_retryable(failure_class: FailureClass) -> bool:
    return failure_class in RETRYABLE


def user_message(failure_class: FailureClass) -> str:
    return USER_MESSAGES.get(failure_class, USER_MESSAGES[FailureClass.TRANSCODE_FAILED])
