"""
Transcode error types.

All errors inherit from TranscodeError. Each carries its FailureClass and
the captured diagnostics; str(error) is the short user-facing message.
"""

from typing import Optional

from .failures import FailureClass, is_retryable, user_message


class TranscodeError(Exception):
    """Base exception for transcode failures."""

    failure_class: FailureClass = FailureClass.TRANSCODE_FAILED

    def __init__(self, message: Optional[str] = None, diagnostics: str = "", exit_code: Optional[int] = None):
        self.diagnostics = diagnostics
        self.exit_code = exit_code
        super().__init__(message or user_message(self.failure_class))

    @property
    def retryable(self) -> bool:
        return is_retryable(self.failure_class)


class TranscodeFailed(TranscodeError):
    """Non-zero exit that may succeed on retry."""

    failure_class = FailureClass.TRANSCODE_FAILED


class InputCorrupt(TranscodeError):
    """A source clip is unreadable. Never retried."""

    failure_class = FailureClass.INPUT_CORRUPT


class TranscodeTimeout(TranscodeError):
    """Invocation exceeded its wall-clock limit and was terminated."""

    failure_class = FailureClass.TRANSCODE_TIMEOUT

    def __init__(self, timeout: float, diagnostics: str = ""):
        self.timeout = timeout
        super().__init__(diagnostics=diagnostics)


class TranscodeCancelled(TranscodeError):
    """Invocation was terminated because its job was cancelled."""

    failure_class = FailureClass.CANCELLED


class TranscoderUnavailable(TranscodeError):
    """The transcoder binary could not be found or started."""

    failure_class = FailureClass.TRANSCODER_UNAVAILABLE


_ERRORS_BY_CLASS = {
    FailureClass.TRANSCODE_FAILED: TranscodeFailed,
    FailureClass.INPUT_CORRUPT: InputCorrupt,
    FailureClass.CANCELLED: TranscodeCancelled,
    FailureClass.TRANSCODER_UNAVAILABLE: TranscoderUnavailable,
}


def error_for(failure_class: FailureClass, diagnostics: str = "", exit_code: Optional[int] = None) -> TranscodeError:
    """Build the exception matching a classified exit."""
    error_type = _ERRORS_BY_CLASS.get(failure_class, TranscodeFailed)
    return error_type(diagnostics=diagnostics, exit_code=exit_code)
