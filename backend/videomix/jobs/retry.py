"""
Per-plan retry policy.

- Only retryable failure classes are retried
- A timeout is retried at most once
- InputCorrupt never consumes a retry
- Backoff doubles per attempt up to a ceiling
"""

from dataclasses import dataclass

from ..execution.failures import FailureClass, is_retryable

MAX_TIMEOUT_RETRIES = 1


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 5.0
    max_delay: float = 300.0

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number attempt (1-based)."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    def should_retry(self, failure_class: FailureClass, attempts: int, timeouts: int) -> bool:
        """
        Args:
            failure_class: Class of the attempt that just failed
            attempts: Attempts made so far, including that one
            timeouts: Timeouts so far, including that one
        """
        if not is_retryable(failure_class):
            return False
        if attempts >= self.max_attempts:
            return False
        if failure_class == FailureClass.TRANSCODE_TIMEOUT and timeouts > MAX_TIMEOUT_RETRIES:
            return False
        return True
