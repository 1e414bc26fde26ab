"""
Transcoder capability interface.

A Transcoder runs one PipelineSpec as one external invocation and streams
progress events while it runs. Failures are raised as TranscodeError
subclasses once the invocation has ended.

Tests substitute fake transcoders; nothing above this interface knows a
subprocess is involved.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterator, Optional

from ..pipeline.models import PipelineSpec


@dataclass(frozen=True)
class ProgressEvent:
    seconds: float  # Output timeline position
    percent: float  # 0-100 against the plan's target duration


class Transcoder(ABC):

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def available(self) -> bool:
        """Whether the transcoder can run on this host."""
        ...

    @abstractmethod
    def run(
        self,
        spec: PipelineSpec,
        output_path: str,
        timeout: Optional[float] = None,
        cancel_key: Optional[str] = None,
    ) -> Iterator[ProgressEvent]:
        """
        Run the pipeline spec, yielding progress until the invocation ends.

        Args:
            spec: Compiled pipeline
            output_path: File to write
            timeout: Wall-clock limit in seconds (None = no limit)
            cancel_key: Key that cancel() can later target ("<job_id>:<plan>")

        Raises:
            TranscodeError: Subclass matching the failure class
        """
        ...

    @abstractmethod
    def cancel(self, key: str) -> int:
        """
        Terminate invocations whose cancel key equals key or starts with "key:".

        Invocations started later under a matching key are refused.

        Returns:
            Number of processes signalled
        """
        ...

    def forget(self, key: str) -> None:
        """Drop the cancellation recorded for key; called once nothing can start under it."""
        pass
