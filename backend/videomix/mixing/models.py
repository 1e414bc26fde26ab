"""
Mix plan data structures.

A MixPlan is the fully resolved recipe for one output video. Plans are
transient: they are regenerated from the job's settings snapshot whenever
they are needed and never persisted on their own.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from ..catalog.models import Clip
from .settings import AudioMode, TransitionType


@dataclass(frozen=True)
class PlanEntry:
    """One slot of a plan: which clip, which part of it, how fast."""

    clip: Clip
    trim_start: float  # Source seconds
    trim_end: float  # Source seconds
    speed: float
    output_duration: float  # Seconds this entry occupies in the output timeline
    transition_into_next: Optional[TransitionType] = None

    @property
    def source_duration(self) -> float:
        return self.trim_end - self.trim_start


@dataclass(frozen=True)
class AudioDirective:
    mode: AudioMode
    voiceover_path: Optional[str] = None


@dataclass(frozen=True)
class MixPlan:
    index: int
    seed: int
    entries: Tuple[PlanEntry, ...]
    target_duration: float  # Final output duration after transition overlaps
    audio: AudioDirective
    transition_duration: float = 0.0
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def first_clip_id(self) -> str:
        return self.entries[0].clip.id

    @property
    def clip_ids(self) -> Tuple[str, ...]:
        return tuple(entry.clip.id for entry in self.entries)

    @property
    def speeds(self) -> Tuple[float, ...]:
        return tuple(entry.speed for entry in self.entries)

    @property
    def has_crossfades(self) -> bool:
        return any(
            entry.transition_into_next not in (None, TransitionType.CUT)
            for entry in self.entries
        )

    @property
    def structural_key(self) -> Tuple[Tuple[str, float], ...]:
        """Identity used for distinctness: clip order plus speed vector."""
        return tuple((entry.clip.id, entry.speed) for entry in self.entries)
