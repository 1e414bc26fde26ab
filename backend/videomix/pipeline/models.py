"""
PipelineSpec: the compiled, stage-ordered form of one mix plan.

Pure data. The transcoder renders it into an actual invocation; nothing
here knows about command lines.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class FilterStep:
    """One processing step: a filter name and its ordered arguments."""

    name: str
    args: Tuple[str, ...] = ()

    def render(self) -> str:
        if not self.args:
            return self.name
        return f"{self.name}={':'.join(self.args)}"


@dataclass(frozen=True)
class ClipStage:
    """Per-clip normalization: video steps in fixed order plus the audio branch."""

    input_index: int
    clip_id: str
    source_path: str
    output_duration: float
    video: Tuple[FilterStep, ...]
    audio: Tuple[FilterStep, ...] = ()
    has_audio: bool = True

    @property
    def step_names(self) -> Tuple[str, ...]:
        return tuple(step.name for step in self.video)


@dataclass(frozen=True)
class TransitionStage:
    """
    How clip streams are joined.

    kind:
        "passthrough" - single clip
        "concat"      - hard cuts
        "xfade"       - chained crossfades; transitions[i] joins clip i and i+1
    """

    kind: str
    transitions: Tuple[str, ...] = ()
    duration: float = 0.0
    offsets: Tuple[float, ...] = ()


@dataclass(frozen=True)
class AudioStage:
    """
    mode:
        "mute"      - no audio stream in the output
        "keep"      - per-clip audio re-timed and joined like the video
        "voiceover" - external track aligned to the total output duration
    """

    mode: str
    target_duration: float
    voiceover_path: Optional[str] = None
    voiceover_filters: Tuple[FilterStep, ...] = ()


@dataclass(frozen=True)
class EncodeProfile:
    container: str
    extension: str
    media_type: str
    video_encoder: str
    width: int
    height: int
    frame_rate: int
    video_bitrate_kbps: int
    crf: int
    preset: Optional[str]
    pixel_format: str = "yuv420p"
    gop_size: int = 250
    keyint_min: int = 25
    faststart: bool = True
    audio_encoder: str = "aac"
    audio_bitrate_kbps: int = 128
    audio_sample_rate: int = 48000
    audio_channels: int = 2


@dataclass(frozen=True)
class PipelineSpec:
    plan_index: int
    stages: Tuple[ClipStage, ...]
    transition: TransitionStage
    audio: AudioStage
    encode: EncodeProfile
    target_duration: float
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def source_clip_ids(self) -> Tuple[str, ...]:
        return tuple(stage.clip_id for stage in self.stages)
