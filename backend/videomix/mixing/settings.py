"""
MixSettings: the closed configuration record for one mix job.

Validated exactly once, at job start. Unknown fields and out-of-range
values are rejected here so nothing downstream re-checks them.

Wire format uses camelCase keys (orderMixing, fixedDuration, ...);
Python code uses the snake_case attribute names.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .errors import InvalidSettings


# Platform ceiling on outputs per job
MAX_OUTPUT_COUNT = 1000

# Fixed-duration bounds in seconds
MAX_FIXED_DURATION = 600.0

MIN_SPEED = 0.25
MAX_SPEED = 4.0

SUPPORTED_FRAME_RATES = (24, 25, 30, 50, 60)

DEFAULT_ALLOWED_SPEEDS = [0.5, 0.75, 1.0, 1.25, 1.5, 2.0]


class DurationType(str, Enum):
    ORIGINAL = "original"  # Full clips, speed-adjusted
    FIXED = "fixed"  # Trim windows summing to fixed_duration


class DistributionMode(str, Enum):
    PROPORTIONAL = "proportional"  # By speed-adjusted natural length
    WEIGHTED = "weighted"  # By per-slot weights
    EQUAL = "equal"  # Same share per slot


class AspectRatio(str, Enum):
    ORIGINAL = "original"
    TIKTOK = "tiktok"
    INSTAGRAM_REELS = "instagram_reels"
    YOUTUBE_SHORTS = "youtube_shorts"
    INSTAGRAM_SQUARE = "instagram_square"
    YOUTUBE = "youtube"


class Resolution(str, Enum):
    SD = "sd"
    HD = "hd"
    FULL_HD = "fullhd"


class BitrateTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AudioMode(str, Enum):
    KEEP = "keep"
    MUTE = "mute"
    VOICEOVER = "voiceover"


class TransitionType(str, Enum):
    CUT = "cut"
    FADE = "fade"
    DISSOLVE = "dissolve"
    WIPE = "wipe"
    SLIDE = "slide"
    ZOOM = "zoom"
    BLUR = "blur"
    MIXED = "mixed"  # Rotate through every crossfade type


# Crossfade types in the rotation order used by MIXED
CROSSFADE_TYPES = (
    TransitionType.FADE,
    TransitionType.DISSOLVE,
    TransitionType.WIPE,
    TransitionType.SLIDE,
    TransitionType.ZOOM,
    TransitionType.BLUR,
)


class OutputFormat(str, Enum):
    MP4 = "mp4"
    MOV = "mov"
    MKV = "mkv"
    WEBM = "webm"


class VideoCodec(str, Enum):
    H264 = "h264"
    HEVC = "hevc"
    VP9 = "vp9"


class MetadataSource(str, Enum):
    """Which editing app the output metadata imitates."""

    NORMAL = "normal"
    CAPCUT = "capcut"
    VN = "vn"
    INSHOT = "inshot"


class MixSettings(BaseModel):
    """
    Strongly-typed mix settings.

    Use MixSettings.parse() at the job-start boundary: it converts
    pydantic validation failures into InvalidSettings.
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    # Anti-fingerprinting switches
    order_mixing: bool = True
    speed_mixing: bool = False
    different_starting_video: bool = False
    group_mixing: bool = False
    allowed_speeds: List[float] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_SPEEDS))

    # Duration
    duration_type: DurationType = DurationType.ORIGINAL
    fixed_duration: float = 30.0
    duration_distribution_mode: DistributionMode = DistributionMode.PROPORTIONAL
    slot_weights: Optional[List[float]] = None
    smart_trimming: bool = True

    # Output shape and quality
    aspect_ratio: AspectRatio = AspectRatio.ORIGINAL
    resolution: Resolution = Resolution.HD
    frame_rate: int = 30
    bitrate: BitrateTier = BitrateTier.MEDIUM
    output_format: OutputFormat = OutputFormat.MP4
    video_codec: VideoCodec = VideoCodec.H264

    # Audio
    audio_mode: AudioMode = AudioMode.KEEP
    voiceover_path: Optional[str] = None

    # Transitions
    transition_type: TransitionType = TransitionType.CUT
    transition_duration: float = Field(default=0.5, ge=0.1, le=2.0)

    # Metadata
    metadata_source: MetadataSource = MetadataSource.NORMAL
    metadata_tags: Dict[str, str] = Field(default_factory=dict)

    seed: int = Field(default=0, ge=0)
    output_count: int = Field(default=1, ge=1, le=MAX_OUTPUT_COUNT)

    @field_validator("allowed_speeds")
    @classmethod
    def _check_speeds(cls, speeds: List[float]) -> List[float]:
        unique: List[float] = []
        for speed in speeds:
            if not (MIN_SPEED <= speed <= MAX_SPEED):
                raise ValueError(
                    f"speed {speed} outside supported range {MIN_SPEED}-{MAX_SPEED}"
                )
            if speed not in unique:
                unique.append(float(speed))
        return unique

    @field_validator("frame_rate")
    @classmethod
    def _check_frame_rate(cls, fps: int) -> int:
        if fps not in SUPPORTED_FRAME_RATES:
            raise ValueError(f"frame rate {fps} not in {list(SUPPORTED_FRAME_RATES)}")
        return fps

    @field_validator("slot_weights")
    @classmethod
    def _check_weights(cls, weights: Optional[List[float]]) -> Optional[List[float]]:
        if weights is not None and any(w <= 0 for w in weights):
            raise ValueError("slot weights must be positive")
        return weights

    @model_validator(mode="after")
    def _check_consistency(self) -> "MixSettings":
        if self.speed_mixing and not self.allowed_speeds:
            raise ValueError("allowedSpeeds must not be empty while speedMixing is on")
        if self.duration_type == DurationType.FIXED:
            if self.fixed_duration <= 0:
                raise ValueError("fixedDuration must be positive")
            if self.fixed_duration > MAX_FIXED_DURATION:
                raise ValueError(f"fixedDuration must not exceed {MAX_FIXED_DURATION:g} seconds")
        if self.audio_mode == AudioMode.VOICEOVER and not self.voiceover_path:
            raise ValueError("voiceoverPath is required when audioMode is voiceover")
        return self

    @classmethod
    def parse(cls, data: Dict[str, Any]) -> "MixSettings":
        """
        Validate a raw settings mapping.

        Raises:
            InvalidSettings: With one readable message per rejected field
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            messages = []
            for error in e.errors():
                location = ".".join(str(part) for part in error["loc"]) or "settings"
                messages.append(f"{location}: {error['msg']}")
            raise InvalidSettings("; ".join(messages), errors=messages) from e

    @property
    def uses_crossfade(self) -> bool:
        return self.transition_type != TransitionType.CUT

    def with_output_count(self, output_count: int) -> "MixSettings":
        return self.model_copy(update={"output_count": output_count})

    def snapshot(self) -> Dict[str, Any]:
        """Wire-format dict stored on the job."""
        return self.model_dump(mode="json", by_alias=True)
