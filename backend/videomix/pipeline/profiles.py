"""
Output encoding profiles.

Maps the settings' quality knobs (resolution tier, aspect ratio, bitrate
tier, codec, container) onto a concrete EncodeProfile and checks it
against the supported ranges.

Resolution tier fixes the short side, aspect ratio fixes the shape:
    hd + youtube  -> 1280x720
    hd + tiktok   -> 720x1280
    hd + square   -> 720x720
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Tuple

from ..mixing.settings import (
    AspectRatio,
    BitrateTier,
    MetadataSource,
    MixSettings,
    OutputFormat,
    Resolution,
    VideoCodec,
)
from .errors import EncodingProfileInvalid
from .models import EncodeProfile


SHORT_SIDE: Dict[Resolution, int] = {
    Resolution.SD: 480,
    Resolution.HD: 720,
    Resolution.FULL_HD: 1080,
}

PORTRAIT_ASPECTS: FrozenSet[AspectRatio] = frozenset({
    AspectRatio.TIKTOK,
    AspectRatio.INSTAGRAM_REELS,
    AspectRatio.YOUTUBE_SHORTS,
})

SQUARE_ASPECTS: FrozenSet[AspectRatio] = frozenset({AspectRatio.INSTAGRAM_SQUARE})


@dataclass(frozen=True)
class BitrateProfile:
    video_bitrate_kbps: int
    crf: int
    preset: str


BITRATE_PROFILES: Dict[BitrateTier, BitrateProfile] = {
    BitrateTier.LOW: BitrateProfile(video_bitrate_kbps=1000, crf=28, preset="faster"),
    BitrateTier.MEDIUM: BitrateProfile(video_bitrate_kbps=4000, crf=23, preset="medium"),
    BitrateTier.HIGH: BitrateProfile(video_bitrate_kbps=8000, crf=18, preset="slow"),
}

VIDEO_ENCODERS: Dict[VideoCodec, str] = {
    VideoCodec.H264: "libx264",
    VideoCodec.HEVC: "libx265",
    VideoCodec.VP9: "libvpx-vp9",
}

# Which codecs each container can carry
CONTAINER_CODECS: Dict[OutputFormat, FrozenSet[VideoCodec]] = {
    OutputFormat.MP4: frozenset({VideoCodec.H264, VideoCodec.HEVC}),
    OutputFormat.MOV: frozenset({VideoCodec.H264, VideoCodec.HEVC}),
    OutputFormat.MKV: frozenset({VideoCodec.H264, VideoCodec.HEVC, VideoCodec.VP9}),
    OutputFormat.WEBM: frozenset({VideoCodec.VP9}),
}

MEDIA_TYPES: Dict[OutputFormat, str] = {
    OutputFormat.MP4: "video/mp4",
    OutputFormat.MOV: "video/quicktime",
    OutputFormat.MKV: "video/x-matroska",
    OutputFormat.WEBM: "video/webm",
}

MEDIA_TYPE_BY_EXTENSION: Dict[str, str] = {fmt.value: media for fmt, media in MEDIA_TYPES.items()}

# Supported ranges
MIN_DIMENSION = 128
MAX_DIMENSION = 4096
MAX_FRAME_RATE = 120
MIN_VIDEO_KBPS = 250
MAX_VIDEO_KBPS = 50000

# Tags that make the output look like it came out of a given editing app
METADATA_SOURCE_TAGS: Dict[MetadataSource, Dict[str, str]] = {
    MetadataSource.NORMAL: {},
    MetadataSource.CAPCUT: {
        "encoder": "CapCut",
        "software": "CapCut for Windows",
        "handler_name": "CapCut",
    },
    MetadataSource.VN: {
        "encoder": "VN Video Editor",
        "software": "VN - Video Editor & Maker",
        "comment": "Made with VN",
        "handler_name": "VN Editor",
    },
    MetadataSource.INSHOT: {
        "encoder": "InShot",
        "software": "InShot Video Editor",
        "handler_name": "InShot Inc.",
        "comment": "Created with InShot",
    },
}


def _even(value: float) -> int:
    rounded = int(round(value))
    return rounded + (rounded % 2)


def target_dimensions(aspect_ratio: AspectRatio, resolution: Resolution) -> Tuple[int, int]:
    short = SHORT_SIDE[resolution]
    long = _even(short * 16 / 9)
    if aspect_ratio in SQUARE_ASPECTS:
        return short, short
    if aspect_ratio in PORTRAIT_ASPECTS:
        return short, long
    return long, short


def fit_mode(aspect_ratio: AspectRatio) -> str:
    """'crop' fills the frame, 'pad' letterboxes."""
    return "crop" if aspect_ratio in SQUARE_ASPECTS else "pad"


def build_encode_profile(settings: MixSettings) -> EncodeProfile:
    """
    Build and validate the encode profile for a job's settings.

    Raises:
        EncodingProfileInvalid: If the combination is unsupported
    """
    width, height = target_dimensions(settings.aspect_ratio, settings.resolution)
    bitrate = BITRATE_PROFILES[settings.bitrate]
    container = settings.output_format

    if settings.video_codec not in CONTAINER_CODECS[container]:
        raise EncodingProfileInvalid(
            f"codec '{settings.video_codec.value}' cannot be stored in '{container.value}'"
        )

    is_webm = container == OutputFormat.WEBM
    profile = EncodeProfile(
        container=container.value,
        extension=container.value,
        media_type=MEDIA_TYPES[container],
        video_encoder=VIDEO_ENCODERS[settings.video_codec],
        width=width,
        height=height,
        frame_rate=settings.frame_rate,
        video_bitrate_kbps=bitrate.video_bitrate_kbps,
        crf=bitrate.crf,
        preset=None if settings.video_codec == VideoCodec.VP9 else bitrate.preset,
        faststart=container in (OutputFormat.MP4, OutputFormat.MOV),
        audio_encoder="libopus" if is_webm else "aac",
        audio_bitrate_kbps=128,
    )
    validate_encode_profile(profile)
    return profile


def validate_encode_profile(profile: EncodeProfile) -> None:
    """
    Raises:
        EncodingProfileInvalid: On the first out-of-range value
    """
    for label, value in (("width", profile.width), ("height", profile.height)):
        if not MIN_DIMENSION <= value <= MAX_DIMENSION:
            raise EncodingProfileInvalid(
                f"{label} {value} outside {MIN_DIMENSION}-{MAX_DIMENSION}"
            )
        if value % 2:
            raise EncodingProfileInvalid(f"{label} {value} must be even for {profile.pixel_format}")
    if not 0 < profile.frame_rate <= MAX_FRAME_RATE:
        raise EncodingProfileInvalid(f"frame rate {profile.frame_rate} outside 1-{MAX_FRAME_RATE}")
    if not MIN_VIDEO_KBPS <= profile.video_bitrate_kbps <= MAX_VIDEO_KBPS:
        raise EncodingProfileInvalid(
            f"video bitrate {profile.video_bitrate_kbps}k outside {MIN_VIDEO_KBPS}-{MAX_VIDEO_KBPS}k"
        )
    allowed = {VIDEO_ENCODERS[codec] for codec in CONTAINER_CODECS[OutputFormat(profile.container)]}
    if profile.video_encoder not in allowed:
        raise EncodingProfileInvalid(
            f"encoder '{profile.video_encoder}' cannot be stored in '{profile.container}'"
        )
