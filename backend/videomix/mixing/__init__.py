"""
Mix plan generation.

Settings validation, slot rotation and trim window resolution.
Everything here is synchronous and in-memory.
"""

from .errors import MixingError, InvalidSettings, InsufficientSourceMaterial
from .generator import MixPlanGenerator, EnumerationSpace, build_slots
from .models import MixPlan, PlanEntry, AudioDirective
from .settings import (
    MixSettings,
    DurationType,
    DistributionMode,
    AspectRatio,
    Resolution,
    BitrateTier,
    AudioMode,
    TransitionType,
    OutputFormat,
    VideoCodec,
    MetadataSource,
    MAX_OUTPUT_COUNT,
)

__all__ = [
    "MixPlanGenerator",
    "EnumerationSpace",
    "build_slots",
    "MixPlan",
    "PlanEntry",
    "AudioDirective",
    "MixSettings",
    "DurationType",
    "DistributionMode",
    "AspectRatio",
    "Resolution",
    "BitrateTier",
    "AudioMode",
    "TransitionType",
    "OutputFormat",
    "VideoCodec",
    "MetadataSource",
    "MAX_OUTPUT_COUNT",
    "MixingError",
    "InvalidSettings",
    "InsufficientSourceMaterial",
]
