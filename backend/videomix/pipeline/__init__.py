"""
Pipeline compilation: MixPlan -> PipelineSpec.
"""

from .compiler import PipelineCompiler, atempo_chain, render_tag_pairs
from .errors import CompileError, UnsupportedTransitionCombination, EncodingProfileInvalid
from .models import (
    PipelineSpec,
    ClipStage,
    FilterStep,
    TransitionStage,
    AudioStage,
    EncodeProfile,
)
from .profiles import build_encode_profile, target_dimensions, MEDIA_TYPE_BY_EXTENSION

__all__ = [
    "PipelineCompiler",
    "atempo_chain",
    "render_tag_pairs",
    "PipelineSpec",
    "ClipStage",
    "FilterStep",
    "TransitionStage",
    "AudioStage",
    "EncodeProfile",
    "build_encode_profile",
    "target_dimensions",
    "MEDIA_TYPE_BY_EXTENSION",
    "CompileError",
    "UnsupportedTransitionCombination",
    "EncodingProfileInvalid",
]
