"""
Pipeline compiler: MixPlan -> PipelineSpec.

Per-clip video steps are emitted in a fixed order:

    1. trim + setpts reset      cut the plan window, timestamps start at 0
    2. scale + pad|crop, setsar fit the target frame without distortion
    3. fps                      normalize frame rate
    4. setpts PTS/speed         re-time (skipped at speed 1.0)
    5. settb + fps              re-stamp time base after re-timing

Step 5 is emitted exactly when the clip's speed is not 1.0 and the plan
joins clips with crossfades. Without it xfade receives inputs whose time
bases disagree and produces corrupted timestamps.

Audio follows the video: trimmed to the same window, resampled to a
common format and re-timed with a chain of atempo links (each link is
limited to 0.5-2.0).
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from ..mixing.models import MixPlan, PlanEntry
from ..mixing.settings import AudioMode, MixSettings, TransitionType
from .errors import CompileError, UnsupportedTransitionCombination
from .models import AudioStage, ClipStage, EncodeProfile, FilterStep, PipelineSpec, TransitionStage
from .profiles import METADATA_SOURCE_TAGS, build_encode_profile, fit_mode

logger = logging.getLogger(__name__)

AUDIO_SAMPLE_RATE = 48000
ATEMPO_MIN = 0.5
ATEMPO_MAX = 2.0

_DIRECTIONS = ("left", "right", "up", "down")

# xfade transition names; directional types take a direction suffix
_XFADE_NAMES: Dict[TransitionType, str] = {
    TransitionType.FADE: "fade",
    TransitionType.DISSOLVE: "dissolve",
    TransitionType.WIPE: "wipe",
    TransitionType.SLIDE: "slide",
    TransitionType.ZOOM: "circlecrop",
    TransitionType.BLUR: "fadeblack",
}
_DIRECTIONAL = frozenset({TransitionType.WIPE, TransitionType.SLIDE})


def _num(value: float) -> str:
    """Stable decimal rendering for filter arguments."""
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    return text or "0"


def atempo_chain(speed: float) -> List[float]:
    """
    Split a speed factor into atempo links within 0.5-2.0.

    atempo_chain(4.0)  -> [2.0, 2.0]
    atempo_chain(0.25) -> [0.5, 0.5]
    atempo_chain(1.0)  -> []
    """
    links = []
    remaining = speed
    while remaining > ATEMPO_MAX:
        links.append(ATEMPO_MAX)
        remaining /= ATEMPO_MAX
    while remaining < ATEMPO_MIN:
        links.append(ATEMPO_MIN)
        remaining /= ATEMPO_MIN
    if abs(remaining - 1.0) > 1e-9:
        links.append(round(remaining, 6))
    return links


_AUDIO_FORMAT = FilterStep(
    "aformat",
    ("sample_fmts=fltp", f"sample_rates={AUDIO_SAMPLE_RATE}", "channel_layouts=stereo"),
)


class PipelineCompiler:
    """Stateless compiler; one instance can serve every worker."""

    def compile(
        self,
        plan: MixPlan,
        settings: MixSettings,
        created_at: Optional[datetime] = None,
        extra_tags: Optional[Dict[str, str]] = None,
    ) -> PipelineSpec:
        """
        Compile one plan.

        Args:
            plan: Resolved mix plan
            settings: The job's validated settings
            created_at: Creation timestamp embedded in metadata (defaults to now, UTC)
            extra_tags: Caller tags merged last (job id, campaign, ...)

        Raises:
            UnsupportedTransitionCombination: If the plan's transitions cannot be built
            EncodingProfileInvalid: If the encode profile is out of range
        """
        if not plan.entries:
            raise CompileError(f"Plan {plan.index} has no entries")

        crossfade = self._check_transitions(plan)
        encode = build_encode_profile(settings)

        stages = tuple(
            self._clip_stage(position, entry, settings, encode, crossfade)
            for position, entry in enumerate(plan.entries)
        )
        transition = self._transition_stage(plan, crossfade)
        audio = self._audio_stage(plan)
        metadata = self._metadata(plan, settings, created_at, extra_tags)

        logger.debug(
            f"[Compiler] Plan {plan.index}: {len(stages)} clip(s), "
            f"transition={transition.kind}, audio={audio.mode}"
        )

        return PipelineSpec(
            plan_index=plan.index,
            stages=stages,
            transition=transition,
            audio=audio,
            encode=encode,
            target_duration=plan.target_duration,
            metadata=metadata,
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def _check_transitions(plan: MixPlan) -> bool:
        """Return True when the plan joins clips with crossfades."""
        last = plan.entries[-1]
        if last.transition_into_next is not None:
            if len(plan.entries) == 1:
                raise UnsupportedTransitionCombination(
                    plan.index, "a transition needs a following clip but the plan has exactly one clip"
                )
            raise UnsupportedTransitionCombination(
                plan.index, "the last clip declares a transition into nothing"
            )

        joins = [entry.transition_into_next for entry in plan.entries[:-1]]
        crossfades = [t for t in joins if t not in (None, TransitionType.CUT)]
        if not crossfades:
            return False
        if len(crossfades) != len(joins):
            raise UnsupportedTransitionCombination(
                plan.index, "hard cuts and crossfades cannot be mixed in one plan"
            )
        if TransitionType.MIXED in crossfades:
            raise UnsupportedTransitionCombination(
                plan.index, "'mixed' must be resolved to a concrete transition per join"
            )

        for position, entry in enumerate(plan.entries):
            if entry.output_duration <= plan.transition_duration:
                raise UnsupportedTransitionCombination(
                    plan.index,
                    f"clip {position} lasts {entry.output_duration:.3f}s, not longer than "
                    f"the {plan.transition_duration:.3f}s transition",
                )
        return True

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    @staticmethod
    def _clip_stage(
        position: int,
        entry: PlanEntry,
        settings: MixSettings,
        encode: EncodeProfile,
        crossfade: bool,
    ) -> ClipStage:
        width, height = str(encode.width), str(encode.height)
        fps = str(encode.frame_rate)

        video: List[FilterStep] = [
            FilterStep("trim", (f"start={_num(entry.trim_start)}", f"end={_num(entry.trim_end)}")),
            FilterStep("setpts", ("PTS-STARTPTS",)),
        ]

        if fit_mode(settings.aspect_ratio) == "crop":
            video += [
                FilterStep("scale", (width, height, "force_original_aspect_ratio=increase")),
                FilterStep("crop", (width, height)),
            ]
        else:
            video += [
                FilterStep("scale", (width, height, "force_original_aspect_ratio=decrease")),
                FilterStep("pad", (width, height, "(ow-iw)/2", "(oh-ih)/2", "black")),
            ]
        video += [
            FilterStep("setsar", ("1",)),
            FilterStep("format", (encode.pixel_format,)),
            FilterStep("fps", (fps,)),
        ]

        retimed = entry.speed != 1.0
        if retimed:
            video.append(FilterStep("setpts", (f"PTS/{_num(entry.speed)}",)))
        if retimed and crossfade:
            video += [
                FilterStep("settb", ("AVTB",)),
                FilterStep("fps", (fps,)),
            ]

        audio: List[FilterStep] = []
        if settings.audio_mode == AudioMode.KEEP:
            if entry.clip.has_audio:
                audio = [
                    FilterStep("atrim", (f"start={_num(entry.trim_start)}", f"end={_num(entry.trim_end)}")),
                    FilterStep("asetpts", ("PTS-STARTPTS",)),
                    FilterStep("aresample", (str(AUDIO_SAMPLE_RATE),)),
                    _AUDIO_FORMAT,
                ]
                audio += [FilterStep("atempo", (_num(link),)) for link in atempo_chain(entry.speed)]
            else:
                # Silence stands in so every clip contributes an audio stream
                audio = [
                    FilterStep("anullsrc", ("channel_layout=stereo", f"sample_rate={AUDIO_SAMPLE_RATE}")),
                    FilterStep("atrim", (f"duration={_num(entry.output_duration)}",)),
                    _AUDIO_FORMAT,
                ]

        return ClipStage(
            input_index=position,
            clip_id=entry.clip.id,
            source_path=entry.clip.path,
            output_duration=entry.output_duration,
            video=tuple(video),
            audio=tuple(audio),
            has_audio=entry.clip.has_audio,
        )

    @staticmethod
    def _transition_stage(plan: MixPlan, crossfade: bool) -> TransitionStage:
        if len(plan.entries) == 1:
            return TransitionStage(kind="passthrough")
        if not crossfade:
            return TransitionStage(kind="concat")

        duration = plan.transition_duration
        names: List[str] = []
        offsets: List[float] = []
        elapsed = 0.0
        for position, entry in enumerate(plan.entries[:-1]):
            transition = entry.transition_into_next
            name = _XFADE_NAMES[transition]
            if transition in _DIRECTIONAL:
                name += _DIRECTIONS[(plan.index + position) % len(_DIRECTIONS)]
            names.append(name)
            elapsed += entry.output_duration
            offsets.append(round(elapsed - (position + 1) * duration, 3))

        return TransitionStage(
            kind="xfade",
            transitions=tuple(names),
            duration=duration,
            offsets=tuple(offsets),
        )

    @staticmethod
    def _audio_stage(plan: MixPlan) -> AudioStage:
        mode = plan.audio.mode
        if mode == AudioMode.VOICEOVER:
            target = _num(plan.target_duration)
            return AudioStage(
                mode=mode.value,
                target_duration=plan.target_duration,
                voiceover_path=plan.audio.voiceover_path,
                voiceover_filters=(
                    FilterStep("aresample", (str(AUDIO_SAMPLE_RATE),)),
                    _AUDIO_FORMAT,
                    FilterStep("apad", ()),
                    FilterStep("atrim", ("start=0", f"end={target}")),
                    FilterStep("asetpts", ("PTS-STARTPTS",)),
                ),
            )
        return AudioStage(mode=mode.value, target_duration=plan.target_duration)

    @staticmethod
    def _metadata(
        plan: MixPlan,
        settings: MixSettings,
        created_at: Optional[datetime],
        extra_tags: Optional[Dict[str, str]],
    ) -> Dict[str, str]:
        created = created_at or datetime.now(timezone.utc)
        metadata: Dict[str, str] = dict(METADATA_SOURCE_TAGS[settings.metadata_source])
        metadata.update(settings.metadata_tags)
        metadata.update({
            "creation_time": created.isoformat(),
            "source_clips": ",".join(plan.clip_ids),
            "mix_plan": str(plan.index),
            "mix_seed": str(plan.seed),
            "mix_speeds": ",".join(_num(speed) for speed in plan.speeds),
            "mix_duration": _num(plan.target_duration),
            "mix_transition": settings.transition_type.value,
            "mix_profile": f"{settings.resolution.value}/{settings.bitrate.value}/{settings.frame_rate}fps",
        })
        if extra_tags:
            metadata.update(extra_tags)
        return metadata


def render_tag_pairs(metadata: Dict[str, str]) -> List[Tuple[str, str]]:
    """Metadata as sorted (key, value) pairs, the order tags are written in."""
    return sorted(metadata.items())
