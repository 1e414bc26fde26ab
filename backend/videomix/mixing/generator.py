"""
Mix plan generator.

Turns grouped source clips plus validated settings into an ordered list
of distinct, reproducible mix plans.

Design rules:
- Deterministic: identical inputs always yield the same plans in the same order
- No randomness: variation comes from decoding the plan index
- Never pads with duplicates: when fewer structurally distinct plans exist
  than requested, the achievable count is returned and logged
- Structural identity of a plan = ordered clip ids + speed vector

Enumeration space:
    C = clip combinations (product of group sizes when group mixing is on)
    P = slot orders (n! when order mixing is on)
    S = speed vectors (len(allowedSpeeds) ** n when speed mixing is on)

Candidate k decodes the value (k + seed) mod (S * C * P). The value is
split into (speed, clip, order) parts with the rotation rule from
rotation.py, so every dimension changes from one candidate to the next.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterator, List, Optional, Sequence, Set, Tuple

from ..catalog.models import Clip, Group
from .durations import resolve_trim_windows
from .errors import InsufficientSourceMaterial
from .models import AudioDirective, MixPlan, PlanEntry
from .rotation import permutation_at, permutation_count, rotate, space_size
from .settings import CROSSFADE_TYPES, MAX_OUTPUT_COUNT, MixSettings, TransitionType

logger = logging.getLogger(__name__)

Resolved = List[Tuple[Clip, float]]
StructuralKey = Tuple[Tuple[str, float], ...]


@dataclass(frozen=True)
class _Slot:
    id: str
    candidates: Tuple[Clip, ...]


def _key(resolved: Resolved) -> StructuralKey:
    return tuple((clip.id, speed) for clip, speed in resolved)


def build_slots(groups: Sequence[Group], ungrouped: Sequence[Clip] = ()) -> List[_Slot]:
    """
    Derive output slots.

    Group mode (any group supplied): one slot per group in display order.
    Flat mode: every ungrouped clip is its own slot.

    Raises:
        InsufficientSourceMaterial: If there is nothing to fill a slot with
    """
    if groups:
        slots = []
        for group in sorted(groups, key=lambda g: (g.order, g.id)):
            if not group.clips:
                raise InsufficientSourceMaterial(
                    f"group '{group.name or group.id}' has no clips", slot_id=group.id
                )
            slots.append(_Slot(id=group.id, candidates=tuple(group.clips)))
        if ungrouped:
            logger.warning(
                f"[Generator] Ignoring {len(ungrouped)} ungrouped clip(s) in group mode"
            )
        return slots

    if not ungrouped:
        raise InsufficientSourceMaterial("project has no clips")
    return [_Slot(id=clip.id, candidates=(clip,)) for clip in ungrouped]


class EnumerationSpace:
    """The set of structurally distinct plans reachable from one input."""

    def __init__(self, slots: Sequence[_Slot], settings: MixSettings):
        self.slots = list(slots)
        self.settings = settings
        self.slot_count = len(self.slots)

        self.group_sizes = [
            len(slot.candidates) if settings.group_mixing else 1 for slot in self.slots
        ]
        self.speeds = list(settings.allowed_speeds) if settings.speed_mixing else [1.0]

        self.clip_combinations = space_size(self.group_sizes)
        self.orders = permutation_count(self.slot_count) if settings.order_mixing else 1
        self.speed_vectors = len(self.speeds) ** self.slot_count if settings.speed_mixing else 1
        self.total = self.speed_vectors * self.clip_combinations * self.orders

    def decode(self, value: int) -> Resolved:
        """Resolve one point of the space into (clip, speed) in output order."""
        speed_value, clip_value, order_value = rotate(
            value, [self.speed_vectors, self.clip_combinations, self.orders]
        )
        choices = rotate(clip_value, self.group_sizes)
        if self.settings.order_mixing:
            order = permutation_at(order_value, self.slot_count)
        else:
            order = list(range(self.slot_count))
        speed_choices = rotate(speed_value, [len(self.speeds)] * self.slot_count)

        resolved: Resolved = []
        for position, slot_index in enumerate(order):
            clip = self.slots[slot_index].candidates[choices[slot_index]]
            resolved.append((clip, float(self.speeds[speed_choices[position]])))
        return resolved

    def candidates(self, seed: int) -> Iterator[Resolved]:
        for k in range(self.total):
            yield self.decode((k + seed) % self.total)

    def possible_clip_ids(self) -> Set[str]:
        """Every clip id that can appear in some plan."""
        ids = set()
        for slot, size in zip(self.slots, self.group_sizes):
            ids.update(clip.id for clip in slot.candidates[:size])
        return ids


class MixPlanGenerator:
    """
    Generates mix plans for one job.

    Stateless; safe to share between threads.
    """

    def __init__(self, max_output_count: int = MAX_OUTPUT_COUNT):
        self.max_output_count = max_output_count

    def count_achievable(
        self,
        groups: Sequence[Group],
        settings: MixSettings,
        ungrouped: Sequence[Clip] = (),
    ) -> int:
        """
        Number of plans generate() yields for this input when output_count is
        unbounded, capped at max_output_count.

        This is the enumeration space size, except that different-starting-video
        swaps can add reordered plans the space does not contain (order mixing off).
        """
        space = EnumerationSpace(build_slots(groups, ungrouped), settings)
        enforce_start = self._enforces_start(space, settings)
        if not enforce_start:
            return min(space.total, self.max_output_count)
        return len(self._select(space, settings.seed, self.max_output_count, enforce_start))

    def generate(
        self,
        groups: Sequence[Group],
        settings: MixSettings,
        ungrouped: Sequence[Clip] = (),
    ) -> List[MixPlan]:
        """
        Generate up to settings.output_count distinct plans.

        Args:
            groups: Project groups (any order; sorted by display order here)
            settings: Validated settings
            ungrouped: Clips outside any group (used only when no groups exist)

        Returns:
            Plans ordered by index, at most output_count of them

        Raises:
            InsufficientSourceMaterial: If a slot cannot be filled
        """
        space = EnumerationSpace(build_slots(groups, ungrouped), settings)
        requested = min(settings.output_count, self.max_output_count)

        if space.total < requested:
            logger.info(
                f"[Generator] Enumeration space holds {space.total} plan(s), "
                f"{requested} requested"
            )

        enforce_start = self._enforces_start(space, settings)
        selected = self._select(space, settings.seed, requested, enforce_start)

        if len(selected) < requested:
            logger.info(f"[Generator] Generated {len(selected)} of {requested} requested plan(s)")

        return [self._build_plan(index, resolved, settings) for index, resolved in enumerate(selected)]

    @staticmethod
    def _enforces_start(space: EnumerationSpace, settings: MixSettings) -> bool:
        return settings.different_starting_video and len(space.possible_clip_ids()) >= 2

    def _select(
        self,
        space: EnumerationSpace,
        seed: int,
        requested: int,
        enforce_start: bool,
    ) -> List[Resolved]:
        stream = space.candidates(seed)
        emitted: Set[StructuralKey] = set()
        selected: List[Resolved] = []
        deferred: Deque[Resolved] = deque()
        swaps = 0

        while len(selected) < requested:
            previous_first = selected[-1][0][0].id if (enforce_start and selected) else None
            choice = None

            # Deferred candidates first, if they now fit
            if previous_first is not None:
                for position, candidate in enumerate(deferred):
                    if _key(candidate) in emitted:
                        continue
                    if candidate[0][0].id != previous_first:
                        del deferred[position]
                        choice = candidate
                        break

            if choice is None:
                for candidate in stream:
                    if _key(candidate) in emitted:
                        continue
                    if previous_first is None or candidate[0][0].id != previous_first:
                        choice = candidate
                        break
                    swapped = self._swap_first(candidate, previous_first, swaps, emitted)
                    deferred.append(candidate)
                    if swapped is not None:
                        swaps += 1
                        choice = swapped
                        break

            # Stream exhausted: force a swap on whatever is left
            while choice is None and deferred:
                candidate = deferred.popleft()
                if _key(candidate) in emitted:
                    continue
                choice = self._swap_first(candidate, previous_first, swaps, emitted)
                if choice is not None:
                    swaps += 1

            if choice is None:
                break

            emitted.add(_key(choice))
            selected.append(choice)

        return selected

    @staticmethod
    def _swap_first(
        candidate: Resolved,
        avoid_clip_id: str,
        rotation: int,
        emitted: Set[StructuralKey],
    ) -> Optional[Resolved]:
        """Swap slot 0 with another slot so the plan starts with a different clip."""
        partners = [j for j in range(1, len(candidate)) if candidate[j][0].id != avoid_clip_id]
        for offset in range(len(partners)):
            j = partners[(rotation + offset) % len(partners)]
            swapped = list(candidate)
            swapped[0], swapped[j] = swapped[j], swapped[0]
            if _key(swapped) not in emitted:
                return swapped
        return None

    def _build_plan(self, index: int, resolved: Resolved, settings: MixSettings) -> MixPlan:
        transitions = self._transitions(index, len(resolved), settings)
        crossfades = len(resolved) > 1 and settings.uses_crossfade
        overlap = settings.transition_duration if crossfades else 0.0

        windows, target, warnings = resolve_trim_windows(resolved, settings, overlap=overlap)

        entries = tuple(
            PlanEntry(
                clip=clip,
                trim_start=window.start,
                trim_end=window.end,
                speed=speed,
                output_duration=window.output_duration,
                transition_into_next=transition,
            )
            for (clip, speed), window, transition in zip(resolved, windows, transitions)
        )

        return MixPlan(
            index=index,
            seed=settings.seed,
            entries=entries,
            target_duration=target,
            audio=AudioDirective(mode=settings.audio_mode, voiceover_path=settings.voiceover_path),
            transition_duration=overlap,
            warnings=tuple(warnings),
        )

    @staticmethod
    def _transitions(index: int, count: int, settings: MixSettings) -> List[Optional[TransitionType]]:
        transitions: List[Optional[TransitionType]] = []
        for position in range(count - 1):
            if settings.transition_type == TransitionType.MIXED:
                transitions.append(CROSSFADE_TYPES[(index + position) % len(CROSSFADE_TYPES)])
            else:
                transitions.append(settings.transition_type)
        transitions.append(None)
        return transitions
