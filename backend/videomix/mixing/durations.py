"""
Trim window resolution.

Turns the resolved (clip, speed) sequence of a plan into per-entry trim
windows and output durations.

- original: every clip plays in full; output length is duration / speed
- fixed: output lengths sum to fixed_duration (plus transition overlaps,
  so the finished video is exactly fixed_duration long)

Shares that a clip cannot supply are capped at the clip's length and the
remainder is redistributed over the other slots. Windows are centered in
the clip when smart trimming is on, otherwise they start at 0.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..catalog.models import Clip
from .settings import DistributionMode, DurationType, MixSettings

logger = logging.getLogger(__name__)

# Output timeline precision (seconds)
_PRECISION = 3

# Weights applied to the first and last slot when no explicit weights are given
EDGE_SLOT_WEIGHT = 1.5
INNER_SLOT_WEIGHT = 1.0


@dataclass(frozen=True)
class TrimWindow:
    start: float
    end: float
    output_duration: float


def default_slot_weights(slot_count: int) -> List[float]:
    if slot_count == 1:
        return [1.0]
    weights = [INNER_SLOT_WEIGHT] * slot_count
    weights[0] = EDGE_SLOT_WEIGHT
    weights[-1] = EDGE_SLOT_WEIGHT
    return weights


def _weights_for(
    mode: DistributionMode,
    capacities: Sequence[float],
    slot_weights: Optional[Sequence[float]],
) -> List[float]:
    if mode == DistributionMode.PROPORTIONAL:
        return list(capacities)
    if mode == DistributionMode.EQUAL:
        return [1.0] * len(capacities)
    if slot_weights:
        return [slot_weights[i % len(slot_weights)] for i in range(len(capacities))]
    return default_slot_weights(len(capacities))


def distribute(budget: float, weights: Sequence[float], capacities: Sequence[float]) -> List[float]:
    """
    Split budget by weight without exceeding any capacity.

    Water filling: slots whose share would exceed their capacity are
    pinned at capacity and the rest of the budget is re-split among the
    remaining slots. If the total capacity is below budget every slot is
    pinned and the result sums to less than budget.
    """
    shares = [0.0] * len(weights)
    active = list(range(len(weights)))
    remaining = budget

    while active:
        total_weight = sum(weights[i] for i in active)
        tentative = {i: remaining * weights[i] / total_weight for i in active}
        pinned = [i for i in active if tentative[i] >= capacities[i]]
        if not pinned:
            for i in active:
                shares[i] = tentative[i]
            break
        for i in pinned:
            shares[i] = capacities[i]
            remaining -= capacities[i]
            active.remove(i)

    return shares


def _round_to_budget(shares: List[float], capacities: Sequence[float], budget: float) -> List[float]:
    """Round shares to timeline precision, putting the rounding remainder on the slot with most slack."""
    rounded = [round(share, _PRECISION) for share in shares]
    remainder = round(budget - sum(rounded), _PRECISION)
    if remainder:
        slack = [capacities[i] - rounded[i] for i in range(len(rounded))]
        target = max(range(len(rounded)), key=lambda i: slack[i])
        rounded[target] = round(rounded[target] + remainder, _PRECISION)
    return rounded


def resolve_trim_windows(
    resolved: Sequence[Tuple[Clip, float]],
    settings: MixSettings,
    overlap: float = 0.0,
) -> Tuple[List[TrimWindow], float, List[str]]:
    """
    Compute trim windows for one plan.

    Args:
        resolved: (clip, speed) in output order
        settings: Validated mix settings
        overlap: Seconds each crossfade overlaps adjacent entries

    Returns:
        (windows, target_duration, warnings)
    """
    warnings: List[str] = []
    overlaps_total = overlap * (len(resolved) - 1)
    capacities = [clip.duration / speed for clip, speed in resolved]

    if settings.duration_type == DurationType.ORIGINAL:
        windows = [
            TrimWindow(start=0.0, end=clip.duration, output_duration=round(capacity, _PRECISION))
            for (clip, _), capacity in zip(resolved, capacities)
        ]
        target = round(sum(w.output_duration for w in windows) - overlaps_total, _PRECISION)
        return windows, target, warnings

    budget = settings.fixed_duration + overlaps_total
    weights = _weights_for(settings.duration_distribution_mode, capacities, settings.slot_weights)
    shares = distribute(budget, weights, capacities)

    if sum(capacities) < budget:
        budget = sum(capacities)
        message = (
            f"Source material ({budget - overlaps_total:.2f}s) is shorter than "
            f"fixedDuration ({settings.fixed_duration:g}s)"
        )
        warnings.append(message)
        logger.warning(f"[Durations] {message}")

    shares = _round_to_budget(shares, capacities, round(budget, _PRECISION))

    windows = []
    for (clip, speed), share in zip(resolved, shares):
        source_length = min(clip.duration, share * speed)
        if settings.smart_trimming:
            start = round((clip.duration - source_length) / 2, _PRECISION)
        else:
            start = 0.0
        end = min(clip.duration, round(start + source_length, _PRECISION))
        windows.append(TrimWindow(start=start, end=end, output_duration=share))

    target = round(sum(shares) - overlaps_total, _PRECISION)
    return windows, target, warnings
