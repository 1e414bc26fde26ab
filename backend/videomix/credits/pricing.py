"""
Credit pricing.

credits = ceil(count x volume x quality x complexity)

- volume grows in tiers with the output count
- quality reflects resolution, bitrate tier and high frame rates
- complexity reflects how many variation features are switched on

Every factor is positive and volume only grows with count, so the price is
non-decreasing in count for fixed settings. A count of zero costs zero.
"""

import math
from typing import List, Tuple

from ..mixing.settings import (
    BitrateTier,
    DurationType,
    MixSettings,
    Resolution,
    TransitionType,
)
from .models import CreditBreakdown, CreditEstimate, Multiplier


# (upper bound inclusive, multiplier, reason)
VOLUME_TIERS: List[Tuple[float, float, str]] = [
    (5, 1.0, "1-5 videos: no volume penalty"),
    (10, 1.5, "6-10 videos: 1.5x volume penalty"),
    (20, 2.0, "11-20 videos: 2x volume penalty"),
    (math.inf, 3.0, "21+ videos: 3x volume penalty"),
]

RESOLUTION_MULTIPLIERS = {
    Resolution.SD: (0.8, "480p (-20%)"),
    Resolution.HD: (1.0, "720p (base)"),
    Resolution.FULL_HD: (1.5, "1080p (+50%)"),
}

BITRATE_MULTIPLIERS = {
    BitrateTier.LOW: (0.7, "1 Mbps (-30%)"),
    BitrateTier.MEDIUM: (1.0, "4 Mbps (base)"),
    BitrateTier.HIGH: (1.3, "8 Mbps (+30%)"),
}

HIGH_FRAME_RATE = 50
HIGH_FRAME_RATE_MULTIPLIER = 1.2

# Indexed by number of enabled variation features
COMPLEXITY_MULTIPLIERS = [0.5, 0.8, 1.0, 1.2, 1.5, 1.8, 2.2]
STRENGTH_LABELS = ["None", "Weak", "Fair", "Good", "Strong", "Very Strong", "Maximum"]


def volume_multiplier(output_count: int) -> Multiplier:
    for bound, value, reason in VOLUME_TIERS:
        if output_count <= bound:
            return Multiplier(value=value, reason=reason)
    raise AssertionError("unreachable")


def quality_multiplier(settings: MixSettings) -> Multiplier:
    resolution_value, resolution_reason = RESOLUTION_MULTIPLIERS[settings.resolution]
    bitrate_value, bitrate_reason = BITRATE_MULTIPLIERS[settings.bitrate]
    value = resolution_value * bitrate_value
    factors = [resolution_reason, bitrate_reason]
    if settings.frame_rate >= HIGH_FRAME_RATE:
        value *= HIGH_FRAME_RATE_MULTIPLIER
        factors.append(f"{settings.frame_rate} fps (+20%)")
    return Multiplier(value=round(value, 6), reason=", ".join(factors))


def enabled_features(settings: MixSettings) -> List[str]:
    """Variation features that count toward complexity, in display order."""
    features = []
    if settings.order_mixing:
        features.append("Order Mixing")
    if settings.speed_mixing:
        features.append("Speed Mixing")
    if settings.different_starting_video:
        features.append("Different Starting Video")
    if settings.group_mixing:
        features.append("Group-Based Mixing")
    if settings.transition_type != TransitionType.CUT:
        features.append("Transitions")
    if settings.duration_type == DurationType.FIXED and settings.smart_trimming:
        features.append("Smart Trimming")
    return features


def complexity_multiplier(settings: MixSettings) -> Tuple[Multiplier, List[str], str]:
    features = enabled_features(settings)
    score = len(features)
    strength = STRENGTH_LABELS[score]
    multiplier = Multiplier(
        value=COMPLEXITY_MULTIPLIERS[score],
        reason=f"{strength} variation ({score}/{len(COMPLEXITY_MULTIPLIERS) - 1} features)",
    )
    return multiplier, features, strength


def estimate(output_count: int, settings: MixSettings) -> CreditEstimate:
    """
    Price a number of outputs under the given settings.

    Args:
        output_count: Number of outputs (>= 0)
        settings: Validated mix settings

    Returns:
        CreditEstimate with the total and a step-by-step breakdown

    Raises:
        ValueError: If output_count is negative
    """
    if output_count < 0:
        raise ValueError(f"output_count must be >= 0, got {output_count}")

    volume = volume_multiplier(output_count)
    quality = quality_multiplier(settings)
    complexity, features, strength = complexity_multiplier(settings)

    after_volume = output_count * volume.value
    after_quality = after_volume * quality.value
    total = after_quality * complexity.value
    # Guard against float noise such as 3 * 1.1 = 3.3000000000000003
    credits = math.ceil(round(total, 9))

    return CreditEstimate(
        credits_required=credits,
        breakdown=CreditBreakdown(
            base_credits=output_count,
            output_count=output_count,
            volume=volume,
            quality=quality,
            complexity=complexity,
            after_volume=math.ceil(round(after_volume, 9)),
            after_quality=math.ceil(round(after_quality, 9)),
            final=credits,
            enabled_features=features,
            strength=strength,
        ),
    )


def estimate_credits(output_count: int, settings: MixSettings) -> int:
    return estimate(output_count, settings).credits_required
