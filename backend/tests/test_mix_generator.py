"""
Tests for the mix plan generator.

Covers the generator contract:
- at most outputCount plans, identical inputs give identical plans
- plans are structurally distinct and never padded with duplicates
- different starting video is enforced between consecutive plans
- speeds are exactly 1.0 unless speed mixing is on
"""

import pytest

from videomix.mixing import (
    InsufficientSourceMaterial,
    MixPlanGenerator,
    MixSettings,
    TransitionType,
)
from videomix.mixing.rotation import permutation_at, rotate

from conftest import make_clip, make_group


def settings_for(**raw) -> MixSettings:
    return MixSettings.parse(raw)


@pytest.fixture
def generator():
    return MixPlanGenerator()


@pytest.fixture
def three_groups():
    return [
        make_group("hooks", ["h1", "h2"], order=0),
        make_group("bodies", ["b1", "b2"], order=1),
        make_group("ctas", ["t1", "t2"], order=2),
    ]


# =============================================================================
# Index decoding
# =============================================================================

class TestRotation:

    def test_rotate_is_a_bijection(self):
        radices = [2, 3, 2]
        decoded = {tuple(rotate(value, radices)) for value in range(12)}
        assert len(decoded) == 12

    def test_rotate_changes_every_position_on_first_step(self):
        assert rotate(0, [2, 2, 2]) == [0, 0, 0]
        assert rotate(1, [2, 2, 2]) == [1, 1, 1]

    def test_permutation_zero_is_identity(self):
        assert permutation_at(0, 4) == [0, 1, 2, 3]

    def test_permutations_are_distinct(self):
        orders = {tuple(permutation_at(value, 4)) for value in range(24)}
        assert len(orders) == 24

    def test_first_position_changes_fastest(self):
        firsts = [permutation_at(value, 3)[0] for value in range(3)]
        assert firsts == [0, 1, 2]


# =============================================================================
# Scenarios
# =============================================================================

class TestGeneratorScenarios:

    def test_grouped_rotation_without_order_mixing(self, generator, three_groups):
        """
        GIVEN: 3 groups of 2 clips, groupMixing on, orderMixing off, outputCount 4
        WHEN: Plans are generated
        THEN: 4 plans, one clip per group in group order, selection varies by index
        """
        settings = settings_for(groupMixing=True, orderMixing=False, outputCount=4)

        plans = generator.generate(three_groups, settings)

        assert [plan.clip_ids for plan in plans] == [
            ("h1", "b1", "t1"),
            ("h2", "b2", "t2"),
            ("h1", "b2", "t2"),
            ("h2", "b1", "t1"),
        ]
        for plan in plans:
            assert [clip_id[0] for clip_id in plan.clip_ids] == ["h", "b", "t"]

    def test_group_members_used_uniformly(self, generator, three_groups):
        settings = settings_for(groupMixing=True, orderMixing=False, outputCount=4)

        plans = generator.generate(three_groups, settings)

        usage = {}
        for plan in plans:
            for clip_id in plan.clip_ids:
                usage[clip_id] = usage.get(clip_id, 0) + 1
        assert set(usage.values()) == {2}

    def test_single_clip_speed_round_robin(self, generator):
        """
        GIVEN: One clip, speedMixing on, allowedSpeeds [0.5, 1, 2], outputCount 3
        WHEN: Plans are generated
        THEN: Speeds are 0.5, 1 and 2 in that order
        """
        settings = settings_for(speedMixing=True, allowedSpeeds=[0.5, 1, 2], outputCount=3)

        plans = generator.generate([], settings, ungrouped=[make_clip("solo", 12.0)])

        assert [plan.speeds for plan in plans] == [(0.5,), (1.0,), (2.0,)]
        assert [plan.target_duration for plan in plans] == [24.0, 12.0, 6.0]

    def test_returns_achievable_count_instead_of_duplicates(self, generator):
        """
        GIVEN: 3 ungrouped clips with order mixing (3! = 6 orders)
        WHEN: 50 plans are requested
        THEN: Exactly 6 distinct plans come back
        """
        clips = [make_clip("c1"), make_clip("c2"), make_clip("c3")]
        settings = settings_for(outputCount=50)

        plans = generator.generate([], settings, ungrouped=clips)

        assert len(plans) == 6
        assert len({plan.structural_key for plan in plans}) == 6
        assert generator.count_achievable([], settings, ungrouped=clips) == 6
        assert [plan.index for plan in plans] == list(range(6))

    def test_group_mixing_off_picks_first_member(self, generator, three_groups):
        settings = settings_for(groupMixing=False, orderMixing=True, outputCount=6)

        plans = generator.generate(three_groups, settings)

        assert len(plans) == 6
        for plan in plans:
            assert sorted(plan.clip_ids) == ["b1", "h1", "t1"]

    def test_no_variation_yields_single_plan(self, generator, three_groups):
        settings = settings_for(orderMixing=False, outputCount=10)

        plans = generator.generate(three_groups, settings)

        assert len(plans) == 1
        assert plans[0].clip_ids == ("h1", "b1", "t1")


# =============================================================================
# Properties
# =============================================================================

class TestGeneratorProperties:

    @pytest.mark.parametrize("raw", [
        {"outputCount": 5},
        {"outputCount": 40, "groupMixing": True, "speedMixing": True, "allowedSpeeds": [1, 1.5]},
        {"outputCount": 7, "differentStartingVideo": True, "groupMixing": True},
        {"outputCount": 3, "orderMixing": False, "seed": 11, "groupMixing": True},
    ])
    def test_bounded_and_reproducible(self, generator, three_groups, raw):
        settings = MixSettings.parse(raw)

        first = generator.generate(three_groups, settings)
        second = generator.generate(three_groups, settings)

        assert len(first) <= settings.output_count
        assert first == second
        assert len({plan.structural_key for plan in first}) == len(first)

    def test_group_order_of_input_does_not_matter(self, generator, three_groups):
        settings = settings_for(outputCount=6, groupMixing=True)

        forward = generator.generate(three_groups, settings)
        backward = generator.generate(list(reversed(three_groups)), settings)

        assert forward == backward

    def test_seed_rotates_the_sequence(self, generator, three_groups):
        base = generator.generate(three_groups, settings_for(outputCount=3, groupMixing=True))
        seeded = generator.generate(three_groups, settings_for(outputCount=3, groupMixing=True, seed=1))

        assert [plan.clip_ids for plan in seeded][:2] == [plan.clip_ids for plan in base][1:3]

    def test_speeds_are_one_without_speed_mixing(self, generator, three_groups):
        settings = settings_for(outputCount=20, groupMixing=True, allowedSpeeds=[0.5, 2])

        plans = generator.generate(three_groups, settings)

        assert all(speed == 1.0 for plan in plans for speed in plan.speeds)

    def test_consecutive_speed_vectors_differ(self, generator):
        clips = [make_clip("c1"), make_clip("c2")]
        settings = settings_for(orderMixing=False, speedMixing=True, allowedSpeeds=[1, 1.5, 2], outputCount=9)

        plans = generator.generate([], settings, ungrouped=clips)

        assert len(plans) == 9
        for previous, current in zip(plans, plans[1:]):
            assert previous.speeds != current.speeds

    def test_different_starting_video_with_order_mixing(self, generator, three_groups):
        settings = settings_for(outputCount=24, groupMixing=True, differentStartingVideo=True)

        plans = generator.generate(three_groups, settings)

        assert len(plans) == 24
        for previous, current in zip(plans, plans[1:]):
            assert previous.first_clip_id != current.first_clip_id

    def test_different_starting_video_forces_swap(self, generator):
        """
        GIVEN: Fixed slot order, so the natural first clip never changes
        WHEN: differentStartingVideo is on
        THEN: Slots are swapped so consecutive plans start differently, without duplicates
        """
        clips = [make_clip("a"), make_clip("b")]
        settings = settings_for(
            orderMixing=False,
            speedMixing=True,
            allowedSpeeds=[1, 2],
            differentStartingVideo=True,
            outputCount=4,
        )

        plans = generator.generate([], settings, ungrouped=clips)

        assert len(plans) == 4
        assert [plan.first_clip_id for plan in plans] == ["a", "b", "a", "b"]
        assert len({plan.structural_key for plan in plans}) == 4

    def test_different_starting_video_needs_two_candidates(self, generator):
        settings = settings_for(differentStartingVideo=True, speedMixing=True, allowedSpeeds=[1, 2], outputCount=2)

        plans = generator.generate([], settings, ungrouped=[make_clip("only")])

        assert len(plans) == 2
        assert {plan.first_clip_id for plan in plans} == {"only"}

    def test_swaps_counted_as_achievable(self, generator):
        """
        GIVEN: Two single-clip groups, fixed slot order, 2 speeds (4 plans in the space)
        WHEN: differentStartingVideo swaps slots to change the first clip
        THEN: count_achievable matches what generate yields, beyond the space size
        """
        groups = [make_group("left", ["l1"], order=0), make_group("right", ["r1"], order=1)]
        settings = settings_for(
            orderMixing=False,
            speedMixing=True,
            allowedSpeeds=[1, 2],
            differentStartingVideo=True,
            outputCount=50,
        )

        plans = generator.generate(groups, settings)

        assert len(plans) > 4
        assert generator.count_achievable(groups, settings) == len(plans)
        assert len({plan.structural_key for plan in plans}) == len(plans)

    def test_count_achievable_capped(self, three_groups):
        generator = MixPlanGenerator(max_output_count=3)
        settings = settings_for(groupMixing=True)

        assert generator.count_achievable(three_groups, settings) == 3

    def test_output_count_capped(self, three_groups):
        generator = MixPlanGenerator(max_output_count=3)
        settings = settings_for(outputCount=20, groupMixing=True)

        assert len(generator.generate(three_groups, settings)) == 3


# =============================================================================
# Transitions and audio
# =============================================================================

class TestPlanDetails:

    def test_cut_plans_have_no_crossfades(self, generator, three_groups):
        plans = generator.generate(three_groups, settings_for())

        assert plans[0].has_crossfades is False
        assert plans[0].entries[-1].transition_into_next is None

    def test_mixed_transitions_rotate_through_crossfades(self, generator, three_groups):
        settings = settings_for(transitionType="mixed", outputCount=2)

        plans = generator.generate(three_groups, settings)

        assert [entry.transition_into_next for entry in plans[0].entries] == [
            TransitionType.FADE, TransitionType.DISSOLVE, None,
        ]
        assert [entry.transition_into_next for entry in plans[1].entries] == [
            TransitionType.DISSOLVE, TransitionType.WIPE, None,
        ]

    def test_crossfades_shorten_original_duration(self, generator, three_groups):
        settings = settings_for(transitionType="fade", transitionDuration=0.5)

        plan = generator.generate(three_groups, settings)[0]

        assert plan.transition_duration == 0.5
        assert plan.target_duration == pytest.approx(30.0 - 2 * 0.5)

    def test_audio_directive_carries_voiceover(self, generator, three_groups):
        settings = settings_for(audioMode="voiceover", voiceoverPath="/media/vo.m4a")

        plan = generator.generate(three_groups, settings)[0]

        assert plan.audio.voiceover_path == "/media/vo.m4a"


# =============================================================================
# Source material
# =============================================================================

class TestSourceMaterial:

    def test_no_clips(self, generator):
        with pytest.raises(InsufficientSourceMaterial):
            generator.generate([], settings_for())

    def test_empty_group(self, generator, three_groups):
        groups = three_groups + [make_group("empty", [], order=3)]

        with pytest.raises(InsufficientSourceMaterial) as exc_info:
            generator.generate(groups, settings_for())

        assert exc_info.value.slot_id == "empty"

    def test_ungrouped_clips_ignored_in_group_mode(self, generator, three_groups):
        settings = settings_for(outputCount=50, groupMixing=True)

        plans = generator.generate(three_groups, settings, ungrouped=[make_clip("loose")])

        assert all("loose" not in plan.clip_ids for plan in plans)
