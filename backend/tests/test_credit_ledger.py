"""
Tests for credit pricing and the credit ledger.

Ledger invariants:
- A balance never goes negative
- Reservation and job creation happen together or not at all
- Settlement refunds the unproduced portion exactly once
"""

import pytest

from videomix.credits import InsufficientCredits, InvalidAmount, TransactionType, estimate
from videomix.jobs import Job, PlanTask
from videomix.mixing import MixSettings


def settings_for(**raw) -> MixSettings:
    return MixSettings.parse(raw)


def make_job(user_id="user-1", planned=4, reserved=None, settings=None) -> Job:
    settings = settings or MixSettings.parse({"outputCount": planned})
    return Job(
        project_id="flat",
        user_id=user_id,
        settings=settings.snapshot(),
        requested_plans=planned,
        plan_tasks=[PlanTask(index=i) for i in range(planned)],
        credits_reserved=reserved if reserved is not None else estimate(planned, settings).credits_required,
    )


# =============================================================================
# Pricing
# =============================================================================

class TestPricing:

    def test_defaults(self):
        """Default settings have one variation feature (order mixing): 0.8x."""
        assert estimate(1, settings_for()).credits_required == 1
        assert estimate(3, settings_for()).credits_required == 3
        assert estimate(10, settings_for()).credits_required == 12

    def test_zero_outputs_cost_nothing(self):
        assert estimate(0, settings_for()).credits_required == 0

    def test_negative_count_rejected(self):
        with pytest.raises(ValueError):
            estimate(-1, settings_for())

    @pytest.mark.parametrize("raw", [
        {},
        {"resolution": "fullhd", "bitrate": "high", "frameRate": 60},
        {"resolution": "sd", "bitrate": "low", "orderMixing": False},
        {"speedMixing": True, "groupMixing": True, "differentStartingVideo": True, "transitionType": "fade"},
    ])
    def test_non_decreasing_in_count(self, raw):
        settings = MixSettings.parse(raw)
        prices = [estimate(count, settings).credits_required for count in range(0, 60)]
        assert prices == sorted(prices)

    def test_volume_tiers(self):
        settings = settings_for(orderMixing=False)
        breakdown = [estimate(count, settings).breakdown.volume.value for count in (5, 6, 10, 11, 20, 21)]
        assert breakdown == [1.0, 1.5, 1.5, 2.0, 2.0, 3.0]

    def test_quality_multiplier(self):
        result = estimate(1, settings_for(resolution="fullhd", bitrate="high", frameRate=60))
        assert result.breakdown.quality.value == pytest.approx(1.5 * 1.3 * 1.2)

    def test_high_frame_rate_threshold(self):
        assert estimate(10, settings_for(frameRate=30)).breakdown.quality.value == 1.0
        assert estimate(10, settings_for(frameRate=50)).breakdown.quality.value == 1.2

    def test_complexity_counts_features(self):
        settings = settings_for(
            speedMixing=True,
            durationType="fixed",
            fixedDuration=20,
            smartTrimming=True,
        )

        breakdown = estimate(10, settings).breakdown

        assert breakdown.enabled_features == ["Order Mixing", "Speed Mixing", "Smart Trimming"]
        assert breakdown.strength == "Good"
        assert breakdown.complexity.value == 1.2
        assert breakdown.final == 18

    def test_smart_trimming_counts_only_for_fixed_duration(self):
        features = estimate(1, settings_for(smartTrimming=True)).breakdown.enabled_features
        assert "Smart Trimming" not in features

    def test_every_feature(self):
        settings = settings_for(
            speedMixing=True,
            differentStartingVideo=True,
            groupMixing=True,
            transitionType="mixed",
            durationType="fixed",
        )

        breakdown = estimate(1, settings).breakdown

        assert breakdown.strength == "Maximum"
        assert breakdown.complexity.value == 2.2
        assert breakdown.final == 3


# =============================================================================
# Ledger
# =============================================================================

class TestCreditLedger:

    def test_purchase(self, ledger):
        ledger.purchase("user-1", 50)
        ledger.purchase("user-1", 25)

        assert ledger.get_balance("user-1") == 75
        assert [t.type for t in ledger.transactions("user-1")] == [TransactionType.PURCHASE] * 2

    def test_purchase_must_be_positive(self, ledger):
        with pytest.raises(InvalidAmount):
            ledger.purchase("user-1", 0)

    def test_reserve_debits_and_creates_job(self, ledger, persistence):
        ledger.purchase("user-1", 10)
        job = make_job()

        transaction = ledger.reserve("user-1", 4, job.id, "Mix generation", job_record=job.to_record())

        assert transaction.amount == -4
        assert transaction.type == TransactionType.USAGE
        assert ledger.get_balance("user-1") == 6
        assert persistence.load_job(job.id)["credits_reserved"] == 4

    def test_insufficient_balance_changes_nothing(self, ledger, persistence):
        """
        GIVEN: A balance of 3
        WHEN: 4 credits are reserved for a new job
        THEN: InsufficientCredits; balance, transactions and jobs untouched
        """
        ledger.purchase("user-1", 3)
        job = make_job()

        with pytest.raises(InsufficientCredits) as exc_info:
            ledger.reserve("user-1", 4, job.id, "Mix generation", job_record=job.to_record())

        assert exc_info.value.required == 4
        assert exc_info.value.available == 3
        assert str(exc_info.value) == "Insufficient credits. Required: 4, Available: 3"
        assert ledger.get_balance("user-1") == 3
        assert len(ledger.transactions("user-1")) == 1
        assert persistence.load_job(job.id) is None

    def test_unknown_user_has_no_credits(self, ledger):
        with pytest.raises(InsufficientCredits):
            ledger.reserve("nobody", 1, "job-x", "Mix generation")
        assert ledger.get_balance("nobody") == 0

    def test_settle_refunds_unproduced_portion(self, ledger):
        """
        GIVEN: 4 outputs reserved (4 credits at 0.8x), 1 produced
        WHEN: The job is settled
        THEN: Refund = 4 - price(1) = 3
        """
        ledger.purchase("user-1", 10)
        job = make_job(planned=4)
        ledger.reserve("user-1", job.credits_reserved, job.id, "Mix generation", job_record=job.to_record())
        job.output_ids.append("output-0")

        refund = ledger.settle(job)

        assert refund == 3
        assert job.credits_refunded == 3
        assert job.settled_at is not None
        assert ledger.get_balance("user-1") == 9
        refunds = [t for t in ledger.transactions("user-1", job.id) if t.type == TransactionType.REFUND]
        assert [t.amount for t in refunds] == [3]

    def test_settle_is_idempotent(self, ledger, persistence):
        ledger.purchase("user-1", 10)
        job = make_job(planned=2)
        ledger.reserve("user-1", job.credits_reserved, job.id, "Mix generation", job_record=job.to_record())

        first = ledger.settle(job)
        job.settled_at = None  # A stale copy of the job
        second = ledger.settle(job)

        assert first == 2
        assert second == 0
        assert ledger.get_balance("user-1") == 10
        assert persistence.load_job(job.id)["credits_refunded"] == 2

    def test_fully_produced_job_refunds_nothing(self, ledger):
        ledger.purchase("user-1", 10)
        job = make_job(planned=2)
        ledger.reserve("user-1", job.credits_reserved, job.id, "Mix generation", job_record=job.to_record())
        job.output_ids.extend(["o1", "o2"])

        assert ledger.settle(job) == 0
        assert job.settled_at is not None
        assert ledger.get_balance("user-1") == 10 - job.credits_reserved
