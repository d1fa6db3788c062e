"""Tests for the waterfall allocator — proves priority and monotonicity hold."""

import pytest

from waterfall.engine.allocator import WaterfallAllocator, applicable_rate, rate_increment
from waterfall.errors import ValidationError
from waterfall.models.round import TrancheRoundState


WAD = 10**18
K = 1_000 * WAD


class TestPriorityOrder:
    def test_senior_paid_before_junior(self) -> None:
        allocation = WaterfallAllocator().allocate(400 * K, [800 * K, 200 * K])
        senior, junior = allocation.tranches
        assert senior.paid == 400 * K
        assert senior.rate == WAD // 2
        assert junior.paid == 0
        assert junior.rate == 0

    def test_second_round_completes_senior_then_junior(self) -> None:
        allocator = WaterfallAllocator()
        first = allocator.allocate(400 * K, [800 * K, 200 * K])
        second = allocator.allocate(500 * K, [800 * K, 200 * K], first.tranches)
        senior, junior = second.tranches
        assert senior.paid == 800 * K
        assert senior.distributed == 400 * K
        assert senior.rate == WAD
        assert junior.paid == 100 * K
        assert junior.rate == WAD // 2
        assert senior.prior_rate == WAD // 2

    def test_overflow_goes_to_junior_as_bonus(self) -> None:
        allocation = WaterfallAllocator().allocate(300 * K, [100 * K, 100 * K])
        senior, junior = allocation.tranches
        assert senior.paid == 100 * K
        assert senior.rate == WAD
        assert junior.paid == 200 * K
        assert junior.rate == 2 * WAD
        assert allocation.bonus == 100 * K

    def test_junior_rate_zero_until_senior_whole(self) -> None:
        allocator = WaterfallAllocator()
        previous = None
        for amount in (50 * K, 125 * K, 300 * K, 25 * K, 400 * K, 100 * K):
            allocation = allocator.allocate(amount, [500 * K, 300 * K, 200 * K], previous)
            rates = [s.rate for s in allocation.tranches]
            for senior_rate, junior_rate in zip(rates, rates[1:]):
                if junior_rate > 0:
                    assert senior_rate == WAD
            previous = allocation.tranches

    def test_zero_amount_carries_previous_forward(self) -> None:
        allocator = WaterfallAllocator()
        first = allocator.allocate(300 * K, [800 * K, 200 * K])
        second = allocator.allocate(0, [800 * K, 200 * K], first.tranches)
        assert [s.paid for s in second.tranches] == [300 * K, 0]
        assert second.distributed == 0


class TestConservation:
    @pytest.mark.parametrize("amount", [1, 7 * K + 3, 999 * K, 1_234 * K + 17])
    def test_distributed_equals_amount(self, amount: int) -> None:
        allocation = WaterfallAllocator().allocate(amount, [600 * K, 300 * K, 100 * K])
        assert allocation.distributed == amount

    def test_bonus_to_junior_with_empty_denominator(self) -> None:
        allocation = WaterfallAllocator().allocate(150 * K, [100 * K, 0])
        assert allocation.distributed == 150 * K
        assert allocation.tranches[1].paid == 50 * K


class TestMonotonicity:
    def test_rate_never_drops_when_denominator_grows(self) -> None:
        allocator = WaterfallAllocator()
        first = allocator.allocate(400 * K, [800 * K])
        second = allocator.allocate(0, [1_600 * K], first.tranches)
        assert second.tranches[0].paid == 400 * K
        assert second.tranches[0].rate == WAD // 2

    def test_shrinking_denominator_does_not_lift_unpaid_rate(self) -> None:
        allocator = WaterfallAllocator()
        first = allocator.allocate(90 * K, [100 * K, 50 * K])
        second = allocator.allocate(10 * K, [80 * K, 50 * K], first.tranches)
        senior, junior = second.tranches
        assert senior.distributed == 0
        assert senior.rate == first.tranches[0].rate == 9 * WAD // 10
        assert applicable_rate(senior) == 0
        assert junior.distributed == 10 * K
        assert junior.rate == WAD // 5

    def test_partial_payment_after_shrink_moves_rate_by_increment(self) -> None:
        allocator = WaterfallAllocator()
        first = allocator.allocate(90 * K, [100 * K, 50 * K])
        second = allocator.allocate(5 * K, [95 * K, 50 * K], first.tranches)
        assert second.tranches[0].distributed == 5 * K
        assert second.tranches[0].rate == 9 * WAD // 10 + 5 * K * WAD // (95 * K)
        assert second.tranches[0].rate <= WAD

    def test_paid_and_rate_non_decreasing_across_rounds(self) -> None:
        allocator = WaterfallAllocator()
        previous = None
        for amount in (10 * K, 0, 250 * K, 90 * K, 700 * K):
            allocation = allocator.allocate(amount, [300 * K, 300 * K], previous)
            if previous is not None:
                for before, after in zip(previous, allocation.tranches):
                    assert after.paid >= before.paid
                    assert after.rate >= before.rate
            previous = allocation.tranches


class TestValidation:
    def test_rejects_negative_amount(self) -> None:
        with pytest.raises(ValidationError, match="negative"):
            WaterfallAllocator().allocate(-1, [K])

    def test_rejects_no_tranches(self) -> None:
        with pytest.raises(ValidationError):
            WaterfallAllocator().allocate(K, [])

    def test_rejects_mismatched_previous(self) -> None:
        with pytest.raises(ValidationError, match="covers 1 tranches"):
            WaterfallAllocator().allocate(K, [K, K], [TrancheRoundState()])


class TestApplicableRate:
    def test_first_round_applies_full_rate(self) -> None:
        assert applicable_rate(TrancheRoundState(rate=WAD // 4)) == WAD // 4

    def test_increment_scaled_to_outstanding_face(self) -> None:
        state = TrancheRoundState(rate=3 * WAD // 4, prior_rate=WAD // 2)
        assert applicable_rate(state) == WAD // 2
        assert rate_increment(state) == WAD // 4

    def test_nothing_applicable_once_fully_paid(self) -> None:
        state = TrancheRoundState(rate=2 * WAD, prior_rate=WAD)
        assert applicable_rate(state) == 0

    def test_completion_round_redeems_remaining_balance(self) -> None:
        state = TrancheRoundState(rate=WAD, prior_rate=WAD // 2)
        assert applicable_rate(state) == WAD
