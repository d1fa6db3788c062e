"""Tests for unclaimed-funds redistribution."""

import pytest
from datetime import datetime, timedelta, timezone

from waterfall.errors import EconomicError, PhaseError
from waterfall.models.vault import UnclaimedPolicy
from waterfall.settlement.redistribution import UnclaimedRedistribution


ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20
CAROL = "0x" + "c0" * 20
DEADLINE = timedelta(days=730)


def _now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _active(
    residual: int = 1_000,
    lifetime: dict[str, int] | None = None,
    total: int | None = None,
) -> UnclaimedRedistribution:
    lifetime = lifetime if lifetime is not None else {ALICE: 300, BOB: 100}
    redistribution = UnclaimedRedistribution(UnclaimedPolicy.PRO_RATA, DEADLINE)
    redistribution.activate(
        residual,
        lifetime,
        total if total is not None else sum(lifetime.values()),
        closed_through_round=2,
        now=_now() + DEADLINE,
    )
    return redistribution


class TestActivation:
    def test_requires_an_execution(self) -> None:
        redistribution = UnclaimedRedistribution(UnclaimedPolicy.PRO_RATA, DEADLINE)
        with pytest.raises(PhaseError, match="No round has been executed"):
            redistribution.check_activation(None, 1_000, now=_now())

    def test_requires_deadline(self) -> None:
        redistribution = UnclaimedRedistribution(UnclaimedPolicy.PRO_RATA, DEADLINE)
        with pytest.raises(PhaseError, match="deadline not reached"):
            redistribution.check_activation(_now(), 1_000, now=_now() + DEADLINE - timedelta(seconds=1))
        redistribution.check_activation(_now(), 1_000, now=_now() + DEADLINE)

    def test_requires_residual(self) -> None:
        redistribution = UnclaimedRedistribution(UnclaimedPolicy.PRO_RATA, DEADLINE)
        with pytest.raises(EconomicError, match="No residual"):
            redistribution.check_activation(_now(), 0, now=_now() + DEADLINE)

    def test_only_once(self) -> None:
        redistribution = _active()
        with pytest.raises(PhaseError, match="already distributed"):
            redistribution.check_activation(_now(), 1_000, now=_now() + 2 * DEADLINE)

    def test_closes_rounds_through_activation(self) -> None:
        redistribution = _active()
        assert redistribution.is_round_closed(1)
        assert redistribution.is_round_closed(2)
        assert not redistribution.is_round_closed(3)

    def test_inactive_closes_nothing(self) -> None:
        redistribution = UnclaimedRedistribution(UnclaimedPolicy.PRO_RATA, DEADLINE)
        assert not redistribution.is_round_closed(1)


class TestProRataPool:
    def test_share_proportional_to_lifetime_claims(self) -> None:
        redistribution = _active()
        assert redistribution.quote(ALICE) == 750
        assert redistribution.quote(BOB) == 250

    def test_claim_once(self) -> None:
        redistribution = _active()
        redistribution.record(ALICE, redistribution.quote(ALICE), now=_now())
        assert redistribution.get_state().remaining == 250
        assert redistribution.has_claimed(ALICE)
        with pytest.raises(PhaseError, match="already claimed"):
            redistribution.quote(ALICE)

    def test_no_lifetime_claims(self) -> None:
        with pytest.raises(EconomicError, match="no lifetime claims"):
            _active().quote(CAROL)

    def test_payout_capped_by_remaining_pool(self) -> None:
        redistribution = _active(residual=100, lifetime={ALICE: 2, BOB: 2}, total=3)
        first = redistribution.quote(ALICE)
        redistribution.record(ALICE, first, now=_now())
        second = redistribution.quote(BOB)
        assert first == 66
        assert second == 34
        redistribution.record(BOB, second, now=_now())
        assert redistribution.get_state().remaining == 0

    def test_lifetime_frozen_at_activation(self) -> None:
        lifetime = {ALICE: 300, BOB: 100}
        redistribution = _active(lifetime=lifetime)
        lifetime[ALICE] = 10_000
        assert redistribution.quote(ALICE) == 750

    def test_not_open_before_activation(self) -> None:
        redistribution = UnclaimedRedistribution(UnclaimedPolicy.PRO_RATA, DEADLINE)
        with pytest.raises(PhaseError, match="not been distributed"):
            redistribution.quote(ALICE)

    def test_treasury_policy_has_no_pool(self) -> None:
        redistribution = UnclaimedRedistribution(UnclaimedPolicy.TREASURY, DEADLINE)
        redistribution.activate(1_000, {ALICE: 1}, 1, 1, now=_now())
        with pytest.raises(PhaseError, match="not enabled"):
            redistribution.quote(ALICE)
