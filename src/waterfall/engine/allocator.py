"""Waterfall allocator — strict-priority allocation with cross-round accounting.

allocate() walks tranches from most senior to most junior. Each tranche
is owed its denominator minus what it has been paid over all previous
executed rounds; it receives the smaller of that and what is left. Once
nothing is left, junior tranches only carry their previous totals
forward. If money remains after every tranche is whole, the remainder
goes to the most junior tranche as a bonus, taking its paid total (and
rate) above 100%.

Invariants:
    paid[t] never decreases from one executed round to the next.
    rate[t] moves only when the tranche is paid this round; the increment
        is distributed * WAD / denominator (paid * WAD / denominator while
        the denominator is unchanged). Non-junior rates stop at WAD, so a
        denominator that shrinks between rounds never lifts a rate.
    sum(distributed) == amount allocated.

All amounts here are WAD-scaled dollars. Conversion to and from the
recovery asset's native precision happens in the vault.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from waterfall.errors import ValidationError
from waterfall.models.round import TrancheRoundState
from waterfall.policy.params import WAD


@dataclass(frozen=True)
class Allocation:
    """Result of allocating one round."""
    tranches: list[TrancheRoundState]
    distributed: int
    bonus: int


class WaterfallAllocator:
    """Stateless priority allocator.

    Usage:
        allocator = WaterfallAllocator()
        allocation = allocator.allocate(amount, denominators, previous_states)
    """

    def allocate(
        self,
        amount: int,
        denominators: Sequence[int],
        previous: Optional[Sequence[TrancheRoundState]] = None,
    ) -> Allocation:
        if amount < 0:
            raise ValidationError("Allocation amount must not be negative")
        if not denominators:
            raise ValidationError("Cannot allocate across zero tranches")
        if previous is not None and len(previous) != len(denominators):
            raise ValidationError(
                f"Previous state covers {len(previous)} tranches, expected {len(denominators)}"
            )

        remaining = amount
        states: list[TrancheRoundState] = []
        for index, denominator in enumerate(denominators):
            prior = previous[index] if previous is not None else TrancheRoundState()
            outstanding = max(0, denominator - prior.paid)
            pay = min(remaining, outstanding)
            remaining -= pay
            states.append(TrancheRoundState(
                denominator=denominator,
                paid=prior.paid + pay,
                prior_rate=prior.rate,
                distributed=pay,
            ))

        bonus = remaining
        if bonus:
            junior = states[-1]
            junior.paid += bonus
            junior.distributed += bonus

        last = len(states) - 1
        for index, state in enumerate(states):
            prior_denominator = previous[index].denominator if previous is not None else 0
            state.rate = _rate(state, prior_denominator, junior=index == last)

        return Allocation(
            tranches=states,
            distributed=sum(s.distributed for s in states),
            bonus=bonus,
        )


def _rate(state: TrancheRoundState, prior_denominator: int, junior: bool) -> int:
    if state.denominator == 0 or state.distributed == 0:
        return state.prior_rate
    rate = state.prior_rate + state.distributed * WAD // state.denominator
    if state.denominator == prior_denominator:
        rate = max(rate, state.paid * WAD // state.denominator)
    return rate if junior else min(WAD, rate)


def applicable_rate(state: TrancheRoundState) -> int:
    """Fraction (of WAD) of a holder's current balance redeemable this round.

    The round increment is expressed against the face value that was still
    outstanding before the round, so balances already reduced by earlier
    redemptions are charged proportionally. Claiming every round in any
    order redeems exactly face * final rate in total.
    """
    if state.prior_rate >= WAD:
        return 0
    return (state.rate - state.prior_rate) * WAD // (WAD - state.prior_rate)


def rate_increment(state: TrancheRoundState) -> int:
    """Fraction (of WAD) of face value this round paid to the tranche."""
    return state.rate - state.prior_rate
