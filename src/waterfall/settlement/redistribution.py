"""Unclaimed redistribution — disposing of funds nobody claimed.

Once, and only after a long deadline measured from the first-ever round
execution, anyone may trigger disposal of the vault's residual
recovery-asset balance (balance minus the pending pool, the amounts
of rounds still awaiting execution and any bonds still held). Two policies:

- TREASURY: the entire residual is forwarded to the configured treasury.
- PRO_RATA: a secondary pool sized to the residual opens. Anyone with a
  non-zero lifetime claimed total may redeem once, receiving
  lifetime * pool / total_claimed, capped by a running remaining-pool
  counter so rounding can never overdraw the pool.

Lifetime totals are frozen at activation; claims made afterwards do not
change anyone's share.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Optional

from waterfall.errors import EconomicError, PhaseError
from waterfall.models.vault import UnclaimedPolicy


logger = logging.getLogger(__name__)


@dataclass
class RedistributionState:
    """Observable state of the unclaimed-funds disposal."""
    policy: UnclaimedPolicy
    activated: bool = False
    activated_utc: Optional[datetime] = None
    residual: int = 0
    remaining: int = 0
    total_claimed_basis: int = 0
    closed_through_round: int = 0
    claimed_count: int = 0


@dataclass(frozen=True)
class RedistributionClaim:
    holder: str
    amount: int
    claimed_utc: datetime


class UnclaimedRedistribution:
    """Tracks activation and pro-rata redemption of the residual pool.

    Usage:
        redistribution = UnclaimedRedistribution(policy, deadline)
        redistribution.check_activation(first_execution_utc, residual, now)
        redistribution.activate(residual, lifetime, total, last_round_id, now)
        amount = redistribution.quote(holder)
        redistribution.record(holder, amount, now)
    """

    def __init__(self, policy: UnclaimedPolicy, deadline: timedelta) -> None:
        self._deadline = deadline
        self._state = RedistributionState(policy=policy)
        self._basis: dict[str, int] = {}
        self._claims: dict[str, RedistributionClaim] = {}

    def get_state(self) -> RedistributionState:
        """A copy of the current state; changing it does not affect the pool."""
        return replace(self._state)

    @property
    def is_active(self) -> bool:
        return self._state.activated

    def is_round_closed(self, round_id: int) -> bool:
        """Rounds executed before activation can no longer be claimed."""
        return self._state.activated and round_id <= self._state.closed_through_round

    def deadline_utc(self, first_execution_utc: Optional[datetime]) -> Optional[datetime]:
        if first_execution_utc is None:
            return None
        return first_execution_utc + self._deadline

    def check_activation(
        self,
        first_execution_utc: Optional[datetime],
        residual: int,
        now: Optional[datetime] = None,
    ) -> None:
        """Raise unless disposal may be triggered now."""
        if now is None:
            now = datetime.now(timezone.utc)
        if self._state.activated:
            raise PhaseError("Unclaimed funds were already distributed")
        deadline = self.deadline_utc(first_execution_utc)
        if deadline is None:
            raise PhaseError("No round has been executed yet")
        if now < deadline:
            raise PhaseError(f"Unclaimed deadline not reached (opens {deadline.isoformat()})")
        if residual <= 0:
            raise EconomicError("No residual balance to distribute")

    def activate(
        self,
        residual: int,
        lifetime: dict[str, int],
        total_claimed: int,
        closed_through_round: int,
        now: Optional[datetime] = None,
    ) -> RedistributionState:
        if now is None:
            now = datetime.now(timezone.utc)
        state = self._state
        state.activated = True
        state.activated_utc = now
        state.residual = residual
        state.closed_through_round = closed_through_round
        if state.policy == UnclaimedPolicy.PRO_RATA:
            state.remaining = residual
            state.total_claimed_basis = total_claimed
            self._basis = {h: v for h, v in lifetime.items() if v > 0}
        logger.info(
            "Unclaimed funds activated under %s policy: residual %d",
            state.policy.value, residual,
        )
        return replace(state)

    def quote(self, holder: str) -> int:
        state = self._state
        if not state.activated:
            raise PhaseError("Unclaimed funds have not been distributed yet")
        if state.policy != UnclaimedPolicy.PRO_RATA:
            raise PhaseError("Redistribution pool is not enabled for this vault")
        if holder in self._claims:
            raise PhaseError(f"{holder} already claimed from the redistribution pool")
        share = self._basis.get(holder, 0)
        if share == 0 or state.total_claimed_basis == 0:
            raise EconomicError(f"{holder} has no lifetime claims")
        amount = min(share * state.residual // state.total_claimed_basis, state.remaining)
        if amount == 0:
            raise EconomicError("Insufficient remaining redistribution pool")
        return amount

    def record(
        self,
        holder: str,
        amount: int,
        now: Optional[datetime] = None,
    ) -> RedistributionClaim:
        if amount > self._state.remaining:
            raise EconomicError(
                f"Redistribution claim {amount} exceeds remaining pool {self._state.remaining}"
            )
        claim = RedistributionClaim(
            holder=holder,
            amount=amount,
            claimed_utc=now or datetime.now(timezone.utc),
        )
        self._claims[holder] = claim
        self._state.remaining -= amount
        self._state.claimed_count += 1
        return claim

    def has_claimed(self, holder: str) -> bool:
        return holder in self._claims
