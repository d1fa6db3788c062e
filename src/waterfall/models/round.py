"""Distribution round models — the per-round state machine and accounting.

State machine:
    INITIATED → VETOED                          (objection threshold met)
    INITIATED → EXECUTED                        (objection window elapsed)
    EXECUTED  → CHALLENGED                      (fraud proven in window)
    EXECUTED  → SETTLED                         (bond returned after window)

VETOED, CHALLENGED and SETTLED are terminal. Accounting lives in flat
tables keyed by round: each round owns a fixed-size list of
TrancheRoundState indexed by tranche, and holder flags live in a sparse
map keyed by (round_id, holder).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from waterfall.errors import PhaseError


class RoundState(str, enum.Enum):
    INITIATED = "initiated"
    VETOED = "vetoed"
    EXECUTED = "executed"
    CHALLENGED = "challenged"
    SETTLED = "settled"


ROUND_TRANSITIONS: Dict[RoundState, frozenset] = {
    RoundState.INITIATED: frozenset({RoundState.VETOED, RoundState.EXECUTED}),
    RoundState.EXECUTED: frozenset({RoundState.CHALLENGED, RoundState.SETTLED}),
    RoundState.VETOED: frozenset(),
    RoundState.CHALLENGED: frozenset(),
    RoundState.SETTLED: frozenset(),
}


@dataclass
class TrancheRoundState:
    """Cumulative accounting for one tranche as of one executed round.

    paid and distributed are WAD-scaled dollars. rate and prior_rate are
    fractions of WAD. prior_rate is the cumulative rate of the previous
    executed round, so the increment this round contributed is
    rate - prior_rate.
    """
    denominator: int = 0
    paid: int = 0
    rate: int = 0
    prior_rate: int = 0
    distributed: int = 0


@dataclass
class DistributionRound:
    """A single proposed distribution of the pending recovery pool.

    Mutable — transitions are validated against ROUND_TRANSITIONS.
    amount is in the recovery asset's native units and is fixed at
    initiation (zeroed again only on veto).
    """
    round_id: int
    proof_root: str
    snapshot_ref: int
    snapshot_seq: int
    amount: int
    initiator: str
    bond: int
    initiated_utc: datetime
    state: RoundState = RoundState.INITIATED
    executed_utc: Optional[datetime] = None
    vetoed_utc: Optional[datetime] = None
    objection_weight: int = 0
    total_claimed: int = 0
    fee: int = 0
    challenged: bool = False
    bond_returned: bool = False
    challenger: Optional[str] = None
    tranches: list[TrancheRoundState] = field(default_factory=list)

    @property
    def vetoed(self) -> bool:
        return self.state == RoundState.VETOED

    @property
    def executed(self) -> bool:
        return self.state in (
            RoundState.EXECUTED, RoundState.CHALLENGED, RoundState.SETTLED,
        )

    def transition_to(self, new_state: RoundState) -> None:
        """Transition to a new state, validating the transition is legal."""
        allowed = ROUND_TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise PhaseError(
                f"Invalid round transition: {self.state.value} → {new_state.value}. "
                f"Allowed: {', '.join(s.value for s in allowed) or 'none'}"
            )
        self.state = new_state


@dataclass
class HolderRoundState:
    """Per-holder settlement flags for one round.

    Objection flags are kept by the objection book.
    """
    claimed: bool = False
    off_ledger_claimed: set[int] = field(default_factory=set)
