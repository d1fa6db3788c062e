"""Objection governance — snapshot-weighted veto of a pending round.

A claim-record holder may object to an initiated round once, inside the
objection window. Claim records are minted in dollars, so a
holder's weight is the sum of their claim-record balances across
tranches and the total is the outstanding supply of every tranche.
Balances are read as of the round's snapshot sequence, never live, so buying or borrowing
claim records after initiation adds nothing.

After each objection the accumulated share of total weight is checked
against both the participation quorum and the blocking threshold. When
both are met the round is vetoed immediately; the vault then refunds it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from waterfall.engine.snapshot import RoundSnapshot
from waterfall.errors import EconomicError, PhaseError
from waterfall.models.round import DistributionRound
from waterfall.models.vault import Tranche
from waterfall.policy.params import BPS, ProtocolParams


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ObjectionOutcome:
    """Result of recording one objection."""
    weight: int
    accumulated: int
    total: int
    share_bps: int
    vetoed: bool


class ObjectionBook:
    """Weights and records objections per round.

    Usage:
        book = ObjectionBook(params)
        weight = book.object_weight(holder, tranches, snapshot)
        outcome = book.cast(round_, holder, weight, book.total_weight(tranches, snapshot))
        if outcome.vetoed:
            ...
    """

    def __init__(self, params: ProtocolParams) -> None:
        self._params = params
        self._objections: dict[int, dict[str, int]] = {}

    def object_weight(
        self,
        holder: str,
        tranches: Sequence[Tranche],
        snapshot: RoundSnapshot,
    ) -> int:
        weight = 0
        for tranche in tranches:
            balance = tranche.claim_record.balance_at_seq(holder, snapshot.seq)
            weight += balance
        return weight

    def total_weight(self, tranches: Sequence[Tranche], snapshot: RoundSnapshot) -> int:
        return sum(snapshot.outstanding[t.index] for t in tranches)

    def has_objected(self, round_id: int, holder: str) -> bool:
        return holder in self._objections.get(round_id, {})

    def objections(self, round_id: int) -> dict[str, int]:
        return dict(self._objections.get(round_id, {}))

    def cast(
        self,
        round_: DistributionRound,
        holder: str,
        weight: int,
        total: int,
    ) -> ObjectionOutcome:
        """Record an objection and decide whether it vetoes the round.

        Raises:
            PhaseError: holder already objected to this round.
            EconomicError: holder has no weight at the snapshot.
        """
        if self.has_objected(round_.round_id, holder):
            raise PhaseError(f"{holder} already objected to round {round_.round_id}")
        if weight <= 0 or total <= 0:
            raise EconomicError(f"{holder} has no voting power in round {round_.round_id}")

        self._objections.setdefault(round_.round_id, {})[holder] = weight
        round_.objection_weight += weight
        accumulated = round_.objection_weight

        quorum_met = accumulated * BPS >= total * self._params.veto_quorum_bps
        threshold_met = accumulated * BPS >= total * self._params.veto_threshold_bps
        share_bps = accumulated * BPS // total

        logger.info(
            "Objection to round %d by %s: %d bps of weight (quorum %s, threshold %s)",
            round_.round_id, holder, share_bps, quorum_met, threshold_met,
        )
        return ObjectionOutcome(
            weight=weight,
            accumulated=accumulated,
            total=total,
            share_bps=share_bps,
            vetoed=quorum_met and threshold_met,
        )
