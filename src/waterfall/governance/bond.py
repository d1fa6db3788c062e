"""Submitter bonds — the initiator's forfeitable stake and fraud challenges.

Whoever initiates a round posts a bond in the recovery asset. The bond
is held apart from the pending pool and from round amounts.

Lifecycle:
    POSTED → RETURNED   (round vetoed, or challenge window elapsed quietly)
    POSTED → FORFEITED  (fraud proven inside the challenge window)

A challenge names a leaf and its proof. It only succeeds when the proof
verifies against the round's root and the leaf contradicts the ledger:
an on-ledger leaf whose balance differs from the holder's claim-record
balance at the snapshot block, or an off-ledger leaf that matches no
configured off-ledger claim. A proof of truthful data is rejected.

The bond book is a pure state machine; transfers are the vault's job.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional, Sequence

from waterfall.crypto.leaves import HolderLeaf, Leaf, OffLedgerLeaf
from waterfall.errors import EconomicError, PhaseError, ValidationError
from waterfall.models.vault import OffLedgerClaim, Tranche


class BondState(str, enum.Enum):
    POSTED = "posted"
    RETURNED = "returned"
    FORFEITED = "forfeited"


BOND_TRANSITIONS: Dict[BondState, frozenset] = {
    BondState.POSTED: frozenset({BondState.RETURNED, BondState.FORFEITED}),
    BondState.RETURNED: frozenset(),
    BondState.FORFEITED: frozenset(),
}


@dataclass
class BondRecord:
    """A bond posted against one round.

    Mutable — transitions are validated against BOND_TRANSITIONS.
    beneficiary is the initiator on return, the challenger on forfeit.
    """
    round_id: int
    poster: str
    amount: int
    state: BondState = BondState.POSTED
    posted_utc: Optional[datetime] = None
    settled_utc: Optional[datetime] = None
    beneficiary: Optional[str] = None

    def transition_to(self, new_state: BondState) -> None:
        allowed = BOND_TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise PhaseError(
                f"Invalid bond transition: {self.state.value} → {new_state.value}"
            )
        self.state = new_state


class BondBook:
    """Tracks bonds per round.

    Usage:
        book = BondBook(min_bond=params.min_bond(recovery.decimals))
        book.post(round_id, initiator, amount)
        record = book.release(round_id)          # back to initiator
        record = book.forfeit(round_id, challenger)
    """

    def __init__(self, min_bond: int) -> None:
        self._min_bond = min_bond
        self._bonds: dict[int, BondRecord] = {}

    def check(self, amount: int) -> None:
        """Raise unless amount satisfies the minimum bond."""
        if amount < self._min_bond or amount <= 0:
            raise EconomicError(
                f"Insufficient bond: {amount} < required {max(self._min_bond, 1)}"
            )

    def post(
        self,
        round_id: int,
        poster: str,
        amount: int,
        now: Optional[datetime] = None,
    ) -> BondRecord:
        self.check(amount)
        if round_id in self._bonds:
            raise PhaseError(f"Round {round_id} already has a bond")
        record = BondRecord(
            round_id=round_id,
            poster=poster,
            amount=amount,
            posted_utc=now or datetime.now(timezone.utc),
        )
        self._bonds[round_id] = record
        return record

    def get(self, round_id: int) -> BondRecord:
        record = self._bonds.get(round_id)
        if record is None:
            raise ValidationError(f"No bond for round {round_id}")
        return record

    def release(self, round_id: int, now: Optional[datetime] = None) -> BondRecord:
        record = self.get(round_id)
        record.transition_to(BondState.RETURNED)
        record.settled_utc = now or datetime.now(timezone.utc)
        record.beneficiary = record.poster
        return record

    def forfeit(
        self,
        round_id: int,
        challenger: str,
        now: Optional[datetime] = None,
    ) -> BondRecord:
        record = self.get(round_id)
        record.transition_to(BondState.FORFEITED)
        record.settled_utc = now or datetime.now(timezone.utc)
        record.beneficiary = challenger
        return record

    @property
    def outstanding(self) -> int:
        """Total of bonds still held by the vault."""
        return sum(b.amount for b in self._bonds.values() if b.state == BondState.POSTED)


def is_fraudulent(
    leaf: Leaf,
    snapshot_ref: int,
    tranches: Sequence[Tranche],
    off_ledger_claims: Sequence[OffLedgerClaim],
) -> bool:
    """Whether a proven leaf misstates the ledger at the round's snapshot block."""
    if leaf.snapshot_ref != snapshot_ref:
        return True
    if isinstance(leaf, HolderLeaf):
        if not 0 <= leaf.tranche_index < len(tranches):
            return True
        record = tranches[leaf.tranche_index].claim_record
        return record.balance_at_block(leaf.holder.lower(), snapshot_ref) != leaf.balance
    if isinstance(leaf, OffLedgerLeaf):
        for claim in off_ledger_claims:
            if (
                claim.claimant.lower() == leaf.claimant.lower()
                and claim.tranche_index == leaf.tranche_index
                and claim.amount == leaf.amount
                and claim.legal_hash.lower() == leaf.legal_hash.lower()
            ):
                return False
        return True
    raise ValidationError(f"Unknown leaf type: {type(leaf).__name__}")
