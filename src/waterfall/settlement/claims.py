"""Claim settlement — redeeming executed rounds.

Direct redemption: a claim-record holder redeems an executed round once.
For each tranche the round's applicable rate is applied to the holder's
current balance; that much claim record is burned and its dollar value
is paid in the recovery asset. The junior-most bonus pays out more than
it burns (the applicable rate exceeds 100%), so burns are capped at the
balance while payouts are not.

Off-ledger redemption: a claimant proves (claimant, tranche, amount,
legal hash, snapshot block) against the round's root and is paid the
round's rate increment on that face amount, once per tranche per round.
Nothing is burned.

Settlement quotes first and records second: quote_* methods never
mutate, so the vault can validate a whole operation before committing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from waterfall.crypto.leaves import OffLedgerLeaf
from waterfall.crypto.merkle import verify_proof
from waterfall.engine.allocator import applicable_rate, rate_increment
from waterfall.errors import EconomicError, PhaseError, ProofError, ValidationError
from waterfall.ledger.token import from_wad
from waterfall.models.round import DistributionRound, HolderRoundState
from waterfall.models.vault import Tranche
from waterfall.policy.params import WAD


@dataclass(frozen=True)
class ClaimQuote:
    """What a direct claim will burn and pay.

    burns is (round_id, tranche_index, amount) per non-zero burn.
    round_payouts is (round_id, payout_wad) per round.
    payout is in the recovery asset's native units.
    """
    holder: str
    round_ids: tuple[int, ...]
    burns: tuple[tuple[int, int, int], ...]
    round_payouts: tuple[tuple[int, int], ...]
    payout_wad: int
    payout: int


@dataclass(frozen=True)
class OffLedgerQuote:
    claimant: str
    round_id: int
    tranche_index: int
    payout: int


class ClaimSettlement:
    """Per-holder claim flags plus lifetime totals.

    Usage:
        settlement = ClaimSettlement(recovery_decimals=6)
        quote = settlement.quote_direct([round_], holder, tranches)
        settlement.record_direct(quote, rounds)
    """

    def __init__(self, recovery_decimals: int) -> None:
        self._decimals = recovery_decimals
        self._holders: dict[tuple[int, str], HolderRoundState] = {}
        self._lifetime: dict[str, int] = {}
        self._total_claimed = 0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def status(self, round_id: int, holder: str) -> HolderRoundState:
        return self._holders.get((round_id, holder), HolderRoundState())

    def lifetime_claimed(self, holder: str) -> int:
        return self._lifetime.get(holder, 0)

    def lifetime_table(self) -> dict[str, int]:
        return dict(self._lifetime)

    @property
    def total_claimed(self) -> int:
        """Native units paid by direct and off-ledger claims over all rounds."""
        return self._total_claimed

    # ------------------------------------------------------------------
    # Direct redemption
    # ------------------------------------------------------------------

    def claimable(self, round_: DistributionRound, holder: str) -> Optional[str]:
        """Reason a holder cannot claim a round, or None if they can."""
        if not round_.executed:
            return f"Round {round_.round_id} has not been executed"
        if self.status(round_.round_id, holder).claimed:
            return f"{holder} already claimed round {round_.round_id}"
        return None

    def quote_direct(
        self,
        rounds: Sequence[DistributionRound],
        holder: str,
        tranches: Sequence[Tranche],
    ) -> ClaimQuote:
        """Quote a claim over rounds, applied in order to shrinking balances.

        Rounds must already be claimable; the caller filters batches.
        """
        balances = [t.claim_record.balance_of(holder) for t in tranches]
        burns: list[tuple[int, int, int]] = []
        round_payouts: list[tuple[int, int]] = []
        payout_wad = 0
        for round_ in rounds:
            reason = self.claimable(round_, holder)
            if reason is not None:
                raise PhaseError(reason)
            round_wad = 0
            for tranche in tranches:
                rate = applicable_rate(round_.tranches[tranche.index])
                balance = balances[tranche.index]
                if rate == 0 or balance == 0:
                    continue
                burn = balance * min(rate, WAD) // WAD
                round_wad += balance * rate // WAD
                if burn:
                    balances[tranche.index] -= burn
                    burns.append((round_.round_id, tranche.index, burn))
            round_payouts.append((round_.round_id, round_wad))
            payout_wad += round_wad

        payout = from_wad(payout_wad, self._decimals)
        if payout == 0:
            raise EconomicError(f"Nothing to redeem for {holder}")
        return ClaimQuote(
            holder=holder,
            round_ids=tuple(r.round_id for r in rounds),
            burns=tuple(burns),
            round_payouts=tuple(round_payouts),
            payout_wad=payout_wad,
            payout=payout,
        )

    def record_direct(
        self,
        quote: ClaimQuote,
        rounds: Sequence[DistributionRound],
    ) -> None:
        per_round = dict(quote.round_payouts)
        for round_ in rounds:
            self._holders.setdefault((round_.round_id, quote.holder), HolderRoundState()).claimed = True
            round_.total_claimed += from_wad(per_round.get(round_.round_id, 0), self._decimals)
        self._credit(quote.holder, quote.payout)

    # ------------------------------------------------------------------
    # Off-ledger redemption
    # ------------------------------------------------------------------

    def quote_off_ledger(
        self,
        round_: DistributionRound,
        claimant: str,
        tranche_index: int,
        amount: int,
        legal_hash: str,
        proof: Sequence[str],
        tranche_count: int,
    ) -> OffLedgerQuote:
        if not 0 <= tranche_index < tranche_count:
            raise ValidationError(f"Tranche index {tranche_index} out of range")
        if amount <= 0:
            raise ValidationError("Off-ledger claim amount must be positive")
        if not round_.executed:
            raise PhaseError(f"Round {round_.round_id} has not been executed")
        if tranche_index in self.status(round_.round_id, claimant).off_ledger_claimed:
            raise PhaseError(
                f"{claimant} already claimed tranche {tranche_index} in round {round_.round_id}"
            )

        leaf = OffLedgerLeaf(
            claimant=claimant,
            tranche_index=tranche_index,
            amount=amount,
            legal_hash=legal_hash,
            snapshot_ref=round_.snapshot_ref,
        )
        if not verify_proof(round_.proof_root, leaf.leaf_hash(), proof):
            raise ProofError(f"Invalid off-ledger proof for {claimant} in round {round_.round_id}")

        increment = rate_increment(round_.tranches[tranche_index])
        payout = from_wad(amount * increment // WAD, self._decimals)
        if payout == 0:
            raise EconomicError(f"Nothing to redeem for {claimant}")
        return OffLedgerQuote(
            claimant=claimant,
            round_id=round_.round_id,
            tranche_index=tranche_index,
            payout=payout,
        )

    def record_off_ledger(self, quote: OffLedgerQuote, round_: DistributionRound) -> None:
        state = self._holders.setdefault((quote.round_id, quote.claimant), HolderRoundState())
        state.off_ledger_claimed.add(quote.tranche_index)
        round_.total_claimed += quote.payout
        self._credit(quote.claimant, quote.payout)

    def _credit(self, holder: str, amount: int) -> None:
        self._lifetime[holder] = self._lifetime.get(holder, 0) + amount
        self._total_claimed += amount
