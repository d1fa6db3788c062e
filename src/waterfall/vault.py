"""Recovery vault — unified facade for the recovery distribution engine.

The vault owns every piece of mutable state and is the only entry point
for state changes:
- Deposits (underlying assets in, claim records out) and recovery funds
- Round lifecycle (initiate, object, execute, challenge, return bond)
- Settlement (direct, batch and off-ledger claims)
- Unclaimed-funds disposal and the pro-rata redistribution pool

Every public operation is all-or-nothing: it validates completely, then
commits its bookkeeping, then moves tokens, then appends its events. A
failure at any check raises before anything changes. Mutating operations
are guarded against re-entry, since price sources and token holders are
the external call points through which a caller could loop back in.
"""

from __future__ import annotations

import functools
import hashlib
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, Sequence, TypeVar

from waterfall.crypto.leaves import Leaf, legal_hash_bytes
from waterfall.crypto.merkle import verify_proof
from waterfall.engine.allocator import WaterfallAllocator
from waterfall.engine.snapshot import RoundSnapshot, SnapshotEngine
from waterfall.errors import (
    EconomicError,
    PhaseError,
    ProofError,
    ReentrancyError,
    ValidationError,
)
from waterfall.governance.bond import BondBook, BondState, is_fraudulent
from waterfall.governance.objection import ObjectionBook
from waterfall.ledger.chain import Chain
from waterfall.ledger.token import ClaimRecord, normalize_address, to_wad
from waterfall.models.round import DistributionRound, RoundState, TrancheRoundState
from waterfall.models.vault import (
    AssetConfig,
    DenominationMode,
    OffLedgerClaim,
    Tranche,
    UnclaimedPolicy,
    VaultConfig,
)
from waterfall.persistence.event_log import EventKind, EventLog, EventRecord
from waterfall.policy.params import BPS, ProtocolParams
from waterfall.pricing.resolver import PriceResolver, price_of
from waterfall.settlement.claims import ClaimSettlement
from waterfall.settlement.redistribution import RedistributionState, UnclaimedRedistribution


logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
MAX_TRANCHES = 256

F = TypeVar("F", bound=Callable[..., Any])


def _nonreentrant(method: F) -> F:
    @functools.wraps(method)
    def wrapper(self: RecoveryVault, *args: Any, **kwargs: Any) -> Any:
        if self._entered:
            raise ReentrancyError(f"{method.__name__} called while another operation is in progress")
        self._entered = True
        try:
            return method(self, *args, **kwargs)
        finally:
            self._entered = False
    return wrapper  # type: ignore[return-value]


@dataclass(frozen=True)
class ClaimStatus:
    """A holder's flags for one round plus their lifetime claimed total."""
    round_id: int
    holder: str
    objected: bool
    claimed: bool
    off_ledger_claimed: frozenset[int]
    lifetime_claimed: int


class RecoveryVault:
    """Priority-ordered distribution of recovered value across rounds.

    Usage:
        vault = RecoveryVault(config, chain, params)

        vault.deposit(holder, "BOND-A", amount)            # mints claim records
        vault.deposit_recovery(servicer, usdc_amount)      # fills the pending pool

        round_ = vault.initiate(proposer, root, snapshot_block, bond)
        vault.object(holder, round_.round_id)              # inside the window
        vault.execute(keeper, round_.round_id)             # after the window
        vault.claim(holder, round_.round_id)
        vault.return_bond(keeper, round_.round_id)         # after challenge window
    """

    def __init__(
        self,
        config: VaultConfig,
        chain: Chain,
        params: Optional[ProtocolParams] = None,
        address: Optional[str] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._params = params or ProtocolParams()
        self._chain = chain
        self._config = config
        self._address = normalize_address(address) if address else _derive_address(config.name)
        self._event_log = event_log if event_log is not None else EventLog()
        self._entered = False

        self._assets: dict[str, AssetConfig] = {}
        self._tranches: tuple[Tranche, ...] = self._build_tranches(config)
        self._off_ledger: tuple[OffLedgerClaim, ...] = self._validate_off_ledger(config)
        self._off_ledger_totals: tuple[int, ...] = tuple(
            sum(c.amount for c in self._off_ledger if c.tranche_index == t.index)
            for t in self._tranches
        )
        self._treasury: Optional[str] = None
        if config.unclaimed_policy == UnclaimedPolicy.TREASURY:
            if not config.treasury:
                raise ValidationError("Treasury policy requires a treasury address")
            self._treasury = normalize_address(config.treasury)

        self._recovery = config.recovery_token
        self._resolver = PriceResolver(self._params, chain)
        self._snapshots = SnapshotEngine(chain, self._resolver, config.mode)
        self._allocator = WaterfallAllocator()
        self._objections = ObjectionBook(self._params)
        self._bonds = BondBook(self._params.min_bond(self._recovery.decimals))
        self._settlement = ClaimSettlement(self._recovery.decimals)
        self._redistribution = UnclaimedRedistribution(
            config.unclaimed_policy, self._params.unclaimed_deadline,
        )

        self._rounds: list[DistributionRound] = []
        self._pending_pool = 0
        self._deposits_open = True
        self._first_execution_utc: Optional[datetime] = None
        self._last_executed: Optional[DistributionRound] = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _build_tranches(self, config: VaultConfig) -> tuple[Tranche, ...]:
        count = len(config.tranche_names)
        if count == 0:
            raise ValidationError("A vault needs at least one tranche")
        if count > MAX_TRANCHES:
            raise ValidationError(f"At most {MAX_TRANCHES} tranches are supported")

        accepted: list[list[str]] = [[] for _ in range(count)]
        for asset in config.assets:
            if not 0 <= asset.tranche_index < count:
                raise ValidationError(
                    f"Asset {asset.symbol} assigned to invalid tranche {asset.tranche_index}"
                )
            if asset.symbol in self._assets:
                raise ValidationError(f"Duplicate asset: {asset.symbol}")
            if asset.static_price <= 0:
                raise ValidationError(f"Asset {asset.symbol} needs a positive static price")
            self._assets[asset.symbol] = asset
            accepted[asset.tranche_index].append(asset.symbol)

        return tuple(
            Tranche(
                index=i,
                name=name,
                claim_record=ClaimRecord(f"{config.name}-{name}", self._address, self._chain),
                assets=tuple(accepted[i]),
            )
            for i, name in enumerate(config.tranche_names)
        )

    def _validate_off_ledger(self, config: VaultConfig) -> tuple[OffLedgerClaim, ...]:
        claims = []
        for claim in config.off_ledger_claims:
            if not 0 <= claim.tranche_index < len(self._tranches):
                raise ValidationError(
                    f"Off-ledger claim for {claim.claimant} has invalid tranche {claim.tranche_index}"
                )
            if claim.amount <= 0:
                raise ValidationError(f"Off-ledger claim for {claim.claimant} must be positive")
            legal_hash_bytes(claim.legal_hash)
            claims.append(OffLedgerClaim(
                claimant=normalize_address(claim.claimant),
                tranche_index=claim.tranche_index,
                amount=claim.amount,
                legal_hash=claim.legal_hash.lower(),
            ))
        return tuple(claims)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def address(self) -> str:
        return self._address

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def mode(self) -> DenominationMode:
        return self._config.mode

    @property
    def chain(self) -> Chain:
        return self._chain

    @property
    def params(self) -> ProtocolParams:
        return self._params

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    @property
    def tranches(self) -> tuple[Tranche, ...]:
        return self._tranches

    @property
    def off_ledger_claims(self) -> tuple[OffLedgerClaim, ...]:
        return self._off_ledger

    @property
    def pending_pool(self) -> int:
        return self._pending_pool

    @property
    def deposits_open(self) -> bool:
        return self._deposits_open

    @property
    def round_count(self) -> int:
        return len(self._rounds)

    @property
    def first_execution_utc(self) -> Optional[datetime]:
        return self._first_execution_utc

    @property
    def total_claimed(self) -> int:
        return self._settlement.total_claimed

    def get_round(self, round_id: int) -> DistributionRound:
        """Return a round. Callers must treat the record as read-only."""
        if not 1 <= round_id <= len(self._rounds):
            raise ValidationError(f"Unknown round: {round_id}")
        return self._rounds[round_id - 1]

    def get_tranche(self, index: int) -> Tranche:
        if not 0 <= index < len(self._tranches):
            raise ValidationError(f"Tranche index {index} out of range")
        return self._tranches[index]

    def get_tranche_state(self, round_id: int, index: int) -> TrancheRoundState:
        round_ = self.get_round(round_id)
        self.get_tranche(index)
        if not round_.executed:
            raise PhaseError(f"Round {round_id} has not been executed")
        return round_.tranches[index]

    def get_snapshot(self, round_id: int) -> RoundSnapshot:
        self.get_round(round_id)
        return self._snapshots.get(round_id)

    def get_claim_status(self, round_id: int, holder: str) -> ClaimStatus:
        self.get_round(round_id)
        holder = normalize_address(holder)
        state = self._settlement.status(round_id, holder)
        return ClaimStatus(
            round_id=round_id,
            holder=holder,
            objected=self._objections.has_objected(round_id, holder),
            claimed=state.claimed,
            off_ledger_claimed=frozenset(state.off_ledger_claimed),
            lifetime_claimed=self._settlement.lifetime_claimed(holder),
        )

    def list_assets(self, offset: int = 0, limit: int = MAX_PAGE_SIZE) -> list[AssetConfig]:
        _check_page(offset, limit)
        return list(self._assets.values())[offset:offset + limit]

    def list_off_ledger_claims(
        self, offset: int = 0, limit: int = MAX_PAGE_SIZE,
    ) -> list[OffLedgerClaim]:
        _check_page(offset, limit)
        return list(self._off_ledger[offset:offset + limit])

    def off_ledger_total(self, index: int) -> int:
        self.get_tranche(index)
        return self._off_ledger_totals[index]

    def denominator(self, round_id: int, index: int) -> int:
        self.get_round(round_id)
        return self._snapshots.denominator(
            round_id, self.get_tranche(index), self._assets, self._off_ledger_totals[index],
        )

    def object_weight(self, holder: str, round_id: int) -> int:
        self.get_round(round_id)
        return self._objections.object_weight(
            normalize_address(holder), self._tranches, self._snapshots.get(round_id),
        )

    def total_object_weight(self, round_id: int) -> int:
        self.get_round(round_id)
        return self._objections.total_weight(self._tranches, self._snapshots.get(round_id))

    def bond_state(self, round_id: int) -> BondState:
        self.get_round(round_id)
        return self._bonds.get(round_id).state

    def redistribution_state(self) -> RedistributionState:
        return self._redistribution.get_state()

    def residual_balance(self) -> int:
        """Recovery asset held that belongs to no pending pool, round or bond."""
        in_flight = sum(r.amount for r in self._rounds if r.state == RoundState.INITIATED)
        held = self._recovery.balance_of(self._address)
        return held - self._pending_pool - in_flight - self._bonds.outstanding

    # ------------------------------------------------------------------
    # Deposits
    # ------------------------------------------------------------------

    @_nonreentrant
    def deposit(self, holder: str, asset: str, amount: int) -> int:
        """Deposit an underlying asset and receive claim records at its current price.

        Returns the number of claim-record units minted.
        """
        holder = normalize_address(holder)
        prepared = self._prepare_deposits(holder, [asset], [amount])
        return self._commit_deposits(holder, prepared)[0]

    @_nonreentrant
    def deposit_batch(
        self,
        holder: str,
        assets: Sequence[str],
        amounts: Sequence[int],
    ) -> list[int]:
        holder = normalize_address(holder)
        if len(assets) != len(amounts):
            raise ValidationError(
                f"Batch length mismatch: {len(assets)} assets, {len(amounts)} amounts"
            )
        if not assets:
            raise ValidationError("Empty deposit batch")
        prepared = self._prepare_deposits(holder, assets, amounts)
        return self._commit_deposits(holder, prepared)

    def _prepare_deposits(
        self,
        holder: str,
        assets: Sequence[str],
        amounts: Sequence[int],
    ) -> list[tuple[AssetConfig, int, int]]:
        if not self._deposits_open:
            raise PhaseError("Deposits are closed")
        prepared: list[tuple[AssetConfig, int, int]] = []
        needed: dict[str, int] = {}
        for symbol, amount in zip(assets, amounts):
            if amount <= 0:
                raise ValidationError("Deposit amount must be positive")
            config = self._assets.get(symbol)
            if config is None:
                raise ValidationError(f"Asset not accepted: {symbol}")
            needed[symbol] = needed.get(symbol, 0) + amount
            if config.token.balance_of(holder) < needed[symbol]:
                raise EconomicError(f"{holder} holds insufficient {symbol}")
            price = self._resolver.resolve(config).price
            minted = price_of(amount, config.token.decimals, price)
            if minted == 0:
                raise ValidationError(f"Deposit of {amount} {symbol} is worth nothing")
            prepared.append((config, amount, minted))
        return prepared

    def _commit_deposits(
        self,
        holder: str,
        prepared: list[tuple[AssetConfig, int, int]],
    ) -> list[int]:
        minted: list[int] = []
        for config, amount, units in prepared:
            tranche = self._tranches[config.tranche_index]
            config.token.move(holder, self._address, amount)
            tranche.claim_record.mint(self._address, holder, units)
            minted.append(units)
            self._emit(EventKind.DEPOSIT, holder, {
                "asset": config.symbol,
                "amount": str(amount),
                "tranche": tranche.index,
                "minted": str(units),
            })
        return minted

    @_nonreentrant
    def deposit_recovery(self, sender: str, amount: int) -> int:
        """Add recovered funds to the pending pool. Returns the new pool size."""
        sender = normalize_address(sender)
        if amount <= 0:
            raise ValidationError("Recovery amount must be positive")
        if self._recovery.balance_of(sender) < amount:
            raise EconomicError(f"{sender} holds insufficient {self._recovery.symbol}")

        self._pending_pool += amount
        self._recovery.move(sender, self._address, amount)
        self._emit(EventKind.RECOVERY_DEPOSITED, sender, {
            "amount": str(amount),
            "pending_pool": str(self._pending_pool),
        })
        return self._pending_pool

    # ------------------------------------------------------------------
    # Round lifecycle
    # ------------------------------------------------------------------

    @_nonreentrant
    def initiate(
        self,
        initiator: str,
        proof_root: str,
        snapshot_ref: int,
        bond: int,
    ) -> DistributionRound:
        """Open a round carrying the whole pending pool.

        Transitions: (none) → INITIATED
        """
        initiator = normalize_address(initiator)
        now = self._chain.now
        proof_root = _check_root(proof_root)
        if self._pending_pool <= 0:
            raise EconomicError("No pending recovery funds to distribute")
        if snapshot_ref > self._chain.block_number:
            raise ValidationError(
                f"Snapshot block {snapshot_ref} is in the future "
                f"(current {self._chain.block_number})"
            )
        if snapshot_ref < 0:
            raise ValidationError("Snapshot block must not be negative")

        previous = self._rounds[-1] if self._rounds else None
        if previous is not None:
            if previous.state == RoundState.INITIATED:
                raise PhaseError(f"Round {previous.round_id} is still pending")
            if previous.state == RoundState.VETOED:
                reopens = previous.vetoed_utc + self._params.veto_cooldown
                if now < reopens:
                    raise PhaseError(f"Veto cooldown active until {reopens.isoformat()}")
                if previous.initiator == initiator:
                    raise PhaseError(
                        f"{initiator} initiated vetoed round {previous.round_id} "
                        f"and may not resubmit"
                    )
        self._bonds.check(bond)
        if self._recovery.balance_of(initiator) < bond:
            raise EconomicError(f"{initiator} cannot cover bond of {bond}")

        round_id = len(self._rounds) + 1
        snapshot = self._snapshots.take(round_id, self._tranches, list(self._assets.values()))

        closing = self._config.mode == DenominationMode.WRAPPED_ONLY and self._deposits_open
        if closing:
            self._deposits_open = False

        round_ = DistributionRound(
            round_id=round_id,
            proof_root=proof_root,
            snapshot_ref=snapshot_ref,
            snapshot_seq=snapshot.seq,
            amount=self._pending_pool,
            initiator=initiator,
            bond=bond,
            initiated_utc=now,
        )
        self._rounds.append(round_)
        self._pending_pool = 0
        self._bonds.post(round_id, initiator, bond, now=now)

        self._recovery.move(initiator, self._address, bond)

        if closing:
            self._emit(EventKind.DEPOSITS_CLOSED, initiator, {"round_id": round_id})
        self._emit(EventKind.ROUND_INITIATED, initiator, {
            "round_id": round_id,
            "amount": str(round_.amount),
            "proof_root": proof_root,
            "snapshot_ref": snapshot_ref,
            "degraded_prices": list(snapshot.degraded),
        })
        self._emit(EventKind.BOND_POSTED, initiator, {
            "round_id": round_id,
            "amount": str(bond),
        })
        logger.info("Round %d initiated by %s with %d", round_id, initiator, round_.amount)
        return round_

    @_nonreentrant
    def object(self, holder: str, round_id: int) -> bool:
        """Object to a pending round. Returns True if this objection vetoed it."""
        holder = normalize_address(holder)
        round_ = self.get_round(round_id)
        if round_.state != RoundState.INITIATED:
            raise PhaseError(f"Round {round_id} is {round_.state.value}, not open to objections")
        closes = round_.initiated_utc + self._params.objection_window
        if self._chain.now >= closes:
            raise PhaseError(f"Objection window for round {round_id} closed at {closes.isoformat()}")

        snapshot = self._snapshots.get(round_id)
        weight = self._objections.object_weight(holder, self._tranches, snapshot)
        total = self._objections.total_weight(self._tranches, snapshot)
        outcome = self._objections.cast(round_, holder, weight, total)

        self._emit(EventKind.ROUND_OBJECTED, holder, {
            "round_id": round_id,
            "weight": str(outcome.weight),
            "accumulated": str(outcome.accumulated),
            "total": str(outcome.total),
            "share_bps": outcome.share_bps,
        })
        if outcome.vetoed:
            self._veto(round_)
        return outcome.vetoed

    def _veto(self, round_: DistributionRound) -> None:
        now = self._chain.now
        refunded = round_.amount
        round_.transition_to(RoundState.VETOED)
        round_.vetoed_utc = now
        self._pending_pool += refunded
        round_.amount = 0

        returned = None
        if self._bonds.get(round_.round_id).state == BondState.POSTED:
            returned = self._bonds.release(round_.round_id, now=now)
            round_.bond_returned = True
            self._recovery.move(self._address, round_.initiator, returned.amount)

        self._emit(EventKind.ROUND_VETOED, round_.initiator, {
            "round_id": round_.round_id,
            "refunded": str(refunded),
            "pending_pool": str(self._pending_pool),
        })
        if returned is not None:
            self._emit(EventKind.BOND_RETURNED, round_.initiator, {
                "round_id": round_.round_id,
                "amount": str(returned.amount),
            })
        logger.info("Round %d vetoed; %d returned to pending pool", round_.round_id, refunded)

    @_nonreentrant
    def execute(self, caller: str, round_id: int) -> DistributionRound:
        """Pay the execution fee and run the waterfall on the remainder.

        Transitions: INITIATED → EXECUTED
        """
        caller = normalize_address(caller)
        now = self._chain.now
        round_ = self.get_round(round_id)
        if round_.state != RoundState.INITIATED:
            raise PhaseError(f"Round {round_id} is {round_.state.value} and cannot be executed")
        opens = round_.initiated_utc + self._params.objection_window
        if now < opens:
            raise PhaseError(f"Objection window for round {round_id} open until {opens.isoformat()}")

        fee = round_.amount * self._params.execution_fee_bps // BPS
        denominators = self._snapshots.denominators(
            round_id, self._tranches, self._assets, self._off_ledger_totals,
        )
        previous = self._last_executed.tranches if self._last_executed else None
        allocation = self._allocator.allocate(
            to_wad(round_.amount - fee, self._recovery.decimals), denominators, previous,
        )

        round_.transition_to(RoundState.EXECUTED)
        round_.executed_utc = now
        round_.fee = fee
        round_.tranches = allocation.tranches
        self._last_executed = round_
        if self._first_execution_utc is None:
            self._first_execution_utc = now

        self._recovery.move(self._address, round_.initiator, fee)

        self._emit(EventKind.ROUND_EXECUTED, caller, {
            "round_id": round_id,
            "amount": str(round_.amount),
            "fee": str(fee),
            "bonus": str(allocation.bonus),
            "tranches": [
                {
                    "index": i,
                    "denominator": str(s.denominator),
                    "paid": str(s.paid),
                    "rate": str(s.rate),
                    "distributed": str(s.distributed),
                }
                for i, s in enumerate(allocation.tranches)
            ],
        })
        logger.info("Round %d executed: %d distributed, fee %d", round_id, round_.amount - fee, fee)
        return round_

    @_nonreentrant
    def challenge(
        self,
        challenger: str,
        round_id: int,
        leaf: Leaf,
        proof: Sequence[str],
    ) -> DistributionRound:
        """Prove the round's root contains a false leaf and take the bond.

        Transitions: EXECUTED → CHALLENGED
        """
        challenger = normalize_address(challenger)
        now = self._chain.now
        round_ = self.get_round(round_id)
        if round_.state != RoundState.EXECUTED:
            raise PhaseError(f"Round {round_id} is {round_.state.value} and cannot be challenged")
        closes = round_.executed_utc + self._params.challenge_window
        if now >= closes:
            raise PhaseError(f"Challenge window for round {round_id} closed at {closes.isoformat()}")
        if not verify_proof(round_.proof_root, leaf.leaf_hash(), proof):
            raise ProofError(f"Challenge proof does not verify against round {round_id}")
        if not is_fraudulent(leaf, round_.snapshot_ref, self._tranches, self._off_ledger):
            raise ProofError(f"Challenge rejected: leaf matches the ledger at block {round_.snapshot_ref}")

        forfeited = self._bonds.forfeit(round_id, challenger, now=now)
        round_.transition_to(RoundState.CHALLENGED)
        round_.challenged = True
        round_.challenger = challenger

        self._recovery.move(self._address, challenger, forfeited.amount)

        self._emit(EventKind.CHALLENGE_RAISED, challenger, {
            "round_id": round_id,
            "bond": str(forfeited.amount),
            "leaf": leaf.leaf_hash(),
        })
        logger.warning("Round %d successfully challenged by %s", round_id, challenger)
        return round_

    @_nonreentrant
    def return_bond(self, caller: str, round_id: int) -> DistributionRound:
        """Return the initiator's bond once the challenge window passed quietly.

        Transitions: EXECUTED → SETTLED
        """
        caller = normalize_address(caller)
        now = self._chain.now
        round_ = self.get_round(round_id)
        if round_.state != RoundState.EXECUTED:
            raise PhaseError(f"Round {round_id} is {round_.state.value}; no bond to return")
        closes = round_.executed_utc + self._params.challenge_window
        if now < closes:
            raise PhaseError(f"Challenge window for round {round_id} open until {closes.isoformat()}")

        returned = self._bonds.release(round_id, now=now)
        round_.transition_to(RoundState.SETTLED)
        round_.bond_returned = True

        self._recovery.move(self._address, round_.initiator, returned.amount)

        self._emit(EventKind.BOND_RETURNED, caller, {
            "round_id": round_id,
            "amount": str(returned.amount),
            "initiator": round_.initiator,
        })
        return round_

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    @_nonreentrant
    def claim(self, holder: str, round_id: int) -> int:
        """Redeem one executed round. Returns the amount paid."""
        holder = normalize_address(holder)
        round_ = self.get_round(round_id)
        self._check_open_for_claims(round_)
        return self._settle_direct(holder, [round_])

    @_nonreentrant
    def claim_batch(self, holder: str, round_ids: Sequence[int]) -> int:
        """Redeem several rounds, skipping unexecuted or already-claimed ones."""
        holder = normalize_address(holder)
        if not round_ids:
            raise ValidationError("Empty claim batch")
        rounds: list[DistributionRound] = []
        seen: set[int] = set()
        for round_id in round_ids:
            round_ = self.get_round(round_id)
            if round_id in seen:
                continue
            seen.add(round_id)
            if self._redistribution.is_round_closed(round_id):
                continue
            if self._settlement.claimable(round_, holder) is not None:
                continue
            rounds.append(round_)
        if not rounds:
            raise PhaseError(f"No claimable rounds for {holder}")
        return self._settle_direct(holder, rounds)

    def _settle_direct(self, holder: str, rounds: list[DistributionRound]) -> int:
        quote = self._settlement.quote_direct(rounds, holder, self._tranches)
        self._check_liquidity(quote.payout)

        self._settlement.record_direct(quote, rounds)

        for _round_id, tranche_index, burn in quote.burns:
            self._tranches[tranche_index].claim_record.burn(self._address, holder, burn)
        self._recovery.move(self._address, holder, quote.payout)

        self._emit(EventKind.CLAIMED, holder, {
            "round_ids": list(quote.round_ids),
            "payout": str(quote.payout),
            "burned": [
                {"round_id": r, "tranche": t, "amount": str(a)} for r, t, a in quote.burns
            ],
        })
        return quote.payout

    @_nonreentrant
    def claim_off_ledger(
        self,
        claimant: str,
        round_id: int,
        tranche_index: int,
        amount: int,
        legal_hash: str,
        proof: Sequence[str],
    ) -> int:
        """Redeem an off-ledger claim with a membership proof. Returns the amount paid."""
        claimant = normalize_address(claimant)
        round_ = self.get_round(round_id)
        self._check_open_for_claims(round_)
        quote = self._settlement.quote_off_ledger(
            round_, claimant, tranche_index, amount, legal_hash, proof, len(self._tranches),
        )
        self._check_liquidity(quote.payout)

        self._settlement.record_off_ledger(quote, round_)
        self._recovery.move(self._address, claimant, quote.payout)

        self._emit(EventKind.OFF_LEDGER_CLAIMED, claimant, {
            "round_id": round_id,
            "tranche": tranche_index,
            "amount": str(amount),
            "legal_hash": legal_hash.lower(),
            "payout": str(quote.payout),
        })
        return quote.payout

    def _check_open_for_claims(self, round_: DistributionRound) -> None:
        if self._redistribution.is_round_closed(round_.round_id):
            raise PhaseError(
                f"Round {round_.round_id} closed: its unclaimed funds were redistributed"
            )

    def _check_liquidity(self, payout: int) -> None:
        held = self._recovery.balance_of(self._address)
        if held < payout:
            raise EconomicError(f"Vault holds {held}, cannot pay {payout}")

    # ------------------------------------------------------------------
    # Unclaimed funds
    # ------------------------------------------------------------------

    @_nonreentrant
    def distribute_unclaimed(self, caller: str) -> RedistributionState:
        """Dispose of the residual balance under the configured policy."""
        caller = normalize_address(caller)
        now = self._chain.now
        residual = self.residual_balance()
        self._redistribution.check_activation(self._first_execution_utc, residual, now=now)

        closed_through = self._last_executed.round_id if self._last_executed else 0
        state = self._redistribution.activate(
            residual,
            self._settlement.lifetime_table(),
            self._settlement.total_claimed,
            closed_through,
            now=now,
        )
        if state.policy == UnclaimedPolicy.TREASURY:
            self._recovery.move(self._address, self._treasury, residual)

        self._emit(EventKind.UNCLAIMED_POLICY_ACTIVATED, caller, {
            "policy": state.policy.value,
            "residual": str(residual),
            "treasury": self._treasury,
            "closed_through_round": closed_through,
        })
        return state

    @_nonreentrant
    def claim_redistribution(self, holder: str) -> int:
        """Take a pro-rata share of the residual pool. Returns the amount paid."""
        holder = normalize_address(holder)
        amount = self._redistribution.quote(holder)
        self._check_liquidity(amount)

        self._redistribution.record(holder, amount, now=self._chain.now)
        self._recovery.move(self._address, holder, amount)

        self._emit(EventKind.REDISTRIBUTION_CLAIMED, holder, {
            "amount": str(amount),
            "remaining": str(self._redistribution.get_state().remaining),
        })
        return amount

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _emit(self, kind: EventKind, actor_id: str, payload: dict[str, Any]) -> EventRecord:
        event = EventRecord.create(
            event_id=f"evt_{uuid.uuid4().hex[:12]}",
            event_kind=kind,
            actor_id=actor_id,
            payload={"vault": self._address, "block": self._chain.block_number, **payload},
            timestamp_utc=self._chain.now,
        )
        self._event_log.append(event)
        return event


def _derive_address(name: str) -> str:
    return "0x" + hashlib.sha256(f"waterfall-vault:{name}".encode("utf-8")).hexdigest()[:40]


def _check_root(root: str) -> str:
    value = root.lower()
    if not value.startswith("0x") or len(value) != 66:
        raise ValidationError(f"Proof root must be a 32-byte hex string, got {root!r}")
    try:
        int(value[2:], 16)
    except ValueError:
        raise ValidationError(f"Proof root must be a 32-byte hex string, got {root!r}") from None
    return value


def _check_page(offset: int, limit: int) -> None:
    if offset < 0:
        raise ValidationError("Page offset must not be negative")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"Page limit must be within [1, {MAX_PAGE_SIZE}]")
