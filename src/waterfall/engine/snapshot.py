"""Snapshot engine — freezes prices and supplies at round initiation.

At initiation the vault asks the engine to record, under the new round's
id:
- the resolved price of every configured asset;
- every tranche's claim-record supply, both cumulative issued (face
  value, the allocation denominator) and outstanding (the objection
  weight denominator);
- in whole-supply mode, every accepted asset's total outstanding supply;
- the ledger write sequence, which pins voter balances for objections.

Snapshots are write-once. They are the only input to a round's
denominators and objection weights, so any price or balance movement
after initiation cannot influence that round.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from waterfall.errors import PhaseError, ValidationError
from waterfall.ledger.chain import Chain
from waterfall.models.vault import AssetConfig, DenominationMode, Tranche
from waterfall.pricing.resolver import PriceResolver, price_of


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoundSnapshot:
    round_id: int
    seq: int
    block: int
    prices: dict[str, int]
    issued: tuple[int, ...]
    outstanding: tuple[int, ...]
    asset_supply: dict[str, int] = field(default_factory=dict)
    degraded: tuple[str, ...] = ()


class SnapshotEngine:
    """Takes and stores write-once round snapshots.

    Usage:
        engine = SnapshotEngine(chain, resolver, mode)
        snap = engine.take(round_id, tranches, assets)
        denominators = engine.denominators(round_id, tranches, assets, off_ledger_totals)
    """

    def __init__(
        self,
        chain: Chain,
        resolver: PriceResolver,
        mode: DenominationMode,
    ) -> None:
        self._chain = chain
        self._resolver = resolver
        self._mode = mode
        self._snapshots: dict[int, RoundSnapshot] = {}

    def take(
        self,
        round_id: int,
        tranches: Sequence[Tranche],
        assets: Sequence[AssetConfig],
    ) -> RoundSnapshot:
        if round_id in self._snapshots:
            raise PhaseError(f"Round {round_id} already has a snapshot")

        prices: dict[str, int] = {}
        degraded: list[str] = []
        for asset in assets:
            resolution = self._resolver.resolve(asset)
            prices[asset.symbol] = resolution.price
            if resolution.degraded:
                degraded.append(asset.symbol)

        asset_supply: dict[str, int] = {}
        if self._mode == DenominationMode.WHOLE_SUPPLY:
            asset_supply = {asset.symbol: asset.token.total_supply for asset in assets}

        snapshot = RoundSnapshot(
            round_id=round_id,
            seq=self._chain.seq,
            block=self._chain.block_number,
            prices=prices,
            issued=tuple(t.claim_record.total_issued for t in tranches),
            outstanding=tuple(t.claim_record.total_supply for t in tranches),
            asset_supply=asset_supply,
            degraded=tuple(degraded),
        )
        self._snapshots[round_id] = snapshot
        logger.info(
            "Snapshot for round %d at block %d seq %d (degraded prices: %s)",
            round_id, snapshot.block, snapshot.seq, ", ".join(degraded) or "none",
        )
        return snapshot

    def get(self, round_id: int) -> RoundSnapshot:
        snapshot = self._snapshots.get(round_id)
        if snapshot is None:
            raise ValidationError(f"No snapshot for round {round_id}")
        return snapshot

    def price(self, round_id: int, asset: str) -> int:
        return self.get(round_id).prices[asset]

    def denominator(
        self,
        round_id: int,
        tranche: Tranche,
        assets: dict[str, AssetConfig],
        off_ledger_total: int,
    ) -> int:
        """A tranche's total claim (WAD dollars) as of a round's snapshot."""
        snapshot = self.get(round_id)
        if self._mode == DenominationMode.WRAPPED_ONLY:
            return snapshot.issued[tranche.index] + off_ledger_total
        total = off_ledger_total
        for symbol in tranche.assets:
            config = assets[symbol]
            total += price_of(
                snapshot.asset_supply[symbol],
                config.token.decimals,
                snapshot.prices[symbol],
            )
        return total

    def denominators(
        self,
        round_id: int,
        tranches: Sequence[Tranche],
        assets: dict[str, AssetConfig],
        off_ledger_totals: Sequence[int],
    ) -> list[int]:
        return [
            self.denominator(round_id, t, assets, off_ledger_totals[t.index])
            for t in tranches
        ]
