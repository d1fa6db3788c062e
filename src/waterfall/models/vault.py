"""Vault configuration models — tranches, assets, off-ledger claims.

All of these are written once when the vault is constructed and never
change afterwards. Tranche order is priority order: index 0 is the most
senior class and is paid in full before index 1 receives anything.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from waterfall.ledger.token import ClaimRecord, Token


class DenominationMode(str, enum.Enum):
    """How a tranche's total claim is measured.

    WRAPPED_ONLY: issued claim-record supply plus off-ledger claims.
        Deposits close permanently when the first round is initiated.
    WHOLE_SUPPLY: the full outstanding supply of every accepted asset at
        its snapshotted price, plus off-ledger claims. Holders who never
        deposit still dilute the tranche but cannot claim.
    """
    WRAPPED_ONLY = "wrapped_only"
    WHOLE_SUPPLY = "whole_supply"


class UnclaimedPolicy(str, enum.Enum):
    """What happens to residual funds after the unclaimed deadline."""
    TREASURY = "treasury"
    PRO_RATA = "pro_rata"


@dataclass(frozen=True)
class AssetConfig:
    """An accepted underlying asset.

    price_source is any object with one of the two supported source
    shapes (see waterfall.pricing.resolver); None means the static
    price is always used. static_price is WAD-scaled dollars per whole
    unit of the asset.
    """
    token: Token
    tranche_index: int
    static_price: int
    price_source: Optional[object] = None

    @property
    def symbol(self) -> str:
        return self.token.symbol


@dataclass(frozen=True)
class OffLedgerClaim:
    """A claim recognised by legal record rather than by a claim record.

    amount is WAD-scaled dollars. legal_hash is the 32-byte hash of the
    external legal document, as a 0x-prefixed hex string.
    """
    claimant: str
    tranche_index: int
    amount: int
    legal_hash: str


@dataclass(frozen=True)
class Tranche:
    """A priority class bound to its claim record and accepted assets."""
    index: int
    name: str
    claim_record: ClaimRecord
    assets: tuple[str, ...]

    @property
    def primary_asset(self) -> Optional[str]:
        """First accepted asset; None for off-ledger-only tranches."""
        return self.assets[0] if self.assets else None


@dataclass(frozen=True)
class VaultConfig:
    """Everything the factory hands the vault at construction."""
    name: str
    tranche_names: tuple[str, ...]
    mode: DenominationMode
    recovery_token: Token
    assets: tuple[AssetConfig, ...]
    off_ledger_claims: tuple[OffLedgerClaim, ...] = ()
    unclaimed_policy: UnclaimedPolicy = UnclaimedPolicy.PRO_RATA
    treasury: Optional[str] = None
