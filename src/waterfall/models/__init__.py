"""Data models for vault configuration and distribution rounds."""

from waterfall.models.round import (
    DistributionRound,
    HolderRoundState,
    ROUND_TRANSITIONS,
    RoundState,
    TrancheRoundState,
)
from waterfall.models.vault import (
    AssetConfig,
    DenominationMode,
    OffLedgerClaim,
    Tranche,
    UnclaimedPolicy,
    VaultConfig,
)

__all__ = [
    "AssetConfig",
    "DenominationMode",
    "DistributionRound",
    "HolderRoundState",
    "OffLedgerClaim",
    "ROUND_TRANSITIONS",
    "RoundState",
    "Tranche",
    "TrancheRoundState",
    "UnclaimedPolicy",
    "VaultConfig",
]
