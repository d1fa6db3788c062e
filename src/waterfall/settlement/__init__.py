"""Settlement — claim redemption and unclaimed-funds disposal."""

from waterfall.settlement.claims import ClaimQuote, ClaimSettlement, OffLedgerQuote
from waterfall.settlement.redistribution import (
    RedistributionClaim,
    RedistributionState,
    UnclaimedRedistribution,
)

__all__ = [
    "ClaimQuote",
    "ClaimSettlement",
    "OffLedgerQuote",
    "RedistributionClaim",
    "RedistributionState",
    "UnclaimedRedistribution",
]
