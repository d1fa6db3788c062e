"""Ledger primitives — chain clock and checkpointed tokens."""

from waterfall.ledger.chain import Chain
from waterfall.ledger.token import ClaimRecord, Token, ZERO_ADDRESS

__all__ = ["Chain", "ClaimRecord", "Token", "ZERO_ADDRESS"]
