"""Error taxonomy for the recovery distribution engine.

Every caller-visible failure aborts the operation before any state
changes. There is no retry: the caller resubmits.

- ValidationError: malformed input (zero amount, unknown asset, bad index).
- PhaseError: operation attempted outside its round phase.
- ProofError: membership proof failed verification.
- EconomicError: insufficient bond, empty pool, no voting power.
- ReentrancyError: a mutating operation was entered while another runs.

Price source failures are not in this list. They are absorbed by the
price resolver and surface only as a degraded resolution.
"""

from __future__ import annotations


class WaterfallError(Exception):
    """Base class for all engine failures."""
    pass


class ValidationError(WaterfallError, ValueError):
    pass


class PhaseError(WaterfallError):
    pass


class ProofError(WaterfallError):
    pass


class EconomicError(WaterfallError):
    pass


class ReentrancyError(WaterfallError):
    """Raised when a vault operation is re-entered mid-flight."""
    pass
