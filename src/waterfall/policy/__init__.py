"""Protocol parameter loading."""

from waterfall.policy.params import BPS, WAD, ProtocolParams

__all__ = ["BPS", "WAD", "ProtocolParams"]
