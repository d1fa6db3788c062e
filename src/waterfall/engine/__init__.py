"""Distribution engine — snapshots and waterfall allocation."""

from waterfall.engine.allocator import (
    Allocation,
    WaterfallAllocator,
    applicable_rate,
    rate_increment,
)
from waterfall.engine.snapshot import RoundSnapshot, SnapshotEngine

__all__ = [
    "Allocation",
    "RoundSnapshot",
    "SnapshotEngine",
    "WaterfallAllocator",
    "applicable_rate",
    "rate_increment",
]
