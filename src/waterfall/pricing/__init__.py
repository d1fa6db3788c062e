"""Price resolution — validated source reads with static fallback."""

from waterfall.pricing.resolver import (
    FeedReading,
    PriceResolution,
    PriceResolver,
    normalize,
    price_of,
)

__all__ = ["FeedReading", "PriceResolution", "PriceResolver", "normalize", "price_of"]
