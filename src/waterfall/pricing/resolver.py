"""Price resolver — normalized unit prices with a static fallback.

Two source shapes are supported:

    Feed:  latest_round_data() -> FeedReading(answer, decimals, updated_at)
    Spot:  latest_price() -> int   (already WAD-scaled)

A feed reading is rejected if the call raises, the answer is not
positive, the update time is older than the staleness bound (or in the
future), or the normalized price exceeds the sane upper bound. A spot
reading gets the same checks minus freshness. On any rejection the
configured static price is returned and the resolution is marked
degraded. A misbehaving source never blocks a deposit or a round.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from waterfall.ledger.chain import Chain
from waterfall.models.vault import AssetConfig
from waterfall.policy.params import WAD, ProtocolParams


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedReading:
    """One answer from an aggregator-style feed. updated_at is unix seconds."""
    answer: int
    decimals: int
    updated_at: int


@dataclass(frozen=True)
class PriceResolution:
    """Outcome of a price read.

    degraded is True when the static price was used because the source
    was unavailable or its reading failed validation; reason says why.
    """
    price: int
    source: str
    degraded: bool = False
    reason: Optional[str] = None


def normalize(answer: int, decimals: int) -> int:
    """Scale a feed answer with `decimals` decimals to WAD."""
    if decimals <= 18:
        return answer * 10 ** (18 - decimals)
    return answer // 10 ** (decimals - 18)


class PriceResolver:
    """Resolves asset prices against the chain clock.

    Usage:
        resolver = PriceResolver(params, chain)
        resolution = resolver.resolve(asset_config)
        price = resolution.price
    """

    def __init__(self, params: ProtocolParams, chain: Chain) -> None:
        self._params = params
        self._chain = chain

    def resolve(self, asset: AssetConfig) -> PriceResolution:
        source = asset.price_source
        if source is None:
            return PriceResolution(price=asset.static_price, source="static")

        if hasattr(source, "latest_round_data"):
            reading = self._read_feed(source)
        elif hasattr(source, "latest_price"):
            reading = self._read_spot(source)
        else:
            reading = (None, f"unsupported source shape {type(source).__name__}")

        price, reason = reading
        if price is not None:
            return PriceResolution(price=price, source="feed")

        logger.warning(
            "Price source for %s rejected (%s); using static price %d",
            asset.symbol, reason, asset.static_price,
        )
        return PriceResolution(
            price=asset.static_price,
            source="static",
            degraded=True,
            reason=reason,
        )

    def _read_feed(self, source: object) -> tuple[Optional[int], Optional[str]]:
        try:
            reading = source.latest_round_data()
        except Exception as exc:  # noqa: BLE001
            return None, f"read failed: {exc}"

        if reading.answer <= 0:
            return None, f"non-positive answer {reading.answer}"
        updated = datetime.fromtimestamp(reading.updated_at, tz=timezone.utc)
        age = self._chain.now - updated
        if age > self._params.price_staleness:
            return None, f"stale by {age}"
        if age.total_seconds() < 0:
            return None, "update time is in the future"
        return self._bounded(normalize(reading.answer, reading.decimals))

    def _read_spot(self, source: object) -> tuple[Optional[int], Optional[str]]:
        try:
            price = int(source.latest_price())
        except Exception as exc:  # noqa: BLE001
            return None, f"read failed: {exc}"
        if price <= 0:
            return None, f"non-positive answer {price}"
        return self._bounded(price)

    def _bounded(self, price: int) -> tuple[Optional[int], Optional[str]]:
        if price == 0:
            return None, "answer rounds to zero"
        if price > self._params.max_price:
            return None, f"answer {price} above sane bound {self._params.max_price}"
        return price, None


def price_of(units: int, decimals: int, price: int) -> int:
    """Dollar value (WAD) of `units` base units priced at `price` (WAD per whole unit)."""
    return units * 10 ** (18 - decimals) * price // WAD
