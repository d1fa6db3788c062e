"""Tests for the price resolver — proves bad readings degrade to the static price."""

import logging

import pytest
from datetime import datetime, timedelta, timezone

from waterfall.ledger.chain import Chain
from waterfall.ledger.token import Token
from waterfall.models.vault import AssetConfig
from waterfall.policy.params import ProtocolParams
from waterfall.pricing.resolver import FeedReading, PriceResolver, normalize, price_of


WAD = 10**18
STATIC = WAD  # $1.00


def _now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class _Feed:
    def __init__(self, answer: int, decimals: int = 8, age: timedelta = timedelta(0)) -> None:
        self.answer = answer
        self.decimals = decimals
        self.updated_at = int((_now() - age).timestamp())

    def latest_round_data(self) -> FeedReading:
        return FeedReading(self.answer, self.decimals, self.updated_at)


class _BrokenFeed:
    def latest_round_data(self) -> FeedReading:
        raise ConnectionError("rpc unreachable")


class _Spot:
    def __init__(self, price: int) -> None:
        self.price = price

    def latest_price(self) -> int:
        return self.price


def _resolve(source: object):
    chain = Chain(genesis_utc=_now())
    asset = AssetConfig(Token("SNR", 6, chain), 0, STATIC, source)
    return PriceResolver(ProtocolParams(), chain).resolve(asset)


class TestStaticPrice:
    def test_no_source_uses_static(self) -> None:
        resolution = _resolve(None)
        assert resolution.price == STATIC
        assert resolution.source == "static"
        assert not resolution.degraded


class TestFeedSource:
    def test_fresh_feed_is_normalized(self) -> None:
        resolution = _resolve(_Feed(102_000_000))
        assert resolution.price == 102 * 10**16
        assert resolution.source == "feed"
        assert not resolution.degraded

    def test_stale_feed_falls_back(self) -> None:
        resolution = _resolve(_Feed(102_000_000, age=timedelta(hours=2)))
        assert resolution.price == STATIC
        assert resolution.degraded
        assert "stale" in resolution.reason

    def test_feed_at_staleness_bound_is_accepted(self) -> None:
        resolution = _resolve(_Feed(98_000_000, age=timedelta(hours=1)))
        assert resolution.price == 98 * 10**16

    def test_future_update_time_falls_back(self) -> None:
        resolution = _resolve(_Feed(102_000_000, age=timedelta(minutes=-5)))
        assert resolution.degraded
        assert "future" in resolution.reason

    @pytest.mark.parametrize("answer", [0, -5])
    def test_non_positive_answer_falls_back(self, answer: int) -> None:
        resolution = _resolve(_Feed(answer))
        assert resolution.price == STATIC
        assert resolution.degraded

    def test_insane_answer_falls_back(self) -> None:
        resolution = _resolve(_Feed(2_000_000 * 10**8))
        assert resolution.degraded
        assert "sane bound" in resolution.reason

    def test_failing_call_falls_back(self) -> None:
        resolution = _resolve(_BrokenFeed())
        assert resolution.price == STATIC
        assert resolution.degraded
        assert "rpc unreachable" in resolution.reason

    def test_fallback_logs_warning(self, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="waterfall.pricing.resolver"):
            _resolve(_BrokenFeed())
        assert "using static price" in caplog.text


class TestSpotSource:
    def test_spot_price_used_as_is(self) -> None:
        resolution = _resolve(_Spot(3 * WAD))
        assert resolution.price == 3 * WAD
        assert not resolution.degraded

    def test_zero_spot_falls_back(self) -> None:
        resolution = _resolve(_Spot(0))
        assert resolution.price == STATIC
        assert resolution.degraded

    def test_unknown_shape_falls_back(self) -> None:
        resolution = _resolve(object())
        assert resolution.degraded
        assert "unsupported" in resolution.reason


class TestHelpers:
    def test_normalize_scales_up(self) -> None:
        assert normalize(5, 0) == 5 * WAD
        assert normalize(123_456_789, 8) == 123_456_789 * 10**10

    def test_normalize_scales_down(self) -> None:
        assert normalize(7 * 10**20, 20) == 7 * WAD

    def test_price_of(self) -> None:
        assert price_of(1_000_000, 6, WAD) == WAD
        assert price_of(2 * WAD, 18, WAD // 2) == WAD
        assert price_of(3_000_000, 6, 25 * 10**16) == 75 * 10**16
