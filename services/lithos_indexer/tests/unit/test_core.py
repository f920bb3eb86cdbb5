"""
Unit tests for Lithos Indexer core modules.

Tests epoch calendar, fee split, tracked-USD valuation and the price graph.
"""

from decimal import Decimal

import pytest

from services.lithos_indexer.core.constants import LITH_ADDRESS, WEEK
from services.lithos_indexer.core.epoch import (
    epoch_bounds,
    epoch_end,
    epoch_start,
    next_epoch_start,
)
from services.lithos_indexer.core.fees import split_fee
from services.lithos_indexer.core.price_graph import (
    PriceConversionGraph,
    PriceQuote,
    default_quotes,
    parse_quotes,
)
from services.lithos_indexer.core.pricing import (
    convert_token_to_decimal,
    safe_div,
    sqrt_price_to_prices,
    tracked_liquidity_usd,
    tracked_volume_usd,
)
from services.lithos_indexer.core.types import ChainEvent, ProtocolConfig, SourceKind


class TestEpoch:
    """Tests for the weekly epoch calendar."""

    @pytest.mark.parametrize("timestamp", [0, 1, WEEK - 1, WEEK, 1_700_000_000, 1_735_689_599])
    def test_start_bounds_timestamp(self, timestamp):
        """Epoch start should be at or before the timestamp, less than a week back."""
        start = epoch_start(timestamp)
        assert start <= timestamp < start + WEEK
        assert start % WEEK == 0

    def test_start_is_idempotent(self):
        """Epoch start of an epoch start should be itself."""
        start = epoch_start(1_700_000_000)
        assert epoch_start(start) == start

    def test_known_epoch(self):
        """A known timestamp should map to its known epoch."""
        assert epoch_start(1_700_000_000) == 1_699_488_000
        assert epoch_end(1_700_000_000) == 1_699_488_000 + WEEK

    def test_next_epoch_and_bounds(self):
        """Next epoch start should equal the current epoch end."""
        start, end = epoch_bounds(1_700_000_000)
        assert next_epoch_start(1_700_000_000) == end
        assert end - start == WEEK

    def test_negative_timestamp_rejected(self):
        """Negative timestamps should raise."""
        with pytest.raises(ValueError):
            epoch_start(-1)


class TestFeeSplit:
    """Tests for the three-way fee split."""

    def test_referral_only(self):
        """1,000,000 with 12% referral and no staking share."""
        split = split_fee(1_000_000, 1200, 0)

        assert split.referral == 120_000
        assert split.staking == 0
        assert split.lp == 880_000
        assert split.total == 1_000_000

    def test_referral_and_staking(self):
        """Staking share applies to the post-referral remainder."""
        split = split_fee(100_000, 1200, 3000)

        assert split.referral == 12_000
        assert split.staking == 26_400
        assert split.lp == 61_600
        assert split.total == 100_000

    def test_zero_amount(self):
        """Zero or negative fees should split to nothing."""
        assert split_fee(0, 1200, 3000).total == 0
        assert split_fee(-5, 1200, 3000).total == 0

    def test_truncation_reconciles(self):
        """Integer truncation should always be absorbed by the LP share."""
        for amount in (1, 7, 99, 12_345, 999_999_999):
            split = split_fee(amount, 1200, 3000)
            assert split.total == amount
            assert min(split.referral, split.staking, split.lp) >= 0

    def test_bps_clamped(self):
        """Out-of-range basis points should be clamped to 0..10000."""
        split = split_fee(1_000, 20_000, -5)

        assert split.referral == 1_000
        assert split.staking == 0
        assert split.lp == 0


class TestTrackedUsd:
    """Tests for tracked-USD valuation rules."""

    def test_volume_one_side_priced(self):
        """Only token0 priced: that leg alone."""
        value = tracked_volume_usd(Decimal(10), Decimal("2.0"), Decimal(5), None)
        assert value == Decimal(20)

    def test_volume_unpriced(self):
        """Neither leg priced: zero."""
        assert tracked_volume_usd(Decimal(10), None, Decimal(5), None) == Decimal(0)

    def test_volume_both_priced(self):
        """Both legs priced: average of the two legs."""
        value = tracked_volume_usd(Decimal(10), Decimal("2.0"), Decimal(5), Decimal("4.0"))
        assert value == Decimal(20)

    def test_zero_price_counts_as_unknown(self):
        """A zero price should be treated as unpriced."""
        value = tracked_volume_usd(Decimal(10), Decimal(0), Decimal(5), Decimal("4.0"))
        assert value == Decimal(20)

    def test_liquidity_rules(self):
        """Liquidity doubles a single known leg and sums two."""
        assert tracked_liquidity_usd(Decimal(10), Decimal(2), Decimal(5), None) == Decimal(40)
        assert tracked_liquidity_usd(Decimal(10), Decimal(2), Decimal(5), Decimal(4)) == Decimal(40)
        assert tracked_liquidity_usd(Decimal(10), None, Decimal(5), None) == Decimal(0)


class TestPricingHelpers:
    """Tests for decimal conversion helpers."""

    def test_convert_token_to_decimal(self):
        """Raw amounts should scale by token decimals."""
        assert convert_token_to_decimal(1_500_000, 6) == Decimal("1.5")
        assert convert_token_to_decimal(42, 0) == Decimal(42)

    def test_safe_div(self):
        """Division by zero should yield zero."""
        assert safe_div(Decimal(1), Decimal(0)) == Decimal(0)
        assert safe_div(Decimal(1), Decimal(4)) == Decimal("0.25")

    def test_sqrt_price(self):
        """sqrtPriceX96 of 2**96 is a 1:1 raw price, scaled by decimals."""
        price0, price1 = sqrt_price_to_prices(2 ** 96, 18, 18)
        assert price0 == Decimal(1)
        assert price1 == Decimal(1)

        price0, _ = sqrt_price_to_prices(2 ** 96, 18, 6)
        assert price0 == Decimal(10) ** 12

    def test_sqrt_price_zero(self):
        """An uninitialized pool should price at zero."""
        assert sqrt_price_to_prices(0, 18, 18) == (Decimal(0), Decimal(0))


class TestPriceGraph:
    """Tests for the manual quote conversion graph."""

    @pytest.fixture
    def graph(self):
        return PriceConversionGraph([
            PriceQuote("LITH", "XPL", 0.2),
            PriceQuote("XPL", "USDT", 0.48),
        ])

    def test_two_hop_resolution(self, graph):
        """LITH -> XPL -> USDT should multiply the factors."""
        assert graph.resolve("LITH", "USDT") == pytest.approx(0.096)

    def test_inverse_resolution(self, graph):
        """Reverse edges should use reciprocal factors."""
        assert graph.resolve("USDT", "LITH") == pytest.approx(1 / 0.096)

    def test_unknown_symbol(self, graph):
        """Unknown symbols should resolve to None."""
        assert graph.resolve("LITH", "UNKNOWN") is None
        assert graph.resolve("", "USDT") is None

    def test_identity(self, graph):
        """Same symbol resolves to 1.0 even if not in the graph."""
        assert graph.resolve("FOO", "foo") == 1.0

    def test_symbol_aliases(self, graph):
        """Wrapped native should resolve as the native symbol."""
        assert graph.resolve("wxpl", "USDT") == pytest.approx(0.48)

    def test_address_alias(self):
        """Configured addresses should map to their graph key."""
        graph = PriceConversionGraph(default_quotes(), address_aliases={LITH_ADDRESS: "lith"})

        assert graph.resolve_token_key(LITH_ADDRESS, "WHATEVER") == "LITH"
        assert graph.resolve_token_key("0x" + "99" * 20, "usdt") == "USDT"
        assert graph.resolve_token_key(None, None) == ""

    def test_convert(self, graph):
        """Amounts should scale by the resolved factor."""
        assert graph.convert(10, "LITH", "USDT") == pytest.approx(0.96)
        assert graph.convert(10, "LITH", "NOPE") is None

    def test_invalid_quotes_dropped(self):
        """Non-positive or non-finite quotes should not enter the graph."""
        graph = PriceConversionGraph([
            PriceQuote("A", "B", 0.0),
            PriceQuote("A", "C", float("inf")),
            PriceQuote("A", "D", 2.0),
        ])

        assert len(graph.quotes) == 1
        assert graph.resolve("A", "B") is None
        assert graph.resolve("D", "A") == pytest.approx(0.5)

    def test_default_quotes(self):
        """Built-in quotes should price LITH in USDT."""
        graph = PriceConversionGraph(default_quotes())
        assert graph.resolve("LITH", "USDT") == pytest.approx(0.096)

    def test_parse_quotes(self):
        """Malformed entries should be skipped."""
        quotes = parse_quotes("LITH/XPL=0.2, garbage ,XPL/USDT=0.48,X/Y=abc,")

        assert [(q.base, q.quote, q.price) for q in quotes] == [
            ("LITH", "XPL", 0.2),
            ("XPL", "USDT", 0.48),
        ]


class TestChainEvent:
    """Tests for the decoded event model."""

    def test_camel_case_input(self):
        """Events should validate from their camelCase wire form."""
        event = ChainEvent.model_validate({
            "contractAddress": "0xABCDEF",
            "blockNumber": 5,
            "blockTimestamp": 1_700_000_000,
            "txHash": "0xAA",
            "logIndex": 3,
            "eventName": "Sync",
            "params": {"reserve0": "100", "to": "0xBEEF"},
        })

        assert event.contract_address == "0xabcdef"
        assert event.event_id == "0xaa-3"
        assert event.position == (5, 3)
        assert event.int_param("reserve0") == 100
        assert event.int_param("missing", 7) == 7
        assert event.address_param("to") == "0xbeef"

    def test_static_sources(self):
        """Only configured addresses should become static sources."""
        config = ProtocolConfig(factory_address="0xAA", voter_address="0xBB")

        assert config.static_sources() == {
            "0xaa": SourceKind.FACTORY,
            "0xbb": SourceKind.VOTER,
        }
