"""
test_pricing.py - Unit tests for oracles and the price adapter

Tests:
- Shared quoting base requires a price lookup
- StaticPriceOracle cross-rate quoting with mixed decimals
- Missing / zero prices
- TimeSeriesPriceOracle lookup and clock
- PriceAdapter collateral price in debt units
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from levvault import (
    InvalidPriceError, PriceAdapter, StaticPriceOracle, TimeSeriesPriceOracle,
    token, wad,
)
from levvault.pricing_source import _QuotingOracle


class TestQuotingOracle:

    def test_price_lookup_is_abstract(self):
        with pytest.raises(TypeError):
            _QuotingOracle()

    def test_subclass_quotes_through_get_price(self):
        class FlatOracle(_QuotingOracle):
            base_currency = "USD"
            decimals = {}

            def get_price(self, symbol):
                return {"wstETH": Decimal(4000), "WETH": Decimal(2000)}.get(symbol)

        assert FlatOracle().quote(wad(1), "wstETH", "WETH") == wad(2)
        with pytest.raises(InvalidPriceError):
            FlatOracle().quote(wad(1), "stETH", "WETH")


class TestStaticPriceOracle:

    def test_cross_rate(self, oracle):
        assert oracle.quote(wad(1), "wstETH", "WETH") == wad(2)
        assert oracle.quote(wad(2), "WETH", "wstETH") == wad(1)

    def test_quote_into_base_currency(self, oracle):
        assert oracle.quote(wad(1), "WETH", "USD") == wad(2000)

    def test_same_symbol(self, oracle):
        assert oracle.quote(Decimal(7), "WETH", "WETH") == Decimal(7)

    def test_mixed_decimals(self):
        oracle = StaticPriceOracle({"WETH": 2000, "USDC": 1}, decimals={"USDC": 6})
        assert oracle.quote(wad(1), "WETH", "USDC") == Decimal(2000) * Decimal(10) ** 6
        assert oracle.quote(Decimal(10) ** 6, "USDC", "WETH") == wad(1) / 2000

    def test_rounds_down(self):
        oracle = StaticPriceOracle({"A": 1, "B": 3})
        assert oracle.quote(Decimal(10), "A", "B") == Decimal(3)

    def test_missing_price(self, oracle):
        with pytest.raises(InvalidPriceError, match="No price"):
            oracle.quote(wad(1), "DAI", "WETH")

    def test_zero_quote_price(self, oracle):
        oracle.update_price("WETH", 0)
        with pytest.raises(InvalidPriceError, match="zero"):
            oracle.quote(wad(1), "wstETH", "WETH")

    def test_zero_base_price_quotes_zero(self, oracle):
        oracle.update_price("wstETH", 0)
        assert oracle.quote(wad(1), "wstETH", "WETH") == 0

    def test_negative_price_rejected(self, oracle):
        with pytest.raises(ValueError):
            oracle.update_price("WETH", -1)

    def test_update_prices(self, oracle):
        oracle.update_prices({"wstETH": 3000, "WETH": 1500})
        assert oracle.get_price("wstETH") == Decimal(3000)
        assert oracle.quote(wad(1), "wstETH", "WETH") == wad(2)


class TestTimeSeriesPriceOracle:

    @pytest.fixture
    def series(self):
        t0 = datetime(2025, 1, 1)
        return TimeSeriesPriceOracle({
            "wstETH": [(t0, Decimal("4000")), (t0 + timedelta(days=1), Decimal("3600"))],
            "WETH": [(t0, Decimal("2000"))],
        }), t0

    def test_starts_at_earliest(self, series):
        oracle, t0 = series
        assert oracle.current_time == t0
        assert oracle.quote(wad(1), "wstETH", "WETH") == wad(2)

    def test_advance(self, series):
        oracle, t0 = series
        oracle.advance_to(t0 + timedelta(days=1, hours=6))
        assert oracle.get_price("wstETH") == Decimal("3600")
        assert oracle.get_price("WETH") == Decimal("2000")
        assert oracle.quote(wad(1), "wstETH", "WETH") == wad("1.8")

    def test_historical_lookup(self, series):
        oracle, t0 = series
        oracle.advance_to(t0 + timedelta(days=5))
        assert oracle.get_price("wstETH", t0) == Decimal("4000")
        assert oracle.get_price("wstETH", t0 - timedelta(days=1)) is None

    def test_cannot_go_backwards(self, series):
        oracle, t0 = series
        oracle.advance_to(t0 + timedelta(days=1))
        with pytest.raises(ValueError, match="backwards"):
            oracle.advance_to(t0)

    def test_timestamps(self, series):
        oracle, t0 = series
        assert oracle.get_all_timestamps() == [t0, t0 + timedelta(days=1)]
        assert oracle.get_all_timestamps("WETH") == [t0]


class TestPriceAdapter:

    @pytest.fixture
    def adapter(self, oracle):
        return PriceAdapter(oracle, token("wstETH", "Wrapped staked Ether"), token("WETH", "Wrapped Ether"))

    def test_price(self, adapter):
        assert adapter.price_c_in_debt() == wad(2)

    def test_conversions(self, adapter):
        price = adapter.price_c_in_debt()
        assert adapter.collateral_to_debt(wad(3), price) == wad(6)
        assert adapter.debt_to_collateral(wad(3), price) == wad("1.5")

    def test_scaled_to_debt_decimals(self):
        oracle = StaticPriceOracle({"WETH": 2000, "USDC": 1}, decimals={"USDC": 6})
        adapter = PriceAdapter(oracle, token("WETH", "Wrapped Ether"), token("USDC", "USD Coin", 6))
        assert adapter.price_c_in_debt() == Decimal(2000) * Decimal(10) ** 6

    def test_zero_collateral_price(self, adapter, oracle):
        oracle.update_price("wstETH", 0)
        with pytest.raises(InvalidPriceError):
            adapter.price_c_in_debt()

    def test_zero_debt_price(self, adapter, oracle):
        oracle.update_price("WETH", 0)
        with pytest.raises(InvalidPriceError):
            adapter.price_c_in_debt()
