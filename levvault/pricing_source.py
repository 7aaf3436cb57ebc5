"""
pricing_source.py - Price oracles for vault valuation

Provides the oracle interface the vault's price adapter consumes, plus two
in-memory oracles.

Classes:
- PriceOracle: Protocol defining quote(amount, base, quote)
- StaticPriceOracle: Mutable spot prices
- TimeSeriesPriceOracle: Time-varying prices with historical data

Prices are quoted per whole token in a base currency (typically USD). Amounts
passed to and returned from quote() are base units, scaled by each asset's
decimals.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from bisect import bisect_right
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Protocol, Tuple, runtime_checkable

from .core import (
    DEFAULT_PRICING_DENOMINATION, InvalidPriceError,
    mul_div_down, to_amount,
)


DEFAULT_DECIMALS = 18


@runtime_checkable
class PriceOracle(Protocol):
    """
    Protocol for price oracles.

    quote() converts an amount of base (in base units) into the equivalent
    amount of quote (in quote base units), rounding down.
    """

    def quote(self, amount: Decimal, base: str, quote: str) -> Decimal:
        ...


class _QuotingOracle(ABC):
    """Shared cross-rate quoting over a get_price() lookup."""

    base_currency: str
    decimals: Dict[str, int]

    @abstractmethod
    def get_price(self, symbol: str) -> Optional[Decimal]:
        """Price of one whole token in base_currency, or None if unknown."""

    def _decimals_of(self, symbol: str) -> int:
        return self.decimals.get(symbol, DEFAULT_DECIMALS)

    def _require_price(self, symbol: str) -> Decimal:
        price = self.get_price(symbol)
        if price is None:
            raise InvalidPriceError(f"No price for {symbol}")
        return price

    def quote(self, amount: Decimal, base: str, quote: str) -> Decimal:
        """
        Convert amount of base into quote through the base currency.

        A zero base price yields zero; a zero quote price cannot be divided by
        and raises.

        Raises:
            InvalidPriceError: If a price is missing or the quote price is zero
        """
        amount = to_amount(amount)
        if base == quote:
            return amount
        base_price = self._require_price(base)
        quote_price = self._require_price(quote)
        if quote_price == 0:
            raise InvalidPriceError(f"Price of {quote} is zero")
        base_one = Decimal(10) ** self._decimals_of(base)
        quote_one = Decimal(10) ** self._decimals_of(quote)
        return mul_div_down(amount, base_price * quote_one, base_one * quote_price)


class StaticPriceOracle(_QuotingOracle):
    """
    Oracle with spot prices that change only when updated.

    The base currency always has a price of 1.
    """

    def __init__(
        self,
        prices: Mapping[str, Decimal],
        base_currency: str = DEFAULT_PRICING_DENOMINATION,
        decimals: Optional[Mapping[str, int]] = None,
    ):
        """
        Initialize with a price map.

        Args:
            prices: Symbol -> price of one whole token in base currency
            base_currency: Currency prices are quoted in
            decimals: Symbol -> native precision (default 18 for unlisted symbols)
        """
        self.base_currency = base_currency
        self.decimals = dict(decimals or {})
        self.prices: Dict[str, Decimal] = {}
        for symbol, price in prices.items():
            self.update_price(symbol, price)
        self.prices[base_currency] = Decimal("1")

    def get_price(self, symbol: str) -> Optional[Decimal]:
        return self.prices.get(symbol)

    def update_price(self, symbol: str, price: Decimal) -> None:
        """Set the price of one symbol. Zero is allowed (a failed feed)."""
        price = price if isinstance(price, Decimal) else Decimal(str(price))
        if price < 0 or not price.is_finite():
            raise ValueError(f"price must be non-negative and finite, got {price}")
        self.prices[symbol] = price

    def update_prices(self, prices: Mapping[str, Decimal]) -> None:
        """Update multiple prices at once."""
        for symbol, price in prices.items():
            self.update_price(symbol, price)

    def __repr__(self):
        return f"StaticPriceOracle({len(self.prices)} prices, base={self.base_currency})"


class TimeSeriesPriceOracle(_QuotingOracle):
    """
    Oracle replaying historical price paths.

    quote() uses the most recent observation at or before current_time;
    advance_to() moves the clock forward.
    """

    def __init__(
        self,
        price_paths: Optional[Mapping[str, List[Tuple[datetime, Decimal]]]] = None,
        base_currency: str = DEFAULT_PRICING_DENOMINATION,
        decimals: Optional[Mapping[str, int]] = None,
        start_time: Optional[datetime] = None,
    ):
        """
        Initialize pricing source.

        Args:
            price_paths: Symbol -> list of (timestamp, price) tuples
            base_currency: Currency prices are quoted in
            decimals: Symbol -> native precision
            start_time: Initial clock (default: earliest observation)

        Example:
            oracle = TimeSeriesPriceOracle({
                'WSTETH': [(t0, Decimal("4000")), (t1, Decimal("3900"))],
                'WETH': [(t0, Decimal("2000"))],
            })
            oracle.advance_to(t1)
        """
        self.base_currency = base_currency
        self.decimals = dict(decimals or {})
        self.price_history: Dict[str, List[Tuple[datetime, Decimal]]] = {}

        if price_paths:
            for symbol, path in price_paths.items():
                for timestamp, price in path:
                    self.add_price(symbol, timestamp, price)

        if start_time is None:
            timestamps = self.get_all_timestamps()
            start_time = timestamps[0] if timestamps else datetime(1970, 1, 1)
        self.current_time = start_time

    def add_price(self, symbol: str, timestamp: datetime, price: Decimal) -> None:
        """Add a price observation, keeping history sorted by timestamp."""
        price = price if isinstance(price, Decimal) else Decimal(str(price))
        if price < 0 or not price.is_finite():
            raise ValueError(f"price must be non-negative and finite, got {price}")
        history = self.price_history.setdefault(symbol, [])
        history.append((timestamp, price))
        history.sort(key=lambda x: x[0])

    def advance_to(self, timestamp: datetime) -> None:
        """
        Move the oracle clock forward.

        Raises:
            ValueError: If timestamp is before the current time
        """
        if timestamp < self.current_time:
            raise ValueError(f"Cannot move time backwards: {timestamp} < {self.current_time}")
        self.current_time = timestamp

    def get_price(self, symbol: str, timestamp: Optional[datetime] = None) -> Optional[Decimal]:
        """
        Price at or before timestamp (default: current_time).

        Returns None when no observation exists yet.
        """
        if symbol == self.base_currency:
            return Decimal("1")
        history = self.price_history.get(symbol)
        if not history:
            return None
        at = self.current_time if timestamp is None else timestamp
        idx = bisect_right([ts for ts, _ in history], at)
        if idx == 0:
            return None
        return history[idx - 1][1]

    def get_all_timestamps(self, symbol: Optional[str] = None) -> List[datetime]:
        """Sorted unique timestamps for one symbol, or across all symbols."""
        if symbol:
            return [ts for ts, _ in self.price_history.get(symbol, [])]
        return sorted({ts for path in self.price_history.values() for ts, _ in path})

    def __repr__(self):
        total_observations = sum(len(h) for h in self.price_history.values())
        return (f"TimeSeriesPriceOracle({len(self.price_history)} symbols, "
                f"{total_observations} observations, base={self.base_currency})")
