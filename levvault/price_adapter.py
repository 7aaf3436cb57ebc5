"""
price_adapter.py - Collateral price in debt-asset units

The vault prices collateral through a cross-rate: one whole collateral token
and one whole debt token are each quoted into a common denomination, and the
ratio is expressed in debt base units per whole collateral token.

    price = quote(1 collateral -> USD) * debt_one / quote(1 debt -> USD)

With 18-decimal assets this is the familiar WAD-scaled price.
"""

from __future__ import annotations
from decimal import Decimal

from .core import (
    DEFAULT_PRICING_DENOMINATION, InvalidPriceError, Unit,
    mul_div_down,
)
from .pricing_source import PriceOracle


class PriceAdapter:
    """
    Reads the collateral/debt cross-rate from a PriceOracle.

    Attributes:
        collateral: Collateral unit (symbol and decimals)
        debt: Debt unit
        denomination: Common pricing currency
    """

    def __init__(
        self,
        oracle: PriceOracle,
        collateral: Unit,
        debt: Unit,
        denomination: str = DEFAULT_PRICING_DENOMINATION,
    ):
        self.oracle = oracle
        self.collateral = collateral
        self.debt = debt
        self.denomination = denomination

    @property
    def collateral_unit(self) -> Decimal:
        """Base units in one whole collateral token."""
        return self.collateral.one

    def price_c_in_debt(self) -> Decimal:
        """
        Debt base units per whole collateral token.

        Raises:
            InvalidPriceError: If either leg of the cross-rate quotes to zero
        """
        collateral_quote = self.oracle.quote(self.collateral.one, self.collateral.symbol, self.denomination)
        if collateral_quote == 0:
            raise InvalidPriceError(f"Oracle quoted zero for {self.collateral.symbol}")
        debt_quote = self.oracle.quote(self.debt.one, self.debt.symbol, self.denomination)
        if debt_quote == 0:
            raise InvalidPriceError(f"Oracle quoted zero for {self.debt.symbol}")
        price = mul_div_down(collateral_quote, self.debt.one, debt_quote)
        if price == 0:
            raise InvalidPriceError(
                f"{self.collateral.symbol} is worth less than one base unit of {self.debt.symbol}"
            )
        return price

    def collateral_to_debt(self, collateral_amount: Decimal, price: Decimal) -> Decimal:
        """Value of a collateral amount in debt base units, rounded down."""
        return mul_div_down(collateral_amount, price, self.collateral_unit)

    def debt_to_collateral(self, debt_amount: Decimal, price: Decimal) -> Decimal:
        """Collateral amount worth debt_amount, rounded down."""
        return mul_div_down(debt_amount, self.collateral_unit, price)
