"""
state.py - Position state of the vault

The vault never caches its position. Every read goes to the markets:

    collateral   = collateral_market.convert_to_assets(collateral_market.balance_of(vault))
    debt         = debt_market.debt_of(vault)
    assets_value = collateral * price / collateral_unit        (debt units)
    equity_value = max(assets_value - debt, 0)
    leverage     = assets_value * WAD / equity_value            (0 if no equity)

calculate_state() is the pure part, StateAccountant binds it to live adapters.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal

from .core import (
    WAD, ZERO,
    POSITION_STATUS_ACTIVE, POSITION_STATUS_EMPTY, POSITION_STATUS_UNDERWATER,
    CollateralMarket, DebtMarket,
    mul_div_down,
)
from .price_adapter import PriceAdapter


@dataclass(frozen=True, slots=True)
class VaultState:
    """
    Snapshot of the vault's position, valued in debt-asset base units.

    Attributes:
        collateral: Collateral owned by the vault in the collateral market
        debt: Debt owed by the vault to the debt market
        collateral_price: Debt base units per whole collateral token
        assets_value: Collateral valued in debt base units
        equity_value: assets_value - debt, floored at zero
        leverage: WAD-scaled assets_value / equity_value, 0 when equity is 0
    """
    collateral: Decimal
    debt: Decimal
    collateral_price: Decimal
    assets_value: Decimal
    equity_value: Decimal
    leverage: Decimal

    @property
    def is_empty(self) -> bool:
        return self.collateral == 0 and self.debt == 0

    @property
    def is_underwater(self) -> bool:
        return not self.is_empty and self.assets_value <= self.debt

    @property
    def status(self) -> str:
        if self.is_empty:
            return POSITION_STATUS_EMPTY
        if self.is_underwater:
            return POSITION_STATUS_UNDERWATER
        return POSITION_STATUS_ACTIVE


EMPTY_STATE = VaultState(
    collateral=ZERO,
    debt=ZERO,
    collateral_price=ZERO,
    assets_value=ZERO,
    equity_value=ZERO,
    leverage=ZERO,
)


def calculate_state(collateral: Decimal, debt: Decimal, price: Decimal, collateral_unit: Decimal) -> VaultState:
    """
    Value a position.

    Args:
        collateral: Collateral amount in base units
        debt: Debt amount in base units
        price: Debt base units per whole collateral token
        collateral_unit: Base units in one whole collateral token

    Returns:
        VaultState with equity and leverage floored at zero when underwater

    Raises:
        ValueError: If an input is negative
    """
    if collateral < 0 or debt < 0 or price < 0:
        raise ValueError("collateral, debt and price cannot be negative")
    if collateral_unit <= 0:
        raise ValueError(f"collateral_unit must be positive, got {collateral_unit}")

    assets_value = mul_div_down(collateral, price, collateral_unit)
    equity_value = assets_value - debt if assets_value > debt else ZERO
    leverage = mul_div_down(assets_value, WAD, equity_value) if equity_value > 0 else ZERO

    return VaultState(
        collateral=collateral,
        debt=debt,
        collateral_price=price,
        assets_value=assets_value,
        equity_value=equity_value,
        leverage=leverage,
    )


class StateAccountant:
    """Reads the vault's live position from the markets."""

    def __init__(
        self,
        account: str,
        collateral_market: CollateralMarket,
        debt_market: DebtMarket,
        price_adapter: PriceAdapter,
    ):
        self.account = account
        self.collateral_market = collateral_market
        self.debt_market = debt_market
        self.price_adapter = price_adapter

    def get_collateral(self) -> Decimal:
        shares = self.collateral_market.balance_of(self.account)
        if shares == 0:
            return ZERO
        return self.collateral_market.convert_to_assets(shares)

    def get_debt(self) -> Decimal:
        return self.debt_market.debt_of(self.account)

    def get_state(self) -> VaultState:
        """
        Current position.

        An empty position is returned without consulting the oracle.

        Raises:
            InvalidPriceError: If the position is non-empty and the price is zero
        """
        collateral = self.get_collateral()
        debt = self.get_debt()
        if collateral == 0 and debt == 0:
            return EMPTY_STATE
        price = self.price_adapter.price_c_in_debt()
        return calculate_state(collateral, debt, price, self.price_adapter.collateral_unit)
