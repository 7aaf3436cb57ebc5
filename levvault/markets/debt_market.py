"""
debt_market.py - In-memory debt (borrow) market

Lends one asset against collateral supplied to a CollateralMarketSim.
Outstanding debt is a DEBT unit issued to the borrower's wallet, so the
ledger is the single source of truth for who owes what.

Key Formulas:
    collateral_value = oracle.quote(collateral_assets, collateral, asset)
    borrow_limit     = collateral_value * max_ltv / WAD
    healthy          ⟺ debt <= borrow_limit

Interest is not modelled beyond accrue_interest(), an explicit hook that grows
every borrower's debt by a WAD-scaled rate.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Optional
import logging

from ..core import (
    Move, Unit, SYSTEM_WALLET, UNIT_TYPE_DEBT, WAD, ZERO,
    BorrowLimitExceeded, InsufficientLiquidity, MarketError,
    mul_div_down, mul_div_up, to_amount,
)
from ..ledger import Ledger
from ..pricing_source import PriceOracle
from .collateral_market import CollateralMarketSim


logger = logging.getLogger(__name__)


class DebtMarketSim:
    """
    Borrow market for one asset against one collateral market.

    Implements the DebtMarket protocol and acts as the controller of the
    collateral market (vetoing unhealthy withdrawals).
    """

    def __init__(
        self,
        ledger: Ledger,
        asset: str,
        collateral_market: CollateralMarketSim,
        oracle: PriceOracle,
        max_ltv: Decimal,
        account: str = "debt_market",
        debt_symbol: Optional[str] = None,
    ):
        """
        Args:
            ledger: Shared ledger
            asset: Symbol of the borrowable asset
            collateral_market: Market holding borrowers' collateral
            oracle: Used to value collateral in the borrowed asset
            max_ltv: Maximum loan-to-value, WAD-scaled (e.g. 0.8e18)
            account: Wallet holding the market's lendable reserves
            debt_symbol: Symbol of the debt unit (default "d" + asset)
        """
        max_ltv = max_ltv if isinstance(max_ltv, Decimal) else Decimal(str(max_ltv))
        if max_ltv < 0 or max_ltv >= WAD:
            raise ValueError(f"max_ltv must be in [0, WAD), got {max_ltv}")
        self.ledger = ledger
        self.asset = asset
        self.collateral_market = collateral_market
        self.oracle = oracle
        self.max_ltv = max_ltv
        self.account = ledger.ensure_wallet(account)
        underlying = ledger.get_unit(asset)
        self.debt_symbol = debt_symbol or f"d{asset}"
        ledger.register_unit(Unit(
            symbol=self.debt_symbol,
            name=f"Debt {underlying.name}",
            unit_type=UNIT_TYPE_DEBT,
            decimals=underlying.decimals,
        ))
        collateral_market.controller = self

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def debt_of(self, owner: str) -> Decimal:
        if not self.ledger.is_registered(owner):
            return ZERO
        return self.ledger.get_balance(owner, self.debt_symbol)

    def total_debt(self) -> Decimal:
        return self.ledger.total_supply(self.debt_symbol)

    def available_liquidity(self) -> Decimal:
        return self.ledger.get_balance(self.account, self.asset)

    def max_borrow_ltv(self, collateral_asset: str) -> Decimal:
        """
        Raises:
            MarketError: If collateral_asset is not accepted by this market
        """
        if collateral_asset != self.collateral_market.asset:
            raise MarketError(f"{collateral_asset} is not accepted as collateral for {self.asset}")
        return self.max_ltv

    def borrow_limit(self, collateral_assets: Decimal) -> Decimal:
        """Maximum debt supported by an amount of collateral."""
        if collateral_assets == 0:
            return ZERO
        value = self.oracle.quote(collateral_assets, self.collateral_market.asset, self.asset)
        return mul_div_down(value, self.max_ltv, WAD)

    def check_borrow_limit(self, owner: str, collateral_assets: Decimal, debt: Decimal) -> None:
        """
        Raises:
            BorrowLimitExceeded: If debt exceeds the limit for collateral_assets
        """
        if debt == 0:
            return
        limit = self.borrow_limit(collateral_assets)
        if debt > limit:
            raise BorrowLimitExceeded(
                f"{owner}: debt {debt} {self.asset} exceeds limit {limit} "
                f"for {collateral_assets} {self.collateral_market.asset}"
            )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def borrow(self, amount: Decimal, receiver: str) -> Decimal:
        """
        Borrow amount against receiver's supplied collateral.

        Raises:
            InsufficientLiquidity: If reserves cannot fund the loan
            BorrowLimitExceeded: If the resulting debt breaches max_ltv

        Returns:
            Amount borrowed
        """
        amount = to_amount(amount)
        if amount == 0:
            return ZERO
        if amount > self.available_liquidity():
            raise InsufficientLiquidity(
                f"{self.asset} reserves {self.available_liquidity()} cannot fund borrow of {amount}"
            )
        self.check_borrow_limit(
            receiver,
            self.collateral_market.assets_of(receiver),
            self.debt_of(receiver) + amount,
        )
        self.ledger.execute([
            Move(amount, self.asset, self.account, receiver, "borrow"),
            Move(amount, self.debt_symbol, SYSTEM_WALLET, receiver, "borrow"),
        ], f"borrow {amount} {self.asset} by {receiver}")
        return amount

    def repay(self, amount: Decimal, payer: str) -> Decimal:
        """
        Repay up to amount of payer's own debt.

        Amounts above the outstanding debt are capped.

        Returns:
            Amount actually repaid
        """
        repaid = min(to_amount(amount), self.debt_of(payer))
        if repaid == 0:
            return ZERO
        self.ledger.execute([
            Move(repaid, self.asset, payer, self.account, "repay"),
            Move(repaid, self.debt_symbol, payer, SYSTEM_WALLET, "repay"),
        ], f"repay {repaid} {self.asset} by {payer}")
        return repaid

    def accrue_interest(self, rate: Decimal) -> Decimal:
        """
        Grow every borrower's debt by rate (WAD-scaled, e.g. 0.01e18 = 1%).

        Returns:
            Total interest added
        """
        rate = to_amount(rate, "rate")
        total = ZERO
        for borrower, debt in sorted(self.ledger.get_positions(self.debt_symbol).items()):
            interest = mul_div_up(debt, rate, WAD)
            if interest > 0:
                self.ledger.issue(self.debt_symbol, borrower, interest, "interest")
                total += interest
        logger.debug("Debt market accrued %s %s of interest", total, self.asset)
        return total

    def __repr__(self):
        return f"DebtMarketSim({self.asset}, debt={self.total_debt()}, liquidity={self.available_liquidity()})"
