"""
collateral_market.py - In-memory collateral (supply) market

Suppliers deposit the collateral asset and receive supply shares, the same way
a tokenized lending vault does. Shares appreciate when yield is added to the
market's reserves.

Key Formulas:
    shares_for(assets) = assets * total_shares / total_assets   (1:1 when empty)
    assets_for(shares) = shares * total_assets / total_shares

All balances live in the shared Ledger: the asset in the market wallet, the
supply shares in each supplier's wallet.
"""

from __future__ import annotations
from decimal import Decimal, ROUND_DOWN, ROUND_UP
from typing import Optional
import logging

from ..core import (
    Move, Unit, SYSTEM_WALLET, UNIT_TYPE_SUPPLY_SHARE, ZERO,
    InsufficientLiquidity,
    mul_div, to_amount,
)
from ..ledger import Ledger


logger = logging.getLogger(__name__)


class CollateralMarketSim:
    """
    Supply market for one collateral asset.

    Implements the CollateralMarket protocol. A controller (the debt market
    lending against this collateral) may veto withdrawals that would leave a
    borrower over its LTV limit.
    """

    def __init__(
        self,
        ledger: Ledger,
        asset: str,
        account: str = "collateral_market",
        share_symbol: Optional[str] = None,
    ):
        self.ledger = ledger
        self.asset = asset
        self.account = ledger.ensure_wallet(account)
        underlying = ledger.get_unit(asset)
        self.share_symbol = share_symbol or f"s{asset}"
        ledger.register_unit(Unit(
            symbol=self.share_symbol,
            name=f"Supplied {underlying.name}",
            unit_type=UNIT_TYPE_SUPPLY_SHARE,
            decimals=underlying.decimals,
        ))
        self.controller = None

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def total_assets(self) -> Decimal:
        return self.ledger.get_balance(self.account, self.asset)

    def total_shares(self) -> Decimal:
        return self.ledger.total_supply(self.share_symbol)

    def balance_of(self, owner: str) -> Decimal:
        if not self.ledger.is_registered(owner):
            return ZERO
        return self.ledger.get_balance(owner, self.share_symbol)

    def convert_to_shares(self, assets: Decimal, rounding: str = ROUND_DOWN) -> Decimal:
        total_shares = self.total_shares()
        total_assets = self.total_assets()
        if total_shares == 0 or total_assets == 0:
            return to_amount(assets)
        return mul_div(to_amount(assets), total_shares, total_assets, rounding)

    def convert_to_assets(self, shares: Decimal) -> Decimal:
        total_shares = self.total_shares()
        if total_shares == 0:
            return to_amount(shares)
        return mul_div(to_amount(shares), self.total_assets(), total_shares, ROUND_DOWN)

    def assets_of(self, owner: str) -> Decimal:
        """Collateral amount owned by owner."""
        return self.convert_to_assets(self.balance_of(owner))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def deposit(self, amount: Decimal, owner: str) -> Decimal:
        """
        Pull amount of the asset from owner and credit supply shares.

        Returns:
            Shares minted (zero for a zero amount)
        """
        amount = to_amount(amount)
        if amount == 0:
            return ZERO
        shares = self.convert_to_shares(amount, ROUND_DOWN)
        moves = [Move(amount, self.asset, owner, self.account, "collateral_deposit")]
        if shares > 0:
            moves.append(Move(shares, self.share_symbol, SYSTEM_WALLET, owner, "collateral_deposit"))
        self.ledger.execute(moves, f"collateral deposit {amount} {self.asset} for {owner}")
        return shares

    def withdraw(self, amount: Decimal, receiver: str, owner: str) -> Decimal:
        """
        Send amount of the asset to receiver, burning owner's supply shares.

        Raises:
            InsufficientLiquidity: If owner's supply does not cover amount
            BorrowLimitExceeded: If the controller vetoes the withdrawal

        Returns:
            Shares burned
        """
        amount = to_amount(amount)
        if amount == 0:
            return ZERO
        shares = self.convert_to_shares(amount, ROUND_UP)
        balance = self.balance_of(owner)
        if shares > balance or amount > self.total_assets():
            raise InsufficientLiquidity(
                f"{owner} supplies {self.convert_to_assets(balance)} {self.asset}, cannot withdraw {amount}"
            )
        if self.controller is not None:
            remaining = self.convert_to_assets(balance - shares)
            self.controller.check_borrow_limit(owner, remaining, self.controller.debt_of(owner))
        self.ledger.execute([
            Move(shares, self.share_symbol, owner, SYSTEM_WALLET, "collateral_withdraw"),
            Move(amount, self.asset, self.account, receiver, "collateral_withdraw"),
        ], f"collateral withdraw {amount} {self.asset} from {owner} to {receiver}")
        return shares

    def accrue_yield(self, amount: Decimal) -> None:
        """Add yield to reserves, raising the asset value of every share."""
        self.ledger.issue(self.asset, self.account, to_amount(amount), "collateral_yield")
        logger.debug("Collateral market accrued %s %s of yield", amount, self.asset)

    def __repr__(self):
        return f"CollateralMarketSim({self.asset}, assets={self.total_assets()}, shares={self.total_shares()})"
