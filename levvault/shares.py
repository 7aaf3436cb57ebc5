"""
shares.py - Vault share accounting

ShareToken keeps vault shares as a VAULT_SHARE unit in the ledger, so that
share balances roll back together with every other balance.

Conversions follow the tokenized-vault convention:

    shares = assets * total_shares / total_assets     (1:1 while no shares exist)
    assets = shares * total_assets / total_shares

Rounding always favours the vault: deposit/redeem round down, mint/withdraw
round up.
"""

from __future__ import annotations
from decimal import Decimal, ROUND_DOWN
import logging

from .core import (
    UNIT_TYPE_VAULT_SHARE, ZERO, Unit,
    InsolvencyError, InsufficientSharesError,
    mul_div, to_amount,
)
from .ledger import Ledger


logger = logging.getLogger(__name__)


class ShareToken:
    """Implements the ShareLedger protocol on top of a Ledger."""

    def __init__(self, ledger: Ledger, symbol: str, name: str, decimals: int = 18):
        self.ledger = ledger
        self.symbol = symbol
        ledger.register_unit(Unit(
            symbol=symbol,
            name=name,
            unit_type=UNIT_TYPE_VAULT_SHARE,
            decimals=decimals,
        ))

    def total_shares(self) -> Decimal:
        return self.ledger.total_supply(self.symbol)

    def shares_of(self, owner: str) -> Decimal:
        if not self.ledger.is_registered(owner):
            return ZERO
        return self.ledger.get_balance(owner, self.symbol)

    def mint(self, receiver: str, shares: Decimal) -> None:
        self.ledger.ensure_wallet(receiver)
        self.ledger.issue(self.symbol, receiver, to_amount(shares, "shares"), "share_mint")

    def burn(self, owner: str, shares: Decimal) -> None:
        """
        Raises:
            InsufficientSharesError: If owner holds fewer than shares
        """
        shares = to_amount(shares, "shares")
        held = self.shares_of(owner)
        if shares > held:
            raise InsufficientSharesError(f"{owner} holds {held} {self.symbol}, cannot burn {shares}")
        self.ledger.redeem(self.symbol, owner, shares, "share_burn")

    def __repr__(self):
        return f"ShareToken({self.symbol}, supply={self.total_shares()})"


def convert_to_shares(assets: Decimal, total_assets: Decimal, total_shares: Decimal,
                      rounding: str = ROUND_DOWN) -> Decimal:
    """
    Shares worth assets.

    Raises:
        InsolvencyError: If shares exist but back no assets
    """
    if total_shares == 0:
        return to_amount(assets)
    if total_assets == 0:
        raise InsolvencyError(f"{total_shares} shares outstanding with no assets behind them")
    return mul_div(assets, total_shares, total_assets, rounding)


def convert_to_assets(shares: Decimal, total_assets: Decimal, total_shares: Decimal,
                      rounding: str = ROUND_DOWN) -> Decimal:
    """Assets represented by shares."""
    if total_shares == 0:
        return to_amount(shares)
    return mul_div(shares, total_assets, total_shares, rounding)
