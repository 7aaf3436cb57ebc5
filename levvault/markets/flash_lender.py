"""
flash_lender.py - In-memory flash-liquidity facility

Lends its reserves for the duration of one call. The borrower's callback runs
synchronously; when it returns, the reserves must have grown back by the
amount plus fee or the whole loan is rolled back.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Any
import logging

from ..core import (
    BPS, ZERO,
    FlashBorrower, FlashLoanNotRepaid, InsufficientLiquidity,
    mul_div_up, to_amount,
)
from ..ledger import Ledger


logger = logging.getLogger(__name__)


class FlashLender:
    """
    Implements the FlashLiquidity protocol over a ledger wallet.

    Attributes:
        asset: Symbol lent
        account: Wallet holding the reserves (borrowers repay here)
        fee_bps: Fee charged per loan, in basis points
    """

    def __init__(self, ledger: Ledger, asset: str, account: str = "flash_lender", fee_bps: Decimal = ZERO):
        fee_bps = fee_bps if isinstance(fee_bps, Decimal) else Decimal(str(fee_bps))
        if fee_bps < 0 or fee_bps >= BPS:
            raise ValueError(f"fee_bps must be in [0, {BPS}), got {fee_bps}")
        self.ledger = ledger
        self.asset = asset
        self.account = ledger.ensure_wallet(account)
        self.fee_bps = fee_bps

    def max_flash_loan(self) -> Decimal:
        return self.ledger.get_balance(self.account, self.asset)

    def flash_fee(self, amount: Decimal) -> Decimal:
        return mul_div_up(to_amount(amount), self.fee_bps, BPS)

    def flash_loan(self, borrower: FlashBorrower, amount: Decimal, data: Any) -> None:
        """
        Lend amount to borrower.account and invoke its callback.

        Raises:
            InsufficientLiquidity: If reserves are below amount
            FlashLoanNotRepaid: If amount + fee is not back after the callback
        """
        amount = to_amount(amount)
        if amount > self.max_flash_loan():
            raise InsufficientLiquidity(
                f"Flash reserves {self.max_flash_loan()} {self.asset} below requested {amount}"
            )
        fee = self.flash_fee(amount)
        with self.ledger.atomic():
            expected = self.max_flash_loan() + fee
            self.ledger.transfer(self.asset, self.account, borrower.account, amount, "flash_loan")
            logger.debug("Flash loan of %s %s to %s (fee %s)", amount, self.asset, borrower.account, fee)
            borrower.on_liquidity_received(self, amount, fee, data)
            if self.max_flash_loan() < expected:
                raise FlashLoanNotRepaid(
                    f"{borrower.account} returned {self.max_flash_loan() - expected + amount + fee} "
                    f"of {amount + fee} {self.asset}"
                )
