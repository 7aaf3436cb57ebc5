"""
swap_venue.py - In-memory oracle-priced swap venue

Fills exact-input swaps at the oracle cross-rate minus a fee, out of its own
reserves. Fee and reserves are the only sources of slippage.
"""

from __future__ import annotations
from decimal import Decimal
import logging

from ..core import (
    BPS, Move, ZERO,
    InsufficientLiquidity, SlippageError,
    mul_div_down, to_amount,
)
from ..ledger import Ledger
from ..pricing_source import PriceOracle


logger = logging.getLogger(__name__)


class OracleSwapVenue:
    """Implements the SwapVenue protocol."""

    def __init__(self, ledger: Ledger, oracle: PriceOracle, account: str = "swap_venue", fee_bps: Decimal = ZERO):
        fee_bps = fee_bps if isinstance(fee_bps, Decimal) else Decimal(str(fee_bps))
        if fee_bps < 0 or fee_bps >= BPS:
            raise ValueError(f"fee_bps must be in [0, {BPS}), got {fee_bps}")
        self.ledger = ledger
        self.oracle = oracle
        self.account = ledger.ensure_wallet(account)
        self.fee_bps = fee_bps

    def reserves(self, symbol: str) -> Decimal:
        return self.ledger.get_balance(self.account, symbol)

    def quote_exact_input(self, token_in: str, token_out: str, amount_in: Decimal) -> Decimal:
        """Output for amount_in at the oracle rate, after fee."""
        gross = self.oracle.quote(to_amount(amount_in), token_in, token_out)
        return mul_div_down(gross, BPS - self.fee_bps, BPS)

    def swap_exact_input(
        self,
        token_in: str,
        token_out: str,
        amount_in: Decimal,
        min_amount_out: Decimal,
        recipient: str,
        payer: str,
    ) -> Decimal:
        """
        Swap exactly amount_in of token_in paid by payer for token_out sent to recipient.

        Raises:
            SlippageError: If the output would be below min_amount_out
            InsufficientLiquidity: If reserves of token_out are too small

        Returns:
            Amount of token_out delivered
        """
        amount_in = to_amount(amount_in, "amount_in")
        min_amount_out = to_amount(min_amount_out, "min_amount_out")
        if token_in == token_out:
            raise ValueError("token_in and token_out must differ")
        amount_out = self.quote_exact_input(token_in, token_out, amount_in)
        if amount_out < min_amount_out:
            raise SlippageError(
                f"Swap {amount_in} {token_in} -> {amount_out} {token_out} below minimum {min_amount_out}"
            )
        if amount_out > self.reserves(token_out):
            raise InsufficientLiquidity(
                f"Swap venue holds {self.reserves(token_out)} {token_out}, cannot deliver {amount_out}"
            )
        moves = []
        if amount_in > 0:
            moves.append(Move(amount_in, token_in, payer, self.account, "swap"))
        if amount_out > 0:
            moves.append(Move(amount_out, token_out, self.account, recipient, "swap"))
        if moves:
            self.ledger.execute(moves, f"swap {amount_in} {token_in} -> {amount_out} {token_out}")
        logger.debug("Swapped %s %s for %s %s", amount_in, token_in, amount_out, token_out)
        return amount_out
