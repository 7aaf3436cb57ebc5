"""
executor.py - Atomic leverage changes funded by one flash draw

Increase(delta)                           Decrease(delta)
    flash   delta debt asset                  flash   delta debt asset
    swap    debt -> collateral                repay   delta debt
    deposit collateral                        withdraw collateral quoted to fill delta + fee
    borrow  delta + fee                       swap    collateral -> debt, min delta + fee
    return  delta + fee to lender             return  delta + fee to lender
                                              repay   any surplus, capped at debt

The decrease sale starts at ceil((delta + fee) / price) and grows while the
venue quotes short, up to ceil((delta + fee) / (1 - max_slippage) / price).

Each operation either completes with the flash draw returned or raises, in
which case the lender's atomic block restores every balance.

The executor is the flash borrower. Its callback accepts only the configured
lender, only while an operation is in flight, and only with that operation's
own FlashOperation as data.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional
import logging

from .core import (
    BPS, OP_DECREASE, OP_INCREASE, ZERO,
    CollateralMarket, DebtMarket, FlashLiquidity, SwapVenue, TokenLedger,
    ReentrancyError, SlippageError, UnauthorizedCallbackError,
    mul_div_down, mul_div_up, to_amount,
)
from .price_adapter import PriceAdapter


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FlashOperation:
    """Payload passed through the flash lender back to the callback."""
    kind: str
    amount: Decimal
    generation: int


class LeverageLoopExecutor:
    """
    Performs increase/decrease of the vault's exposure.

    Attributes:
        account: Vault wallet; flash funds are delivered here
    """

    def __init__(
        self,
        account: str,
        ledger: TokenLedger,
        collateral_market: CollateralMarket,
        debt_market: DebtMarket,
        flash_liquidity: FlashLiquidity,
        swap_venue: SwapVenue,
        price_adapter: PriceAdapter,
        max_slippage_bps: Decimal,
    ):
        self.account = account
        self.ledger = ledger
        self.collateral_market = collateral_market
        self.debt_market = debt_market
        self.flash_liquidity = flash_liquidity
        self.swap_venue = swap_venue
        self.price_adapter = price_adapter
        self.max_slippage_bps = max_slippage_bps
        self._operation: Optional[FlashOperation] = None
        self._generation = 0

    @property
    def collateral_asset(self) -> str:
        return self.collateral_market.asset

    @property
    def debt_asset(self) -> str:
        return self.debt_market.asset

    @property
    def in_progress(self) -> bool:
        return self._operation is not None

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def increase(self, delta: Decimal) -> Decimal:
        """
        Add delta of debt-funded exposure.

        Returns:
            Amount flashed (zero for a zero delta)
        """
        delta = to_amount(delta, "delta")
        if delta == 0:
            return ZERO
        return self._run(OP_INCREASE, delta)

    def decrease(self, delta: Decimal) -> Decimal:
        """
        Remove delta of exposure by repaying debt; delta is capped at the debt.

        Returns:
            Amount flashed (zero when there is nothing to repay)
        """
        delta = min(to_amount(delta, "delta"), self.debt_market.debt_of(self.account))
        if delta == 0:
            return ZERO
        return self._run(OP_DECREASE, delta)

    def _run(self, kind: str, amount: Decimal) -> Decimal:
        if self._operation is not None:
            raise ReentrancyError(f"{self._operation.kind} already in progress")
        self._generation += 1
        operation = FlashOperation(kind, amount, self._generation)
        self._operation = operation
        logger.debug("Flash %s #%d for %s %s", kind, operation.generation, amount, self.debt_asset)
        try:
            self.flash_liquidity.flash_loan(self, amount, operation)
        finally:
            self._operation = None
        return amount

    # ------------------------------------------------------------------
    # Flash callback
    # ------------------------------------------------------------------

    def on_liquidity_received(self, sender: Any, amount: Decimal, fee: Decimal, data: Any) -> None:
        """
        Raises:
            UnauthorizedCallbackError: If sender is not the configured lender,
                no operation is in flight, or data/amount do not match it
        """
        if sender is not self.flash_liquidity:
            raise UnauthorizedCallbackError(f"Callback from unexpected sender {sender!r}")
        operation = self._operation
        if operation is None:
            raise UnauthorizedCallbackError("Callback received with no operation in progress")
        if data != operation or amount != operation.amount:
            raise UnauthorizedCallbackError(
                f"Callback data {data!r} does not match operation #{operation.generation}"
            )

        owed = amount + fee
        if operation.kind == OP_INCREASE:
            self._increase_leg(amount, owed)
        else:
            self._decrease_leg(amount, owed)
        self.ledger.transfer(self.debt_asset, self.account, self.flash_liquidity.account, owed, "flash_repay")

    def _increase_leg(self, amount: Decimal, owed: Decimal) -> None:
        price = self.price_adapter.price_c_in_debt()
        expected = self.price_adapter.debt_to_collateral(amount, price)
        min_out = mul_div_down(expected, BPS - self.max_slippage_bps, BPS)
        received = self.swap_venue.swap_exact_input(
            self.debt_asset, self.collateral_asset, amount, min_out, self.account, self.account,
        )
        if received < min_out:
            raise SlippageError(f"Swap returned {received} {self.collateral_asset}, minimum {min_out}")
        self.collateral_market.deposit(received, self.account)
        self.debt_market.borrow(owed, self.account)
        logger.debug("Increased: +%s %s collateral, +%s %s debt",
                     received, self.collateral_asset, owed, self.debt_asset)

    def _decrease_leg(self, amount: Decimal, owed: Decimal) -> None:
        self.debt_market.repay(amount, self.account)
        price = self.price_adapter.price_c_in_debt()
        available = self.collateral_market.convert_to_assets(self.collateral_market.balance_of(self.account))
        collateral_out = self._collateral_to_sell(owed, price, available)
        self.collateral_market.withdraw(collateral_out, self.account, self.account)
        received = self.swap_venue.swap_exact_input(
            self.collateral_asset, self.debt_asset, collateral_out, owed, self.account, self.account,
        )
        if received < owed:
            raise SlippageError(f"Swap returned {received} {self.debt_asset}, minimum {owed}")
        surplus = received - owed
        extra = self.debt_market.repay(surplus, self.account) if surplus > 0 else ZERO
        logger.debug("Decreased: -%s %s collateral, -%s %s debt (surplus %s, %s repaid)",
                     collateral_out, self.collateral_asset, amount, self.debt_asset, surplus, extra)

    def _collateral_to_sell(self, owed: Decimal, price: Decimal, available: Decimal) -> Decimal:
        """
        Smallest sale the venue quotes at owed or more, within the slippage allowance.

        Starts from the oracle equivalent of owed (rounded up) and grows toward
        ceil(owed / (1 - max_slippage) / price), capped at available collateral.
        A venue that cannot fill owed within that limit fails the swap.
        """
        unit = self.price_adapter.collateral_unit
        sale = min(mul_div_up(owed, unit, price), available)
        limit = min(mul_div_up(mul_div_up(owed, BPS, BPS - self.max_slippage_bps), unit, price), available)
        quoted = self.swap_venue.quote_exact_input(self.collateral_asset, self.debt_asset, sale)
        while quoted < owed and sale < limit:
            grown = mul_div_up(sale, owed, quoted) if quoted > 0 else limit
            sale = min(limit, max(sale + 1, grown))
            quoted = self.swap_venue.quote_exact_input(self.collateral_asset, self.debt_asset, sale)
        return sale
