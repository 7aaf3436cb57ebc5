"""
unwinder.py - Shrink the position before collateral leaves the vault

For a redemption of `shares` out of `total_shares`:

    debt_share = ceil(debt * shares / total_shares)     (capped at debt)

The debt share is repaid from the vault's idle debt-asset balance first and
through one executor decrease for the rest. Only then is the requested
collateral withdrawn to the receiver. Rounding up the debt share keeps the
remaining holders' leverage from creeping up with every exit.

When the last shares leave, the receiver gets at most the collateral that
remains after the unwind, so the final exit pays its own swap and flash fees.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal

from .core import (
    ZERO,
    CollateralMarket, DebtMarket, TokenLedger,
    InsolvencyError, ZeroAmountError,
    mul_div_up, to_amount,
)
from .executor import LeverageLoopExecutor
from .state import StateAccountant


@dataclass(frozen=True, slots=True)
class UnwindResult:
    debt_share: Decimal
    repaid_from_idle: Decimal
    repaid_with_flash: Decimal
    collateral_withdrawn: Decimal


class WithdrawalUnwinder:

    def __init__(
        self,
        account: str,
        ledger: TokenLedger,
        accountant: StateAccountant,
        executor: LeverageLoopExecutor,
        collateral_market: CollateralMarket,
        debt_market: DebtMarket,
    ):
        self.account = account
        self.ledger = ledger
        self.accountant = accountant
        self.executor = executor
        self.collateral_market = collateral_market
        self.debt_market = debt_market

    def unwind_for_withdraw(
        self,
        assets_to_return: Decimal,
        shares_being_redeemed: Decimal,
        total_shares: Decimal,
        receiver: str,
    ) -> UnwindResult:
        """
        Repay the redeemed shares' debt, then send assets_to_return collateral to receiver.

        Raises:
            ZeroAmountError: If there are no shares outstanding
            InsolvencyError: If assets_value <= debt
            InvalidPriceError: If the oracle quotes zero
        """
        assets_to_return = to_amount(assets_to_return, "assets_to_return")
        shares_being_redeemed = to_amount(shares_being_redeemed, "shares_being_redeemed")
        if total_shares == 0:
            raise ZeroAmountError("No shares outstanding")
        if shares_being_redeemed > total_shares:
            raise ValueError(f"Cannot redeem {shares_being_redeemed} of {total_shares} shares")

        state = self.accountant.get_state()
        if state.assets_value <= state.debt:
            raise InsolvencyError(
                f"Position underwater: assets value {state.assets_value} <= debt {state.debt}"
            )

        debt_share = min(mul_div_up(state.debt, shares_being_redeemed, total_shares), state.debt)

        repaid_from_idle = ZERO
        idle = self.ledger.get_balance(self.account, self.debt_market.asset)
        if debt_share > 0 and idle > 0:
            repaid_from_idle = self.debt_market.repay(min(idle, debt_share), self.account)

        repaid_with_flash = self.executor.decrease(debt_share - repaid_from_idle)

        collateral_out = assets_to_return
        if shares_being_redeemed == total_shares:
            # The last holder bears the fees of unwinding the position
            collateral_out = min(assets_to_return, self.accountant.get_collateral())
        if collateral_out > 0:
            self.collateral_market.withdraw(collateral_out, receiver, self.account)

        return UnwindResult(
            debt_share=debt_share,
            repaid_from_idle=repaid_from_idle,
            repaid_with_flash=repaid_with_flash,
            collateral_withdrawn=collateral_out,
        )
