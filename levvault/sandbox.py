"""
sandbox.py - A fully wired in-memory vault

build_sandbox() creates a ledger, an oracle, the four in-memory markets with
funded reserves, and a LeveragedVault on top. Tests, the demo and the
simulation all start from here.

Example:
    sandbox = build_sandbox(target_multiple=2)
    sandbox.fund("alice", "wstETH", wad(10))
    shares = sandbox.vault.deposit(wad(1), receiver="alice")
    sandbox.set_price("wstETH", 3600)
    sandbox.vault.rebalance()
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Union

from .config import VaultConfig
from .core import (
    DEFAULT_MAX_SLIPPAGE_BPS, DEFAULT_PRICING_DENOMINATION, DEFAULT_REBALANCE_BAND_BPS, ZERO,
    token, to_amount, wad,
)
from .ledger import Ledger
from .markets import CollateralMarketSim, DebtMarketSim, FlashLender, OracleSwapVenue
from .pricing_source import StaticPriceOracle, TimeSeriesPriceOracle
from .vault import LeveragedVault


DEFAULT_RESERVES = 1_000_000


@dataclass
class Sandbox:
    ledger: Ledger
    oracle: Union[StaticPriceOracle, TimeSeriesPriceOracle]
    collateral_market: CollateralMarketSim
    debt_market: DebtMarketSim
    flash_lender: FlashLender
    swap_venue: OracleSwapVenue
    vault: LeveragedVault

    @property
    def collateral(self) -> str:
        return self.vault.collateral.symbol

    @property
    def debt(self) -> str:
        return self.vault.debt.symbol

    def fund(self, wallet: str, symbol: str, amount: Any) -> None:
        """Issue amount (base units) of symbol to wallet, registering it if needed."""
        self.ledger.ensure_wallet(wallet)
        self.ledger.issue(symbol, wallet, to_amount(amount), "sandbox_fund")

    def balance(self, wallet: str, symbol: str) -> Decimal:
        if not self.ledger.is_registered(wallet):
            return ZERO
        return self.ledger.get_balance(wallet, symbol)

    def set_price(self, symbol: str, price: Any) -> None:
        """
        Raises:
            TypeError: If the sandbox replays a time series
        """
        if not isinstance(self.oracle, StaticPriceOracle):
            raise TypeError("set_price() needs a StaticPriceOracle; advance the time series instead")
        self.oracle.update_price(symbol, price)


def build_sandbox(
    collateral: str = "wstETH",
    debt: str = "WETH",
    collateral_price: Any = 4000,
    debt_price: Any = 2000,
    collateral_decimals: int = 18,
    debt_decimals: int = 18,
    max_ltv: Any = "0.8",
    target_multiple: Any = 2,
    rebalance_band_bps: Any = DEFAULT_REBALANCE_BAND_BPS,
    max_slippage_bps: Any = DEFAULT_MAX_SLIPPAGE_BPS,
    swap_fee_bps: Any = ZERO,
    flash_fee_bps: Any = ZERO,
    keeper: Optional[str] = None,
    reserves: Any = DEFAULT_RESERVES,
    oracle: Optional[Union[StaticPriceOracle, TimeSeriesPriceOracle]] = None,
    share_symbol: Optional[str] = None,
    verbose: bool = False,
) -> Sandbox:
    """
    Wire a vault over in-memory markets.

    Args:
        collateral / debt: Asset symbols
        collateral_price / debt_price: Prices of one whole token in USD
            (ignored when an oracle is passed)
        max_ltv: Debt market LTV as a fraction (e.g. "0.8")
        target_multiple: Target leverage as a multiple (e.g. 2)
        reserves: Whole tokens seeded into the debt market, the flash lender
            and each side of the swap venue
        oracle: Pre-built oracle, e.g. a TimeSeriesPriceOracle for simulations
    """
    decimals = {collateral: collateral_decimals, debt: debt_decimals}
    if oracle is None:
        oracle = StaticPriceOracle(
            {collateral: collateral_price, debt: debt_price},
            base_currency=DEFAULT_PRICING_DENOMINATION,
            decimals=decimals,
        )

    ledger = Ledger(f"{collateral}-{debt}", verbose=verbose)
    collateral_unit = token(collateral, collateral, collateral_decimals)
    debt_unit = token(debt, debt, debt_decimals)
    ledger.register_unit(collateral_unit)
    ledger.register_unit(debt_unit)

    collateral_market = CollateralMarketSim(ledger, collateral)
    debt_market = DebtMarketSim(ledger, debt, collateral_market, oracle, max_ltv=wad(max_ltv))
    flash_lender = FlashLender(ledger, debt, fee_bps=flash_fee_bps)
    swap_venue = OracleSwapVenue(ledger, oracle, fee_bps=swap_fee_bps)

    reserve_amount = Decimal(str(reserves))
    ledger.issue(debt, debt_market.account, reserve_amount * debt_unit.one, "seed_reserves")
    ledger.issue(debt, flash_lender.account, reserve_amount * debt_unit.one, "seed_reserves")
    ledger.issue(debt, swap_venue.account, reserve_amount * debt_unit.one, "seed_reserves")
    ledger.issue(collateral, swap_venue.account, reserve_amount * collateral_unit.one, "seed_reserves")

    config = VaultConfig(
        collateral_token=collateral,
        debt_token=debt,
        target_leverage=wad(target_multiple),
        share_symbol=share_symbol or f"lv{collateral.upper()}",
        share_name=f"Leveraged {collateral}/{debt}",
        rebalance_band_bps=rebalance_band_bps,
        max_slippage_bps=max_slippage_bps,
        keeper=keeper,
    )
    vault = LeveragedVault(config, ledger, collateral_market, debt_market, flash_lender, swap_venue, oracle)

    return Sandbox(
        ledger=ledger,
        oracle=oracle,
        collateral_market=collateral_market,
        debt_market=debt_market,
        flash_lender=flash_lender,
        swap_venue=swap_venue,
        vault=vault,
    )
