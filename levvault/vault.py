"""
vault.py - Leveraged vault entry points

LeveragedVault wires the pieces together and exposes the share-based
interface users and keepers call:

    deposit / mint      collateral in, shares out, then rebalance
    withdraw / redeem   pro-rata debt repaid, collateral out, shares burned
    rebalance           move exposure back toward target_leverage * equity

Every mutating entry point runs inside Ledger.atomic(): any exception restores
all balances (vault, markets, users) to what they were before the call.

Usage:
    from levvault import LeveragedVault, VaultConfig, wad

    config = VaultConfig(collateral_token="wstETH", debt_token="WETH",
                         target_leverage=wad(2), share_symbol="lvWSTETH")
    vault = LeveragedVault(config, ledger, collateral_market, debt_market,
                           flash_lender, swap_venue, oracle)
    shares = vault.deposit(wad(1), receiver="alice")
    assets = vault.redeem(shares, receiver="alice", owner="alice")
"""

from __future__ import annotations
from decimal import Decimal, ROUND_DOWN, ROUND_UP
from functools import wraps
from typing import Optional
import logging

from .config import VaultConfig, calculate_max_leverage
from .core import (
    WAD, ZERO,
    CollateralMarket, DebtMarket, FlashLiquidity, ShareLedger, SwapVenue,
    ConfigurationError, InsolvencyError, InsufficientSharesError, ReentrancyError, UnauthorizedError, ZeroAmountError,
    mul_div_down, to_amount,
)
from .executor import LeverageLoopExecutor
from .ledger import Ledger
from .price_adapter import PriceAdapter
from .pricing_source import PriceOracle
from .rebalancer import RebalancePlan, Rebalancer
from .shares import ShareToken, convert_to_assets, convert_to_shares
from .state import StateAccountant, VaultState
from .unwinder import WithdrawalUnwinder


logger = logging.getLogger(__name__)


def _entry_point(method):
    """Run a mutating vault method once at a time, inside ledger.atomic()."""

    @wraps(method)
    def wrapper(self, *args, **kwargs):
        if self._entered:
            raise ReentrancyError(f"{method.__name__} called while another vault operation is running")
        self._entered = True
        try:
            with self.ledger.atomic():
                return method(self, *args, **kwargs)
        except Exception as exc:
            logger.warning("%s %s aborted: %s: %s", self.config.share_symbol, method.__name__,
                           type(exc).__name__, exc)
            raise
        finally:
            self._entered = False

    return wrapper


class LeveragedVault:
    """
    Share-based vault holding a leveraged collateral/debt position.

    The position itself is never stored: collateral and debt are read from
    the markets under config.account on every call.
    """

    def __init__(
        self,
        config: VaultConfig,
        ledger: Ledger,
        collateral_market: CollateralMarket,
        debt_market: DebtMarket,
        flash_liquidity: FlashLiquidity,
        swap_venue: SwapVenue,
        oracle: PriceOracle,
        shares: Optional[ShareLedger] = None,
    ):
        """
        Raises:
            ConfigurationError: If an adapter is missing, an adapter trades the
                wrong asset, or target_leverage exceeds what the debt market allows
        """
        for name, adapter in (
            ("config", config), ("ledger", ledger), ("collateral_market", collateral_market),
            ("debt_market", debt_market), ("flash_liquidity", flash_liquidity),
            ("swap_venue", swap_venue), ("oracle", oracle),
        ):
            if adapter is None:
                raise ConfigurationError(f"{name} is required")
        if collateral_market.asset != config.collateral_token:
            raise ConfigurationError(
                f"Collateral market trades {collateral_market.asset}, expected {config.collateral_token}"
            )
        if debt_market.asset != config.debt_token:
            raise ConfigurationError(f"Debt market lends {debt_market.asset}, expected {config.debt_token}")
        if flash_liquidity.asset != config.debt_token:
            raise ConfigurationError(
                f"Flash liquidity lends {flash_liquidity.asset}, expected {config.debt_token}"
            )

        self._max_leverage = calculate_max_leverage(debt_market.max_borrow_ltv(config.collateral_token))
        if config.target_leverage > self._max_leverage:
            raise ConfigurationError(
                f"target_leverage {config.target_leverage} exceeds max leverage {self._max_leverage}"
            )

        self.config = config
        self.ledger = ledger
        self.account = ledger.ensure_wallet(config.account)
        self.collateral_market = collateral_market
        self.debt_market = debt_market
        self.flash_liquidity = flash_liquidity
        self.swap_venue = swap_venue
        self.collateral = ledger.get_unit(config.collateral_token)
        self.debt = ledger.get_unit(config.debt_token)
        self.shares = shares or ShareToken(ledger, config.share_symbol, config.share_name,
                                           decimals=self.collateral.decimals)

        self.price_adapter = PriceAdapter(oracle, self.collateral, self.debt, config.pricing_denomination)
        self.accountant = StateAccountant(self.account, collateral_market, debt_market, self.price_adapter)
        self.executor = LeverageLoopExecutor(
            self.account, ledger, collateral_market, debt_market, flash_liquidity, swap_venue,
            self.price_adapter, config.max_slippage_bps,
        )
        self.rebalancer = Rebalancer(
            self.accountant, self.executor, config.target_leverage, config.rebalance_band_bps,
        )
        self.unwinder = WithdrawalUnwinder(
            self.account, ledger, self.accountant, self.executor, collateral_market, debt_market,
        )
        self._entered = False

        logger.info("Vault %s: %s/%s at %sx (max %sx)", config.share_symbol, config.collateral_token,
                    config.debt_token, config.target_multiple, self._max_leverage / WAD)

    # ========================================================================
    # VIEWS
    # ========================================================================

    @property
    def target_leverage(self) -> Decimal:
        return self.config.target_leverage

    @property
    def max_leverage(self) -> Decimal:
        return self._max_leverage

    def get_state(self) -> VaultState:
        return self.accountant.get_state()

    def total_assets(self) -> Decimal:
        """Net asset value in collateral base units (equity / price)."""
        state = self.get_state()
        if state.equity_value == 0:
            return ZERO
        return mul_div_down(state.equity_value, self.collateral.one, state.collateral_price)

    def total_shares(self) -> Decimal:
        return self.shares.total_shares()

    def balance_of(self, owner: str) -> Decimal:
        return self.shares.shares_of(owner)

    def _to_shares(self, assets: Decimal, rounding: str) -> Decimal:
        total_shares = self.total_shares()
        if total_shares == 0:
            return to_amount(assets, "assets")
        return convert_to_shares(to_amount(assets, "assets"), self.total_assets(), total_shares, rounding)

    def _to_assets(self, shares: Decimal, rounding: str) -> Decimal:
        total_shares = self.total_shares()
        if total_shares == 0:
            return to_amount(shares, "shares")
        return convert_to_assets(to_amount(shares, "shares"), self.total_assets(), total_shares, rounding)

    def convert_to_shares(self, assets: Decimal) -> Decimal:
        return self._to_shares(assets, ROUND_DOWN)

    def convert_to_assets(self, shares: Decimal) -> Decimal:
        return self._to_assets(shares, ROUND_DOWN)

    def preview_deposit(self, assets: Decimal) -> Decimal:
        return self._to_shares(assets, ROUND_DOWN)

    def preview_mint(self, shares: Decimal) -> Decimal:
        return self._to_assets(shares, ROUND_UP)

    def preview_withdraw(self, assets: Decimal) -> Decimal:
        return self._to_shares(assets, ROUND_UP)

    def preview_redeem(self, shares: Decimal) -> Decimal:
        return self._to_assets(shares, ROUND_DOWN)

    def max_redeem(self, owner: str) -> Decimal:
        return self.balance_of(owner)

    def max_withdraw(self, owner: str) -> Decimal:
        return self.preview_redeem(self.balance_of(owner))

    # ========================================================================
    # ENTRY POINTS
    # ========================================================================

    @_entry_point
    def deposit(self, assets: Decimal, receiver: str, sender: Optional[str] = None) -> Decimal:
        """
        Deposit collateral from sender (default: receiver) and mint shares to receiver.

        Raises:
            ZeroAmountError: If assets or the resulting shares are zero
            InsolvencyError: If shares exist but the vault has no equity
        """
        assets = to_amount(assets, "assets")
        if assets == 0:
            raise ZeroAmountError("Cannot deposit zero assets")
        shares = self.preview_deposit(assets)
        if shares == 0:
            raise ZeroAmountError(f"Deposit of {assets} is too small to mint a share")
        self._enter_position(assets, shares, sender or receiver, receiver)
        return shares

    @_entry_point
    def mint(self, shares: Decimal, receiver: str, sender: Optional[str] = None) -> Decimal:
        """
        Mint exactly shares to receiver, pulling the required collateral from sender.

        Raises:
            ZeroAmountError: If shares is zero
            InsolvencyError: If shares exist but the vault has no equity
        """
        shares = to_amount(shares, "shares")
        if shares == 0:
            raise ZeroAmountError("Cannot mint zero shares")
        assets = self.preview_mint(shares)
        if assets == 0:
            raise ZeroAmountError(f"Minting {shares} shares requires no assets")
        self._enter_position(assets, shares, sender or receiver, receiver)
        return assets

    @_entry_point
    def withdraw(self, assets: Decimal, receiver: str, owner: str) -> Decimal:
        """
        Withdraw exactly assets of collateral to receiver, burning owner's shares.

        Burning the last shares outstanding delivers at most the collateral
        left once the position is unwound.

        Raises:
            ZeroAmountError: If assets is zero
            InsufficientSharesError: If owner holds too few shares
            InsolvencyError: If the vault is underwater
        """
        assets = to_amount(assets, "assets")
        if assets == 0:
            raise ZeroAmountError("Cannot withdraw zero assets")
        self._require_solvent()
        shares = self.preview_withdraw(assets)
        self._exit_position(assets, shares, receiver, owner)
        return shares

    @_entry_point
    def redeem(self, shares: Decimal, receiver: str, owner: str) -> Decimal:
        """
        Redeem shares of owner for collateral sent to receiver.

        Returns the collateral delivered, which for the last shares outstanding
        is net of the fees paid to unwind the position.

        Raises:
            ZeroAmountError: If shares, or the assets they are worth, are zero
            InsufficientSharesError: If owner holds fewer than shares
            InsolvencyError: If the vault is underwater
        """
        shares = to_amount(shares, "shares")
        if shares == 0:
            raise ZeroAmountError("Cannot redeem zero shares")
        self._require_shares(owner, shares)
        self._require_solvent()
        assets = self.preview_redeem(shares)
        if assets == 0:
            raise ZeroAmountError(f"{shares} shares are worth no assets")
        return self._exit_position(assets, shares, receiver, owner)

    @_entry_point
    def rebalance(self, sender: Optional[str] = None) -> RebalancePlan:
        """
        Move exposure toward the target.

        A no-op inside the tolerance band, without equity, or while no shares
        are outstanding.

        Raises:
            UnauthorizedError: If a keeper is configured and sender is not it
        """
        keeper = self.config.keeper
        if keeper is not None and sender != keeper:
            raise UnauthorizedError(f"{sender} is not the keeper of {self.config.share_symbol}")
        if self.total_shares() == 0:
            # Rounding dust left after the last exit belongs to no holder
            state = self.get_state()
            logger.debug("Rebalance skipped: no shares outstanding (collateral %s, debt %s)",
                         state.collateral, state.debt)
            return RebalancePlan(None, ZERO, ZERO, ZERO, state)
        return self.rebalancer.rebalance_to_target()

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _require_solvent(self) -> None:
        state = self.get_state()
        if state.assets_value <= state.debt:
            raise InsolvencyError(
                f"{self.config.share_symbol} is underwater: assets value {state.assets_value} <= debt {state.debt}"
            )

    def _require_shares(self, owner: str, shares: Decimal) -> None:
        held = self.balance_of(owner)
        if shares > held:
            raise InsufficientSharesError(f"{owner} holds {held} shares, cannot redeem {shares}")

    def _enter_position(self, assets: Decimal, shares: Decimal, sender: str, receiver: str) -> None:
        self.ledger.transfer(self.collateral.symbol, sender, self.account, assets, "vault_deposit")
        self.shares.mint(receiver, shares)
        self.collateral_market.deposit(assets, self.account)
        plan = self.rebalancer.rebalance_to_target()
        logger.info("Deposit %s %s from %s: %s shares to %s (rebalance %s)",
                    assets, self.collateral.symbol, sender, shares, receiver, plan.direction or "none")

    def _exit_position(self, assets: Decimal, shares: Decimal, receiver: str, owner: str) -> Decimal:
        self._require_shares(owner, shares)
        self.ledger.ensure_wallet(receiver)
        result = self.unwinder.unwind_for_withdraw(assets, shares, self.total_shares(), receiver)
        self.shares.burn(owner, shares)
        logger.info("Withdraw %s %s to %s: %s shares of %s burned, %s debt repaid",
                    result.collateral_withdrawn, self.collateral.symbol, receiver, shares, owner, result.debt_share)
        return result.collateral_withdrawn

    def __repr__(self):
        return (f"LeveragedVault({self.config.share_symbol}, "
                f"target={self.config.target_multiple}x, shares={self.total_shares()})")
