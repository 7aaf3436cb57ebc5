"""
levvault - Leveraged Vault Engine

A share-based vault that keeps a collateral/debt position at a target
leverage, rebalancing atomically with flash liquidity.

Usage:
    from levvault import WAD, build_sandbox, wad

    sandbox = build_sandbox(collateral="wstETH", debt="WETH", target_multiple=2)
    sandbox.fund("alice", "wstETH", wad(10))

    vault = sandbox.vault
    shares = vault.deposit(wad(1), receiver="alice")
    print(vault.get_state().leverage / WAD)        # ~2.0

    # Price drop pushes leverage up; rebalance brings it back
    sandbox.set_price("wstETH", 3600)
    plan = vault.rebalance()

    assets = vault.redeem(shares, receiver="alice", owner="alice")
"""

# Core types
from .core import (
    Unit,
    Move,
    Transaction,
    LedgerView,
    TokenLedger,
    CollateralMarket,
    DebtMarket,
    FlashBorrower,
    FlashLiquidity,
    SwapVenue,
    ShareLedger,
    token,
    to_amount,
    mul_div,
    mul_div_down,
    mul_div_up,
    wad,
    SYSTEM_WALLET,
    ZERO,
    WAD,
    BPS,
    DEFAULT_REBALANCE_BAND_BPS,
    DEFAULT_MAX_SLIPPAGE_BPS,
    DEFAULT_PRICING_DENOMINATION,
    UNIT_TYPE_TOKEN,
    UNIT_TYPE_VAULT_SHARE,
    UNIT_TYPE_SUPPLY_SHARE,
    UNIT_TYPE_DEBT,
    POSITION_STATUS_EMPTY,
    POSITION_STATUS_ACTIVE,
    POSITION_STATUS_UNDERWATER,
    OP_INCREASE,
    OP_DECREASE,
    # Exceptions
    LedgerError,
    InsufficientFunds,
    UnitNotRegistered,
    WalletNotRegistered,
    MarketError,
    InsufficientLiquidity,
    BorrowLimitExceeded,
    FlashLoanNotRepaid,
    VaultError,
    ConfigurationError,
    InvalidPriceError,
    InsolvencyError,
    SlippageError,
    UnauthorizedError,
    UnauthorizedCallbackError,
    ReentrancyError,
    ZeroAmountError,
    InsufficientSharesError,
)

# Ledger
from .ledger import Ledger

# Pricing
from .pricing_source import PriceOracle, StaticPriceOracle, TimeSeriesPriceOracle
from .price_adapter import PriceAdapter

# Engine
from .config import VaultConfig, calculate_max_leverage
from .state import VaultState, EMPTY_STATE, calculate_state, StateAccountant
from .rebalancer import RebalancePlan, calculate_rebalance, Rebalancer
from .executor import FlashOperation, LeverageLoopExecutor
from .unwinder import UnwindResult, WithdrawalUnwinder
from .shares import ShareToken, convert_to_shares, convert_to_assets
from .vault import LeveragedVault

# Markets
from .markets import CollateralMarketSim, DebtMarketSim, FlashLender, OracleSwapVenue

# Sandbox & simulation
from .sandbox import Sandbox, build_sandbox
from .simulation import SimulationStep, generate_price_path, run_rebalance_simulation, summarize_simulation

__all__ = [
    # Core
    'Unit', 'Move', 'Transaction',
    'LedgerView', 'TokenLedger', 'CollateralMarket', 'DebtMarket', 'FlashBorrower',
    'FlashLiquidity', 'SwapVenue', 'ShareLedger',
    'token', 'to_amount', 'mul_div', 'mul_div_down', 'mul_div_up', 'wad',
    'SYSTEM_WALLET', 'ZERO', 'WAD', 'BPS',
    'DEFAULT_REBALANCE_BAND_BPS', 'DEFAULT_MAX_SLIPPAGE_BPS', 'DEFAULT_PRICING_DENOMINATION',
    'UNIT_TYPE_TOKEN', 'UNIT_TYPE_VAULT_SHARE', 'UNIT_TYPE_SUPPLY_SHARE', 'UNIT_TYPE_DEBT',
    'POSITION_STATUS_EMPTY', 'POSITION_STATUS_ACTIVE', 'POSITION_STATUS_UNDERWATER',
    'OP_INCREASE', 'OP_DECREASE',
    # Exceptions
    'LedgerError', 'InsufficientFunds', 'UnitNotRegistered', 'WalletNotRegistered',
    'MarketError', 'InsufficientLiquidity', 'BorrowLimitExceeded', 'FlashLoanNotRepaid',
    'VaultError', 'ConfigurationError', 'InvalidPriceError', 'InsolvencyError', 'SlippageError',
    'UnauthorizedError', 'UnauthorizedCallbackError', 'ReentrancyError', 'ZeroAmountError',
    'InsufficientSharesError',
    # Ledger
    'Ledger',
    # Pricing
    'PriceOracle', 'StaticPriceOracle', 'TimeSeriesPriceOracle', 'PriceAdapter',
    # Engine
    'VaultConfig', 'calculate_max_leverage',
    'VaultState', 'EMPTY_STATE', 'calculate_state', 'StateAccountant',
    'RebalancePlan', 'calculate_rebalance', 'Rebalancer',
    'FlashOperation', 'LeverageLoopExecutor',
    'UnwindResult', 'WithdrawalUnwinder',
    'ShareToken', 'convert_to_shares', 'convert_to_assets',
    'LeveragedVault',
    # Markets
    'CollateralMarketSim', 'DebtMarketSim', 'FlashLender', 'OracleSwapVenue',
    # Sandbox & simulation
    'Sandbox', 'build_sandbox',
    'SimulationStep', 'generate_price_path', 'run_rebalance_simulation', 'summarize_simulation',
]

__version__ = '1.0.0'
