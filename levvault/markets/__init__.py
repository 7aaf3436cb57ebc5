"""
In-memory market adapters.

Each market keeps its reserves and claims in the shared Ledger, so a vault
operation that fails half-way is rolled back in the markets as well.
"""

from .collateral_market import CollateralMarketSim
from .debt_market import DebtMarketSim
from .flash_lender import FlashLender
from .swap_venue import OracleSwapVenue

__all__ = [
    'CollateralMarketSim',
    'DebtMarketSim',
    'FlashLender',
    'OracleSwapVenue',
]
