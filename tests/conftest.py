"""
conftest.py - Shared pytest fixtures for vault tests

Provides common fixtures used across unit, functional and conformance tests:
- Sandboxes (default 2x wstETH/WETH vault over in-memory markets)
- Funded users
- Ledger snapshot helpers for all-or-nothing assertions
"""

import pytest
from decimal import Decimal
from typing import Dict, Tuple

from levvault import (
    Ledger, StaticPriceOracle,
    CollateralMarketSim, DebtMarketSim,
    build_sandbox, token, wad,
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def ledger_balances(ledger: Ledger) -> Dict[Tuple[str, str], Decimal]:
    """All non-zero balances keyed by (wallet, unit)."""
    return {
        (wallet, unit): qty
        for wallet, balances in ledger.balances.items()
        for unit, qty in balances.items()
        if qty != 0
    }


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def balances_of():
    """Function returning a ledger's non-zero balances."""
    return ledger_balances


@pytest.fixture
def sandbox():
    """2x wstETH/WETH vault at $4000/$2000 (price 2e18), 80% LTV, 1% band."""
    return build_sandbox()


@pytest.fixture
def funded_sandbox(sandbox):
    """Default sandbox with alice and bob holding 100 wstETH each."""
    sandbox.fund("alice", "wstETH", wad(100))
    sandbox.fund("bob", "wstETH", wad(100))
    return sandbox


@pytest.fixture
def levered_sandbox(funded_sandbox):
    """Alice has deposited 1 wstETH: collateral 2e18, debt 2e18, leverage 2x."""
    funded_sandbox.vault.deposit(wad(1), receiver="alice")
    return funded_sandbox


@pytest.fixture
def oracle():
    return StaticPriceOracle({"wstETH": 4000, "WETH": 2000})


@pytest.fixture
def market_ledger():
    """Ledger with wstETH and WETH registered and alice funded with 10 wstETH."""
    ledger = Ledger("markets", verbose=False)
    ledger.register_unit(token("wstETH", "Wrapped staked Ether"))
    ledger.register_unit(token("WETH", "Wrapped Ether"))
    ledger.register_wallet("alice")
    ledger.issue("wstETH", "alice", wad(10))
    return ledger


@pytest.fixture
def markets(market_ledger, oracle):
    """Collateral and debt markets with 100 WETH of lendable reserves."""
    collateral_market = CollateralMarketSim(market_ledger, "wstETH")
    debt_market = DebtMarketSim(market_ledger, "WETH", collateral_market, oracle, max_ltv=wad("0.8"))
    market_ledger.issue("WETH", debt_market.account, wad(100))
    return collateral_market, debt_market
