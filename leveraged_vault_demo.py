#!/usr/bin/env python3
"""
2x Leveraged wstETH/WETH Vault Demo

Walks a vault through its life cycle:
- Two users deposit wstETH and receive shares
- The vault levers up to 2x with one flash loan per rebalance
- A price drop pushes leverage up; a keeper rebalance brings it back
- A 90-day GBM price path is replayed with daily rebalancing
- Users redeem and the position unwinds pro rata

Usage:
    python leveraged_vault_demo.py
"""

from datetime import datetime
from decimal import Decimal

from levvault import (
    WAD, TimeSeriesPriceOracle,
    build_sandbox, generate_price_path, run_rebalance_simulation, summarize_simulation, wad,
)


def fmt(amount: Decimal, decimals: int = 18) -> str:
    return f"{amount / Decimal(10) ** decimals:,.6f}"


def show_state(vault, label: str) -> None:
    state = vault.get_state()
    print(f"\n{label}")
    print(f"  Collateral:   {fmt(state.collateral)} {vault.collateral.symbol}")
    print(f"  Debt:         {fmt(state.debt)} {vault.debt.symbol}")
    print(f"  Equity:       {fmt(state.equity_value)} {vault.debt.symbol}")
    print(f"  Leverage:     {state.leverage / WAD:.4f}x ({state.status})")
    print(f"  Total assets: {fmt(vault.total_assets())} {vault.collateral.symbol}")


def lifecycle_demo() -> None:
    print("=" * 70)
    print("LEVERAGED VAULT LIFE CYCLE")
    print("=" * 70)

    sandbox = build_sandbox(keeper="keeper")
    vault = sandbox.vault
    sandbox.fund("alice", "wstETH", wad(10))
    sandbox.fund("bob", "wstETH", wad(10))

    print(f"\nVault: {vault}")
    print(f"  Max leverage: {vault.max_leverage / WAD}x")

    alice_shares = vault.deposit(wad(5), receiver="alice")
    show_state(vault, f"After Alice deposits 5 wstETH ({fmt(alice_shares)} shares)")

    bob_shares = vault.deposit(wad(3), receiver="bob")
    show_state(vault, f"After Bob deposits 3 wstETH ({fmt(bob_shares)} shares)")

    sandbox.set_price("wstETH", 3600)
    show_state(vault, "wstETH drops 10% to $3,600")

    plan = vault.rebalance(sender="keeper")
    print(f"\nKeeper rebalance: {plan.direction} by {fmt(plan.delta)} WETH")
    show_state(vault, "After rebalance")

    assets = vault.redeem(alice_shares, receiver="alice", owner="alice")
    show_state(vault, f"After Alice redeems all shares for {fmt(assets)} wstETH")

    print(f"\nLedger double-entry check: {sandbox.ledger.verify_double_entry()['valid']}")


def simulation_demo() -> None:
    print("\n" + "=" * 70)
    print("90-DAY GBM SIMULATION, DAILY REBALANCING")
    print("=" * 70)

    start = datetime(2025, 1, 1)
    path = generate_price_path(4000.0, start, num_steps=90, volatility=0.6, seed=7)
    oracle = TimeSeriesPriceOracle({
        "wstETH": path,
        "WETH": [(start, Decimal("2000"))],
    })
    sandbox = build_sandbox(oracle=oracle)
    sandbox.fund("alice", "wstETH", wad(10))
    sandbox.vault.deposit(wad(10), receiver="alice")

    steps = run_rebalance_simulation(sandbox.vault, oracle, interest_rate_per_step=wad("0.0001"))
    summary = summarize_simulation(steps)

    print(f"\n  wstETH: ${path[0][1]} -> ${path[-1][1]}")
    print(f"  Rebalances: {summary['rebalances']} of {summary['steps']} days")
    print(f"  Leverage: mean {summary['mean_leverage']:.3f}x, "
          f"range {summary['min_leverage']:.3f}x - {summary['max_leverage']:.3f}x")
    print(f"  NAV: {fmt(summary['nav_start'])} -> {fmt(summary['nav_end'])} wstETH")
    print(f"  Max drawdown: {summary['nav_max_drawdown']:.2%}")
    print(f"  Final status: {summary['final_status']}")


def main():
    lifecycle_demo()
    simulation_demo()


if __name__ == "__main__":
    main()
