"""
simulation.py - Replay a vault through a price path

generate_price_path() draws a geometric Brownian motion path with numpy:

    S(t+dt) = S(t) * exp((mu - 0.5*sigma^2)*dt + sigma*sqrt(dt)*Z),  Z ~ N(0,1)

run_rebalance_simulation() steps a vault's TimeSeriesPriceOracle through every
observation, optionally accrues interest on the debt, rebalances and records
a SimulationStep after each step.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
import logging

import numpy as np

from .core import WAD, ZERO
from .pricing_source import TimeSeriesPriceOracle
from .vault import LeveragedVault


logger = logging.getLogger(__name__)

TRADING_DAYS_PER_YEAR = 252


def generate_price_path(
    start_price: float,
    start_date: datetime,
    num_steps: int,
    volatility: float,
    drift: float = 0.0,
    seed: int = 42,
    step: timedelta = timedelta(days=1),
) -> List[Tuple[datetime, Decimal]]:
    """
    Generate a Geometric Brownian Motion price path.

    Args:
        start_price: Initial price S(0)
        start_date: Timestamp of the first observation
        num_steps: Number of observations, including the first
        volatility: Annualized volatility (e.g., 0.6 for 60%)
        drift: Annualized drift
        seed: Random seed for reproducibility
        step: Time between observations

    Returns:
        List of (datetime, price) tuples for TimeSeriesPriceOracle
    """
    if num_steps < 1:
        raise ValueError(f"num_steps must be at least 1, got {num_steps}")
    if start_price <= 0 or volatility < 0:
        raise ValueError("start_price must be positive and volatility non-negative")

    rng = np.random.default_rng(seed)
    dt = 1.0 / TRADING_DAYS_PER_YEAR
    z = rng.standard_normal(num_steps - 1)
    log_returns = (drift - 0.5 * volatility ** 2) * dt + volatility * np.sqrt(dt) * z
    prices = start_price * np.exp(np.concatenate(([0.0], np.cumsum(log_returns))))

    # Prices are rounded so that oracle quotes stay exact decimals
    return [
        (start_date + i * step, Decimal(str(round(float(price), 6))))
        for i, price in enumerate(prices)
    ]


@dataclass(frozen=True, slots=True)
class SimulationStep:
    timestamp: datetime
    price: Decimal
    collateral: Decimal
    debt: Decimal
    leverage: Decimal
    total_assets: Decimal
    status: str
    action: Optional[str]
    delta: Decimal


def run_rebalance_simulation(
    vault: LeveragedVault,
    oracle: TimeSeriesPriceOracle,
    sender: Optional[str] = None,
    interest_rate_per_step: Decimal = ZERO,
) -> List[SimulationStep]:
    """
    Step the oracle through its remaining timestamps, rebalancing each time.

    Args:
        vault: Vault priced by oracle
        oracle: Time series the vault reads
        sender: Caller passed to rebalance() (the keeper, if one is configured)
        interest_rate_per_step: WAD-scaled debt interest accrued before each rebalance

    Returns:
        One SimulationStep per timestamp, taken after the rebalance
    """
    steps: List[SimulationStep] = []
    for timestamp in oracle.get_all_timestamps():
        if timestamp < oracle.current_time:
            continue
        oracle.advance_to(timestamp)
        if interest_rate_per_step:
            vault.debt_market.accrue_interest(interest_rate_per_step)

        plan = vault.rebalance(sender=sender)
        state = vault.get_state()
        steps.append(SimulationStep(
            timestamp=timestamp,
            price=state.collateral_price,
            collateral=state.collateral,
            debt=state.debt,
            leverage=state.leverage,
            total_assets=vault.total_assets(),
            status=state.status,
            action=plan.direction,
            delta=plan.delta,
        ))
        logger.debug("%s: leverage %s, action %s", timestamp, state.leverage / WAD, plan.direction)
    return steps


def summarize_simulation(steps: List[SimulationStep]) -> Dict[str, Any]:
    """
    Aggregate statistics over a simulation run.

    Leverage figures are plain multiples (2.0 = 2x). Steps without equity are
    excluded from the leverage statistics.
    """
    if not steps:
        raise ValueError("No simulation steps to summarize")
    leverage = np.array([float(s.leverage / WAD) for s in steps if s.leverage > 0])
    nav = np.array([float(s.total_assets) for s in steps])
    peak = np.maximum.accumulate(nav)
    drawdown = np.where(peak > 0, 1.0 - nav / np.where(peak > 0, peak, 1.0), 0.0)
    return {
        'steps': len(steps),
        'rebalances': sum(1 for s in steps if s.action is not None),
        'mean_leverage': float(leverage.mean()) if leverage.size else 0.0,
        'min_leverage': float(leverage.min()) if leverage.size else 0.0,
        'max_leverage': float(leverage.max()) if leverage.size else 0.0,
        'nav_start': steps[0].total_assets,
        'nav_end': steps[-1].total_assets,
        'nav_max_drawdown': float(drawdown.max()),
        'final_status': steps[-1].status,
    }
