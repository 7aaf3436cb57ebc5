"""
rebalancer.py - Decide how far to move exposure toward the target

    target_assets_value = target_leverage * equity_value / WAD
    tolerance           = target_assets_value * band_bps / BPS
    drift               = |target_assets_value - assets_value|

Nothing happens while drift <= tolerance or while there is no equity.
Above target the decrease is capped at the debt outstanding, since only
debt-funded exposure can be unwound by repaying it.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
import logging

from .core import (
    BPS, OP_DECREASE, OP_INCREASE, WAD, ZERO,
    mul_div_down,
)
from .state import StateAccountant, VaultState


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RebalancePlan:
    """
    Outcome of a rebalance decision.

    Attributes:
        direction: OP_INCREASE, OP_DECREASE or None for no action
        delta: Exposure change in debt base units
        target_assets_value: Exposure the vault aims for
        tolerance: Band within which no action is taken
        state: Position the decision was based on
    """
    direction: Optional[str]
    delta: Decimal
    target_assets_value: Decimal
    tolerance: Decimal
    state: VaultState

    @property
    def is_noop(self) -> bool:
        return self.direction is None or self.delta == 0


def calculate_rebalance(state: VaultState, target_leverage: Decimal, band_bps: Decimal) -> RebalancePlan:
    """
    Pure rebalance decision for a position.

    Raises:
        ValueError: If target_leverage < WAD or band_bps is outside [0, BPS)
    """
    if target_leverage < WAD:
        raise ValueError(f"target_leverage must be at least {WAD}, got {target_leverage}")
    if band_bps < 0 or band_bps >= BPS:
        raise ValueError(f"band_bps must be in [0, {BPS}), got {band_bps}")

    target = mul_div_down(target_leverage, state.equity_value, WAD)
    tolerance = mul_div_down(target, band_bps, BPS)

    if state.equity_value == 0:
        return RebalancePlan(None, ZERO, target, tolerance, state)

    if target > state.assets_value:
        drift = target - state.assets_value
        direction = OP_INCREASE
        delta = drift
    else:
        drift = state.assets_value - target
        direction = OP_DECREASE
        delta = min(drift, state.debt, state.assets_value)

    if drift <= tolerance or delta == 0:
        return RebalancePlan(None, ZERO, target, tolerance, state)
    return RebalancePlan(direction, delta, target, tolerance, state)


class Rebalancer:
    """Drives the executor from a fresh state read."""

    def __init__(self, accountant: StateAccountant, executor, target_leverage: Decimal, band_bps: Decimal):
        self.accountant = accountant
        self.executor = executor
        self.target_leverage = target_leverage
        self.band_bps = band_bps

    def plan(self) -> RebalancePlan:
        return calculate_rebalance(self.accountant.get_state(), self.target_leverage, self.band_bps)

    def rebalance_to_target(self) -> RebalancePlan:
        plan = self.plan()
        if plan.is_noop:
            logger.debug(
                "Rebalance skipped: exposure %s, target %s, tolerance %s",
                plan.state.assets_value, plan.target_assets_value, plan.tolerance,
            )
            return plan
        logger.debug(
            "Rebalance %s by %s: exposure %s, target %s",
            plan.direction, plan.delta, plan.state.assets_value, plan.target_assets_value,
        )
        if plan.direction == OP_INCREASE:
            self.executor.increase(plan.delta)
        else:
            self.executor.decrease(plan.delta)
        return plan
