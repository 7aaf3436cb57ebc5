"""
test_state_and_rebalance.py - Unit tests for position valuation and rebalance decisions

Tests:
- calculate_state for active, underwater and empty positions
- StateAccountant reads live markets, skips pricing when empty
- calculate_rebalance direction, magnitude and tolerance band
"""

import pytest
from decimal import Decimal

from levvault import (
    EMPTY_STATE, OP_DECREASE, OP_INCREASE, WAD,
    POSITION_STATUS_ACTIVE, POSITION_STATUS_EMPTY, POSITION_STATUS_UNDERWATER,
    InvalidPriceError,
    calculate_rebalance, calculate_state, wad,
)


class TestCalculateState:

    def test_two_x_position(self):
        state = calculate_state(wad(2), wad(2), wad(2), WAD)
        assert state.assets_value == wad(4)
        assert state.equity_value == wad(2)
        assert state.leverage == wad(2)
        assert state.status == POSITION_STATUS_ACTIVE

    def test_unlevered(self):
        state = calculate_state(wad(1), Decimal(0), wad(2), WAD)
        assert state.leverage == WAD

    def test_underwater_floors_equity(self):
        state = calculate_state(wad(1), wad(3), wad(2), WAD)
        assert state.assets_value == wad(2)
        assert state.equity_value == 0
        assert state.leverage == 0
        assert state.is_underwater
        assert state.status == POSITION_STATUS_UNDERWATER

    def test_exactly_at_debt_is_underwater(self):
        state = calculate_state(wad(1), wad(2), wad(2), WAD)
        assert state.is_underwater

    def test_empty_is_distinct_from_underwater(self):
        assert EMPTY_STATE.status == POSITION_STATUS_EMPTY
        assert EMPTY_STATE.is_empty
        assert not EMPTY_STATE.is_underwater
        assert EMPTY_STATE.leverage == 0

    def test_six_decimal_collateral(self):
        # 1000 USDC-like units worth 0.0005 debt tokens each
        state = calculate_state(Decimal(1000) * 10 ** 6, Decimal(0), wad("0.0005"), Decimal(10) ** 6)
        assert state.assets_value == wad("0.5")

    def test_negative_inputs(self):
        with pytest.raises(ValueError):
            calculate_state(Decimal(-1), Decimal(0), wad(1), WAD)


class TestStateAccountant:

    def test_empty_vault_skips_oracle(self, sandbox):
        sandbox.set_price("wstETH", 0)
        assert sandbox.vault.get_state() == EMPTY_STATE

    def test_live_position(self, levered_sandbox):
        state = levered_sandbox.vault.get_state()
        assert state.collateral == wad(2)
        assert state.debt == wad(2)
        assert state.collateral_price == wad(2)
        assert state.leverage == wad(2)

    def test_reads_markets_not_cache(self, levered_sandbox):
        levered_sandbox.set_price("wstETH", 3600)
        state = levered_sandbox.vault.get_state()
        assert state.collateral_price == wad("1.8")
        assert state.equity_value == wad("1.6")

    def test_zero_price_with_position(self, levered_sandbox):
        levered_sandbox.set_price("wstETH", 0)
        with pytest.raises(InvalidPriceError):
            levered_sandbox.vault.get_state()


class TestCalculateRebalance:

    def test_increase_from_unlevered(self):
        state = calculate_state(wad(1), Decimal(0), wad(2), WAD)
        plan = calculate_rebalance(state, wad(2), Decimal(100))
        assert plan.direction == OP_INCREASE
        assert plan.delta == wad(2)
        assert plan.target_assets_value == wad(4)
        assert plan.tolerance == wad("0.04")

    def test_decrease_after_price_drop(self):
        state = calculate_state(wad(2), wad(2), wad("1.8"), WAD)
        plan = calculate_rebalance(state, wad(2), Decimal(100))
        assert plan.direction == OP_DECREASE
        assert plan.delta == wad("0.4")

    def test_within_band_is_noop(self):
        state = calculate_state(wad(2), wad(2), wad("2.02"), WAD)
        plan = calculate_rebalance(state, wad(2), Decimal(100))
        assert plan.is_noop
        assert plan.direction is None

    def test_zero_band_rebalances_any_drift(self):
        state = calculate_state(wad(2), wad(2), wad("2.02"), WAD)
        plan = calculate_rebalance(state, wad(2), Decimal(0))
        assert plan.direction == OP_INCREASE
        assert plan.delta == wad("0.04")

    def test_no_equity_is_noop(self):
        state = calculate_state(wad(1), wad(3), wad(2), WAD)
        assert calculate_rebalance(state, wad(2), Decimal(100)).is_noop
        assert calculate_rebalance(EMPTY_STATE, wad(2), Decimal(100)).is_noop

    def test_on_target_is_noop(self):
        state = calculate_state(wad(2), wad(2), wad(2), WAD)
        assert calculate_rebalance(state, wad(2), Decimal(0)).is_noop

    def test_one_x_target_unwinds_all_debt(self):
        state = calculate_state(wad(2), wad(2), wad(2), WAD)
        plan = calculate_rebalance(state, WAD, Decimal(0))
        assert plan.direction == OP_DECREASE
        assert plan.delta == wad(2)

    def test_invalid_arguments(self):
        state = calculate_state(wad(1), Decimal(0), wad(2), WAD)
        with pytest.raises(ValueError):
            calculate_rebalance(state, wad("0.5"), Decimal(100))
        with pytest.raises(ValueError):
            calculate_rebalance(state, wad(2), Decimal(10000))
