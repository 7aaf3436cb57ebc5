"""
Atomicity Conformance Tests

INVARIANT: Vault operations are all-or-nothing.

    ∀ operation O on vault V:
        O succeeds ⟹ every balance change of O is applied
        O raises   ⟹ every balance in the ledger equals its value before O

This covers the markets, the flash lender, the swap venue and users alike:
they all keep their balances in the ledger that Ledger.atomic() restores.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from levvault import (
    InsolvencyError, InsufficientFunds, InsufficientLiquidity, InsufficientSharesError,
    InvalidPriceError, SlippageError, VaultError, LedgerError, MarketError,
    build_sandbox, wad,
)


def ledger_balances(ledger):
    return {
        (wallet, unit): qty
        for wallet, balances in ledger.balances.items()
        for unit, qty in balances.items()
        if qty != 0
    }


def levered(**kwargs):
    sandbox = build_sandbox(**kwargs)
    sandbox.fund("alice", "wstETH", wad(100))
    sandbox.fund("bob", "wstETH", wad(100))
    sandbox.vault.deposit(wad(1), receiver="alice")
    return sandbox


def assert_unchanged(sandbox, operation, expected_error):
    before = ledger_balances(sandbox.ledger)
    log_length = len(sandbox.ledger.transaction_log)
    shares = sandbox.vault.total_shares()

    with pytest.raises(expected_error):
        operation()

    assert ledger_balances(sandbox.ledger) == before
    assert len(sandbox.ledger.transaction_log) == log_length
    assert sandbox.vault.total_shares() == shares
    assert not sandbox.vault.executor.in_progress


class TestAtomicityProperties:
    """Property-based atomicity tests."""

    @given(st.integers(min_value=100, max_value=10_000))
    @settings(max_examples=25, deadline=None)
    def test_deposit_beyond_balance(self, whole_tokens):
        """
        PROPERTY: A deposit larger than the sender's balance changes nothing.
        """
        sandbox = levered()
        amount = wad(whole_tokens) + 1
        assert_unchanged(sandbox, lambda: sandbox.vault.deposit(amount, receiver="bob"), InsufficientFunds)

    @given(st.integers(min_value=1, max_value=10 ** 18))
    @settings(max_examples=25, deadline=None)
    def test_redeem_beyond_shares(self, excess):
        """
        PROPERTY: Redeeming more shares than held changes nothing.
        """
        sandbox = levered()
        shares = sandbox.vault.balance_of("alice") + excess
        assert_unchanged(
            sandbox,
            lambda: sandbox.vault.redeem(shares, receiver="alice", owner="alice"),
            InsufficientSharesError,
        )

    @given(
        st.sampled_from(["deposit", "redeem", "withdraw", "rebalance"]),
        st.sampled_from(["wstETH", "WETH"]),
    )
    @settings(max_examples=20, deadline=None)
    def test_zero_price(self, operation, symbol):
        """
        PROPERTY: No priced operation proceeds on a zero oracle price.
        """
        sandbox = levered()
        sandbox.set_price(symbol, 0)
        vault = sandbox.vault
        calls = {
            "deposit": lambda: vault.deposit(wad(1), receiver="bob"),
            "redeem": lambda: vault.redeem(wad("0.5"), receiver="alice", owner="alice"),
            "withdraw": lambda: vault.withdraw(wad("0.5"), receiver="alice", owner="alice"),
            "rebalance": lambda: vault.rebalance(),
        }
        assert_unchanged(sandbox, calls[operation], InvalidPriceError)

    @given(st.integers(min_value=101, max_value=1000))
    @settings(max_examples=20, deadline=None)
    def test_swap_slippage_aborts_deposit(self, swap_fee_bps):
        """
        PROPERTY: A swap worse than max_slippage_bps aborts the whole deposit,
        including the collateral already pulled from the sender.
        """
        sandbox = build_sandbox(swap_fee_bps=swap_fee_bps)
        sandbox.fund("alice", "wstETH", wad(10))
        assert_unchanged(sandbox, lambda: sandbox.vault.deposit(wad(1), receiver="alice"), SlippageError)

    @given(st.integers(min_value=2, max_value=50))
    @settings(max_examples=20, deadline=None)
    def test_flash_shortfall_aborts_deposit(self, whole_tokens):
        """
        PROPERTY: Too little flash liquidity aborts the deposit that needed it.
        """
        sandbox = build_sandbox(reserves=1)
        sandbox.fund("alice", "wstETH", wad(100))
        assert_unchanged(
            sandbox, lambda: sandbox.vault.deposit(wad(whole_tokens), receiver="alice"), InsufficientLiquidity,
        )

    @given(st.integers(min_value=1000, max_value=2000))
    @settings(max_examples=10, deadline=None)
    def test_underwater_exit(self, price):
        """
        PROPERTY: Exits from an underwater vault are refused without side effects.
        """
        sandbox = levered()
        sandbox.set_price("wstETH", price)
        assert_unchanged(
            sandbox,
            lambda: sandbox.vault.redeem(wad(1), receiver="alice", owner="alice"),
            InsolvencyError,
        )


class TestAtomicityErrors:
    """Every failure the vault surfaces is one of the package's errors."""

    @pytest.mark.parametrize("error", [
        InsufficientFunds, InsufficientLiquidity, InsufficientSharesError,
        InvalidPriceError, SlippageError, InsolvencyError,
    ])
    def test_error_hierarchy(self, error):
        assert issubclass(error, (VaultError, LedgerError, MarketError))
