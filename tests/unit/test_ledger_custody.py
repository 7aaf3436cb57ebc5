"""
test_ledger_custody.py - Unit tests for the token ledger

Tests:
- Registration of wallets and units
- Issue / transfer / redeem through SYSTEM_WALLET
- Balance validation (netted per batch)
- total_supply and double-entry verification
- atomic() rollback, including nesting
- clone() independence
- set_balance() test-mode guard
"""

import pytest
from decimal import Decimal

from levvault import (
    Ledger, Move, SYSTEM_WALLET,
    InsufficientFunds, LedgerError, UnitNotRegistered, WalletNotRegistered,
    token, wad,
)


@pytest.fixture
def ledger():
    ledger = Ledger("test")
    ledger.register_unit(token("WETH", "Wrapped Ether"))
    ledger.register_wallet("alice")
    ledger.register_wallet("bob")
    ledger.issue("WETH", "alice", wad(10))
    return ledger


class TestRegistration:

    def test_duplicate_wallet(self, ledger):
        with pytest.raises(ValueError, match="already registered"):
            ledger.register_wallet("alice")

    def test_ensure_wallet_is_idempotent(self, ledger):
        assert ledger.ensure_wallet("alice") == "alice"
        assert ledger.ensure_wallet("carol") == "carol"
        assert ledger.is_registered("carol")

    def test_duplicate_unit(self, ledger):
        with pytest.raises(ValueError, match="already registered"):
            ledger.register_unit(token("WETH", "Again"))

    def test_unknown_unit(self, ledger):
        with pytest.raises(UnitNotRegistered):
            ledger.get_balance("alice", "DAI")

    def test_unknown_wallet(self, ledger):
        with pytest.raises(WalletNotRegistered):
            ledger.get_balance("mallory", "WETH")

    def test_listing(self, ledger):
        assert {"alice", "bob"} <= ledger.list_wallets()
        assert ledger.list_units() == ["WETH"]
        assert ledger.get_wallet_balances("alice") == {"WETH": wad(10)}
        assert ledger.get_wallet_balances("bob") == {}
        with pytest.raises(WalletNotRegistered):
            ledger.get_wallet_balances("mallory")


class TestTransfers:

    def test_issue_and_transfer(self, ledger):
        ledger.transfer("WETH", "alice", "bob", wad(3))
        assert ledger.get_balance("alice", "WETH") == wad(7)
        assert ledger.get_balance("bob", "WETH") == wad(3)

    def test_zero_transfer_is_noop(self, ledger):
        log_length = len(ledger.transaction_log)
        ledger.transfer("WETH", "alice", "bob", 0)
        assert len(ledger.transaction_log) == log_length

    def test_overdraw_rejected(self, ledger):
        with pytest.raises(InsufficientFunds):
            ledger.transfer("WETH", "bob", "alice", 1)

    def test_batch_validated_on_net_changes(self, ledger):
        ledger.register_wallet("carol")
        # carol starts empty but passes value straight through
        ledger.execute([
            Move(wad(1), "WETH", "alice", "carol", "hop"),
            Move(wad(1), "WETH", "carol", "bob", "hop"),
        ])
        assert ledger.get_balance("bob", "WETH") == wad(1)
        assert ledger.get_balance("carol", "WETH") == 0

    def test_failed_batch_applies_nothing(self, ledger):
        with pytest.raises(InsufficientFunds):
            ledger.execute([
                Move(wad(1), "WETH", "alice", "bob", "ok"),
                Move(wad(5), "WETH", "bob", "alice", "too_much"),
            ])
        assert ledger.get_balance("alice", "WETH") == wad(10)
        assert ledger.get_balance("bob", "WETH") == 0

    def test_empty_batch(self, ledger):
        with pytest.raises(ValueError):
            ledger.execute([])

    def test_redeem_reduces_supply(self, ledger):
        ledger.redeem("WETH", "alice", wad(4))
        assert ledger.total_supply("WETH") == wad(6)

    def test_transaction_sequence_numbers(self, ledger):
        first = ledger.execute([Move(Decimal(1), "WETH", "alice", "bob", "a")])
        second = ledger.execute([Move(Decimal(1), "WETH", "alice", "bob", "b")])
        assert second.sequence_number == first.sequence_number + 1
        assert first.exec_id != second.exec_id


class TestSupplyAndDoubleEntry:

    def test_total_supply_excludes_system(self, ledger):
        ledger.transfer("WETH", "alice", "bob", wad(2))
        assert ledger.total_supply("WETH") == wad(10)
        assert ledger.get_balance(SYSTEM_WALLET, "WETH") == -wad(10)

    def test_positions_exclude_system(self, ledger):
        ledger.transfer("WETH", "alice", "bob", wad(2))
        assert ledger.get_positions("WETH") == {"alice": wad(8), "bob": wad(2)}

    def test_double_entry_holds(self, ledger):
        ledger.transfer("WETH", "alice", "bob", wad(2))
        assert ledger.verify_double_entry()['valid']


class TestAtomic:

    def test_rollback_on_exception(self, ledger):
        with pytest.raises(RuntimeError):
            with ledger.atomic():
                ledger.transfer("WETH", "alice", "bob", wad(4))
                ledger.register_wallet("carol")
                raise RuntimeError("boom")
        assert ledger.get_balance("alice", "WETH") == wad(10)
        assert ledger.get_balance("bob", "WETH") == 0
        assert not ledger.is_registered("carol")
        assert ledger.get_positions("WETH") == {"alice": wad(10)}

    def test_commit_without_exception(self, ledger):
        with ledger.atomic():
            ledger.transfer("WETH", "alice", "bob", wad(4))
        assert ledger.get_balance("bob", "WETH") == wad(4)

    def test_nested_inner_failure_keeps_outer_work(self, ledger):
        with ledger.atomic():
            ledger.transfer("WETH", "alice", "bob", wad(1))
            with pytest.raises(InsufficientFunds):
                with ledger.atomic():
                    ledger.transfer("WETH", "alice", "bob", wad(2))
                    ledger.transfer("WETH", "bob", "alice", wad(50))
        assert ledger.get_balance("bob", "WETH") == wad(1)

    def test_log_truncated_on_rollback(self, ledger):
        log_length = len(ledger.transaction_log)
        with pytest.raises(RuntimeError):
            with ledger.atomic():
                ledger.transfer("WETH", "alice", "bob", wad(1))
                raise RuntimeError
        assert len(ledger.transaction_log) == log_length


class TestCloneAndTestMode:

    def test_clone_is_independent(self, ledger):
        cloned = ledger.clone()
        cloned.transfer("WETH", "alice", "bob", wad(1))
        assert ledger.get_balance("bob", "WETH") == 0
        assert cloned.get_balance("bob", "WETH") == wad(1)

    def test_set_balance_requires_test_mode(self, ledger):
        with pytest.raises(LedgerError, match="test_mode"):
            ledger.set_balance("alice", "WETH", wad(1))

    def test_set_balance_in_test_mode(self):
        ledger = Ledger("t", test_mode=True)
        ledger.register_unit(token("WETH", "Wrapped Ether"))
        ledger.register_wallet("alice")
        ledger.set_balance("alice", "WETH", wad(5))
        assert ledger.get_balance("alice", "WETH") == wad(5)
