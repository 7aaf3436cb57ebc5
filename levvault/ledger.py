"""
ledger.py - Stateful Double-Entry Token Ledger

The Ledger is the custody layer shared by the vault and the in-memory markets.
Every token, supply share, debt token and vault share is a unit; every
participant (vault, markets, users) is a wallet.

Key responsibilities:
    - Implements the TokenLedger protocol consumed by the vault
    - Applies moves atomically (all moves of a transaction succeed or none do)
    - Issues and redeems units through SYSTEM_WALLET
    - Snapshots and restores full state so that a whole vault operation can
      be rolled back (atomic())
    - Always validates and always logs
"""

from __future__ import annotations
from collections import defaultdict
from contextlib import contextmanager
from decimal import Decimal
from typing import Dict, Iterator, List, Sequence, Set, Tuple, Any
import logging

from .core import (
    # Types
    Move, Transaction, Unit,
    Positions, BalanceMap,
    # Constants
    SYSTEM_WALLET, ZERO,
    # Exceptions
    LedgerError, InsufficientFunds, UnitNotRegistered, WalletNotRegistered,
    # Helper functions
    to_amount,
)


logger = logging.getLogger(__name__)


class Ledger:
    """
    Double-entry token ledger with full validation and audit trail.

    Implements the TokenLedger protocol.

    Design Principles:
        - Always validates: every transaction is checked against registration
          and minimum balances before anything is applied.
        - Always logs: every applied transaction is recorded in the
          transaction log.

    Thread Safety:
        Not thread-safe. Each thread should maintain its own Ledger instance.

    Example:
        ledger = Ledger("main")
        ledger.register_unit(token("WETH", "Wrapped Ether"))
        ledger.register_wallet("alice")
        ledger.issue("WETH", "alice", Decimal("1000000000000000000"))
        ledger.register_wallet("bob")
        ledger.transfer("WETH", "alice", "bob", Decimal("250000000000000000"))
    """

    def __init__(self, name: str, verbose: bool = False, test_mode: bool = False):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            verbose: Log applied transactions at INFO instead of DEBUG
            test_mode: Allow set_balance() calls (default: False)
        """
        self.name = name
        self.balances: Dict[str, Dict[str, Decimal]] = {}
        self.units: Dict[str, Unit] = {}
        self.registered_wallets: Set[str] = set()
        self.transaction_log: List[Transaction] = []
        self.verbose = verbose
        self._test_mode = test_mode
        self._next_sequence: int = 0
        # Inverted index unit -> {wallet -> quantity} for position lookups
        self._positions_by_unit: Dict[str, Dict[str, Decimal]] = defaultdict(dict)

        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = defaultdict(lambda: ZERO)

    # ========================================================================
    # READ-ONLY METHODS
    # ========================================================================

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """
        Get the balance of a unit in a wallet.

        Raises:
            WalletNotRegistered: If wallet is not registered
            UnitNotRegistered: If unit is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return self.balances[wallet_id].get(unit_symbol, ZERO)

    def get_positions(self, unit_symbol: str) -> Positions:
        """All non-zero holdings of a unit, system wallet excluded."""
        return {
            wallet: qty
            for wallet, qty in self._positions_by_unit.get(unit_symbol, {}).items()
            if wallet != SYSTEM_WALLET
        }

    def list_wallets(self) -> Set[str]:
        """List all registered wallet IDs."""
        return self.registered_wallets.copy()

    def list_units(self) -> List[str]:
        """List all registered unit symbols."""
        return sorted(self.units.keys())

    def get_unit(self, symbol: str) -> Unit:
        """Return the Unit object for a given symbol."""
        if symbol not in self.units:
            raise UnitNotRegistered(f"Unit {symbol} not registered")
        return self.units[symbol]

    def get_wallet_balances(self, wallet_id: str) -> BalanceMap:
        """Get all non-zero balances for a wallet."""
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        return {unit: qty for unit, qty in self.balances[wallet_id].items() if qty != 0}

    def total_supply(self, unit_symbol: str) -> Decimal:
        """
        Outstanding supply of a unit: the sum of all balances outside
        SYSTEM_WALLET.

        Issued units are mirrored by a negative SYSTEM_WALLET balance, so this
        equals minus the system balance.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return sum(
            (self.balances[w].get(unit_symbol, ZERO) for w in sorted(self.registered_wallets) if w != SYSTEM_WALLET),
            ZERO,
        )

    def verify_double_entry(self) -> Dict[str, Any]:
        """
        Verify that every unit sums to zero across all wallets.

        Returns:
            Dict with 'valid' (bool) and 'discrepancies' (unit -> net sum).
        """
        discrepancies = {}
        for unit_symbol in self.units:
            net = sum((self.balances[w].get(unit_symbol, ZERO) for w in self.registered_wallets), ZERO)
            if net != 0:
                discrepancies[unit_symbol] = net
        return {'valid': not discrepancies, 'discrepancies': discrepancies}

    def is_registered(self, wallet_id: str) -> bool:
        """Check if a wallet is registered."""
        return wallet_id in self.registered_wallets

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Register a new wallet.

        Raises:
            ValueError: If wallet is already registered or the id is empty
        """
        if not wallet_id or not wallet_id.strip():
            raise ValueError("Wallet id cannot be empty")
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(lambda: ZERO)
        return wallet_id

    def ensure_wallet(self, wallet_id: str) -> str:
        """Register a wallet unless it already exists."""
        if wallet_id not in self.registered_wallets:
            self.register_wallet(wallet_id)
        return wallet_id

    def register_unit(self, unit: Unit) -> None:
        """
        Register a new unit.

        Raises:
            ValueError: If unit symbol is already registered
        """
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        self._log(f"Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}, {unit.decimals} decimals]")

    def set_balance(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        """
        Set a wallet's balance directly.

        WARNING: Bypasses double-entry accounting; only available in test mode.

        Raises:
            LedgerError: If called when test_mode is False
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() is disabled in production mode. "
                "Use issue() or transfer() to modify balances. "
                "Set test_mode=True when creating Ledger for testing."
            )
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        if not isinstance(quantity, Decimal):
            quantity = Decimal(str(quantity))
        self.balances[wallet_id][unit_symbol] = quantity
        self._update_position_index(wallet_id, unit_symbol, quantity)

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def execute(self, moves: Sequence[Move], memo: str = "") -> Transaction:
        """
        Apply a batch of moves atomically.

        All moves are validated against registration and minimum balances
        (netted per wallet and unit) before any is applied.

        Returns:
            The Transaction record appended to the log.

        Raises:
            UnitNotRegistered / WalletNotRegistered: On unknown unit or wallet
            InsufficientFunds: If a wallet would fall below the unit minimum
            ValueError: If moves is empty
        """
        if not moves:
            raise ValueError("execute() requires at least one move")

        self._validate_moves(moves)

        sequence = self._next_sequence
        self._next_sequence += 1
        tx = Transaction(
            moves=tuple(moves),
            memo=memo or moves[0].contract_id,
            sequence_number=sequence,
            exec_id=f"exec:{self.name}:{sequence:012d}",
        )
        self._execute_moves(tx.moves)
        self.transaction_log.append(tx)
        self._log(f"APPLIED {tx.exec_id} {tx.memo}: " + ", ".join(repr(m) for m in tx.moves))
        return tx

    def transfer(self, unit_symbol: str, source: str, dest: str, quantity: Decimal, memo: str = "transfer") -> None:
        """
        Move quantity of a unit from source to dest.

        A zero quantity is a no-op.
        """
        quantity = to_amount(quantity, "transfer quantity")
        if quantity == 0:
            return
        self.execute([Move(quantity, unit_symbol, source, dest, memo)], memo)

    def issue(self, unit_symbol: str, dest: str, quantity: Decimal, memo: str = "issue") -> None:
        """Create quantity of a unit in dest (from SYSTEM_WALLET)."""
        self.transfer(unit_symbol, SYSTEM_WALLET, dest, quantity, memo)

    def redeem(self, unit_symbol: str, source: str, quantity: Decimal, memo: str = "redeem") -> None:
        """Destroy quantity of a unit held by source (back to SYSTEM_WALLET)."""
        self.transfer(unit_symbol, source, SYSTEM_WALLET, quantity, memo)

    def _validate_moves(self, moves: Sequence[Move]) -> None:
        """
        Validate moves against registration and balance constraints.

        Net changes are computed per (wallet, unit) so that a batch may route
        value through a wallet that starts empty.
        """
        net: Dict[Tuple[str, str], Decimal] = {}
        for move in moves:
            if move.unit_symbol not in self.units:
                raise UnitNotRegistered(f"Unit {move.unit_symbol} not registered")
            if move.source not in self.registered_wallets:
                raise WalletNotRegistered(f"Wallet {move.source} not registered")
            if move.dest not in self.registered_wallets:
                raise WalletNotRegistered(f"Wallet {move.dest} not registered")
            key_src = (move.source, move.unit_symbol)
            key_dst = (move.dest, move.unit_symbol)
            net[key_src] = net.get(key_src, ZERO) - move.quantity
            net[key_dst] = net.get(key_dst, ZERO) + move.quantity

        # SYSTEM_WALLET is exempt - it mirrors every issued unit.
        for (wallet, unit_sym), delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue
            proposed = self.balances[wallet][unit_sym] + delta
            minimum = self.units[unit_sym].min_balance
            if proposed < minimum:
                self._log(f"REJECTED: {wallet} {unit_sym}: {proposed} < min {minimum}")
                raise InsufficientFunds(
                    f"{wallet} holds {self.balances[wallet][unit_sym]} {unit_sym}, "
                    f"needs {-delta} (min balance {minimum})"
                )

    def _update_position_index(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        """Keep the inverted index in sync; zero balances are dropped."""
        if quantity != 0:
            self._positions_by_unit[unit_symbol][wallet_id] = quantity
        else:
            self._positions_by_unit[unit_symbol].pop(wallet_id, None)

    def _execute_moves(self, moves) -> None:
        """Apply moves to wallet balances and the position index."""
        for move in moves:
            new_src_balance = self.balances[move.source][move.unit_symbol] - move.quantity
            self.balances[move.source][move.unit_symbol] = new_src_balance
            self._update_position_index(move.source, move.unit_symbol, new_src_balance)
            new_dst_balance = self.balances[move.dest][move.unit_symbol] + move.quantity
            self.balances[move.dest][move.unit_symbol] = new_dst_balance
            self._update_position_index(move.dest, move.unit_symbol, new_dst_balance)

    def _log(self, message: str) -> None:
        if self.verbose:
            logger.info("[%s] %s", self.name, message)
        else:
            logger.debug("[%s] %s", self.name, message)

    # ========================================================================
    # SNAPSHOTS
    # ========================================================================

    def _snapshot(self) -> Dict[str, Any]:
        """Capture everything atomic() needs to restore."""
        return {
            'balances': {w: dict(b) for w, b in self.balances.items()},
            'units': dict(self.units),
            'registered_wallets': self.registered_wallets.copy(),
            'log_length': len(self.transaction_log),
            'next_sequence': self._next_sequence,
        }

    def _restore(self, snapshot: Dict[str, Any]) -> None:
        """Restore a snapshot taken by _snapshot()."""
        self.balances = {
            w: defaultdict(lambda: ZERO, b) for w, b in snapshot['balances'].items()
        }
        self.units = snapshot['units']
        self.registered_wallets = snapshot['registered_wallets']
        del self.transaction_log[snapshot['log_length']:]
        self._next_sequence = snapshot['next_sequence']
        self._positions_by_unit = defaultdict(dict)
        for wallet, bals in self.balances.items():
            for unit_symbol, qty in bals.items():
                if qty != 0:
                    self._positions_by_unit[unit_symbol][wallet] = qty

    @contextmanager
    def atomic(self) -> Iterator["Ledger"]:
        """
        Run a block as one unit of work.

        If the block raises, every balance, unit registration, wallet registration and
        log entry made inside it is discarded and the exception propagates.
        Blocks nest: an inner failure restores the inner snapshot only.

        Example:
            with ledger.atomic():
                ledger.transfer("WETH", "alice", "bob", amount)
                do_something_that_may_raise()
        """
        snapshot = self._snapshot()
        try:
            yield self
        except Exception:
            self._restore(snapshot)
            self._log(f"ROLLED BACK to sequence {snapshot['next_sequence']}")
            raise

    def clone(self) -> Ledger:
        """
        Create an independent deep copy of this ledger.

        Modifications to the clone never affect the original and vice versa.
        """
        cloned = Ledger(self.name, verbose=self.verbose, test_mode=self._test_mode)
        cloned._restore(self._snapshot())
        cloned.transaction_log = list(self.transaction_log)
        return cloned
