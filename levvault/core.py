"""
Core types and pure functions for the leveraged vault.

This module provides the foundational pieces every other module builds on:
1. Decimal context and fixed-point helpers (WAD / basis-point math)
2. Immutable data structures: Unit, Move, Transaction
3. Protocols: the capabilities the vault consumes (ledger, markets,
   flash liquidity, swap venue, share ledger)
4. Exceptions: ledger, market and vault error hierarchies
5. Unit factories

All amounts are integral base units held as Decimal. Prices and leverage are
WAD-scaled (1e18) integral Decimals. Rounding is always explicit.
"""

from __future__ import annotations
from contextlib import AbstractContextManager
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_EVEN, ROUND_UP, getcontext, localcontext
from typing import Any, Dict, Protocol, Tuple, runtime_checkable


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Balances are Decimal. The global context is configured once at import.
#
# PRECONDITION: No other code should modify the global Decimal context.
# Fixed-point helpers below use a wider local context for intermediate
# products (1e24 amounts * 1e18 prices).
#
_VAULT_DECIMAL_CONTEXT = getcontext()
_VAULT_DECIMAL_CONTEXT.prec = 50
_VAULT_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN

FIXED_POINT_PRECISION = 120


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance and redemption of units.
# Exempt from balance validation.
SYSTEM_WALLET = "system"

ZERO = Decimal("0")
WAD = Decimal(10) ** 18
BPS = Decimal("10000")

# Rebalance is skipped while |target - exposure| stays within this band.
DEFAULT_REBALANCE_BAND_BPS = Decimal("100")

# Allowed shortfall of a swap against the oracle-equivalent output.
DEFAULT_MAX_SLIPPAGE_BPS = Decimal("100")

DEFAULT_PRICING_DENOMINATION = "USD"

UNIT_TYPE_TOKEN = "TOKEN"
UNIT_TYPE_VAULT_SHARE = "VAULT_SHARE"
UNIT_TYPE_SUPPLY_SHARE = "SUPPLY_SHARE"
UNIT_TYPE_DEBT = "DEBT"

POSITION_STATUS_EMPTY = "EMPTY"
POSITION_STATUS_ACTIVE = "ACTIVE"
POSITION_STATUS_UNDERWATER = "UNDERWATER"

OP_INCREASE = "INCREASE"
OP_DECREASE = "DECREASE"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for one unit.
Positions = Dict[str, Decimal]

# Mapping from unit symbol to quantity held in a single wallet.
BalanceMap = Dict[str, Decimal]


# ============================================================================
# FIXED-POINT HELPERS
# ============================================================================

def to_amount(value: Any, name: str = "amount") -> Decimal:
    """
    Coerce a value to a non-negative integral Decimal amount.

    Accepts int, str and Decimal. Floats are converted through str() the same
    way the rest of the package does.

    Raises:
        ValueError: If the value is negative, fractional or not finite.
    """
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    if not amount.is_finite():
        raise ValueError(f"{name} must be finite, got {value}")
    if amount < 0:
        raise ValueError(f"{name} cannot be negative, got {value}")
    if amount != amount.to_integral_value():
        raise ValueError(f"{name} must be a whole number of base units, got {value}")
    return amount.quantize(Decimal(1))


def mul_div(x: Decimal, y: Decimal, denominator: Decimal, rounding: str = ROUND_DOWN) -> Decimal:
    """
    Compute x * y / denominator rounded to an integral value.

    Intermediate precision is wide enough that the rounding direction is
    always exact for amounts and prices within uint256 range.

    Raises:
        ZeroDivisionError: If denominator is zero.
    """
    if denominator == 0:
        raise ZeroDivisionError("mul_div denominator is zero")
    with localcontext() as ctx:
        ctx.prec = FIXED_POINT_PRECISION
        return (Decimal(x) * Decimal(y) / Decimal(denominator)).to_integral_value(rounding=rounding)


def mul_div_down(x: Decimal, y: Decimal, denominator: Decimal) -> Decimal:
    """x * y / denominator, rounded toward zero."""
    return mul_div(x, y, denominator, ROUND_DOWN)


def mul_div_up(x: Decimal, y: Decimal, denominator: Decimal) -> Decimal:
    """x * y / denominator, rounded away from zero."""
    return mul_div(x, y, denominator, ROUND_UP)


def wad(multiple: Any) -> Decimal:
    """Scale a human multiple (e.g. 2 or "1.5") to a WAD fixed-point value."""
    value = multiple if isinstance(multiple, Decimal) else Decimal(str(multiple))
    return (value * WAD).to_integral_value(rounding=ROUND_DOWN)


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class InsufficientFunds(LedgerError):
    """Raised when a move would take a wallet balance below the unit's minimum."""
    pass


class UnitNotRegistered(LedgerError):
    """Raised when operating on a unit that has not been registered."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when operating on a wallet that has not been registered."""
    pass


class MarketError(Exception):
    """Base exception for errors raised by market adapters."""
    pass


class InsufficientLiquidity(MarketError):
    """Raised when a market cannot supply the requested amount."""
    pass


class BorrowLimitExceeded(MarketError):
    """Raised when a borrow or collateral withdrawal would breach the LTV limit."""
    pass


class FlashLoanNotRepaid(MarketError):
    """Raised when a flash borrower returns without repaying amount plus fee."""
    pass


class VaultError(Exception):
    """Base exception for all vault errors."""
    pass


class ConfigurationError(VaultError):
    """Invalid construction parameters: missing adapters, leverage outside [1x, max]."""
    pass


class InvalidPriceError(VaultError):
    """An oracle quote was zero or missing; no safe conversion is possible."""
    pass


class InsolvencyError(VaultError):
    """The position is underwater (assets value <= debt)."""
    pass


class SlippageError(VaultError):
    """A swap returned less than the computed minimum output."""
    pass


class UnauthorizedError(VaultError):
    """A privileged operation was invoked by a caller without permission."""
    pass


class UnauthorizedCallbackError(UnauthorizedError):
    """The liquidity callback came from the wrong caller or outside an operation."""
    pass


class ReentrancyError(VaultError):
    """A mutating entry point was invoked while another one was running."""
    pass


class ZeroAmountError(VaultError):
    """A zero amount reached an operation that requires a positive one."""
    pass


class InsufficientSharesError(VaultError):
    """An owner tried to redeem more shares than they hold."""
    pass


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of an asset tracked by the ledger.

    Attributes:
        symbol: Short identifier (e.g., "WETH", "lvWSTETH").
        name: Human-readable name.
        unit_type: Category (TOKEN, VAULT_SHARE, SUPPLY_SHARE, DEBT).
        decimals: Native precision; one whole token is 10**decimals base units.
        min_balance: Minimum allowed balance in any non-system wallet.
    """
    symbol: str
    name: str
    unit_type: str
    decimals: int = 18
    min_balance: Decimal = ZERO

    def __post_init__(self):
        if not self.symbol or not self.symbol.strip():
            raise ValueError("Unit symbol cannot be empty")
        if self.decimals < 0:
            raise ValueError(f"Unit decimals cannot be negative, got {self.decimals}")

    @property
    def one(self) -> Decimal:
        """Base units in one whole token."""
        return Decimal(10) ** self.decimals


@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of a unit between two wallets.

    Attributes:
        quantity: Amount in base units (positive, integral).
        unit_symbol: Symbol of the unit being moved.
        source: Wallet debited.
        dest: Wallet credited.
        contract_id: Identifier of the operation that generated the move.
    """
    quantity: Decimal
    unit_symbol: str
    source: str
    dest: str
    contract_id: str

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.unit_symbol or not self.unit_symbol.strip():
            raise ValueError("Move unit_symbol cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be Decimal, got {type(self.quantity)}")
        if not self.quantity.is_finite():
            raise ValueError(f"Move quantity must be finite, got {self.quantity}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An applied, immutable record of balance changes.

    Attributes:
        moves: Transfers applied together.
        memo: Free-form description of the operation.
        sequence_number: Monotonic within the ledger.
        exec_id: Unique execution identifier.
    """
    moves: Tuple[Move, ...]
    memo: str
    sequence_number: int
    exec_id: str

    def __post_init__(self):
        if not self.moves:
            raise ValueError("Transaction must have moves")

    def __repr__(self) -> str:
        return f"Transaction({self.exec_id}, {len(self.moves)} moves, memo={self.memo!r})"


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """Read-only access to token balances."""

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """Balance of a unit in a wallet."""
        ...

    def total_supply(self, unit_symbol: str) -> Decimal:
        """Outstanding supply of a unit (excludes the system wallet)."""
        ...

    def get_unit(self, symbol: str) -> Unit:
        """Return the Unit for a symbol."""
        ...


@runtime_checkable
class TokenLedger(LedgerView, Protocol):
    """
    Token custody consumed by the vault and the in-memory markets.

    atomic() is the transaction boundary: every balance change made inside the
    block is undone if the block raises.
    """

    def transfer(self, unit_symbol: str, source: str, dest: str, quantity: Decimal, memo: str = "transfer") -> None:
        ...

    def atomic(self) -> AbstractContextManager:
        ...


@runtime_checkable
class CollateralMarket(Protocol):
    """Market that custodies the collateral asset for the vault."""

    asset: str

    def deposit(self, amount: Decimal, owner: str) -> Decimal:
        """Pull amount of the asset from owner; return supply shares minted."""
        ...

    def withdraw(self, amount: Decimal, receiver: str, owner: str) -> Decimal:
        """Send amount of the asset to receiver out of owner's supply; return shares burned."""
        ...

    def balance_of(self, owner: str) -> Decimal:
        """Supply shares held by owner."""
        ...

    def convert_to_assets(self, shares: Decimal) -> Decimal:
        """Asset amount represented by a number of supply shares."""
        ...


@runtime_checkable
class DebtMarket(Protocol):
    """Market the vault borrows the debt asset from."""

    asset: str

    def debt_of(self, owner: str) -> Decimal:
        ...

    def borrow(self, amount: Decimal, receiver: str) -> Decimal:
        """Borrow amount against receiver's collateral and send it to receiver."""
        ...

    def repay(self, amount: Decimal, payer: str) -> Decimal:
        """Repay up to amount of payer's debt; return the amount actually repaid."""
        ...

    def max_borrow_ltv(self, collateral_asset: str) -> Decimal:
        """Maximum loan-to-value for the collateral, WAD-scaled."""
        ...


@runtime_checkable
class FlashBorrower(Protocol):
    """Receiver of a flash-liquidity callback."""

    account: str

    def on_liquidity_received(self, sender: Any, amount: Decimal, fee: Decimal, data: Any) -> None:
        ...


@runtime_checkable
class FlashLiquidity(Protocol):
    """Temporary liquidity that must be returned within the same call."""

    asset: str
    account: str

    def flash_fee(self, amount: Decimal) -> Decimal:
        ...

    def flash_loan(self, borrower: FlashBorrower, amount: Decimal, data: Any) -> None:
        ...


@runtime_checkable
class SwapVenue(Protocol):
    """Exchange of an exact input amount for at least a minimum output."""

    def quote_exact_input(self, token_in: str, token_out: str, amount_in: Decimal) -> Decimal:
        ...

    def swap_exact_input(
        self,
        token_in: str,
        token_out: str,
        amount_in: Decimal,
        min_amount_out: Decimal,
        recipient: str,
        payer: str,
    ) -> Decimal:
        ...


@runtime_checkable
class ShareLedger(Protocol):
    """Proportional-ownership bookkeeping for vault shares."""

    symbol: str

    def total_shares(self) -> Decimal:
        ...

    def shares_of(self, owner: str) -> Decimal:
        ...

    def mint(self, receiver: str, shares: Decimal) -> None:
        ...

    def burn(self, owner: str, shares: Decimal) -> None:
        ...


# ============================================================================
# UNIT FACTORIES
# ============================================================================

def token(symbol: str, name: str, decimals: int = 18) -> Unit:
    """
    Create a fungible token unit.

    Args:
        symbol: Token symbol (e.g., "WETH").
        name: Full name (e.g., "Wrapped Ether").
        decimals: Native precision (default: 18).

    Returns:
        A Unit that cannot be overdrawn.
    """
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_TOKEN,
        decimals=decimals,
        min_balance=ZERO,
    )
