"""
Core types and pure functions for the withdrawal ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only ledger access, SmartContract for keepers
2. Immutable data structures: Move, LedgerEvent, PendingTransaction, Transaction, Unit
3. Exceptions: LedgerError and the closed set of withdrawal error kinds
4. Type aliases: Positions, BalanceMap, UnitState
5. Amount helpers: integral base-unit arithmetic

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_DOWN, getcontext
from enum import Enum
import copy
import hashlib
from typing import (
    Dict, List, Set, Optional, Any, Protocol,
    Tuple, FrozenSet, runtime_checkable, Union
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Amounts are whole base units held in Decimal. Products of two amounts
# (funds * shares) must stay exact before truncating division, so the
# precision is set well above any realistic supply.
#
# This mutates the thread-local context at import: every Decimal operation
# in the importing thread runs at prec=78 with ROUND_DOWN, replacing the
# default ROUND_HALF_EVEN for all callers, not only this package.
#
_LEDGER_DECIMAL_CONTEXT = getcontext()
_LEDGER_DECIMAL_CONTEXT.prec = 78
_LEDGER_DECIMAL_CONTEXT.rounding = ROUND_DOWN


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for share issuance and burning.
# The system wallet is exempt from balance validation and can hold any balance.
SYSTEM_WALLET = "system"

UNIT_TYPE_CASH = "CASH"
UNIT_TYPE_POOL = "POOL"
UNIT_TYPE_POOL_SHARE = "POOL_SHARE"
UNIT_TYPE_WITHDRAWAL_MANAGER = "WITHDRAWAL_MANAGER"

ZERO = Decimal("0")


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for a specific unit.
Positions = Dict[str, Decimal]

# Mapping from unit symbol to quantity held in a single wallet.
BalanceMap = Dict[str, Decimal]

# Internal state for a unit (term sheet, ledgers, lifecycle flags).
UnitState = Dict[str, Any]

Amount = Union[int, Decimal]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Operations, liquidity sources and keepers receive a LedgerView and can
    only query. The Ledger class implements this protocol; tests use FakeView.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """Return the balance of a unit in a wallet."""
        ...

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """Return a deep copy of the unit's internal state."""
        ...

    def get_positions(self, unit_symbol: str) -> Positions:
        """Return all non-zero positions for a unit across all wallets."""
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all registered wallet IDs."""
        ...


class SmartContract(Protocol):
    """
    Protocol for lifecycle-aware contracts polled by the LifecycleEngine.

    A contract inspects the view and returns a PendingTransaction, empty when
    there is nothing to do.
    """

    def __call__(
        self,
        view: LedgerView,
        symbol: str,
        timestamp: datetime,
    ) -> 'PendingTransaction':
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was validated and applied to the ledger.
    ALREADY_APPLIED: The same intent was processed before (idempotent behavior).
    REJECTED: Transaction failed validation (balance constraints, stale state,
              unknown wallets or units). Nothing was applied.
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated."""
    USER_ACTION = "user_action"
    CONTRACT = "contract"
    LIFECYCLE = "lifecycle"
    SYSTEM = "system"


class WithdrawalErrorKind(Enum):
    """Closed enumeration of the ways a withdrawal operation can fail."""
    CONFIG = "config"
    ZERO_AMOUNT = "zero_amount"
    TRANSFER = "transfer"
    WITHDRAW_DUE = "withdraw_due"
    NO_REQUEST = "no_request"
    EARLY_WITHDRAW = "early_withdraw"
    DOUBLE_PROCESS = "double_process"
    INSUFFICIENT_LOCKED = "insufficient_locked"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class UnitNotRegistered(LedgerError):
    """Raised when operating on a unit that has not been registered."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when operating on a wallet that has not been registered."""
    pass


class WithdrawalError(LedgerError):
    """
    Base class for call-aborting withdrawal failures.

    Every subclass fixes ``kind``, so callers can branch on the enumeration
    instead of on exception types.
    """
    kind: WithdrawalErrorKind


class ConfigError(WithdrawalError):
    """Invalid construction parameters."""
    kind = WithdrawalErrorKind.CONFIG


class ZeroAmountError(WithdrawalError):
    """Zero-amount lock or unlock."""
    kind = WithdrawalErrorKind.ZERO_AMOUNT


class TransferError(WithdrawalError):
    """A custodian transfer or liquidity call could not be honored."""
    kind = WithdrawalErrorKind.TRANSFER


class WithdrawDueError(WithdrawalError):
    """Lock or unlock attempted after the request's target cycle opened."""
    kind = WithdrawalErrorKind.WITHDRAW_DUE


class NoRequestError(WithdrawalError):
    """Redeem attempted without a live request."""
    kind = WithdrawalErrorKind.NO_REQUEST


class EarlyWithdrawError(WithdrawalError):
    """
    Cycle window not yet open.

    Raised by redemption before the target cycle opens, and by cycle
    processing while the current time precedes period_start.
    """
    kind = WithdrawalErrorKind.EARLY_WITHDRAW


class DoubleProcessError(WithdrawalError):
    """Cycle already processed."""
    kind = WithdrawalErrorKind.DOUBLE_PROCESS


class InsufficientLockedError(WithdrawalError):
    """Unlock of more shares than the account has locked."""
    kind = WithdrawalErrorKind.INSUFFICIENT_LOCKED


# ============================================================================
# AMOUNT HELPERS
# ============================================================================

def to_amount(value: Amount, name: str = "amount") -> Decimal:
    """
    Coerce a caller-supplied amount to a whole, non-negative Decimal.

    Raises:
        ValueError: If the value is negative, fractional, or not finite.
    """
    if isinstance(value, bool) or not isinstance(value, (int, Decimal)):
        raise ValueError(f"{name} must be int or Decimal, got {type(value).__name__}")
    amount = Decimal(value)
    if not amount.is_finite():
        raise ValueError(f"{name} must be finite, got {amount}")
    if amount < 0:
        raise ValueError(f"{name} must be non-negative, got {amount}")
    if amount != amount.to_integral_value():
        raise ValueError(f"{name} must be a whole number of base units, got {amount}")
    return amount


def mul_div(a: Decimal, b: Decimal, c: Decimal) -> Decimal:
    """Return floor(a * b / c) for non-negative whole amounts."""
    if c <= 0:
        raise ZeroDivisionError("mul_div denominator must be positive")
    return (a * b) // c


def mul_div_up(a: Decimal, b: Decimal, c: Decimal) -> Decimal:
    """Return ceil(a * b / c) for non-negative whole amounts."""
    if c <= 0:
        raise ZeroDivisionError("mul_div_up denominator must be positive")
    return (a * b + c - 1) // c


# ============================================================================
# EVENTS AND STATE CHANGES
# ============================================================================

@dataclass(frozen=True, slots=True)
class LedgerEvent:
    """
    Observable event emitted by an operation.

    Events travel on the transaction that produced them; the transaction log
    is the audit trail, so an event exists only if its transaction applied.

    Attributes:
        name: Event name (e.g. "SharesLocked", "CycleProcessed")
        unit_symbol: Symbol of the unit that emitted it
        params: Frozen (key, value) pairs
    """
    name: str
    unit_symbol: str
    params: Tuple[Tuple[str, Any], ...] = ()

    @property
    def params_dict(self) -> Dict[str, Any]:
        return dict(self.params)

    def __repr__(self) -> str:
        body = ", ".join(f"{k}={v}" for k, v in self.params)
        return f"{self.name}[{self.unit_symbol}]({body})"


def make_event(name: str, unit_symbol: str, **params: Any) -> LedgerEvent:
    """Build a LedgerEvent with params sorted by key."""
    return LedgerEvent(name=name, unit_symbol=unit_symbol, params=tuple(sorted(params.items())))


@dataclass(frozen=True, slots=True)
class UnitStateChange:
    """
    Complete before/after snapshot of one unit's state.

    old_state doubles as an optimistic-concurrency guard: the ledger rejects
    the transaction if the live state no longer matches it.
    """
    unit: str
    old_state: Any
    new_state: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """Fields that differ between old and new state."""
        old = self.old_state if isinstance(self.old_state, dict) else {}
        new = self.new_state if isinstance(self.new_state, dict) else {}
        return {
            key: (old.get(key), new.get(key))
            for key in set(old) | set(new)
            if old.get(key) != new.get(key)
        }


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of a unit between two wallets.

    Attributes:
        quantity: Amount to transfer (finite, positive Decimal).
        unit_symbol: Symbol of the unit being transferred.
        source: Wallet debited.
        dest: Wallet credited.
        contract_id: Identifier of the operation generating this move.
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


def _canonicalize(value: Any) -> str:
    """
    Deterministic string form of a value for content hashing.

    Dict keys and set members are sorted; Decimals are normalized so that
    Decimal("1") and Decimal("1.0") hash identically.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return f"D:{value.normalize():f}"
    if isinstance(value, (int, float)):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, datetime):
        return f"T:{value.isoformat()}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(item) for item in value) + "]"
    return f"R:{value!r}"


def _compute_intent_id(
    moves: Tuple[Move, ...],
    state_changes: Tuple[UnitStateChange, ...],
    origin: 'TransactionOrigin',
) -> str:
    """
    Content hash of a transaction's intent, used for idempotency.

    Depends only on moves, state changes and origin; never on timestamps.
    """
    parts = [f"origin:{origin.origin_type.value}:{origin.source_id}"]
    if origin.event_type:
        parts.append(f"event:{origin.event_type}")
    for m in moves:
        parts.append(f"move:{_canonicalize(m.quantity)}|{m.unit_symbol}|{m.source}|{m.dest}|{m.contract_id}")
    for sc in sorted(state_changes, key=lambda s: s.unit):
        parts.append(f"state_change:{sc.unit}|{_canonicalize(sc.old_state)}|{_canonicalize(sc.new_state)}")
    return hashlib.sha256("|".join(parts).encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Provenance of a transaction for the audit trail.

    Attributes:
        origin_type: Classification of the origin source
        source_id: Identifier of the caller (account, keeper, contract)
        unit_symbol: Symbol of the unit that triggered this (if applicable)
        event_type: Operation within the source (e.g. "LOCK", "PROCESS_CYCLE")
    """
    origin_type: OriginType
    source_id: str
    unit_symbol: Optional[str] = None
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.unit_symbol:
            parts.append(f"unit={self.unit_symbol}")
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction before execution - represents INTENT.

    Operations build one of these from a read-only view; Ledger.execute()
    validates it as a whole and applies it all-or-nothing.

    Attributes:
        moves: Custodian transfers, in order
        state_changes: Unit state snapshots (old and new)
        origin: Who created this transaction and why
        timestamp: View time when it was built
        events: Events published if and only if the transaction applies
        intent_id: Content hash (auto-computed)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    events: Tuple[LedgerEvent, ...] = ()
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            object.__setattr__(
                self, 'intent_id',
                _compute_intent_id(self.moves, self.state_changes, self.origin)
            )

    def is_empty(self) -> bool:
        """True when there are no moves and no state changes."""
        return not self.moves and not self.state_changes

    def __repr__(self) -> str:
        return (f"PendingTransaction({len(self.moves)} moves, {len(self.state_changes)} deltas, "
                f"{len(self.events)} events, {self.origin})")


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    state_changes: Optional[List[UnitStateChange]] = None,
    origin: Optional[TransactionOrigin] = None,
    events: Optional[List[LedgerEvent]] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves, state changes and events.

    State snapshots are deep-copied so later mutation by the caller cannot
    leak into the transaction.

    Example:
        def compute_release(view, symbol, amount):
            old_state = view.get_unit_state(symbol)
            new_state = {**old_state, "unlocked_funds": amount}
            changes = [UnitStateChange(symbol, old_state, new_state)]
            return build_transaction(view, [], changes)
    """
    if origin is None:
        origin = TransactionOrigin(origin_type=OriginType.CONTRACT, source_id="contract")

    copied_changes = tuple(
        UnitStateChange(
            unit=sc.unit,
            old_state=copy.deepcopy(sc.old_state),
            new_state=copy.deepcopy(sc.new_state),
        )
        for sc in (state_changes or ())
    )

    return PendingTransaction(
        moves=tuple(moves),
        state_changes=copied_changes,
        origin=origin,
        timestamp=view.current_time,
        events=tuple(events or ()),
    )


def empty_pending_transaction(view: LedgerView) -> PendingTransaction:
    """Create a PendingTransaction that does nothing."""
    return PendingTransaction(
        moves=(),
        state_changes=(),
        origin=TransactionOrigin(OriginType.CONTRACT, "noop"),
        timestamp=view.current_time,
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger changes - represents FACT.

    Attributes:
        moves: Transfers applied
        state_changes: Unit state snapshots applied
        origin: Provenance
        timestamp: When the PendingTransaction was built
        intent_id: Content hash (from PendingTransaction)
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the executing ledger
        execution_time: Ledger time when applied
        sequence_number: Monotonic sequence within the ledger
        events: Events published by this transaction
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    events: Tuple[LedgerEvent, ...] = ()
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not self.moves and not self.state_changes:
            raise ValueError("Transaction must have moves or state_changes")
        if self.contract_ids is None:
            object.__setattr__(self, 'contract_ids', frozenset(m.contract_id for m in self.moves))

    def __repr__(self) -> str:
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Transaction: ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   intent_id      : ' + self.intent_id)}│",
            f"│{pad('   execution_time : ' + str(self.execution_time))}│",
            f"│{pad('   origin         : ' + str(self.origin))}│",
            f"│{pad('   contract_ids   : ' + ', '.join(sorted(self.contract_ids)))}│",
            f"├{bar}┤",
            f"│{pad(' Moves (' + str(len(self.moves)) + '):')}│",
        ]
        for i, move in enumerate(self.moves):
            lines.append(f"│{pad(f'   [{i}] {move.quantity} {move.unit_symbol}: {move.source} → {move.dest}')}│")
        if self.state_changes:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' State Changes (' + str(len(self.state_changes)) + '):')}│")
            for sc in self.state_changes:
                lines.append(f"│{pad('   [' + sc.unit + ']')}│")
                for field_name, (old_val, new_val) in sorted(sc.changed_fields().items()):
                    lines.append(f"│{pad(f'      {field_name}: {old_val!r} → {new_val!r}')}│")
        if self.events:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' Events (' + str(len(self.events)) + '):')}│")
            for event in self.events:
                lines.append(f"│{pad('   ' + repr(event))}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


def _freeze_state(state: Optional[UnitState]) -> Tuple[Tuple[str, Any], ...]:
    """Convert a state dict to a sorted tuple of (key, value) pairs."""
    if not state:
        return ()
    return tuple(sorted(state.items()))


def _thaw_state(frozen_state: Tuple[Tuple[str, Any], ...]) -> UnitState:
    """Convert a frozen state back to a dict."""
    return dict(frozen_state)


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of a unit (asset, share or stateful contract) in the ledger.

    Attributes:
        symbol: Short identifier (e.g. "USDC", "POOL-LP").
        name: Human-readable name.
        unit_type: Category (CASH, POOL, POOL_SHARE, WITHDRAWAL_MANAGER).
        min_balance: Minimum allowed balance in any wallet except the system wallet.
        max_balance: Maximum allowed balance in any wallet.
        _frozen_state: Internal frozen state representation.
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: Decimal = Decimal("0")
    max_balance: Decimal = Decimal("Infinity")
    _frozen_state: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @property
    def state(self) -> UnitState:
        """The unit's state as a new dict."""
        return _thaw_state(self._frozen_state)


# ============================================================================
# UNIT FACTORIES
# ============================================================================

def cash(symbol: str, name: str) -> Unit:
    """
    Create a settlement asset unit, counted in whole base units.

    Balances may not go negative outside the system wallet, so a custodian
    transfer from an underfunded wallet is rejected.
    """
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_CASH,
        _frozen_state=_freeze_state({'issuer': SYSTEM_WALLET}),
    )
