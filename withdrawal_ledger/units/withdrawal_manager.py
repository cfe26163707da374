"""
withdrawal_manager.py - Cyclical withdrawal queue for a pooled fund

Share holders lock pool shares with the manager; the shares become eligible
in a future cycle (cooldown). When a cycle's window opens the cycle is
settled once against the pool's liquidity and every account in it receives a
pro-rata slice of the settled funds and of any shares that could not be
converted.

1. create_withdrawal_manager_unit() - Factory validating the cycle parameters
2. compute_lock() / compute_unlock() - Queue or withdraw shares before maturity
3. compute_cycle_processing() - Settle the current cycle (permissionless, at most once)
4. compute_redemption() - Claim funds and leftover shares from a matured cycle
5. withdrawal_manager_contract() - SmartContract that settles cycles automatically
6. get_request() / get_cycle() / cycle_clock() - Read accessors

Every operation returns a PendingTransaction built in checks-effects-
interactions order: all checks raise before anything is built, the manager's
state change comes first, custodian moves and liquidity-source changes after.
The ledger applies the transaction whole or not at all.

Pattern:
    t0 (cycle 0):   alice locks 50 shares      -> request targets cycle 2
    cycle 2 opens:  processing burns shares for the unlocked funds
    in the window:  alice redeems              -> funds, plus leftover shares
                                                  she asked to reclaim; the
                                                  rest re-queues for cycle 4
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from ..allocation import allocate, deduct
from ..book import CycleState, Request, WithdrawalBook
from ..core import (
    LedgerView, LedgerEvent, Move, PendingTransaction, Unit, UnitState, UnitStateChange,
    TransactionOrigin, OriginType,
    SYSTEM_WALLET, UNIT_TYPE_WITHDRAWAL_MANAGER, ZERO,
    Amount, ConfigError, ZeroAmountError, WithdrawDueError, NoRequestError,
    EarlyWithdrawError, DoubleProcessError, InsufficientLockedError,
    build_transaction, empty_pending_transaction, make_event, to_amount,
    _freeze_state,
)
from ..cycle_clock import CycleClock
from ..liquidity_source import LiquiditySource, Redemption
from .pool import PoolLiquiditySource


EVENT_SHARES_LOCKED = "SharesLocked"
EVENT_SHARES_UNLOCKED = "SharesUnlocked"
EVENT_WITHDRAWAL_PENDING = "WithdrawalPending"
EVENT_WITHDRAWAL_CANCELLED = "WithdrawalCancelled"
EVENT_FUNDS_WITHDRAWN = "FundsWithdrawn"
EVENT_CYCLE_PROCESSED = "CycleProcessed"


@dataclass(frozen=True, slots=True)
class RedeemPlan:
    """
    A redemption ready for execution and the amounts it will deliver.

    Attributes:
        pending: Transaction to execute
        funds_withdrawn: Funds paid to the account
        redeemed_shares: Account shares that were converted to funds
        reclaimed_shares: Unconverted shares returned to the account
    """
    pending: PendingTransaction
    funds_withdrawn: Decimal
    redeemed_shares: Decimal
    reclaimed_shares: Decimal


def create_withdrawal_manager_unit(
    symbol: str,
    pool: str,
    asset: str,
    share: str,
    manager_wallet: str,
    period_start: datetime,
    period_duration: timedelta,
    period_frequency: timedelta,
    cooldown_multiplier: int,
    name: Optional[str] = None,
) -> Unit:
    """
    Create a withdrawal manager for one pool/asset pair.

    Args:
        symbol: Manager identifier
        pool: Symbol of the pool unit (liquidity source identity)
        asset: Settlement asset symbol
        share: Pool share symbol
        manager_wallet: Wallet that holds locked shares and settled funds
        period_start: Start of cycle 0
        period_duration: Redemption window length
        period_frequency: Cycle length
        cooldown_multiplier: Cycles between locking and eligibility
        name: Human-readable name (default derived from the pool)

    Returns:
        Unit whose state holds the immutable terms and empty request and
        cycle tables.

    Raises:
        ConfigError: If the cycle parameters or identifiers are invalid.
    """
    CycleClock(period_start, period_duration, period_frequency, cooldown_multiplier)
    for label, value in (("pool", pool), ("asset", asset), ("share", share),
                         ("manager_wallet", manager_wallet)):
        if not value or not value.strip():
            raise ConfigError(f"{label} cannot be empty")
    if manager_wallet == SYSTEM_WALLET:
        raise ConfigError("manager_wallet cannot be the system wallet")
    if asset == share:
        raise ConfigError("asset and share must be different units")

    return Unit(
        symbol=symbol,
        name=name or f"Withdrawal Manager: {pool}",
        unit_type=UNIT_TYPE_WITHDRAWAL_MANAGER,
        max_balance=ZERO,  # the manager itself is never held
        _frozen_state=_freeze_state({
            'pool': pool,
            'asset': asset,
            'share': share,
            'manager_wallet': manager_wallet,
            'period_start': period_start,
            'period_duration': period_duration,
            'period_frequency': period_frequency,
            'cooldown_multiplier': cooldown_multiplier,
            'requests': {},
            'cycles': {},
            'nonce': 0,
        }),
    )


# ============================================================================
# READ ACCESSORS
# ============================================================================

def cycle_clock(view: LedgerView, symbol: str) -> CycleClock:
    return CycleClock.from_state(view.get_unit_state(symbol))


def get_request(view: LedgerView, symbol: str, account: str) -> Request:
    """The account's request; empty if it has none."""
    return WithdrawalBook.from_state(view.get_unit_state(symbol)).request(account)


def get_cycle(view: LedgerView, symbol: str, cycle: int) -> CycleState:
    """A cycle's aggregates; empty if never referenced."""
    return WithdrawalBook.from_state(view.get_unit_state(symbol)).cycle(cycle)


# ============================================================================
# INTERNALS
# ============================================================================

def _next_state(state: UnitState, book: WithdrawalBook) -> UnitState:
    new_state = book.to_state(state)
    new_state['nonce'] = state.get('nonce', 0) + 1
    return new_state


def _settle(
    view: LedgerView,
    symbol: str,
    state: UnitState,
    book: WithdrawalBook,
    clock: CycleClock,
    cycle: int,
    liquidity: LiquiditySource,
) -> Tuple[Redemption, LedgerEvent]:
    """
    Settle ``cycle`` into ``book`` and describe the liquidity interaction.

    Window elapsed: nothing is converted, every locked share becomes
    leftover. Window open: as many shares as the unlocked funds cover (at
    most the cycle total) are redeemed; the rest are leftover.

    Raises:
        DoubleProcessError: If the cycle was already processed.
        EarlyWithdrawError: If the cycle's window has not opened.
    """
    bucket = book.cycle(cycle)
    if bucket.is_processed:
        raise DoubleProcessError(f"{symbol}: cycle {cycle} already processed")

    now = view.current_time
    start, _ = clock.bounds_of(cycle)
    if now < start:
        raise EarlyWithdrawError(f"{symbol}: cycle {cycle} window opens at {start}")

    redemption = Redemption()
    if not clock.window_elapsed(cycle, now):
        covered = liquidity.preview_withdraw(view, liquidity.unlocked_balance(view))
        shares_to_redeem = min(covered, bucket.total_shares)
        if shares_to_redeem > 0:
            redemption = liquidity.redeem(view, state['manager_wallet'], shares_to_redeem)

    leftover = bucket.total_shares - redemption.shares
    book.set_cycle(cycle, replace(
        bucket,
        available_funds=redemption.funds,
        leftover_shares=leftover,
        is_processed=True,
    ))
    event = make_event(EVENT_CYCLE_PROCESSED, symbol,
                       cycle=cycle, funds=redemption.funds, leftover_shares=leftover)
    return redemption, event


def _require_amount(amount: Amount) -> Decimal:
    amount = to_amount(amount)
    if amount == 0:
        raise ZeroAmountError("amount must be non-zero")
    return amount


# ============================================================================
# OPERATIONS
# ============================================================================

def compute_lock(
    view: LedgerView,
    symbol: str,
    account: str,
    amount: Amount,
) -> PendingTransaction:
    """
    Lock ``amount`` more shares for ``account``.

    The whole position (previous plus new shares) moves to the cycle that
    contains now + cooldown.

    Raises:
        ZeroAmountError: If amount is zero.
        WithdrawDueError: If the account's existing request has matured;
            it must be redeemed before more shares are locked.
    """
    amount = _require_amount(amount)
    state = view.get_unit_state(symbol)
    clock = CycleClock.from_state(state)
    book = WithdrawalBook.from_state(state)
    now = view.current_time

    request = book.request(account)
    if request.is_live and clock.cycle_of(now) >= request.target_cycle:
        raise WithdrawDueError(
            f"{symbol}: {account} has a matured request for cycle {request.target_cycle}"
        )

    target = clock.target_cycle(now)
    total = request.locked_shares + amount
    book.move_shares(request.target_cycle, target, request.locked_shares, total)
    book.set_request(account, total, target)

    moves = [Move(amount, state['share'], account, state['manager_wallet'], f'lock_{symbol}')]
    events = [
        make_event(EVENT_SHARES_LOCKED, symbol, account=account, shares=amount),
        make_event(EVENT_WITHDRAWAL_PENDING, symbol, account=account, cycle=target),
    ]
    return build_transaction(
        view, moves,
        [UnitStateChange(symbol, state, _next_state(state, book))],
        origin=TransactionOrigin(OriginType.USER_ACTION, account, symbol, "LOCK"),
        events=events,
    )


def compute_unlock(
    view: LedgerView,
    symbol: str,
    account: str,
    amount: Amount,
) -> PendingTransaction:
    """
    Return ``amount`` locked shares to ``account`` before its cycle opens.

    Raises:
        ZeroAmountError: If amount is zero.
        WithdrawDueError: If the target cycle has opened (or there is no request).
        InsufficientLockedError: If amount exceeds the locked shares.
    """
    amount = _require_amount(amount)
    state = view.get_unit_state(symbol)
    clock = CycleClock.from_state(state)
    book = WithdrawalBook.from_state(state)

    request = book.request(account)
    if clock.cycle_of(view.current_time) >= request.target_cycle:
        raise WithdrawDueError(
            f"{symbol}: {account} is past cooldown for cycle {request.target_cycle}"
        )
    if amount > request.locked_shares:
        raise InsufficientLockedError(
            f"{symbol}: {account} has {request.locked_shares} locked, cannot unlock {amount}"
        )

    remaining = request.locked_shares - amount
    book.move_shares(request.target_cycle, request.target_cycle, request.locked_shares, remaining)
    book.set_request(account, remaining, request.target_cycle)

    moves = [Move(amount, state['share'], state['manager_wallet'], account, f'unlock_{symbol}')]
    events = [make_event(EVENT_SHARES_UNLOCKED, symbol, account=account, shares=amount)]
    if remaining == 0:
        events.append(make_event(EVENT_WITHDRAWAL_CANCELLED, symbol, account=account))
    return build_transaction(
        view, moves,
        [UnitStateChange(symbol, state, _next_state(state, book))],
        origin=TransactionOrigin(OriginType.USER_ACTION, account, symbol, "UNLOCK"),
        events=events,
    )


def compute_cycle_processing(
    view: LedgerView,
    symbol: str,
    liquidity: LiquiditySource,
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Settle the cycle containing the current time.

    Raises:
        DoubleProcessError: If that cycle was already processed.
        EarlyWithdrawError: If the current time precedes the first window.
    """
    state = view.get_unit_state(symbol)
    clock = CycleClock.from_state(state)
    book = WithdrawalBook.from_state(state)
    cycle = clock.cycle_of(view.current_time)

    redemption, event = _settle(view, symbol, state, book, clock, cycle, liquidity)

    changes = [UnitStateChange(symbol, state, _next_state(state, book))]
    changes.extend(redemption.state_changes)
    return build_transaction(
        view, list(redemption.moves), changes,
        origin=origin or TransactionOrigin(OriginType.USER_ACTION, "anyone", symbol, "PROCESS_CYCLE"),
        events=[event],
    )


def compute_redemption(
    view: LedgerView,
    symbol: str,
    account: str,
    shares_to_reclaim: Amount,
    liquidity: LiquiditySource,
) -> RedeemPlan:
    """
    Redeem ``account``'s matured request.

    Settles the target cycle first if nobody has yet. The account receives
    its pro-rata funds and up to ``shares_to_reclaim`` of its leftover
    shares; leftover it does not reclaim is re-queued for the cycle that
    contains now + cooldown.

    Raises:
        NoRequestError: If the account has no live request.
        EarlyWithdrawError: If the target cycle's window has not opened.
    """
    shares_to_reclaim = to_amount(shares_to_reclaim, "shares_to_reclaim")
    state = view.get_unit_state(symbol)
    clock = CycleClock.from_state(state)
    book = WithdrawalBook.from_state(state)
    now = view.current_time

    request = book.request(account)
    if not request.is_live:
        raise NoRequestError(f"{symbol}: {account} has no withdrawal request")
    cycle = request.target_cycle
    start, _ = clock.bounds_of(cycle)
    if now < start:
        raise EarlyWithdrawError(f"{symbol}: cycle {cycle} window opens at {start}")

    redemption = Redemption()
    events: List[LedgerEvent] = []
    if not book.cycle(cycle).is_processed:
        redemption, processed = _settle(view, symbol, state, book, clock, cycle, liquidity)
        events.append(processed)

    bucket = book.cycle(cycle)
    allocation = allocate(bucket, request.locked_shares)
    book.set_cycle(cycle, deduct(bucket, allocation))

    reclaimed = min(shares_to_reclaim, allocation.leftover_shares)
    remaining = request.locked_shares - allocation.redeemed_shares - reclaimed
    target = clock.target_cycle(now)
    book.move_shares(cycle, target, request.locked_shares, remaining)
    book.set_request(account, remaining, target)

    moves = list(redemption.moves)
    if allocation.funds > 0:
        moves.append(Move(allocation.funds, state['asset'], state['manager_wallet'], account,
                          f'withdraw_{symbol}_funds'))
        events.append(make_event(EVENT_FUNDS_WITHDRAWN, symbol, account=account, funds=allocation.funds))
    if reclaimed > 0:
        moves.append(Move(reclaimed, state['share'], state['manager_wallet'], account,
                          f'withdraw_{symbol}_reclaim'))
        events.append(make_event(EVENT_SHARES_UNLOCKED, symbol, account=account, shares=reclaimed))
    if remaining > 0:
        events.append(make_event(EVENT_WITHDRAWAL_PENDING, symbol, account=account, cycle=target))

    changes = [UnitStateChange(symbol, state, _next_state(state, book))]
    changes.extend(redemption.state_changes)
    pending = build_transaction(
        view, moves, changes,
        origin=TransactionOrigin(OriginType.USER_ACTION, account, symbol, "REDEEM"),
        events=events,
    )
    return RedeemPlan(
        pending=pending,
        funds_withdrawn=allocation.funds,
        redeemed_shares=allocation.redeemed_shares,
        reclaimed_shares=reclaimed,
    )


# ============================================================================
# LIFECYCLE
# ============================================================================

def withdrawal_manager_contract(
    view: LedgerView,
    symbol: str,
    timestamp: datetime,
) -> PendingTransaction:
    """
    SmartContract interface: settle the current cycle when it is due.

    Fires once per cycle, while the window is open, if the cycle holds
    locked shares and is unprocessed. Liquidity comes from the manager's
    configured pool.

    Example:
        engine = LifecycleEngine(ledger)
        engine.register(UNIT_TYPE_WITHDRAWAL_MANAGER, withdrawal_manager_contract)
        engine.run([t0, t1, t2])
    """
    state = view.get_unit_state(symbol)
    clock = CycleClock.from_state(state)
    cycle = clock.cycle_of(timestamp)
    bucket = WithdrawalBook.from_state(state).cycle(cycle)

    if bucket.is_processed or bucket.total_shares == 0:
        return empty_pending_transaction(view)
    if not clock.window_open(cycle, timestamp):
        return empty_pending_transaction(view)

    return compute_cycle_processing(
        view, symbol, PoolLiquiditySource(state['pool']),
        origin=TransactionOrigin(OriginType.LIFECYCLE, "keeper", symbol, "PROCESS_CYCLE"),
    )
