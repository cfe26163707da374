"""
manager.py - Entry points of a withdrawal manager

WithdrawalManager binds a manager unit, the ledger that custodies its shares
and funds, and a liquidity source. Each entry point builds one transaction
from the pure operations in units.withdrawal_manager and executes it; time
is the ledger's logical clock.

Failure is explicit: every entry point either returns its result or raises a
WithdrawalError whose ``kind`` is a WithdrawalErrorKind. A transaction the
ledger rejects (a custodian balance that cannot cover a transfer) raises
TransferError. In every failure case nothing was applied.
"""

from __future__ import annotations
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from .book import CycleState, Request
from .core import (
    Amount, ExecuteResult, LedgerEvent, PendingTransaction, TransferError,
    UNIT_TYPE_WITHDRAWAL_MANAGER,
)
from .cycle_clock import CycleClock
from .ledger import Ledger
from .liquidity_source import LiquiditySource
from .units.pool import PoolLiquiditySource
from .units.withdrawal_manager import (
    compute_lock, compute_unlock, compute_cycle_processing, compute_redemption,
    cycle_clock, get_request, get_cycle,
)


class WithdrawalManager:
    """
    Account-facing interface of one withdrawal manager unit.

    Example:
        manager = WithdrawalManager(ledger, "WM")
        manager.lock_shares("alice", 50)
        ledger.advance_time(cycle_two_start)
        funds, redeemed, reclaimed = manager.redeem_position("alice", 0)
    """

    def __init__(
        self,
        ledger: Ledger,
        symbol: str,
        liquidity: Optional[LiquiditySource] = None,
    ):
        """
        Args:
            ledger: Ledger holding the manager unit, its shares and funds
            symbol: Manager unit symbol
            liquidity: Liquidity source (default: the manager's configured pool)

        Raises:
            ValueError: If ``symbol`` is not a withdrawal manager unit.
        """
        unit = ledger.get_unit(symbol)
        if unit.unit_type != UNIT_TYPE_WITHDRAWAL_MANAGER:
            raise ValueError(f"{symbol} is a {unit.unit_type} unit, not a withdrawal manager")
        self.ledger = ledger
        self.symbol = symbol
        self.liquidity = liquidity or PoolLiquiditySource(ledger.get_unit_state(symbol)['pool'])
        self._clock = cycle_clock(ledger, symbol)

    def _execute(self, pending: PendingTransaction) -> None:
        result = self.ledger.execute(pending)
        if result != ExecuteResult.APPLIED:
            raise TransferError(
                f"{self.symbol}: {pending.origin.event_type} not applied "
                f"({result.value}: {self.ledger.last_rejection})"
            )

    # ========================================================================
    # ENTRY POINTS
    # ========================================================================

    def lock_shares(self, account: str, amount: Amount) -> Decimal:
        """Lock shares; returns the account's total locked shares."""
        self._execute(compute_lock(self.ledger, self.symbol, account, amount))
        return self.locked_shares(account)

    def unlock_shares(self, account: str, amount: Amount) -> Decimal:
        """Unlock shares before maturity; returns the shares still locked."""
        self._execute(compute_unlock(self.ledger, self.symbol, account, amount))
        return self.locked_shares(account)

    def process_cycle(self) -> CycleState:
        """
        Settle the current cycle; returns its aggregates after settlement.

        Raises EarlyWithdrawError before period_start and DoubleProcessError
        once the cycle is settled.
        """
        cycle = self.current_cycle
        self._execute(compute_cycle_processing(self.ledger, self.symbol, self.liquidity))
        return self.cycle_state(cycle)

    def redeem_position(self, account: str, shares_to_reclaim: Amount) -> Tuple[Decimal, Decimal, Decimal]:
        """
        Redeem a matured request.

        Returns:
            (funds_withdrawn, redeemed_shares, reclaimed_shares)
        """
        plan = compute_redemption(self.ledger, self.symbol, account, shares_to_reclaim, self.liquidity)
        self._execute(plan.pending)
        return plan.funds_withdrawn, plan.redeemed_shares, plan.reclaimed_shares

    # ========================================================================
    # READ ACCESSORS
    # ========================================================================

    @property
    def clock(self) -> CycleClock:
        return self._clock

    @property
    def cooldown(self) -> timedelta:
        return self._clock.cooldown

    @property
    def current_cycle(self) -> int:
        return self._clock.cycle_of(self.ledger.current_time)

    def cycle_of(self, time: datetime) -> int:
        return self._clock.cycle_of(time)

    def bounds_of(self, cycle: int) -> Tuple[datetime, datetime]:
        return self._clock.bounds_of(cycle)

    def request(self, account: str) -> Request:
        return get_request(self.ledger, self.symbol, account)

    def locked_shares(self, account: str) -> Decimal:
        return self.request(account).locked_shares

    def target_cycle(self, account: str) -> int:
        return self.request(account).target_cycle

    def withdrawal_window(self, account: str) -> Tuple[datetime, datetime]:
        """Redemption window of the account's target cycle."""
        return self._clock.bounds_of(self.target_cycle(account))

    def cycle_state(self, cycle: int) -> CycleState:
        return get_cycle(self.ledger, self.symbol, cycle)

    def total_shares(self, cycle: int) -> Decimal:
        return self.cycle_state(cycle).total_shares

    def pending_withdrawals(self, cycle: int) -> int:
        return self.cycle_state(cycle).pending_withdrawals

    def available_funds(self, cycle: int) -> Decimal:
        return self.cycle_state(cycle).available_funds

    def leftover_shares(self, cycle: int) -> Decimal:
        return self.cycle_state(cycle).leftover_shares

    def is_processed(self, cycle: int) -> bool:
        return self.cycle_state(cycle).is_processed

    def events(self, name: Optional[str] = None) -> List[LedgerEvent]:
        """Events this manager has emitted, oldest first."""
        return list(self.ledger.events(unit_symbol=self.symbol, name=name))

    def __repr__(self):
        return f"WithdrawalManager({self.symbol}, {self.liquidity!r})"
