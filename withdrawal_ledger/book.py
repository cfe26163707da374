"""
book.py - Request and cycle ledgers of a withdrawal manager

Two key-value tables live in the manager unit's state:

    requests: account -> {'locked_shares', 'target_cycle'}
    cycles:   cycle   -> {'total_shares', 'pending_withdrawals',
                          'available_funds', 'leftover_shares', 'is_processed'}

WithdrawalBook is a working copy of both tables. Operations load it from a
state snapshot, mutate it, and write it back into the new state of a
UnitStateChange, so the ledger only ever sees whole before/after snapshots.

Invariant kept by move_shares(): for every unprocessed cycle, total_shares is
the sum of locked_shares over requests targeting it and pending_withdrawals
is their count.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Dict, Iterator, Tuple

from .core import UnitState, ZERO


@dataclass(frozen=True, slots=True)
class Request:
    """An account's locked position. A live request always has locked_shares > 0."""
    locked_shares: Decimal = ZERO
    target_cycle: int = 0

    @property
    def is_live(self) -> bool:
        return self.locked_shares > 0


@dataclass(frozen=True, slots=True)
class CycleState:
    """
    Aggregates for one cycle.

    Attributes:
        total_shares: Locked shares targeting this cycle; after processing,
            the shrinking denominator for pro-rata allocation
        pending_withdrawals: Accounts still holding shares in this cycle
        available_funds: Settled funds not yet paid out
        leftover_shares: Unconverted shares not yet allocated
        is_processed: Settlement has run
    """
    total_shares: Decimal = ZERO
    pending_withdrawals: int = 0
    available_funds: Decimal = ZERO
    leftover_shares: Decimal = ZERO
    is_processed: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            'total_shares': self.total_shares,
            'pending_withdrawals': self.pending_withdrawals,
            'available_funds': self.available_funds,
            'leftover_shares': self.leftover_shares,
            'is_processed': self.is_processed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> CycleState:
        return cls(**data)


class WithdrawalBook:
    """Mutable working copy of the request and cycle tables."""

    def __init__(self, requests: Dict[str, Request], cycles: Dict[int, CycleState]):
        self._requests = requests
        self._cycles = cycles

    @classmethod
    def from_state(cls, state: UnitState) -> WithdrawalBook:
        requests = {
            account: Request(entry['locked_shares'], entry['target_cycle'])
            for account, entry in state.get('requests', {}).items()
        }
        cycles = {
            int(index): CycleState.from_dict(entry)
            for index, entry in state.get('cycles', {}).items()
        }
        return cls(requests, cycles)

    def to_state(self, state: UnitState) -> UnitState:
        """Return a copy of ``state`` with both tables replaced by this book."""
        return {
            **state,
            'requests': {
                account: {'locked_shares': r.locked_shares, 'target_cycle': r.target_cycle}
                for account, r in sorted(self._requests.items())
            },
            'cycles': {index: c.to_dict() for index, c in sorted(self._cycles.items())},
        }

    # ------------------------------------------------------------------
    # Request ledger
    # ------------------------------------------------------------------

    def request(self, account: str) -> Request:
        """The account's request, or an empty one."""
        return self._requests.get(account, Request())

    def set_request(self, account: str, locked_shares: Decimal, target_cycle: int) -> None:
        """Store a request; zero locked shares deletes the entry."""
        if locked_shares < 0:
            raise ValueError(f"locked_shares cannot be negative, got {locked_shares}")
        if locked_shares == 0:
            self._requests.pop(account, None)
        else:
            self._requests[account] = Request(locked_shares, target_cycle)

    def requests(self) -> Iterator[Tuple[str, Request]]:
        return iter(sorted(self._requests.items()))

    # ------------------------------------------------------------------
    # Cycle ledger
    # ------------------------------------------------------------------

    def cycle(self, index: int) -> CycleState:
        """The cycle's aggregates; unreferenced cycles read as empty."""
        return self._cycles.get(index, CycleState())

    def set_cycle(self, index: int, cycle: CycleState) -> None:
        self._cycles[index] = cycle

    def cycles(self) -> Iterator[Tuple[int, CycleState]]:
        return iter(sorted(self._cycles.items()))

    def move_shares(
        self,
        old_cycle: int,
        new_cycle: int,
        old_shares: Decimal,
        new_shares: Decimal,
    ) -> None:
        """
        Re-bucket one account's position.

        Removes ``old_shares`` from ``old_cycle`` and adds ``new_shares`` to
        ``new_cycle``, adjusting pending_withdrawals for an account entering
        or leaving a bucket. When both cycles coincide only the difference is
        applied and the account keeps its place in the count unless it drops
        to or rises from zero.
        """
        if old_cycle == new_cycle:
            bucket = self.cycle(old_cycle)
            pending = bucket.pending_withdrawals
            if old_shares > 0 and new_shares == 0:
                pending -= 1
            elif old_shares == 0 and new_shares > 0:
                pending += 1
            self.set_cycle(old_cycle, replace(
                bucket,
                total_shares=bucket.total_shares - old_shares + new_shares,
                pending_withdrawals=pending,
            ))
            return

        if old_shares > 0:
            bucket = self.cycle(old_cycle)
            self.set_cycle(old_cycle, replace(
                bucket,
                total_shares=bucket.total_shares - old_shares,
                pending_withdrawals=bucket.pending_withdrawals - 1,
            ))
        if new_shares > 0:
            bucket = self.cycle(new_cycle)
            self.set_cycle(new_cycle, replace(
                bucket,
                total_shares=bucket.total_shares + new_shares,
                pending_withdrawals=bucket.pending_withdrawals + 1,
            ))
