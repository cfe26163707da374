"""
lifecycle_engine.py - Lifecycle Engine

Drives time forward and lets registered contracts react to it.

Execution order each step():
1. Advance ledger time
2. Poll every unit whose type has a registered contract
3. Repeat until no contract fires (cascading effects)

Cycle processing is permissionless, so a keeper running this engine settles
each withdrawal cycle as soon as its window opens. The transaction log is the
audit trail; the engine keeps no state of its own.
"""

from __future__ import annotations
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .core import ExecuteResult, LedgerError, PendingTransaction, SmartContract, Transaction
from .ledger import Ledger


class LifecycleEngine:
    """
    Smart contract polling over a ledger.

    Example:
        engine = LifecycleEngine(ledger)
        engine.register(UNIT_TYPE_WITHDRAWAL_MANAGER, withdrawal_manager_contract)
        executed = engine.step(datetime(2025, 1, 3))
    """

    def __init__(
        self,
        ledger: Ledger,
        contracts: Optional[Dict[str, SmartContract]] = None,
    ):
        """
        Args:
            ledger: The ledger to operate on
            contracts: unit_type -> contract
        """
        self.ledger = ledger
        self.contracts: Dict[str, SmartContract] = contracts or {}
        self.max_passes = 10  # cascade limit per step
        self.verbose = ledger.verbose

    def register(self, unit_type: str, contract: SmartContract) -> None:
        self.contracts[unit_type] = contract

    def step(self, timestamp: datetime) -> List[Transaction]:
        """
        Advance time and run contracts until none fires.

        Returns:
            Transactions executed during this step
        """
        self.ledger.advance_time(timestamp)
        executed: List[Transaction] = []

        for _ in range(self.max_passes):
            pass_executed = self._poll_contracts(timestamp)
            executed.extend(pass_executed)
            if not pass_executed:
                break

        return executed

    def run(self, timestamps: Iterable[datetime]) -> List[Transaction]:
        """Step through each timestamp in order."""
        executed: List[Transaction] = []
        for timestamp in timestamps:
            executed.extend(self.step(timestamp))
        return executed

    def _poll_contracts(self, timestamp: datetime) -> List[Transaction]:
        executed: List[Transaction] = []

        for symbol in self.ledger.list_units():
            contract = self.contracts.get(self.ledger.get_unit(symbol).unit_type)
            if contract is None:
                continue

            pending = contract(self.ledger, symbol, timestamp)
            if not isinstance(pending, PendingTransaction):
                raise LedgerError(
                    f"Contract for {symbol} must return PendingTransaction, got {type(pending)}"
                )
            if pending.is_empty():
                continue

            result = self.ledger.execute(pending)
            if result == ExecuteResult.APPLIED:
                executed.append(self.ledger.transaction_log[-1])
            elif result == ExecuteResult.REJECTED:
                raise LedgerError(
                    f"Contract for {symbol} produced a rejected transaction at {timestamp}: "
                    f"{self.ledger.last_rejection}"
                )
            if self.verbose:
                print(f"[LIFECYCLE] {symbol}: {result.value}")

        return executed
