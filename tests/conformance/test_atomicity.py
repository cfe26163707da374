"""
Atomicity Conformance Tests

INVARIANT: Operations are all-or-nothing.

    ∀ operation op:
        op raises WithdrawalError ⟹ balances, unit state, log and events unchanged
        op returns               ⟹ exactly one transaction was appended

A rejected custodian transfer inside settlement or redemption leaves the
manager's ledgers exactly as they were.
"""

import pytest
from decimal import Decimal
from hypothesis import given, settings
from hypothesis import strategies as st

from withdrawal_ledger import (
    WithdrawalManager, TransferError, DoubleProcessError,
)

from tests.builders import (
    ASSET, MANAGER, POOL_WALLET, at, cycle_start, build_ledger, unlock_liquidity,
)
from tests.conformance.operations import (
    operation_sequences, apply_operation, funded_accounts, snapshot,
)
from tests.fake_liquidity import FakeLiquiditySource


class TestAtomicityProperties:
    """Property-based atomicity tests."""

    @given(operation_sequences())
    @settings(max_examples=150, deadline=None)
    def test_failed_operations_change_nothing(self, ops):
        """
        PROPERTY: Every operation that raises leaves the ledger untouched;
        every manager operation that returns appends one transaction.
        """
        ledger = build_ledger(funded_accounts())
        manager = WithdrawalManager(ledger, MANAGER)

        for op in ops:
            before = snapshot(ledger)
            error = apply_operation(ledger, manager, op)
            if error is not None:
                assert snapshot(ledger) == before, f"{op} raised {error!r} but changed state"
            elif op[0] in ("lock", "unlock", "redeem", "process"):
                assert len(ledger.transaction_log) == before[2] + 1

    @given(st.integers(min_value=1, max_value=1_000))
    @settings(max_examples=50, deadline=None)
    def test_lock_beyond_balance_is_rejected_whole(self, excess):
        """PROPERTY: Locking more shares than held fails with TransferError and no effect."""
        ledger = build_ledger(funded_accounts())
        manager = WithdrawalManager(ledger, MANAGER)
        before = snapshot(ledger)

        with pytest.raises(TransferError):
            manager.lock_shares("alice", 1_000 + excess)
        assert snapshot(ledger) == before


class TestAtomicityExamples:

    def test_failed_payout_rolls_back_settlement(self):
        """Source reports more liquidity than its wallet holds: nothing is settled."""
        ledger = build_ledger(funded_accounts())
        manager = WithdrawalManager(ledger, MANAGER, liquidity=FakeLiquiditySource(unlocked=500))
        manager.lock_shares("alice", 500)
        ledger.set_balance(POOL_WALLET, ASSET, Decimal(499))
        ledger.advance_time(cycle_start(2))
        before = snapshot(ledger)

        with pytest.raises(TransferError):
            manager.redeem_position("alice", 0)

        assert snapshot(ledger) == before
        assert not manager.is_processed(2)
        assert manager.locked_shares("alice") == Decimal(500)

    def test_double_process_leaves_claims_intact(self):
        ledger = build_ledger(funded_accounts())
        manager = WithdrawalManager(ledger, MANAGER)
        manager.lock_shares("alice", 100)
        unlock_liquidity(ledger, 60)
        ledger.advance_time(at(205))
        manager.process_cycle()
        before = snapshot(ledger)

        with pytest.raises(DoubleProcessError):
            manager.process_cycle()

        assert snapshot(ledger) == before
        assert manager.redeem_position("alice", 40) == (Decimal(60), Decimal(60), Decimal(40))
