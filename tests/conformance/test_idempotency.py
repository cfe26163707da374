"""
Idempotency Conformance Tests

INVARIANT: Duplicate execution is detected and prevented.

    ∀ transaction T:
        execute(T) = APPLIED ⟹ execute(T) again = ALREADY_APPLIED
        state after second execute = state after first execute

Every manager operation bumps the manager's nonce, so two genuinely
separate operations never share an intent id even when they move the same
shares between the same wallets.
"""

from decimal import Decimal
from hypothesis import given, settings
from hypothesis import strategies as st

from withdrawal_ledger import (
    ExecuteResult, compute_lock, compute_unlock, compute_cycle_processing, compute_redemption,
    PoolLiquiditySource,
)

from tests.builders import MANAGER, POOL, cycle_start, build_ledger, unlock_liquidity
from tests.conformance.operations import funded_accounts, snapshot


class TestIdempotencyProperties:
    """Property-based idempotency tests."""

    @given(st.integers(min_value=1, max_value=1_000), st.integers(min_value=2, max_value=5))
    @settings(max_examples=50, deadline=None)
    def test_replayed_lock_applies_once(self, amount, repeats):
        ledger = build_ledger(funded_accounts())
        pending = compute_lock(ledger, MANAGER, "alice", amount)

        assert ledger.execute(pending) == ExecuteResult.APPLIED
        after_first = snapshot(ledger)
        for _ in range(repeats - 1):
            assert ledger.execute(pending) == ExecuteResult.ALREADY_APPLIED
        assert snapshot(ledger) == after_first

    @given(st.integers(min_value=1, max_value=10))
    @settings(max_examples=25, deadline=None)
    def test_repeated_lock_unlock_rounds_all_apply(self, rounds):
        """PROPERTY: Identical user actions at the same instant are distinct intents."""
        ledger = build_ledger(funded_accounts())
        for _ in range(rounds):
            assert ledger.execute(compute_lock(ledger, MANAGER, "alice", 10)) == ExecuteResult.APPLIED
            assert ledger.execute(compute_unlock(ledger, MANAGER, "alice", 10)) == ExecuteResult.APPLIED
        assert len(ledger.transaction_log) == 3 + 2 * rounds


class TestIdempotencyExamples:

    def test_replayed_settlement_applies_once(self):
        ledger = build_ledger(funded_accounts())
        ledger.execute(compute_lock(ledger, MANAGER, "alice", 100))
        unlock_liquidity(ledger, 50)
        ledger.advance_time(cycle_start(2))

        pending = compute_cycle_processing(ledger, MANAGER, PoolLiquiditySource(POOL))
        assert ledger.execute(pending) == ExecuteResult.APPLIED
        assert ledger.execute(pending) == ExecuteResult.ALREADY_APPLIED
        assert ledger.get_balance("wm", "USDC") == Decimal(50)

    def test_stale_redemption_rejected(self):
        """A redemption built before settlement cannot apply after it."""
        ledger = build_ledger(funded_accounts())
        ledger.execute(compute_lock(ledger, MANAGER, "alice", 100))
        unlock_liquidity(ledger, 50)
        ledger.advance_time(cycle_start(2))
        source = PoolLiquiditySource(POOL)

        redemption = compute_redemption(ledger, MANAGER, "alice", 0, source)
        ledger.execute(compute_cycle_processing(ledger, MANAGER, source))

        assert ledger.execute(redemption.pending) == ExecuteResult.REJECTED
        assert ledger.last_rejection == f"stale state for {MANAGER}"
