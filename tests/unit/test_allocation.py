"""
Tests for allocation.py - Pro-rata allocation of a settled cycle

Tests:
- The 30/70 split with the second claimant collecting the rest
- Truncation dust going to the last claimant
- Input validation
- Property: sequential claims pay out exactly the settled funds and leftover
"""

import pytest
from dataclasses import replace
from decimal import Decimal
from hypothesis import given, settings
from hypothesis import strategies as st

from withdrawal_ledger import CycleState, allocate, deduct


def D(value):
    return Decimal(value)


def claim(cycle: CycleState, shares: Decimal):
    """One claimant redeems and leaves the cycle."""
    allocation = allocate(cycle, shares)
    after = deduct(cycle, allocation)
    after = replace(
        after,
        total_shares=after.total_shares - shares,
        pending_withdrawals=after.pending_withdrawals - 1,
    )
    return allocation, after


class TestAllocate:

    def test_thirty_seventy_split(self):
        cycle = CycleState(D(100), 2, available_funds=D(100), is_processed=True)

        first, cycle = claim(cycle, D(30))
        assert first.funds == D(30)
        assert first.redeemed_shares == D(30)
        assert cycle.available_funds == D(70)
        assert cycle.pending_withdrawals == 1

        second, cycle = claim(cycle, D(70))
        assert second.funds == D(70)
        assert cycle.available_funds == 0

    def test_last_claimant_collects_dust(self):
        cycle = CycleState(D(3), 3, available_funds=D(10), is_processed=True)

        a, cycle = claim(cycle, D(1))
        b, cycle = claim(cycle, D(1))
        c, cycle = claim(cycle, D(1))

        assert (a.funds, b.funds, c.funds) == (D(3), D(3), D(4))
        assert cycle.available_funds == 0

    def test_leftover_split(self):
        # 100 shares, 40 converted, 60 leftover
        cycle = CycleState(D(100), 2, D(40), D(60), True)
        allocation = allocate(cycle, D(25))
        assert allocation.funds == D(10)
        assert allocation.leftover_shares == D(15)
        assert allocation.redeemed_shares == D(10)

    def test_nothing_settled(self):
        cycle = CycleState(D(50), 1, D(0), D(50), True)
        allocation = allocate(cycle, D(50))
        assert allocation.funds == 0
        assert allocation.leftover_shares == D(50)
        assert allocation.redeemed_shares == 0

    def test_unprocessed_cycle_refused(self):
        with pytest.raises(ValueError, match="unprocessed"):
            allocate(CycleState(D(10), 1), D(10))

    @pytest.mark.parametrize("shares", [D(0), D(11)])
    def test_shares_outside_total_refused(self, shares):
        with pytest.raises(ValueError, match="outside cycle total"):
            allocate(CycleState(D(10), 1, D(5), D(5), True), shares)

    def test_deduct(self):
        cycle = CycleState(D(100), 2, D(40), D(60), True)
        after = deduct(cycle, allocate(cycle, D(25)))
        assert after.available_funds == D(30)
        assert after.leftover_shares == D(45)
        assert after.total_shares == D(100)  # membership is updated by the book


class TestAllocationProperties:

    @given(
        positions=st.lists(st.integers(min_value=1, max_value=10**9), min_size=1, max_size=12),
        converted_fraction=st.fractions(min_value=0, max_value=1),
        price=st.integers(min_value=1, max_value=10**6),
    )
    @settings(max_examples=300)
    def test_claims_sum_to_settlement(self, positions, converted_fraction, price):
        """
        PROPERTY: in any claim order, claimants receive exactly the settled
        funds and leftover, and nobody gets more leftover than they locked.
        """
        total = sum(positions)
        converted = total * converted_fraction.numerator // converted_fraction.denominator
        funds = D(converted * price)
        leftover = D(total - converted)
        cycle = CycleState(D(total), len(positions), funds, leftover, True)

        paid = D(0)
        returned = D(0)
        for shares in positions:
            allocation, cycle = claim(cycle, D(shares))
            assert 0 <= allocation.leftover_shares <= shares
            assert allocation.funds >= 0
            paid += allocation.funds
            returned += allocation.leftover_shares

        assert paid == funds
        assert returned == leftover
        assert cycle.total_shares == 0
        assert cycle.pending_withdrawals == 0
