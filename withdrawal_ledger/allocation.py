"""
allocation.py - Pro-rata allocation of a settled cycle

A processed cycle holds ``available_funds`` and ``leftover_shares`` to be
shared among the accounts still targeting it, in proportion to their locked
shares over the cycle's remaining ``total_shares``.

Each claimant receives the truncated proportional slice. Claimants leave the
cycle as they redeem (total_shares and pending_withdrawals shrink), so the
ratio is always taken over what remains, and the last claimant receives
everything left, truncation dust included. Summed over all claimants the
cycle pays out exactly the funds and leftover fixed at processing time.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from decimal import Decimal

from .book import CycleState
from .core import mul_div


@dataclass(frozen=True, slots=True)
class Allocation:
    """
    One account's entitlement from a processed cycle.

    Attributes:
        funds: Settled funds owed to the account
        leftover_shares: Unconverted shares attributed to the account
        redeemed_shares: Shares of the account that were converted to funds
    """
    funds: Decimal
    leftover_shares: Decimal
    redeemed_shares: Decimal


def allocate(cycle: CycleState, personal_shares: Decimal) -> Allocation:
    """
    Compute an account's share of a processed cycle.

    Args:
        cycle: Cycle aggregates before this account's claim
        personal_shares: The account's locked shares in the cycle

    Raises:
        ValueError: If the cycle is unprocessed or the account's shares are
            not part of the cycle's total.
    """
    if not cycle.is_processed:
        raise ValueError("cannot allocate from an unprocessed cycle")
    if personal_shares <= 0 or personal_shares > cycle.total_shares:
        raise ValueError(
            f"personal_shares {personal_shares} outside cycle total {cycle.total_shares}"
        )

    if cycle.pending_withdrawals > 1:
        funds = mul_div(cycle.available_funds, personal_shares, cycle.total_shares)
        leftover = mul_div(cycle.leftover_shares, personal_shares, cycle.total_shares)
    else:
        # Sole remaining claimant collects the dust.
        funds = cycle.available_funds
        leftover = cycle.leftover_shares

    return Allocation(
        funds=funds,
        leftover_shares=leftover,
        redeemed_shares=personal_shares - leftover,
    )


def deduct(cycle: CycleState, allocation: Allocation) -> CycleState:
    """Cycle aggregates after paying out an allocation."""
    return replace(
        cycle,
        available_funds=cycle.available_funds - allocation.funds,
        leftover_shares=cycle.leftover_shares - allocation.leftover_shares,
    )
