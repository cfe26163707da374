"""
liquidity_source.py - Liquidity source interface for cycle settlement

Settlement converts a cycle's locked shares into funds through a liquidity
source. The manager only depends on this protocol, so processing can be
exercised against the reference pool (units.pool.PoolLiquiditySource) or a
test double.

Redemption is expressed the same way every operation is: the source returns
the moves and state changes that burning the shares implies, and the caller
folds them into its own transaction. Nothing is applied until the ledger
executes that transaction as a whole.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, Tuple, runtime_checkable

from .core import LedgerView, Move, UnitStateChange, ZERO


@dataclass(frozen=True, slots=True)
class Redemption:
    """
    Result of redeeming shares against a liquidity source.

    Attributes:
        shares: Shares burned
        funds: Funds paid to the owner
        moves: Transfers implementing the burn and the payout
        state_changes: Source state updates (e.g. reduced unlocked funds)
    """
    shares: Decimal = ZERO
    funds: Decimal = ZERO
    moves: Tuple[Move, ...] = ()
    state_changes: Tuple[UnitStateChange, ...] = ()


@runtime_checkable
class LiquiditySource(Protocol):
    """
    Source of redeemable funds for a pool share.

    Implementations must be side-effect free: redeem() describes the
    redemption, it does not perform it.
    """

    def unlocked_balance(self, view: LedgerView) -> Decimal:
        """Funds the source can pay out right now."""
        ...

    def preview_withdraw(self, view: LedgerView, funds: Decimal) -> Decimal:
        """Shares that must be burned to withdraw ``funds`` at the current rate."""
        ...

    def redeem(self, view: LedgerView, owner: str, shares: Decimal) -> Redemption:
        """Burn ``shares`` held by ``owner`` and pay out the corresponding funds."""
        ...
