"""
pool.py - Reference pooled fund and its share token

The pool is the liquidity source a withdrawal manager settles against:
1. create_pool_unit() / create_pool_share_unit() - Factories
2. compute_deposit() - Assets in, shares minted at the current rate
3. compute_liquidity_update() - Set how much of the pool's assets can be paid out
4. preview_withdraw() / preview_redeem() - Exchange-rate conversions
5. compute_pool_redemption() - Burn shares for funds, capped at unlocked funds
6. PoolLiquiditySource - LiquiditySource adapter over a pool unit

Accounting:
    total_assets = pool wallet's balance of the asset
    total_shares = shares issued by the system wallet (its negative balance)

Shares are minted from and burned to the system wallet, so share supply is
always visible on the ledger. How assets become unlocked (loan repayments,
yield) is outside this module; compute_liquidity_update() only records it.
"""

from __future__ import annotations
from decimal import Decimal

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType,
    SYSTEM_WALLET, UNIT_TYPE_POOL, UNIT_TYPE_POOL_SHARE, ZERO,
    Amount, build_transaction, to_amount, mul_div, mul_div_up,
    _freeze_state,
)
from ..liquidity_source import Redemption


def create_pool_unit(
    symbol: str,
    name: str,
    asset: str,
    share: str,
    pool_wallet: str,
) -> Unit:
    """
    Create a pool unit.

    Args:
        symbol: Pool identifier (e.g. "POOL")
        name: Human-readable name
        asset: Symbol of the asset the pool holds (e.g. "USDC")
        share: Symbol of the pool's share unit
        pool_wallet: Wallet holding the pool's assets

    Returns:
        Unit whose state holds the pool terms, unlocked_funds (initially 0)
        and a nonce counting liquidity updates.
    """
    for label, value in (("asset", asset), ("share", share), ("pool_wallet", pool_wallet)):
        if not value or not value.strip():
            raise ValueError(f"{label} cannot be empty")
    if pool_wallet == SYSTEM_WALLET:
        raise ValueError("pool_wallet cannot be the system wallet")

    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_POOL,
        max_balance=ZERO,  # the pool itself is never held
        _frozen_state=_freeze_state({
            'asset': asset,
            'share': share,
            'pool_wallet': pool_wallet,
            'unlocked_funds': ZERO,
            'nonce': 0,
        }),
    )


def create_pool_share_unit(symbol: str, name: str, pool: str) -> Unit:
    """Create the share token of a pool. Balances cannot go negative."""
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_POOL_SHARE,
        _frozen_state=_freeze_state({'pool': pool}),
    )


# ============================================================================
# READ-ONLY ACCOUNTING
# ============================================================================

def total_assets(view: LedgerView, pool: str) -> Decimal:
    state = view.get_unit_state(pool)
    return view.get_balance(state['pool_wallet'], state['asset'])


def total_shares(view: LedgerView, pool: str) -> Decimal:
    state = view.get_unit_state(pool)
    return -view.get_balance(SYSTEM_WALLET, state['share'])


def unlocked_balance(view: LedgerView, pool: str) -> Decimal:
    """Funds payable now: recorded unlocked funds, bounded by assets held."""
    state = view.get_unit_state(pool)
    return min(state['unlocked_funds'], total_assets(view, pool))


def preview_withdraw(view: LedgerView, pool: str, assets: Decimal) -> Decimal:
    """Shares to burn for ``assets``, rounded up against the redeemer."""
    if assets <= 0:
        return ZERO
    supply = total_shares(view, pool)
    held = total_assets(view, pool)
    if supply == 0 or held == 0:
        return assets
    return mul_div_up(assets, supply, held)


def preview_redeem(view: LedgerView, pool: str, shares: Decimal) -> Decimal:
    """Assets paid for ``shares``, rounded down against the redeemer."""
    if shares <= 0:
        return ZERO
    supply = total_shares(view, pool)
    if supply == 0:
        return ZERO
    return mul_div(shares, total_assets(view, pool), supply)


# ============================================================================
# OPERATIONS
# ============================================================================

def compute_deposit(
    view: LedgerView,
    pool: str,
    investor: str,
    assets: Amount,
) -> PendingTransaction:
    """
    Deposit assets and mint shares at the current exchange rate.

    The first deposit mints one share per asset unit.

    Raises:
        ValueError: If assets is zero or would mint zero shares.
    """
    assets = to_amount(assets, "assets")
    if assets == 0:
        raise ValueError("assets must be positive")

    state = view.get_unit_state(pool)
    supply = total_shares(view, pool)
    held = total_assets(view, pool)
    shares = assets if supply == 0 or held == 0 else mul_div(assets, supply, held)
    if shares == 0:
        raise ValueError(f"deposit of {assets} mints zero shares")

    moves = [
        Move(assets, state['asset'], investor, state['pool_wallet'], f'deposit_{pool}_assets'),
        Move(shares, state['share'], SYSTEM_WALLET, investor, f'deposit_{pool}_mint'),
    ]
    origin = TransactionOrigin(OriginType.USER_ACTION, investor, pool, "DEPOSIT")
    return build_transaction(view, moves, origin=origin)


def compute_liquidity_update(
    view: LedgerView,
    pool: str,
    unlocked_funds: Amount,
) -> PendingTransaction:
    """Record the amount of the pool's assets that can currently be paid out."""
    unlocked_funds = to_amount(unlocked_funds, "unlocked_funds")
    old_state = view.get_unit_state(pool)
    new_state = {**old_state, 'unlocked_funds': unlocked_funds, 'nonce': old_state['nonce'] + 1}
    origin = TransactionOrigin(OriginType.SYSTEM, pool, pool, "LIQUIDITY_UPDATE")
    return build_transaction(
        view, [], [UnitStateChange(pool, old_state, new_state)], origin=origin
    )


def compute_pool_redemption(
    view: LedgerView,
    pool: str,
    owner: str,
    shares: Decimal,
) -> Redemption:
    """
    Describe burning ``shares`` of ``owner`` for assets.

    Payout is preview_redeem(shares) capped at the unlocked balance, which
    is reduced by the amount paid.
    """
    if shares <= 0:
        return Redemption()

    state = view.get_unit_state(pool)
    funds = min(preview_redeem(view, pool, shares), unlocked_balance(view, pool))

    moves = [Move(shares, state['share'], owner, SYSTEM_WALLET, f'redeem_{pool}_burn')]
    if funds > 0:
        moves.append(Move(funds, state['asset'], state['pool_wallet'], owner, f'redeem_{pool}_payout'))
    new_state = {**state, 'unlocked_funds': state['unlocked_funds'] - funds}

    return Redemption(
        shares=shares,
        funds=funds,
        moves=tuple(moves),
        state_changes=(UnitStateChange(pool, state, new_state),),
    )


class PoolLiquiditySource:
    """LiquiditySource backed by a pool unit on the same ledger."""

    def __init__(self, pool: str):
        self.pool = pool

    def unlocked_balance(self, view: LedgerView) -> Decimal:
        return unlocked_balance(view, self.pool)

    def preview_withdraw(self, view: LedgerView, funds: Decimal) -> Decimal:
        return preview_withdraw(view, self.pool, funds)

    def redeem(self, view: LedgerView, owner: str, shares: Decimal) -> Redemption:
        return compute_pool_redemption(view, self.pool, owner, shares)

    def __repr__(self):
        return f"PoolLiquiditySource({self.pool})"
