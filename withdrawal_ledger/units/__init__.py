"""
Units module - Factories and operations for the pool and its withdrawal manager.

- Pool units: the pooled fund, its share token, deposits and redemptions
- Withdrawal manager units: cyclical withdrawal queue over a pool's shares

All unit factories and related functions are re-exported here for convenience.
"""

# Pool
from .pool import (
    create_pool_unit,
    create_pool_share_unit,
    compute_deposit,
    compute_liquidity_update,
    compute_pool_redemption,
    preview_withdraw,
    preview_redeem,
    total_assets,
    total_shares,
    unlocked_balance,
    PoolLiquiditySource,
)

# Withdrawal manager
from .withdrawal_manager import (
    create_withdrawal_manager_unit,
    compute_lock,
    compute_unlock,
    compute_cycle_processing,
    compute_redemption,
    withdrawal_manager_contract,
    get_request,
    get_cycle,
    cycle_clock,
    RedeemPlan,
    EVENT_SHARES_LOCKED,
    EVENT_SHARES_UNLOCKED,
    EVENT_WITHDRAWAL_PENDING,
    EVENT_WITHDRAWAL_CANCELLED,
    EVENT_FUNDS_WITHDRAWN,
    EVENT_CYCLE_PROCESSED,
)
