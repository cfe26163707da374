"""
withdrawal_ledger - Cyclical withdrawal queue for a pooled fund

Share holders lock pool shares; shares settle collectively at the close of
fixed cycles against whatever liquidity the pool has unlocked, and settled
funds are split pro rata among the accounts in each cycle.

Usage:
    from datetime import datetime, timedelta
    from withdrawal_ledger import (
        Ledger, cash, create_pool_unit, create_pool_share_unit,
        create_withdrawal_manager_unit, compute_deposit, compute_liquidity_update,
        WithdrawalManager,
    )

    ledger = Ledger("main", datetime(2025, 1, 1), verbose=False, test_mode=True)
    ledger.register_unit(cash("USDC", "USD Coin"))
    ledger.register_unit(create_pool_unit("POOL", "Pool", "USDC", "POOL-LP", "pool"))
    ledger.register_unit(create_pool_share_unit("POOL-LP", "Pool Shares", "POOL"))
    ledger.register_unit(create_withdrawal_manager_unit(
        "WM", pool="POOL", asset="USDC", share="POOL-LP", manager_wallet="wm",
        period_start=datetime(2025, 1, 1), period_duration=timedelta(days=2),
        period_frequency=timedelta(days=7), cooldown_multiplier=2,
    ))
    for wallet in ("pool", "wm", "alice"):
        ledger.register_wallet(wallet)
    ledger.set_balance("alice", "USDC", 1_000)
    ledger.execute(compute_deposit(ledger, "POOL", "alice", 1_000))

    manager = WithdrawalManager(ledger, "WM")
    manager.lock_shares("alice", 400)             # targets cycle 2
    ledger.execute(compute_liquidity_update(ledger, "POOL", 300))
    ledger.advance_time(datetime(2025, 1, 15))    # cycle 2 window opens
    manager.redeem_position("alice", 100)         # (300, 300, 100)
"""

# Core types
from .core import (
    LedgerView,
    SmartContract,
    Move,
    LedgerEvent,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    empty_pending_transaction,
    make_event,
    Unit,
    UnitStateChange,
    ExecuteResult,
    cash,
    to_amount,
    SYSTEM_WALLET,
    UNIT_TYPE_CASH,
    UNIT_TYPE_POOL,
    UNIT_TYPE_POOL_SHARE,
    UNIT_TYPE_WITHDRAWAL_MANAGER,
    # Errors
    LedgerError,
    UnitNotRegistered,
    WalletNotRegistered,
    WithdrawalError,
    WithdrawalErrorKind,
    ConfigError,
    ZeroAmountError,
    TransferError,
    WithdrawDueError,
    NoRequestError,
    EarlyWithdrawError,
    DoubleProcessError,
    InsufficientLockedError,
)

# Ledger
from .ledger import Ledger

# Cycle clock, ledgers and allocation
from .cycle_clock import CycleClock
from .book import Request, CycleState, WithdrawalBook
from .allocation import Allocation, allocate, deduct

# Liquidity
from .liquidity_source import LiquiditySource, Redemption

# Units
from .units.pool import (
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
from .units.withdrawal_manager import (
    create_withdrawal_manager_unit,
    compute_lock,
    compute_unlock,
    compute_cycle_processing,
    compute_redemption,
    withdrawal_manager_contract,
    get_request,
    get_cycle,
    RedeemPlan,
    EVENT_SHARES_LOCKED,
    EVENT_SHARES_UNLOCKED,
    EVENT_WITHDRAWAL_PENDING,
    EVENT_WITHDRAWAL_CANCELLED,
    EVENT_FUNDS_WITHDRAWN,
    EVENT_CYCLE_PROCESSED,
)

# Entry points and engine
from .manager import WithdrawalManager
from .lifecycle_engine import LifecycleEngine
