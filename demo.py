#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: The Cyclical Withdrawal Queue Step by Step

A pedagogical walk through one withdrawal manager sitting in front of a
pooled fund. Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Setup          - Ledger, pool, share token, withdrawal manager
  4-5:  Queueing       - Locking shares, cooldown, merging and unlocking
  6-7:  Settlement     - Processing a cycle against scarce liquidity
  8-9:  Claims         - Pro-rata redemption, reclaim and re-queue
  10:   Automation     - A keeper settling cycles with the LifecycleEngine

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
import sys

from withdrawal_ledger import (
    Ledger, cash,
    create_pool_unit, create_pool_share_unit, create_withdrawal_manager_unit,
    compute_deposit, compute_liquidity_update,
    WithdrawalManager, WithdrawalError,
    LifecycleEngine, withdrawal_manager_contract, UNIT_TYPE_WITHDRAWAL_MANAGER,
    total_assets, total_shares,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 6)   # a Monday
    window: timedelta = timedelta(days=2)          # redemptions Monday-Tuesday
    cycle: timedelta = timedelta(days=7)           # weekly cycles
    cooldown_cycles: int = 2

    alice_deposit: int = 10_000
    bob_deposit: int = 10_000
    carol_deposit: int = 5_000

    alice_lock: int = 3_000
    bob_lock: int = 7_000
    liquidity: int = 4_000


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def show_cycle(manager: WithdrawalManager, cycle: int):
    state = manager.cycle_state(cycle)
    start, end = manager.bounds_of(cycle)
    print(f"cycle {cycle} [{start:%a %d %b} - {end:%a %d %b}): "
          f"total_shares={state.total_shares} pending={state.pending_withdrawals} "
          f"funds={state.available_funds} leftover={state.leftover_shares} "
          f"processed={state.is_processed}")


# ============================================================================
# SETUP (Steps 1-3)
# ============================================================================

def step_01_ledger():
    step_header(1, "The Ledger",
        "Every balance the manager depends on lives in one double-entry ledger.")
    print("""
    The ledger is the custodian for both the pool's shares and its asset.
    It also owns the clock: time only moves when advance_time() is called,
    so cycle boundaries in this tutorial are exact and repeatable.
    """)
    wait_for_enter()

    ledger = Ledger("withdrawals", CONFIG.start_time, verbose=True, test_mode=True)
    ledger.register_unit(cash("USDC", "USD Coin"))
    for wallet in ("pool", "wm", "alice", "bob", "carol"):
        ledger.register_wallet(wallet)
    return ledger


def step_02_pool(ledger: Ledger):
    step_header(2, "The Pool",
        "Deposits mint shares; the pool decides how much of its assets is payable.")
    ledger.register_unit(create_pool_unit("POOL", "Demo Pool", "USDC", "POOL-LP", "pool"))
    ledger.register_unit(create_pool_share_unit("POOL-LP", "Demo Pool Shares", "POOL"))
    wait_for_enter()

    ledger.verbose = False
    for account, amount in (("alice", CONFIG.alice_deposit),
                            ("bob", CONFIG.bob_deposit),
                            ("carol", CONFIG.carol_deposit)):
        ledger.set_balance(account, "USDC", Decimal(amount))
        ledger.execute(compute_deposit(ledger, "POOL", account, amount))
        print(f"{account:>6} deposits {amount:>6} USDC -> {ledger.get_balance(account, 'POOL-LP')} POOL-LP")
    ledger.verbose = True

    section_header("Pool accounting")
    print(f"total_assets = {total_assets(ledger, 'POOL')}")
    print(f"total_shares = {total_shares(ledger, 'POOL')}")


def step_03_manager(ledger: Ledger) -> WithdrawalManager:
    step_header(3, "The Withdrawal Manager",
        "Withdrawals are batched into weekly cycles with a two-week cooldown.")
    ledger.register_unit(create_withdrawal_manager_unit(
        "WM", pool="POOL", asset="USDC", share="POOL-LP", manager_wallet="wm",
        period_start=CONFIG.start_time, period_duration=CONFIG.window,
        period_frequency=CONFIG.cycle, cooldown_multiplier=CONFIG.cooldown_cycles,
    ))
    manager = WithdrawalManager(ledger, "WM")
    print(f"\ncooldown       = {manager.cooldown}")
    print(f"current cycle  = {manager.current_cycle}")
    print(f"cycle 2 window = {manager.bounds_of(2)}")
    wait_for_enter()
    return manager


# ============================================================================
# QUEUEING (Steps 4-5)
# ============================================================================

def step_04_lock(ledger: Ledger, manager: WithdrawalManager):
    step_header(4, "Locking Shares",
        "A lock moves shares into the manager's wallet and targets now + cooldown.")
    ledger.verbose = False
    manager.lock_shares("alice", CONFIG.alice_lock)
    manager.lock_shares("bob", CONFIG.bob_lock // 2)
    ledger.advance_time(CONFIG.start_time + timedelta(days=3))
    manager.lock_shares("bob", CONFIG.bob_lock - CONFIG.bob_lock // 2)

    for account in ("alice", "bob"):
        request = manager.request(account)
        print(f"{account:>6}: locked={request.locked_shares} target_cycle={request.target_cycle}")
    show_cycle(manager, 2)

    section_header("Key Insight")
    print("""
    bob locked twice in cycle 0. Both locks merged into one request for
    cycle 2, so the cycle counts one pending withdrawal for him.
    """)
    wait_for_enter()


def step_05_unlock(ledger: Ledger, manager: WithdrawalManager):
    step_header(5, "Unlocking and Its Limits",
        "Shares can leave the queue until their cycle opens, never after.")
    manager.lock_shares("carol", 1_000)
    print(f"carol locks 1000, then unlocks it: remaining = {manager.unlock_shares('carol', 1_000)}")

    ledger.advance_time(manager.bounds_of(2)[0])
    try:
        manager.unlock_shares("alice", 1)
    except WithdrawalError as exc:
        print(f"alice unlock after cycle 2 opened -> {exc.kind.name}: {exc}")
    wait_for_enter()


# ============================================================================
# SETTLEMENT (Steps 6-7)
# ============================================================================

def step_06_liquidity(ledger: Ledger):
    step_header(6, "Liquidity",
        "Only unlocked funds can be paid out; the rest of the pool stays invested.")
    ledger.execute(compute_liquidity_update(ledger, "POOL", CONFIG.liquidity))
    print(f"unlocked_funds = {ledger.get_unit_state('POOL')['unlocked_funds']}")
    wait_for_enter()


def step_07_process(ledger: Ledger, manager: WithdrawalManager):
    step_header(7, "Processing the Cycle",
        "Settlement runs once, burning as many shares as the liquidity covers.")
    ledger.verbose = True
    manager.process_cycle()
    ledger.verbose = False
    show_cycle(manager, 2)

    try:
        manager.process_cycle()
    except WithdrawalError as exc:
        print(f"\nsecond attempt -> {exc.kind.name}")
    wait_for_enter()


# ============================================================================
# CLAIMS (Steps 8-9)
# ============================================================================

def step_08_redeem(ledger: Ledger, manager: WithdrawalManager):
    step_header(8, "Pro-rata Redemption",
        "Each account takes its share of the funds and of the unconverted shares.")
    funds, redeemed, reclaimed = manager.redeem_position("alice", CONFIG.alice_lock)
    print(f"alice: funds={funds} redeemed={redeemed} reclaimed={reclaimed}")
    show_cycle(manager, 2)

    funds, redeemed, reclaimed = manager.redeem_position("bob", 0)
    print(f"bob:   funds={funds} redeemed={redeemed} reclaimed={reclaimed}")
    show_cycle(manager, 2)
    wait_for_enter()


def step_09_requeue(ledger: Ledger, manager: WithdrawalManager):
    step_header(9, "Re-queueing",
        "Leftover shares not reclaimed wait for the next eligible cycle.")
    request = manager.request("bob")
    print(f"bob: locked={request.locked_shares} target_cycle={request.target_cycle}")
    show_cycle(manager, request.target_cycle)

    section_header("Events")
    for event in manager.events():
        print(f"  {event!r}")
    wait_for_enter()


# ============================================================================
# AUTOMATION (Step 10)
# ============================================================================

def step_10_keeper(ledger: Ledger, manager: WithdrawalManager):
    step_header(10, "Keeper Automation",
        "The LifecycleEngine settles each cycle as soon as its window opens.")
    engine = LifecycleEngine(ledger)
    engine.register(UNIT_TYPE_WITHDRAWAL_MANAGER, withdrawal_manager_contract)
    ledger.execute(compute_liquidity_update(ledger, "POOL", CONFIG.liquidity))

    target = manager.target_cycle("bob")
    schedule = [manager.bounds_of(c)[0] for c in range(manager.current_cycle + 1, target + 1)]
    executed = engine.run(schedule)
    print(f"keeper steps: {len(schedule)}, settlements: {len(executed)}")
    show_cycle(manager, target)

    funds, redeemed, reclaimed = manager.redeem_position("bob", 0)
    print(f"bob:   funds={funds} redeemed={redeemed} reclaimed={reclaimed}")

    section_header("Conservation")
    check = ledger.verify_double_entry({"POOL-LP": Decimal(0)})
    print(f"share supply balanced: {check['valid']}")
    print(f"manager wallet: {ledger.get_wallet_balances('wm')}")


def main():
    ledger = step_01_ledger()
    step_02_pool(ledger)
    manager = step_03_manager(ledger)
    step_04_lock(ledger, manager)
    step_05_unlock(ledger, manager)
    step_06_liquidity(ledger)
    step_07_process(ledger, manager)
    step_08_redeem(ledger, manager)
    step_09_requeue(ledger, manager)
    step_10_keeper(ledger, manager)
    print("\nDone.")


if __name__ == "__main__":
    main()
