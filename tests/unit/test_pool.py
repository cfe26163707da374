"""
Tests for pool.py - Reference pooled fund and its share token

Tests:
- Factories and their validation
- Deposits minting shares at the current exchange rate
- preview_withdraw / preview_redeem rounding
- compute_pool_redemption capped at unlocked funds
- PoolLiquiditySource delegating to the pool
"""

import pytest
from decimal import Decimal

from withdrawal_ledger import (
    ExecuteResult, LiquiditySource, SYSTEM_WALLET,
    create_pool_unit, create_pool_share_unit,
    compute_deposit, compute_liquidity_update, compute_pool_redemption,
    preview_withdraw, preview_redeem, total_assets, total_shares, unlocked_balance,
    PoolLiquiditySource,
)

from tests.builders import (
    ASSET, SHARE, POOL, POOL_WALLET, build_ledger, unlock_liquidity, accrue_yield,
)


class TestCreatePool:

    def test_pool_state(self):
        unit = create_pool_unit("P", "Pool", "USDC", "P-LP", "vault")
        assert unit.unit_type == "POOL"
        assert unit.state == {
            'asset': "USDC", 'share': "P-LP", 'pool_wallet': "vault",
            'unlocked_funds': Decimal(0), 'nonce': 0,
        }

    def test_pool_wallet_cannot_be_system(self):
        with pytest.raises(ValueError, match="system wallet"):
            create_pool_unit("P", "Pool", "USDC", "P-LP", SYSTEM_WALLET)

    def test_empty_asset(self):
        with pytest.raises(ValueError, match="asset cannot be empty"):
            create_pool_unit("P", "Pool", "", "P-LP", "vault")

    def test_share_unit(self):
        unit = create_pool_share_unit("P-LP", "Pool Shares", "P")
        assert unit.unit_type == "POOL_SHARE"
        assert unit.state == {'pool': "P"}


class TestDeposit:

    def test_first_deposit_is_one_to_one(self):
        ledger = build_ledger({"alice": 500})
        assert ledger.get_balance("alice", SHARE) == Decimal(500)
        assert ledger.get_balance("alice", ASSET) == 0
        assert total_assets(ledger, POOL) == Decimal(500)
        assert total_shares(ledger, POOL) == Decimal(500)

    def test_deposit_after_yield_mints_fewer_shares(self):
        ledger = build_ledger({"alice": 1_000})
        accrue_yield(ledger, 1_000)  # 2 assets per share
        ledger.set_balance("bob", ASSET, Decimal(300))

        assert ledger.execute(compute_deposit(ledger, POOL, "bob", 300)) == ExecuteResult.APPLIED
        assert ledger.get_balance("bob", SHARE) == Decimal(150)

    def test_zero_deposit_refused(self):
        ledger = build_ledger({"alice": 1_000})
        with pytest.raises(ValueError, match="assets must be positive"):
            compute_deposit(ledger, POOL, "alice", 0)

    def test_deposit_minting_nothing_refused(self):
        ledger = build_ledger({"alice": 1})
        accrue_yield(ledger, 9)  # 10 assets per share
        ledger.set_balance("bob", ASSET, Decimal(5))
        with pytest.raises(ValueError, match="mints zero shares"):
            compute_deposit(ledger, POOL, "bob", 5)

    def test_deposit_without_funds_rejected(self):
        ledger = build_ledger({"alice": 1_000})
        result = ledger.execute(compute_deposit(ledger, POOL, "bob", 10))
        assert result == ExecuteResult.REJECTED
        assert ledger.get_balance("bob", SHARE) == 0


class TestPreviews:

    def test_one_to_one(self):
        ledger = build_ledger({"alice": 1_000})
        assert preview_withdraw(ledger, POOL, Decimal(300)) == Decimal(300)
        assert preview_redeem(ledger, POOL, Decimal(300)) == Decimal(300)

    def test_rounding_against_redeemer(self):
        ledger = build_ledger({"alice": 3})
        accrue_yield(ledger, 7)  # 10 assets over 3 shares
        # 5 assets need 1.5 shares -> 2; 1 share is worth 3.33 -> 3
        assert preview_withdraw(ledger, POOL, Decimal(5)) == Decimal(2)
        assert preview_redeem(ledger, POOL, Decimal(1)) == Decimal(3)

    def test_zero_inputs(self):
        ledger = build_ledger({"alice": 10})
        assert preview_withdraw(ledger, POOL, Decimal(0)) == 0
        assert preview_redeem(ledger, POOL, Decimal(0)) == 0

    def test_unlocked_balance_bounded_by_assets(self):
        ledger = build_ledger({"alice": 100})
        unlock_liquidity(ledger, 250)
        assert ledger.get_unit_state(POOL)['unlocked_funds'] == Decimal(250)
        assert unlocked_balance(ledger, POOL) == Decimal(100)


class TestPoolRedemption:

    def test_redemption_capped_at_unlocked(self):
        ledger = build_ledger({"alice": 1_000})
        unlock_liquidity(ledger, 300)

        redemption = compute_pool_redemption(ledger, POOL, "alice", Decimal(400))

        assert redemption.shares == Decimal(400)
        assert redemption.funds == Decimal(300)
        (change,) = redemption.state_changes
        assert change.new_state['unlocked_funds'] == 0

    def test_redemption_is_only_a_description(self):
        ledger = build_ledger({"alice": 1_000})
        unlock_liquidity(ledger, 300)
        compute_pool_redemption(ledger, POOL, "alice", Decimal(100))
        assert ledger.get_balance("alice", SHARE) == Decimal(1_000)
        assert unlocked_balance(ledger, POOL) == Decimal(300)

    def test_zero_shares(self):
        ledger = build_ledger({"alice": 10})
        redemption = compute_pool_redemption(ledger, POOL, "alice", Decimal(0))
        assert redemption.moves == ()
        assert redemption.funds == 0

    def test_no_liquidity_burns_without_payout(self):
        ledger = build_ledger({"alice": 10})
        redemption = compute_pool_redemption(ledger, POOL, "alice", Decimal(4))
        assert [m.unit_symbol for m in redemption.moves] == [SHARE]
        assert redemption.funds == 0


class TestPoolLiquiditySource:

    def test_satisfies_protocol(self):
        assert isinstance(PoolLiquiditySource(POOL), LiquiditySource)

    def test_delegates_to_pool(self):
        ledger = build_ledger({"alice": 1_000})
        unlock_liquidity(ledger, 200)
        source = PoolLiquiditySource(POOL)

        assert source.unlocked_balance(ledger) == Decimal(200)
        assert source.preview_withdraw(ledger, Decimal(200)) == Decimal(200)
        redemption = source.redeem(ledger, "alice", Decimal(50))
        assert redemption.funds == Decimal(50)
        assert {(m.source, m.dest) for m in redemption.moves} == {
            ("alice", SYSTEM_WALLET), (POOL_WALLET, "alice"),
        }
