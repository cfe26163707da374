"""
Random withdrawal-manager workloads for property-based conformance tests.

An operation is a tuple (kind, account, amount, seconds):
    lock / unlock / redeem  - account entry points (amount; reclaim for redeem)
    process                 - permissionless cycle settlement
    liquidity               - pool marks ``amount`` assets as payable
    advance                 - ledger time moves forward ``seconds``
"""

from datetime import timedelta

from hypothesis import strategies as st

from withdrawal_ledger import WithdrawalError

from tests.builders import unlock_liquidity


ACCOUNTS = ("alice", "bob", "carol")
KINDS = ("lock", "lock", "unlock", "redeem", "redeem", "process", "liquidity", "advance", "advance")


@st.composite
def operation(draw):
    return (
        draw(st.sampled_from(KINDS)),
        draw(st.sampled_from(ACCOUNTS)),
        draw(st.integers(min_value=0, max_value=600)),
        draw(st.integers(min_value=0, max_value=150)),
    )


def operation_sequences(max_size=40):
    return st.lists(operation(), min_size=1, max_size=max_size)


def apply_operation(ledger, manager, op):
    """
    Run one operation.

    Returns the WithdrawalError it raised, or None. Anything else propagates.
    """
    kind, account, amount, seconds = op
    try:
        if kind == "lock":
            manager.lock_shares(account, amount)
        elif kind == "unlock":
            manager.unlock_shares(account, amount)
        elif kind == "redeem":
            manager.redeem_position(account, amount)
        elif kind == "process":
            manager.process_cycle()
        elif kind == "liquidity":
            unlock_liquidity(ledger, amount)
        else:
            ledger.advance_time(ledger.current_time + timedelta(seconds=seconds))
    except WithdrawalError as exc:
        return exc
    return None


def snapshot(ledger):
    """Everything an operation may touch."""
    return (
        {w: ledger.get_wallet_balances(w) for w in sorted(ledger.list_wallets())},
        {u: ledger.get_unit_state(u) for u in ledger.list_units()},
        len(ledger.transaction_log),
        list(ledger.events()),
    )


def funded_accounts():
    return {account: 1_000 for account in ACCOUNTS}

