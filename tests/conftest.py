"""
conftest.py - Shared pytest fixtures for withdrawal ledger tests
"""

import pytest
from dataclasses import dataclass

from withdrawal_ledger import Ledger, WithdrawalManager

from tests.builders import ACCOUNTS, MANAGER, build_ledger


@dataclass
class Setup:
    ledger: Ledger
    manager: WithdrawalManager


@pytest.fixture
def setup():
    """Manager over a pool where each account has deposited 1,000."""
    ledger = build_ledger({account: 1_000 for account in ACCOUNTS})
    return Setup(ledger, WithdrawalManager(ledger, MANAGER))


@pytest.fixture
def ledger(setup):
    return setup.ledger


@pytest.fixture
def manager(setup):
    return setup.manager
