"""
Tests for book.py - Request and cycle ledgers

Tests:
- State round trip through a manager state dict
- Request storage (zero deletes, negatives refused)
- move_shares() bucket arithmetic for moves between and within cycles
"""

import pytest
from decimal import Decimal

from withdrawal_ledger import WithdrawalBook, Request, CycleState


def D(value):
    return Decimal(value)


def empty_book():
    return WithdrawalBook({}, {})


class TestRequest:

    def test_empty_request_is_not_live(self):
        assert not Request().is_live
        assert Request().locked_shares == 0

    def test_request_with_shares_is_live(self):
        assert Request(D(5), 3).is_live


class TestStateRoundTrip:

    def test_from_empty_state(self):
        book = WithdrawalBook.from_state({})
        assert list(book.requests()) == []
        assert list(book.cycles()) == []

    def test_to_state_keeps_other_fields(self):
        book = empty_book()
        book.set_request("alice", D(50), 2)
        book.set_cycle(2, CycleState(total_shares=D(50), pending_withdrawals=1))

        state = book.to_state({'share': "POOL-LP", 'nonce': 4, 'requests': {}, 'cycles': {}})

        assert state['share'] == "POOL-LP"
        assert state['nonce'] == 4
        assert state['requests'] == {'alice': {'locked_shares': D(50), 'target_cycle': 2}}
        assert state['cycles'][2]['total_shares'] == D(50)
        assert state['cycles'][2]['is_processed'] is False

    def test_round_trip(self):
        book = empty_book()
        book.set_request("bob", D(7), 4)
        book.set_cycle(4, CycleState(D(7), 1, D(3), D(1), True))

        again = WithdrawalBook.from_state(book.to_state({}))

        assert again.request("bob") == Request(D(7), 4)
        assert again.cycle(4) == CycleState(D(7), 1, D(3), D(1), True)

    def test_to_state_does_not_alias_input(self):
        original = {'requests': {}, 'cycles': {}}
        book = WithdrawalBook.from_state(original)
        book.set_request("alice", D(1), 2)
        book.to_state(original)
        assert original['requests'] == {}


class TestRequestTable:

    def test_missing_request_reads_empty(self):
        assert empty_book().request("nobody") == Request()

    def test_zero_deletes(self):
        book = empty_book()
        book.set_request("alice", D(10), 2)
        book.set_request("alice", D(0), 2)
        assert list(book.requests()) == []

    def test_negative_refused(self):
        with pytest.raises(ValueError, match="cannot be negative"):
            empty_book().set_request("alice", D(-1), 2)

    def test_requests_sorted_by_account(self):
        book = empty_book()
        book.set_request("carol", D(1), 2)
        book.set_request("alice", D(1), 2)
        assert [a for a, _ in book.requests()] == ["alice", "carol"]


class TestMoveShares:

    def test_new_position(self):
        book = empty_book()
        book.move_shares(0, 2, D(0), D(50))
        assert book.cycle(2) == CycleState(total_shares=D(50), pending_withdrawals=1)
        assert book.cycle(0) == CycleState()

    def test_move_between_cycles(self):
        book = empty_book()
        book.move_shares(0, 2, D(0), D(50))
        book.move_shares(2, 3, D(50), D(80))
        assert book.cycle(2).total_shares == 0
        assert book.cycle(2).pending_withdrawals == 0
        assert book.cycle(3) == CycleState(total_shares=D(80), pending_withdrawals=1)

    def test_grow_within_cycle_keeps_count(self):
        book = empty_book()
        book.move_shares(0, 2, D(0), D(50))
        book.move_shares(2, 2, D(50), D(80))
        assert book.cycle(2) == CycleState(total_shares=D(80), pending_withdrawals=1)

    def test_shrink_within_cycle_to_zero_drops_count(self):
        book = empty_book()
        book.move_shares(0, 2, D(0), D(50))
        book.move_shares(0, 2, D(0), D(20))
        book.move_shares(2, 2, D(50), D(0))
        assert book.cycle(2) == CycleState(total_shares=D(20), pending_withdrawals=1)

    def test_leave_cycle_entirely(self):
        book = empty_book()
        book.move_shares(0, 2, D(0), D(50))
        book.move_shares(2, 4, D(50), D(0))
        assert book.cycle(2).pending_withdrawals == 0
        assert book.cycle(4) == CycleState()

    def test_move_preserves_settlement_fields(self):
        book = empty_book()
        book.set_cycle(2, CycleState(D(100), 2, D(60), D(40), True))
        book.move_shares(2, 4, D(30), D(5))
        assert book.cycle(2) == CycleState(D(70), 1, D(60), D(40), True)
        assert book.cycle(4) == CycleState(D(5), 1)
