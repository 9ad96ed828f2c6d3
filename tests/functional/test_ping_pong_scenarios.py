"""
test_ping_pong_scenarios.py - End-to-end ping-pong scenarios

Tests:
- Single-party lifecycle on the reference timeline (ping at 1000, pong at 4600)
- Several parties sharing one custody wallet
- Owner retuning between ping and pong
- Re-entrant calls from event subscribers
- Concurrent pongs built from the same snapshot
- Historical reconstruction with clone_at() and replay()
"""

import pytest
from decimal import Decimal

from pingpong import (
    CannotPongBeforeDeadline, ExecuteResult, LedgerError, NoPingFound, PING_EVENT, PONG_EVENT,
    call, compute_pong, deploy, did_user_ping, get_pong_enable_timestamp,
    get_time_to_pong, get_user_ping_timestamp,
)

from tests.conftest import (
    TOKEN, CONTRACT, OWNER, DURATION, START_TIME,
    make_ledger, payment,
)


class TestReferenceTimeline:

    def test_full_lifecycle(self, contract_ledger):
        ledger = contract_ledger

        call(ledger, CONTRACT, "alice", "ping", payment=payment())
        assert get_pong_enable_timestamp(ledger, CONTRACT, "alice") == 4600
        assert get_time_to_pong(ledger, CONTRACT, "alice") == 3600

        ledger.advance_time(2000)
        assert get_time_to_pong(ledger, CONTRACT, "alice") == 2600

        ledger.advance_time(4000)
        with pytest.raises(CannotPongBeforeDeadline):
            call(ledger, CONTRACT, "alice", "pong")
        assert did_user_ping(ledger, CONTRACT, "alice")

        ledger.advance_time(4600)
        assert get_time_to_pong(ledger, CONTRACT, "alice") == 0
        call(ledger, CONTRACT, "alice", "pong")

        assert ledger.get_balance("alice", TOKEN) == Decimal("1000")
        assert ledger.get_balance(CONTRACT, TOKEN) == Decimal("0")
        assert get_user_ping_timestamp(ledger, CONTRACT, "alice") == 0
        assert get_time_to_pong(ledger, CONTRACT, "alice") is None
        assert [e.name for e in ledger.events(contract=CONTRACT)] == [PING_EVENT, PONG_EVENT]
        assert ledger.verify_double_entry()['valid']


class TestMultipleParties:

    def test_independent_deadlines(self, contract_ledger):
        ledger = contract_ledger
        call(ledger, CONTRACT, "alice", "ping", payment=payment())
        ledger.advance_time(START_TIME + 1000)
        call(ledger, CONTRACT, "bob", "ping", payment=payment())
        assert ledger.get_balance(CONTRACT, TOKEN) == Decimal("200")

        ledger.advance_time(START_TIME + DURATION)
        call(ledger, CONTRACT, "alice", "pong")
        with pytest.raises(CannotPongBeforeDeadline):
            call(ledger, CONTRACT, "bob", "pong")

        ledger.advance_time(START_TIME + 1000 + DURATION)
        call(ledger, CONTRACT, "bob", "pong")
        assert ledger.get_balance(CONTRACT, TOKEN) == Decimal("0")
        for party in ("alice", "bob"):
            assert ledger.get_balance(party, TOKEN) == Decimal("1000")

    def test_two_contracts_do_not_interfere(self, contract_ledger):
        ledger = contract_ledger
        deploy(ledger, "PINGPONG2", OWNER, ping_amount=10, duration_in_seconds=10,
               accepted_payment_token=TOKEN)
        call(ledger, CONTRACT, "alice", "ping", payment=payment())
        call(ledger, "PINGPONG2", "alice", "ping", payment=payment(10))

        ledger.advance_time(START_TIME + 10)
        call(ledger, "PINGPONG2", "alice", "pong")
        assert did_user_ping(ledger, CONTRACT, "alice")
        assert not did_user_ping(ledger, "PINGPONG2", "alice")
        assert ledger.get_balance(CONTRACT, TOKEN) == Decimal("100")
        assert ledger.get_balance("PINGPONG2", TOKEN) == Decimal("0")


class TestRetuning:

    def test_lower_amount_leaves_surplus_in_custody(self, contract_ledger):
        ledger = contract_ledger
        call(ledger, CONTRACT, "alice", "ping", payment=payment())
        call(ledger, CONTRACT, OWNER, "upgrade", ping_amount=40, duration_in_seconds=DURATION)
        ledger.advance_time(START_TIME + DURATION)
        call(ledger, CONTRACT, "alice", "pong")
        assert ledger.get_balance("alice", TOKEN) == Decimal("940")
        assert ledger.get_balance(CONTRACT, TOKEN) == Decimal("60")

    def test_higher_amount_limited_by_custody(self, contract_ledger):
        ledger = contract_ledger
        call(ledger, CONTRACT, "alice", "ping", payment=payment())
        call(ledger, CONTRACT, "bob", "ping", payment=payment())
        call(ledger, CONTRACT, OWNER, "upgrade", ping_amount=150, duration_in_seconds=DURATION)
        ledger.advance_time(START_TIME + DURATION)

        call(ledger, CONTRACT, "alice", "pong")
        assert ledger.get_balance(CONTRACT, TOKEN) == Decimal("50")

        with pytest.raises(LedgerError, match="rejected"):
            call(ledger, CONTRACT, "bob", "pong")
        assert did_user_ping(ledger, CONTRACT, "bob")
        assert ledger.get_balance("bob", TOKEN) == Decimal("900")

    def test_paused_contract_keeps_deposits(self, contract_ledger):
        ledger = contract_ledger
        call(ledger, CONTRACT, "alice", "ping", payment=payment())
        call(ledger, CONTRACT, OWNER, "pause")
        ledger.advance_time(START_TIME + 10 * DURATION)
        assert get_time_to_pong(ledger, CONTRACT, "alice") == 0
        assert ledger.get_balance(CONTRACT, TOKEN) == Decimal("100")


class TestReentrancy:

    def test_subscriber_cannot_pong_twice(self, contract_ledger):
        ledger = contract_ledger
        call(ledger, CONTRACT, "alice", "ping", payment=payment())
        ledger.advance_time(START_TIME + DURATION)

        attempts = []

        def reenter(event):
            try:
                call(ledger, CONTRACT, event.party, "pong")
                attempts.append("paid")
            except NoPingFound:
                attempts.append("refused")

        ledger.subscribe(reenter, name=PONG_EVENT)
        call(ledger, CONTRACT, "alice", "pong")

        assert attempts == ["refused"]
        assert ledger.get_balance("alice", TOKEN) == Decimal("1000")
        assert ledger.get_balance(CONTRACT, TOKEN) == Decimal("0")

    def test_subscriber_error_propagates_after_commit(self, contract_ledger):
        ledger = contract_ledger

        def explode(event):
            raise RuntimeError("listener failed")

        ledger.subscribe(explode)
        with pytest.raises(RuntimeError):
            call(ledger, CONTRACT, "alice", "ping", payment=payment())
        assert did_user_ping(ledger, CONTRACT, "alice")
        assert ledger.get_balance(CONTRACT, TOKEN) == Decimal("100")


class TestConcurrentSnapshots:

    def test_same_pong_submitted_twice(self, contract_ledger):
        ledger = contract_ledger
        call(ledger, CONTRACT, "alice", "ping", payment=payment())
        ledger.advance_time(START_TIME + DURATION)

        first = compute_pong(ledger, CONTRACT, "alice")
        second = compute_pong(ledger, CONTRACT, "alice")
        assert ledger.execute(first) == ExecuteResult.APPLIED
        assert ledger.execute(second) == ExecuteResult.ALREADY_APPLIED
        assert ledger.get_balance("alice", TOKEN) == Decimal("1000")

    def test_stale_pong_rejected_after_other_party_moves(self):
        ledger = make_ledger()
        deploy(ledger, CONTRACT, OWNER, ping_amount=100, duration_in_seconds=DURATION,
               accepted_payment_token=TOKEN)
        call(ledger, CONTRACT, "alice", "ping", payment=payment())
        ledger.advance_time(START_TIME + DURATION)

        stale = compute_pong(ledger, CONTRACT, "alice")
        call(ledger, CONTRACT, "bob", "ping", payment=payment())

        assert ledger.execute(stale) == ExecuteResult.REJECTED
        assert did_user_ping(ledger, CONTRACT, "alice")
        call(ledger, CONTRACT, "alice", "pong")
        assert ledger.get_balance("alice", TOKEN) == Decimal("1000")


class TestHistory:

    def _history(self, ledger):
        call(ledger, CONTRACT, "alice", "ping", payment=payment())
        ledger.advance_time(START_TIME + 500)
        call(ledger, CONTRACT, "bob", "ping", payment=payment())
        ledger.advance_time(START_TIME + DURATION)
        call(ledger, CONTRACT, "alice", "pong")
        return ledger

    def test_clone_at_before_pong(self, contract_ledger):
        ledger = self._history(contract_ledger)
        past = ledger.clone_at(START_TIME + 500)
        assert did_user_ping(past, CONTRACT, "alice")
        assert did_user_ping(past, CONTRACT, "bob")
        assert past.get_balance(CONTRACT, TOKEN) == Decimal("200")
        assert past.get_nonce("alice") == 1
        assert len(past.events(name=PONG_EVENT)) == 0

    def test_clone_at_first_block(self, contract_ledger):
        ledger = self._history(contract_ledger)
        past = ledger.clone_at(START_TIME)
        assert did_user_ping(past, CONTRACT, "alice")
        assert not did_user_ping(past, CONTRACT, "bob")

    def test_clone_at_can_continue(self, contract_ledger):
        ledger = self._history(contract_ledger)
        past = ledger.clone_at(START_TIME + 500)
        past.advance_time(START_TIME + DURATION)
        call(past, CONTRACT, "alice", "pong")
        assert past.get_balance("alice", TOKEN) == Decimal("1000")

    def test_replay_matches(self, contract_ledger):
        ledger = self._history(contract_ledger)
        replayed = ledger.replay()
        for wallet in ("alice", "bob", CONTRACT):
            assert replayed.get_balance(wallet, TOKEN) == ledger.get_balance(wallet, TOKEN)
        assert replayed.get_unit_state(CONTRACT) == ledger.get_unit_state(CONTRACT)
        assert replayed.event_log == ledger.event_log
        assert dict(replayed.nonces) == dict(ledger.nonces)
