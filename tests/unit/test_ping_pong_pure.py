"""
test_ping_pong_pure.py - Pure function tests for the ping-pong contract

Exercises the calculate_*/require_* helpers and the compute_* endpoints
against a FakeView, without a Ledger.
"""

import pytest
from decimal import Decimal
from tests.fake_view import FakeView
from pingpong import (
    PingPongConfig,
    PingPongState,
    Payment,
    load_ping_pong,
    to_state_dict,
    validate_ping_amount,
    validate_duration,
    require_owner,
    require_not_paused,
    calculate_pong_enable_timestamp,
    calculate_time_to_pong,
    create_ping_pong_unit,
    compute_ping,
    compute_pong,
    compute_pause,
    compute_upgrade,
    compute_extend_ping_duration,
    AlreadyPinged,
    ContractPaused,
    CannotPongBeforeDeadline,
    DurationCannotBeZero,
    PingAmountCannotBeZero,
    OnlyOwnerCanPerformThisAction,
    OriginType,
    PING_EVENT,
)


CONFIG = PingPongConfig(accepted_payment_token="TOKEN", ping_amount=100, duration_in_seconds=3600)


def _state(pings=None, paused=False):
    return PingPongState(owner="owner", paused=paused, user_ping_timestamp=pings or {})


def _view(pings=None, paused=False, time=1000, nonces=None):
    return FakeView(
        balances={'alice': {'TOKEN': Decimal("1000")}},
        states={'PP': to_state_dict(CONFIG, _state(pings, paused))},
        time=time,
        nonces=nonces,
    )


# ============================================================================
# CALCULATIONS
# ============================================================================

class TestCalculations:

    def test_enable_timestamp(self):
        assert calculate_pong_enable_timestamp(CONFIG, _state({'alice': 1000}), 'alice') == 4600

    def test_enable_timestamp_without_ping(self):
        assert calculate_pong_enable_timestamp(CONFIG, _state(), 'alice') == 0

    @pytest.mark.parametrize("now,expected", [
        (1000, 3600),
        (4599, 1),
        (4600, 0),
        (9999, 0),
    ])
    def test_time_to_pong(self, now, expected):
        assert calculate_time_to_pong(CONFIG, _state({'alice': 1000}), 'alice', now) == expected

    def test_time_to_pong_without_ping(self):
        assert calculate_time_to_pong(CONFIG, _state(), 'alice', 5000) is None

    def test_ping_at_time_zero_is_active(self):
        state = _state({'alice': 0})
        assert calculate_pong_enable_timestamp(CONFIG, state, 'alice') == 3600
        assert calculate_time_to_pong(CONFIG, state, 'alice', 0) == 3600


class TestValidation:

    def test_validate_ping_amount(self):
        assert validate_ping_amount(7) == 7
        assert validate_ping_amount(Decimal("7.000")) == 7
        with pytest.raises(PingAmountCannotBeZero):
            validate_ping_amount(0)
        with pytest.raises(PingAmountCannotBeZero):
            validate_ping_amount(-5)

    def test_validate_duration(self):
        assert validate_duration(1) == 1
        with pytest.raises(DurationCannotBeZero):
            validate_duration(0)
        with pytest.raises(ValueError):
            validate_duration(Decimal("10"))

    def test_require_owner(self):
        require_owner("owner", "owner")
        with pytest.raises(OnlyOwnerCanPerformThisAction):
            require_owner("alice", "owner")

    def test_require_not_paused(self):
        require_not_paused(_state())
        with pytest.raises(ContractPaused):
            require_not_paused(_state(paused=True))


class TestStateAdapters:

    def test_round_trip(self):
        state = _state({'alice': 1000, 'bob': 1200}, paused=True)
        view = FakeView(balances={}, states={'PP': to_state_dict(CONFIG, state)})
        config, loaded = load_ping_pong(view, 'PP')
        assert config == CONFIG
        assert loaded.owner == "owner"
        assert loaded.paused is True
        assert dict(loaded.user_ping_timestamp) == {'alice': 1000, 'bob': 1200}

    def test_storage_keys(self):
        raw = to_state_dict(CONFIG, _state())
        assert set(raw) == {
            'accepted_payment_token_id', 'ping_amount', 'duration_in_seconds',
            'owner', 'paused', 'user_ping_timestamp',
        }

    def test_load_rejects_foreign_state(self):
        view = FakeView(balances={}, states={'X': {'issuer': 'system'}})
        with pytest.raises(ValueError):
            load_ping_pong(view, 'X')

    def test_created_unit_state(self):
        unit = create_ping_pong_unit('PP', 'owner', 100, 3600, 'TOKEN')
        assert unit.state == to_state_dict(CONFIG, _state())
        assert unit.max_balance == Decimal("0")


# ============================================================================
# COMPUTE FUNCTIONS
# ============================================================================

class TestComputePing:

    def test_builds_move_state_and_event(self):
        pending = compute_ping(_view(nonces={'alice': 3}), 'PP', 'alice', Payment('TOKEN', 100))

        [move] = pending.moves
        assert (move.source, move.dest, move.unit_symbol, move.quantity) == ('alice', 'PP', 'TOKEN', Decimal("100"))

        [change] = pending.state_changes
        assert change.old_state['user_ping_timestamp'] == {}
        assert change.new_state['user_ping_timestamp'] == {'alice': 1000}

        [event] = pending.events
        assert (event.name, event.contract, event.party, event.timestamp) == (PING_EVENT, 'PP', 'alice', 1000)

        assert pending.origin.origin_type == OriginType.USER_ACTION
        assert pending.origin.source_id == 'alice'
        assert pending.origin.nonce == 3
        assert pending.timestamp == 1000

    def test_duplicate(self):
        with pytest.raises(AlreadyPinged):
            compute_ping(_view({'alice': 500}), 'PP', 'alice', Payment('TOKEN', 100))

    def test_paused(self):
        with pytest.raises(ContractPaused):
            compute_ping(_view(paused=True), 'PP', 'alice', Payment('TOKEN', 100))

    def test_nonce_changes_intent(self):
        a = compute_ping(_view(nonces={'alice': 0}), 'PP', 'alice', Payment('TOKEN', 100))
        b = compute_ping(_view(nonces={'alice': 1}), 'PP', 'alice', Payment('TOKEN', 100))
        assert a.intent_id != b.intent_id


class TestComputePong:

    def test_deadline(self):
        with pytest.raises(CannotPongBeforeDeadline):
            compute_pong(_view({'alice': 1000}, time=4599), 'PP', 'alice')

    def test_payout_uses_current_amount(self):
        view = FakeView(
            balances={'PP': {'TOKEN': Decimal("100")}},
            states={'PP': to_state_dict(
                PingPongConfig('TOKEN', 40, 3600), _state({'alice': 1000})
            )},
            time=4600,
        )
        pending = compute_pong(view, 'PP', 'alice')
        assert pending.moves[0].quantity == Decimal("40")

    def test_other_parties_untouched(self):
        pending = compute_pong(_view({'alice': 1000, 'bob': 2000}, time=4600), 'PP', 'alice')
        assert pending.state_changes[0].new_state['user_ping_timestamp'] == {'bob': 2000}


class TestComputeOwnerActions:

    def test_pause_state_change(self):
        pending = compute_pause(_view(), 'PP', 'owner')
        [change] = pending.state_changes
        assert change.old_state['paused'] is False
        assert change.new_state['paused'] is True
        assert pending.moves == ()

    def test_upgrade_keeps_token_and_pings(self):
        pending = compute_upgrade(_view({'alice': 1000}), 'PP', 'owner', 5, 10)
        new_state = pending.state_changes[0].new_state
        assert new_state['ping_amount'] == 5
        assert new_state['duration_in_seconds'] == 10
        assert new_state['accepted_payment_token_id'] == 'TOKEN'
        assert new_state['user_ping_timestamp'] == {'alice': 1000}

    def test_extend_rejects_non_int(self):
        with pytest.raises(ValueError):
            compute_extend_ping_duration(_view({'alice': 1000}), 'PP', 'alice', 1.5)
