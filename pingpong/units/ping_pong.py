"""
ping_pong.py - Time-Locked Deposit Contract

A party "pings" by depositing exactly `ping_amount` of the accepted asset into
the contract's custody wallet, and may "pong" to get it back once
`duration_in_seconds` have elapsed since the ping. One active deposit per
party. The owner (the deployer) can pause/unpause the contract and retune the
amount and duration.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES (explicit inputs):
   - PingPongConfig: accepted asset, ping amount, lock duration
   - PingPongState: owner, pause flag, per-party ping timestamps
   - Payment: the (asset, amount) attached to a payable call

2. PURE CALCULATION FUNCTIONS (calculate_*, require_*):
   - Take all inputs explicitly, no LedgerView

3. ADAPTER FUNCTIONS (load_ping_pong, to_state_dict):
   - The only place that reads contract storage from a LedgerView

4. ENDPOINTS (compute_*):
   - Take (view, symbol, caller, ...) and return a PendingTransaction
   - Raise a PingPongError before anything is built when a precondition fails,
     so a failed call never reaches the ledger

Storage layout (unit state of the contract):
    accepted_payment_token_id, ping_amount, duration_in_seconds,
    owner, paused, user_ping_timestamp: {party: block timestamp}

Funds are held by the custody wallet, whose id is the contract symbol.

Example:
    ledger = Ledger("main", initial_time=1000)
    ledger.register_unit(asset("TOKEN", "Test Token"))
    ledger.register_wallet("owner")
    ledger.register_wallet("alice")
    deploy(ledger, "PINGPONG", "owner", ping_amount=100,
           duration_in_seconds=3600, accepted_payment_token="TOKEN")

    call(ledger, "PINGPONG", "alice", "ping", payment=Payment("TOKEN", 100))
    ledger.advance_time(4600)
    call(ledger, "PINGPONG", "alice", "pong")
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Any, Mapping, Optional, Tuple, Union

from ..core import (
    LedgerView, LedgerError, Move, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType, ExecuteResult,
    NATIVE_ASSET, UNIT_TYPE_PING_PONG,
    build_transaction, non_transferable_rule, _freeze_state,
)
from ..events import ping_event, pong_event


Amount = Union[int, Decimal]

EVENT_INIT = "INIT"
EVENT_UPGRADE = "UPGRADE"
EVENT_PING = "PING"
EVENT_PONG = "PONG"
EVENT_PAUSE = "PAUSE"
EVENT_UNPAUSE = "UNPAUSE"
EVENT_EXTEND = "EXTEND_PING_DURATION"


# ============================================================================
# ERRORS
# ============================================================================

class PingPongError(LedgerError):
    """Base class for contract errors. `code` is the contract's numeric error code."""
    code: int = -1

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or type(self).__name__)


class AlreadyPinged(PingPongError):
    """Caller already has an active deposit."""
    code = 0


class NoPingFound(PingPongError):
    """Caller has no active deposit."""
    code = 1


class InvalidPaymentToken(PingPongError):
    code = 2


class IncorrectPingAmount(PingPongError):
    code = 3


class CannotPongBeforeDeadline(PingPongError):
    code = 4


class DurationCannotBeZero(PingPongError):
    code = 5


class PingAmountCannotBeZero(PingPongError):
    code = 6


class OnlyOwnerCanPerformThisAction(PingPongError):
    code = 7


class ContractPaused(PingPongError):
    code = 8


class InvalidExtensionAmount(PingPongError):
    """Additional seconds must be greater than zero."""
    code = 9


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Payment:
    """Asset and amount attached to a payable call."""
    asset: str
    amount: Amount

    def __post_init__(self):
        if not self.asset or not self.asset.strip():
            raise ValueError("Payment asset cannot be empty")
        if isinstance(self.amount, bool) or not isinstance(self.amount, (int, Decimal)):
            raise ValueError(f"Payment amount must be int or Decimal, got {type(self.amount)}")

    @property
    def quantity(self) -> Decimal:
        return Decimal(self.amount)


@dataclass(frozen=True, slots=True)
class PingPongConfig:
    """Tunable parameters. accepted_payment_token never changes after deployment."""
    accepted_payment_token: str
    ping_amount: int
    duration_in_seconds: int


@dataclass(frozen=True, slots=True)
class PingPongState:
    """Owner, pause flag and the party ledger (party -> ping timestamp)."""
    owner: str
    paused: bool
    user_ping_timestamp: Mapping[str, int]


# ============================================================================
# ADAPTER FUNCTIONS
# ============================================================================

def load_ping_pong(view: LedgerView, symbol: str) -> Tuple[PingPongConfig, PingPongState]:
    """
    Load contract storage from the ledger as typed frozen dataclasses.

    Raises:
        UnitNotRegistered: If no unit called `symbol` exists
        ValueError: If the unit is not a ping-pong contract
    """
    raw = view.get_unit_state(symbol)
    if 'owner' not in raw or 'ping_amount' not in raw:
        raise ValueError(f"{symbol} is not a ping-pong contract")

    config = PingPongConfig(
        accepted_payment_token=raw['accepted_payment_token_id'],
        ping_amount=raw['ping_amount'],
        duration_in_seconds=raw['duration_in_seconds'],
    )
    state = PingPongState(
        owner=raw['owner'],
        paused=raw.get('paused', False),
        user_ping_timestamp=dict(raw.get('user_ping_timestamp', {})),
    )
    return config, state


def to_state_dict(config: PingPongConfig, state: PingPongState) -> Dict[str, Any]:
    """Inverse of load_ping_pong(): the unit state stored in the ledger."""
    return {
        'accepted_payment_token_id': config.accepted_payment_token,
        'ping_amount': config.ping_amount,
        'duration_in_seconds': config.duration_in_seconds,
        'owner': state.owner,
        'paused': state.paused,
        'user_ping_timestamp': dict(state.user_ping_timestamp),
    }


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def validate_ping_amount(ping_amount: Amount) -> int:
    """
    Normalize a ping amount to a positive int.

    Raises:
        ValueError: If the amount is not an integral int/Decimal
        PingAmountCannotBeZero: If the amount is zero or negative
    """
    if isinstance(ping_amount, bool) or not isinstance(ping_amount, (int, Decimal)):
        raise ValueError(f"ping_amount must be int or Decimal, got {type(ping_amount)}")
    if isinstance(ping_amount, Decimal):
        if not ping_amount.is_finite() or ping_amount != ping_amount.to_integral_value():
            raise ValueError(f"ping_amount must be a whole number, got {ping_amount}")
        ping_amount = int(ping_amount)
    if ping_amount <= 0:
        raise PingAmountCannotBeZero()
    return ping_amount


def validate_duration(duration_in_seconds: int) -> int:
    """
    Raises:
        ValueError: If the duration is not an int
        DurationCannotBeZero: If the duration is zero or negative
    """
    if isinstance(duration_in_seconds, bool) or not isinstance(duration_in_seconds, int):
        raise ValueError(f"duration_in_seconds must be int, got {type(duration_in_seconds)}")
    if duration_in_seconds <= 0:
        raise DurationCannotBeZero()
    return duration_in_seconds


def require_owner(caller: str, owner: str) -> None:
    if caller != owner:
        raise OnlyOwnerCanPerformThisAction()


def require_not_paused(state: PingPongState) -> None:
    if state.paused:
        raise ContractPaused()


def has_pinged(state: PingPongState, party: str) -> bool:
    return party in state.user_ping_timestamp


def calculate_pong_enable_timestamp(config: PingPongConfig, state: PingPongState, party: str) -> int:
    """Earliest block timestamp at which `party` may pong; 0 without an active ping."""
    if not has_pinged(state, party):
        return 0
    return state.user_ping_timestamp[party] + config.duration_in_seconds


def calculate_time_to_pong(
    config: PingPongConfig,
    state: PingPongState,
    party: str,
    now: int,
) -> Optional[int]:
    """Seconds until `party` may pong: None without an active ping, 0 once eligible."""
    if not has_pinged(state, party):
        return None
    enable_at = calculate_pong_enable_timestamp(config, state, party)
    if now >= enable_at:
        return 0
    return enable_at - now


# ============================================================================
# DEPLOYMENT
# ============================================================================

def create_ping_pong_unit(
    symbol: str,
    owner: str,
    ping_amount: Amount,
    duration_in_seconds: int,
    accepted_payment_token: Optional[str] = None,
) -> Unit:
    """
    Create the contract unit with validated initial storage.

    Checks run in order: ping amount, then duration. The accepted asset
    defaults to the native asset; the pause flag starts cleared.

    Raises:
        PingAmountCannotBeZero: If ping_amount <= 0
        DurationCannotBeZero: If duration_in_seconds <= 0
        ValueError: On malformed arguments
    """
    if not symbol or not symbol.strip():
        raise ValueError("symbol cannot be empty")
    if not owner or not owner.strip():
        raise ValueError("owner cannot be empty")
    ping_amount = validate_ping_amount(ping_amount)
    duration_in_seconds = validate_duration(duration_in_seconds)

    config = PingPongConfig(
        accepted_payment_token=accepted_payment_token or NATIVE_ASSET,
        ping_amount=ping_amount,
        duration_in_seconds=duration_in_seconds,
    )
    state = PingPongState(owner=owner, paused=False, user_ping_timestamp={})

    return Unit(
        symbol=symbol,
        name=f"PingPong: {ping_amount} {config.accepted_payment_token} / {duration_in_seconds}s",
        unit_type=UNIT_TYPE_PING_PONG,
        min_balance=Decimal("0"),
        max_balance=Decimal("0"),
        decimal_places=0,
        transfer_rule=non_transferable_rule,
        _frozen_state=_freeze_state(to_state_dict(config, state)),
    )


def compute_init(
    view: LedgerView,
    symbol: str,
    caller: str,
    ping_amount: Amount,
    duration_in_seconds: int,
    accepted_payment_token: Optional[str] = None,
) -> PendingTransaction:
    """
    Build the deployment transaction; the caller becomes the owner.

    Raises:
        UnitNotRegistered: If the accepted asset is not registered
        PingAmountCannotBeZero, DurationCannotBeZero: see create_ping_pong_unit
    """
    unit = create_ping_pong_unit(symbol, caller, ping_amount, duration_in_seconds, accepted_payment_token)
    view.get_unit(unit.state['accepted_payment_token_id'])
    return build_transaction(
        view, [],
        origin=_origin(view, symbol, caller, EVENT_INIT),
        units_to_create=(unit,),
    )


def deploy(
    ledger,
    symbol: str,
    caller: str,
    ping_amount: Amount,
    duration_in_seconds: int,
    accepted_payment_token: Optional[str] = None,
) -> Unit:
    """
    Deploy a contract: register its custody wallet and execute the init transaction.

    All validation happens before the custody wallet is registered.

    Raises:
        ValueError: If a wallet or unit named `symbol` already exists
        LedgerError: If the ledger rejects the init transaction
    """
    if ledger.is_registered(symbol) or symbol in ledger.units:
        raise ValueError(f"{symbol} already exists")
    pending = compute_init(ledger, symbol, caller, ping_amount, duration_in_seconds, accepted_payment_token)
    if not ledger.is_registered(caller):
        raise ValueError(f"Wallet {caller} not registered")
    ledger.register_wallet(symbol)
    result = ledger.execute(pending)
    if result != ExecuteResult.APPLIED:
        raise LedgerError(f"Deployment of {symbol} was {result.value}")
    return ledger.get_unit(symbol)


# ============================================================================
# ENDPOINTS
# ============================================================================

def _origin(view: LedgerView, symbol: str, caller: str, event_type: str) -> TransactionOrigin:
    return TransactionOrigin(
        origin_type=OriginType.USER_ACTION,
        source_id=caller,
        unit_symbol=symbol,
        event_type=event_type,
        nonce=view.get_nonce(caller),
    )


def _state_change(symbol: str, config: PingPongConfig, state: PingPongState,
                  new_config: PingPongConfig, new_state: PingPongState) -> UnitStateChange:
    return UnitStateChange(
        unit=symbol,
        old_state=to_state_dict(config, state),
        new_state=to_state_dict(new_config, new_state),
    )


def compute_upgrade(
    view: LedgerView,
    symbol: str,
    caller: str,
    ping_amount: Amount,
    duration_in_seconds: int,
) -> PendingTransaction:
    """
    Retune ping amount and duration (owner only). Not affected by the pause flag.

    Raises:
        OnlyOwnerCanPerformThisAction, PingAmountCannotBeZero, DurationCannotBeZero
    """
    config, state = load_ping_pong(view, symbol)
    require_owner(caller, state.owner)
    new_config = PingPongConfig(
        accepted_payment_token=config.accepted_payment_token,
        ping_amount=validate_ping_amount(ping_amount),
        duration_in_seconds=validate_duration(duration_in_seconds),
    )
    return build_transaction(
        view, [],
        [_state_change(symbol, config, state, new_config, state)],
        origin=_origin(view, symbol, caller, EVENT_UPGRADE),
    )


def compute_ping(
    view: LedgerView,
    symbol: str,
    caller: str,
    payment: Payment,
) -> PendingTransaction:
    """
    Deposit `payment` and start the caller's lock at the current block timestamp.

    Checks, in order: not paused, accepted asset, exact amount, no active ping.

    Returns:
        PendingTransaction with the payment move (caller -> custody), the
        storage update and a ping event.

    Raises:
        ContractPaused, InvalidPaymentToken, IncorrectPingAmount, AlreadyPinged
    """
    config, state = load_ping_pong(view, symbol)
    require_not_paused(state)
    if payment.asset != config.accepted_payment_token:
        raise InvalidPaymentToken()
    if payment.quantity != Decimal(config.ping_amount):
        raise IncorrectPingAmount()
    if has_pinged(state, caller):
        raise AlreadyPinged()

    now = view.current_time
    new_state = PingPongState(
        owner=state.owner,
        paused=state.paused,
        user_ping_timestamp={**state.user_ping_timestamp, caller: now},
    )
    moves = [Move(
        quantity=payment.quantity,
        unit_symbol=payment.asset,
        source=caller,
        dest=symbol,
        contract_id=f'{symbol}_ping',
    )]
    return build_transaction(
        view, moves,
        [_state_change(symbol, config, state, config, new_state)],
        origin=_origin(view, symbol, caller, EVENT_PING),
        events=[ping_event(symbol, caller, now)],
    )


def compute_pong(view: LedgerView, symbol: str, caller: str) -> PendingTransaction:
    """
    Withdraw the caller's deposit once the lock has elapsed.

    The returned transaction clears the caller's entry and pays `ping_amount`
    of the accepted asset out of custody; the ledger applies the storage
    change before the payout.

    Raises:
        ContractPaused, NoPingFound, CannotPongBeforeDeadline
    """
    config, state = load_ping_pong(view, symbol)
    require_not_paused(state)
    if not has_pinged(state, caller):
        raise NoPingFound()

    now = view.current_time
    if now < calculate_pong_enable_timestamp(config, state, caller):
        raise CannotPongBeforeDeadline()

    remaining = dict(state.user_ping_timestamp)
    del remaining[caller]
    new_state = PingPongState(owner=state.owner, paused=state.paused, user_ping_timestamp=remaining)
    moves = [Move(
        quantity=Decimal(config.ping_amount),
        unit_symbol=config.accepted_payment_token,
        source=symbol,
        dest=caller,
        contract_id=f'{symbol}_pong',
    )]
    return build_transaction(
        view, moves,
        [_state_change(symbol, config, state, config, new_state)],
        origin=_origin(view, symbol, caller, EVENT_PONG),
        events=[pong_event(symbol, caller, now)],
    )


def _set_paused(view: LedgerView, symbol: str, caller: str, paused: bool, event_type: str) -> PendingTransaction:
    config, state = load_ping_pong(view, symbol)
    require_owner(caller, state.owner)
    new_state = PingPongState(owner=state.owner, paused=paused, user_ping_timestamp=state.user_ping_timestamp)
    return build_transaction(
        view, [],
        [_state_change(symbol, config, state, config, new_state)],
        origin=_origin(view, symbol, caller, event_type),
    )


def compute_pause(view: LedgerView, symbol: str, caller: str) -> PendingTransaction:
    """Set the pause flag (owner only, idempotent)."""
    return _set_paused(view, symbol, caller, True, EVENT_PAUSE)


def compute_unpause(view: LedgerView, symbol: str, caller: str) -> PendingTransaction:
    """Clear the pause flag (owner only, idempotent)."""
    return _set_paused(view, symbol, caller, False, EVENT_UNPAUSE)


def compute_extend_ping_duration(
    view: LedgerView,
    symbol: str,
    caller: str,
    additional_seconds: int,
) -> PendingTransaction:
    """
    Push the caller's pong deadline back by `additional_seconds`.

    The stored ping timestamp is shifted; since the deadline is always
    timestamp + duration, the new deadline is the old one plus the extension.

    Raises:
        ContractPaused, NoPingFound, InvalidExtensionAmount
    """
    config, state = load_ping_pong(view, symbol)
    require_not_paused(state)
    if not has_pinged(state, caller):
        raise NoPingFound()
    if isinstance(additional_seconds, bool) or not isinstance(additional_seconds, int):
        raise ValueError(f"additional_seconds must be int, got {type(additional_seconds)}")
    if additional_seconds <= 0:
        raise InvalidExtensionAmount()

    new_state = PingPongState(
        owner=state.owner,
        paused=state.paused,
        user_ping_timestamp={
            **state.user_ping_timestamp,
            caller: state.user_ping_timestamp[caller] + additional_seconds,
        },
    )
    return build_transaction(
        view, [],
        [_state_change(symbol, config, state, config, new_state)],
        origin=_origin(view, symbol, caller, EVENT_EXTEND),
    )


# ============================================================================
# VIEWS
# ============================================================================

def did_user_ping(view: LedgerView, symbol: str, address: str) -> bool:
    _, state = load_ping_pong(view, symbol)
    return has_pinged(state, address)


def get_pong_enable_timestamp(view: LedgerView, symbol: str, address: str) -> int:
    config, state = load_ping_pong(view, symbol)
    return calculate_pong_enable_timestamp(config, state, address)


def get_time_to_pong(view: LedgerView, symbol: str, address: str) -> Optional[int]:
    config, state = load_ping_pong(view, symbol)
    return calculate_time_to_pong(config, state, address, view.current_time)


def get_accepted_payment_token(view: LedgerView, symbol: str) -> str:
    config, _ = load_ping_pong(view, symbol)
    return config.accepted_payment_token


def get_ping_amount(view: LedgerView, symbol: str) -> int:
    config, _ = load_ping_pong(view, symbol)
    return config.ping_amount


def get_duration_timestamp(view: LedgerView, symbol: str) -> int:
    config, _ = load_ping_pong(view, symbol)
    return config.duration_in_seconds


def get_user_ping_timestamp(view: LedgerView, symbol: str, address: str) -> int:
    """Stored ping timestamp for `address`; 0 when there is no active ping."""
    _, state = load_ping_pong(view, symbol)
    return state.user_ping_timestamp.get(address, 0)


def get_paused(view: LedgerView, symbol: str) -> bool:
    _, state = load_ping_pong(view, symbol)
    return state.paused


def get_owner(view: LedgerView, symbol: str) -> str:
    _, state = load_ping_pong(view, symbol)
    return state.owner


# ============================================================================
# DISPATCH
# ============================================================================

def transact(
    view: LedgerView,
    symbol: str,
    caller: str,
    endpoint: str,
    **kwargs
) -> PendingTransaction:
    """
    Route an endpoint call to its compute function.

    Args:
        view: Read-only ledger access
        symbol: Contract symbol
        caller: Calling wallet
        endpoint: One of "ping", "pong", "pause", "unpause", "upgrade",
            "extend_ping_duration"
        **kwargs: Endpoint arguments:
            - ping: payment (Payment, required)
            - upgrade: ping_amount, duration_in_seconds (required)
            - extend_ping_duration: additional_seconds (required)

    Raises:
        ValueError: If the endpoint is unknown or a required argument is missing
    """
    if endpoint == 'ping':
        payment = kwargs.get('payment')
        if payment is None:
            raise ValueError("ping requires a payment")
        return compute_ping(view, symbol, caller, payment)
    elif endpoint == 'pong':
        return compute_pong(view, symbol, caller)
    elif endpoint == 'pause':
        return compute_pause(view, symbol, caller)
    elif endpoint == 'unpause':
        return compute_unpause(view, symbol, caller)
    elif endpoint == 'upgrade':
        if 'ping_amount' not in kwargs or 'duration_in_seconds' not in kwargs:
            raise ValueError("upgrade requires ping_amount and duration_in_seconds")
        return compute_upgrade(view, symbol, caller, kwargs['ping_amount'], kwargs['duration_in_seconds'])
    elif endpoint == 'extend_ping_duration':
        if 'additional_seconds' not in kwargs:
            raise ValueError("extend_ping_duration requires additional_seconds")
        return compute_extend_ping_duration(view, symbol, caller, kwargs['additional_seconds'])
    raise ValueError(f"Unknown endpoint: {endpoint}")


def call(ledger, symbol: str, caller: str, endpoint: str, **kwargs) -> ExecuteResult:
    """
    Compute and execute an endpoint call in one step.

    Raises:
        PingPongError: If a contract precondition fails (nothing is executed)
        LedgerError: If the ledger rejects the transaction (e.g. the caller
            cannot cover the payment)
    """
    pending = transact(ledger, symbol, caller, endpoint, **kwargs)
    result = ledger.execute(pending)
    if result == ExecuteResult.REJECTED:
        raise LedgerError(f"{endpoint} by {caller} on {symbol} was rejected")
    return result
