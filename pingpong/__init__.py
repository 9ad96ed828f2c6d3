"""
pingpong - Time-Locked Deposit Contract on a Custody Ledger

A party pings by depositing a fixed amount of an asset and may pong to get it
back once a lock duration has elapsed. Contract calls are pure functions over
a read-only ledger view; the ledger executes the resulting transactions
atomically and keeps the audit trail.

Usage:
    from decimal import Decimal
    from pingpong import (
        Ledger, Move, Payment, asset, build_transaction, deploy, call,
        get_pong_enable_timestamp, SYSTEM_WALLET,
    )

    ledger = Ledger("main", initial_time=1000)
    ledger.register_unit(asset("TOKEN", "Test Token"))
    ledger.register_wallet("owner")
    ledger.register_wallet("alice")

    # Fund alice via SYSTEM_WALLET (proper issuance)
    ledger.execute(build_transaction(ledger, [
        Move(Decimal("100"), "TOKEN", SYSTEM_WALLET, "alice", "mint_alice")
    ]))

    deploy(ledger, "PINGPONG", "owner", ping_amount=100,
           duration_in_seconds=3600, accepted_payment_token="TOKEN")
    call(ledger, "PINGPONG", "alice", "ping", payment=Payment("TOKEN", 100))
    get_pong_enable_timestamp(ledger, "PINGPONG", "alice")   # 4600

    ledger.advance_time(4600)
    call(ledger, "PINGPONG", "alice", "pong")
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    empty_pending_transaction,
    Unit,
    UnitStateChange,
    ExecuteResult,
    LedgerError,
    TransferRuleViolation,
    UnitNotRegistered,
    WalletNotRegistered,
    non_transferable_rule,
    asset,
    SYSTEM_WALLET,
    NATIVE_ASSET,
    UNIT_TYPE_ASSET,
    UNIT_TYPE_PING_PONG,
)

# Ledger
from .ledger import Ledger

# Events
from .events import (
    ContractEvent,
    EventBus,
    EventListener,
    PING_EVENT,
    PONG_EVENT,
    ping_event,
    pong_event,
    filter_events,
)

# Ping-pong contract
from .units.ping_pong import (
    PingPongError,
    AlreadyPinged,
    NoPingFound,
    InvalidPaymentToken,
    IncorrectPingAmount,
    CannotPongBeforeDeadline,
    DurationCannotBeZero,
    PingAmountCannotBeZero,
    OnlyOwnerCanPerformThisAction,
    ContractPaused,
    InvalidExtensionAmount,
    Payment,
    PingPongConfig,
    PingPongState,
    load_ping_pong,
    to_state_dict,
    validate_ping_amount,
    validate_duration,
    require_owner,
    require_not_paused,
    calculate_pong_enable_timestamp,
    calculate_time_to_pong,
    create_ping_pong_unit,
    compute_init,
    deploy,
    compute_upgrade,
    compute_ping,
    compute_pong,
    compute_pause,
    compute_unpause,
    compute_extend_ping_duration,
    transact as ping_pong_transact,
    call,
    did_user_ping,
    get_pong_enable_timestamp,
    get_time_to_pong,
    get_accepted_payment_token,
    get_ping_amount,
    get_duration_timestamp,
    get_user_ping_timestamp,
    get_paused,
    get_owner,
)

__all__ = [
    # Core
    'LedgerView', 'Move', 'Transaction', 'PendingTransaction', 'TransactionOrigin', 'OriginType',
    'build_transaction', 'empty_pending_transaction',
    'Unit', 'UnitStateChange',
    'ExecuteResult', 'LedgerError',
    'TransferRuleViolation', 'UnitNotRegistered', 'WalletNotRegistered',
    'non_transferable_rule', 'asset',
    'SYSTEM_WALLET', 'NATIVE_ASSET', 'UNIT_TYPE_ASSET', 'UNIT_TYPE_PING_PONG',
    # Ledger
    'Ledger',
    # Events
    'ContractEvent', 'EventBus', 'EventListener', 'PING_EVENT', 'PONG_EVENT',
    'ping_event', 'pong_event', 'filter_events',
    # Ping-pong errors
    'PingPongError', 'AlreadyPinged', 'NoPingFound', 'InvalidPaymentToken',
    'IncorrectPingAmount', 'CannotPongBeforeDeadline', 'DurationCannotBeZero',
    'PingAmountCannotBeZero', 'OnlyOwnerCanPerformThisAction', 'ContractPaused',
    'InvalidExtensionAmount',
    # Ping-pong types and pure functions
    'Payment', 'PingPongConfig', 'PingPongState', 'load_ping_pong', 'to_state_dict',
    'validate_ping_amount', 'validate_duration', 'require_owner', 'require_not_paused',
    'calculate_pong_enable_timestamp', 'calculate_time_to_pong',
    # Ping-pong endpoints
    'create_ping_pong_unit', 'compute_init', 'deploy',
    'compute_upgrade', 'compute_ping', 'compute_pong', 'compute_pause', 'compute_unpause',
    'compute_extend_ping_duration', 'ping_pong_transact', 'call',
    # Ping-pong views
    'did_user_ping', 'get_pong_enable_timestamp', 'get_time_to_pong',
    'get_accepted_payment_token', 'get_ping_amount', 'get_duration_timestamp',
    'get_user_ping_timestamp', 'get_paused', 'get_owner',
]

__version__ = '1.0.0'
