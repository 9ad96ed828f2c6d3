"""
Units module - contracts whose storage lives in a ledger unit.

All contract functions are re-exported here for convenience.
"""

from .ping_pong import (
    # Errors
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
    # Types
    Payment,
    PingPongConfig,
    PingPongState,
    load_ping_pong,
    to_state_dict,
    # Deployment
    create_ping_pong_unit,
    compute_init,
    deploy,
    # Endpoints
    compute_upgrade,
    compute_ping,
    compute_pong,
    compute_pause,
    compute_unpause,
    compute_extend_ping_duration,
    transact,
    call,
    # Views
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
