"""
conftest.py - Shared pytest fixtures for pingpong tests

Provides common fixtures used across unit, functional and conformance tests:
- Basic ledgers (empty, funded)
- A deployed ping-pong contract
- Minting and state comparison utilities
"""

import pytest
from decimal import Decimal
from typing import Any, Dict

from pingpong import (
    Ledger, Move, ExecuteResult, Payment,
    asset, build_transaction, deploy,
    SYSTEM_WALLET,
)


TOKEN = "TOKEN"
OTHER_TOKEN = "OTHER"
CONTRACT = "PINGPONG"
OWNER = "owner"
PING_AMOUNT = 100
DURATION = 3600
START_TIME = 1000


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def mint(ledger: Ledger, wallet: str, unit: str, amount) -> None:
    """Issue `amount` of `unit` to `wallet` through the system wallet."""
    result = ledger.execute(build_transaction(ledger, [
        Move(Decimal(amount), unit, SYSTEM_WALLET, wallet, f"mint_{wallet}_{unit}_{len(ledger.transaction_log)}")
    ]))
    assert result == ExecuteResult.APPLIED


def payment(amount=PING_AMOUNT, unit=TOKEN) -> Payment:
    return Payment(unit, amount)


def snapshot(ledger: Ledger) -> Dict[str, Any]:
    """Everything a rejected call must leave untouched."""
    return {
        'balances': {w: dict(b) for w, b in ledger.balances.items()},
        'states': {s: ledger.get_unit_state(s) for s in ledger.units},
        'log': len(ledger.transaction_log),
        'events': list(ledger.event_log),
        'nonces': dict(ledger.nonces),
    }


def make_ledger(parties=("alice", "bob", "carol"), funding=1000, initial_time=START_TIME) -> Ledger:
    ledger = Ledger("test", initial_time, verbose=False, test_mode=True)
    ledger.register_unit(asset(TOKEN, "Test Token"))
    ledger.register_unit(asset(OTHER_TOKEN, "Other Token"))
    ledger.register_wallet(OWNER)
    for party in parties:
        ledger.register_wallet(party)
        mint(ledger, party, TOKEN, funding)
        mint(ledger, party, OTHER_TOKEN, funding)
    return ledger


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Fresh ledger with no registrations."""
    return Ledger("test", verbose=False, test_mode=True)


@pytest.fixture
def funded_ledger():
    """Ledger with TOKEN and OTHER, and alice/bob/carol holding 1000 of each."""
    return make_ledger()


@pytest.fixture
def contract_ledger(funded_ledger):
    """Funded ledger with PINGPONG deployed by owner: 100 TOKEN, 3600s lock."""
    deploy(funded_ledger, CONTRACT, OWNER, ping_amount=PING_AMOUNT,
           duration_in_seconds=DURATION, accepted_payment_token=TOKEN)
    return funded_ledger
