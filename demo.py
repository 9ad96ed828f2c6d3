#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: The Ping-Pong Contract Step by Step

A walk through a time-locked deposit contract running on the custody ledger.
Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Setup         - The ledger, an asset, funded parties, deployment
  4-6:  The Lock      - Ping, an early pong, the deadline, a successful pong
  7-8:  Safety        - Duplicate submissions, re-entrant subscribers
  9-10: Administration - Pausing, retuning, extending a deadline
  11:   Audit         - Historical reconstruction and replay

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from decimal import Decimal
import sys

from pingpong import (
    Ledger, Move, Payment, SYSTEM_WALLET, PONG_EVENT,
    PingPongError, NoPingFound,
    asset, build_transaction, deploy, call, compute_pong,
    get_pong_enable_timestamp, get_time_to_pong, get_ping_amount,
    get_duration_timestamp, get_paused, did_user_ping,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: int = 1000
    token: str = "TOKEN"
    contract: str = "PINGPONG"
    owner: str = "owner"
    parties: tuple = ("alice", "bob")
    initial_funding: int = 1000
    ping_amount: int = 100
    duration_in_seconds: int = 3600


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def show_balances(ledger: Ledger):
    wallets = [CONFIG.owner, *CONFIG.parties, CONFIG.contract]
    for wallet in wallets:
        if ledger.is_registered(wallet):
            print(f"    {wallet:10} {ledger.get_balance(wallet, CONFIG.token):>8} {CONFIG.token}")


def attempt(ledger: Ledger, caller: str, endpoint: str, **kwargs):
    """Call an endpoint and report the outcome instead of raising."""
    try:
        result = call(ledger, CONFIG.contract, caller, endpoint, **kwargs)
        print(f"    {caller}.{endpoint} -> {result.value}")
    except PingPongError as e:
        print(f"    {caller}.{endpoint} -> error {e.code}: {e}")


# ============================================================================
# SETUP (Steps 1-3)
# ============================================================================

def step_01_ledger() -> Ledger:
    step_header(1, "The Ledger",
        "Create a ledger with a clock, a system wallet and a native asset.")
    ledger = Ledger("demo", initial_time=CONFIG.start_time, verbose=True)
    print(f"    time          : {ledger.current_time}")
    print(f"    units         : {ledger.list_units()}")
    print(f"    wallets       : {sorted(ledger.list_wallets())}")
    wait_for_enter()
    return ledger


def step_02_fund(ledger: Ledger):
    step_header(2, "Issuing an Asset",
        "Register a token and fund the parties through SYSTEM_WALLET.")
    ledger.register_unit(asset(CONFIG.token, "Demo Token"))
    ledger.register_wallet(CONFIG.owner)
    for party in CONFIG.parties:
        ledger.register_wallet(party)
        ledger.execute(build_transaction(ledger, [
            Move(Decimal(CONFIG.initial_funding), CONFIG.token, SYSTEM_WALLET, party, f"fund_{party}")
        ]))
    show_balances(ledger)
    print(f"\n    system wallet : {ledger.get_balance(SYSTEM_WALLET, CONFIG.token)} (issued supply, negated)")
    wait_for_enter()


def step_03_deploy(ledger: Ledger):
    step_header(3, "Deployment",
        "Deploy the contract; the deployer becomes the owner.")
    deploy(ledger, CONFIG.contract, CONFIG.owner,
           ping_amount=CONFIG.ping_amount,
           duration_in_seconds=CONFIG.duration_in_seconds,
           accepted_payment_token=CONFIG.token)
    print(f"    ping_amount   : {get_ping_amount(ledger, CONFIG.contract)}")
    print(f"    duration      : {get_duration_timestamp(ledger, CONFIG.contract)}s")
    print(f"    custody wallet: {CONFIG.contract}")

    print("\n    Deploying with a zero amount is refused before anything is registered:")
    try:
        deploy(ledger, "BROKEN", CONFIG.owner, ping_amount=0, duration_in_seconds=10)
    except PingPongError as e:
        print(f"    deploy -> error {e.code}: {e}")
    wait_for_enter()


# ============================================================================
# THE LOCK (Steps 4-6)
# ============================================================================

def step_04_ping(ledger: Ledger):
    step_header(4, "Ping",
        "Deposit exactly ping_amount of the accepted token.")
    attempt(ledger, "alice", "ping", payment=Payment("OTHER", CONFIG.ping_amount))
    attempt(ledger, "alice", "ping", payment=Payment(CONFIG.token, CONFIG.ping_amount - 1))
    attempt(ledger, "alice", "ping", payment=Payment(CONFIG.token, CONFIG.ping_amount))
    attempt(ledger, "alice", "ping", payment=Payment(CONFIG.token, CONFIG.ping_amount))
    print(f"\n    pong enabled at : {get_pong_enable_timestamp(ledger, CONFIG.contract, 'alice')}")
    show_balances(ledger)
    wait_for_enter()


def step_05_early_pong(ledger: Ledger):
    step_header(5, "Too Early",
        "A pong before the deadline is refused and changes nothing.")
    ledger.advance_time(CONFIG.start_time + CONFIG.duration_in_seconds - 600)
    print(f"    time          : {ledger.current_time}")
    print(f"    time to pong  : {get_time_to_pong(ledger, CONFIG.contract, 'alice')}s")
    attempt(ledger, "alice", "pong")
    wait_for_enter()


def step_06_pong(ledger: Ledger):
    step_header(6, "Pong",
        "At the deadline the deposit comes back.")
    ledger.advance_time(CONFIG.start_time + CONFIG.duration_in_seconds)
    attempt(ledger, "alice", "pong")
    attempt(ledger, "alice", "pong")
    show_balances(ledger)
    print(f"\n    events        : {[(e.name, e.party, e.timestamp) for e in ledger.events()]}")
    wait_for_enter()


# ============================================================================
# SAFETY (Steps 7-8)
# ============================================================================

def step_07_duplicates(ledger: Ledger):
    step_header(7, "Duplicate Submissions",
        "The same pending transaction is applied at most once.")
    attempt(ledger, "bob", "ping", payment=Payment(CONFIG.token, CONFIG.ping_amount))
    ledger.advance_time(ledger.current_time + CONFIG.duration_in_seconds)
    pending = compute_pong(ledger, CONFIG.contract, "bob")
    print(f"    first submit  : {ledger.execute(pending).value}")
    print(f"    second submit : {ledger.execute(pending).value}")
    show_balances(ledger)
    wait_for_enter()


def step_08_reentrancy(ledger: Ledger):
    step_header(8, "Re-entrant Subscribers",
        "A subscriber that pongs again from inside a pong notification gets nothing.")
    attempt(ledger, "alice", "ping", payment=Payment(CONFIG.token, CONFIG.ping_amount))
    ledger.advance_time(ledger.current_time + CONFIG.duration_in_seconds)

    def greedy(event):
        try:
            call(ledger, CONFIG.contract, event.party, "pong")
            print("    re-entrant pong paid out (should never happen)")
        except NoPingFound:
            print("    re-entrant pong -> NoPingFound: entry was cleared before the payout")

    ledger.subscribe(greedy, name=PONG_EVENT)
    attempt(ledger, "alice", "pong")
    ledger.unsubscribe(greedy)
    show_balances(ledger)
    wait_for_enter()


# ============================================================================
# ADMINISTRATION (Steps 9-10)
# ============================================================================

def step_09_pause(ledger: Ledger):
    step_header(9, "Pausing",
        "Only the owner can pause; a paused contract refuses ping and pong.")
    attempt(ledger, "alice", "pause")
    attempt(ledger, CONFIG.owner, "pause")
    print(f"    paused        : {get_paused(ledger, CONFIG.contract)}")
    attempt(ledger, "alice", "ping", payment=Payment(CONFIG.token, CONFIG.ping_amount))
    attempt(ledger, CONFIG.owner, "unpause")
    wait_for_enter()


def step_10_retune(ledger: Ledger):
    step_header(10, "Retuning and Extending",
        "The owner may change the amount and duration; a party may push back its own deadline.")
    attempt(ledger, CONFIG.owner, "upgrade", ping_amount=50, duration_in_seconds=60)
    attempt(ledger, "bob", "ping", payment=Payment(CONFIG.token, 50))
    print(f"    bob can pong at : {get_pong_enable_timestamp(ledger, CONFIG.contract, 'bob')}")
    attempt(ledger, "bob", "extend_ping_duration", additional_seconds=120)
    print(f"    after extension : {get_pong_enable_timestamp(ledger, CONFIG.contract, 'bob')}")
    attempt(ledger, "bob", "extend_ping_duration", additional_seconds=0)
    wait_for_enter()


# ============================================================================
# AUDIT (Step 11)
# ============================================================================

def step_11_audit(ledger: Ledger):
    step_header(11, "Audit",
        "Reconstruct any past state from the transaction log.")
    ledger.verbose = False
    past = ledger.clone_at(CONFIG.start_time)
    print(f"    at {CONFIG.start_time}: alice pinged = {did_user_ping(past, CONFIG.contract, 'alice')}, "
          f"custody = {past.get_balance(CONFIG.contract, CONFIG.token)}")

    replayed = ledger.replay()
    same = replayed.get_unit_state(CONFIG.contract) == ledger.get_unit_state(CONFIG.contract)
    print(f"    replayed {len(replayed.transaction_log)} transactions, storage identical: {same}")

    check = ledger.verify_double_entry()
    print(f"    double entry valid: {check['valid']}, supplies: {check['supplies']}")


def main():
    print("\nPING-PONG: A TIME-LOCKED DEPOSIT CONTRACT")
    ledger = step_01_ledger()
    step_02_fund(ledger)
    step_03_deploy(ledger)
    step_04_ping(ledger)
    step_05_early_pong(ledger)
    step_06_pong(ledger)
    step_07_duplicates(ledger)
    step_08_reentrancy(ledger)
    step_09_pause(ledger)
    step_10_retune(ledger)
    step_11_audit(ledger)
    print("\nDone.")


if __name__ == "__main__":
    main()
