"""
ledger.py - Stateful Custody Ledger

The Ledger class is the host environment for contracts: it owns balances,
unit (asset and contract) definitions, contract storage, the logical clock,
caller nonces and the audit trail. It is the only module that mutates state.

Key responsibilities:
    - Implements LedgerView protocol for safe read-only access by pure functions
    - Executes transactions atomically (everything applies or nothing does)
    - Rejects stale transactions (old caller nonce, outdated contract state)
    - Publishes contract notifications after commit
    - Tracks time and provides temporal operations (clone_at, replay)
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import replace
from decimal import Decimal
from typing import Dict, List, Set, Optional, Tuple, Any
import copy

from .core import (
    # Types
    Transaction, Unit,
    PendingTransaction,
    ExecuteResult,
    Positions, UnitState,
    # Constants
    QUANTITY_EPSILON, SYSTEM_WALLET, NATIVE_ASSET,
    # Exceptions
    LedgerError, TransferRuleViolation, UnitNotRegistered, WalletNotRegistered,
    # Helper functions
    asset, _freeze_state,
)
from .events import ContractEvent, EventBus, EventListener, filter_events


def _check_time(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Logical time must be an integer, got {value!r}")
    if value < 0:
        raise ValueError(f"Logical time must be non-negative, got {value}")
    return value


class Ledger:
    """
    Custody ledger with full validation and audit trail.

    Implements the LedgerView protocol, allowing the ledger to be passed to pure
    contract functions that access only read-only methods.

    Design Principles:
        - Always validates: every transaction is checked against registration,
          caller nonce, stored contract state, transfer rules and balance
          constraints before anything is mutated.
        - Always logs: every applied transaction is recorded in the audit trail,
          enabling clone_at() and replay() for historical state reconstruction.

    Thread Safety:
        Not thread-safe. Calls are serialized: each execute() runs to completion
        before the next one starts.

    Example:
        ledger = Ledger("main", initial_time=1000)
        ledger.register_unit(asset("TOKEN", "Test Token"))
        ledger.register_wallet("alice")
        ledger.register_wallet("bob")

        tx = build_transaction(ledger, [
            Move(Decimal("100"), "TOKEN", SYSTEM_WALLET, "alice", "mint_001")
        ])
        result = ledger.execute(tx)
    """

    POSITION_EPSILON = QUANTITY_EPSILON

    def __init__(
        self,
        name: str,
        initial_time: int = 0,
        verbose: bool = True,
        test_mode: bool = False,
        native_asset: str = NATIVE_ASSET,
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            initial_time: Starting block timestamp in seconds (default: 0)
            verbose: Enable debug output (default: True)
            test_mode: Enable test mode to allow set_balance() calls (default: False)
            native_asset: Symbol of the asset registered with every ledger
        """
        self.name = name
        self.balances: Dict[str, Dict[str, Decimal]] = {}
        self.units: Dict[str, Unit] = {}
        self.registered_wallets: Set[str] = set()
        self.seen_intent_ids: Set[str] = set()  # For idempotency (content-based)
        self.transaction_log: List[Transaction] = []
        self.event_log: List[ContractEvent] = []
        self.nonces: Dict[str, int] = defaultdict(int)
        self.native_asset = native_asset
        self._current_time: int = _check_time(initial_time)
        self.verbose = verbose
        self._test_mode = test_mode
        self._next_sequence: int = 0
        self._events = EventBus()
        # Inverted index mapping unit -> {wallet -> quantity} for O(1) position lookups
        self._positions_by_unit: Dict[str, Dict[str, Decimal]] = defaultdict(dict)

        # Auto-register the system wallet (used for issuance/redemption)
        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = defaultdict(lambda: Decimal("0"))
        self.units[native_asset] = asset(native_asset, "Native Asset")

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> int:
        """Current block timestamp of the ledger."""
        return self._current_time

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """
        Get the balance of a specific unit in a wallet.

        Raises:
            WalletNotRegistered: If wallet is not registered
            UnitNotRegistered: If unit is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return self.balances[wallet_id].get(unit_symbol, Decimal("0"))

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """
        Get a deep copy of a unit's internal state.

        The returned dictionary can be mutated freely without affecting the ledger.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        unit_obj = self.units[unit_symbol]
        return copy.deepcopy(unit_obj.state) if unit_obj.state else {}

    def get_positions(self, unit_symbol: str) -> Positions:
        """Get all non-zero positions for a unit across all wallets."""
        return dict(self._positions_by_unit.get(unit_symbol, {}))

    def list_wallets(self) -> Set[str]:
        """List all registered wallet IDs."""
        return self.registered_wallets.copy()

    def list_units(self) -> List[str]:
        """List all registered unit symbols."""
        return sorted(self.units.keys())

    def get_unit(self, symbol: str) -> Unit:
        """Return the Unit object for a given symbol."""
        if symbol not in self.units:
            raise UnitNotRegistered(f"Unit {symbol} not registered")
        return self.units[symbol]

    def get_nonce(self, wallet_id: str) -> int:
        """Number of nonce-carrying transactions applied on behalf of a wallet."""
        return self.nonces.get(wallet_id, 0)

    def total_supply(self, unit_symbol: str) -> Decimal:
        """
        Calculate total supply of a unit across all wallets, including the
        system wallet (so the result is zero for a closed system).

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return sum(
            (self.balances[w].get(unit_symbol, Decimal("0")) for w in sorted(self.registered_wallets)),
            Decimal("0"),
        )

    def verify_double_entry(self, tolerance: Decimal = Decimal("1e-9")) -> Dict[str, Any]:
        """
        Verify that value is conserved for every unit.

        Every unit enters circulation through moves out of SYSTEM_WALLET, so
        the sum of all balances, system wallet included, must be zero.

        Returns:
            Dict with keys:
            - 'valid': bool - True if all conservation laws hold
            - 'supplies': Dict[str, Decimal] - Circulating supply per unit
            - 'discrepancies': List[Dict] - units whose balances do not sum to zero
        """
        supplies = {}
        discrepancies = []
        for unit_symbol in sorted(self.units):
            total = self.total_supply(unit_symbol)
            supplies[unit_symbol] = -self.balances[SYSTEM_WALLET].get(unit_symbol, Decimal("0"))
            if abs(total) > tolerance:
                discrepancies.append({'unit': unit_symbol, 'total': total})
        return {
            'valid': not discrepancies,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    def is_registered(self, wallet_id: str) -> bool:
        """Check if a wallet is registered."""
        return wallet_id in self.registered_wallets

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: int) -> None:
        """
        Advance the ledger's block timestamp.

        Time can only move forward, never backward.

        Raises:
            ValueError: If new_time is before the current time or not an integer
        """
        _check_time(new_time)
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Register a new wallet in the ledger.

        Raises:
            ValueError: If wallet id is empty or already registered
        """
        if not wallet_id or not wallet_id.strip():
            raise ValueError("Wallet id cannot be empty")
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(lambda: Decimal("0"))
        return wallet_id

    def register_unit(self, unit: Unit) -> None:
        """
        Register a new unit (asset or contract) in the ledger.

        Raises:
            ValueError: If unit symbol is already registered
        """
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        if self.verbose:
            rule_str = f", rule={unit.transfer_rule.__name__}" if unit.transfer_rule else ""
            print(f"📝 Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}]{rule_str}")

    def set_balance(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        """
        Set a wallet's balance for a unit directly.

        WARNING: bypasses double-entry accounting and is only available in test
        mode. Use build_transaction() with a SYSTEM_WALLET move to mint instead.

        Raises:
            LedgerError: If called when test_mode is False
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() is disabled in production mode. "
                "Use build_transaction() and execute() to modify balances. "
                "Set test_mode=True when creating Ledger for testing."
            )
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        if not isinstance(quantity, Decimal):
            quantity = Decimal(str(quantity))
        self.balances[wallet_id][unit_symbol] = quantity
        self._update_position_index(wallet_id, unit_symbol, quantity)

    # ========================================================================
    # EVENTS
    # ========================================================================

    def subscribe(self, listener: EventListener, name: Optional[str] = None) -> None:
        """Call `listener` for every committed event (optionally only those called `name`)."""
        self._events.subscribe(listener, name)

    def unsubscribe(self, listener: EventListener) -> None:
        self._events.unsubscribe(listener)

    def events(
        self,
        name: Optional[str] = None,
        contract: Optional[str] = None,
        party: Optional[str] = None,
    ) -> List[ContractEvent]:
        """Committed events in emission order, optionally filtered."""
        return filter_events(self.event_log, name=name, contract=contract, party=party)

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """
        Generate a unique execution ID.

        Format: exec:{ledger_name}:{sequence:012d}:{block_timestamp}
        """
        return f"exec:{self.name}:{sequence:012d}:{self._current_time}"

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Execute a PendingTransaction atomically.

        Validation happens before any mutation; a rejected transaction leaves
        balances, unit state, nonces, the transaction log and the event log
        untouched. Execution is idempotent: a pending transaction with the same
        intent_id is not applied twice.

        Application order for an accepted transaction:
        1. Register units_to_create
        2. Apply unit state changes (contract storage)
        3. Apply moves (value leaves custody only after storage is updated)
        4. Append to the transaction log and bump the caller nonce
        5. Publish events to subscribers

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.ALREADY_APPLIED if transaction was already executed
            ExecuteResult.REJECTED if validation failed
        """
        if pending.is_empty():
            return ExecuteResult.APPLIED

        # Idempotency check based on intent_id (content hash)
        if pending.intent_id in self.seen_intent_ids:
            if self.verbose:
                print(f"⚠️  ALREADY_APPLIED: intent_id={pending.intent_id}")
            return ExecuteResult.ALREADY_APPLIED

        valid, reason = self._validate_pending(pending)
        if not valid:
            if self.verbose:
                print(f"✗ REJECTED: {reason}")
            return ExecuteResult.REJECTED

        sequence = self._next_sequence
        self._next_sequence += 1
        tx = Transaction(
            moves=pending.moves,
            state_changes=pending.state_changes,
            origin=pending.origin,
            timestamp=pending.timestamp,
            intent_id=pending.intent_id,
            exec_id=self._generate_exec_id(sequence),
            ledger_name=self.name,
            execution_time=self._current_time,
            sequence_number=sequence,
            units_to_create=pending.units_to_create,
            events=pending.events,
        )

        for unit in tx.units_to_create:
            self.register_unit(unit)

        # Storage first, then value transfer
        for sc in tx.state_changes:
            new_state = copy.deepcopy(sc.new_state if isinstance(sc.new_state, dict) else {})
            self.units[sc.unit] = replace(self.units[sc.unit], _frozen_state=_freeze_state(new_state))

        self._execute_moves(tx.moves)

        # Log transaction (always - audit trail is mandatory)
        self.transaction_log.append(tx)
        self.seen_intent_ids.add(pending.intent_id)
        if pending.origin.nonce is not None:
            self.nonces[pending.origin.source_id] += 1
        self.event_log.extend(tx.events)

        if self.verbose:
            self._print_tx_result(tx, "APPLIED", "✓")

        # Committed; listeners observe the new state and may call back in
        self._events.publish(tx.events)
        return ExecuteResult.APPLIED

    def _print_tx_result(self, tx: Transaction, result: str, icon: str) -> None:
        """Print the transaction box with a result line appended."""
        lines = repr(tx).split('\n')
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines[-1] = f"├{bar}┤"
        lines.append(f"│{pad(' ' + icon + ' ' + result)}│")
        lines.append(f"└{bar}┘")
        print("\n".join(lines))

    def _validate_pending(self, pending: PendingTransaction) -> Tuple[bool, str]:
        """
        Validate a pending transaction against all constraints without mutating.

        Checks performed:
        1. Timestamp (transaction must not be from the future)
        2. Caller nonce and block (must match the current nonce and current time)
        3. Units to create (must not collide with registered units)
        4. Stored state (old_state of every change must match current state)
        5. Unit and wallet registration, transfer rules
        6. Balance constraints (min/max balance limits)

        Returns:
            Tuple of (success, reason); reason is empty on success
        """
        if pending.timestamp > self._current_time:
            return False, "future timestamp"

        origin = pending.origin
        if origin.nonce is not None:
            expected = self.get_nonce(origin.source_id)
            if origin.nonce != expected:
                return False, f"stale nonce for {origin.source_id}: {origin.nonce} != {expected}"
            # Caller actions take their block time from the view; they apply in that block only
            if pending.timestamp != self._current_time:
                return False, f"stale timestamp: built at {pending.timestamp}, now {self._current_time}"

        new_units: Dict[str, Unit] = {}
        for unit in pending.units_to_create:
            if unit.symbol in self.units or unit.symbol in new_units:
                return False, f"unit already registered: {unit.symbol}"
            new_units[unit.symbol] = unit

        for sc in pending.state_changes:
            if sc.unit not in self.units:
                return False, f"unit not registered: {sc.unit}"
            if sc.old_state is None:
                continue
            current_state = self.units[sc.unit].state
            old_state = sc.old_state if isinstance(sc.old_state, dict) else {}
            for key in set(old_state.keys()) | set(current_state.keys()):
                if old_state.get(key) != current_state.get(key):
                    return False, f"stale state for {sc.unit}.{key}"

        def lookup(symbol: str) -> Optional[Unit]:
            return self.units.get(symbol) or new_units.get(symbol)

        for move in pending.moves:
            unit = lookup(move.unit_symbol)
            if unit is None:
                return False, f"unit not registered: {move.unit_symbol}"
            if not self.is_registered(move.source):
                return False, f"wallet not registered: {move.source}"
            if not self.is_registered(move.dest):
                return False, f"wallet not registered: {move.dest}"
            if unit.transfer_rule:
                try:
                    unit.transfer_rule(self, move)
                except TransferRuleViolation as e:
                    return False, str(e)

        # Net balance changes with unit rounding, matching _execute_moves
        net: Dict[Tuple[str, str], Decimal] = {}
        for move in pending.moves:
            unit = lookup(move.unit_symbol)
            key_src = (move.source, move.unit_symbol)
            key_dst = (move.dest, move.unit_symbol)
            net[key_src] = unit.round(net.get(key_src, Decimal("0")) - move.quantity)
            net[key_dst] = unit.round(net.get(key_dst, Decimal("0")) + move.quantity)

        # SYSTEM_WALLET is exempt from balance validation
        for (wallet, unit_sym), delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue
            unit = lookup(unit_sym)
            current = self.balances[wallet].get(unit_sym, Decimal("0"))
            proposed = unit.round(current + delta)
            if proposed < unit.min_balance:
                return False, f"insufficient funds: {wallet} {unit_sym}: {proposed} < min {unit.min_balance}"
            if proposed > unit.max_balance:
                return False, f"{wallet} {unit_sym}: {proposed} > max {unit.max_balance}"

        return True, ""

    def _update_position_index(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        """Keep the unit -> {wallet -> quantity} index in sync; dust is dropped."""
        if abs(quantity) > self.POSITION_EPSILON:
            self._positions_by_unit[unit_symbol][wallet_id] = quantity
        else:
            self._positions_by_unit[unit_symbol].pop(wallet_id, None)

    def _execute_moves(self, moves) -> None:
        """Apply moves to wallet balances (with unit rounding) and update the position index."""
        for move in moves:
            unit = self.units[move.unit_symbol]
            new_src_balance = unit.round(
                self.balances[move.source][move.unit_symbol] - move.quantity
            )
            self.balances[move.source][move.unit_symbol] = new_src_balance
            self._update_position_index(move.source, move.unit_symbol, new_src_balance)
            new_dst_balance = unit.round(
                self.balances[move.dest][move.unit_symbol] + move.quantity
            )
            self.balances[move.dest][move.unit_symbol] = new_dst_balance
            self._update_position_index(move.dest, move.unit_symbol, new_dst_balance)

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Create a deep copy of this ledger.

        Modifications to the clone do not affect the original and vice versa.
        Subscribers are not copied.
        """
        cloned = Ledger.__new__(Ledger)
        cloned.name = self.name
        cloned._current_time = self._current_time
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode
        cloned.native_asset = self.native_asset
        cloned._events = EventBus()

        cloned.units = {
            symbol: replace(unit, _frozen_state=_freeze_state(copy.deepcopy(unit.state)))
            for symbol, unit in self.units.items()
        }

        cloned.registered_wallets = self.registered_wallets.copy()
        cloned.seen_intent_ids = self.seen_intent_ids.copy()
        cloned.transaction_log = list(self.transaction_log)
        cloned.event_log = list(self.event_log)
        cloned.nonces = defaultdict(int, self.nonces)
        cloned._next_sequence = self._next_sequence

        cloned.balances = {}
        for wallet, bals in self.balances.items():
            cloned.balances[wallet] = defaultdict(lambda: Decimal("0"), bals)

        cloned._positions_by_unit = defaultdict(dict)
        for unit_symbol, positions in self._positions_by_unit.items():
            cloned._positions_by_unit[unit_symbol] = dict(positions)

        return cloned

    def clone_at(self, target_time: int) -> Ledger:
        """
        Create a copy of this ledger as it existed at a past block timestamp.

        Walks backward through transactions executed after target_time and
        reverses each one: balances are restored, unit state is reset to the
        recorded old_state, created units are removed, and nonces and the
        event log are rebuilt from the surviving log.

        Raises:
            ValueError: If target_time is in the future
        """
        _check_time(target_time)
        if target_time > self._current_time:
            raise ValueError(f"Target time {target_time} is in the future")

        cloned = self.clone()
        cloned._current_time = target_time

        cloned.transaction_log = [
            tx for tx in self.transaction_log
            if tx.execution_time <= target_time
        ]
        cloned.seen_intent_ids = {tx.intent_id for tx in cloned.transaction_log}
        cloned._next_sequence = len(cloned.transaction_log)
        cloned.event_log = [e for tx in cloned.transaction_log for e in tx.events]
        cloned.nonces = defaultdict(int)
        for tx in cloned.transaction_log:
            if tx.origin.nonce is not None:
                cloned.nonces[tx.origin.source_id] += 1

        for tx in reversed(self.transaction_log):
            if tx.execution_time <= target_time:
                break

            for move in tx.moves:
                unit = cloned.units.get(move.unit_symbol)
                if unit is None:
                    raise LedgerError(f"Cannot unwind: unit {move.unit_symbol} not found in cloned ledger")
                new_src = unit.round(cloned.balances[move.source][move.unit_symbol] + move.quantity)
                new_dst = unit.round(cloned.balances[move.dest][move.unit_symbol] - move.quantity)
                cloned.balances[move.source][move.unit_symbol] = new_src
                cloned.balances[move.dest][move.unit_symbol] = new_dst
                cloned._update_position_index(move.source, move.unit_symbol, new_src)
                cloned._update_position_index(move.dest, move.unit_symbol, new_dst)

            for sc in tx.state_changes:
                if sc.unit in cloned.units:
                    restored_state = copy.deepcopy(sc.old_state if isinstance(sc.old_state, dict) else {})
                    cloned.units[sc.unit] = replace(
                        cloned.units[sc.unit], _frozen_state=_freeze_state(restored_state)
                    )

            for unit in tx.units_to_create:
                cloned.units.pop(unit.symbol, None)
                for wallet in cloned.registered_wallets:
                    cloned.balances[wallet].pop(unit.symbol, None)
                cloned._positions_by_unit.pop(unit.symbol, None)

        return cloned

    def replay(self) -> Ledger:
        """
        Create a new ledger by re-executing the transaction log from the start.

        Units registered outside the log start from the state they had before
        their first logged change; units created by transactions are created
        again by those transactions. Wallet registrations are copied.

        Note: balances set via set_balance() are NOT replayed because they are
        not part of the transaction log.

        Raises:
            LedgerError: If any logged transaction is rejected on replay
        """
        new_ledger = Ledger(
            name=f"{self.name}_replayed",
            initial_time=0,
            verbose=self.verbose,
            test_mode=self._test_mode,
            native_asset=self.native_asset,
        )

        created_in_log = {u.symbol for tx in self.transaction_log for u in tx.units_to_create}
        initial_states: Dict[str, Any] = {}
        for tx in self.transaction_log:
            for sc in tx.state_changes:
                initial_states.setdefault(sc.unit, sc.old_state)

        for symbol, unit in self.units.items():
            if symbol in created_in_log:
                continue
            state = initial_states.get(symbol, unit.state)
            new_ledger.units[symbol] = replace(
                unit, _frozen_state=_freeze_state(copy.deepcopy(state or {}))
            )

        for wallet in self.registered_wallets:
            if wallet != SYSTEM_WALLET:
                new_ledger.register_wallet(wallet)

        for tx in self.transaction_log:
            if tx.execution_time > new_ledger.current_time:
                new_ledger.advance_time(tx.execution_time)

            pending = PendingTransaction(
                moves=tx.moves,
                state_changes=tx.state_changes,
                origin=tx.origin,
                timestamp=tx.timestamp,
                units_to_create=tx.units_to_create,
                events=tx.events,
            )
            result = new_ledger.execute(pending)
            if result != ExecuteResult.APPLIED:
                raise LedgerError(f"Replay failed at tx {tx.exec_id}: {result.value}")

        return new_ledger
