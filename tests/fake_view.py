"""
fake_view.py - Test Helper for LedgerView

Provides a minimal LedgerView implementation for testing contract functions
without requiring a full Ledger instance.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Dict, Set, Optional, Any

from pingpong.core import Positions, UnitState


class FakeUnit:
    """Minimal Unit for testing."""
    def __init__(self, symbol: str, min_balance: Decimal = Decimal("0"), max_balance: Decimal = Decimal("Infinity")):
        self.symbol = symbol
        self.min_balance = min_balance
        self.max_balance = max_balance


class FakeView:
    """
    Minimal LedgerView implementation for testing contract functions.

    Example:
        view = FakeView(
            balances={'alice': {'TOKEN': Decimal("1000")}},
            states={'PINGPONG': to_state_dict(config, state)},
            time=1000,
        )
    """

    def __init__(
        self,
        balances: Dict[str, Dict[str, Decimal]],
        states: Optional[Dict[str, UnitState]] = None,
        time: int = 0,
        units: Optional[Dict[str, Any]] = None,
        nonces: Optional[Dict[str, int]] = None,
    ):
        self._balances = balances
        self._states = states or {}
        self._time = time
        self._units = units or {}
        self._nonces = nonces or {}

    @property
    def current_time(self) -> int:
        return self._time

    def get_balance(self, wallet: str, unit: str) -> Decimal:
        return self._balances.get(wallet, {}).get(unit, Decimal("0"))

    def get_unit_state(self, unit: str) -> UnitState:
        return dict(self._states.get(unit, {}))

    def get_positions(self, unit: str) -> Positions:
        return {
            w: b[unit]
            for w, b in self._balances.items()
            if unit in b and b[unit] != 0
        }

    def list_wallets(self) -> Set[str]:
        return set(self._balances.keys())

    def get_unit(self, symbol: str) -> Any:
        if symbol in self._units:
            return self._units[symbol]
        return FakeUnit(symbol)

    def get_nonce(self, wallet: str) -> int:
        return self._nonces.get(wallet, 0)
