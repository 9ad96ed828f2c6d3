"""
events.py - Contract Notifications

Notifications are plain data carried on a PendingTransaction. The ledger
records and publishes them only after the transaction commits, so a rejected
call never emits anything.

Core concepts:
1. ContractEvent: Immutable record of what happened, to whom, and when
2. EventBus: Subscriber registry; publish() delivers in subscription order
3. The transaction log remains the audit trail; the event log is a view of it
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple


PING_EVENT = "ping"
PONG_EVENT = "pong"


@dataclass(frozen=True, slots=True)
class ContractEvent:
    """
    Immutable notification emitted by a contract call.

    Attributes:
        name: Event name ("ping", "pong")
        contract: Symbol of the emitting contract
        party: Indexed party identity
        timestamp: Logical time of the call
    """
    name: str
    contract: str
    party: str
    timestamp: int

    @property
    def event_id(self) -> str:
        return f"{self.name}:{self.contract}:{self.party}:{self.timestamp}"


def ping_event(contract: str, party: str, timestamp: int) -> ContractEvent:
    return ContractEvent(PING_EVENT, contract, party, timestamp)


def pong_event(contract: str, party: str, timestamp: int) -> ContractEvent:
    return ContractEvent(PONG_EVENT, contract, party, timestamp)


# Subscriber type: called once per committed event
EventListener = Callable[[ContractEvent], None]


class EventBus:
    """
    Minimal publish/subscribe registry for committed contract events.

    Delivery is synchronous and fire-and-forget: there is no queue and no
    retry. An exception raised by a listener propagates to the publisher.
    """

    def __init__(self):
        self._listeners: List[Tuple[Optional[str], EventListener]] = []

    def subscribe(self, listener: EventListener, name: Optional[str] = None) -> None:
        """Register a listener for all events, or only for events called `name`."""
        self._listeners.append((name, listener))

    def unsubscribe(self, listener: EventListener) -> None:
        self._listeners = [(n, l) for n, l in self._listeners if l != listener]

    def publish(self, events: Iterable[ContractEvent]) -> None:
        # Snapshot so listeners may (un)subscribe while being notified
        listeners = list(self._listeners)
        for event in events:
            for name, listener in listeners:
                if name is None or name == event.name:
                    listener(event)

    def __len__(self) -> int:
        return len(self._listeners)


def filter_events(
    events: Iterable[ContractEvent],
    name: Optional[str] = None,
    contract: Optional[str] = None,
    party: Optional[str] = None,
) -> List[ContractEvent]:
    """Select events matching every given criterion (None matches anything)."""
    return [
        e for e in events
        if (name is None or e.name == name)
        and (contract is None or e.contract == contract)
        and (party is None or e.party == party)
    ]
