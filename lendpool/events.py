"""
events.py - Domain events emitted by a liquidity pool

Events are appended only after the ledger applied the operation's
transaction, so a failed call never leaves an event behind.
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, List, Optional


DEPOSITED = "Deposited"
SHARES_MINTED = "SharesMinted"
SHARES_BURNED = "SharesBurned"
WITHDRAWAL = "Withdrawal"
BORROWED = "Borrowed"
REPAID = "Repaid"
LOAN_CLOSED = "LoanClosed"
PAYMENT_COLLECTED = "PaymentCollected"

DEFAULT_EVENT_LOG_SIZE = 10_000


@dataclass(frozen=True, slots=True)
class PoolEvent:
    name: str
    pool: str
    actor: str
    amount: int
    exec_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        extra = f", {self.details}" if self.details else ""
        return f"{self.name}({self.pool}, actor={self.actor}, amount={self.amount}{extra})"


class EventLog:
    """Bounded in-memory event log; oldest events drop off first."""

    def __init__(self, maxlen: Optional[int] = DEFAULT_EVENT_LOG_SIZE) -> None:
        self.events: deque = deque(maxlen=maxlen)

    def add(self, event: PoolEvent) -> None:
        self.events.append(event)

    def extend(self, events: List[PoolEvent]) -> None:
        self.events.extend(events)

    def tail(self, n: int = 200) -> List[PoolEvent]:
        if n <= 0:
            return []
        if n >= len(self.events):
            return list(self.events)
        return list(self.events)[-n:]

    def named(self, name: str) -> List[PoolEvent]:
        return [e for e in self.events if e.name == name]

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self):
        return iter(list(self.events))
