"""
Chain Context

The execution environment every QDAO component runs against: a block
number, a block timestamp, the shared call journal and the event log.
Tests and simulations move the clock explicitly with ``mine``,
``advance_time`` and ``warp``.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..constants import BLOCK_TIME_SECONDS
from ..logger import get_logger
from .journal import Journaled, StateJournal

logger = get_logger(__name__)


@dataclass(frozen=True)
class ChainEvent:
    """A log entry emitted by a component during a call."""
    name: str
    block_number: int
    timestamp: int
    args: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.name,
            "blockNumber": self.block_number,
            "timestamp": self.timestamp,
            "args": dict(self.args),
        }


class ChainContext(Journaled):
    """
    Block clock plus event log.

    Only the event log is journaled: a reverted call leaves no events behind,
    but time never moves backwards. The log is append-only, so a savepoint
    is just its length.
    """

    def __init__(
        self,
        block_number: int = 1,
        timestamp: Optional[int] = None,
        block_time: int = BLOCK_TIME_SECONDS,
        journal: Optional[StateJournal] = None,
    ):
        if block_number < 0:
            raise ValueError(f"block_number cannot be negative: {block_number}")
        if block_time <= 0:
            raise ValueError(f"block_time must be positive: {block_time}")

        self.block_number = block_number
        self.timestamp = int(time.time()) if timestamp is None else int(timestamp)
        self.block_time = block_time
        self.journal = journal or StateJournal()
        self._events: List[ChainEvent] = []
        self.journal.register(self)

    # ── Clock ─────────────────────────────────────────────────────────

    def mine(self, blocks: int = 1) -> int:
        """Advance *blocks* blocks, moving time by ``block_time`` each."""
        if blocks < 0:
            raise ValueError("Cannot mine a negative number of blocks")
        self.block_number += blocks
        self.timestamp += blocks * self.block_time
        return self.block_number

    def advance_time(self, seconds: int) -> int:
        """Move the timestamp forward without producing blocks."""
        if seconds < 0:
            raise ValueError("Time cannot move backwards")
        self.timestamp += seconds
        return self.timestamp

    def warp(self, timestamp: int) -> int:
        if timestamp < self.timestamp:
            raise ValueError(f"Cannot warp back from {self.timestamp} to {timestamp}")
        self.timestamp = timestamp
        return self.timestamp

    # ── Events ────────────────────────────────────────────────────────

    def emit(self, name: str, **args: Any) -> ChainEvent:
        event = ChainEvent(
            name=name,
            block_number=self.block_number,
            timestamp=self.timestamp,
            args=args,
        )
        self._events.append(event)
        return event

    @property
    def events(self) -> List[ChainEvent]:
        return list(self._events)

    def events_named(self, name: str) -> List[ChainEvent]:
        return [e for e in self._events if e.name == name]

    # ── Journal ───────────────────────────────────────────────────────

    def snapshot_state(self) -> Dict[str, Any]:
        return {"event_count": len(self._events)}

    def restore_state(self, state: Dict[str, Any]) -> None:
        del self._events[state["event_count"]:]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "blockNumber": self.block_number,
            "timestamp": self.timestamp,
            "blockTime": self.block_time,
            "eventCount": len(self._events),
            "journalDepth": self.journal.depth,
        }

    def __repr__(self) -> str:
        return f"<ChainContext block={self.block_number} ts={self.timestamp}>"
