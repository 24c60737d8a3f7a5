"""
Checkpoint history — append-only (block, value) list.

Answers "value as of block B" by binary search without replaying history.
"""

import bisect
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


@dataclass
class Checkpoints:
    """
    Sorted sequence of ``(block, value)`` pairs.

    Writes only ever happen at the current block, so the list stays sorted
    by construction; a second write in the same block overwrites the last
    entry instead of appending.
    """
    _blocks: List[int] = field(default_factory=list)
    _values: List[int] = field(default_factory=list)

    def push(self, block: int, value: int) -> Tuple[int, int]:
        """
        Record *value* as of *block*.

        Returns:
            (previous latest value, new value)
        """
        if value < 0:
            raise ValueError(f"Checkpoint value cannot be negative: {value}")
        previous = self.latest()
        if self._blocks:
            last = self._blocks[-1]
            if block < last:
                raise ValueError(f"Checkpoint block {block} precedes latest {last}")
            if block == last:
                self._values[-1] = value
                return previous, value
        self._blocks.append(block)
        self._values.append(value)
        return previous, value

    def latest(self) -> int:
        return self._values[-1] if self._values else 0

    def upper_lookup(self, block: int) -> int:
        """Value of the last checkpoint at or before *block* (0 if none)."""
        idx = bisect.bisect_right(self._blocks, block)
        return self._values[idx - 1] if idx else 0

    def latest_block(self) -> Optional[int]:
        return self._blocks[-1] if self._blocks else None

    def __len__(self) -> int:
        return len(self._blocks)

    def items(self) -> List[Tuple[int, int]]:
        return list(zip(self._blocks, self._values))

    def mark(self) -> Tuple[int, int]:
        """Position to roll back to: (entry count, latest value)."""
        return len(self._blocks), self.latest()

    def rollback(self, mark: Tuple[int, int]) -> None:
        """Drop entries written after *mark* and restore its latest value."""
        count, value = mark
        del self._blocks[count:]
        del self._values[count:]
        if count:
            self._values[-1] = value
