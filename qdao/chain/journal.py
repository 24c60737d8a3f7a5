"""
Call Journal — all-or-nothing public operations

Every public mutating operation runs inside an atomic scope: the declared
state of every registered participant is snapshotted on entry and restored
if the operation raises. Scopes nest as savepoints, so an inner failure that
is allowed to propagate unwinds every enclosing scope as well.
"""

import copy
import functools
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Tuple

from ..logger import get_logger

logger = get_logger(__name__)


class Journaled:
    """
    Mixin for components whose state the journal can snapshot.

    Subclasses list the attributes holding mutable state in
    ``_journaled_fields``; anything not listed (clock, collaborators,
    locks) is left alone on revert. The default deep-copies every listed
    field, so state that grows with history
    should instead be snapshotted by position in an override of
    ``snapshot_state`` / ``restore_state`` that extends the default.
    """

    _journaled_fields: Tuple[str, ...] = ()

    def snapshot_state(self) -> Dict[str, Any]:
        return {name: copy.deepcopy(getattr(self, name)) for name in self._journaled_fields}

    def restore_state(self, state: Dict[str, Any]) -> None:
        for name, value in state.items():
            setattr(self, name, value)


class StateJournal:
    """
    Snapshot / revert stack shared by every component on one chain.
    """

    def __init__(self):
        self._participants: List[Journaled] = []
        self._snapshots: List[List[Tuple[Journaled, Dict[str, Any]]]] = []

    def register(self, participant: Journaled) -> None:
        if participant not in self._participants:
            self._participants.append(participant)

    @property
    def depth(self) -> int:
        return len(self._snapshots)

    def snapshot(self) -> int:
        """
        Create a savepoint covering all registered participants.

        Returns:
            Snapshot ID
        """
        self._snapshots.append([(p, p.snapshot_state()) for p in self._participants])
        return len(self._snapshots) - 1

    def revert(self, snapshot_id: int) -> None:
        """
        Restore every participant to the savepoint and drop it along with
        any newer savepoints.
        """
        if snapshot_id < 0 or snapshot_id >= len(self._snapshots):
            raise ValueError(f"Invalid snapshot ID: {snapshot_id}")

        for participant, state in self._snapshots[snapshot_id]:
            participant.restore_state(state)
        self._snapshots = self._snapshots[:snapshot_id]

    def discard(self, snapshot_id: int) -> None:
        """Keep the changes made since the savepoint."""
        if snapshot_id < 0 or snapshot_id >= len(self._snapshots):
            raise ValueError(f"Invalid snapshot ID: {snapshot_id}")
        self._snapshots = self._snapshots[:snapshot_id]

    @contextmanager
    def atomic(self) -> Iterator[int]:
        snapshot_id = self.snapshot()
        try:
            yield snapshot_id
        except Exception as exc:
            self.revert(snapshot_id)
            logger.debug(f"REVERTED to savepoint {snapshot_id}: {type(exc).__name__}: {exc}")
            raise
        else:
            self.discard(snapshot_id)


def transactional(method):
    """
    Run a component method inside ``self.chain.journal.atomic()``.
    """
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.chain.journal.atomic():
            return method(self, *args, **kwargs)
    return wrapper
