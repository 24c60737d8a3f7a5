"""
QDAO execution environment

Provides:
  - ChainContext / ChainEvent              (context.py)
  - StateJournal / Journaled / transactional (journal.py)
  - NonReentrant                           (guards.py)
"""

from .context import ChainContext, ChainEvent
from .guards import NonReentrant
from .journal import Journaled, StateJournal, transactional

__all__ = [
    "ChainContext",
    "ChainEvent",
    "Journaled",
    "NonReentrant",
    "StateJournal",
    "transactional",
]
