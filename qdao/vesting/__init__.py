"""
QDAO token vesting

Provides:
  - VestingSchedule / vested_amount   (schedules.py)
  - VestingLedger                     (ledger.py)
"""

from .schedules import (
    InvalidScheduleError,
    VestingError,
    VestingSchedule,
    vested_amount,
)
from .ledger import (
    CliffNotReachedError,
    InsufficientPoolBalanceError,
    NothingToReleaseError,
    ScheduleNotFoundError,
    VestingLedger,
)

__all__ = [
    "CliffNotReachedError",
    "InsufficientPoolBalanceError",
    "InvalidScheduleError",
    "NothingToReleaseError",
    "ScheduleNotFoundError",
    "VestingError",
    "VestingLedger",
    "VestingSchedule",
    "vested_amount",
]
