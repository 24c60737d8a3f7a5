"""
Vesting schedules — linear release after a cliff.
"""

from dataclasses import dataclass
from typing import Any, Dict

from ..exceptions import QDAOException


class VestingError(QDAOException):
    """Base vesting exception."""


class InvalidScheduleError(VestingError):
    """Schedule parameters violate duration ≥ cliff ≥ 0."""


@dataclass
class VestingSchedule:
    """
    One allocation to one beneficiary.

    Fields:
        beneficiary:   Receiving identity
        start:         Vesting start (UNIX seconds)
        cliff:         start + cliff duration; nothing vests before it
        duration:      Seconds from start until fully vested
        total_amount:  Allocation in base units
        released:      Amount already paid out
    """
    beneficiary: str
    start: int
    cliff: int
    duration: int
    total_amount: int
    released: int = 0

    def __post_init__(self):
        if self.duration <= 0:
            raise InvalidScheduleError(f"Duration must be positive, got {self.duration}")
        if self.total_amount <= 0:
            raise InvalidScheduleError(f"Total amount must be positive, got {self.total_amount}")
        cliff_duration = self.cliff - self.start
        if cliff_duration < 0 or cliff_duration > self.duration:
            raise InvalidScheduleError(
                f"Cliff duration {cliff_duration} must be within [0, {self.duration}]"
            )
        if not 0 <= self.released <= self.total_amount:
            raise InvalidScheduleError(
                f"Released {self.released} outside [0, {self.total_amount}]"
            )

    @property
    def initialized(self) -> bool:
        return self.total_amount > 0

    @property
    def end(self) -> int:
        return self.start + self.duration

    @property
    def cliff_duration(self) -> int:
        return self.cliff - self.start

    def to_dict(self) -> Dict[str, Any]:
        return {
            "beneficiary": self.beneficiary,
            "start": self.start,
            "cliff": self.cliff,
            "duration": self.duration,
            "totalAmount": str(self.total_amount),
            "released": str(self.released),
        }


def vested_amount(schedule: VestingSchedule, timestamp: int) -> int:
    """
    Amount of *schedule* vested at *timestamp*.

    Linear from ``start`` with floor division; zero before the cliff and
    exactly ``total_amount`` from ``start + duration`` on. Truncation losses
    in between are not carried forward.
    """
    if timestamp < schedule.cliff:
        return 0
    if timestamp >= schedule.end:
        return schedule.total_amount
    return schedule.total_amount * (timestamp - schedule.start) // schedule.duration
