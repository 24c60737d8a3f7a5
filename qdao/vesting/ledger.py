"""
Vesting Ledger — Cliff + Linear Token Vesting

Owns every beneficiary's ordered list of schedules and pays out vested
tokens from the ledger's own pooled token balance. Schedules share that
pool: each creation checks only the instantaneous pool balance, not the
sum of outstanding commitments.
"""

from typing import Any, Dict, List

from ..chain import ChainContext, Journaled, transactional
from ..constants import ZERO_ADDRESS
from ..exceptions import (
    InvalidAddressError,
    NotAuthorizedError,
    TransferFailedError,
    ZeroAmountError,
)
from ..logger import get_logger
from ..tokens.ledger import LedgerError
from .schedules import (
    InvalidScheduleError,
    VestingError,
    VestingSchedule,
    vested_amount,
)

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class ScheduleNotFoundError(VestingError):
    """No schedule at the given index for the caller."""


class CliffNotReachedError(VestingError):
    """Release attempted before the schedule's cliff."""


class NothingToReleaseError(VestingError):
    """Everything vested so far has already been released."""


class InsufficientPoolBalanceError(VestingError):
    """The vesting pool cannot cover the requested amount."""


# ══════════════════════════════════════════════════════════════════════
#  VESTING LEDGER
# ══════════════════════════════════════════════════════════════════════

class VestingLedger(Journaled):
    """
    Per-beneficiary vesting schedules paid out of a pooled balance.

    Responsibilities:
        - Create schedules (owner only, pool must cover each one)
        - Report vested (claimable) and locked (unvested) balances
        - Release vested tokens, updating ``released`` before transferring
    """

    def __init__(self, chain: ChainContext, token, address: str, owner: str):
        """
        Args:
            chain:   Shared chain context
            token:   GovernanceToken paying out releases
            address: Identity holding the vesting pool on the token ledger
            owner:   Only identity allowed to create schedules
        """
        if not address or address == ZERO_ADDRESS:
            raise InvalidAddressError("Vesting ledger needs a non-zero address")
        if not owner or owner == ZERO_ADDRESS:
            raise InvalidAddressError("Vesting ledger needs a non-zero owner")

        self.chain = chain
        self.token = token
        self.address = address
        self.owner = owner
        self._schedules: Dict[str, List[VestingSchedule]] = {}
        chain.journal.register(self)

    # ── Creation ──────────────────────────────────────────────────────

    @transactional
    def create_vesting_schedule(
        self,
        caller: str,
        beneficiary: str,
        start: int,
        cliff_duration: int,
        duration: int,
        total_amount: int,
    ) -> int:
        """
        Append a schedule for *beneficiary*.

        Returns:
            Index of the new schedule in the beneficiary's list
        """
        if caller != self.owner:
            raise NotAuthorizedError(f"{caller} may not create vesting schedules")
        if not beneficiary or beneficiary == ZERO_ADDRESS:
            raise InvalidAddressError("Beneficiary cannot be the zero address")
        if duration <= 0:
            raise InvalidScheduleError(f"Duration must be positive, got {duration}")
        if total_amount <= 0:
            raise ZeroAmountError("Vesting amount must be positive")
        if cliff_duration < 0 or cliff_duration > duration:
            raise InvalidScheduleError(
                f"Cliff duration {cliff_duration} must be within [0, {duration}]"
            )

        pool = self.token.balance_of(self.address)
        if pool < total_amount:
            raise InsufficientPoolBalanceError(
                f"Vesting pool holds {pool}, schedule needs {total_amount}"
            )

        schedule = VestingSchedule(
            beneficiary=beneficiary,
            start=start,
            cliff=start + cliff_duration,
            duration=duration,
            total_amount=total_amount,
        )
        schedules = self._schedules.setdefault(beneficiary, [])
        schedules.append(schedule)
        index = len(schedules) - 1

        self.chain.emit(
            "VestingScheduleCreated",
            beneficiary=beneficiary,
            index=index,
            start=start,
            cliff=schedule.cliff,
            duration=duration,
            totalAmount=total_amount,
        )
        logger.info(
            f"Schedule #{index} created for {beneficiary}: amount={total_amount} "
            f"cliff={cliff_duration}s duration={duration}s"
        )
        return index

    # ── Queries ───────────────────────────────────────────────────────

    def get_schedules(self, beneficiary: str) -> List[VestingSchedule]:
        return list(self._schedules.get(beneficiary, []))

    def get_schedule_count(self, beneficiary: str) -> int:
        return len(self._schedules.get(beneficiary, []))

    def get_schedule(self, beneficiary: str, index: int) -> VestingSchedule:
        schedules = self._schedules.get(beneficiary, [])
        if index < 0 or index >= len(schedules):
            raise ScheduleNotFoundError(
                f"{beneficiary} has no schedule #{index} ({len(schedules)} total)"
            )
        return schedules[index]

    def releasable_amount(self, beneficiary: str, index: int) -> int:
        schedule = self.get_schedule(beneficiary, index)
        return vested_amount(schedule, self.chain.timestamp) - schedule.released

    def get_vested_balance(self, beneficiary: str) -> int:
        """Vested but not yet released, summed over all schedules."""
        now = self.chain.timestamp
        return sum(
            vested_amount(s, now) - s.released
            for s in self._schedules.get(beneficiary, [])
        )

    def get_locked_balance(self, beneficiary: str) -> int:
        """
        Not yet vested, summed over all schedules.

        The transfer guard holds back this much of the beneficiary's whole
        wallet balance, not of tokens still in the pool. Released tokens
        sit in the same wallet, so until the unvested remainder drops to
        zero they stay non-transferable except to privileged sinks (or
        where the wallet holds more than the locked amount).
        """
        now = self.chain.timestamp
        return sum(
            s.total_amount - vested_amount(s, now)
            for s in self._schedules.get(beneficiary, [])
        )

    def get_total_released(self, beneficiary: str) -> int:
        return sum(s.released for s in self._schedules.get(beneficiary, []))

    def total_committed(self) -> int:
        """Outstanding (unreleased) allocations across every beneficiary."""
        return sum(
            s.total_amount - s.released
            for schedules in self._schedules.values()
            for s in schedules
        )

    # ── Release ───────────────────────────────────────────────────────

    @transactional
    def release(self, caller: str, schedule_index: int) -> int:
        """
        Pay out everything vested and unreleased on one of the caller's
        own schedules.

        Returns:
            Amount transferred
        """
        schedule = self.get_schedule(caller, schedule_index)
        if not schedule.initialized:
            raise ScheduleNotFoundError(f"Schedule #{schedule_index} is not initialized")

        now = self.chain.timestamp
        if now < schedule.cliff:
            raise CliffNotReachedError(
                f"Schedule #{schedule_index} cliff at {schedule.cliff}, now {now}"
            )

        unreleased = vested_amount(schedule, now) - schedule.released
        if unreleased <= 0:
            raise NothingToReleaseError(
                f"Nothing to release on schedule #{schedule_index} for {caller}"
            )

        schedule.released += unreleased

        pool = self.token.balance_of(self.address)
        if pool < unreleased:
            raise InsufficientPoolBalanceError(
                f"Vesting pool holds {pool}, release needs {unreleased}"
            )
        try:
            self.token.transfer(self.address, caller, unreleased)
        except LedgerError as exc:
            raise TransferFailedError(f"Release transfer failed: {exc}") from exc

        self.chain.emit(
            "TokensReleased",
            beneficiary=caller,
            index=schedule_index,
            amount=unreleased,
        )
        logger.info(
            f"Schedule #{schedule_index} released amount={unreleased} to {caller} "
            f"({schedule.released}/{schedule.total_amount})"
        )
        return unreleased

    # ── Journal ───────────────────────────────────────────────────────

    def snapshot_state(self) -> Dict[str, Any]:
        # ``released`` is the only field a schedule changes after creation
        return {
            "released": {
                beneficiary: [s.released for s in schedules]
                for beneficiary, schedules in self._schedules.items()
            }
        }

    def restore_state(self, state: Dict[str, Any]) -> None:
        released = state["released"]
        for beneficiary in list(self._schedules):
            if beneficiary not in released:
                del self._schedules[beneficiary]
                continue
            schedules = self._schedules[beneficiary]
            del schedules[len(released[beneficiary]):]
            for schedule, amount in zip(schedules, released[beneficiary]):
                schedule.released = amount

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "owner": self.owner,
            "poolBalance": str(self.token.balance_of(self.address)),
            "totalCommitted": str(self.total_committed()),
            "schedules": {
                b: [s.to_dict() for s in schedules]
                for b, schedules in self._schedules.items()
            },
        }

    def __repr__(self) -> str:
        count = sum(len(s) for s in self._schedules.values())
        return f"<VestingLedger schedules={count} beneficiaries={len(self._schedules)}>"
