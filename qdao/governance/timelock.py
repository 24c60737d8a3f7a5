"""
Timelock Duration Multisig

The execution timelock duration is not governed by proposals. A fixed set
of approvers changes it instead: approvers back one pending duration at a
time and a simple majority (``len(approvers) // 2 + 1``) applies it.
"""

from typing import Any, Dict, Iterable, Optional, Set

from ..constants import ZERO_ADDRESS
from ..exceptions import InvalidAddressError
from ..logger import get_logger
from .proposals import GovernanceError

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class TimelockError(GovernanceError):
    """Timelock-specific errors."""


class TimelockNotExpiredError(TimelockError):
    """Execution attempted before the timelock ends."""


class NotAnApproverError(TimelockError):
    """Caller is not in the approver set."""


class InvalidTimelockDurationError(TimelockError):
    """Proposed duration must be positive."""


class ConflictingTimelockProposalError(TimelockError):
    """A different duration is already pending."""


class DuplicateApprovalError(TimelockError):
    """Approver already backed the pending duration."""


# ══════════════════════════════════════════════════════════════════════
#  MULTISIG
# ══════════════════════════════════════════════════════════════════════

class TimelockMultisig:
    """
    Approver-majority change of the timelock duration.

    State:
        approvers         fixed set, replaced wholesale by ``set_approvers``
        pending_duration  duration currently collecting approvals (0 = none)
        approval_count    approvals collected for it
        has_approved      per-approver flag for the pending duration
    """

    def __init__(self, approvers: Optional[Iterable[str]] = None):
        self._approvers: Set[str] = set()
        self.pending_duration = 0
        self.approval_count = 0
        self._has_approved: Set[str] = set()
        if approvers:
            self.set_approvers(approvers)

    # ── Approver set ──────────────────────────────────────────────────

    @property
    def approvers(self) -> Set[str]:
        return set(self._approvers)

    @property
    def required_approvals(self) -> int:
        return len(self._approvers) // 2 + 1

    def is_approver(self, address: str) -> bool:
        return address in self._approvers

    def has_approved(self, address: str) -> bool:
        return address in self._has_approved

    def set_approvers(self, approvers: Iterable[str]) -> None:
        """Replace the approver set and drop any pending change."""
        new_set = set(approvers)
        for approver in new_set:
            if not approver or approver == ZERO_ADDRESS:
                raise InvalidAddressError("Approver cannot be the zero address")
        self._approvers = new_set
        self._reset()
        logger.info(
            f"Timelock approvers set: {len(new_set)} approvers, "
            f"{self.required_approvals} required"
        )

    # ── Proposals ─────────────────────────────────────────────────────

    def propose(self, approver: str, duration: int) -> Optional[int]:
        """
        Back *duration* as the new timelock duration.

        Returns:
            The duration once the majority is reached (pending state is
            cleared), otherwise None.
        """
        if approver not in self._approvers:
            raise NotAnApproverError(f"{approver} is not a timelock approver")
        if duration <= 0:
            raise InvalidTimelockDurationError(
                f"Timelock duration must be positive, got {duration}"
            )
        if self.pending_duration and self.pending_duration != duration:
            logger.warning(
                f"Conflicting timelock proposal from {approver}: "
                f"{duration}s while {self.pending_duration}s is pending"
            )
            raise ConflictingTimelockProposalError(
                f"Duration {self.pending_duration}s is already pending"
            )
        if approver in self._has_approved:
            logger.warning(f"Duplicate timelock approval from {approver}")
            raise DuplicateApprovalError(f"{approver} already approved {duration}s")

        self.pending_duration = duration
        self._has_approved.add(approver)
        self.approval_count += 1
        logger.info(
            f"Timelock change to {duration}s approved by {approver} "
            f"({self.approval_count}/{self.required_approvals})"
        )

        if self.approval_count >= self.required_approvals:
            self._reset()
            return duration
        return None

    def _reset(self) -> None:
        self.pending_duration = 0
        self.approval_count = 0
        self._has_approved = set()

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "approvers": sorted(self._approvers),
            "requiredApprovals": self.required_approvals,
            "pendingDuration": self.pending_duration,
            "approvalCount": self.approval_count,
            "approvedBy": sorted(self._has_approved),
        }

    def __repr__(self) -> str:
        return (
            f"<TimelockMultisig approvers={len(self._approvers)} "
            f"pending={self.pending_duration} approvals={self.approval_count}>"
        )
