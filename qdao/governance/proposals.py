"""
Governance Proposals

Defines the proposal lifecycle states, the transition table and the
Proposal dataclass tracking a single proposal from creation to execution.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional, Tuple

from ..exceptions import QDAOException
from ..logger import get_logger
from .actions import ProposalAction

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class GovernanceError(QDAOException):
    """Base governance exception."""


class InvalidProposalError(GovernanceError):
    """Raised when proposal data is invalid."""


class ProposalLifecycleError(GovernanceError):
    """Raised on illegal state transitions."""


class ProposalNotFoundError(GovernanceError):
    """No proposal with the given id."""


# ══════════════════════════════════════════════════════════════════════
#  STATES
# ══════════════════════════════════════════════════════════════════════

class ProposalState(IntEnum):
    """Lifecycle stage."""
    PENDING = 0      # Zero default; never entered by a live proposal
    ACTIVE = 1       # Voting window open (or closed but not yet tallied)
    SUCCEEDED = 2    # Tallied with yes > no
    QUEUED = 3       # Waiting for the timelock
    EXECUTED = 4     # Actions applied
    FAILED = 5       # Tallied with yes <= no


_VALID_TRANSITIONS: Dict[ProposalState, set] = {
    ProposalState.PENDING:   {ProposalState.ACTIVE},
    ProposalState.ACTIVE:    {ProposalState.SUCCEEDED, ProposalState.FAILED},
    ProposalState.SUCCEEDED: {ProposalState.QUEUED},
    ProposalState.QUEUED:    {ProposalState.EXECUTED},
    # Terminal states: no further transitions
    ProposalState.EXECUTED:  set(),
    ProposalState.FAILED:    set(),
}

APPROVED_STATES = frozenset({
    ProposalState.SUCCEEDED,
    ProposalState.QUEUED,
    ProposalState.EXECUTED,
})


# ══════════════════════════════════════════════════════════════════════
#  PROPOSAL
# ══════════════════════════════════════════════════════════════════════

@dataclass
class Proposal:
    """
    On-chain governance proposal.

    Fields:
        id:            Unique monotonic identifier
        description:   Free text
        proposer:      Identity that opened it
        start_block:   First block of the voting window (also the vote snapshot)
        end_block:     Last block of the voting window
        actions:       Ordered effects applied atomically on execution
        yes_votes:     Accumulated quadratic weight in favour
        no_votes:      Accumulated quadratic weight against
        state:         Current lifecycle stage
        timelock_end:  Earliest execution timestamp, set when queued
    """
    id: int
    description: str
    proposer: str
    start_block: int
    end_block: int
    actions: List[ProposalAction] = field(default_factory=list)
    yes_votes: int = 0
    no_votes: int = 0
    state: ProposalState = ProposalState.PENDING
    timelock_end: Optional[int] = None
    executed_at: Optional[int] = None
    _history: List[Dict[str, Any]] = field(default_factory=list, repr=False)

    def __post_init__(self):
        if self.id <= 0:
            raise InvalidProposalError(f"Proposal id must be positive, got {self.id}")
        if not self.proposer:
            raise InvalidProposalError("Proposer address is required")
        if self.end_block < self.start_block:
            raise InvalidProposalError(
                f"Voting window ends ({self.end_block}) before it starts ({self.start_block})"
            )

    # ── Properties ────────────────────────────────────────────────────

    @property
    def is_terminal(self) -> bool:
        return self.state in (ProposalState.EXECUTED, ProposalState.FAILED)

    @property
    def is_approved(self) -> bool:
        return self.yes_votes > self.no_votes and self.state in APPROVED_STATES

    @property
    def history(self) -> List[Dict[str, Any]]:
        return list(self._history)

    def voting_open(self, block_number: int) -> bool:
        return (
            self.state == ProposalState.ACTIVE
            and self.start_block <= block_number <= self.end_block
        )

    # ── State transitions ─────────────────────────────────────────────

    def transition_to(self, new_state: ProposalState, reason: str = "", at: Optional[int] = None):
        """
        Advance proposal to *new_state*.

        Raises ProposalLifecycleError on invalid transitions.
        """
        allowed = _VALID_TRANSITIONS.get(self.state, set())
        if new_state not in allowed:
            raise ProposalLifecycleError(
                f"Cannot transition from {self.state.name} → {new_state.name}. "
                f"Allowed: {[s.name for s in allowed]}"
            )
        old = self.state
        self._history.append({
            "from": old.name,
            "to": new_state.name,
            "reason": reason,
            "timestamp": at,
        })
        self.state = new_state
        logger.info(f"Proposal #{self.id}: {old.name} → {new_state.name} | {reason}")

    def activate(self, at: Optional[int] = None):
        self.transition_to(ProposalState.ACTIVE, "Voting opened", at)

    def mark_succeeded(self, at: Optional[int] = None):
        self.transition_to(
            ProposalState.SUCCEEDED, f"yes={self.yes_votes} > no={self.no_votes}", at
        )

    def mark_failed(self, at: Optional[int] = None):
        self.transition_to(
            ProposalState.FAILED, f"yes={self.yes_votes} <= no={self.no_votes}", at
        )

    def queue(self, timelock_end: int, at: Optional[int] = None):
        self.transition_to(ProposalState.QUEUED, f"Timelock ends at {timelock_end}", at)
        self.timelock_end = timelock_end

    def mark_executed(self, at: Optional[int] = None):
        self.transition_to(ProposalState.EXECUTED, "Executed", at)
        self.executed_at = at

    # ── Tally ─────────────────────────────────────────────────────────

    def add_votes(self, support: bool, weight: int):
        if self.state != ProposalState.ACTIVE:
            raise ProposalLifecycleError(
                f"Proposal #{self.id} tally is frozen (state={self.state.name})"
            )
        if weight < 0:
            raise ValueError(f"Vote weight cannot be negative: {weight}")
        if support:
            self.yes_votes += weight
        else:
            self.no_votes += weight

    # ── Savepoints ────────────────────────────────────────────────────

    def savepoint(self) -> Tuple[Any, ...]:
        """Mutable fields as of now, for ``rollback``."""
        return (
            self.yes_votes,
            self.no_votes,
            self.state,
            self.timelock_end,
            self.executed_at,
            len(self._history),
        )

    def rollback(self, savepoint: Tuple[Any, ...]) -> None:
        (
            self.yes_votes,
            self.no_votes,
            self.state,
            self.timelock_end,
            self.executed_at,
            history_length,
        ) = savepoint
        del self._history[history_length:]

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "proposer": self.proposer,
            "startBlock": self.start_block,
            "endBlock": self.end_block,
            "yesVotes": str(self.yes_votes),
            "noVotes": str(self.no_votes),
            "state": self.state.name,
            "timelockEnd": self.timelock_end,
            "executedAt": self.executed_at,
            "actions": [a.to_dict() for a in self.actions],
            "historyLength": len(self._history),
        }

    def __repr__(self) -> str:
        return (
            f"<Proposal #{self.id} state={self.state.name} "
            f"yes={self.yes_votes} no={self.no_votes}>"
        )
