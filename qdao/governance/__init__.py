"""
QDAO On-Chain Governance

Provides:
  - Proposal lifecycle state machine     (proposals.py)
  - Tagged proposal action effects       (actions.py)
  - Quadratic voting                     (voting.py)
  - Timelock duration multisig           (timelock.py)
  - GovernanceEngine orchestrator        (engine.py)
"""

from .actions import (
    ActionTarget,
    ContractCall,
    GovernedTarget,
    ParameterChange,
    ProposalAction,
    TokenTransfer,
)
from .proposals import (
    GovernanceError,
    InvalidProposalError,
    Proposal,
    ProposalLifecycleError,
    ProposalNotFoundError,
    ProposalState,
)
from .voting import (
    AlreadyVotedError,
    InsufficientVotingPowerError,
    Vote,
    VoteRecord,
    VoteRegistry,
    VotingClosedError,
    VotingError,
    isqrt,
)
from .timelock import (
    ConflictingTimelockProposalError,
    DuplicateApprovalError,
    InvalidTimelockDurationError,
    NotAnApproverError,
    TimelockError,
    TimelockMultisig,
    TimelockNotExpiredError,
)
from .engine import (
    ActionExecutionError,
    GovernanceEngine,
    MismatchedActionsError,
    ProposalAlreadyExecutedError,
    ProposalDefeatedError,
    VotingNotEndedError,
)

__all__ = [
    # Actions
    "ActionTarget",
    "ContractCall",
    "GovernedTarget",
    "ParameterChange",
    "ProposalAction",
    "TokenTransfer",
    # Proposals
    "GovernanceError",
    "InvalidProposalError",
    "Proposal",
    "ProposalLifecycleError",
    "ProposalNotFoundError",
    "ProposalState",
    # Voting
    "AlreadyVotedError",
    "InsufficientVotingPowerError",
    "Vote",
    "VoteRecord",
    "VoteRegistry",
    "VotingClosedError",
    "VotingError",
    "isqrt",
    # Timelock
    "ConflictingTimelockProposalError",
    "DuplicateApprovalError",
    "InvalidTimelockDurationError",
    "NotAnApproverError",
    "TimelockError",
    "TimelockMultisig",
    "TimelockNotExpiredError",
    # Engine
    "ActionExecutionError",
    "GovernanceEngine",
    "MismatchedActionsError",
    "ProposalAlreadyExecutedError",
    "ProposalDefeatedError",
    "VotingNotEndedError",
]
