"""
Quadratic Voting

Implements:
  - Vote weight = floor(sqrt(voting power at the proposal snapshot))
  - One permanent vote per (proposal, voter)
  - Yes / No tallies on the proposal
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..constants import GOVERNANCE_VOTE_NO, GOVERNANCE_VOTE_YES
from ..logger import get_logger
from .proposals import GovernanceError, Proposal

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class VotingError(GovernanceError):
    """Base voting error."""


class InsufficientVotingPowerError(VotingError):
    """Proposer's historical voting power is below the threshold."""


class AlreadyVotedError(VotingError):
    """Voter already cast a vote on this proposal."""


class VotingClosedError(VotingError):
    """Voting window not open."""


# ══════════════════════════════════════════════════════════════════════
#  WEIGHT
# ══════════════════════════════════════════════════════════════════════

def isqrt(y: int) -> int:
    """
    Floor square root by Newton iteration.

    isqrt(0) == 0, isqrt(1..3) == 1, and isqrt(n*n) == n for every n.
    """
    if y < 0:
        raise ValueError(f"isqrt of negative value {y}")
    if y > 3:
        z = y
        x = y // 2 + 1
        while x < z:
            z = x
            x = (y // x + x) // 2
        return z
    if y != 0:
        return 1
    return 0


def quadratic_weight(voting_power: int) -> int:
    return isqrt(max(voting_power, 0))


# ══════════════════════════════════════════════════════════════════════
#  VOTE DATA
# ══════════════════════════════════════════════════════════════════════

class Vote:
    """Vote direction constants matching constants.py."""
    NO = GOVERNANCE_VOTE_NO
    YES = GOVERNANCE_VOTE_YES

    _NAMES = {
        GOVERNANCE_VOTE_NO: "NO",
        GOVERNANCE_VOTE_YES: "YES",
    }

    @classmethod
    def name(cls, support: bool) -> str:
        return cls._NAMES[cls.YES if support else cls.NO]


@dataclass(frozen=True)
class VoteRecord:
    """An individual vote cast by a voter."""
    proposal_id: int
    voter: str
    support: bool
    weight: int       # isqrt(raw_power)
    raw_power: int    # get_past_votes(voter, start_block)
    block: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposalId": self.proposal_id,
            "voter": self.voter,
            "support": Vote.name(self.support),
            "weight": str(self.weight),
            "rawPower": str(self.raw_power),
            "block": self.block,
        }


# ══════════════════════════════════════════════════════════════════════
#  REGISTRY
# ══════════════════════════════════════════════════════════════════════

class VoteRegistry:
    """
    Has-voted flags and cast votes for every proposal.

    Flags are never cleared, including for zero-weight votes.
    """

    def __init__(self):
        self._votes: Dict[int, Dict[str, VoteRecord]] = {}
        # (proposal_id, voter) in casting order
        self._order: List[Tuple[int, str]] = []

    def has_voted(self, proposal_id: int, voter: str) -> bool:
        return voter in self._votes.get(proposal_id, {})

    def get_vote(self, proposal_id: int, voter: str) -> Optional[VoteRecord]:
        return self._votes.get(proposal_id, {}).get(voter)

    def votes_for(self, proposal_id: int) -> List[VoteRecord]:
        return list(self._votes.get(proposal_id, {}).values())

    def record(
        self,
        proposal: Proposal,
        voter: str,
        support: bool,
        raw_power: int,
        block: int,
    ) -> VoteRecord:
        """
        Register *voter*'s vote on *proposal* and add its quadratic weight
        to the matching tally.
        """
        if self.has_voted(proposal.id, voter):
            raise AlreadyVotedError(f"{voter} already voted on Proposal #{proposal.id}")

        weight = quadratic_weight(raw_power)
        proposal.add_votes(support, weight)

        record = VoteRecord(
            proposal_id=proposal.id,
            voter=voter,
            support=bool(support),
            weight=weight,
            raw_power=raw_power,
            block=block,
        )
        self._votes.setdefault(proposal.id, {})[voter] = record
        self._order.append((proposal.id, voter))

        logger.info(
            f"Vote on Proposal #{proposal.id}: {voter} → {Vote.name(support)} "
            f"weight={weight} (power={raw_power})"
        )
        return record

    def mark(self) -> int:
        return len(self._order)

    def rollback(self, mark: int) -> None:
        """Forget every vote cast after *mark*."""
        while len(self._order) > mark:
            proposal_id, voter = self._order.pop()
            votes = self._votes[proposal_id]
            del votes[voter]
            if not votes:
                del self._votes[proposal_id]

    def to_dict(self) -> Dict[str, Any]:
        return {
            str(pid): [r.to_dict() for r in votes.values()]
            for pid, votes in self._votes.items()
        }

    def __len__(self) -> int:
        return sum(len(v) for v in self._votes.values())
