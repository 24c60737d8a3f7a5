"""
Governance Engine

Orchestrates the full proposal lifecycle:

  1. create_proposal   — threshold-gated, opens a voting window
  2. vote              — quadratic weight from the snapshot at start_block
  3. execute_proposal  — first call after the window tallies and queues,
                         second call after the timelock runs every action

Also exposes the approval oracle used by the treasury and the approver
multisig that changes the timelock duration.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..chain import ChainContext, Journaled, transactional
from ..constants import (
    GOVERNANCE_GOVERNED_PARAMETERS,
    GOVERNANCE_PROPOSAL_THRESHOLD,
    GOVERNANCE_TIMELOCK_DURATION_SECONDS,
    GOVERNANCE_VOTING_PERIOD_BLOCKS,
    ZERO_ADDRESS,
)
from ..exceptions import InvalidAddressError, NotAuthorizedError
from ..logger import get_logger
from ..tokens.ledger import FutureLookupError
from .actions import (
    EFFECT_TYPES,
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
    ProposalNotFoundError,
    ProposalState,
)
from .timelock import TimelockMultisig, TimelockNotExpiredError
from .voting import (
    InsufficientVotingPowerError,
    VoteRecord,
    VoteRegistry,
    VotingClosedError,
)

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class MismatchedActionsError(InvalidProposalError):
    """targets, values and payloads differ in length."""


class VotingNotEndedError(GovernanceError):
    """Execution attempted at or before the last voting block."""


class ProposalAlreadyExecutedError(GovernanceError):
    """Proposal already executed."""


class ProposalDefeatedError(GovernanceError):
    """Proposal failed its tally."""


class ActionExecutionError(GovernanceError):
    """An action of an executing proposal failed; the execution is reverted."""


# ══════════════════════════════════════════════════════════════════════
#  ENGINE
# ══════════════════════════════════════════════════════════════════════

class GovernanceEngine(Journaled):
    """
    Proposal registry, quadratic voting and timelocked execution.

    Usage::

        engine = GovernanceEngine(chain, token, address=GOV, owner=ADMIN)
        pid = engine.create_proposal(ALICE, "Pay Bob", [BOB], [0], [TokenTransfer(10)])
        chain.mine()
        engine.vote(ALICE, pid, True)
        chain.mine(engine.voting_period_blocks)
        engine.execute_proposal(pid)          # → QUEUED
        chain.advance_time(engine.timelock_duration)
        engine.execute_proposal(pid)          # → EXECUTED
    """

    _journaled_fields = (
        "_next_proposal_id",
        "proposal_threshold",
        "timelock_duration",
        "_timelock",
    )

    def __init__(
        self,
        chain: ChainContext,
        token,
        address: str,
        owner: str,
        voting_period_blocks: int = GOVERNANCE_VOTING_PERIOD_BLOCKS,
        proposal_threshold: int = GOVERNANCE_PROPOSAL_THRESHOLD,
        timelock_duration: int = GOVERNANCE_TIMELOCK_DURATION_SECONDS,
        approvers: Optional[Iterable[str]] = None,
    ):
        if not address or address == ZERO_ADDRESS:
            raise InvalidAddressError("Governance engine needs a non-zero address")
        if voting_period_blocks <= 0:
            raise GovernanceError(f"Voting period must be positive, got {voting_period_blocks}")
        if proposal_threshold < 0:
            raise GovernanceError(f"Proposal threshold cannot be negative: {proposal_threshold}")
        if timelock_duration <= 0:
            raise GovernanceError(f"Timelock duration must be positive, got {timelock_duration}")

        self.chain = chain
        self.token = token
        self.address = address
        self.owner = owner
        self.voting_period_blocks = voting_period_blocks
        self.proposal_threshold = proposal_threshold
        self.timelock_duration = timelock_duration

        self._proposals: Dict[int, Proposal] = {}
        self._votes = VoteRegistry()
        self._next_proposal_id = 1
        self._timelock = TimelockMultisig(approvers)
        self._targets: Dict[str, Any] = {}

        chain.journal.register(self)
        logger.info(
            f"Governance engine at {address}: period={voting_period_blocks} blocks "
            f"threshold={proposal_threshold} timelock={timelock_duration}s"
        )

    # ── Targets ───────────────────────────────────────────────────────

    def register_target(self, address: str, target: Any) -> None:
        """Map *address* to the in-process component actions are dispatched to."""
        if not address or address == ZERO_ADDRESS:
            raise InvalidAddressError("Cannot register the zero address as a target")
        self._targets[address] = target
        logger.debug(f"Action target registered: {address} → {type(target).__name__}")

    def _resolve_target(self, address: str) -> Any:
        if address == self.address:
            return self
        target = self._targets.get(address)
        if target is None:
            raise GovernanceError(f"No component registered at {address}")
        return target

    # ── Create ────────────────────────────────────────────────────────

    @transactional
    def create_proposal(
        self,
        proposer: str,
        description: str,
        targets: Sequence[str],
        values: Sequence[int],
        payloads: Sequence[Any],
    ) -> int:
        """
        Open a proposal whose voting window starts at the current block.

        The proposer's voting power is read at the previous block so that
        tokens moved in the creation block do not count.

        Returns:
            The new proposal id
        """
        power = self.token.get_past_votes(proposer, self.chain.block_number - 1)
        if power < self.proposal_threshold:
            raise InsufficientVotingPowerError(
                f"{proposer} has {power} votes, threshold is {self.proposal_threshold}"
            )
        if not (len(targets) == len(values) == len(payloads)):
            raise MismatchedActionsError(
                f"targets={len(targets)} values={len(values)} payloads={len(payloads)}"
            )
        if not targets:
            raise InvalidProposalError("Proposal must contain at least one action")

        actions: List[ProposalAction] = []
        for index, (target, value, effect) in enumerate(zip(targets, values, payloads)):
            if not isinstance(effect, EFFECT_TYPES):
                raise InvalidProposalError(
                    f"Action {index}: unsupported effect {type(effect).__name__}"
                )
            if not target or target == ZERO_ADDRESS:
                raise InvalidProposalError(f"Action {index}: target cannot be the zero address")
            if value < 0:
                raise InvalidProposalError(f"Action {index}: value cannot be negative")
            if value and not isinstance(effect, ContractCall):
                raise InvalidProposalError(
                    f"Action {index}: value is only forwarded with a ContractCall"
                )
            actions.append(ProposalAction(target=target, value=value, effect=effect))

        proposal_id = self._next_proposal_id
        self._next_proposal_id += 1

        start_block = self.chain.block_number
        proposal = Proposal(
            id=proposal_id,
            description=description,
            proposer=proposer,
            start_block=start_block,
            end_block=start_block + self.voting_period_blocks,
            actions=actions,
        )
        proposal.activate(at=self.chain.timestamp)
        self._proposals[proposal_id] = proposal

        self.chain.emit(
            "ProposalCreated",
            proposalId=proposal_id,
            proposer=proposer,
            startBlock=proposal.start_block,
            endBlock=proposal.end_block,
            description=description,
        )
        logger.info(
            f"Proposal #{proposal_id} created by {proposer}: "
            f"{len(actions)} action(s), voting until block {proposal.end_block}"
        )
        return proposal_id

    # ── Vote ──────────────────────────────────────────────────────────

    @transactional
    def vote(self, voter: str, proposal_id: int, support: bool) -> VoteRecord:
        """
        Cast *voter*'s vote with weight ``isqrt(votes at start_block)``.
        """
        proposal = self.get_proposal(proposal_id)
        block = self.chain.block_number
        if not proposal.voting_open(block):
            raise VotingClosedError(
                f"Proposal #{proposal_id} voting window is blocks "
                f"{proposal.start_block}-{proposal.end_block} "
                f"(now {block}, state={proposal.state.name})"
            )

        try:
            raw_power = self.token.get_past_votes(voter, proposal.start_block)
        except FutureLookupError as exc:
            raise VotingClosedError(
                f"Proposal #{proposal_id} snapshot block {proposal.start_block} is not final yet"
            ) from exc

        record = self._votes.record(proposal, voter, support, raw_power, block)
        self.chain.emit(
            "VoteCast",
            proposalId=proposal_id,
            voter=voter,
            support=bool(support),
            weight=record.weight,
        )
        return record

    # ── Execute ───────────────────────────────────────────────────────

    @transactional
    def execute_proposal(self, proposal_id: int) -> ProposalState:
        """
        Advance the proposal by one step.

        ACTIVE (window closed): tally, then QUEUED or FAILED.
        QUEUED (timelock over): EXECUTED, then every action in order. Any
        action failure reverts the whole call and the proposal stays QUEUED.

        Returns:
            The proposal state after this call
        """
        proposal = self.get_proposal(proposal_id)
        now = self.chain.timestamp

        if self.chain.block_number <= proposal.end_block:
            raise VotingNotEndedError(
                f"Proposal #{proposal_id} voting ends at block {proposal.end_block} "
                f"(now {self.chain.block_number})"
            )

        if proposal.state == ProposalState.EXECUTED:
            raise ProposalAlreadyExecutedError(f"Proposal #{proposal_id} already executed")
        if proposal.state == ProposalState.FAILED:
            raise ProposalDefeatedError(f"Proposal #{proposal_id} was defeated")

        if proposal.state == ProposalState.ACTIVE:
            if proposal.yes_votes > proposal.no_votes:
                proposal.mark_succeeded(at=now)
                proposal.queue(now + self.timelock_duration, at=now)
                self.chain.emit(
                    "ProposalQueued",
                    proposalId=proposal_id,
                    timelockEnd=proposal.timelock_end,
                )
            else:
                proposal.mark_failed(at=now)
                self.chain.emit(
                    "ProposalFailed",
                    proposalId=proposal_id,
                    yesVotes=proposal.yes_votes,
                    noVotes=proposal.no_votes,
                )
            return proposal.state

        if proposal.state == ProposalState.QUEUED:
            if now < proposal.timelock_end:
                raise TimelockNotExpiredError(
                    f"Proposal #{proposal_id} timelock ends at {proposal.timelock_end} "
                    f"(remaining={proposal.timelock_end - now}s)"
                )

            proposal.mark_executed(at=now)
            for index, action in enumerate(proposal.actions):
                try:
                    self._run_action(action)
                except Exception as exc:
                    logger.warning(
                        f"Proposal #{proposal_id} action {index} failed: "
                        f"{type(exc).__name__}: {exc}"
                    )
                    raise ActionExecutionError(
                        f"Proposal #{proposal_id} action {index} "
                        f"({type(action.effect).__name__} on {action.target}) failed: {exc}"
                    ) from exc

            self.chain.emit("ProposalExecuted", proposalId=proposal_id)
            logger.info(f"Proposal #{proposal_id} EXECUTED: {len(proposal.actions)} action(s)")
            return proposal.state

        raise GovernanceError(
            f"Proposal #{proposal_id} cannot be executed from {proposal.state.name}"
        )

    def _run_action(self, action: ProposalAction) -> Any:
        effect = action.effect

        if isinstance(effect, TokenTransfer):
            return self.token.transfer(self.address, action.target, effect.amount)

        target = self._resolve_target(action.target)

        if isinstance(effect, ParameterChange):
            if not isinstance(target, GovernedTarget):
                raise GovernanceError(f"{action.target} has no governed parameters")
            return target.apply_parameter_change(effect.name, effect.value, self.address)

        if isinstance(effect, ContractCall):
            if not isinstance(target, ActionTarget):
                raise GovernanceError(f"{action.target} does not accept governance calls")
            if effect.method not in target.governance_methods:
                raise GovernanceError(
                    f"{action.target} does not expose '{effect.method}' to governance"
                )
            if action.value:
                self.token.transfer(self.address, action.target, action.value)
            return target.handle_governance_call(effect.method, effect.args, self.address)

        raise GovernanceError(f"Unsupported effect {type(effect).__name__}")

    # ── Approval oracle ───────────────────────────────────────────────

    def is_proposal_approved(self, proposal_id: int) -> bool:
        """True once the proposal passed its tally (SUCCEEDED, QUEUED or EXECUTED)."""
        proposal = self._proposals.get(proposal_id)
        return proposal is not None and proposal.is_approved

    # ── Queries ───────────────────────────────────────────────────────

    def get_proposal(self, proposal_id: int) -> Proposal:
        proposal = self._proposals.get(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(f"Proposal #{proposal_id} not found")
        return proposal

    def state_of(self, proposal_id: int) -> ProposalState:
        return self.get_proposal(proposal_id).state

    def has_voted(self, proposal_id: int, voter: str) -> bool:
        return self._votes.has_voted(proposal_id, voter)

    def get_vote(self, proposal_id: int, voter: str) -> Optional[VoteRecord]:
        return self._votes.get_vote(proposal_id, voter)

    @property
    def proposal_count(self) -> int:
        return len(self._proposals)

    def list_proposals(self, state: Optional[ProposalState] = None) -> List[Proposal]:
        proposals = sorted(self._proposals.values(), key=lambda p: p.id)
        if state is not None:
            proposals = [p for p in proposals if p.state == state]
        return proposals

    # ── Parameters ────────────────────────────────────────────────────

    def apply_parameter_change(self, name: str, value: Any, caller: str) -> None:
        """ParameterChange hook; only the engine's own executions may call it."""
        if caller != self.address:
            raise NotAuthorizedError(f"{caller} cannot change governance parameters")
        if name not in GOVERNANCE_GOVERNED_PARAMETERS:
            raise GovernanceError(f"Unknown governance parameter '{name}'")
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise GovernanceError(f"Invalid value for '{name}': {value!r}")
        old = getattr(self, name)
        setattr(self, name, value)
        logger.info(f"Parameter '{name}' changed: {old} → {value}")

    @transactional
    def set_proposal_threshold(self, caller: str, threshold: int) -> None:
        self._require_owner(caller)
        if threshold < 0:
            raise GovernanceError(f"Proposal threshold cannot be negative: {threshold}")
        old = self.proposal_threshold
        self.proposal_threshold = threshold
        logger.info(f"Parameter 'proposal_threshold' changed: {old} → {threshold}")

    def _require_owner(self, caller: str):
        if not self.owner or caller != self.owner:
            raise NotAuthorizedError(f"{caller} is not the governance owner")

    # ── Timelock multisig ─────────────────────────────────────────────

    @property
    def approvers(self):
        return self._timelock.approvers

    @property
    def timelock(self) -> TimelockMultisig:
        return self._timelock

    @transactional
    def set_approvers(self, caller: str, approvers: Iterable[str]) -> None:
        """Replace the approver set; any pending duration change is dropped."""
        self._require_owner(caller)
        self._timelock.set_approvers(approvers)
        self.chain.emit(
            "ApproversUpdated",
            approvers=sorted(self._timelock.approvers),
            required=self._timelock.required_approvals,
        )

    @transactional
    def propose_timelock_duration_change(self, approver: str, duration: int) -> Optional[int]:
        """
        Back a new timelock duration.

        Returns:
            The new duration if this approval reached the majority, else None
        """
        applied = self._timelock.propose(approver, duration)
        if applied is None:
            return None

        old = self.timelock_duration
        self.timelock_duration = applied
        self.chain.emit("TimelockDurationChanged", oldDuration=old, newDuration=applied)
        logger.info(f"Timelock duration changed: {old}s → {applied}s")
        return applied

    # ── Journal ───────────────────────────────────────────────────────

    def snapshot_state(self) -> Dict[str, Any]:
        state = super().snapshot_state()
        # EXECUTED and FAILED proposals never change again
        state["proposal_marks"] = {
            pid: p.savepoint() for pid, p in self._proposals.items() if not p.is_terminal
        }
        state["vote_mark"] = self._votes.mark()
        return state

    def restore_state(self, state: Dict[str, Any]) -> None:
        state = dict(state)
        proposal_marks = state.pop("proposal_marks")
        self._votes.rollback(state.pop("vote_mark"))
        super().restore_state(state)
        for pid in [pid for pid in self._proposals if pid >= self._next_proposal_id]:
            del self._proposals[pid]
        for pid, savepoint in proposal_marks.items():
            self._proposals[pid].rollback(savepoint)

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "owner": self.owner,
            "votingPeriodBlocks": self.voting_period_blocks,
            "proposalThreshold": str(self.proposal_threshold),
            "timelockDuration": self.timelock_duration,
            "proposalCount": self.proposal_count,
            "proposals": [
                dict(p.to_dict(), voters=[r.voter for r in self._votes.votes_for(p.id)])
                for p in self.list_proposals()
            ],
            "voteCount": len(self._votes),
            "timelock": self._timelock.to_dict(),
            "targets": sorted(self._targets),
        }

    def __repr__(self) -> str:
        return (
            f"<GovernanceEngine proposals={self.proposal_count} "
            f"threshold={self.proposal_threshold} timelock={self.timelock_duration}s>"
        )
