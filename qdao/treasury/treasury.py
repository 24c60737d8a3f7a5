"""
DAO Treasury

Holds governance tokens and pays them out only through governance:

  1. create_fund_request   wraps the payout in a one-action proposal whose
                           ContractCall targets this treasury
  2. the proposal is voted on and executed by the GovernanceEngine
  3. execute_fund_request  pays the recipient once the engine reports the
                           proposal approved

The approval oracle is the only gate on step 3, so a request may also be
paid directly by any caller as soon as its proposal has passed its tally,
without waiting for the timelock.
"""

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from ..chain import ChainContext, Journaled, NonReentrant, transactional
from ..constants import ZERO_ADDRESS
from ..exceptions import (
    InvalidAddressError,
    QDAOException,
    TransferFailedError,
    ZeroAmountError,
)
from ..governance.actions import ContractCall
from ..logger import get_logger
from ..tokens.ledger import LedgerError

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class TreasuryError(QDAOException):
    """Base treasury exception."""


class FundRequestNotFoundError(TreasuryError):
    """No fund request with the given id."""


class RequestAlreadyExecutedError(TreasuryError):
    """Fund request was already paid out."""


class ProposalNotApprovedError(TreasuryError):
    """The request's proposal has not been approved by governance."""


# ══════════════════════════════════════════════════════════════════════
#  FUND REQUEST
# ══════════════════════════════════════════════════════════════════════

@dataclass
class FundRequest:
    """
    A payout awaiting governance approval.

    Fields:
        request_id:   Monotonic id starting at 1
        requester:    Identity that filed the request
        amount:       Base units to pay
        recipient:    Receiving identity
        description:  Free text, also used as the proposal description
        proposal_id:  Backing governance proposal
        executed:     Set once, never cleared
    """
    request_id: int
    requester: str
    amount: int
    recipient: str
    description: str
    proposal_id: int
    executed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requestId": self.request_id,
            "requester": self.requester,
            "amount": str(self.amount),
            "recipient": self.recipient,
            "description": self.description,
            "proposalId": self.proposal_id,
            "executed": self.executed,
        }


# ══════════════════════════════════════════════════════════════════════
#  TREASURY
# ══════════════════════════════════════════════════════════════════════

class Treasury(Journaled):
    """
    Governance-controlled token treasury.
    """

    _journaled_fields = ("_next_request_id",)

    governance_methods: FrozenSet[str] = frozenset({"execute_fund_request"})

    def __init__(self, chain: ChainContext, token, governance, address: str):
        if not address or address == ZERO_ADDRESS:
            raise InvalidAddressError("Treasury needs a non-zero address")

        self.chain = chain
        self.token = token
        self.governance = governance
        self.address = address

        self._requests: Dict[int, FundRequest] = {}
        self._by_proposal: Dict[int, int] = {}
        self._next_request_id = 1
        self._lock = NonReentrant("execute_fund_request")

        chain.journal.register(self)
        governance.register_target(address, self)
        logger.info(f"Treasury deployed at {address}")

    # ── Requests ──────────────────────────────────────────────────────

    @transactional
    def create_fund_request(
        self,
        requester: str,
        amount: int,
        recipient: str,
        description: str,
    ) -> int:
        """
        File a payout and open the proposal that authorizes it.

        The treasury itself is the proposer, so its own historical voting
        power must meet the governance threshold. The treasury balance is
        not checked here.

        Returns:
            The governance proposal id
        """
        if amount <= 0:
            raise ZeroAmountError("Fund request amount must be positive")
        if not recipient or recipient == ZERO_ADDRESS:
            raise InvalidAddressError("Fund request recipient cannot be the zero address")

        request_id = self._next_request_id
        self._next_request_id += 1

        proposal_id = self.governance.create_proposal(
            self.address,
            description,
            [self.address],
            [0],
            [ContractCall("execute_fund_request", (request_id,))],
        )

        request = FundRequest(
            request_id=request_id,
            requester=requester,
            amount=amount,
            recipient=recipient,
            description=description,
            proposal_id=proposal_id,
        )
        self._requests[request_id] = request
        self._by_proposal[proposal_id] = request_id

        self.chain.emit(
            "FundRequestCreated",
            requestId=request_id,
            proposalId=proposal_id,
            requester=requester,
            recipient=recipient,
            amount=amount,
        )
        logger.info(
            f"Request #{request_id} filed by {requester}: amount={amount} → {recipient} "
            f"(Proposal #{proposal_id})"
        )
        return proposal_id

    @transactional
    def execute_fund_request(self, request_id: int) -> int:
        """
        Pay out an approved request.

        Returns:
            The amount transferred
        """
        with self._lock:
            request = self.get_fund_request(request_id)
            if request.executed:
                raise RequestAlreadyExecutedError(f"Request #{request_id} already executed")
            if request.amount <= 0:
                raise ZeroAmountError(f"Request #{request_id} has no amount")
            if not self.governance.is_proposal_approved(request.proposal_id):
                raise ProposalNotApprovedError(
                    f"Request #{request_id}: Proposal #{request.proposal_id} is not approved"
                )

            request.executed = True

            balance = self.balance
            if balance < request.amount:
                raise TransferFailedError(
                    f"Treasury holds {balance}, Request #{request_id} needs {request.amount}"
                )
            try:
                self.token.transfer(self.address, request.recipient, request.amount)
            except LedgerError as exc:
                raise TransferFailedError(
                    f"Request #{request_id} transfer failed: {exc}"
                ) from exc

            self.chain.emit(
                "FundRequestExecuted",
                requestId=request_id,
                recipient=request.recipient,
                amount=request.amount,
            )
            logger.info(
                f"Request #{request_id} EXECUTED: amount={request.amount} → {request.recipient}"
            )
            return request.amount

    # ── Governance dispatch ───────────────────────────────────────────

    def handle_governance_call(self, method: str, args: Tuple[Any, ...], caller: str) -> Any:
        if method not in self.governance_methods:
            raise TreasuryError(f"Method '{method}' is not callable by governance")
        return self.execute_fund_request(*args)

    # ── Queries ───────────────────────────────────────────────────────

    @property
    def balance(self) -> int:
        return self.token.balance_of(self.address)

    @property
    def request_count(self) -> int:
        return len(self._requests)

    def get_fund_request(self, request_id: int) -> FundRequest:
        request = self._requests.get(request_id)
        if request is None:
            raise FundRequestNotFoundError(f"Request #{request_id} not found")
        return request

    def get_request_by_proposal(self, proposal_id: int) -> Optional[FundRequest]:
        request_id = self._by_proposal.get(proposal_id)
        return self._requests.get(request_id) if request_id is not None else None

    def list_requests(self, pending_only: bool = False) -> List[FundRequest]:
        requests = [self._requests[k] for k in sorted(self._requests)]
        if pending_only:
            requests = [r for r in requests if not r.executed]
        return requests

    # ── Journal ───────────────────────────────────────────────────────

    def snapshot_state(self) -> Dict[str, Any]:
        state = super().snapshot_state()
        # ``executed`` is set once, so only open requests can change
        state["open_requests"] = [
            rid for rid, request in self._requests.items() if not request.executed
        ]
        return state

    def restore_state(self, state: Dict[str, Any]) -> None:
        state = dict(state)
        open_requests = state.pop("open_requests")
        super().restore_state(state)
        for rid in [rid for rid in self._requests if rid >= self._next_request_id]:
            request = self._requests.pop(rid)
            self._by_proposal.pop(request.proposal_id, None)
        for rid in open_requests:
            self._requests[rid].executed = False

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "balance": str(self.balance),
            "requestCount": self.request_count,
            "requests": [r.to_dict() for r in self.list_requests()],
        }

    def __repr__(self) -> str:
        return f"<Treasury balance={self.balance} requests={self.request_count}>"
