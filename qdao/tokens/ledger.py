"""
Governance Token Ledger

Fungible token with checkpointed voting power:
  - balanceOf / transfer / totalSupply
  - Operator-gated mint and burn (zero identity as source / sink)
  - Vote delegation (accounts vote with their own balance until they delegate)
  - Historical queries: get_past_votes / get_past_total_supply
  - Transfer hook consulted on every balance movement
"""

from typing import Any, Dict, Set

from ..chain import ChainContext, Journaled, transactional
from ..constants import (
    TOKEN_DECIMALS,
    TOKEN_MAX_SUPPLY,
    ZERO_ADDRESS,
)
from ..exceptions import InvalidAddressError, QDAOException
from ..logger import get_logger
from .checkpoints import Checkpoints

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class LedgerError(QDAOException):
    """Base exception for ledger operations."""


class InsufficientBalanceError(LedgerError):
    """Raised when sender balance is too low."""


class FutureLookupError(LedgerError):
    """Historical query for a block that is not yet final."""


class NotAnOperatorError(LedgerError):
    """Mint / burn attempted by an address without operator rights."""


# ══════════════════════════════════════════════════════════════════════
#  GOVERNANCE TOKEN
# ══════════════════════════════════════════════════════════════════════

class GovernanceToken(Journaled):
    """
    Checkpointed voting token.

    Every balance movement goes through ``_update`` which consults the
    transfer guard (if installed), moves balances and moves voting units
    between the delegates of both parties. Voting power and total supply are
    checkpointed per block so past values stay fixed no matter what happens
    later.
    """

    _journaled_fields = ("_total_supply",)

    def __init__(
        self,
        chain: ChainContext,
        name: str,
        symbol: str,
        decimals: int = TOKEN_DECIMALS,
        max_supply: int = TOKEN_MAX_SUPPLY,
        owner: str = "",
    ):
        if not name:
            raise LedgerError("Token name cannot be empty")
        if not symbol:
            raise LedgerError("Token symbol cannot be empty")
        if decimals < 0 or decimals > 18:
            raise LedgerError(f"Decimals must be 0-18, got {decimals}")
        if max_supply <= 0:
            raise LedgerError("Max supply must be positive")

        self.chain = chain
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.max_supply = max_supply
        self.owner = owner

        self._balances: Dict[str, int] = {}
        self._total_supply = 0
        self._delegates: Dict[str, str] = {}
        self._vote_checkpoints: Dict[str, Checkpoints] = {}
        self._supply_checkpoints = Checkpoints()
        self._operators: Set[str] = set()
        if owner:
            self._operators.add(owner)

        self._transfer_guard = None

        chain.journal.register(self)
        logger.info(f"Token deployed: {symbol} ({name})")

    # ── Read-only views ───────────────────────────────────────────────

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, address: str) -> int:
        return self._balances.get(address, 0)

    def delegates(self, account: str) -> str:
        """Current delegatee; accounts that never delegated vote for themselves."""
        return self._delegates.get(account, account)

    def get_votes(self, account: str) -> int:
        cp = self._vote_checkpoints.get(account)
        return cp.latest() if cp else 0

    def get_past_votes(self, account: str, block: int) -> int:
        """
        Voting power of *account* at the end of *block*.

        Only finished blocks can be queried so that a value read inside the
        current block cannot be moved by a later transfer in the same block.
        """
        self._require_past(block)
        if block < 0:
            return 0
        cp = self._vote_checkpoints.get(account)
        return cp.upper_lookup(block) if cp else 0

    def get_past_total_supply(self, block: int) -> int:
        self._require_past(block)
        if block < 0:
            return 0
        return self._supply_checkpoints.upper_lookup(block)

    def _require_past(self, block: int):
        if block >= self.chain.block_number:
            raise FutureLookupError(
                f"Block {block} is not final (current block {self.chain.block_number})"
            )

    # ── Hooks / operators ─────────────────────────────────────────────

    def set_transfer_guard(self, guard) -> None:
        """Install the hook consulted before every balance movement."""
        self._transfer_guard = guard
        logger.info(f"Transfer guard installed on {self.symbol}: {guard!r}")

    def add_operator(self, caller: str, operator: str) -> None:
        self._require_owner(caller)
        self._operators.add(operator)
        logger.info(f"Mint/burn operator added: {operator} for {self.symbol}")

    def remove_operator(self, caller: str, operator: str) -> None:
        self._require_owner(caller)
        self._operators.discard(operator)

    def is_operator(self, address: str) -> bool:
        return address in self._operators

    def _require_owner(self, caller: str):
        if not self.owner or caller != self.owner:
            raise NotAnOperatorError(f"{caller} is not the owner of {self.symbol}")

    def _require_operator(self, address: str):
        if address not in self._operators:
            raise NotAnOperatorError(f"{address} is not an authorized mint/burn operator")

    # ── Core operations ───────────────────────────────────────────────

    @transactional
    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Move *amount* from *sender* to *recipient*.

        Returns True on success; every rejection raises.
        """
        if sender == ZERO_ADDRESS:
            raise InvalidAddressError("Transfer from the zero address")
        if recipient == ZERO_ADDRESS:
            raise InvalidAddressError("Transfer to the zero address")
        if amount <= 0:
            raise LedgerError("Transfer amount must be positive")

        self._update(sender, recipient, amount)
        logger.debug(f"Transfer: {sender} → {recipient} amount={amount} {self.symbol}")
        return True

    @transactional
    def mint(self, operator: str, recipient: str, amount: int) -> None:
        self._require_operator(operator)
        if recipient == ZERO_ADDRESS:
            raise InvalidAddressError("Mint to the zero address")
        if amount <= 0:
            raise LedgerError("Mint amount must be positive")
        if self._total_supply + amount > self.max_supply:
            raise LedgerError(f"Minting {amount} would exceed max supply {self.max_supply}")

        self._update(ZERO_ADDRESS, recipient, amount)
        logger.info(f"Mint: amount={amount} {self.symbol} → {recipient}")

    @transactional
    def burn(self, operator: str, holder: str, amount: int) -> None:
        self._require_operator(operator)
        if holder == ZERO_ADDRESS:
            raise InvalidAddressError("Burn from the zero address")
        if amount <= 0:
            raise LedgerError("Burn amount must be positive")

        self._update(holder, ZERO_ADDRESS, amount)
        logger.info(f"Burn: {holder} burned amount={amount} {self.symbol}")

    @transactional
    def delegate(self, delegator: str, delegatee: str) -> None:
        """Point *delegator*'s voting units at *delegatee*."""
        if delegatee == ZERO_ADDRESS:
            raise InvalidAddressError("Cannot delegate to the zero address")
        previous = self.delegates(delegator)
        self._delegates[delegator] = delegatee
        self._move_votes(previous, delegatee, self.balance_of(delegator))
        self.chain.emit(
            "DelegateChanged",
            delegator=delegator,
            fromDelegate=previous,
            toDelegate=delegatee,
        )
        logger.info(f"Delegation: {delegator} → {delegatee}")

    # ── Internals ─────────────────────────────────────────────────────

    def _update(self, sender: str, recipient: str, amount: int) -> None:
        if self._transfer_guard is not None:
            self._transfer_guard.check_transfer(sender, recipient, amount)

        if sender == ZERO_ADDRESS:
            self._total_supply += amount
            self._supply_checkpoints.push(self.chain.block_number, self._total_supply)
        else:
            bal = self.balance_of(sender)
            if bal < amount:
                raise InsufficientBalanceError(
                    f"{sender} balance {bal} < transfer amount {amount}"
                )
            self._balances[sender] = bal - amount

        if recipient == ZERO_ADDRESS:
            self._total_supply -= amount
            self._supply_checkpoints.push(self.chain.block_number, self._total_supply)
        else:
            self._balances[recipient] = self.balance_of(recipient) + amount

        self._move_votes(
            self.delegates(sender) if sender != ZERO_ADDRESS else ZERO_ADDRESS,
            self.delegates(recipient) if recipient != ZERO_ADDRESS else ZERO_ADDRESS,
            amount,
        )
        self.chain.emit("Transfer", sender=sender, recipient=recipient, amount=amount)

    def _move_votes(self, source: str, destination: str, amount: int) -> None:
        if source == destination or amount == 0:
            return
        block = self.chain.block_number
        if source != ZERO_ADDRESS:
            cp = self._vote_checkpoints.setdefault(source, Checkpoints())
            cp.push(block, cp.latest() - amount)
        if destination != ZERO_ADDRESS:
            cp = self._vote_checkpoints.setdefault(destination, Checkpoints())
            cp.push(block, cp.latest() + amount)

    # ── Journal ───────────────────────────────────────────────────────

    def snapshot_state(self) -> Dict[str, Any]:
        """
        Flat copies of the account maps plus a mark per checkpoint history.

        Checkpoint lists grow with every balance movement; only their length
        and latest value are recorded, never the entries themselves.
        """
        state = super().snapshot_state()
        state.update(
            balances=dict(self._balances),
            delegates=dict(self._delegates),
            operators=set(self._operators),
            vote_marks={acct: cp.mark() for acct, cp in self._vote_checkpoints.items()},
            supply_mark=self._supply_checkpoints.mark(),
        )
        return state

    def restore_state(self, state: Dict[str, Any]) -> None:
        state = dict(state)
        self._balances = state.pop("balances")
        self._delegates = state.pop("delegates")
        self._operators = state.pop("operators")
        vote_marks = state.pop("vote_marks")
        for acct in list(self._vote_checkpoints):
            if acct in vote_marks:
                self._vote_checkpoints[acct].rollback(vote_marks[acct])
            else:
                del self._vote_checkpoints[acct]
        self._supply_checkpoints.rollback(state.pop("supply_mark"))
        super().restore_state(state)

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "totalSupply": str(self._total_supply),
            "maxSupply": str(self.max_supply),
            "holders": len([b for b in self._balances.values() if b > 0]),
            "operators": sorted(self._operators),
            "guarded": self._transfer_guard is not None,
        }

    def __repr__(self) -> str:
        return f"<GovernanceToken {self.symbol} supply={self._total_supply}>"
