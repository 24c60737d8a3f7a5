"""
Vesting-aware transfer guard

Installed on the GovernanceToken and consulted before every balance
movement. A holder may only move the part of their balance that is not
still locked in vesting schedules. Movements touching a privileged identity
(the vesting engine itself, staking and treasury sinks, the zero identity
used for mint and burn) bypass the check.
"""

from typing import Any, Dict, Iterable, Optional, Set

from ..constants import ZERO_ADDRESS
from ..logger import get_logger
from .ledger import LedgerError

logger = get_logger(__name__)


class TokensLockedError(LedgerError):
    """Transfer would dip into a still-vesting allocation."""


class TransferGuard:
    """
    Evaluates every transfer against the sender's locked vesting balance.

    Usage::

        guard = TransferGuard(token, vesting, privileged=[vesting.address])
        token.set_transfer_guard(guard)
    """

    def __init__(self, token, vesting_ledger, privileged: Optional[Iterable[str]] = None):
        """
        Args:
            token:          GovernanceToken (or anything with ``balance_of``)
            vesting_ledger: VestingLedger (or anything with ``get_locked_balance``)
            privileged:     Identities exempt from the lock check
        """
        self._token = token
        self._vesting = vesting_ledger
        self._privileged: Set[str] = {ZERO_ADDRESS}
        self._privileged.update(privileged or ())

    # ── Privileged identities ─────────────────────────────────────────

    def add_privileged(self, address: str) -> None:
        self._privileged.add(address)
        logger.info(f"Transfer guard bypass granted: {address}")

    def remove_privileged(self, address: str) -> None:
        if address == ZERO_ADDRESS:
            raise ValueError("The zero identity must stay privileged for mint/burn")
        self._privileged.discard(address)
        logger.info(f"Transfer guard bypass revoked: {address}")

    def is_privileged(self, address: str) -> bool:
        return address in self._privileged

    # ── Hook ──────────────────────────────────────────────────────────

    def available_balance(self, holder: str) -> int:
        """Balance minus locked vesting allocation; may be negative."""
        return self._token.balance_of(holder) - self._vesting.get_locked_balance(holder)

    def check_transfer(self, sender: str, recipient: str, amount: int) -> None:
        if sender in self._privileged or recipient in self._privileged:
            return

        locked = self._vesting.get_locked_balance(sender)
        available = self._token.balance_of(sender) - locked
        if amount > available:
            logger.warning(
                f"Transfer blocked: {sender} → {recipient} amount={amount} "
                f"(available={available}, locked={locked})"
            )
            raise TokensLockedError(
                f"{sender} can move at most {max(available, 0)} "
                f"({locked} still locked in vesting), requested {amount}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {"privileged": sorted(self._privileged)}

    def __repr__(self) -> str:
        return f"<TransferGuard privileged={len(self._privileged)}>"
