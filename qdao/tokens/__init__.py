"""
QDAO token layer

Provides:
  - GovernanceToken : checkpointed voting token with delegation
  - Checkpoints     : (block, value) history with binary search
  - TransferGuard   : vesting-aware transfer hook
"""

from .checkpoints import Checkpoints
from .ledger import (
    FutureLookupError,
    GovernanceToken,
    InsufficientBalanceError,
    LedgerError,
    NotAnOperatorError,
)
from .transfer_guard import (
    TokensLockedError,
    TransferGuard,
)

__all__ = [
    "Checkpoints",
    "FutureLookupError",
    "GovernanceToken",
    "InsufficientBalanceError",
    "LedgerError",
    "NotAnOperatorError",
    "TokensLockedError",
    "TransferGuard",
]
