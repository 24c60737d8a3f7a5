"""
QDAO Treasury

Provides:
  - FundRequest : governance-gated payout
  - Treasury    : files requests as proposals and pays approved ones
"""

from .treasury import (
    FundRequest,
    FundRequestNotFoundError,
    ProposalNotApprovedError,
    RequestAlreadyExecutedError,
    Treasury,
    TreasuryError,
)

__all__ = [
    "FundRequest",
    "FundRequestNotFoundError",
    "ProposalNotApprovedError",
    "RequestAlreadyExecutedError",
    "Treasury",
    "TreasuryError",
]
