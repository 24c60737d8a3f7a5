"""
QDAO composition root

Builds a fully wired DAO from a QDAOConfig:

    chain ─┬─ token ◄── transfer guard ◄── vesting ledger
           ├─ governance engine
           └─ treasury (registered as a governance action target)
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .chain import ChainContext
from .config import QDAOConfig
from .constants import STAKING_SINK_ADDRESS
from .governance import GovernanceEngine
from .logger import get_logger
from .tokens import GovernanceToken, TransferGuard
from .treasury import Treasury
from .vesting import VestingLedger

logger = get_logger(__name__)


@dataclass
class DAOSystem:
    """Every component of one DAO deployment, sharing one chain context."""
    config: QDAOConfig
    chain: ChainContext
    token: GovernanceToken
    vesting: VestingLedger
    guard: TransferGuard
    governance: GovernanceEngine
    treasury: Treasury

    @property
    def unit(self) -> int:
        """Base units per whole token."""
        return 10 ** self.token.decimals

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain": self.chain.to_dict(),
            "token": self.token.to_dict(),
            "vesting": self.vesting.to_dict(),
            "guard": self.guard.to_dict(),
            "governance": self.governance.to_dict(),
            "treasury": self.treasury.to_dict(),
        }


def build_system(config: Optional[QDAOConfig] = None) -> DAOSystem:
    """
    Deploy and wire every component described by *config*.

    Initial allocations from ``[vesting] pool_allocation`` and
    ``[treasury] initial_balance`` are minted by the token owner.
    """
    cfg = config or QDAOConfig()
    cfg.validate()

    chain = ChainContext(
        block_number=cfg.chain.start_block,
        timestamp=cfg.chain.start_timestamp or None,
        block_time=cfg.chain.block_time,
    )

    unit = 10 ** cfg.token.decimals
    token = GovernanceToken(
        chain,
        name=cfg.token.name,
        symbol=cfg.token.symbol,
        decimals=cfg.token.decimals,
        max_supply=cfg.token.max_supply * unit,
        owner=cfg.token.owner,
    )

    vesting = VestingLedger(
        chain,
        token,
        address=cfg.vesting.address,
        owner=cfg.vesting.owner,
    )

    guard = TransferGuard(
        token,
        vesting,
        privileged=[
            vesting.address,
            STAKING_SINK_ADDRESS,
            cfg.treasury.address,
            cfg.treasury.sink_address,
        ],
    )
    token.set_transfer_guard(guard)

    governance = GovernanceEngine(
        chain,
        token,
        address=cfg.governance.address,
        owner=cfg.governance.owner,
        voting_period_blocks=cfg.governance.voting_period_blocks,
        proposal_threshold=cfg.governance.proposal_threshold * unit,
        timelock_duration=cfg.governance.timelock_duration,
        approvers=cfg.governance.approvers,
    )

    treasury = Treasury(chain, token, governance, address=cfg.treasury.address)

    if cfg.vesting.pool_allocation:
        token.mint(cfg.token.owner, vesting.address, cfg.vesting.pool_allocation * unit)
    if cfg.treasury.initial_balance:
        token.mint(cfg.token.owner, treasury.address, cfg.treasury.initial_balance * unit)

    logger.info(
        f"DAO system built at block {chain.block_number}: "
        f"vesting pool={cfg.vesting.pool_allocation} treasury={cfg.treasury.initial_balance} "
        f"{token.symbol}"
    )
    return DAOSystem(
        config=cfg,
        chain=chain,
        token=token,
        vesting=vesting,
        guard=guard,
        governance=governance,
        treasury=treasury,
    )
