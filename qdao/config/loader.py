"""
QDAO TOML Configuration Loader

Loads every section of qdao.toml with environment variable overrides.
Each [section] maps to a dataclass with from_dict / apply_env.

Token amounts in the file are whole tokens; ``build_system`` scales them
by ONE_TOKEN.

Environment variable mapping:
    [chain] block_time                   → QDAO_BLOCK_TIME
    [governance] voting_period_blocks    → QDAO_VOTING_PERIOD_BLOCKS
    [governance] proposal_threshold      → QDAO_PROPOSAL_THRESHOLD
    [governance] timelock_duration       → QDAO_TIMELOCK_DURATION
    [governance] approvers               → QDAO_APPROVERS (comma separated)
    [treasury] sink                      → QDAO_TREASURY_SINK
    [logging] level                      → QDAO_LOG_LEVEL
    ...
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    import tomli  # type: ignore[no-redef]

from ..constants import (
    BLOCK_TIME_SECONDS,
    DAO_ADMIN_ADDRESS,
    GOVERNANCE_ENGINE_ADDRESS,
    GOVERNANCE_PROPOSAL_THRESHOLD,
    GOVERNANCE_TIMELOCK_DURATION_SECONDS,
    GOVERNANCE_VOTING_PERIOD_BLOCKS,
    ONE_TOKEN,
    TOKEN_DECIMALS,
    TOKEN_DEFAULT_NAME,
    TOKEN_DEFAULT_SYMBOL,
    TOKEN_MAX_SUPPLY,
    TREASURY_ADDRESS,
    VESTING_LEDGER_ADDRESS,
    ZERO_ADDRESS,
)
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "qdao.toml"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------


@dataclass
class ChainSectionConfig:
    """[chain] section."""
    start_block: int = 1
    start_timestamp: int = 0          # 0 = wall clock at startup
    block_time: int = BLOCK_TIME_SECONDS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChainSectionConfig":
        return cls(
            start_block=data.get("start_block", 1),
            start_timestamp=data.get("start_timestamp", 0),
            block_time=data.get("block_time", BLOCK_TIME_SECONDS),
        )

    def apply_env(self) -> None:
        """Override from environment variables."""
        if v := os.environ.get("QDAO_START_BLOCK"):
            self.start_block = int(v)
        if v := os.environ.get("QDAO_START_TIMESTAMP"):
            self.start_timestamp = int(v)
        if v := os.environ.get("QDAO_BLOCK_TIME"):
            self.block_time = int(v)


@dataclass
class TokenSectionConfig:
    """[token] section."""
    name: str = TOKEN_DEFAULT_NAME
    symbol: str = TOKEN_DEFAULT_SYMBOL
    decimals: int = TOKEN_DECIMALS
    max_supply: int = TOKEN_MAX_SUPPLY // ONE_TOKEN
    owner: str = DAO_ADMIN_ADDRESS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenSectionConfig":
        return cls(
            name=data.get("name", TOKEN_DEFAULT_NAME),
            symbol=data.get("symbol", TOKEN_DEFAULT_SYMBOL),
            decimals=data.get("decimals", TOKEN_DECIMALS),
            max_supply=data.get("max_supply", TOKEN_MAX_SUPPLY // ONE_TOKEN),
            owner=data.get("owner", DAO_ADMIN_ADDRESS),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("QDAO_TOKEN_OWNER"):
            self.owner = v


@dataclass
class GovernanceSectionConfig:
    """[governance] section."""
    address: str = GOVERNANCE_ENGINE_ADDRESS
    owner: str = DAO_ADMIN_ADDRESS
    voting_period_blocks: int = GOVERNANCE_VOTING_PERIOD_BLOCKS
    proposal_threshold: int = GOVERNANCE_PROPOSAL_THRESHOLD // ONE_TOKEN
    timelock_duration: int = GOVERNANCE_TIMELOCK_DURATION_SECONDS
    approvers: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GovernanceSectionConfig":
        return cls(
            address=data.get("address", GOVERNANCE_ENGINE_ADDRESS),
            owner=data.get("owner", DAO_ADMIN_ADDRESS),
            voting_period_blocks=data.get("voting_period_blocks", GOVERNANCE_VOTING_PERIOD_BLOCKS),
            proposal_threshold=data.get(
                "proposal_threshold", GOVERNANCE_PROPOSAL_THRESHOLD // ONE_TOKEN
            ),
            timelock_duration=data.get("timelock_duration", GOVERNANCE_TIMELOCK_DURATION_SECONDS),
            approvers=list(data.get("approvers", [])),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("QDAO_VOTING_PERIOD_BLOCKS"):
            self.voting_period_blocks = int(v)
        if v := os.environ.get("QDAO_PROPOSAL_THRESHOLD"):
            self.proposal_threshold = int(v)
        if v := os.environ.get("QDAO_TIMELOCK_DURATION"):
            self.timelock_duration = int(v)
        if v := os.environ.get("QDAO_APPROVERS"):
            self.approvers = [a.strip() for a in v.split(",") if a.strip()]


@dataclass
class VestingSectionConfig:
    """[vesting] section."""
    address: str = VESTING_LEDGER_ADDRESS
    owner: str = DAO_ADMIN_ADDRESS
    pool_allocation: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VestingSectionConfig":
        return cls(
            address=data.get("address", VESTING_LEDGER_ADDRESS),
            owner=data.get("owner", DAO_ADMIN_ADDRESS),
            pool_allocation=data.get("pool_allocation", 0),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("QDAO_VESTING_POOL_ALLOCATION"):
            self.pool_allocation = int(v)


@dataclass
class TreasurySectionConfig:
    """
    [treasury] section.

    ``sink`` is an extra deposit identity exempt from vesting locks; the
    treasury address itself is always exempt.
    """
    address: str = TREASURY_ADDRESS
    initial_balance: int = 0
    sink: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TreasurySectionConfig":
        return cls(
            address=data.get("address", TREASURY_ADDRESS),
            initial_balance=data.get("initial_balance", 0),
            sink=data.get("sink", ""),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("QDAO_TREASURY_INITIAL_BALANCE"):
            self.initial_balance = int(v)
        if v := os.environ.get("QDAO_TREASURY_SINK"):
            self.sink = v

    @property
    def sink_address(self) -> str:
        return self.sink or self.address


@dataclass
class LoggingSectionConfig:
    """[logging] section."""
    level: str = "INFO"
    file: str = ""
    to_file: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoggingSectionConfig":
        return cls(
            level=data.get("level", "INFO"),
            file=data.get("file", ""),
            to_file=data.get("to_file", False),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("QDAO_LOG_LEVEL"):
            self.level = v.upper()
        if v := os.environ.get("QDAO_LOG_FILE"):
            self.file = v
            self.to_file = True


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


@dataclass
class QDAOConfig:
    """Complete qdao.toml."""
    chain: ChainSectionConfig = field(default_factory=ChainSectionConfig)
    token: TokenSectionConfig = field(default_factory=TokenSectionConfig)
    governance: GovernanceSectionConfig = field(default_factory=GovernanceSectionConfig)
    vesting: VestingSectionConfig = field(default_factory=VestingSectionConfig)
    treasury: TreasurySectionConfig = field(default_factory=TreasurySectionConfig)
    logging: LoggingSectionConfig = field(default_factory=LoggingSectionConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QDAOConfig":
        return cls(
            chain=ChainSectionConfig.from_dict(data.get("chain", {})),
            token=TokenSectionConfig.from_dict(data.get("token", {})),
            governance=GovernanceSectionConfig.from_dict(data.get("governance", {})),
            vesting=VestingSectionConfig.from_dict(data.get("vesting", {})),
            treasury=TreasurySectionConfig.from_dict(data.get("treasury", {})),
            logging=LoggingSectionConfig.from_dict(data.get("logging", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "QDAOConfig":
        """
        Load configuration from a TOML file.

        A missing file yields the defaults (with env overrides).
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s, using defaults", config_path)
            cfg = cls()
            cfg.apply_env()
            return cfg

        try:
            with open(path, "rb") as f:
                raw = tomli.load(f)
        except tomli.TOMLDecodeError as exc:
            raise ConfigurationError(f"Invalid TOML in {config_path}: {exc}") from exc

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    # --- env overrides ----------------------------------------------------

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.chain.apply_env()
        self.token.apply_env()
        self.governance.apply_env()
        self.vesting.apply_env()
        self.treasury.apply_env()
        self.logging.apply_env()

    # --- validation -------------------------------------------------------

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Returns:
            True if all valid

        Raises:
            ConfigurationError: on invalid config
        """
        if self.chain.start_block < 0:
            raise ConfigurationError("start_block must be >= 0")
        if self.chain.block_time <= 0:
            raise ConfigurationError("block_time must be > 0")
        if not 0 <= self.token.decimals <= 18:
            raise ConfigurationError(f"decimals must be 0-18, got {self.token.decimals}")
        if self.token.max_supply <= 0:
            raise ConfigurationError("max_supply must be > 0")
        if self.governance.voting_period_blocks <= 0:
            raise ConfigurationError("voting_period_blocks must be > 0")
        if self.governance.proposal_threshold < 0:
            raise ConfigurationError("proposal_threshold must be >= 0")
        if self.governance.timelock_duration <= 0:
            raise ConfigurationError("timelock_duration must be > 0")
        if self.vesting.pool_allocation < 0 or self.treasury.initial_balance < 0:
            raise ConfigurationError("Initial allocations must be >= 0")
        if self.vesting.pool_allocation + self.treasury.initial_balance > self.token.max_supply:
            raise ConfigurationError("Initial allocations exceed max_supply")

        addresses = {
            "governance.address": self.governance.address,
            "vesting.address": self.vesting.address,
            "treasury.address": self.treasury.address,
            "token.owner": self.token.owner,
            "governance.owner": self.governance.owner,
            "vesting.owner": self.vesting.owner,
        }
        for key, address in addresses.items():
            if not address or address == ZERO_ADDRESS:
                raise ConfigurationError(f"{key} must be a non-zero address")
        components = [self.governance.address, self.vesting.address, self.treasury.address]
        if len(set(components)) != len(components):
            raise ConfigurationError("Component addresses must be distinct")
        if self.treasury.sink == ZERO_ADDRESS:
            raise ConfigurationError("treasury.sink cannot be the zero address")
        if ZERO_ADDRESS in self.governance.approvers:
            raise ConfigurationError("Approvers cannot include the zero address")

        if self.logging.level.upper() not in _LOG_LEVELS:
            raise ConfigurationError(f"Invalid log level: {self.logging.level}")
        return True

    # --- serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics, NOT for re-creating TOML)."""
        return {
            "chain": {
                "start_block": self.chain.start_block,
                "start_timestamp": self.chain.start_timestamp,
                "block_time": self.chain.block_time,
            },
            "token": {
                "name": self.token.name,
                "symbol": self.token.symbol,
                "decimals": self.token.decimals,
                "max_supply": self.token.max_supply,
                "owner": self.token.owner,
            },
            "governance": {
                "address": self.governance.address,
                "owner": self.governance.owner,
                "voting_period_blocks": self.governance.voting_period_blocks,
                "proposal_threshold": self.governance.proposal_threshold,
                "timelock_duration": self.governance.timelock_duration,
                "approvers": list(self.governance.approvers),
            },
            "vesting": {
                "address": self.vesting.address,
                "owner": self.vesting.owner,
                "pool_allocation": self.vesting.pool_allocation,
            },
            "treasury": {
                "address": self.treasury.address,
                "initial_balance": self.treasury.initial_balance,
                "sink": self.treasury.sink_address,
            },
            "logging": {
                "level": self.logging.level,
                "file": self.logging.file,
                "to_file": self.logging.to_file,
            },
        }


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> QDAOConfig:
    """
    Load QDAO configuration.

    Resolution order:
        1. Explicit *path* argument
        2. QDAO_CONFIG env var
        3. ./qdao.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("QDAO_CONFIG", DEFAULT_CONFIG_FILE)

    return QDAOConfig.from_file(path)
