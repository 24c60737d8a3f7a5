"""
QDAO Constants

Protocol defaults shared by every component, plus the logging settings read
once from a local ``.env`` file. Deployment-specific values (periods,
thresholds, initial allocations) are overridden through qdao.toml, see
``qdao.config``.
"""
from typing import Dict, Optional

from dotenv import dotenv_values

# =============================================================================
# IDENTITIES
# =============================================================================
# Mint source / burn sink. Never a valid beneficiary, target or recipient.
ZERO_ADDRESS = "0x" + "00" * 20

# Staking deposits are exempt from the vesting transfer lock
STAKING_SINK_ADDRESS = "0x" + "00" * 19 + "05"

# Default deployment identities used by build_system
DAO_ADMIN_ADDRESS = "0x" + "ad" * 20
GOVERNANCE_ENGINE_ADDRESS = "0x" + "00" * 19 + "10"
VESTING_LEDGER_ADDRESS = "0x" + "00" * 19 + "11"
TREASURY_ADDRESS = "0x" + "00" * 19 + "12"


# =============================================================================
# TOKEN
# =============================================================================
TOKEN_DEFAULT_NAME = "QDAO Governance Token"
TOKEN_DEFAULT_SYMBOL = "QDAO"
TOKEN_DECIMALS = 18
ONE_TOKEN = 10 ** TOKEN_DECIMALS
TOKEN_MAX_SUPPLY = 1_000_000_000 * ONE_TOKEN


# =============================================================================
# CHAIN CLOCK
# =============================================================================
SECONDS_PER_DAY = 86_400
BLOCK_TIME_SECONDS = 12


# =============================================================================
# GOVERNANCE
# =============================================================================
# Voting window length in blocks (~3 days at 12s blocks)
GOVERNANCE_VOTING_PERIOD_BLOCKS = 21_600

# Historical voting power needed to open a proposal
GOVERNANCE_PROPOSAL_THRESHOLD = 1_000 * ONE_TOKEN

# Seconds between queueing and final execution
GOVERNANCE_TIMELOCK_DURATION_SECONDS = 2 * SECONDS_PER_DAY

GOVERNANCE_VOTE_NO = 0
GOVERNANCE_VOTE_YES = 1

# Engine parameters a ParameterChange effect may set
GOVERNANCE_GOVERNED_PARAMETERS = ("proposal_threshold",)


# =============================================================================
# LOGGING (.env)
# =============================================================================
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
DEFAULT_LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
LOG_BACKUP_COUNT = 5

_TRUE_WORDS = {"1", "true", "yes", "on"}
_FALSE_WORDS = {"0", "false", "no", "off"}


def _env_text(env: Dict[str, Optional[str]], key: str, default: str) -> str:
    value = env.get(key)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_flag(env: Dict[str, Optional[str]], key: str, default: bool) -> bool:
    """
    Read a yes/no switch. Unrecognised words keep *default* rather than
    silently flipping the switch.
    """
    value = env.get(key)
    if value is None:
        return default
    word = value.strip().casefold()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    return default


_dotenv = dotenv_values(".env")

LOG_LEVEL = _env_text(_dotenv, "LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()
LOG_FORMAT = _env_text(_dotenv, "LOG_FORMAT", DEFAULT_LOG_FORMAT)
LOG_DATE_FORMAT = _env_text(_dotenv, "LOG_DATE_FORMAT", DEFAULT_LOG_DATE_FORMAT)
LOG_CONSOLE_HIGHLIGHTING = _env_flag(_dotenv, "LOG_CONSOLE_HIGHLIGHTING", True)
LOG_TO_FILE = _env_flag(_dotenv, "LOG_TO_FILE", False)
