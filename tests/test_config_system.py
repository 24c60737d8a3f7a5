"""
Configuration, Composition Root and CLI Test Suite

Coverage:
  - qdao.toml loading, defaults, environment overrides, validation
  - build_system wiring and initial allocations
  - CLI commands through click's CliRunner
"""

import json
import os
import sys

import pytest
from click.testing import CliRunner

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from qdao.cli import cli
from qdao.config import QDAOConfig, load_config
from qdao.constants import (
    GOVERNANCE_VOTING_PERIOD_BLOCKS,
    ONE_TOKEN,
    SECONDS_PER_DAY,
    STAKING_SINK_ADDRESS,
    ZERO_ADDRESS,
)
from qdao.exceptions import ConfigurationError
from qdao.governance import ProposalState
from qdao.system import build_system
from qdao.tokens import TokensLockedError


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════

A1 = "0x" + "A1" * 20
B2 = "0x" + "B2" * 20
C3 = "0x" + "C3" * 20
GRANTEE = "0x" + "6A" * 20

START = 1_700_000_000

SAMPLE_TOML = f"""
[chain]
start_block = 5
start_timestamp = {START}
block_time = 6

[token]
symbol = "TST"
max_supply = 1000000

[governance]
voting_period_blocks = 20
proposal_threshold = 50
timelock_duration = 3600
approvers = ["{A1}", "{B2}", "{C3}"]

[vesting]
pool_allocation = 100000

[treasury]
initial_balance = 5000

[logging]
level = "WARNING"
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Drop QDAO_* overrides from the surrounding environment."""
    for key in list(os.environ):
        if key.startswith("QDAO_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "qdao.toml"
    path.write_text(SAMPLE_TOML)
    return path


# ══════════════════════════════════════════════════════════════════════
#  CONFIGURATION
# ══════════════════════════════════════════════════════════════════════


class TestConfigLoading:
    """QDAOConfig construction and file loading."""

    def test_defaults(self):
        cfg = QDAOConfig()
        assert cfg.validate() is True
        assert cfg.chain.start_block == 1
        assert cfg.governance.voting_period_blocks == GOVERNANCE_VOTING_PERIOD_BLOCKS
        assert cfg.governance.proposal_threshold == 1_000
        assert cfg.governance.timelock_duration == 2 * SECONDS_PER_DAY
        assert cfg.governance.approvers == []
        assert cfg.treasury.initial_balance == 0
        assert cfg.logging.level == "INFO"

    def test_from_file(self, config_file):
        cfg = QDAOConfig.from_file(str(config_file))
        assert cfg.chain.start_block == 5
        assert cfg.chain.block_time == 6
        assert cfg.token.symbol == "TST"
        assert cfg.token.name == "QDAO Governance Token"
        assert cfg.governance.approvers == [A1, B2, C3]
        assert cfg.vesting.pool_allocation == 100_000
        assert cfg.treasury.initial_balance == 5_000
        assert cfg.logging.level == "WARNING"

    def test_missing_file_uses_defaults(self, tmp_path):
        cfg = QDAOConfig.from_file(str(tmp_path / "absent.toml"))
        assert cfg == QDAOConfig()

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "broken.toml"
        path.write_text("[chain\nblock_time = ")
        with pytest.raises(ConfigurationError, match="Invalid TOML"):
            QDAOConfig.from_file(str(path))

    def test_env_overrides(self, config_file, monkeypatch):
        monkeypatch.setenv("QDAO_VOTING_PERIOD_BLOCKS", "7")
        monkeypatch.setenv("QDAO_APPROVERS", f"{A1}, {B2}")
        monkeypatch.setenv("QDAO_LOG_LEVEL", "debug")
        monkeypatch.setenv("QDAO_TREASURY_INITIAL_BALANCE", "42")
        cfg = QDAOConfig.from_file(str(config_file))
        assert cfg.governance.voting_period_blocks == 7
        assert cfg.governance.approvers == [A1, B2]
        assert cfg.logging.level == "DEBUG"
        assert cfg.treasury.initial_balance == 42

    def test_log_file_env_enables_file_output(self, monkeypatch, tmp_path):
        monkeypatch.setenv("QDAO_LOG_FILE", str(tmp_path / "qdao.log"))
        cfg = QDAOConfig()
        cfg.apply_env()
        assert cfg.logging.to_file is True

    def test_load_config_from_env_path(self, config_file, monkeypatch):
        monkeypatch.setenv("QDAO_CONFIG", str(config_file))
        assert load_config().chain.start_block == 5

    def test_explicit_path_wins(self, config_file, monkeypatch, tmp_path):
        monkeypatch.setenv("QDAO_CONFIG", str(tmp_path / "absent.toml"))
        assert load_config(str(config_file)).token.symbol == "TST"

    def test_to_dict_reloads(self, config_file):
        cfg = QDAOConfig.from_file(str(config_file))
        assert QDAOConfig.from_dict(cfg.to_dict()) == cfg


class TestConfigValidation:
    """validate() rejections."""

    @pytest.mark.parametrize(
        "section, key, value, message",
        [
            ("chain", "block_time", 0, "block_time"),
            ("token", "decimals", 19, "decimals"),
            ("governance", "voting_period_blocks", 0, "voting_period_blocks"),
            ("governance", "proposal_threshold", -1, "proposal_threshold"),
            ("governance", "timelock_duration", 0, "timelock_duration"),
            ("treasury", "initial_balance", -5, "Initial allocations"),
            ("treasury", "address", ZERO_ADDRESS, "treasury.address"),
            ("treasury", "sink", ZERO_ADDRESS, "treasury.sink"),
            ("logging", "level", "LOUD", "Invalid log level"),
        ],
    )
    def test_rejects(self, section, key, value, message):
        cfg = QDAOConfig()
        setattr(getattr(cfg, section), key, value)
        with pytest.raises(ConfigurationError, match=message):
            cfg.validate()

    def test_allocations_exceed_supply(self):
        cfg = QDAOConfig()
        cfg.token.max_supply = 100
        cfg.vesting.pool_allocation = 60
        cfg.treasury.initial_balance = 41
        with pytest.raises(ConfigurationError, match="exceed max_supply"):
            cfg.validate()

    def test_component_addresses_distinct(self):
        cfg = QDAOConfig()
        cfg.treasury.address = cfg.vesting.address
        with pytest.raises(ConfigurationError, match="distinct"):
            cfg.validate()

    def test_zero_approver(self):
        cfg = QDAOConfig()
        cfg.governance.approvers = [A1, ZERO_ADDRESS]
        with pytest.raises(ConfigurationError, match="zero address"):
            cfg.validate()


# ══════════════════════════════════════════════════════════════════════
#  COMPOSITION ROOT
# ══════════════════════════════════════════════════════════════════════


class TestBuildSystem:
    """build_system() wiring."""

    def test_wiring_from_file(self, config_file):
        system = build_system(QDAOConfig.from_file(str(config_file)))
        unit = system.unit
        assert unit == ONE_TOKEN

        assert system.chain.block_number == 5
        assert system.chain.timestamp == START
        assert system.chain.block_time == 6

        assert system.token.symbol == "TST"
        assert system.token.max_supply == 1_000_000 * unit
        assert system.token.balance_of(system.vesting.address) == 100_000 * unit
        assert system.treasury.balance == 5_000 * unit
        assert system.token.total_supply == 105_000 * unit

        assert system.governance.proposal_threshold == 50 * unit
        assert system.governance.timelock_duration == 3600
        assert system.governance.voting_period_blocks == 20
        assert system.governance.approvers == {A1, B2, C3}

        for address in (system.vesting.address, STAKING_SINK_ADDRESS, system.treasury.address):
            assert system.guard.is_privileged(address)
        assert system.token.to_dict()["guarded"] is True

    def test_default_system_is_empty(self):
        system = build_system()
        assert system.token.total_supply == 0
        assert system.treasury.balance == 0
        assert system.governance.proposal_count == 0

    def test_invalid_config_rejected(self):
        cfg = QDAOConfig()
        cfg.chain.block_time = 0
        with pytest.raises(ConfigurationError):
            build_system(cfg)

    def test_to_dict_sections(self, config_file):
        d = build_system(QDAOConfig.from_file(str(config_file))).to_dict()
        assert set(d) == {"chain", "token", "vesting", "guard", "governance", "treasury"}

    def test_vesting_lock_applies_to_released_tokens(self, config_file):
        system = build_system(QDAOConfig.from_file(str(config_file)))
        unit = system.unit
        admin = system.config.vesting.owner

        system.vesting.create_vesting_schedule(
            admin, A1, START, 30 * SECONDS_PER_DAY, 90 * SECONDS_PER_DAY, 1_000 * unit
        )
        system.chain.advance_time(45 * SECONDS_PER_DAY)
        assert system.vesting.release(A1, 0) == 500 * unit

        assert system.guard.available_balance(A1) == 0
        with pytest.raises(TokensLockedError):
            system.token.transfer(A1, B2, 1)
        system.token.transfer(A1, STAKING_SINK_ADDRESS, 100 * unit)
        assert system.token.balance_of(A1) == 400 * unit

    def test_beneficiary_can_return_tokens_to_treasury(self, config_file):
        system = build_system(QDAOConfig.from_file(str(config_file)))
        unit = system.unit
        admin = system.config.vesting.owner

        system.vesting.create_vesting_schedule(
            admin, A1, START, 30 * SECONDS_PER_DAY, 90 * SECONDS_PER_DAY, 1_000 * unit
        )
        system.chain.advance_time(45 * SECONDS_PER_DAY)
        system.vesting.release(A1, 0)
        assert system.vesting.get_locked_balance(A1) == 500 * unit

        system.token.transfer(A1, system.treasury.address, 200 * unit)
        assert system.treasury.balance == 5_200 * unit
        assert system.token.balance_of(A1) == 300 * unit

    def test_treasury_sink_override(self):
        sink = "0x" + "5C" * 20
        cfg = QDAOConfig()
        assert cfg.treasury.sink_address == cfg.treasury.address

        cfg.treasury.sink = sink
        system = build_system(cfg)
        assert system.guard.is_privileged(sink)
        assert system.guard.is_privileged(system.treasury.address)
        assert cfg.to_dict()["treasury"]["sink"] == sink

    def test_treasury_sink_from_env(self, monkeypatch):
        sink = "0x" + "5D" * 20
        monkeypatch.setenv("QDAO_TREASURY_SINK", sink)
        cfg = QDAOConfig()
        cfg.apply_env()
        assert cfg.treasury.sink_address == sink

    def test_fund_request_end_to_end(self, config_file):
        system = build_system(QDAOConfig.from_file(str(config_file)))
        chain, governance, treasury = system.chain, system.governance, system.treasury

        chain.mine()
        pid = treasury.create_fund_request(A1, 200 * system.unit, GRANTEE, "Audit")
        chain.mine()
        governance.vote(treasury.address, pid, True)
        chain.mine(governance.voting_period_blocks)
        assert governance.execute_proposal(pid) == ProposalState.QUEUED
        chain.advance_time(governance.timelock_duration)
        assert governance.execute_proposal(pid) == ProposalState.EXECUTED

        assert system.token.balance_of(GRANTEE) == 200 * system.unit
        assert treasury.balance == 4_800 * system.unit


# ══════════════════════════════════════════════════════════════════════
#  CLI
# ══════════════════════════════════════════════════════════════════════


class TestCLI:
    """qdao command group."""

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_config_json(self, config_file):
        result = CliRunner().invoke(cli, ["config", "--config", str(config_file), "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["chain"]["start_block"] == 5
        assert data["governance"]["approvers"] == [A1, B2, C3]

    def test_config_text(self, config_file):
        result = CliRunner().invoke(cli, ["config", "-c", str(config_file)])
        assert result.exit_code == 0, result.output
        assert "[governance]" in result.output
        assert "timelock_duration = 3600" in result.output

    def test_config_invalid(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("[chain]\nblock_time = 0\n")
        result = CliRunner().invoke(cli, ["config", "-c", str(path)])
        assert result.exit_code != 0
        assert "block_time" in result.output

    def test_vesting_preview(self):
        result = CliRunner().invoke(
            cli,
            ["vesting-preview", "--amount", "10000", "--duration-days", "90", "--cliff-days", "30"],
        )
        assert result.exit_code == 0, result.output
        assert "day    30" in result.output
        assert "3,333.3333" in result.output
        assert "day    90  vested               10,000" in result.output

    def test_vesting_preview_bad_step(self):
        result = CliRunner().invoke(
            cli, ["vesting-preview", "-a", "10", "-d", "10", "--step-days", "0"]
        )
        assert result.exit_code != 0
        assert "--step-days" in result.output

    def test_fund_request_dry_run(self, tmp_path):
        result = CliRunner().invoke(
            cli,
            [
                "fund-request-dry-run",
                "--amount", "100",
                "--recipient", GRANTEE,
                "--config", str(tmp_path / "absent.toml"),
                "--treasury-balance", "10000",
            ],
        )
        assert result.exit_code == 0, result.output
        assert "After tally: QUEUED" in result.output
        assert "After timelock: EXECUTED" in result.output
        assert "Recipient balance: 100" in result.output
        assert "executed=True" in result.output

    def test_fund_request_dry_run_without_treasury_power(self, tmp_path):
        result = CliRunner().invoke(
            cli,
            [
                "fund-request-dry-run",
                "-a", "100",
                "-r", GRANTEE,
                "-c", str(tmp_path / "absent.toml"),
            ],
        )
        assert result.exit_code != 0

    def test_fund_request_dry_run_zero_recipient(self):
        result = CliRunner().invoke(
            cli, ["fund-request-dry-run", "-a", "1", "-r", ZERO_ADDRESS]
        )
        assert result.exit_code != 0
        assert "zero address" in result.output
