"""
Token Ledger Test Suite

Coverage:
  - Checkpoints: push / overwrite / binary-search lookup
  - GovernanceToken: mint, burn, transfer, operators, max supply
  - Voting power: delegation, get_votes, get_past_votes, past total supply
  - Atomicity of failed ledger calls
  - TransferGuard: locked balances, privileged bypass
"""

import os
import sys
import time

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from qdao.chain import ChainContext
from qdao.constants import ONE_TOKEN, TOKEN_MAX_SUPPLY, ZERO_ADDRESS
from qdao.exceptions import InvalidAddressError
from qdao.tokens import (
    Checkpoints,
    FutureLookupError,
    GovernanceToken,
    InsufficientBalanceError,
    LedgerError,
    NotAnOperatorError,
    TokensLockedError,
    TransferGuard,
)


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════

ADMIN = "0x" + "AD" * 20
ALICE = "0x" + "A1" * 20
BOB = "0x" + "B2" * 20
CAROL = "0x" + "C3" * 20
VESTING = "0x" + "00" * 19 + "11"
SINK = "0x" + "00" * 19 + "05"

START = 1_700_000_000


def make_token(chain=None, owner=ADMIN, **kwargs) -> GovernanceToken:
    """Helper to create a governance token on a fresh chain."""
    chain = chain or ChainContext(timestamp=START)
    return GovernanceToken(chain, kwargs.pop("name", "Test Token"), kwargs.pop("symbol", "TST"),
                           owner=owner, **kwargs)


class FixedLocks:
    """Vesting stand-in reporting a fixed locked balance per holder."""

    def __init__(self, locks=None):
        self.locks = dict(locks or {})

    def get_locked_balance(self, holder: str) -> int:
        return self.locks.get(holder, 0)


def make_guarded_token(locks=None, privileged=(VESTING, SINK)):
    token = make_token()
    guard = TransferGuard(token, FixedLocks(locks), privileged=privileged)
    token.set_transfer_guard(guard)
    return token, guard


# ══════════════════════════════════════════════════════════════════════
#  CHECKPOINTS
# ══════════════════════════════════════════════════════════════════════


class TestCheckpoints:
    """Historical (block, value) lookup."""

    def test_empty(self):
        cp = Checkpoints()
        assert cp.latest() == 0
        assert cp.upper_lookup(100) == 0
        assert cp.latest_block() is None
        assert len(cp) == 0

    def test_lookup_between_blocks(self):
        cp = Checkpoints()
        cp.push(5, 10)
        cp.push(9, 30)
        assert cp.upper_lookup(4) == 0
        assert cp.upper_lookup(5) == 10
        assert cp.upper_lookup(8) == 10
        assert cp.upper_lookup(9) == 30
        assert cp.upper_lookup(1000) == 30

    def test_same_block_overwrites(self):
        cp = Checkpoints()
        cp.push(3, 1)
        prev, new = cp.push(3, 7)
        assert (prev, new) == (1, 7)
        assert len(cp) == 1
        assert cp.items() == [(3, 7)]

    def test_earlier_block_rejected(self):
        cp = Checkpoints()
        cp.push(5, 1)
        with pytest.raises(ValueError, match="precedes"):
            cp.push(4, 2)

    def test_negative_value_rejected(self):
        with pytest.raises(ValueError, match="negative"):
            Checkpoints().push(1, -1)

    def test_mark_and_rollback(self):
        cp = Checkpoints()
        cp.push(3, 5)
        mark = cp.mark()
        cp.push(3, 8)
        cp.push(6, 2)
        cp.rollback(mark)
        assert cp.items() == [(3, 5)]
        assert cp.latest() == 5

    def test_rollback_to_empty(self):
        cp = Checkpoints()
        mark = cp.mark()
        cp.push(1, 4)
        cp.rollback(mark)
        assert len(cp) == 0
        assert cp.latest() == 0


# ══════════════════════════════════════════════════════════════════════
#  TOKEN BASICS
# ══════════════════════════════════════════════════════════════════════


class TestTokenDeploy:
    """Construction and metadata."""

    def test_deploy_basic(self):
        token = make_token()
        assert token.symbol == "TST"
        assert token.decimals == 18
        assert token.total_supply == 0
        assert token.max_supply == TOKEN_MAX_SUPPLY
        assert token.is_operator(ADMIN)

    def test_empty_name_raises(self):
        with pytest.raises(LedgerError, match="name cannot be empty"):
            make_token(name="")

    def test_invalid_decimals_raises(self):
        with pytest.raises(LedgerError, match="Decimals"):
            make_token(decimals=19)

    def test_to_dict_and_repr(self):
        token = make_token()
        token.mint(ADMIN, ALICE, 5)
        d = token.to_dict()
        assert d["totalSupply"] == "5"
        assert d["holders"] == 1
        assert d["guarded"] is False
        assert "TST" in repr(token)


class TestMintBurn:
    """Operator-gated supply changes."""

    def test_mint(self):
        token = make_token()
        token.mint(ADMIN, ALICE, 100 * ONE_TOKEN)
        assert token.balance_of(ALICE) == 100 * ONE_TOKEN
        assert token.total_supply == 100 * ONE_TOKEN
        event = token.chain.events_named("Transfer")[-1]
        assert event.args["sender"] == ZERO_ADDRESS

    def test_mint_by_non_operator_raises(self):
        token = make_token()
        with pytest.raises(NotAnOperatorError, match="not an authorized"):
            token.mint(ALICE, ALICE, 1)

    def test_mint_to_zero_raises(self):
        with pytest.raises(InvalidAddressError):
            make_token().mint(ADMIN, ZERO_ADDRESS, 1)

    def test_mint_beyond_max_supply_raises(self):
        token = make_token(max_supply=1_000)
        token.mint(ADMIN, ALICE, 1_000)
        with pytest.raises(LedgerError, match="exceed max supply"):
            token.mint(ADMIN, ALICE, 1)

    def test_burn(self):
        token = make_token()
        token.mint(ADMIN, ALICE, 100)
        token.burn(ADMIN, ALICE, 40)
        assert token.balance_of(ALICE) == 60
        assert token.total_supply == 60
        assert token.get_votes(ALICE) == 60

    def test_burn_more_than_balance_raises(self):
        token = make_token()
        token.mint(ADMIN, ALICE, 10)
        with pytest.raises(InsufficientBalanceError):
            token.burn(ADMIN, ALICE, 11)

    def test_burn_from_zero_raises(self):
        token = make_token()
        token.mint(ADMIN, ALICE, 10)
        events = len(token.chain.events)
        with pytest.raises(InvalidAddressError, match="Burn from the zero address"):
            token.burn(ADMIN, ZERO_ADDRESS, 5)
        assert token.total_supply == 10
        assert len(token.chain.events) == events

    def test_add_operator(self):
        token = make_token()
        token.add_operator(ADMIN, BOB)
        token.mint(BOB, ALICE, 1)
        token.remove_operator(ADMIN, BOB)
        assert not token.is_operator(BOB)

    def test_add_operator_non_owner_raises(self):
        with pytest.raises(NotAnOperatorError, match="not the owner"):
            make_token().add_operator(ALICE, BOB)


class TestTransfer:
    """transfer()."""

    def test_basic_transfer(self):
        token = make_token()
        token.mint(ADMIN, ALICE, 100)
        assert token.transfer(ALICE, BOB, 30) is True
        assert token.balance_of(ALICE) == 70
        assert token.balance_of(BOB) == 30
        assert token.total_supply == 100

    def test_transfer_moves_votes(self):
        token = make_token()
        token.mint(ADMIN, ALICE, 100)
        token.transfer(ALICE, BOB, 30)
        assert token.get_votes(ALICE) == 70
        assert token.get_votes(BOB) == 30

    def test_insufficient_balance(self):
        token = make_token()
        token.mint(ADMIN, ALICE, 10)
        with pytest.raises(InsufficientBalanceError, match="balance 10"):
            token.transfer(ALICE, BOB, 11)

    def test_zero_amount_raises(self):
        token = make_token()
        token.mint(ADMIN, ALICE, 10)
        with pytest.raises(LedgerError, match="must be positive"):
            token.transfer(ALICE, BOB, 0)

    def test_zero_address_raises(self):
        token = make_token()
        with pytest.raises(InvalidAddressError, match="from the zero address"):
            token.transfer(ZERO_ADDRESS, BOB, 1)
        with pytest.raises(InvalidAddressError, match="to the zero address"):
            token.transfer(ALICE, ZERO_ADDRESS, 1)

    def test_failed_transfer_leaves_no_event(self):
        token = make_token()
        token.mint(ADMIN, ALICE, 10)
        before = len(token.chain.events)
        with pytest.raises(InsufficientBalanceError):
            token.transfer(ALICE, BOB, 50)
        assert len(token.chain.events) == before
        assert token.balance_of(ALICE) == 10


# ══════════════════════════════════════════════════════════════════════
#  VOTING POWER
# ══════════════════════════════════════════════════════════════════════


class TestVotingPower:
    """Delegation and historical queries."""

    def test_self_delegation_by_default(self):
        token = make_token()
        assert token.delegates(ALICE) == ALICE
        token.mint(ADMIN, ALICE, 50)
        assert token.get_votes(ALICE) == 50

    def test_current_block_lookup_raises(self):
        token = make_token()
        token.mint(ADMIN, ALICE, 50)
        with pytest.raises(FutureLookupError, match="not final"):
            token.get_past_votes(ALICE, token.chain.block_number)
        with pytest.raises(FutureLookupError):
            token.get_past_total_supply(token.chain.block_number + 5)

    def test_past_votes_fixed_after_block(self):
        token = make_token()
        token.mint(ADMIN, ALICE, 50)        # block 1
        token.chain.mine()                  # block 2
        token.transfer(ALICE, BOB, 20)
        token.chain.mine()                  # block 3
        assert token.get_past_votes(ALICE, 1) == 50
        assert token.get_past_votes(ALICE, 2) == 30
        assert token.get_past_votes(BOB, 1) == 0
        assert token.get_past_votes(BOB, 2) == 20

    def test_same_block_changes_collapse(self):
        token = make_token()
        token.mint(ADMIN, ALICE, 50)
        token.transfer(ALICE, BOB, 10)
        token.transfer(BOB, ALICE, 10)
        token.chain.mine()
        assert token.get_past_votes(ALICE, 1) == 50
        assert len(token._vote_checkpoints[ALICE]) == 1

    def test_negative_block_is_zero(self):
        token = make_token()
        token.mint(ADMIN, ALICE, 50)
        assert token.get_past_votes(ALICE, -1) == 0
        assert token.get_past_total_supply(-1) == 0

    def test_past_total_supply(self):
        token = make_token()
        token.mint(ADMIN, ALICE, 50)
        token.chain.mine()
        token.burn(ADMIN, ALICE, 20)
        token.chain.mine()
        assert token.get_past_total_supply(0) == 0
        assert token.get_past_total_supply(1) == 50
        assert token.get_past_total_supply(2) == 30

    def test_delegate(self):
        token = make_token()
        token.mint(ADMIN, ALICE, 50)
        token.delegate(ALICE, BOB)
        assert token.delegates(ALICE) == BOB
        assert token.get_votes(ALICE) == 0
        assert token.get_votes(BOB) == 50
        assert token.balance_of(BOB) == 0
        assert token.chain.events_named("DelegateChanged")[-1].args["toDelegate"] == BOB

    def test_transfer_after_delegation_moves_delegate_votes(self):
        token = make_token()
        token.mint(ADMIN, ALICE, 50)
        token.delegate(ALICE, BOB)
        token.transfer(ALICE, CAROL, 20)
        assert token.get_votes(BOB) == 30
        assert token.get_votes(CAROL) == 20

    def test_redelegate(self):
        token = make_token()
        token.mint(ADMIN, ALICE, 50)
        token.delegate(ALICE, BOB)
        token.delegate(ALICE, CAROL)
        assert token.get_votes(BOB) == 0
        assert token.get_votes(CAROL) == 50

    def test_delegate_to_zero_raises(self):
        with pytest.raises(InvalidAddressError):
            make_token().delegate(ALICE, ZERO_ADDRESS)


# ══════════════════════════════════════════════════════════════════════
#  TRANSFER GUARD
# ══════════════════════════════════════════════════════════════════════


class TestTransferGuard:
    """Vesting-aware transfer hook."""

    def test_unlocked_transfer_passes(self):
        token, _ = make_guarded_token()
        token.mint(ADMIN, ALICE, 100)
        token.transfer(ALICE, BOB, 100)
        assert token.balance_of(BOB) == 100

    def test_locked_portion_blocked(self):
        token, guard = make_guarded_token(locks={ALICE: 60})
        token.mint(ADMIN, ALICE, 100)
        assert guard.available_balance(ALICE) == 40
        token.transfer(ALICE, BOB, 40)
        with pytest.raises(TokensLockedError, match="can move at most 0"):
            token.transfer(ALICE, BOB, 1)
        assert token.balance_of(ALICE) == 60

    def test_available_may_be_negative(self):
        token, guard = make_guarded_token(locks={ALICE: 80})
        token.mint(ADMIN, ALICE, 50)
        assert guard.available_balance(ALICE) == -30
        with pytest.raises(TokensLockedError):
            token.transfer(ALICE, BOB, 1)

    def test_privileged_recipient_bypasses(self):
        token, _ = make_guarded_token(locks={ALICE: 100})
        token.mint(ADMIN, ALICE, 100)
        token.transfer(ALICE, SINK, 100)
        assert token.balance_of(SINK) == 100

    def test_privileged_sender_bypasses(self):
        token, _ = make_guarded_token(locks={VESTING: 10**30})
        token.mint(ADMIN, VESTING, 100)
        token.transfer(VESTING, ALICE, 100)
        assert token.balance_of(ALICE) == 100

    def test_mint_and_burn_bypass(self):
        token, _ = make_guarded_token(locks={ALICE: 100})
        token.mint(ADMIN, ALICE, 100)
        token.burn(ADMIN, ALICE, 100)
        assert token.balance_of(ALICE) == 0

    def test_add_remove_privileged(self):
        token, guard = make_guarded_token(locks={ALICE: 100})
        token.mint(ADMIN, ALICE, 100)
        guard.add_privileged(BOB)
        assert guard.is_privileged(BOB)
        token.transfer(ALICE, BOB, 50)
        guard.remove_privileged(BOB)
        with pytest.raises(TokensLockedError):
            token.transfer(ALICE, BOB, 50)

    def test_zero_address_stays_privileged(self):
        _, guard = make_guarded_token()
        assert guard.is_privileged(ZERO_ADDRESS)
        with pytest.raises(ValueError, match="must stay privileged"):
            guard.remove_privileged(ZERO_ADDRESS)

    def test_to_dict(self):
        _, guard = make_guarded_token()
        assert ZERO_ADDRESS in guard.to_dict()["privileged"]


# ══════════════════════════════════════════════════════════════════════
#  REVERTED CALLS
# ══════════════════════════════════════════════════════════════════════


class TestTokenRevert:
    """Ledger state after a failed enclosing call."""

    def test_reverted_transfers_restore_votes_and_history(self):
        token = make_token()
        chain = token.chain
        token.mint(ADMIN, ALICE, 100)
        chain.mine()
        events = len(chain.events)

        with pytest.raises(RuntimeError):
            with chain.journal.atomic():
                token.transfer(ALICE, BOB, 30)
                token.transfer(ALICE, CAROL, 10)
                raise RuntimeError("outer call failed")

        assert token.balance_of(ALICE) == 100
        assert token.balance_of(BOB) == 0
        assert token.get_votes(ALICE) == 100
        assert token.get_votes(BOB) == 0
        assert len(chain.events) == events
        chain.mine()
        assert token.get_past_votes(ALICE, chain.block_number - 1) == 100
        assert token.get_past_votes(CAROL, chain.block_number - 1) == 0

    def test_reverted_same_block_overwrite(self):
        token = make_token()
        chain = token.chain
        token.mint(ADMIN, ALICE, 100)
        with pytest.raises(RuntimeError):
            with chain.journal.atomic():
                token.mint(ADMIN, ALICE, 50)
                raise RuntimeError("outer call failed")
        assert token.get_votes(ALICE) == 100
        chain.mine()
        assert token.get_past_total_supply(chain.block_number - 1) == 100

    def test_reverted_delegation(self):
        token = make_token()
        chain = token.chain
        token.mint(ADMIN, ALICE, 100)
        with pytest.raises(RuntimeError):
            with chain.journal.atomic():
                token.delegate(ALICE, CAROL)
                token.add_operator(ADMIN, BOB)
                raise RuntimeError("outer call failed")
        assert token.delegates(ALICE) == ALICE
        assert token.get_votes(CAROL) == 0
        assert not token.is_operator(BOB)

    def test_snapshot_does_not_copy_history(self):
        token = make_token()
        chain = token.chain
        token.mint(ADMIN, ALICE, 1_000)
        for _ in range(50):
            chain.mine()
            token.transfer(ALICE, BOB, 1)

        state = token.snapshot_state()
        assert state["vote_marks"][ALICE] == (51, 950)
        assert state["vote_marks"][BOB] == (50, 50)
        assert chain.snapshot_state() == {"event_count": len(chain.events)}

    def test_call_cost_flat_as_history_grows(self):
        token = make_token()
        chain = token.chain
        token.mint(ADMIN, ALICE, 1_000_000)

        def timed_batch() -> float:
            started = time.perf_counter()
            for _ in range(200):
                chain.mine()
                token.transfer(ALICE, BOB, 1)
            return time.perf_counter() - started

        first = timed_batch()
        for _ in range(8):
            last = timed_batch()
        assert last < first * 4 + 0.05
