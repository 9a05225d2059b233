from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure local "src/" takes precedence over any globally-installed "nativevault" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)

from solders.pubkey import Pubkey  # noqa: E402

from nativevault.config import DEFAULT_PROGRAM_ID  # noqa: E402
from nativevault.crypto.sig import Keypair  # noqa: E402
from nativevault.ledger.state import LedgerState  # noqa: E402
from nativevault.ledger.types import Clock  # noqa: E402
from nativevault.runtime.executor import VaultExecutor  # noqa: E402
from nativevault.runtime.transaction import Transaction  # noqa: E402
from nativevault.testing.sigtools import deterministic_keypair  # noqa: E402

GENESIS_TS = 1_700_000_000
ONE_SOL = 1_000_000_000


@pytest.fixture
def program_id() -> Pubkey:
    return Pubkey.from_string(DEFAULT_PROGRAM_ID)


@pytest.fixture
def owner() -> Keypair:
    return deterministic_keypair(label="owner")


@pytest.fixture
def other() -> Keypair:
    return deterministic_keypair(label="other")


@pytest.fixture
def executor(program_id: Pubkey, owner: Keypair, other: Keypair) -> VaultExecutor:
    ex = VaultExecutor(program_id=program_id, state=LedgerState(clock=Clock(slot=1, unix_timestamp=GENESIS_TS)))
    ex.airdrop(owner.pubkey(), 2 * ONE_SOL)
    ex.airdrop(other.pubkey(), 2 * ONE_SOL)
    return ex


@pytest.fixture
def signed_tx(executor: VaultExecutor):
    """Build a Transaction signed by the given keypairs at their next nonce."""

    def _build(instructions, *signers: Keypair) -> Transaction:
        nonce = executor.next_nonce(*[kp.pubkey() for kp in signers])
        return Transaction(list(instructions), nonce=nonce).sign(*signers)

    return _build
