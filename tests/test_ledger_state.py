from __future__ import annotations

import pytest
from solders.system_program import ID as SYSTEM_PROGRAM_ID

from nativevault.ledger.rent import Rent
from nativevault.ledger.state import LedgerState
from nativevault.ledger.types import Account, Clock
from nativevault.testing.sigtools import deterministic_keypair


def _pk(label: str):
    return deterministic_keypair(label=label).pubkey()


def test_state_json_roundtrip_preserves_accounts_and_clock() -> None:
    prog = _pk("program")
    st = LedgerState(clock=Clock(slot=3, unix_timestamp=99))
    st.get_or_default(_pk("a")).lamports = 500
    st.accounts[_pk("b")] = Account(lamports=7, data=bytearray(b"\x01\x02"), owner=prog)

    back = LedgerState.from_dict(st.to_dict())
    assert back.clock == st.clock
    assert back.accounts == st.accounts


def test_snapshot_is_isolated_from_committed_state() -> None:
    st = LedgerState()
    st.accounts[_pk("a")] = Account(lamports=10, data=bytearray(b"\x00"))

    snap = st.snapshot()
    snap.accounts[_pk("a")].lamports = 0
    snap.accounts[_pk("a")].data[0] = 0xFF

    assert st.lamports(_pk("a")) == 10
    assert st.accounts[_pk("a")].data == bytearray(b"\x00")


def test_prune_empty_keeps_owned_or_funded_accounts() -> None:
    st = LedgerState()
    st.get_or_default(_pk("ghost"))
    st.accounts[_pk("funded")] = Account(lamports=1)
    st.accounts[_pk("owned")] = Account(owner=_pk("program"))

    assert st.prune_empty() == 1
    assert st.get(_pk("ghost")) is None
    assert st.get(_pk("funded")) is not None
    assert st.get(_pk("owned")) is not None


def test_missing_account_defaults_to_system_owned_empty() -> None:
    st = LedgerState()
    assert st.lamports(_pk("nobody")) == 0
    acct = st.get_or_default(_pk("nobody"))
    assert acct.owner == SYSTEM_PROGRAM_ID
    assert acct.is_empty()


@pytest.mark.parametrize(
    "raw",
    [
        [],
        {"state_version": 2, "accounts": {}},
        {"accounts": []},
        {"accounts": {str(SYSTEM_PROGRAM_ID): {"lamports": -1}}},
        {"accounts": {str(SYSTEM_PROGRAM_ID): {"lamports": True}}},
        {"accounts": {str(SYSTEM_PROGRAM_ID): {"data": "not-hex"}}},
    ],
)
def test_from_dict_rejects_malformed_snapshots(raw) -> None:
    with pytest.raises(ValueError):
        LedgerState.from_dict(raw)


def test_rent_minimum_balances() -> None:
    rent = Rent()
    assert rent.minimum_balance(32) == 1_113_600
    assert rent.minimum_balance(49) == 1_231_920
    assert rent.is_exempt(1_231_920, 49)
    assert not rent.is_exempt(1_231_919, 49)


def test_nonces_survive_json_roundtrip() -> None:
    st = LedgerState()
    st.nonces[_pk("a")] = 4
    back = LedgerState.from_dict(st.to_dict())
    assert back.nonce(_pk("a")) == 4
    assert back.nonce(_pk("b")) == 0


@pytest.mark.parametrize("nonces", [[], {str(SYSTEM_PROGRAM_ID): -1}, {str(SYSTEM_PROGRAM_ID): "3"}, {str(SYSTEM_PROGRAM_ID): True}])
def test_from_dict_rejects_malformed_nonces(nonces) -> None:
    with pytest.raises(ValueError):
        LedgerState.from_dict({"accounts": {}, "nonces": nonces})


def test_snapshot_copies_nonces() -> None:
    st = LedgerState()
    snap = st.snapshot()
    snap.nonces[_pk("a")] = 1
    assert st.nonce(_pk("a")) == 0
