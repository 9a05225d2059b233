# tests/test_vault_partial_withdraw.py
from __future__ import annotations

import pytest
from solders.instruction import AccountMeta, Instruction
from solders.system_program import ID as SYSTEM_PROGRAM_ID

from nativevault.client import NativeVaultClient
from nativevault.program.instruction import PartialWithdraw, encode_instruction
from nativevault.program.pda import derive_escrow_address
from nativevault.program.processor import DELAY
from nativevault.program.state import EscrowAccount


def _funded(executor, owner, amount: int) -> NativeVaultClient:
    client = NativeVaultClient(executor, owner)
    res = client.deposit(amount)
    assert res.ok, res
    return client


def test_delay_constant() -> None:
    assert DELAY == 10


def test_time_lock_boundary_is_inclusive(executor, owner) -> None:
    client = _funded(executor, owner, 1000)
    deposited_at = executor.clock.unix_timestamp

    executor.set_clock(deposited_at + DELAY - 1)
    res = client.partial_withdraw()
    assert not res.ok
    assert res.code == "time_lock_not_elapsed"
    assert res.details and res.details["elapsed"] == DELAY - 1
    assert client.fetch_escrow().done is False

    executor.set_clock(deposited_at + DELAY)
    res = client.partial_withdraw()
    assert res.ok, res


def test_withdrawal_is_floor_of_one_tenth(executor, owner) -> None:
    client = _funded(executor, owner, 105)
    escrow_pk, _ = client.escrow_address()
    owner_before = executor.get_balance(owner.pubkey())
    escrow_before = executor.get_balance(escrow_pk)

    executor.advance_clock(DELAY)
    res = client.partial_withdraw()
    assert res.ok, res

    rec = client.fetch_escrow()
    assert rec is not None
    assert rec.balance == 95
    assert rec.done is True
    assert executor.get_balance(owner.pubkey()) == owner_before + 10
    assert executor.get_balance(escrow_pk) == escrow_before - 10


@pytest.mark.parametrize("balance", list(range(10)))
def test_small_balances_are_insufficient_and_not_finalized(executor, owner, balance: int) -> None:
    client = _funded(executor, owner, balance)
    executor.advance_clock(DELAY)

    res = client.partial_withdraw()
    assert not res.ok
    assert res.code == "insufficient_funds"

    rec = client.fetch_escrow()
    assert rec is not None
    assert rec.balance == balance
    assert rec.done is False


def test_finalized_escrow_rejects_everything(executor, owner) -> None:
    client = _funded(executor, owner, 1000)
    executor.advance_clock(DELAY)
    assert client.partial_withdraw().ok
    snapshot = client.fetch_escrow()

    executor.advance_clock(100)
    again = client.partial_withdraw()
    assert not again.ok
    assert again.code == "already_finalized"

    dep = client.deposit(50)
    assert not dep.ok
    assert dep.code == "already_finalized"

    assert client.fetch_escrow() == snapshot


def test_withdraw_before_any_deposit_fails(executor, owner) -> None:
    client = NativeVaultClient(executor, owner)
    res = client.partial_withdraw()
    assert not res.ok
    # The escrow does not exist yet, so it is still owned by the system program.
    assert res.code == "incorrect_program_id"


def test_withdraw_from_someone_elses_escrow_is_address_mismatch(executor, owner, other, program_id, signed_tx) -> None:
    _funded(executor, other, 1000)
    executor.advance_clock(DELAY)

    theirs, _ = derive_escrow_address(other.pubkey(), program_id)
    ix = Instruction(
        program_id,
        encode_instruction(PartialWithdraw()),
        [
            AccountMeta(owner.pubkey(), True, True),
            AccountMeta(theirs, False, True),
            AccountMeta(SYSTEM_PROGRAM_ID, False, False),
        ],
    )
    res = executor.process_transaction(signed_tx([ix], owner))
    assert not res.ok
    assert res.code == "address_mismatch"


def test_withdraw_with_foreign_signer_record_is_unauthorized(executor, owner, other) -> None:
    client = _funded(executor, owner, 1000)
    escrow_pk, _ = client.escrow_address()
    rec = EscrowAccount(signer=other.pubkey(), balance=1000, deposit_time=0, done=False)
    executor.state.accounts[escrow_pk].data[:] = rec.pack()
    executor.advance_clock(DELAY)

    res = client.partial_withdraw()
    assert not res.ok
    assert res.code == "unauthorized"


def test_withdraw_signer_check_precedes_finalized_check(executor, owner, other) -> None:
    client = _funded(executor, owner, 1000)
    escrow_pk, _ = client.escrow_address()
    rec = EscrowAccount(signer=other.pubkey(), balance=1000, deposit_time=0, done=True)
    executor.state.accounts[escrow_pk].data[:] = rec.pack()

    res = client.partial_withdraw()
    assert res.code == "unauthorized"
