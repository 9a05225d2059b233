# tests/test_e2e_vault_flow.py
from __future__ import annotations

from nativevault.client import NativeVaultClient
from nativevault.program.state import EscrowAccount, VaultAccount


def test_e2e_init_deposit_timelock_withdraw_finalize(executor, owner) -> None:
    """Init vault -> deposit 1000 at T -> early withdraw fails -> withdraw at T+10 -> finalized."""
    client = NativeVaultClient(executor, owner)

    res, vault_pk = client.initialize()
    assert res.ok, res
    assert client.fetch_vault(vault_pk) == VaultAccount(owner=owner.pubkey())

    t = executor.clock.unix_timestamp
    res = client.deposit(1000)
    assert res.ok, res
    assert client.fetch_escrow() == EscrowAccount(signer=owner.pubkey(), balance=1000, deposit_time=t, done=False)

    executor.set_clock(t + 5)
    early = client.partial_withdraw()
    assert not early.ok
    assert early.code == "time_lock_not_elapsed"
    assert early.custom_code == 3

    owner_before = executor.get_balance(owner.pubkey())
    executor.set_clock(t + 10)
    res = client.partial_withdraw()
    assert res.ok, res
    assert executor.get_balance(owner.pubkey()) == owner_before + 100

    rec = client.fetch_escrow()
    assert rec == EscrowAccount(signer=owner.pubkey(), balance=900, deposit_time=t, done=True)

    late = client.deposit(1)
    assert not late.ok
    assert late.code == "already_finalized"

    # Program logs trace the nested system-program calls.
    assert any("Instruction: PartialWithdraw" in line for line in res.logs)
    assert any("invoke [2]" in line for line in res.logs)


def test_two_owners_have_independent_escrows(executor, owner, other) -> None:
    mine = NativeVaultClient(executor, owner)
    theirs = NativeVaultClient(executor, other)

    assert mine.deposit(500).ok
    assert theirs.deposit(2000).ok
    assert mine.escrow_address()[0] != theirs.escrow_address()[0]

    executor.advance_clock(10)
    assert mine.partial_withdraw().ok

    assert mine.fetch_escrow().done is True
    other_rec = theirs.fetch_escrow()
    assert other_rec is not None
    assert other_rec.done is False
    assert other_rec.balance == 2000
