# tests/test_vault_initialize.py
from __future__ import annotations

from nativevault.client import NativeVaultClient
from nativevault.crypto.sig import Keypair
from nativevault.program.instruction import initialize_ix
from nativevault.program.state import VaultAccount
from nativevault.runtime.transaction import Transaction
from nativevault.testing.sigtools import deterministic_keypair


def test_initialize_creates_rent_exempt_vault(executor, owner) -> None:
    client = NativeVaultClient(executor, owner)
    before = executor.get_balance(owner.pubkey())

    res, vault_pk = client.initialize()
    assert res.ok, res

    acct = executor.get_account(vault_pk)
    assert acct is not None
    assert acct.owner == executor.program_id
    assert len(acct.data) == VaultAccount.LEN
    assert acct.lamports == executor.rent.minimum_balance(VaultAccount.LEN)
    assert executor.rent.is_exempt(acct.lamports, len(acct.data))
    assert executor.get_balance(owner.pubkey()) == before - acct.lamports

    assert client.fetch_vault(vault_pk) == VaultAccount(owner=owner.pubkey())


def test_initialize_twice_on_same_account_fails(executor, owner) -> None:
    client = NativeVaultClient(executor, owner)
    vault = deterministic_keypair(label="vault")

    first, _ = client.initialize(vault)
    assert first.ok, first

    second, _ = client.initialize(vault)
    assert not second.ok
    assert second.code == "account_creation_failed"
    assert second.details and second.details["cause"] == "account_already_in_use"
    assert second.custom_code == 6

    # Record unchanged.
    assert client.fetch_vault(vault.pubkey()) == VaultAccount(owner=owner.pubkey())


def test_initialize_without_funds_fails_and_leaves_no_account(executor) -> None:
    broke = deterministic_keypair(label="broke")
    executor.airdrop(broke.pubkey(), 10)
    client = NativeVaultClient(executor, broke)

    res, vault_pk = client.initialize()
    assert not res.ok
    assert res.code == "account_creation_failed"
    assert res.details and res.details["cause"] == "insufficient_lamports"
    assert executor.get_account(vault_pk) is None
    assert executor.get_balance(broke.pubkey()) == 10


def test_initialize_requires_vault_signature(executor, owner, program_id) -> None:
    vault = Keypair()
    ix = initialize_ix(program_id=program_id, payer=owner.pubkey(), vault=vault.pubkey())
    # Only the payer signs; the vault keypair's signature is missing.
    res = executor.process_transaction(Transaction([ix]).sign(owner))
    assert not res.ok
    assert res.code == "signature_verification_failed"
    assert res.reason == "missing_signature"
    assert executor.get_account(vault.pubkey()) is None
