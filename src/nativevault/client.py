"""High-level vault client driving a VaultExecutor.

Builds, signs and submits the three vault instructions for one payer, and
decodes the vault/escrow accounts back into typed records.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from solders.pubkey import Pubkey

from nativevault.crypto.sig import Keypair
from nativevault.program.instruction import deposit_ix, initialize_ix, partial_withdraw_ix
from nativevault.program.pda import derive_escrow_address
from nativevault.program.state import EscrowAccount, VaultAccount
from nativevault.runtime.executor import TxResult, VaultExecutor
from nativevault.runtime.structured_logging import log_event
from nativevault.runtime.transaction import Transaction

_log = logging.getLogger("nativevault.client")


class NativeVaultClient:
    def __init__(self, executor: VaultExecutor, payer: Keypair) -> None:
        self.executor = executor
        self.payer = payer

    @property
    def program_id(self) -> Pubkey:
        return self.executor.program_id

    def escrow_address(self) -> Tuple[Pubkey, int]:
        return derive_escrow_address(self.payer.pubkey(), self.program_id)

    def _send(self, tx: Transaction, *signers: Keypair) -> TxResult:
        tx.nonce = self.executor.next_nonce(*[kp.pubkey() for kp in signers])
        res = self.executor.process_transaction(tx.sign(*signers))
        log_event(_log, "vault_tx", payer=str(self.payer.pubkey()), ok=res.ok, code=res.code)
        return res

    def initialize(self, vault: Optional[Keypair] = None) -> Tuple[TxResult, Pubkey]:
        """Create a vault account owned by the payer. A fresh keypair is used unless given."""
        vault = vault or Keypair()
        ix = initialize_ix(program_id=self.program_id, payer=self.payer.pubkey(), vault=vault.pubkey())
        return self._send(Transaction([ix]), self.payer, vault), vault.pubkey()

    def deposit(self, amount: int) -> TxResult:
        ix = deposit_ix(program_id=self.program_id, owner=self.payer.pubkey(), amount=amount)
        return self._send(Transaction([ix]), self.payer)

    def partial_withdraw(self) -> TxResult:
        ix = partial_withdraw_ix(program_id=self.program_id, owner=self.payer.pubkey())
        return self._send(Transaction([ix]), self.payer)

    def fetch_escrow(self) -> Optional[EscrowAccount]:
        escrow, _ = self.escrow_address()
        acct = self.executor.get_account(escrow)
        if acct is None or not acct.data:
            return None
        return EscrowAccount.unpack(acct.data)

    def fetch_vault(self, vault: Pubkey) -> Optional[VaultAccount]:
        acct = self.executor.get_account(vault)
        if acct is None or not acct.data:
            return None
        return VaultAccount.unpack(acct.data)
