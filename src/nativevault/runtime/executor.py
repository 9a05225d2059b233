from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID

from nativevault.config import VaultConfig
from nativevault.ledger.rent import Rent
from nativevault.ledger.state import LedgerState
from nativevault.ledger.system_program import process_system_instruction
from nativevault.ledger.types import Account, Clock
from nativevault.program.processor import process_instruction as process_vault_instruction
from nativevault.runtime.errors import ProgramError, vault_error_from_code
from nativevault.runtime.invoke import AccountInfo, InvokeContext, ProcessFn
from nativevault.runtime.sqlite_db import SqliteDB, SqliteLedgerStore
from nativevault.runtime.structured_logging import log_event
from nativevault.runtime.transaction import Transaction

Json = Dict[str, Any]

_log = logging.getLogger("nativevault.executor")


@dataclass(frozen=True)
class TxResult:
    ok: bool
    code: str = "ok"
    reason: str = ""
    details: Optional[Json] = None
    logs: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def custom_code(self) -> Optional[int]:
        """Numeric vault error code, or None for success and host-level failures."""
        vc = vault_error_from_code(self.code)
        return vc.custom_code if vc is not None else None

    def to_json(self) -> Json:
        return {
            "ok": self.ok,
            "code": self.code,
            "reason": self.reason,
            "details": self.details,
            "logs": list(self.logs),
        }


class ExecutorError(RuntimeError):
    pass


class VaultExecutor:
    """In-process ledger host running the system program and the vault program.

    Transactions are all-or-nothing: instructions run against a snapshot of the
    ledger which replaces the committed state only if every instruction
    succeeds. One lock serializes transactions, so two transactions touching
    the same escrow never interleave.

    Every signer carries a nonce: a transaction must use a nonce above each
    of its signers' last one, and a processed transaction consumes it even
    when an instruction fails. Replaying a signed transaction is rejected.
    """

    def __init__(
        self,
        *,
        program_id: Pubkey,
        rent: Optional[Rent] = None,
        state: Optional[LedgerState] = None,
        store: Optional[SqliteLedgerStore] = None,
    ) -> None:
        self.program_id = program_id
        self.rent = rent or Rent()
        self._store = store
        self._lock = threading.Lock()

        if state is not None:
            self.state = state
        elif store is not None and store.exists():
            self.state = LedgerState.from_dict(store.read())
        else:
            self.state = LedgerState()

        if program_id == SYSTEM_PROGRAM_ID:
            raise ExecutorError("vault program_id must differ from the system program id")

        self._programs: Dict[Pubkey, ProcessFn] = {
            SYSTEM_PROGRAM_ID: process_system_instruction,
            program_id: process_vault_instruction,
        }

    @classmethod
    def from_config(cls, cfg: VaultConfig) -> "VaultExecutor":
        store = SqliteLedgerStore(db=SqliteDB(path=cfg.db_path)) if cfg.db_path.strip() else None
        state = None
        if store is None or not store.exists():
            state = LedgerState(clock=Clock(slot=0, unix_timestamp=int(cfg.genesis_unix_timestamp)))
        return cls(
            program_id=Pubkey.from_string(cfg.program_id),
            rent=Rent(lamports_per_byte_year=cfg.lamports_per_byte_year, exemption_threshold=cfg.exemption_threshold),
            state=state,
            store=store,
        )

    # ---- reads ----

    @property
    def clock(self) -> Clock:
        return self.state.clock

    def get_account(self, key: Pubkey) -> Optional[Account]:
        acct = self.state.get(key)
        return acct.clone() if acct is not None else None

    def get_balance(self, key: Pubkey) -> int:
        return self.state.lamports(key)

    def next_nonce(self, *signers: Pubkey) -> int:
        """Smallest nonce every given signer would accept."""
        return max((self.state.nonce(k) for k in signers), default=0) + 1

    # ---- host controls ----

    def airdrop(self, key: Pubkey, lamports: int) -> None:
        if int(lamports) <= 0:
            raise ValueError("airdrop lamports must be > 0")
        with self._lock:
            working = self.state.snapshot()
            working.get_or_default(key).lamports += int(lamports)
            self._commit(working, None)
        log_event(_log, "airdrop", pubkey=str(key), lamports=int(lamports))

    def set_clock(self, unix_timestamp: int, *, slot: Optional[int] = None) -> Clock:
        with self._lock:
            cur = self.state.clock
            if int(unix_timestamp) < cur.unix_timestamp:
                raise ValueError(f"clock must not move backwards: {unix_timestamp} < {cur.unix_timestamp}")
            new_slot = cur.slot + 1 if slot is None else int(slot)
            if new_slot < cur.slot:
                raise ValueError(f"slot must not move backwards: {new_slot} < {cur.slot}")
            working = self.state.snapshot()
            working.clock = Clock(slot=new_slot, unix_timestamp=int(unix_timestamp))
            self._commit(working, None)
            return working.clock

    def advance_clock(self, seconds: int) -> Clock:
        if int(seconds) < 0:
            raise ValueError("seconds must be >= 0")
        return self.set_clock(self.state.clock.unix_timestamp + int(seconds))

    # ---- transactions ----

    def process_transaction(self, tx: Transaction) -> TxResult:
        with self._lock:
            ok, info = tx.verify_signatures()
            if not ok:
                res = TxResult(False, "signature_verification_failed", str(info.get("reason", "")), info)
                self._record(res, tx)
                return res

            signers = tx.required_signers()
            for pk in signers:
                last = self.state.nonce(pk)
                if int(tx.nonce) <= last:
                    res = TxResult(
                        False,
                        "bad_nonce",
                        "nonce_not_increasing",
                        {"signer": str(pk), "have": int(tx.nonce), "last": last},
                    )
                    self._record(res, tx)
                    return res

            working = self.state.snapshot()
            logs: List[str] = []
            try:
                for ix in tx.instructions:
                    self._process_instruction(working, ix, logs)
            except ProgramError as e:
                logs.append(f"Program failed: {e.code}:{e.reason}")
                details = e.details if isinstance(e.details, dict) or e.details is None else {"details": e.details}
                res = TxResult(False, e.code, e.reason, details, tuple(logs))
                # A processed transaction consumes its nonce even when it fails.
                spent = self.state.snapshot()
                _advance_nonces(spent, signers, tx.nonce)
                self._commit(spent, self._tx_record(res, tx))
                log_event(_log, "tx_failed", code=res.code, reason=res.reason, signers=[str(k) for k in signers])
                return res

            _advance_nonces(working, signers, tx.nonce)
            working.prune_empty()
            res = TxResult(True, "ok", "", None, tuple(logs))
            self._commit(working, self._tx_record(res, tx))
            log_event(_log, "tx_processed", ok=True, signers=[str(k) for k in signers])
            return res

    def _process_instruction(self, working: LedgerState, ix: Instruction, logs: List[str]) -> None:
        process = self._programs.get(ix.program_id)
        if process is None:
            raise ProgramError("program_not_found", "unknown_program_id", {"program_id": str(ix.program_id)})

        infos: List[AccountInfo] = []
        touched: Dict[Pubkey, Account] = {}
        writable: Set[Pubkey] = set()
        for meta in ix.accounts:
            acct = working.get_or_default(meta.pubkey)
            touched[meta.pubkey] = acct
            if meta.is_writable:
                writable.add(meta.pubkey)
            infos.append(AccountInfo(key=meta.pubkey, is_signer=bool(meta.is_signer), is_writable=bool(meta.is_writable), account=acct))

        pre = {k: a.clone() for k, a in touched.items()}

        logs.append(f"Program {ix.program_id} invoke [1]")
        ctx = InvokeContext(
            program_id=ix.program_id,
            programs=self._programs,
            clock=working.clock,
            rent=self.rent,
            logs=logs,
        )
        process(ix.program_id, infos, bytes(ix.data), ctx)
        _verify_account_changes(ix.program_id, pre, touched, writable)
        logs.append(f"Program {ix.program_id} success")

    # ---- persistence ----

    def _tx_record(self, res: TxResult, tx: Transaction) -> Json:
        return {
            "ok": res.ok,
            "code": res.code,
            "reason": res.reason,
            "signers": [str(k) for k in tx.required_signers()],
            "nonce": int(tx.nonce),
            "unix_timestamp": self.state.clock.unix_timestamp,
        }

    def _record(self, res: TxResult, tx: Transaction) -> None:
        log_event(_log, "tx_rejected", code=res.code, reason=res.reason, signers=[str(k) for k in tx.required_signers()])
        if self._store is not None:
            self._store.append_tx_log(self._tx_record(res, tx))

    def _commit(self, working: LedgerState, record: Optional[Json]) -> None:
        # Persist first: the in-memory state only advances once the snapshot is durable.
        if self._store is not None:
            self._store.commit(working.to_dict(), record)
        self.state = working

    def recent_transactions(self, *, limit: int = 50) -> List[Json]:
        if self._store is None:
            return []
        return self._store.recent_tx_log(limit=limit)


def _advance_nonces(st: LedgerState, signers: List[Pubkey], nonce: int) -> None:
    for pk in signers:
        st.nonces[pk] = int(nonce)


def _verify_account_changes(
    program_id: Pubkey,
    pre: Dict[Pubkey, Account],
    post: Dict[Pubkey, Account],
    writable: Set[Pubkey],
) -> None:
    pre_total = sum(a.lamports for a in pre.values())
    post_total = sum(a.lamports for a in post.values())
    if pre_total != post_total:
        raise ProgramError("unbalanced_instruction", "lamports_created_or_destroyed", {"pre": pre_total, "post": post_total})

    for key, before in pre.items():
        after = post[key]
        changed = before.lamports != after.lamports or before.data != after.data or before.owner != after.owner
        if changed and key not in writable:
            raise ProgramError("readonly_account_modified", "account_not_writable", {"pubkey": str(key)})
        # Only the owning program may rewrite existing data; fresh allocations are fine.
        if before.data and before.data != after.data and before.owner != program_id:
            raise ProgramError("external_account_data_modified", "account_not_owned_by_program", {"pubkey": str(key)})
