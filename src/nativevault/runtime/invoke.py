"""nativevault.runtime.invoke

Per-instruction view of the ledger handed to program processors.

Programs never see LedgerState. They receive AccountInfo views (backed by the
working copy the executor is processing) and an InvokeContext exposing the
clock/rent sysvars, a log sink and cross-program invocation:

  invoke(ix, infos)                  caller's signer privileges only
  invoke_signed(ix, infos, signers)  plus addresses derived from each seed set

Signer seed sets are capabilities: the host recomputes
create_program_address(seeds, calling_program_id) and treats the result as
having signed. A program can therefore only vouch for addresses derived from
its own id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Mapping, Sequence

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from nativevault.ledger.rent import Rent
from nativevault.ledger.types import Account, Clock
from nativevault.runtime.errors import ProgramError

MAX_INVOKE_DEPTH = 4

_log = logging.getLogger("nativevault.program")


@dataclass
class AccountInfo:
    key: Pubkey
    is_signer: bool
    is_writable: bool
    account: Account

    @property
    def lamports(self) -> int:
        return self.account.lamports

    @lamports.setter
    def lamports(self, v: int) -> None:
        self.account.lamports = int(v)

    @property
    def data(self) -> bytearray:
        return self.account.data

    @property
    def owner(self) -> Pubkey:
        return self.account.owner

    @owner.setter
    def owner(self, v: Pubkey) -> None:
        self.account.owner = v

    def data_is_empty(self) -> bool:
        return len(self.account.data) == 0


def next_account_info(it: Iterator[AccountInfo]) -> AccountInfo:
    try:
        return next(it)
    except StopIteration:
        raise ProgramError("not_enough_account_keys", "instruction_missing_accounts") from None


ProcessFn = Callable[[Pubkey, List[AccountInfo], bytes, "InvokeContext"], None]


class InvokeContext:
    def __init__(
        self,
        *,
        program_id: Pubkey,
        programs: Mapping[Pubkey, ProcessFn],
        clock: Clock,
        rent: Rent,
        logs: List[str],
        depth: int = 1,
    ) -> None:
        self.program_id = program_id
        self.clock = clock
        self.rent = rent
        self.logs = logs
        self.depth = int(depth)
        self._programs = programs

    def log(self, message: str) -> None:
        line = f"Program log: {message}"
        self.logs.append(line)
        _log.debug(line)

    def invoke(self, ix: Instruction, infos: Sequence[AccountInfo]) -> None:
        self.invoke_signed(ix, infos, ())

    def invoke_signed(
        self,
        ix: Instruction,
        infos: Sequence[AccountInfo],
        signers_seeds: Sequence[Sequence[bytes]],
    ) -> None:
        if self.depth >= MAX_INVOKE_DEPTH:
            raise ProgramError("call_depth", "max_invoke_depth_exceeded", {"depth": self.depth})

        process = self._programs.get(ix.program_id)
        if process is None:
            raise ProgramError("program_not_found", "unknown_program_id", {"program_id": str(ix.program_id)})

        pda_signers = set()
        for seeds in signers_seeds:
            try:
                pda_signers.add(Pubkey.create_program_address(list(seeds), self.program_id))
            except Exception as e:
                raise ProgramError("invalid_seeds", "signer_seeds_not_a_program_address", {"program_id": str(self.program_id)}) from e

        by_key: Dict[Pubkey, AccountInfo] = {}
        for info in infos:
            by_key.setdefault(info.key, info)

        callee: List[AccountInfo] = []
        for meta in ix.accounts:
            caller = by_key.get(meta.pubkey)
            if caller is None:
                raise ProgramError("missing_account", "account_not_passed_to_invoke", {"pubkey": str(meta.pubkey)})
            if meta.is_signer and not (caller.is_signer or meta.pubkey in pda_signers):
                raise ProgramError("privilege_escalation", "signer_privilege_escalated", {"pubkey": str(meta.pubkey)})
            if meta.is_writable and not caller.is_writable:
                raise ProgramError("privilege_escalation", "writable_privilege_escalated", {"pubkey": str(meta.pubkey)})
            callee.append(
                AccountInfo(
                    key=meta.pubkey,
                    is_signer=bool(meta.is_signer),
                    is_writable=bool(meta.is_writable),
                    account=caller.account,
                )
            )

        self.logs.append(f"Program {ix.program_id} invoke [{self.depth + 1}]")
        child = InvokeContext(
            program_id=ix.program_id,
            programs=self._programs,
            clock=self.clock,
            rent=self.rent,
            logs=self.logs,
            depth=self.depth + 1,
        )
        process(ix.program_id, callee, bytes(ix.data), child)
        self.logs.append(f"Program {ix.program_id} success")
