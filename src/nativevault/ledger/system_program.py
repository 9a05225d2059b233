"""nativevault.ledger.system_program

The host's native system program: account creation and lamport transfer.

Instruction data follows the ledger's bincode layout so instructions built
here are byte-compatible with other tooling:

  CreateAccount  u32 tag=0 | u64 lamports | u64 space | [32] owner
  Transfer       u32 tag=2 | u64 lamports
"""

from __future__ import annotations

import struct
from typing import List

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID

from nativevault.runtime.errors import ProgramError
from nativevault.runtime.invoke import AccountInfo, InvokeContext

TAG_CREATE_ACCOUNT = 0
TAG_TRANSFER = 2

_CREATE_ACCOUNT = struct.Struct("<IQQ32s")
_TRANSFER = struct.Struct("<IQ")
_TAG = struct.Struct("<I")

# Upper bound on allocations, matching the host's per-account limit.
MAX_PERMITTED_DATA_LENGTH = 10 * 1024 * 1024


class SystemProgramError(ProgramError):
    pass


def create_account_ix(
    *,
    from_pubkey: Pubkey,
    to_pubkey: Pubkey,
    lamports: int,
    space: int,
    owner: Pubkey,
) -> Instruction:
    data = _CREATE_ACCOUNT.pack(TAG_CREATE_ACCOUNT, int(lamports), int(space), bytes(owner))
    return Instruction(
        SYSTEM_PROGRAM_ID,
        data,
        [
            AccountMeta(from_pubkey, True, True),
            AccountMeta(to_pubkey, True, True),
        ],
    )


def transfer_ix(*, from_pubkey: Pubkey, to_pubkey: Pubkey, lamports: int) -> Instruction:
    data = _TRANSFER.pack(TAG_TRANSFER, int(lamports))
    return Instruction(
        SYSTEM_PROGRAM_ID,
        data,
        [
            AccountMeta(from_pubkey, True, True),
            AccountMeta(to_pubkey, False, True),
        ],
    )


def _require_signer(info: AccountInfo, role: str) -> None:
    if not info.is_signer:
        raise SystemProgramError("missing_required_signature", f"{role}_must_sign", {"pubkey": str(info.key)})


def _create_account(accounts: List[AccountInfo], lamports: int, space: int, owner: Pubkey, ctx: InvokeContext) -> None:
    if len(accounts) < 2:
        raise SystemProgramError("not_enough_account_keys", "create_account_needs_2_accounts")
    funder, new = accounts[0], accounts[1]
    _require_signer(funder, "funder")
    _require_signer(new, "new_account")

    if new.lamports > 0 or not new.data_is_empty() or new.owner != SYSTEM_PROGRAM_ID:
        ctx.log(f"Create Account: account {new.key} already in use")
        raise SystemProgramError("account_already_in_use", "create_account_target_in_use", {"pubkey": str(new.key)})
    if space > MAX_PERMITTED_DATA_LENGTH:
        raise SystemProgramError("invalid_account_data_length", "space_too_large", {"space": space})
    if funder.lamports < lamports:
        ctx.log(f"Transfer: insufficient lamports {funder.lamports}, need {lamports}")
        raise SystemProgramError(
            "insufficient_lamports",
            "funder_balance_too_low",
            {"pubkey": str(funder.key), "have": funder.lamports, "need": lamports},
        )

    funder.lamports = funder.lamports - lamports
    new.lamports = new.lamports + lamports
    new.data[:] = bytes(space)
    new.owner = owner


def _transfer(accounts: List[AccountInfo], lamports: int, ctx: InvokeContext) -> None:
    if len(accounts) < 2:
        raise SystemProgramError("not_enough_account_keys", "transfer_needs_2_accounts")
    src, dst = accounts[0], accounts[1]
    _require_signer(src, "source")

    if src.lamports < lamports:
        ctx.log(f"Transfer: insufficient lamports {src.lamports}, need {lamports}")
        raise SystemProgramError(
            "insufficient_lamports",
            "source_balance_too_low",
            {"pubkey": str(src.key), "have": src.lamports, "need": lamports},
        )
    if src.key == dst.key:
        return

    src.lamports = src.lamports - lamports
    dst.lamports = dst.lamports + lamports


def process_system_instruction(
    program_id: Pubkey,
    accounts: List[AccountInfo],
    data: bytes,
    ctx: InvokeContext,
) -> None:
    if len(data) < _TAG.size:
        raise SystemProgramError("invalid_instruction_data", "missing_tag")
    (tag,) = _TAG.unpack_from(data)

    if tag == TAG_CREATE_ACCOUNT:
        if len(data) != _CREATE_ACCOUNT.size:
            raise SystemProgramError("invalid_instruction_data", "bad_create_account_length", {"len": len(data)})
        _, lamports, space, owner = _CREATE_ACCOUNT.unpack(data)
        _create_account(accounts, lamports, space, Pubkey(owner), ctx)
        return

    if tag == TAG_TRANSFER:
        if len(data) != _TRANSFER.size:
            raise SystemProgramError("invalid_instruction_data", "bad_transfer_length", {"len": len(data)})
        _, lamports = _TRANSFER.unpack(data)
        _transfer(accounts, lamports, ctx)
        return

    raise SystemProgramError("invalid_instruction_data", "unsupported_system_instruction", {"tag": tag})
