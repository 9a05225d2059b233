"""Vault instruction set and its wire codec.

Borsh-compatible tagged union: a u8 variant tag followed by the variant's
fields as little-endian fixed-width integers.

  0  Initialize        (no payload)
  1  Deposit           amount u64
  2  PartialWithdraw   (no payload)

decode_instruction() is total: anything that is not exactly one of the above
raises MalformedInstruction.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Union

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID

from nativevault.program.checked import U64_MAX
from nativevault.program.pda import derive_escrow_address
from nativevault.runtime.errors import VaultError, VaultErrorCode

TAG_INITIALIZE = 0
TAG_DEPOSIT = 1
TAG_PARTIAL_WITHDRAW = 2

_U64 = struct.Struct("<Q")


@dataclass(frozen=True)
class Initialize:
    pass


@dataclass(frozen=True)
class Deposit:
    amount: int


@dataclass(frozen=True)
class PartialWithdraw:
    pass


VaultInstruction = Union[Initialize, Deposit, PartialWithdraw]


def _malformed(reason: str, **details: object) -> VaultError:
    return VaultError(VaultErrorCode.MALFORMED_INSTRUCTION, reason, details or None)


def encode_instruction(ix: VaultInstruction) -> bytes:
    if isinstance(ix, Initialize):
        return bytes([TAG_INITIALIZE])
    if isinstance(ix, Deposit):
        if not isinstance(ix.amount, int) or isinstance(ix.amount, bool) or not 0 <= ix.amount <= U64_MAX:
            raise _malformed("deposit_amount_not_u64", amount=ix.amount)
        return bytes([TAG_DEPOSIT]) + _U64.pack(ix.amount)
    if isinstance(ix, PartialWithdraw):
        return bytes([TAG_PARTIAL_WITHDRAW])
    raise TypeError(f"not a vault instruction: {type(ix).__name__}")


def decode_instruction(data: bytes) -> VaultInstruction:
    if not data:
        raise _malformed("empty_instruction_data")

    tag, body = data[0], bytes(data[1:])

    if tag == TAG_INITIALIZE:
        if body:
            raise _malformed("trailing_bytes", tag=tag, extra=len(body))
        return Initialize()

    if tag == TAG_DEPOSIT:
        if len(body) != _U64.size:
            raise _malformed("deposit_payload_length", tag=tag, length=len(body))
        (amount,) = _U64.unpack(body)
        return Deposit(amount=amount)

    if tag == TAG_PARTIAL_WITHDRAW:
        if body:
            raise _malformed("trailing_bytes", tag=tag, extra=len(body))
        return PartialWithdraw()

    raise _malformed("unknown_instruction_tag", tag=tag)


# ---- instruction builders (client side) ----


def initialize_ix(*, program_id: Pubkey, payer: Pubkey, vault: Pubkey) -> Instruction:
    return Instruction(
        program_id,
        encode_instruction(Initialize()),
        [
            AccountMeta(payer, True, True),
            AccountMeta(vault, True, True),
            AccountMeta(SYSTEM_PROGRAM_ID, False, False),
        ],
    )


def deposit_ix(*, program_id: Pubkey, owner: Pubkey, amount: int) -> Instruction:
    escrow, _ = derive_escrow_address(owner, program_id)
    return Instruction(
        program_id,
        encode_instruction(Deposit(amount=amount)),
        [
            AccountMeta(owner, True, True),
            AccountMeta(escrow, False, True),
            AccountMeta(SYSTEM_PROGRAM_ID, False, False),
        ],
    )


def partial_withdraw_ix(*, program_id: Pubkey, owner: Pubkey) -> Instruction:
    escrow, _ = derive_escrow_address(owner, program_id)
    return Instruction(
        program_id,
        encode_instruction(PartialWithdraw()),
        [
            AccountMeta(owner, True, True),
            AccountMeta(escrow, False, True),
            AccountMeta(SYSTEM_PROGRAM_ID, False, False),
        ],
    )
