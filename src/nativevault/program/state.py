"""Persisted account layouts owned by the vault program.

  VaultAccount   owner [32]                                   32 bytes
  EscrowAccount  signer [32] | balance u64 | deposit_time i64 | done u8   49 bytes

Little-endian, no padding.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from solders.pubkey import Pubkey

from nativevault.runtime.errors import ProgramError

_VAULT = struct.Struct("<32s")
_ESCROW = struct.Struct("<32sQq?")


def _check_len(buf: bytes, want: int, kind: str) -> None:
    if len(buf) != want:
        raise ProgramError("invalid_account_data", f"{kind}_wrong_length", {"have": len(buf), "want": want})


@dataclass(frozen=True)
class VaultAccount:
    owner: Pubkey

    LEN = _VAULT.size

    def pack(self) -> bytes:
        return _VAULT.pack(bytes(self.owner))

    @classmethod
    def unpack(cls, buf: bytes) -> "VaultAccount":
        _check_len(buf, cls.LEN, "vault")
        (owner,) = _VAULT.unpack(bytes(buf))
        return cls(owner=Pubkey(owner))


@dataclass
class EscrowAccount:
    signer: Pubkey
    balance: int = 0
    deposit_time: int = 0
    done: bool = False

    LEN = _ESCROW.size

    def pack(self) -> bytes:
        return _ESCROW.pack(bytes(self.signer), int(self.balance), int(self.deposit_time), bool(self.done))

    @classmethod
    def unpack(cls, buf: bytes) -> "EscrowAccount":
        _check_len(buf, cls.LEN, "escrow")
        raw = bytes(buf)
        if raw[-1] not in (0, 1):
            raise ProgramError("invalid_account_data", "escrow_done_flag_not_bool", {"value": raw[-1]})
        signer, balance, deposit_time, done = _ESCROW.unpack(raw)
        return cls(signer=Pubkey(signer), balance=balance, deposit_time=deposit_time, done=done)

    def store(self, data: bytearray) -> None:
        _check_len(data, self.LEN, "escrow")
        data[:] = self.pack()
