"""nativevault.ledger.types

Account records held by the in-process ledger host.

An Account is the host's unit of persisted state: a lamport balance, an opaque
data buffer and the program that owns (may write) that buffer. Addresses are
`solders.pubkey.Pubkey` values; accounts are keyed by address in LedgerState.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID

Json = Dict[str, Any]


def _coerce_int(v: Any, *, field: str) -> int:
    try:
        # bool is an int subclass; disallow it explicitly
        if isinstance(v, bool):
            raise ValueError("bool is not a valid int")
        return int(v)
    except Exception as e:
        raise ValueError(f"Account schema error: field '{field}' must be int-coercible (got {type(v).__name__})") from e


@dataclass
class Account:
    """Mutable account record. Owned by the system program until assigned."""

    lamports: int = 0
    data: bytearray = field(default_factory=bytearray)
    owner: Pubkey = SYSTEM_PROGRAM_ID
    executable: bool = False

    def clone(self) -> "Account":
        # Pubkey is immutable; only the data buffer needs copying.
        return Account(
            lamports=int(self.lamports),
            data=bytearray(self.data),
            owner=self.owner,
            executable=bool(self.executable),
        )

    def is_empty(self) -> bool:
        return self.lamports == 0 and not self.data and self.owner == SYSTEM_PROGRAM_ID

    def to_json(self) -> Json:
        return {
            "lamports": int(self.lamports),
            "data": bytes(self.data).hex(),
            "owner": str(self.owner),
            "executable": bool(self.executable),
        }

    @staticmethod
    def from_json(j: Any) -> "Account":
        if not isinstance(j, dict):
            raise ValueError(f"Account schema error: expected object (got {type(j).__name__})")
        try:
            data = bytearray.fromhex(str(j.get("data", "") or ""))
        except ValueError as e:
            raise ValueError("Account schema error: field 'data' must be hex") from e
        lamports = _coerce_int(j.get("lamports", 0), field="lamports")
        if lamports < 0:
            raise ValueError("Account schema error: field 'lamports' must be >= 0")
        return Account(
            lamports=lamports,
            data=data,
            owner=Pubkey.from_string(str(j.get("owner") or SYSTEM_PROGRAM_ID)),
            executable=bool(j.get("executable", False)),
        )


@dataclass(frozen=True)
class Clock:
    """Clock sysvar: the ledger's monotonic time oracle."""

    slot: int = 0
    unix_timestamp: int = 0

    def to_json(self) -> Json:
        return {"slot": int(self.slot), "unix_timestamp": int(self.unix_timestamp)}

    @staticmethod
    def from_json(j: Any) -> "Clock":
        if not isinstance(j, dict):
            return Clock()
        return Clock(
            slot=_coerce_int(j.get("slot", 0), field="slot"),
            unix_timestamp=_coerce_int(j.get("unix_timestamp", 0), field="unix_timestamp"),
        )
