from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


@dataclass
class ProgramError(Exception):
    """Canonical error type for instruction processing failures.

    Raising any ProgramError aborts the whole transaction; the executor
    discards every account write made while processing it.
    """

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class VaultErrorCode(str, Enum):
    ADDRESS_MISMATCH = "address_mismatch"
    UNAUTHORIZED = "unauthorized"
    ALREADY_FINALIZED = "already_finalized"
    TIME_LOCK_NOT_ELAPSED = "time_lock_not_elapsed"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    ARITHMETIC_OVERFLOW = "arithmetic_overflow"
    ACCOUNT_CREATION_FAILED = "account_creation_failed"
    MALFORMED_INSTRUCTION = "malformed_instruction"

    @property
    def custom_code(self) -> int:
        """Stable numeric code reported to callers alongside the string code."""
        return _CUSTOM_CODES[self]


_CUSTOM_CODES = {code: i for i, code in enumerate(VaultErrorCode)}


class VaultError(ProgramError):
    """ProgramError raised by the vault program itself."""

    def __init__(self, code: VaultErrorCode, reason: str, details: Any | None = None) -> None:
        super().__init__(code.value, reason, details)
        self.error_code = code


def vault_error_from_code(code: str) -> VaultErrorCode | None:
    try:
        return VaultErrorCode(code)
    except ValueError:
        return None
