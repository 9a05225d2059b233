from __future__ import annotations

from nativevault.runtime.errors import VaultError, VaultErrorCode

U64_MAX = (1 << 64) - 1


def checked_add_u64(a: int, b: int) -> int:
    out = int(a) + int(b)
    if a < 0 or b < 0 or out > U64_MAX:
        raise VaultError(VaultErrorCode.ARITHMETIC_OVERFLOW, "u64_add_overflow", {"a": a, "b": b})
    return out


def checked_sub_u64(a: int, b: int) -> int:
    out = int(a) - int(b)
    if a < 0 or b < 0 or out < 0:
        raise VaultError(VaultErrorCode.ARITHMETIC_OVERFLOW, "u64_sub_underflow", {"a": a, "b": b})
    return out
