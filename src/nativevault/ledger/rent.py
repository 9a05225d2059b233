from __future__ import annotations

from dataclasses import dataclass

# Bytes of bookkeeping the host charges for on top of every account's data.
ACCOUNT_STORAGE_OVERHEAD = 128

DEFAULT_LAMPORTS_PER_BYTE_YEAR = 3480
DEFAULT_EXEMPTION_THRESHOLD = 2.0


@dataclass(frozen=True)
class Rent:
    """Storage-cost model. Accounts holding minimum_balance() are never reclaimed."""

    lamports_per_byte_year: int = DEFAULT_LAMPORTS_PER_BYTE_YEAR
    exemption_threshold: float = DEFAULT_EXEMPTION_THRESHOLD

    def minimum_balance(self, data_len: int) -> int:
        bytes_ = ACCOUNT_STORAGE_OVERHEAD + int(data_len)
        return int(bytes_ * self.lamports_per_byte_year * self.exemption_threshold)

    def is_exempt(self, lamports: int, data_len: int) -> bool:
        return int(lamports) >= self.minimum_balance(data_len)
