from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Tuple

from solders.pubkey import Pubkey

from nativevault.ledger.types import Account, Clock

Json = Dict[str, Any]

CURRENT_STATE_VERSION = 1


@dataclass
class LedgerState:
    """Mutable ledger: every account by address plus the current clock.

    The executor never mutates the committed LedgerState directly; it works
    on snapshot() and swaps the result in once a transaction succeeds.
    """

    accounts: Dict[Pubkey, Account] = field(default_factory=dict)
    clock: Clock = field(default_factory=Clock)

    # Highest transaction nonce committed per signer.
    nonces: Dict[Pubkey, int] = field(default_factory=dict)

    def get(self, key: Pubkey) -> Account | None:
        return self.accounts.get(key)

    def get_or_default(self, key: Pubkey) -> Account:
        """Return the account at key, materializing an empty one if absent."""
        acct = self.accounts.get(key)
        if acct is None:
            acct = Account()
            self.accounts[key] = acct
        return acct

    def lamports(self, key: Pubkey) -> int:
        acct = self.accounts.get(key)
        return int(acct.lamports) if acct is not None else 0

    def nonce(self, key: Pubkey) -> int:
        return int(self.nonces.get(key, 0))

    def items(self) -> Iterator[Tuple[Pubkey, Account]]:
        return iter(self.accounts.items())

    def snapshot(self) -> "LedgerState":
        return LedgerState(
            accounts={k: a.clone() for k, a in self.accounts.items()},
            clock=self.clock,
            nonces=dict(self.nonces),
        )

    def prune_empty(self) -> int:
        """Drop accounts that hold nothing; the host treats them as absent."""
        dead = [k for k, a in self.accounts.items() if a.is_empty()]
        for k in dead:
            del self.accounts[k]
        return len(dead)

    # ---- JSON interop ----

    def to_dict(self) -> Json:
        return {
            "state_version": CURRENT_STATE_VERSION,
            "clock": self.clock.to_json(),
            "accounts": {str(k): a.to_json() for k, a in sorted(self.accounts.items(), key=lambda kv: str(kv[0]))},
            "nonces": {str(k): int(n) for k, n in sorted(self.nonces.items(), key=lambda kv: str(kv[0]))},
        }

    @classmethod
    def from_dict(cls, d: Any) -> "LedgerState":
        if not isinstance(d, dict):
            raise ValueError(f"LedgerState schema error: expected object (got {type(d).__name__})")

        version = d.get("state_version", CURRENT_STATE_VERSION)
        if version != CURRENT_STATE_VERSION:
            raise ValueError(f"LedgerState schema error: unsupported state_version {version!r}")

        raw_accounts = d.get("accounts", {})
        if not isinstance(raw_accounts, dict):
            raise ValueError("LedgerState schema error: field 'accounts' must be dict")

        accounts: Dict[Pubkey, Account] = {}
        for k, v in raw_accounts.items():
            accounts[Pubkey.from_string(str(k))] = Account.from_json(v)

        raw_nonces = d.get("nonces", {})
        if not isinstance(raw_nonces, dict):
            raise ValueError("LedgerState schema error: field 'nonces' must be dict")

        nonces: Dict[Pubkey, int] = {}
        for k, v in raw_nonces.items():
            if isinstance(v, bool) or not isinstance(v, int) or v < 0:
                raise ValueError(f"LedgerState schema error: nonce for {k} must be a non-negative int")
            nonces[Pubkey.from_string(str(k))] = v

        return cls(accounts=accounts, clock=Clock.from_json(d.get("clock")), nonces=nonces)
