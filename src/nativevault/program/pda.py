"""Escrow address derivation.

Every escrow account lives at the program address derived from
(ESCROW_SEED, owner) and the vault program id. The bump is the first value,
searching down from 255, that pushes the hash off the ed25519 curve, so no
private key exists for the address and only the vault program can sign for
it (through EscrowSigner).

ESCROW_SEED is part of the address contract; changing it orphans every
existing escrow.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

from solders.pubkey import Pubkey

from nativevault.runtime.errors import VaultError, VaultErrorCode

ESCROW_SEED = b"SOL_VAULT"


def derive_escrow_address(owner: Pubkey, program_id: Pubkey) -> Tuple[Pubkey, int]:
    return Pubkey.find_program_address([ESCROW_SEED, bytes(owner)], program_id)


def verify_escrow_address(candidate: Pubkey, owner: Pubkey, program_id: Pubkey) -> int:
    """Return the bump for owner's escrow, or raise if candidate is not that escrow."""
    expected, bump = derive_escrow_address(owner, program_id)
    if candidate != expected:
        raise VaultError(
            VaultErrorCode.ADDRESS_MISMATCH,
            "escrow_address_not_derived_from_owner",
            {"candidate": str(candidate), "expected": str(expected), "owner": str(owner)},
        )
    return bump


@dataclass(frozen=True)
class EscrowSigner:
    """Capability letting the vault program authorize for one escrow account."""

    owner: Pubkey
    bump: int

    def seeds(self) -> List[bytes]:
        return [ESCROW_SEED, bytes(self.owner), bytes([self.bump])]

    def address(self, program_id: Pubkey) -> Pubkey:
        return Pubkey.create_program_address(self.seeds(), program_id)
