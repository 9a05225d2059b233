from __future__ import annotations

from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from solders.pubkey import Pubkey


def _decode_bytes(s: str) -> bytes:
    s = s.strip()
    if not s:
        raise ValueError("empty string")
    return bytes.fromhex(s)


def verify_ed25519_signature(*, message: bytes, sig: str, pubkey: Pubkey) -> bool:
    try:
        sig_b = _decode_bytes(sig)
        key = Ed25519PublicKey.from_public_bytes(bytes(pubkey))
        key.verify(sig_b, message)
        return True
    except (InvalidSignature, ValueError):
        return False


class Keypair:
    """Ed25519 signing identity. pubkey() is the account address it controls."""

    def __init__(self, private_key: Optional[Ed25519PrivateKey] = None) -> None:
        self._sk = private_key or Ed25519PrivateKey.generate()
        raw = self._sk.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        self._pubkey = Pubkey(raw)

    @classmethod
    def from_seed(cls, seed: bytes) -> "Keypair":
        """Build from a 32-byte seed, or a 64-byte wallet key (seed || pubkey)."""
        if len(seed) == 64:
            seed = seed[:32]
        if len(seed) != 32:
            raise ValueError("ed25519 seed must be 32 bytes (or 64-byte wallet key)")
        return cls(Ed25519PrivateKey.from_private_bytes(bytes(seed)))

    def pubkey(self) -> Pubkey:
        return self._pubkey

    def sign(self, message: bytes) -> str:
        """Hex-encoded signature over message."""
        return self._sk.sign(message).hex()

    def __repr__(self) -> str:
        return f"Keypair({self._pubkey})"
