from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from nativevault.crypto.sig import Keypair, verify_ed25519_signature

Json = Dict[str, Any]


def canonical_tx_message(*, instructions: List[Instruction], nonce: int) -> bytes:
    """Bytes every required signer signs.

    Keep this stable: signatures over it are checked by every executor.
    """
    obj: Json = {
        "nonce": int(nonce),
        "instructions": [
            {
                "program_id": str(ix.program_id),
                "accounts": [[str(m.pubkey), bool(m.is_signer), bool(m.is_writable)] for m in ix.accounts],
                "data": bytes(ix.data).hex(),
            }
            for ix in instructions
        ],
    }
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


@dataclass
class Transaction:
    instructions: List[Instruction]
    nonce: int = 0
    signatures: Dict[Pubkey, str] = field(default_factory=dict)

    def message(self) -> bytes:
        return canonical_tx_message(instructions=self.instructions, nonce=self.nonce)

    def required_signers(self) -> List[Pubkey]:
        out: List[Pubkey] = []
        seen = set()
        for ix in self.instructions:
            for m in ix.accounts:
                if m.is_signer and m.pubkey not in seen:
                    seen.add(m.pubkey)
                    out.append(m.pubkey)
        return out

    def sign(self, *keypairs: Keypair) -> "Transaction":
        msg = self.message()
        for kp in keypairs:
            self.signatures[kp.pubkey()] = kp.sign(msg)
        return self

    def verify_signatures(self) -> Tuple[bool, Json]:
        msg = self.message()
        for pk in self.required_signers():
            sig = self.signatures.get(pk)
            if not sig:
                return False, {"reason": "missing_signature", "pubkey": str(pk)}
            if not verify_ed25519_signature(message=msg, sig=sig, pubkey=pk):
                return False, {"reason": "invalid_signature", "pubkey": str(pk)}
        return True, {}
