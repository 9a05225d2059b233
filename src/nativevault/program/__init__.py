from nativevault.program.instruction import (
    Deposit,
    Initialize,
    PartialWithdraw,
    VaultInstruction,
    decode_instruction,
    deposit_ix,
    encode_instruction,
    initialize_ix,
    partial_withdraw_ix,
)
from nativevault.program.pda import ESCROW_SEED, EscrowSigner, derive_escrow_address, verify_escrow_address
from nativevault.program.processor import DELAY, process_instruction
from nativevault.program.state import EscrowAccount, VaultAccount

__all__ = [
    "DELAY",
    "ESCROW_SEED",
    "Deposit",
    "EscrowAccount",
    "EscrowSigner",
    "Initialize",
    "PartialWithdraw",
    "VaultAccount",
    "VaultInstruction",
    "decode_instruction",
    "deposit_ix",
    "derive_escrow_address",
    "encode_instruction",
    "initialize_ix",
    "partial_withdraw_ix",
    "process_instruction",
    "verify_escrow_address",
]
