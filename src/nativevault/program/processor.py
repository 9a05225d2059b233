# src/nativevault/program/processor.py
from __future__ import annotations

from typing import List

from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID

from nativevault.ledger.system_program import create_account_ix, transfer_ix
from nativevault.program.checked import checked_add_u64, checked_sub_u64
from nativevault.program.instruction import Deposit, Initialize, PartialWithdraw, decode_instruction
from nativevault.program.pda import EscrowSigner, verify_escrow_address
from nativevault.program.state import EscrowAccount, VaultAccount
from nativevault.runtime.errors import ProgramError, VaultError, VaultErrorCode
from nativevault.runtime.invoke import AccountInfo, InvokeContext, next_account_info

# Seconds that must pass between the latest deposit and a withdrawal.
DELAY = 10

# A withdrawal releases balance // WITHDRAW_DIVISOR.
WITHDRAW_DIVISOR = 10


def _require_signer(info: AccountInfo, role: str) -> None:
    if not info.is_signer:
        raise VaultError(VaultErrorCode.UNAUTHORIZED, f"{role}_must_sign", {"pubkey": str(info.key)})


def _require_system_program(info: AccountInfo) -> None:
    if info.key != SYSTEM_PROGRAM_ID:
        raise ProgramError("incorrect_program_id", "expected_system_program", {"pubkey": str(info.key)})


def _load_escrow(info: AccountInfo, program_id: Pubkey) -> EscrowAccount:
    if info.owner != program_id:
        raise ProgramError("incorrect_program_id", "escrow_not_owned_by_program", {"owner": str(info.owner)})
    return EscrowAccount.unpack(info.data)


def initialize(program_id: Pubkey, accounts: List[AccountInfo], ctx: InvokeContext) -> None:
    ctx.log("Instruction: Initialize")
    it = iter(accounts)
    payer = next_account_info(it)
    vault = next_account_info(it)
    system_program = next_account_info(it)

    _require_signer(payer, "payer")
    _require_system_program(system_program)

    lamports = ctx.rent.minimum_balance(VaultAccount.LEN)
    try:
        ctx.invoke(
            create_account_ix(
                from_pubkey=payer.key,
                to_pubkey=vault.key,
                lamports=lamports,
                space=VaultAccount.LEN,
                owner=program_id,
            ),
            [payer, vault, system_program],
        )
    except ProgramError as e:
        raise VaultError(
            VaultErrorCode.ACCOUNT_CREATION_FAILED,
            "vault_create_account_failed",
            {"vault": str(vault.key), "cause": e.code},
        ) from e

    vault.data[:] = VaultAccount(owner=payer.key).pack()
    ctx.log(f"Vault {vault.key} initialized for {payer.key}")


def deposit(program_id: Pubkey, accounts: List[AccountInfo], amount: int, ctx: InvokeContext) -> None:
    ctx.log("Instruction: Deposit")
    it = iter(accounts)
    user = next_account_info(it)
    escrow_info = next_account_info(it)
    system_program = next_account_info(it)

    _require_signer(user, "depositor")
    _require_system_program(system_program)
    bump = verify_escrow_address(escrow_info.key, user.key, program_id)
    signer = EscrowSigner(owner=user.key, bump=bump)

    if escrow_info.data_is_empty():
        ctx.log("Creating escrow account")
        try:
            ctx.invoke_signed(
                create_account_ix(
                    from_pubkey=user.key,
                    to_pubkey=escrow_info.key,
                    lamports=ctx.rent.minimum_balance(EscrowAccount.LEN),
                    space=EscrowAccount.LEN,
                    owner=program_id,
                ),
                [user, escrow_info, system_program],
                [signer.seeds()],
            )
        except ProgramError as e:
            raise VaultError(
                VaultErrorCode.ACCOUNT_CREATION_FAILED,
                "escrow_create_account_failed",
                {"escrow": str(escrow_info.key), "cause": e.code},
            ) from e
        EscrowAccount(signer=user.key).store(escrow_info.data)

    escrow = _load_escrow(escrow_info, program_id)
    if escrow.done:
        raise VaultError(VaultErrorCode.ALREADY_FINALIZED, "escrow_finalized", {"escrow": str(escrow_info.key)})
    if escrow.signer != user.key:
        raise VaultError(VaultErrorCode.UNAUTHORIZED, "depositor_is_not_escrow_signer", {"signer": str(escrow.signer)})

    escrow.balance = checked_add_u64(escrow.balance, amount)
    escrow.deposit_time = ctx.clock.unix_timestamp
    escrow.store(escrow_info.data)

    ctx.log(f"Transferring {amount} lamports to escrow")
    ctx.invoke(
        transfer_ix(from_pubkey=user.key, to_pubkey=escrow_info.key, lamports=amount),
        [user, escrow_info, system_program],
    )


def partial_withdraw(program_id: Pubkey, accounts: List[AccountInfo], ctx: InvokeContext) -> None:
    ctx.log("Instruction: PartialWithdraw")
    it = iter(accounts)
    user = next_account_info(it)
    escrow_info = next_account_info(it)
    system_program = next_account_info(it)

    _require_signer(user, "owner")
    _require_system_program(system_program)
    bump = verify_escrow_address(escrow_info.key, user.key, program_id)

    escrow = _load_escrow(escrow_info, program_id)
    if escrow.signer != user.key:
        raise VaultError(VaultErrorCode.UNAUTHORIZED, "caller_is_not_escrow_signer", {"signer": str(escrow.signer)})
    if escrow.done:
        raise VaultError(VaultErrorCode.ALREADY_FINALIZED, "escrow_finalized", {"escrow": str(escrow_info.key)})

    now = ctx.clock.unix_timestamp
    elapsed = now - escrow.deposit_time
    if elapsed < DELAY:
        raise VaultError(
            VaultErrorCode.TIME_LOCK_NOT_ELAPSED,
            "withdrawal_before_delay",
            {"elapsed": elapsed, "delay": DELAY, "deposit_time": escrow.deposit_time, "now": now},
        )

    withdrawal = escrow.balance // WITHDRAW_DIVISOR
    if withdrawal == 0:
        raise VaultError(VaultErrorCode.INSUFFICIENT_FUNDS, "withdrawal_rounds_to_zero", {"balance": escrow.balance})

    escrow.balance = checked_sub_u64(escrow.balance, withdrawal)
    # Terminal: the remainder stays in the escrow and no further deposits are accepted.
    escrow.done = True
    escrow.store(escrow_info.data)

    ctx.log(f"Transferring {withdrawal} lamports from escrow to owner")
    ctx.invoke_signed(
        transfer_ix(from_pubkey=escrow_info.key, to_pubkey=user.key, lamports=withdrawal),
        [escrow_info, user, system_program],
        [EscrowSigner(owner=user.key, bump=bump).seeds()],
    )


def process_instruction(program_id: Pubkey, accounts: List[AccountInfo], data: bytes, ctx: InvokeContext) -> None:
    """Vault program entrypoint: decode once, route to exactly one handler."""
    ix = decode_instruction(data)

    if isinstance(ix, Initialize):
        initialize(program_id, accounts, ctx)
    elif isinstance(ix, Deposit):
        deposit(program_id, accounts, ix.amount, ctx)
    elif isinstance(ix, PartialWithdraw):
        partial_withdraw(program_id, accounts, ctx)
    else:  # pragma: no cover
        raise TypeError(f"unhandled vault instruction: {type(ix).__name__}")
