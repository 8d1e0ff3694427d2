"""Permissionless sweeps from deposit addresses into the vault.

Anyone may trigger a sweep, but value only leaves a deposit address through
the capability issued for its derivation proof, and only towards the vault.
"""

import dataclasses
import logging
from typing import Optional

from solders.pubkey import Pubkey

from relay_depository.config import NativeSweepMode
from relay_depository.derivation import authorize, deposit_address
from relay_depository.errors import DepositoryError, ErrorCode
from relay_depository.protocol.events import SweepEvent
from relay_depository.runtime import programs
from relay_depository.runtime.host import ExecutionContext
from relay_depository.services import deposits

logger = logging.getLogger(__name__)


def sweepable_lamports(balance: int, mode: NativeSweepMode, reserve: int) -> int:
    """Native amount a sweep moves out of a deposit address."""
    if mode == NativeSweepMode.FULL:
        return balance
    return max(balance - reserve, 0)


async def sweep_native(ctx: ExecutionContext, id: bytes, depositor: Pubkey) -> SweepEvent:
    """Move the native balance of (id, native, depositor) into the vault."""
    derived = deposit_address(id, None, depositor, ctx.program_id)
    source = derived.address

    balance = await ctx.ledger.get_lamports(source)
    amount = sweepable_lamports(
        balance, ctx.settings.native_sweep_mode, ctx.settings.rent_exempt_minimum
    )
    if amount == 0:
        raise DepositoryError(ErrorCode.INSUFFICIENT_BALANCE, f"nothing to sweep at {source}")

    capability = authorize(derived, ctx.program_id)
    delegated = dataclasses.replace(ctx, granted=(capability,))
    await deposits.deposit_native(delegated, source, depositor, amount, id)

    event = SweepEvent(id=id, depositor=depositor, source=source, token=None, amount=amount)
    ctx.emit(event)
    logger.info(f"Swept {amount} lamports from {source}")
    return event


async def sweep_token(
    ctx: ExecutionContext,
    id: bytes,
    depositor: Pubkey,
    mint: Pubkey,
    token_program: Pubkey,
    payer: Optional[Pubkey] = None,
) -> SweepEvent:
    """Move the full token balance of (id, mint, depositor) into the vault.

    The emptied token account is closed and its rent goes to the depositor.
    `payer` funds the vault's token account if it does not exist yet.
    """
    derived = deposit_address(id, mint, depositor, ctx.program_id)
    source = derived.address

    account = await programs.find_associated_token_account(ctx.ledger, source, mint, token_program)
    amount = account.amount if account else 0
    if amount == 0:
        raise DepositoryError(ErrorCode.INSUFFICIENT_BALANCE, f"no {mint} to sweep at {source}")

    capability = authorize(derived, ctx.program_id)
    granted = (capability,)
    if payer is not None:
        granted += (ctx.signer(payer),)
    delegated = dataclasses.replace(ctx, granted=granted)
    await deposits.deposit_token(
        delegated, source, depositor, mint, amount, id, token_program, payer=payer
    )

    refund = await programs.close_token_account(ctx.ledger, capability, account, depositor)

    event = SweepEvent(id=id, depositor=depositor, source=source, token=mint, amount=amount)
    ctx.emit(event)
    logger.info(f"Swept {amount} of {mint} from {source}; refunded {refund} lamports to {depositor}")
    return event


async def sweep(
    ctx: ExecutionContext,
    id: bytes,
    token: Optional[Pubkey],
    depositor: Pubkey,
    token_program: Optional[Pubkey] = None,
    payer: Optional[Pubkey] = None,
) -> SweepEvent:
    """Sweep native value when `token` is None, else that token."""
    if token is None:
        return await sweep_native(ctx, id, depositor)
    if token_program is None:
        raise DepositoryError(ErrorCode.MISSING_TOKEN_ACCOUNTS, "token_program is required")
    return await sweep_token(ctx, id, depositor, token, token_program, payer)
