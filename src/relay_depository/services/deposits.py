"""Inbound deposits into the vault.

The depositor argument is bookkeeping only: it is recorded in the emitted
event and never used for authorization. The sender must sign (or, during a
sweep, hold the deposit address's derived capability).
"""

import logging
from typing import Optional

from solders.pubkey import Pubkey

from relay_depository.constants import ORDER_ID_LENGTH
from relay_depository.derivation import associated_token_address
from relay_depository.errors import DepositoryError, ErrorCode, keys_equal, require
from relay_depository.ledger.models import Mint
from relay_depository.protocol.events import DepositEvent
from relay_depository.runtime import programs
from relay_depository.runtime.host import ExecutionContext
from relay_depository.services import vault

logger = logging.getLogger(__name__)


def _check_id(order_id: bytes) -> None:
    if len(order_id) != ORDER_ID_LENGTH:
        raise ValueError(f"deposit id must be {ORDER_ID_LENGTH} bytes, got {len(order_id)}")


async def resolve_mint(ctx: ExecutionContext, mint: Pubkey, token_program: Pubkey) -> Mint:
    """Mint account checked against the token program that must own it."""
    require(programs.is_accepted_token_program(token_program), ErrorCode.INVALID_TOKEN_PROGRAM)
    mint_row = await ctx.ledger.get_mint(mint)
    if mint_row is None or mint_row.token_program != str(token_program):
        raise DepositoryError(ErrorCode.INVALID_MINT, f"{mint} not owned by {token_program}")
    return mint_row


async def deposit_native(
    ctx: ExecutionContext,
    sender: Pubkey,
    depositor: Pubkey,
    amount: int,
    id: bytes,
) -> DepositEvent:
    """Move lamports from the sender into the vault."""
    _check_id(id)
    config = await vault.load_config(ctx)
    require(amount > 0, ErrorCode.INVALID_AMOUNT)

    await programs.system_transfer(
        ctx.ledger, ctx.signer(sender), sender, Pubkey.from_string(config.vault), amount
    )

    event = DepositEvent(depositor=depositor, token=None, amount=amount, id=id)
    ctx.emit(event)
    logger.info(f"Deposited {amount} lamports for {depositor} id={id.hex()[:16]}...")
    return event


async def deposit_token(
    ctx: ExecutionContext,
    sender: Pubkey,
    depositor: Pubkey,
    mint: Pubkey,
    amount: int,
    id: bytes,
    token_program: Pubkey,
    vault_token_account: Optional[Pubkey] = None,
    payer: Optional[Pubkey] = None,
) -> DepositEvent:
    """Move tokens from the sender's associated account into the vault's.

    The vault's token account is created on demand with rent paid by
    `payer` (the sender when omitted). The emitted amount is net of the
    mint's transfer fee.
    """
    _check_id(id)
    config = await vault.load_config(ctx)
    require(amount > 0, ErrorCode.INVALID_AMOUNT)
    authority = ctx.signer(sender)
    payer_authority = ctx.signer(payer) if payer is not None else authority

    mint_row = await resolve_mint(ctx, mint, token_program)

    source = await programs.find_associated_token_account(ctx.ledger, sender, mint, token_program)
    if source is None:
        raise DepositoryError(ErrorCode.MISSING_TOKEN_ACCOUNTS, f"{sender} has no {mint} account")

    expected_vault_account = associated_token_address(
        Pubkey.from_string(config.vault), mint, token_program
    )
    if vault_token_account is not None:
        require(
            keys_equal(vault_token_account, expected_vault_account),
            ErrorCode.INVALID_VAULT_TOKEN_ACCOUNT,
        )
    destination = await vault.ensure_token_account(ctx, config, mint_row, payer_authority)

    fee = await programs.token_transfer_checked(
        ctx.ledger, authority, mint_row, source, destination, amount, ctx.clock.epoch
    )

    event = DepositEvent(depositor=depositor, token=mint, amount=amount - fee, id=id)
    ctx.emit(event)
    logger.info(
        f"Deposited {amount} of {mint} for {depositor} (fee {fee}) id={id.hex()[:16]}..."
    )
    return event
