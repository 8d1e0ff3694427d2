"""Vault ledger: pooled custody and the vault's derived authority.

The vault holds native value directly and tokens in its associated token
account per mint. Only this module turns the vault derivation into a
signing capability, and it re-checks the stored address and bump first.
"""

import logging
from typing import Optional

from solders.pubkey import Pubkey

from relay_depository.derivation import (
    DerivedAddress,
    SigningCapability,
    authorize,
    config_address,
    vault_address,
)
from relay_depository.errors import DepositoryError, ErrorCode, keys_equal, require
from relay_depository.ledger.models import Mint, ProtocolConfig, TokenAccount
from relay_depository.runtime import programs
from relay_depository.runtime.host import ExecutionContext

logger = logging.getLogger(__name__)


async def load_config(ctx: ExecutionContext) -> ProtocolConfig:
    """The deployment config, or NotInitialized."""
    config = await ctx.ledger.get_config(config_address(ctx.program_id).address)
    if config is None:
        raise DepositoryError(ErrorCode.NOT_INITIALIZED)
    return config


def vault_derivation(ctx: ExecutionContext, config: ProtocolConfig) -> DerivedAddress:
    """Vault derivation checked against what initialize stored."""
    derived = vault_address(ctx.program_id)
    require(
        keys_equal(derived.address, Pubkey.from_string(config.vault))
        and derived.bump == config.vault_bump,
        ErrorCode.CONSTRAINT_SEEDS,
        "stored vault does not match its seeds",
    )
    return derived


def vault_authority(ctx: ExecutionContext, config: ProtocolConfig) -> SigningCapability:
    return authorize(vault_derivation(ctx, config), ctx.program_id)


def max_transferable(vault_lamports: int, reserve_floor: int) -> int:
    """Native amount the vault can release without breaching the reserve."""
    return max(vault_lamports - reserve_floor, 0)


async def native_balance(ctx: ExecutionContext, config: ProtocolConfig) -> int:
    return await ctx.ledger.get_lamports(Pubkey.from_string(config.vault))


async def token_account(
    ctx: ExecutionContext, config: ProtocolConfig, mint: Pubkey, token_program: Pubkey
) -> Optional[TokenAccount]:
    """The vault's associated token account for a mint, if it exists."""
    return await programs.find_associated_token_account(
        ctx.ledger, Pubkey.from_string(config.vault), mint, token_program
    )


async def ensure_token_account(
    ctx: ExecutionContext, config: ProtocolConfig, mint: Mint, payer: SigningCapability
) -> TokenAccount:
    """The vault's token account for a mint, created on demand by `payer`."""
    return await programs.create_associated_token_account(
        ctx.ledger, payer, Pubkey.from_string(config.vault), mint, ctx.settings.token_account_rent
    )


async def release_native(
    ctx: ExecutionContext, config: ProtocolConfig, recipient: Pubkey, amount: int
) -> None:
    """Debit the vault with its derived authority and credit `recipient`."""
    vault = Pubkey.from_string(config.vault)
    await programs.system_transfer(
        ctx.ledger, vault_authority(ctx, config), vault, recipient, amount
    )
    logger.info(f"Vault released {amount} lamports to {recipient}")


async def release_tokens(
    ctx: ExecutionContext,
    config: ProtocolConfig,
    mint: Mint,
    source: TokenAccount,
    destination: TokenAccount,
    amount: int,
) -> int:
    """Debit the vault's token account with its derived authority.

    Returns:
        Transfer fee withheld by the mint
    """
    fee = await programs.token_transfer_checked(
        ctx.ledger, vault_authority(ctx, config), mint, source, destination, amount, ctx.clock.epoch
    )
    logger.info(f"Vault released {amount} of {mint.address} to {destination.authority} (fee {fee})")
    return fee
