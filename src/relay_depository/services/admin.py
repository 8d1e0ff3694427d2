"""Owner-gated deployment configuration."""

import logging
from typing import Optional

from solders.pubkey import Pubkey

from relay_depository.derivation import allowed_program_address, config_address, vault_address
from relay_depository.errors import DepositoryError, ErrorCode, require_keys_eq
from relay_depository.ledger.models import ProtocolConfig
from relay_depository.protocol.domain import compute_domain_separator
from relay_depository.runtime.host import ExecutionContext
from relay_depository.services import vault

logger = logging.getLogger(__name__)


def _domain_separator(ctx: ExecutionContext, chain_id: str) -> bytes:
    return compute_domain_separator(
        ctx.settings.protocol_name, ctx.settings.protocol_version, chain_id, ctx.program_id
    )


async def _owner_config(ctx: ExecutionContext, owner: Pubkey) -> ProtocolConfig:
    config = await vault.load_config(ctx)
    ctx.signer(owner)
    require_keys_eq(owner, Pubkey.from_string(config.owner), ErrorCode.UNAUTHORIZED)
    return config


async def initialize(
    ctx: ExecutionContext,
    owner: Pubkey,
    allocator: Pubkey,
    chain_id: Optional[str] = None,
) -> ProtocolConfig:
    """Create the deployment config. Only the bootstrap identity may call it."""
    ctx.signer(owner)
    require_keys_eq(owner, ctx.settings.bootstrap_owner_pubkey, ErrorCode.UNAUTHORIZED)

    address = config_address(ctx.program_id).address
    if await ctx.ledger.get_config(address) is not None:
        raise DepositoryError(ErrorCode.ALREADY_INITIALIZED)

    derived_vault = vault_address(ctx.program_id)
    config = await ctx.ledger.create_config(
        address=address,
        owner=owner,
        allocator=allocator,
        vault=derived_vault.address,
        vault_bump=derived_vault.bump,
        chain_id=chain_id,
        domain_separator=_domain_separator(ctx, chain_id) if chain_id else None,
    )
    logger.info(f"Initialized depository owner={owner} allocator={allocator} vault={derived_vault.address}")
    return config


async def set_allocator(ctx: ExecutionContext, owner: Pubkey, new_allocator: Pubkey) -> None:
    config = await _owner_config(ctx, owner)
    previous = config.allocator
    config.allocator = str(new_allocator)
    await ctx.ledger.session.flush()
    logger.info(f"Allocator changed {previous} -> {new_allocator}")


async def set_owner(ctx: ExecutionContext, owner: Pubkey, new_owner: Pubkey) -> None:
    config = await _owner_config(ctx, owner)
    config.owner = str(new_owner)
    await ctx.ledger.session.flush()
    logger.info(f"Owner changed {owner} -> {new_owner}")


async def migrate_domain_separator(ctx: ExecutionContext, owner: Pubkey, chain_id: str) -> bytes:
    """One-time activation of the domain separator for older deployments."""
    config = await _owner_config(ctx, owner)
    if config.domain_separator is not None:
        raise DepositoryError(ErrorCode.DOMAIN_SEPARATOR_ALREADY_SET)

    separator = _domain_separator(ctx, chain_id)
    config.chain_id = chain_id
    config.domain_separator = separator.hex()
    await ctx.ledger.session.flush()
    logger.info(f"Domain separator set for chain {chain_id}")
    return separator


async def add_allowed_program(ctx: ExecutionContext, owner: Pubkey, program: Pubkey) -> bool:
    """Allow-list a program. Returns False if it was already listed."""
    await _owner_config(ctx, owner)
    entry_address = allowed_program_address(program, ctx.program_id).address
    _, created = await ctx.ledger.add_allowed_program(entry_address, program, owner)
    if created:
        logger.info(f"Allowed program {program}")
    return created


async def remove_allowed_program(ctx: ExecutionContext, owner: Pubkey, program: Pubkey) -> None:
    await _owner_config(ctx, owner)
    entry = await ctx.ledger.get_allowed_program(
        allowed_program_address(program, ctx.program_id).address
    )
    if entry is None:
        raise DepositoryError(ErrorCode.PROGRAM_NOT_ALLOWED, str(program))
    await ctx.ledger.remove_allowed_program(entry)
    logger.info(f"Removed program {program} from allowlist")
