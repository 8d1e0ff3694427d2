"""Owner-gated call into an allow-listed program as a deposit address.

Used to recover assets a deposit address holds in a form the sweep path
does not understand. The deposit address is the only account the callee
sees as a signer.
"""

import logging
from typing import Optional, Sequence

from solders.pubkey import Pubkey

from relay_depository.derivation import allowed_program_address, authorize, deposit_address
from relay_depository.errors import DepositoryError, ErrorCode, keys_equal, require_keys_eq
from relay_depository.protocol.events import ExecuteEvent
from relay_depository.runtime.host import ExecutionContext
from relay_depository.runtime.transaction import AccountMeta, Instruction
from relay_depository.services import vault

logger = logging.getLogger(__name__)


async def execute(
    ctx: ExecutionContext,
    owner: Pubkey,
    id: bytes,
    token: Optional[Pubkey],
    depositor: Pubkey,
    target_program: Pubkey,
    instruction_data: bytes,
    accounts: Sequence[AccountMeta] = (),
) -> ExecuteEvent:
    """Invoke `target_program` with the deposit address as delegated signer.

    Args:
        owner: Must be the configured owner and must have signed
        id, token, depositor: Seed tuple of the deposit address
        target_program: Callee; must be allow-listed and executable
        instruction_data: Opaque bytes forwarded to the callee
        accounts: Account references forwarded to the callee. Signer flags
            are cleared on every account except the deposit address.
    """
    config = await vault.load_config(ctx)
    ctx.signer(owner)
    require_keys_eq(owner, Pubkey.from_string(config.owner), ErrorCode.UNAUTHORIZED)

    entry = await ctx.ledger.get_allowed_program(
        allowed_program_address(target_program, ctx.program_id).address
    )
    if entry is None:
        raise DepositoryError(ErrorCode.PROGRAM_NOT_ALLOWED, str(target_program))

    program_account = await ctx.ledger.get_account(target_program)
    if program_account is None or not program_account.executable:
        raise DepositoryError(ErrorCode.PROGRAM_NOT_EXECUTABLE, str(target_program))

    derived = deposit_address(id, token, depositor, ctx.program_id)
    capability = authorize(derived, ctx.program_id)

    metas = tuple(
        AccountMeta(
            pubkey=meta.pubkey,
            is_signer=keys_equal(meta.pubkey, derived.address),
            is_writable=meta.is_writable,
        )
        for meta in accounts
    )
    await ctx.invoke(
        Instruction(program_id=target_program, data=bytes(instruction_data), accounts=metas),
        granted=(capability,),
    )

    event = ExecuteEvent(
        id=id,
        token=token,
        depositor=depositor,
        target_program=target_program,
        instruction_data=bytes(instruction_data),
    )
    ctx.emit(event)
    logger.info(f"Executed {target_program} as {derived.address}")
    return event
