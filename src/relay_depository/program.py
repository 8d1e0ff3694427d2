"""Instruction dispatch for the depository program."""

import logging

from relay_depository.errors import HostError
from relay_depository.runtime.host import ExecutionContext
from relay_depository.runtime.transaction import Instruction, ProgramInstruction
from relay_depository.services import admin, deposits, execute, sweeper, transfers

logger = logging.getLogger(__name__)

HANDLERS = {
    "initialize": admin.initialize,
    "set_allocator": admin.set_allocator,
    "set_owner": admin.set_owner,
    "migrate_domain_separator": admin.migrate_domain_separator,
    "add_allowed_program": admin.add_allowed_program,
    "remove_allowed_program": admin.remove_allowed_program,
    "deposit_native": deposits.deposit_native,
    "deposit_token": deposits.deposit_token,
    "execute_transfer": transfers.execute_transfer,
    "sweep": sweeper.sweep,
    "sweep_native": sweeper.sweep_native,
    "sweep_token": sweeper.sweep_token,
    "execute": execute.execute,
}


async def process_instruction(ctx: ExecutionContext, instruction: Instruction) -> None:
    """Route a program instruction to its handler."""
    if not isinstance(instruction, ProgramInstruction):
        raise HostError("depository instructions must be built with ProgramInstruction.build")

    handler = HANDLERS.get(instruction.name)
    if handler is None:
        raise HostError(f"Unknown depository instruction: {instruction.name}")

    logger.debug(f"Dispatching {instruction.name}")
    await handler(ctx, **instruction.args)
