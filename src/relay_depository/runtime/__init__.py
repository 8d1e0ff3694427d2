"""Simulated host runtime: account store, locks, precompile and dispatch."""

from relay_depository.runtime.transaction import (
    AccountMeta,
    Clock,
    FixedClock,
    Instruction,
    InstructionsSysvar,
    ProgramInstruction,
    SystemClock,
    Transaction,
    instruction_discriminator,
)
from relay_depository.runtime.locks import AccountLocks
from relay_depository.runtime.host import ExecutionContext, ProgramHandler, Runtime

__all__ = [
    "AccountLocks",
    "AccountMeta",
    "Clock",
    "ExecutionContext",
    "FixedClock",
    "Instruction",
    "InstructionsSysvar",
    "ProgramHandler",
    "ProgramInstruction",
    "Runtime",
    "SystemClock",
    "Transaction",
    "instruction_discriminator",
]
