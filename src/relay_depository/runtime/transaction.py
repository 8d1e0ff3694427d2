"""Units of work submitted to the runtime."""

import hashlib
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from solders.pubkey import Pubkey


@dataclass(frozen=True)
class AccountMeta:
    pubkey: Pubkey
    is_signer: bool = False
    is_writable: bool = False


@dataclass(frozen=True)
class Instruction:
    """Raw instruction: target program, account references and data bytes."""

    program_id: Pubkey
    data: bytes = b""
    accounts: tuple[AccountMeta, ...] = ()


def instruction_discriminator(name: str) -> bytes:
    """First 8 bytes of sha256("global:<name>")."""
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


@dataclass(frozen=True, eq=False)
class ProgramInstruction(Instruction):
    """Instruction for a program whose handler runs in-process.

    `name` selects the handler method and `args` carries its decoded
    arguments. `data` starts with the discriminator of `name`.
    """

    name: str = ""
    args: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        program_id: Pubkey,
        name: str,
        args: Optional[dict[str, Any]] = None,
        accounts: tuple[AccountMeta, ...] = (),
        payload: bytes = b"",
    ) -> "ProgramInstruction":
        return cls(
            program_id=program_id,
            data=instruction_discriminator(name) + payload,
            accounts=accounts,
            name=name,
            args=dict(args or {}),
        )


@dataclass(frozen=True)
class Transaction:
    """An all-or-nothing unit of work.

    Attributes:
        instructions: Executed in order; ed25519 checks run before any of them
        signers: Keypairs that signed the unit of work
    """

    instructions: tuple[Instruction, ...]
    signers: tuple[Pubkey, ...] = ()

    def writable_accounts(self) -> list[Pubkey]:
        """Distinct writable accounts in a stable lock order."""
        seen: dict[str, Pubkey] = {}
        for instruction in self.instructions:
            for meta in instruction.accounts:
                if meta.is_writable:
                    seen[str(meta.pubkey)] = meta.pubkey
        return [seen[key] for key in sorted(seen)]


class InstructionsSysvar:
    """Read-only view of the running transaction's instructions."""

    def __init__(self, instructions: tuple[Instruction, ...], current_index: int):
        self._instructions = instructions
        self._current_index = current_index

    @property
    def current_index(self) -> int:
        return self._current_index

    def __len__(self) -> int:
        return len(self._instructions)

    def previous(self) -> Optional[Instruction]:
        """The instruction immediately before the current one, if any."""
        if self._current_index == 0:
            return None
        return self._instructions[self._current_index - 1]


@dataclass(frozen=True)
class Clock:
    """Trusted time as seen by programs."""

    unix_timestamp: int
    epoch: int


class SystemClock:
    """Wall clock with a fixed epoch length."""

    def __init__(self, epoch_duration_seconds: int):
        self.epoch_duration_seconds = epoch_duration_seconds

    def now(self) -> Clock:
        ts = int(time.time())
        return Clock(unix_timestamp=ts, epoch=ts // self.epoch_duration_seconds)


class FixedClock:
    """Settable clock for tests and simulations."""

    def __init__(self, unix_timestamp: int, epoch: int = 0):
        self.unix_timestamp = unix_timestamp
        self.epoch = epoch

    def now(self) -> Clock:
        return Clock(unix_timestamp=self.unix_timestamp, epoch=self.epoch)

    def advance(self, seconds: int) -> None:
        self.unix_timestamp += seconds
