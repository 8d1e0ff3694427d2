"""Records emitted by successful operations."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from solders.pubkey import Pubkey

from relay_depository.protocol.requests import TransferRequest


class EventType(str, Enum):
    """Kind of emitted record."""

    DEPOSIT = "deposit"
    TRANSFER_EXECUTED = "transfer_executed"
    SWEEP = "sweep"
    EXECUTE = "execute"


def _key(value: Optional[Pubkey]) -> Optional[str]:
    return str(value) if value is not None else None


@dataclass(frozen=True)
class DepositEvent:
    depositor: Pubkey
    token: Optional[Pubkey]
    amount: int  # net of transfer fee
    id: bytes

    event_type = EventType.DEPOSIT

    def to_dict(self) -> dict:
        return {
            "depositor": str(self.depositor),
            "token": _key(self.token),
            "amount": self.amount,
            "id": self.id.hex(),
        }


@dataclass(frozen=True)
class TransferExecutedEvent:
    """A vault release. `id` is the used-request record address."""

    request: TransferRequest
    executor: Pubkey
    id: Pubkey

    event_type = EventType.TRANSFER_EXECUTED

    def to_dict(self) -> dict:
        return {
            "request": self.request.to_dict(),
            "request_hash": self.request.get_hash().hex(),
            "executor": str(self.executor),
            "id": str(self.id),
        }


@dataclass(frozen=True)
class SweepEvent:
    id: bytes
    depositor: Pubkey
    source: Pubkey
    token: Optional[Pubkey]
    amount: int

    event_type = EventType.SWEEP

    def to_dict(self) -> dict:
        return {
            "id": self.id.hex(),
            "depositor": str(self.depositor),
            "source": str(self.source),
            "token": _key(self.token),
            "amount": self.amount,
        }


@dataclass(frozen=True)
class ExecuteEvent:
    id: bytes
    token: Optional[Pubkey]
    depositor: Pubkey
    target_program: Pubkey
    instruction_data: bytes

    event_type = EventType.EXECUTE

    def to_dict(self) -> dict:
        return {
            "id": self.id.hex(),
            "token": _key(self.token),
            "depositor": str(self.depositor),
            "target_program": str(self.target_program),
            "instruction_data": self.instruction_data.hex(),
        }


Event = Union[DepositEvent, TransferExecutedEvent, SweepEvent, ExecuteEvent]
