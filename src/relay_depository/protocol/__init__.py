"""Protocol value objects: transfer requests, domain separator and events."""

from relay_depository.protocol.domain import DOMAIN_TYPEHASH, compute_domain_separator
from relay_depository.protocol.events import (
    DepositEvent,
    Event,
    EventType,
    ExecuteEvent,
    SweepEvent,
    TransferExecutedEvent,
)
from relay_depository.protocol.requests import (
    NativeTarget,
    RequestDecodeError,
    TokenTarget,
    TransferRequest,
    TransferTarget,
)

__all__ = [
    "DOMAIN_TYPEHASH",
    "compute_domain_separator",
    "DepositEvent",
    "Event",
    "EventType",
    "ExecuteEvent",
    "SweepEvent",
    "TransferExecutedEvent",
    "NativeTarget",
    "RequestDecodeError",
    "TokenTarget",
    "TransferRequest",
    "TransferTarget",
]
