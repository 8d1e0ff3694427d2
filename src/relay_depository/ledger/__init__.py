"""Ledger module: persisted account state of the simulated chain."""

from relay_depository.ledger.database import close_db, get_db, init_db
from relay_depository.ledger.models import (
    Account,
    AllowedProgram,
    EventLog,
    Mint,
    ProtocolConfig,
    TokenAccount,
    UsedRequest,
)
from relay_depository.ledger.repository import LedgerRepository

__all__ = [
    # Models
    "Account",
    "AllowedProgram",
    "EventLog",
    "Mint",
    "ProtocolConfig",
    "TokenAccount",
    "UsedRequest",
    # Database
    "close_db",
    "get_db",
    "init_db",
    "LedgerRepository",
]
