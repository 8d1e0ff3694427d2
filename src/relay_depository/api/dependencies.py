"""Shared request dependencies and input parsing."""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from solders.pubkey import Pubkey

from relay_depository.config import get_settings
from relay_depository.constants import ORDER_ID_LENGTH
from relay_depository.depository import RelayDepository


def get_depository(request: Request) -> RelayDepository:
    depository = getattr(request.app.state, "depository", None)
    if depository is None:
        raise HTTPException(status_code=503, detail="Depository not started")
    return depository


def get_relayer(depository: RelayDepository = Depends(get_depository)) -> Pubkey:
    """The server's own submitting identity.

    Callers never pick who signs; anything that spends lamports is charged here.
    """
    relayer = depository.runtime.settings.relayer_pubkey
    if relayer is None:
        raise HTTPException(status_code=503, detail="Relayer not configured")
    return relayer


async def require_admin_token(x_admin_token: str = Header(None)) -> bool:
    """Verify admin token from header.

    If ADMIN_TOKEN is not set, allows access outside production.
    """
    settings = get_settings()

    if not settings.admin_token:
        if settings.is_production:
            raise HTTPException(status_code=401, detail="Admin token not configured")
        return True

    if x_admin_token != settings.admin_token:
        raise HTTPException(status_code=401, detail="Invalid admin token")

    return True


def parse_pubkey(value: str) -> Pubkey:
    """Parse base58 text, raising ValueError on anything else."""
    try:
        return Pubkey.from_string(value.strip())
    except ValueError:
        raise ValueError(f"Invalid public key: {value}")


def parse_optional_pubkey(value: Optional[str]) -> Optional[Pubkey]:
    return parse_pubkey(value) if value else None


def parse_order_id(value: str) -> bytes:
    """Parse a hex order id of exactly 32 bytes."""
    try:
        raw = bytes.fromhex(value.removeprefix("0x"))
    except ValueError:
        raise ValueError("id must be hex")
    if len(raw) != ORDER_ID_LENGTH:
        raise ValueError(f"id must be {ORDER_ID_LENGTH} bytes")
    return raw


def parse_hex(value: str) -> bytes:
    try:
        return bytes.fromhex(value.removeprefix("0x"))
    except ValueError:
        raise ValueError("value must be hex")
