"""Admin API endpoints (token-protected).

Mutating endpoints submit as the configured owner recorded in the
deployment config.
"""

import json
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from solders.pubkey import Pubkey

from relay_depository.api.dependencies import (
    get_depository,
    parse_pubkey,
    require_admin_token,
)
from relay_depository.depository import RelayDepository
from relay_depository.protocol.events import EventType

router = APIRouter(prefix="/admin", tags=["admin"])


class EventInfo(BaseModel):
    id: int
    event_type: str
    payload: dict
    created_at: Optional[str]


class AllowlistRequest(BaseModel):
    program: str


class AllowlistResponse(BaseModel):
    programs: list[str]


class AllocatorRequest(BaseModel):
    allocator: str


async def _owner(depository: RelayDepository) -> Pubkey:
    config = await depository.get_config()
    if config is None:
        raise HTTPException(status_code=404, detail="Depository not initialized")
    return Pubkey.from_string(config.owner)


def _parse_key(value: str) -> Pubkey:
    try:
        return parse_pubkey(value)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/events", response_model=list[EventInfo])
async def list_events(
    event_type: Optional[EventType] = None,
    limit: int = 100,
    depository: RelayDepository = Depends(get_depository),
    _: bool = Depends(require_admin_token),
) -> list[EventInfo]:
    """Most recent events, newest first."""
    entries = await depository.list_events(event_type, limit)
    return [
        EventInfo(
            id=entry.id,
            event_type=entry.event_type,
            payload=json.loads(entry.payload),
            created_at=entry.created_at.isoformat() if entry.created_at else None,
        )
        for entry in entries
    ]


@router.get("/allowlist", response_model=AllowlistResponse)
async def get_allowlist(
    depository: RelayDepository = Depends(get_depository),
    _: bool = Depends(require_admin_token),
) -> AllowlistResponse:
    programs = await depository.list_allowed_programs()
    return AllowlistResponse(programs=[str(p) for p in programs])


@router.post("/allowlist", response_model=AllowlistResponse)
async def add_to_allowlist(
    request: AllowlistRequest,
    depository: RelayDepository = Depends(get_depository),
    _: bool = Depends(require_admin_token),
) -> AllowlistResponse:
    """Allow a program for the whitelisted execute path. Idempotent."""
    program = _parse_key(request.program)
    await depository.add_allowed_program(await _owner(depository), program)
    programs = await depository.list_allowed_programs()
    return AllowlistResponse(programs=[str(p) for p in programs])


@router.delete("/allowlist/{program}", response_model=AllowlistResponse)
async def remove_from_allowlist(
    program: str,
    depository: RelayDepository = Depends(get_depository),
    _: bool = Depends(require_admin_token),
) -> AllowlistResponse:
    await depository.remove_allowed_program(await _owner(depository), _parse_key(program))
    programs = await depository.list_allowed_programs()
    return AllowlistResponse(programs=[str(p) for p in programs])


@router.post("/allocator")
async def rotate_allocator(
    request: AllocatorRequest,
    depository: RelayDepository = Depends(get_depository),
    _: bool = Depends(require_admin_token),
) -> dict:
    """Replace the allocator key. Requests signed by the old key stop verifying."""
    allocator = _parse_key(request.allocator)
    await depository.set_allocator(await _owner(depository), allocator)
    return {"success": True, "allocator": str(allocator)}
