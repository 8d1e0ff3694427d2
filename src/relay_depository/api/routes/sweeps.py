"""Sweep endpoint: move a deposit address balance into the vault."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from relay_depository.api.dependencies import (
    get_depository,
    parse_optional_pubkey,
    parse_order_id,
    parse_pubkey,
)
from relay_depository.constants import TOKEN_PROGRAM_ID
from relay_depository.depository import RelayDepository

router = APIRouter()


class SweepBody(BaseModel):
    id: str
    depositor: str
    token: Optional[str] = None
    token_program: Optional[str] = None


class SweepResponse(BaseModel):
    success: bool
    source: str
    token: Optional[str]
    amount: int


@router.post("/sweeps", response_model=SweepResponse)
async def sweep(
    body: SweepBody,
    depository: RelayDepository = Depends(get_depository),
) -> SweepResponse:
    """Sweep a deposit address. Anyone may trigger it.

    A missing vault token account is paid for by the configured relayer.
    """
    try:
        order_id = parse_order_id(body.id)
        depositor = parse_pubkey(body.depositor)
        token = parse_optional_pubkey(body.token)
        token_program = parse_optional_pubkey(body.token_program) or TOKEN_PROGRAM_ID
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    payer = depository.runtime.settings.relayer_pubkey
    event = await depository.sweep(order_id, token, depositor, token_program, payer)
    return SweepResponse(
        success=True,
        source=str(event.source),
        token=str(event.token) if event.token else None,
        amount=event.amount,
    )
