"""Deposit address lookup and simulated deposits."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator

from relay_depository.api.dependencies import (
    get_depository,
    parse_optional_pubkey,
    parse_order_id,
    parse_pubkey,
)
from relay_depository.config import get_settings
from relay_depository.constants import TOKEN_PROGRAM_ID
from relay_depository.depository import RelayDepository
from relay_depository.derivation import associated_token_address

router = APIRouter()


class DepositAddressResponse(BaseModel):
    id: str
    depositor: str
    token: Optional[str]
    deposit_address: str
    token_account: Optional[str] = None


class SimulateDepositRequest(BaseModel):
    """Fund a deposit address on the simulated chain."""

    id: str = Field(..., description="32-byte order id, hex")
    depositor: str = Field(..., description="Depositor identity, base58")
    amount: int = Field(..., gt=0, description="Amount in base units")
    token: Optional[str] = Field(None, description="Mint, omitted for native deposits")

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        parse_order_id(v)
        return v

    @field_validator("depositor")
    @classmethod
    def validate_depositor(cls, v: str) -> str:
        return str(parse_pubkey(v))

    @field_validator("token")
    @classmethod
    def validate_token(cls, v: Optional[str]) -> Optional[str]:
        return str(parse_pubkey(v)) if v else None


class SimulateDepositResponse(BaseModel):
    success: bool
    deposit_address: str
    balance: int
    message: str


@router.get("/deposit-address", response_model=DepositAddressResponse)
async def get_deposit_address(
    id: str = Query(..., description="32-byte order id, hex"),
    depositor: str = Query(..., description="Depositor identity, base58"),
    token: Optional[str] = Query(None, description="Mint, omitted for native"),
    token_program: Optional[str] = Query(None, description="Token program of the mint"),
    depository: RelayDepository = Depends(get_depository),
) -> DepositAddressResponse:
    """Derive the deposit address for an (id, token, depositor) triple."""
    try:
        order_id = parse_order_id(id)
        depositor_key = parse_pubkey(depositor)
        mint = parse_optional_pubkey(token)
        program = parse_optional_pubkey(token_program)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    address = depository.deposit_address(order_id, mint, depositor_key)
    token_account = None
    if mint is not None:
        token_account = str(associated_token_address(address, mint, program or TOKEN_PROGRAM_ID))

    return DepositAddressResponse(
        id=order_id.hex(),
        depositor=str(depositor_key),
        token=str(mint) if mint else None,
        deposit_address=str(address),
        token_account=token_account,
    )


@router.post("/deposits/simulate", response_model=SimulateDepositResponse)
async def simulate_deposit(
    payload: SimulateDepositRequest,
    depository: RelayDepository = Depends(get_depository),
) -> SimulateDepositResponse:
    """Credit a deposit address directly (development only)."""
    settings = get_settings()
    if settings.is_production:
        raise HTTPException(status_code=403, detail="Simulation disabled in production")

    order_id = parse_order_id(payload.id)
    depositor = parse_pubkey(payload.depositor)
    mint = parse_optional_pubkey(payload.token)
    address = depository.deposit_address(order_id, mint, depositor)

    if mint is None:
        balance = await depository.runtime.airdrop(address, payload.amount)
    else:
        await depository.runtime.mint_to(mint, address, payload.amount)
        balance = await depository.runtime.get_token_balance(address, mint) or 0

    return SimulateDepositResponse(
        success=True,
        deposit_address=str(address),
        balance=balance,
        message=f"Simulated deposit of {payload.amount} {payload.token or 'lamports'} to {address}",
    )
