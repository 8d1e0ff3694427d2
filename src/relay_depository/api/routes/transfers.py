"""Relayer endpoints for allocator-signed transfer requests."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator
from solders.pubkey import Pubkey

from relay_depository.api.dependencies import (
    get_depository,
    get_relayer,
    parse_hex,
    parse_optional_pubkey,
    parse_pubkey,
)
from relay_depository.constants import ED25519_PROGRAM_ID
from relay_depository.depository import RelayDepository
from relay_depository.protocol.requests import TransferRequest
from relay_depository.runtime.transaction import Instruction

router = APIRouter()


class TransferRequestBody(BaseModel):
    recipient: str
    token: Optional[str] = None
    amount: int = Field(..., ge=0)
    nonce: int = Field(..., ge=0)
    expiration: int
    domain_separator: Optional[str] = Field(None, description="32-byte hex")

    @field_validator("recipient", "token")
    @classmethod
    def validate_key(cls, v: Optional[str]) -> Optional[str]:
        return str(parse_pubkey(v)) if v else None

    def to_request(self) -> TransferRequest:
        domain = parse_hex(self.domain_separator) if self.domain_separator else None
        return TransferRequest(
            recipient=parse_pubkey(self.recipient),
            token=parse_optional_pubkey(self.token),
            amount=self.amount,
            nonce=self.nonce,
            expiration=self.expiration,
            domain_separator=domain,
        )


class ExecuteTransferBody(BaseModel):
    """A signed request plus the accounts needed to execute it."""

    request: TransferRequestBody
    signature_instruction: Optional[str] = Field(
        None, description="Hex data of the ed25519 signature-check instruction"
    )
    recipient: Optional[str] = None
    mint: Optional[str] = None
    token_program: Optional[str] = None


class TransferResponse(BaseModel):
    success: bool
    request_hash: str
    used_request: str
    executor: str


class TransferStatusResponse(BaseModel):
    request_hash: str
    used_request: str
    used: bool


@router.post("/transfers", response_model=TransferResponse)
async def execute_transfer(
    body: ExecuteTransferBody,
    depository: RelayDepository = Depends(get_depository),
    relayer: Pubkey = Depends(get_relayer),
) -> TransferResponse:
    """Execute an allocator-signed request against the vault.

    Submitted as the configured relayer, which pays for the replay record and
    any recipient token account.
    """
    try:
        request = body.request.to_request()
        recipient = parse_optional_pubkey(body.recipient)
        mint = parse_optional_pubkey(body.mint)
        token_program = parse_optional_pubkey(body.token_program)
        signature = None
        if body.signature_instruction:
            signature = Instruction(
                program_id=ED25519_PROGRAM_ID,
                data=parse_hex(body.signature_instruction),
            )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    event = await depository.execute_transfer(
        request,
        signature,
        relayer,
        recipient=recipient,
        mint=mint,
        token_program=token_program,
    )
    return TransferResponse(
        success=True,
        request_hash=request.get_hash().hex(),
        used_request=str(event.id),
        executor=str(event.executor),
    )


@router.get("/transfers/{request_hash}", response_model=TransferStatusResponse)
async def get_transfer_status(
    request_hash: str,
    depository: RelayDepository = Depends(get_depository),
) -> TransferStatusResponse:
    try:
        raw = parse_hex(request_hash)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if len(raw) != 32:
        raise HTTPException(status_code=422, detail="request hash must be 32 bytes")

    return TransferStatusResponse(
        request_hash=raw.hex(),
        used_request=str(depository.used_request_address(raw)),
        used=await depository.is_request_used(raw),
    )
