"""Deployment config and vault balance endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from relay_depository.api.dependencies import get_depository, parse_pubkey
from relay_depository.depository import RelayDepository
from relay_depository.services.vault import max_transferable

router = APIRouter()


class ConfigResponse(BaseModel):
    """Public view of the deployment config."""

    program_id: str
    owner: str
    allocator: str
    vault: str
    vault_bump: int
    chain_id: Optional[str]
    domain_separator: Optional[str]


class VaultResponse(BaseModel):
    vault: str
    lamports: int
    transferable: int
    mint: Optional[str] = None
    token_balance: Optional[int] = None


@router.get("/config", response_model=ConfigResponse)
async def get_config(depository: RelayDepository = Depends(get_depository)) -> ConfigResponse:
    config = await depository.get_config()
    if config is None:
        raise HTTPException(status_code=404, detail="Depository not initialized")
    return ConfigResponse(
        program_id=str(depository.program_id),
        owner=config.owner,
        allocator=config.allocator,
        vault=config.vault,
        vault_bump=config.vault_bump,
        chain_id=config.chain_id,
        domain_separator=config.domain_separator,
    )


@router.get("/vault", response_model=VaultResponse)
async def get_vault(
    mint: Optional[str] = Query(None, description="Token mint to report"),
    depository: RelayDepository = Depends(get_depository),
) -> VaultResponse:
    """Vault native balance and, optionally, one token balance."""
    lamports = await depository.vault_balance()
    reserve = depository.runtime.settings.rent_exempt_minimum
    response = VaultResponse(
        vault=str(depository.vault_address),
        lamports=lamports,
        transferable=max_transferable(lamports, reserve),
    )
    if mint:
        try:
            mint_key = parse_pubkey(mint)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        response.mint = str(mint_key)
        response.token_balance = await depository.vault_token_balance(mint_key)
    return response
