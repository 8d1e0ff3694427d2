"""Address families used by the depository.

All derivations are reproducible by anyone from public inputs.
"""

from typing import Optional

from solders.pubkey import Pubkey

from relay_depository.constants import (
    ALLOWED_PROGRAM_SEED,
    ASSOCIATED_TOKEN_PROGRAM_ID,
    DEPOSIT_ADDRESS_SEED,
    DEPOSITORY_SEED,
    NATIVE_TOKEN_SEED,
    ORDER_ID_LENGTH,
    USED_REQUEST_SEED,
    VAULT_SEED,
)
from relay_depository.derivation.base import DerivedAddress, derive


def config_address(program_id: Pubkey) -> DerivedAddress:
    """Address of the single protocol configuration record."""
    return derive([DEPOSITORY_SEED], program_id)


def vault_address(program_id: Pubkey) -> DerivedAddress:
    """Address of the pooled vault (single global seed)."""
    return derive([VAULT_SEED], program_id)


def used_request_address(request_hash: bytes, program_id: Pubkey) -> DerivedAddress:
    """Address of the replay record for a transfer request hash."""
    if len(request_hash) != 32:
        raise ValueError(f"Request hash must be 32 bytes, got {len(request_hash)}")
    return derive([USED_REQUEST_SEED, request_hash], program_id)


def deposit_address(
    order_id: bytes,
    token: Optional[Pubkey],
    depositor: Pubkey,
    program_id: Pubkey,
) -> DerivedAddress:
    """Per-order, per-token, per-depositor holding address.

    Args:
        order_id: 32-byte order identifier
        token: Mint for token deposits, None for native
        depositor: Identity credited for the deposit

    Returns:
        DerivedAddress whose proof lets the program sweep the address
    """
    if len(order_id) != ORDER_ID_LENGTH:
        raise ValueError(f"Order id must be {ORDER_ID_LENGTH} bytes, got {len(order_id)}")
    token_seed = bytes(token) if token is not None else NATIVE_TOKEN_SEED
    return derive([DEPOSIT_ADDRESS_SEED, order_id, token_seed, bytes(depositor)], program_id)


def allowed_program_address(program: Pubkey, program_id: Pubkey) -> DerivedAddress:
    """Address of an allowlist entry for a callee program."""
    return derive([ALLOWED_PROGRAM_SEED, bytes(program)], program_id)


def associated_token_address(owner: Pubkey, mint: Pubkey, token_program: Pubkey) -> Pubkey:
    """Canonical token sub-account of an owner for a mint."""
    address, _ = Pubkey.find_program_address(
        [bytes(owner), bytes(token_program), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address
