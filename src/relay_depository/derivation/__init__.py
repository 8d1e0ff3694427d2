"""Deterministic, keyless address derivation."""

from relay_depository.derivation.addresses import (
    allowed_program_address,
    associated_token_address,
    config_address,
    deposit_address,
    used_request_address,
    vault_address,
)
from relay_depository.derivation.base import (
    DerivationProof,
    DerivedAddress,
    SigningCapability,
    authorize,
    derive,
    verify_derivation,
)

__all__ = [
    "DerivationProof",
    "DerivedAddress",
    "SigningCapability",
    "authorize",
    "derive",
    "verify_derivation",
    "allowed_program_address",
    "associated_token_address",
    "config_address",
    "deposit_address",
    "used_request_address",
    "vault_address",
]
