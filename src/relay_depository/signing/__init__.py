"""Allocator signatures: client-side signing and program-side checks."""

from relay_depository.signing.base import (
    AllocatorSigner,
    KeyNotFoundError,
    SignedRequest,
    SignerType,
    SigningError,
)
from relay_depository.signing.local import LocalAllocatorSigner
from relay_depository.signing.precompile import verify_precompiles
from relay_depository.signing.verifier import SignatureVerifier

__all__ = [
    "AllocatorSigner",
    "KeyNotFoundError",
    "LocalAllocatorSigner",
    "SignatureVerifier",
    "SignedRequest",
    "SignerType",
    "SigningError",
    "verify_precompiles",
]
