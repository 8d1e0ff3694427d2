"""Deployment domain separator.

The separator binds protocol name, version, chain and program identity so a
request signed for one deployment cannot be replayed against another.
"""

import hashlib

from solders.pubkey import Pubkey

DOMAIN_TYPEHASH = hashlib.sha256(
    b"RelayDepositoryDomain(string name,string version,string chainId,bytes32 verifyingProgram)"
).digest()


def _sha(value: str) -> bytes:
    return hashlib.sha256(value.encode()).digest()


def compute_domain_separator(name: str, version: str, chain_id: str, program_id: Pubkey) -> bytes:
    """Compute the 32-byte domain separator for a deployment."""
    if not chain_id:
        raise ValueError("chain_id is required for a domain separator")
    return hashlib.sha256(
        DOMAIN_TYPEHASH + _sha(name) + _sha(version) + _sha(chain_id) + bytes(program_id)
    ).digest()
