"""Protocol-owned address derivation.

Addresses here are derived from a seed tuple and a program id so that the
result falls off the ed25519 curve: no private key exists for them. The only
way to move value out of such an address is for the owning program to present
the seed tuple and bump again (a DerivationProof), which the runtime turns
into a SigningCapability.

Security: a SigningCapability is never built from secret material. It is a
constructive proof checked at the moment it is issued.
"""

import logging
from dataclasses import dataclass
from typing import Sequence

from solders.pubkey import Pubkey

from relay_depository.errors import DepositoryError, ErrorCode, keys_equal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DerivationProof:
    """Seed tuple plus the canonical bump that reproduces an address."""

    seeds: tuple[bytes, ...]
    bump: int
    program_id: Pubkey


@dataclass(frozen=True)
class DerivedAddress:
    """A derived address and the proof that produced it."""

    address: Pubkey
    proof: DerivationProof

    @property
    def bump(self) -> int:
        return self.proof.bump


@dataclass(frozen=True)
class SigningCapability:
    """Authority to debit one address inside the current unit of work.

    Attributes:
        address: The account this capability may move value out of
        derived: True when issued from a DerivationProof, False for a
            transaction signer verified by the host
    """

    address: Pubkey
    derived: bool

    @classmethod
    def external(cls, signer: Pubkey) -> "SigningCapability":
        """Capability for a keypair that signed the unit of work.

        Derived addresses are off-curve and can never sign a transaction,
        so an off-curve signer is rejected here.
        """
        if not signer.is_on_curve():
            raise DepositoryError(ErrorCode.UNAUTHORIZED, f"{signer} cannot be an external signer")
        return cls(address=signer, derived=False)

    def covers(self, address: Pubkey) -> bool:
        return keys_equal(self.address, address)


def derive(seeds: Sequence[bytes], program_id: Pubkey) -> DerivedAddress:
    """Derive the canonical program address for a seed tuple.

    Args:
        seeds: Variable seed components (each at most 32 bytes)
        program_id: Program that owns the derivation

    Returns:
        DerivedAddress with the address and its proof
    """
    seed_tuple = tuple(bytes(seed) for seed in seeds)
    address, bump = Pubkey.find_program_address(list(seed_tuple), program_id)
    return DerivedAddress(
        address=address,
        proof=DerivationProof(seeds=seed_tuple, bump=bump, program_id=program_id),
    )


def verify_derivation(proof: DerivationProof, expected: Pubkey) -> None:
    """Check that a proof reproduces the expected stored address.

    Raises:
        DepositoryError(ConstraintSeeds): on any mismatch
    """
    recomputed = derive(proof.seeds, proof.program_id)
    if recomputed.bump != proof.bump or not keys_equal(recomputed.address, expected):
        logger.warning(f"Derivation proof does not reproduce {expected}")
        raise DepositoryError(ErrorCode.CONSTRAINT_SEEDS, str(expected))


def authorize(derived: DerivedAddress, invoking_program: Pubkey) -> SigningCapability:
    """Turn a derivation proof into a signing capability.

    Only the program that owns the derivation may sign for the address.
    """
    if not keys_equal(derived.proof.program_id, invoking_program):
        raise DepositoryError(
            ErrorCode.UNAUTHORIZED,
            f"{invoking_program} cannot sign for addresses of {derived.proof.program_id}",
        )
    verify_derivation(derived.proof, derived.address)
    return SigningCapability(address=derived.address, derived=True)
