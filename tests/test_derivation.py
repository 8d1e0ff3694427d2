"""Tests for protocol-owned address derivation."""

import pytest
from solders.pubkey import Pubkey

from relay_depository.constants import TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID
from relay_depository.derivation import (
    DerivationProof,
    SigningCapability,
    associated_token_address,
    authorize,
    config_address,
    deposit_address,
    derive,
    used_request_address,
    vault_address,
    verify_derivation,
)
from relay_depository.errors import DepositoryError, ErrorCode

from conftest import signer_key

PROGRAM = Pubkey.from_string("99vQwtBwYtrqqD9YSXbdum3KBdxPAVxYTaQ3cfnJSrN2")
OTHER_PROGRAM = Pubkey.new_unique()


class TestDeriveAddresses:
    """Address families are reproducible and off-curve."""

    def test_vault_is_deterministic(self):
        assert vault_address(PROGRAM).address == vault_address(PROGRAM).address
        assert vault_address(PROGRAM).address != vault_address(OTHER_PROGRAM).address

    def test_derived_addresses_are_off_curve(self):
        depositor = signer_key()
        addresses = [
            vault_address(PROGRAM).address,
            config_address(PROGRAM).address,
            deposit_address(bytes(32), None, depositor, PROGRAM).address,
            used_request_address(bytes(32), PROGRAM).address,
        ]
        for address in addresses:
            assert not address.is_on_curve()

    def test_deposit_address_depends_on_every_seed(self):
        depositor = signer_key()
        mint = Pubkey.new_unique()
        base = deposit_address(bytes(32), None, depositor, PROGRAM).address

        assert deposit_address(bytes([1]) * 32, None, depositor, PROGRAM).address != base
        assert deposit_address(bytes(32), mint, depositor, PROGRAM).address != base
        assert deposit_address(bytes(32), None, signer_key(), PROGRAM).address != base

    def test_native_uses_zero_token_seed(self):
        depositor = signer_key()
        native = deposit_address(bytes(32), None, depositor, PROGRAM)
        assert native.proof.seeds[2] == bytes(32)

    def test_order_id_length_enforced(self):
        with pytest.raises(ValueError):
            deposit_address(b"short", None, signer_key(), PROGRAM)

    def test_used_request_needs_32_byte_hash(self):
        with pytest.raises(ValueError):
            used_request_address(b"\x00" * 31, PROGRAM)

    def test_associated_token_address_depends_on_program(self):
        owner = signer_key()
        mint = Pubkey.new_unique()
        classic = associated_token_address(owner, mint, TOKEN_PROGRAM_ID)
        extended = associated_token_address(owner, mint, TOKEN_2022_PROGRAM_ID)
        assert classic != extended


class TestDerivationProofs:
    """Proofs are re-checked and bound to their owning program."""

    def test_verify_matching_proof(self):
        derived = derive([b"vault"], PROGRAM)
        verify_derivation(derived.proof, derived.address)

    def test_wrong_bump_rejected(self):
        derived = derive([b"vault"], PROGRAM)
        forged = DerivationProof(
            seeds=derived.proof.seeds,
            bump=(derived.bump - 1) % 256,
            program_id=PROGRAM,
        )
        with pytest.raises(DepositoryError) as exc_info:
            verify_derivation(forged, derived.address)
        assert exc_info.value.code == ErrorCode.CONSTRAINT_SEEDS

    def test_wrong_expected_address_rejected(self):
        derived = derive([b"vault"], PROGRAM)
        other = derive([b"other"], PROGRAM)
        with pytest.raises(DepositoryError) as exc_info:
            verify_derivation(derived.proof, other.address)
        assert exc_info.value.code == ErrorCode.CONSTRAINT_SEEDS

    def test_authorize_issues_derived_capability(self):
        derived = vault_address(PROGRAM)
        capability = authorize(derived, PROGRAM)
        assert capability.derived
        assert capability.covers(derived.address)
        assert not capability.covers(Pubkey.new_unique())

    def test_authorize_rejects_foreign_program(self):
        derived = vault_address(PROGRAM)
        with pytest.raises(DepositoryError) as exc_info:
            authorize(derived, OTHER_PROGRAM)
        assert exc_info.value.code == ErrorCode.UNAUTHORIZED


class TestSigningCapability:
    def test_external_requires_on_curve_key(self):
        key = signer_key()
        capability = SigningCapability.external(key)
        assert not capability.derived
        assert capability.covers(key)

    def test_derived_address_cannot_be_external_signer(self):
        with pytest.raises(DepositoryError) as exc_info:
            SigningCapability.external(vault_address(PROGRAM).address)
        assert exc_info.value.code == ErrorCode.UNAUTHORIZED
