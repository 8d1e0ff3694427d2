"""Tests for the transfer request wire format and domain separator."""

import hashlib
import random
import struct

import pytest
from solders.pubkey import Pubkey

from relay_depository.protocol.domain import compute_domain_separator
from relay_depository.protocol.requests import (
    NativeTarget,
    RequestDecodeError,
    TokenTarget,
    TransferRequest,
)

RECIPIENT = Pubkey.new_unique()
MINT = Pubkey.new_unique()
PROGRAM = Pubkey.new_unique()


def _request(**overrides) -> TransferRequest:
    fields = {
        "recipient": RECIPIENT,
        "token": None,
        "amount": 400,
        "nonce": 1,
        "expiration": 1_700_003_600,
    }
    fields.update(overrides)
    return TransferRequest(**fields)


class TestSerialization:
    """Byte layout of serialized requests."""

    def test_native_without_domain_layout(self):
        request = _request()
        data = request.serialize()

        assert len(data) == 1 + 32 + 1 + 24
        assert data[0] == 0
        assert data[1:33] == bytes(RECIPIENT)
        assert data[33] == 0
        assert struct.unpack("<QQq", data[34:]) == (400, 1, 1_700_003_600)

    def test_token_with_domain_layout(self):
        domain = bytes(range(32))
        request = _request(token=MINT, domain_separator=domain)
        data = request.serialize()

        assert len(data) == 33 + 32 + 33 + 24
        assert data[0] == 1
        assert data[1:33] == domain
        assert data[33:65] == bytes(RECIPIENT)
        assert data[65] == 1
        assert data[66:98] == bytes(MINT)

    def test_hash_is_sha256_of_serialized_bytes(self):
        request = _request(token=MINT)
        assert request.get_hash() == hashlib.sha256(request.serialize()).digest()

    @pytest.mark.parametrize("with_token", [False, True])
    @pytest.mark.parametrize("with_domain", [False, True])
    def test_round_trip_preserves_hash(self, with_domain, with_token):
        rng = random.Random(f"{with_domain}-{with_token}")
        edges = [0, 1, 2**63 - 1, 2**63, 2**64 - 1]
        for _ in range(50):
            request = TransferRequest(
                recipient=Pubkey(rng.randbytes(32)),
                token=Pubkey(rng.randbytes(32)) if with_token else None,
                amount=rng.choice(edges + [rng.randrange(2**64)]),
                nonce=rng.choice(edges + [rng.randrange(2**64)]),
                expiration=rng.choice([-(2**63), -1, 0, 2**63 - 1, rng.randrange(-(2**63), 2**63)]),
                domain_separator=rng.randbytes(32) if with_domain else None,
            )
            data = request.serialize()
            decoded = TransferRequest.deserialize(data)

            assert decoded == request
            assert decoded.serialize() == data
            assert decoded.get_hash() == request.get_hash()

    def test_nonce_changes_identity(self):
        assert _request(nonce=1).get_hash() != _request(nonce=2).get_hash()


class TestDeserialization:
    """Decoding rejects anything that is not exactly one request."""

    def test_trailing_bytes_rejected(self):
        with pytest.raises(RequestDecodeError):
            TransferRequest.deserialize(_request().serialize() + b"\x00")

    def test_truncated_rejected(self):
        with pytest.raises(RequestDecodeError):
            TransferRequest.deserialize(_request().serialize()[:-1])

    def test_bad_option_tag_rejected(self):
        data = bytearray(_request().serialize())
        data[0] = 2
        with pytest.raises(RequestDecodeError):
            TransferRequest.deserialize(bytes(data))

    def test_decode_error_is_value_error(self):
        with pytest.raises(ValueError):
            TransferRequest.deserialize(b"")


class TestValidation:
    def test_amount_out_of_range(self):
        with pytest.raises(ValueError):
            _request(amount=-1)
        with pytest.raises(ValueError):
            _request(amount=2**64)

    def test_expiration_out_of_range(self):
        with pytest.raises(ValueError):
            _request(expiration=2**63)

    def test_domain_separator_length(self):
        with pytest.raises(ValueError):
            _request(domain_separator=b"\x00" * 31)


class TestTarget:
    def test_native_target(self):
        assert isinstance(_request().target, NativeTarget)

    def test_token_target(self):
        target = _request(token=MINT).target
        assert isinstance(target, TokenTarget)
        assert target.mint == MINT

    def test_to_dict(self):
        data = _request(token=MINT).to_dict()
        assert data["token"] == str(MINT)
        assert data["recipient"] == str(RECIPIENT)
        assert data["domain_separator"] is None


class TestDomainSeparator:
    def test_deterministic_and_32_bytes(self):
        first = compute_domain_separator("RelayDepository", "1", "solana-mainnet", PROGRAM)
        second = compute_domain_separator("RelayDepository", "1", "solana-mainnet", PROGRAM)
        assert first == second
        assert len(first) == 32

    def test_binds_every_component(self):
        base = compute_domain_separator("RelayDepository", "1", "solana-mainnet", PROGRAM)
        assert compute_domain_separator("Other", "1", "solana-mainnet", PROGRAM) != base
        assert compute_domain_separator("RelayDepository", "2", "solana-mainnet", PROGRAM) != base
        assert compute_domain_separator("RelayDepository", "1", "solana-devnet", PROGRAM) != base
        assert (
            compute_domain_separator("RelayDepository", "1", "solana-mainnet", Pubkey.new_unique())
            != base
        )

    def test_chain_id_required(self):
        with pytest.raises(ValueError):
            compute_domain_separator("RelayDepository", "1", "", PROGRAM)
