"""Tests for the host-side ed25519 precompile."""

import pytest
from nacl.signing import SigningKey

from relay_depository.constants import ED25519_PROGRAM_ID, SYSTEM_PROGRAM_ID
from relay_depository.errors import SignatureVerificationFailed
from relay_depository.runtime.transaction import Instruction
from relay_depository.signing.layout import (
    MESSAGE_OFFSET,
    PUBLIC_KEY_OFFSET,
    SIGNATURE_OFFSET,
    THIS_INSTRUCTION,
    SignatureOffsets,
    build_signature_data,
)
from relay_depository.signing.precompile import verify_instruction, verify_precompiles

MESSAGE = b"\x42" * 32


def _signed(key: SigningKey, message: bytes = MESSAGE) -> Instruction:
    return Instruction(
        program_id=ED25519_PROGRAM_ID,
        data=build_signature_data(bytes(key.verify_key), key.sign(message).signature, message),
    )


class TestVerifyInstruction:
    def test_valid_signature(self):
        verify_instruction([_signed(SigningKey.generate())], 0)

    def test_tampered_message(self):
        ix = _signed(SigningKey.generate())
        data = bytearray(ix.data)
        data[-1] ^= 0xFF
        with pytest.raises(SignatureVerificationFailed):
            verify_instruction([Instruction(program_id=ED25519_PROGRAM_ID, data=bytes(data))], 0)

    def test_signature_from_other_key(self):
        key = SigningKey.generate()
        other = SigningKey.generate()
        data = build_signature_data(
            bytes(key.verify_key), other.sign(MESSAGE).signature, MESSAGE
        )
        with pytest.raises(SignatureVerificationFailed):
            verify_instruction([Instruction(program_id=ED25519_PROGRAM_ID, data=data)], 0)

    def test_empty_data(self):
        with pytest.raises(SignatureVerificationFailed):
            verify_instruction([Instruction(program_id=ED25519_PROGRAM_ID, data=b"")], 0)

    def test_truncated_offsets(self):
        with pytest.raises(SignatureVerificationFailed):
            verify_instruction([Instruction(program_id=ED25519_PROGRAM_ID, data=b"\x01\x00\x30")], 0)

    def test_offsets_outside_data(self):
        ix = _signed(SigningKey.generate())
        with pytest.raises(SignatureVerificationFailed):
            verify_instruction(
                [Instruction(program_id=ED25519_PROGRAM_ID, data=ix.data[:MESSAGE_OFFSET + 8])], 0
            )

    def test_cross_instruction_message(self):
        """Offsets may point the message at another instruction's data."""
        key = SigningKey.generate()
        carrier = Instruction(program_id=SYSTEM_PROGRAM_ID, data=MESSAGE)
        offsets = SignatureOffsets(
            signature_offset=SIGNATURE_OFFSET,
            signature_instruction_index=THIS_INSTRUCTION,
            public_key_offset=PUBLIC_KEY_OFFSET,
            public_key_instruction_index=THIS_INSTRUCTION,
            message_data_offset=0,
            message_data_size=len(MESSAGE),
            message_instruction_index=0,
        )
        data = (
            bytes([1, 0]) + offsets.pack() + bytes(key.verify_key) + key.sign(MESSAGE).signature
        )
        ed25519 = Instruction(program_id=ED25519_PROGRAM_ID, data=data)
        verify_instruction([carrier, ed25519], 1)

    def test_instruction_index_out_of_range(self):
        key = SigningKey.generate()
        offsets = SignatureOffsets(
            signature_offset=SIGNATURE_OFFSET,
            signature_instruction_index=THIS_INSTRUCTION,
            public_key_offset=PUBLIC_KEY_OFFSET,
            public_key_instruction_index=THIS_INSTRUCTION,
            message_data_offset=0,
            message_data_size=32,
            message_instruction_index=7,
        )
        data = bytes([1, 0]) + offsets.pack() + bytes(key.verify_key) + bytes(64)
        with pytest.raises(SignatureVerificationFailed):
            verify_instruction([Instruction(program_id=ED25519_PROGRAM_ID, data=data)], 0)


class TestVerifyPrecompiles:
    def test_counts_only_ed25519_instructions(self):
        instructions = [
            _signed(SigningKey.generate()),
            Instruction(program_id=SYSTEM_PROGRAM_ID, data=b"\x00"),
            _signed(SigningKey.generate(), b"another message"),
        ]
        assert verify_precompiles(instructions) == 2

    def test_one_bad_signature_fails_all(self):
        good = _signed(SigningKey.generate())
        bad_data = bytearray(_signed(SigningKey.generate()).data)
        bad_data[SIGNATURE_OFFSET] ^= 0x01
        bad = Instruction(program_id=ED25519_PROGRAM_ID, data=bytes(bad_data))
        with pytest.raises(SignatureVerificationFailed):
            verify_precompiles([good, bad])
