"""Byte layout of the ed25519 signature-check instruction.

    offset  size  field
    0       1     number of signatures
    1       1     padding
    2       14    offsets record for signature 0 (seven little-endian u16)
    16      32    public key
    48      64    signature
    112     n     message

The offsets record holds signature_offset, signature_instruction_index,
public_key_offset, public_key_instruction_index, message_data_offset,
message_data_size and message_instruction_index. An instruction index of
0xFFFF refers to the instruction carrying the record.
"""

import struct
from dataclasses import dataclass

SIGNATURE_OFFSETS_START = 2
SIGNATURE_OFFSETS_SIZE = 14
DATA_START = SIGNATURE_OFFSETS_START + SIGNATURE_OFFSETS_SIZE

PUBLIC_KEY_SIZE = 32
SIGNATURE_SIZE = 64

PUBLIC_KEY_OFFSET = DATA_START
SIGNATURE_OFFSET = PUBLIC_KEY_OFFSET + PUBLIC_KEY_SIZE
MESSAGE_OFFSET = SIGNATURE_OFFSET + SIGNATURE_SIZE

THIS_INSTRUCTION = 0xFFFF

HASH_MESSAGE_SIZE = 32
STRICT_HASH_LENGTH = MESSAGE_OFFSET + HASH_MESSAGE_SIZE
LEGACY_MIN_LENGTH = 99

_OFFSETS_FORMAT = "<7H"


@dataclass(frozen=True)
class SignatureOffsets:
    signature_offset: int
    signature_instruction_index: int
    public_key_offset: int
    public_key_instruction_index: int
    message_data_offset: int
    message_data_size: int
    message_instruction_index: int

    def pack(self) -> bytes:
        return struct.pack(
            _OFFSETS_FORMAT,
            self.signature_offset,
            self.signature_instruction_index,
            self.public_key_offset,
            self.public_key_instruction_index,
            self.message_data_offset,
            self.message_data_size,
            self.message_instruction_index,
        )

    @classmethod
    def unpack(cls, data: bytes, index: int = 0) -> "SignatureOffsets":
        """Read the offsets record of signature `index`.

        Raises:
            ValueError: If the record lies outside the data
        """
        start = SIGNATURE_OFFSETS_START + index * SIGNATURE_OFFSETS_SIZE
        end = start + SIGNATURE_OFFSETS_SIZE
        if len(data) < end:
            raise ValueError(f"offsets record {index} truncated")
        return cls(*struct.unpack(_OFFSETS_FORMAT, data[start:end]))

    @property
    def self_contained(self) -> bool:
        """All three fields point into the instruction carrying the record."""
        return (
            self.signature_instruction_index == THIS_INSTRUCTION
            and self.public_key_instruction_index == THIS_INSTRUCTION
            and self.message_instruction_index == THIS_INSTRUCTION
        )


def build_signature_data(public_key: bytes, signature: bytes, message: bytes) -> bytes:
    """Build single-signature instruction data in the fixed layout."""
    if len(public_key) != PUBLIC_KEY_SIZE:
        raise ValueError("public key must be 32 bytes")
    if len(signature) != SIGNATURE_SIZE:
        raise ValueError("signature must be 64 bytes")
    offsets = SignatureOffsets(
        signature_offset=SIGNATURE_OFFSET,
        signature_instruction_index=THIS_INSTRUCTION,
        public_key_offset=PUBLIC_KEY_OFFSET,
        public_key_instruction_index=THIS_INSTRUCTION,
        message_data_offset=MESSAGE_OFFSET,
        message_data_size=len(message),
        message_instruction_index=THIS_INSTRUCTION,
    )
    return bytes([1, 0]) + offsets.pack() + public_key + signature + message
