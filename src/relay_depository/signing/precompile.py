"""Host-side ed25519 signature-check precompile.

Runs over every ed25519 instruction of a transaction before any program
instruction executes. Offsets are honoured as written in each header,
including references into other instructions, because that is what the
platform facility does. Program-side content checks live in
signing.verifier.
"""

import logging
from typing import Sequence

from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey

from relay_depository.constants import ED25519_PROGRAM_ID
from relay_depository.errors import SignatureVerificationFailed, keys_equal
from relay_depository.runtime.transaction import Instruction
from relay_depository.signing.layout import (
    PUBLIC_KEY_SIZE,
    SIGNATURE_OFFSETS_SIZE,
    SIGNATURE_OFFSETS_START,
    SIGNATURE_SIZE,
    THIS_INSTRUCTION,
    SignatureOffsets,
)

logger = logging.getLogger(__name__)


def _slice(
    instructions: Sequence[Instruction],
    own_index: int,
    instruction_index: int,
    offset: int,
    size: int,
) -> bytes:
    if instruction_index == THIS_INSTRUCTION:
        source = instructions[own_index].data
    elif instruction_index < len(instructions):
        source = instructions[instruction_index].data
    else:
        raise SignatureVerificationFailed(f"instruction index {instruction_index} out of range")

    end = offset + size
    if end > len(source):
        raise SignatureVerificationFailed(f"offset {offset}+{size} outside instruction data")
    return bytes(source[offset:end])


def verify_instruction(instructions: Sequence[Instruction], index: int) -> None:
    """Verify every signature described by the ed25519 instruction at `index`.

    Raises:
        SignatureVerificationFailed: On malformed offsets or a bad signature
    """
    data = bytes(instructions[index].data)
    if not data:
        raise SignatureVerificationFailed("empty ed25519 instruction")

    count = data[0]
    if count == 0 and len(data) > SIGNATURE_OFFSETS_START:
        raise SignatureVerificationFailed("no signatures declared")
    if len(data) < SIGNATURE_OFFSETS_START + count * SIGNATURE_OFFSETS_SIZE:
        raise SignatureVerificationFailed("offsets table truncated")

    for position in range(count):
        offsets = SignatureOffsets.unpack(data, position)
        signature = _slice(
            instructions, index, offsets.signature_instruction_index,
            offsets.signature_offset, SIGNATURE_SIZE,
        )
        public_key = _slice(
            instructions, index, offsets.public_key_instruction_index,
            offsets.public_key_offset, PUBLIC_KEY_SIZE,
        )
        message = _slice(
            instructions, index, offsets.message_instruction_index,
            offsets.message_data_offset, offsets.message_data_size,
        )
        try:
            VerifyKey(public_key).verify(message, signature)
        except BadSignatureError:
            logger.warning(f"ed25519 signature {position} of instruction {index} is invalid")
            raise SignatureVerificationFailed(
                f"invalid signature {position} in instruction {index}"
            )


def verify_precompiles(instructions: Sequence[Instruction]) -> int:
    """Run the precompile over a whole transaction.

    Returns:
        Number of ed25519 instructions verified
    """
    verified = 0
    for index, instruction in enumerate(instructions):
        if keys_equal(instruction.program_id, ED25519_PROGRAM_ID):
            verify_instruction(instructions, index)
            verified += 1
    return verified
