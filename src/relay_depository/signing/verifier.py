"""Content checks on the co-located ed25519 signature-check instruction.

The host has already verified the cryptographic signature (see
signing.precompile) before any program code runs. What remains is to
confirm that the verified instruction attests exactly our allocator and
exactly the request being executed.

Checks run in a fixed order and the first failure wins:

1. target program is the ed25519 precompile      -> MissingSignature
2. header layout                                 -> MalformedEd25519Data
3. public key is the allocator                   -> AllocatorSignerMismatch
4. message is the expected request               -> MessageMismatch

The strict layout pins every header field, including the instruction-index
sentinels. Without those, the header can point the precompile at a key and
message elsewhere in the transaction while bytes 16..48 still hold the
allocator key, and a check that only reads fixed positions would accept it.
The legacy layout (length >= 99 and one signature) is kept for deployments
that have not migrated and logs a deprecation warning on every use.
"""

import hmac
import logging
from typing import Optional

from solders.pubkey import Pubkey

from relay_depository.config import MessageEncoding, SignatureLayout
from relay_depository.constants import ED25519_PROGRAM_ID
from relay_depository.errors import DepositoryError, ErrorCode, keys_equal
from relay_depository.protocol.requests import RequestDecodeError, TransferRequest
from relay_depository.runtime.transaction import Instruction
from relay_depository.signing.layout import (
    HASH_MESSAGE_SIZE,
    LEGACY_MIN_LENGTH,
    MESSAGE_OFFSET,
    PUBLIC_KEY_OFFSET,
    PUBLIC_KEY_SIZE,
    SIGNATURE_OFFSET,
    SignatureOffsets,
)

logger = logging.getLogger(__name__)


class SignatureVerifier:
    """Validates signature-check instructions against a transfer request."""

    def __init__(
        self,
        layout: SignatureLayout = SignatureLayout.STRICT,
        encoding: MessageEncoding = MessageEncoding.HASH,
    ):
        self.layout = layout
        self.encoding = encoding

    def verify(
        self,
        signature_ix: Optional[Instruction],
        allocator: Pubkey,
        request: TransferRequest,
    ) -> None:
        """Raise DepositoryError unless the instruction attests `request`.

        Args:
            signature_ix: Instruction preceding the program instruction,
                None when there is none
            allocator: Configured allocator identity
            request: Request being executed
        """
        if signature_ix is None or not keys_equal(signature_ix.program_id, ED25519_PROGRAM_ID):
            raise DepositoryError(ErrorCode.MISSING_SIGNATURE)

        data = bytes(signature_ix.data)
        if signature_ix.accounts:
            raise DepositoryError(ErrorCode.MALFORMED_ED25519_DATA, "accounts referenced")

        if self.layout == SignatureLayout.STRICT:
            message = self._strict_message(data, request)
        else:
            logger.warning("Legacy ed25519 layout accepted; migrate to the strict layout")
            message = self._legacy_message(data, request)

        signer = data[PUBLIC_KEY_OFFSET:PUBLIC_KEY_OFFSET + PUBLIC_KEY_SIZE]
        if not keys_equal(Pubkey(signer), allocator):
            raise DepositoryError(ErrorCode.ALLOCATOR_SIGNER_MISMATCH)

        if not self._message_matches(message, request):
            raise DepositoryError(ErrorCode.MESSAGE_MISMATCH)

    def _expected_size(self, request: TransferRequest) -> int:
        if self.encoding == MessageEncoding.HASH:
            return HASH_MESSAGE_SIZE
        return len(request.serialize())

    def _strict_message(self, data: bytes, request: TransferRequest) -> bytes:
        if len(data) < MESSAGE_OFFSET or data[0] != 1 or data[1] != 0:
            raise DepositoryError(ErrorCode.MALFORMED_ED25519_DATA, "header")

        offsets = SignatureOffsets.unpack(data)
        expected_size = self._expected_size(request)
        if (
            offsets.signature_offset != SIGNATURE_OFFSET
            or offsets.public_key_offset != PUBLIC_KEY_OFFSET
            or offsets.message_data_offset != MESSAGE_OFFSET
            or not offsets.self_contained
            or offsets.message_data_size != expected_size
            or len(data) != MESSAGE_OFFSET + expected_size
        ):
            raise DepositoryError(ErrorCode.MALFORMED_ED25519_DATA, "offsets")

        return data[MESSAGE_OFFSET:]

    def _legacy_message(self, data: bytes, request: TransferRequest) -> bytes:
        if len(data) < LEGACY_MIN_LENGTH or data[0] != 1:
            raise DepositoryError(ErrorCode.MALFORMED_ED25519_DATA, "header")

        if self.encoding == MessageEncoding.HASH:
            message = data[MESSAGE_OFFSET:MESSAGE_OFFSET + HASH_MESSAGE_SIZE]
        else:
            message = data[MESSAGE_OFFSET:]
        if len(message) < self._expected_size(request):
            raise DepositoryError(ErrorCode.MALFORMED_ED25519_DATA, "message truncated")
        return message

    def _message_matches(self, message: bytes, request: TransferRequest) -> bool:
        expected_hash = request.get_hash()
        if self.encoding == MessageEncoding.HASH:
            return hmac.compare_digest(message, expected_hash)
        try:
            signed = TransferRequest.deserialize(message)
        except RequestDecodeError:
            return False
        return hmac.compare_digest(signed.get_hash(), expected_hash)
