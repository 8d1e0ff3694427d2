"""Base interfaces for allocator signing.

Signing flow:
1. Build the TransferRequest (including the deployment domain separator)
2. Submit it to a signer backend
3. Backend returns the signature over the request hash or payload
4. Wrap the result in an ed25519 signature-check instruction
5. Submit that instruction immediately before execute_transfer
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from solders.pubkey import Pubkey

from relay_depository.config import MessageEncoding
from relay_depository.constants import ED25519_PROGRAM_ID
from relay_depository.protocol.requests import TransferRequest
from relay_depository.runtime.transaction import Instruction
from relay_depository.signing.layout import build_signature_data

logger = logging.getLogger(__name__)


class SignerType(str, Enum):
    """Type of signing backend."""
    LOCAL = "local"  # Secret key in memory


@dataclass
class SignedRequest:
    """A request plus the allocator's signature over it.

    Attributes:
        request: The signed transfer request
        message: Exact bytes that were signed
        signature: 64-byte ed25519 signature
        public_key: Allocator identity that produced the signature
    """
    request: TransferRequest
    message: bytes
    signature: bytes
    public_key: Pubkey

    def to_instruction(self) -> Instruction:
        """Signature-check instruction in the strict fixed layout."""
        return Instruction(
            program_id=ED25519_PROGRAM_ID,
            data=build_signature_data(bytes(self.public_key), self.signature, self.message),
        )


class AllocatorSigner(ABC):
    """Abstract base class for allocator signing backends.

    Implementations should NEVER expose raw secret keys.
    """

    def __init__(self, signer_type: SignerType, encoding: MessageEncoding = MessageEncoding.HASH):
        self.signer_type = signer_type
        self.encoding = encoding

    @property
    @abstractmethod
    def public_key(self) -> Pubkey:
        """Allocator identity this backend signs for."""
        pass

    @abstractmethod
    async def sign_message(self, message: bytes) -> bytes:
        """Return a 64-byte ed25519 signature over `message`."""
        pass

    def message_for(self, request: TransferRequest) -> bytes:
        if self.encoding == MessageEncoding.HASH:
            return request.get_hash()
        return request.serialize()

    async def sign_request(self, request: TransferRequest) -> SignedRequest:
        message = self.message_for(request)
        signature = await self.sign_message(message)
        logger.info(f"Signed transfer request {request.get_hash().hex()[:16]}... nonce={request.nonce}")
        return SignedRequest(
            request=request,
            message=message,
            signature=signature,
            public_key=self.public_key,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type={self.signer_type.value}, key={self.public_key})"


class SigningError(Exception):
    """Exception raised when signing fails."""
    pass


class KeyNotFoundError(SigningError):
    """Exception raised when no allocator key is configured."""
    pass
