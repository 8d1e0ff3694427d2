"""Local allocator signing backend.

Uses an in-memory ed25519 secret key. Suitable for:
- Development/testing
- Deployments where the allocator runs next to the relayer

WARNING: The secret key is held in memory. Keep ALLOCATOR_SECRET_KEY
Fernet-encrypted at rest (see relay_depository.crypto).
"""

import logging
from typing import Optional

import base58
from nacl.signing import SigningKey
from solders.pubkey import Pubkey

from relay_depository.config import MessageEncoding, Settings
from relay_depository.crypto import decrypt_secret
from relay_depository.signing.base import AllocatorSigner, KeyNotFoundError, SignerType

logger = logging.getLogger(__name__)


class LocalAllocatorSigner(AllocatorSigner):
    """Allocator signer holding its ed25519 key in memory.

    Keys use the Solana keypair convention: 64 bytes (32-byte seed followed
    by the 32-byte public key), base58 encoded. A bare 32-byte seed is also
    accepted.
    """

    def __init__(self, signing_key: SigningKey, encoding: MessageEncoding = MessageEncoding.HASH):
        super().__init__(SignerType.LOCAL, encoding)
        self._signing_key = signing_key
        self._public_key = Pubkey(bytes(signing_key.verify_key))

    @classmethod
    def generate(cls, encoding: MessageEncoding = MessageEncoding.HASH) -> "LocalAllocatorSigner":
        return cls(SigningKey.generate(), encoding)

    @classmethod
    def from_secret(
        cls,
        secret: str,
        master_key: Optional[str] = None,
        encoding: MessageEncoding = MessageEncoding.HASH,
    ) -> "LocalAllocatorSigner":
        """Load a key from its base58 text, decrypting it first when needed."""
        raw = base58.b58decode(decrypt_secret(secret, master_key))
        if len(raw) == 64:
            signing_key = SigningKey(raw[:32])
            if bytes(signing_key.verify_key) != raw[32:]:
                raise ValueError("keypair public half does not match its secret")
        elif len(raw) == 32:
            signing_key = SigningKey(raw)
        else:
            raise ValueError(f"allocator secret must decode to 32 or 64 bytes, got {len(raw)}")
        return cls(signing_key, encoding)

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalAllocatorSigner":
        if not settings.allocator_secret_key:
            raise KeyNotFoundError("ALLOCATOR_SECRET_KEY is not set")
        signer = cls.from_secret(
            settings.allocator_secret_key,
            settings.master_key,
            settings.message_encoding,
        )
        logger.info(f"Loaded allocator key {signer.public_key}")
        return signer

    @property
    def public_key(self) -> Pubkey:
        return self._public_key

    def export_secret(self) -> str:
        """Base58 64-byte keypair, for writing into configuration."""
        return base58.b58encode(bytes(self._signing_key) + bytes(self._signing_key.verify_key)).decode()

    async def sign_message(self, message: bytes) -> bytes:
        return self._signing_key.sign(message).signature
