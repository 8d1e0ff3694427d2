"""Cryptographic utilities for allocator key storage.

Uses Fernet (AES-128-CBC with HMAC) for symmetric encryption of the
allocator secret at rest.
"""

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

# Fernet tokens are base64 of a 0x80 version byte, so they start with this
FERNET_PREFIX = "gAAAAA"


def generate_master_key() -> str:
    """Generate a new master encryption key.

    Returns:
        Base64-encoded 32-byte key suitable for Fernet
    """
    return Fernet.generate_key().decode()


class SecretEncryptor:
    """Encrypts and decrypts key material using Fernet.

    Usage:
        encryptor = SecretEncryptor(master_key)
        encrypted = encryptor.encrypt(secret)
        decrypted = encryptor.decrypt(encrypted)
    """

    def __init__(self, master_key: str):
        self._fernet = Fernet(master_key.encode())

    def encrypt(self, secret: str) -> str:
        return self._fernet.encrypt(secret.encode()).decode()

    def decrypt(self, encrypted: str) -> str:
        """Decrypt a Fernet token.

        Raises:
            InvalidToken: If decryption fails (wrong key or corrupted data)
        """
        return self._fernet.decrypt(encrypted.encode()).decode()


def is_encrypted(value: str) -> bool:
    return value.startswith(FERNET_PREFIX)


def decrypt_secret(value: str, master_key: Optional[str]) -> str:
    """Return the plain secret, decrypting it when it is a Fernet token.

    Raises:
        ValueError: If the value is encrypted and no master key is set
        InvalidToken: If the master key does not decrypt the value
    """
    if not is_encrypted(value):
        return value

    if not master_key:
        raise ValueError("allocator secret is encrypted but MASTER_KEY is not set")

    try:
        return SecretEncryptor(master_key).decrypt(value)
    except InvalidToken:
        logger.error("Failed to decrypt allocator secret with the configured master key")
        raise
