"""Transfer request payload and its wire format.

Layout (little-endian, Borsh compatible):

    Option<[u8; 32]> domain_separator
    [u8; 32]         recipient
    Option<[u8; 32]> token
    u64              amount
    u64              nonce
    i64              expiration

An Option is one tag byte (0 = None, 1 = Some) followed by the value when
present. The request identity used for replay protection is the SHA-256 of
these bytes.
"""

import hashlib
import struct
from dataclasses import dataclass
from typing import Optional, Union

from solders.pubkey import Pubkey

U64_MAX = 2**64 - 1
I64_MIN = -(2**63)
I64_MAX = 2**63 - 1


class RequestDecodeError(ValueError):
    """Raised when bytes do not decode to exactly one TransferRequest."""

    pass


@dataclass(frozen=True)
class NativeTarget:
    """Transfer of the chain's native value."""

    pass


@dataclass(frozen=True)
class TokenTarget:
    """Transfer of a fungible token identified by its mint."""

    mint: Pubkey


TransferTarget = Union[NativeTarget, TokenTarget]


@dataclass(frozen=True)
class TransferRequest:
    """An allocator-signed instruction to release vault funds.

    Attributes:
        recipient: Identity that receives the funds
        token: Mint for token transfers, None for native
        amount: Amount in base units
        nonce: Caller-chosen value making otherwise equal requests distinct
        expiration: Unix timestamp after which the request is void
        domain_separator: 32-byte deployment binding, when the deployment has one
    """

    recipient: Pubkey
    token: Optional[Pubkey]
    amount: int
    nonce: int
    expiration: int
    domain_separator: Optional[bytes] = None

    def __post_init__(self):
        if not 0 <= self.amount <= U64_MAX:
            raise ValueError(f"amount out of u64 range: {self.amount}")
        if not 0 <= self.nonce <= U64_MAX:
            raise ValueError(f"nonce out of u64 range: {self.nonce}")
        if not I64_MIN <= self.expiration <= I64_MAX:
            raise ValueError(f"expiration out of i64 range: {self.expiration}")
        if self.domain_separator is not None and len(self.domain_separator) != 32:
            raise ValueError("domain_separator must be 32 bytes")

    @property
    def target(self) -> TransferTarget:
        if self.token is None:
            return NativeTarget()
        return TokenTarget(mint=self.token)

    def serialize(self) -> bytes:
        buf = bytearray()
        _write_option(buf, self.domain_separator)
        buf += bytes(self.recipient)
        _write_option(buf, bytes(self.token) if self.token is not None else None)
        buf += struct.pack("<QQq", self.amount, self.nonce, self.expiration)
        return bytes(buf)

    def get_hash(self) -> bytes:
        """SHA-256 of the serialized request (the replay identity)."""
        return hashlib.sha256(self.serialize()).digest()

    @classmethod
    def deserialize(cls, data: bytes) -> "TransferRequest":
        """Decode a request, requiring the buffer to be consumed exactly.

        Raises:
            RequestDecodeError: On truncated input, bad option tags or
                trailing bytes
        """
        reader = _Reader(bytes(data))
        domain = reader.option()
        recipient = Pubkey(reader.take(32))
        token_bytes = reader.option()
        amount, nonce, expiration = struct.unpack("<QQq", reader.take(24))
        if reader.remaining:
            raise RequestDecodeError(f"{reader.remaining} trailing bytes after request")
        return cls(
            recipient=recipient,
            token=Pubkey(token_bytes) if token_bytes is not None else None,
            amount=amount,
            nonce=nonce,
            expiration=expiration,
            domain_separator=domain,
        )

    def to_dict(self) -> dict:
        return {
            "domain_separator": self.domain_separator.hex() if self.domain_separator else None,
            "recipient": str(self.recipient),
            "token": str(self.token) if self.token is not None else None,
            "amount": self.amount,
            "nonce": self.nonce,
            "expiration": self.expiration,
        }


def _write_option(buf: bytearray, value: Optional[bytes]) -> None:
    if value is None:
        buf.append(0)
    else:
        buf.append(1)
        buf += value


class _Reader:
    def __init__(self, data: bytes):
        self._data = data
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def take(self, size: int) -> bytes:
        if self.remaining < size:
            raise RequestDecodeError(
                f"need {size} bytes at offset {self._pos}, have {self.remaining}"
            )
        chunk = self._data[self._pos:self._pos + size]
        self._pos += size
        return chunk

    def option(self) -> Optional[bytes]:
        tag = self.take(1)[0]
        if tag == 0:
            return None
        if tag == 1:
            return self.take(32)
        raise RequestDecodeError(f"invalid option tag {tag}")
