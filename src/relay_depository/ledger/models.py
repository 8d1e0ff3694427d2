"""SQLAlchemy models for the simulated account state.

Identities are stored as base58 text. Amounts are integers in base units;
the storage type is a signed 64-bit integer.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class ProtocolConfig(Base):
    """Deployment configuration (one row, keyed by the config address)."""

    __tablename__ = "protocol_config"

    address: Mapped[str] = mapped_column(String(44), primary_key=True)
    owner: Mapped[str] = mapped_column(String(44), nullable=False)
    allocator: Mapped[str] = mapped_column(String(44), nullable=False)
    vault: Mapped[str] = mapped_column(String(44), nullable=False)
    vault_bump: Mapped[int] = mapped_column(Integer, nullable=False)
    chain_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    domain_separator: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)  # hex
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @property
    def domain_separator_bytes(self) -> Optional[bytes]:
        return bytes.fromhex(self.domain_separator) if self.domain_separator else None

    def __repr__(self) -> str:
        return f"<ProtocolConfig owner={self.owner} allocator={self.allocator}>"


class Account(Base):
    """Native balance holder: users, vault, deposit addresses, programs."""

    __tablename__ = "accounts"

    address: Mapped[str] = mapped_column(String(44), primary_key=True)
    lamports: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    owner: Mapped[str] = mapped_column(String(44), nullable=False)  # owning program
    executable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Account {self.address} lamports={self.lamports}>"


class Mint(Base):
    """Fungible token definition.

    Transfer-fee columns are set only for Token-2022 mints carrying the
    transfer-fee extension. The newer schedule applies from `newer_fee_epoch`.
    """

    __tablename__ = "mints"

    address: Mapped[str] = mapped_column(String(44), primary_key=True)
    token_program: Mapped[str] = mapped_column(String(44), nullable=False)
    decimals: Mapped[int] = mapped_column(Integer, default=9)
    supply: Mapped[int] = mapped_column(BigInteger, default=0)
    mint_authority: Mapped[Optional[str]] = mapped_column(String(44), nullable=True)

    older_fee_epoch: Mapped[int] = mapped_column(BigInteger, default=0)
    older_fee_basis_points: Mapped[int] = mapped_column(Integer, default=0)
    older_maximum_fee: Mapped[int] = mapped_column(BigInteger, default=0)
    newer_fee_epoch: Mapped[int] = mapped_column(BigInteger, default=0)
    newer_fee_basis_points: Mapped[int] = mapped_column(Integer, default=0)
    newer_maximum_fee: Mapped[int] = mapped_column(BigInteger, default=0)
    withheld_fees: Mapped[int] = mapped_column(BigInteger, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    @property
    def has_transfer_fee(self) -> bool:
        return bool(self.older_fee_basis_points or self.newer_fee_basis_points)

    def __repr__(self) -> str:
        return f"<Mint {self.address} program={self.token_program}>"


class TokenAccount(Base):
    """Associated token account: per (authority, mint) token balance."""

    __tablename__ = "token_accounts"
    __table_args__ = (
        Index("ix_token_accounts_authority_mint", "authority", "mint", unique=True),
    )

    address: Mapped[str] = mapped_column(String(44), primary_key=True)
    mint: Mapped[str] = mapped_column(ForeignKey("mints.address"), nullable=False)
    authority: Mapped[str] = mapped_column(String(44), nullable=False, index=True)
    token_program: Mapped[str] = mapped_column(String(44), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    lamports: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)  # storage deposit
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<TokenAccount {self.address} mint={self.mint} amount={self.amount}>"


class UsedRequest(Base):
    """Replay record for one transfer request hash. is_used is terminal."""

    __tablename__ = "used_requests"

    address: Mapped[str] = mapped_column(String(44), primary_key=True)
    request_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    is_used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    executor: Mapped[Optional[str]] = mapped_column(String(44), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class AllowedProgram(Base):
    """Allowlist entry for the whitelisted execute path."""

    __tablename__ = "allowed_programs"

    address: Mapped[str] = mapped_column(String(44), primary_key=True)
    program: Mapped[str] = mapped_column(String(44), unique=True, nullable=False)
    added_by: Mapped[str] = mapped_column(String(44), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class EventLog(Base):
    """Records emitted by committed operations."""

    __tablename__ = "event_log"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)  # JSON
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<EventLog {self.id} {self.event_type}>"
