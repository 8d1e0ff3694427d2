"""Application configuration using pydantic-settings.

One deployment of the depository is described by a program id, the bootstrap
owner allowed to initialize it, and the custody parameters (reserve floor,
signature layout, sweep mode) the programs enforce.
"""

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from solders.pubkey import Pubkey


class SignatureLayout(str, Enum):
    """Accepted byte layout of the ed25519 signature-check instruction."""

    STRICT = "strict"  # fixed offsets, sentinel indexes, exact length
    LEGACY = "legacy"  # length >= 99 only; deprecated


class MessageEncoding(str, Enum):
    """What the allocator signs."""

    HASH = "hash"        # 32-byte SHA-256 of the serialized request
    PAYLOAD = "payload"  # the serialized request itself


class NativeSweepMode(str, Enum):
    """How much native value a sweep takes from a deposit address."""

    PRESERVE_RESERVE = "preserve_reserve"
    FULL = "full"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Database
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/relay_depository.db",
        description="Database connection URL",
    )

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")
    admin_token: str = Field(default="", description="Admin API token for protected endpoints")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")

    # ======================
    # Deployment identity
    # ======================
    program_id: str = Field(
        default="99vQwtBwYtrqqD9YSXbdum3KBdxPAVxYTaQ3cfnJSrN2",
        description="Program identity that owns the vault and deposit addresses",
    )
    bootstrap_owner: str = Field(
        default="7LZXYdDQcRTsXnL9EU2zGkninV3yJsqX43m4RMPbs68u",
        description="Only identity allowed to call initialize",
    )
    protocol_name: str = Field(default="RelayDepository", description="Domain separator name")
    protocol_version: str = Field(default="1", description="Domain separator version")
    chain_id: Optional[str] = Field(
        default=None, description="Chain identifier bound into the domain separator"
    )

    # ======================
    # Signature checks
    # ======================
    signature_layout: SignatureLayout = Field(
        default=SignatureLayout.STRICT, description="ed25519 instruction layout to accept"
    )
    message_encoding: MessageEncoding = Field(
        default=MessageEncoding.HASH, description="What the allocator signs"
    )

    # ======================
    # Custody parameters
    # ======================
    rent_exempt_minimum: int = Field(
        default=890_880, ge=0, description="Native reserve floor kept in the vault (lamports)"
    )
    token_account_rent: int = Field(
        default=2_039_280, ge=0, description="Storage deposit for a token account (lamports)"
    )
    native_sweep_mode: NativeSweepMode = Field(
        default=NativeSweepMode.PRESERVE_RESERVE,
        description="Keep the reserve in deposit addresses when sweeping",
    )
    epoch_duration_seconds: int = Field(
        default=172_800, gt=0, description="Seconds per epoch for transfer-fee schedules"
    )
    lock_timeout: float = Field(
        default=30.0, gt=0, description="Seconds to wait for exclusive account access"
    )

    # ======================
    # Relayer (API side)
    # ======================
    relayer: Optional[str] = Field(
        default=None,
        description="Identity the API signs as when executing transfers and paying sweep rent",
    )

    # ======================
    # Allocator key (client side)
    # ======================
    allocator_secret_key: Optional[str] = Field(
        default=None, description="Base58 64-byte allocator keypair, optionally Fernet encrypted"
    )
    master_key: Optional[str] = Field(
        default=None, description="Fernet key used to decrypt the allocator secret"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def program_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.program_id)

    @property
    def bootstrap_owner_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.bootstrap_owner)

    @property
    def relayer_pubkey(self) -> Optional[Pubkey]:
        return Pubkey.from_string(self.relayer) if self.relayer else None

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "database_url": self._redact_url(self.database_url),
            "admin_token": "***" if self.admin_token else "(not set)",
            "program_id": self.program_id,
            "bootstrap_owner": self.bootstrap_owner,
            "chain_id": self.chain_id or "(not set)",
            "relayer": self.relayer or "(not set)",
            "signatures": {
                "layout": self.signature_layout.value,
                "encoding": self.message_encoding.value,
            },
            "custody": {
                "rent_exempt_minimum": self.rent_exempt_minimum,
                "token_account_rent": self.token_account_rent,
                "native_sweep_mode": self.native_sweep_mode.value,
            },
            "allocator_key": "***" if self.allocator_secret_key else "(not set)",
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact sensitive parts of database URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
