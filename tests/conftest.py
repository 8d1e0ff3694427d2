"""Pytest configuration and fixtures."""

import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ADMIN_TOKEN"] = ""
os.environ["DEBUG"] = "false"

from relay_depository.config import Settings
from relay_depository.depository import RelayDepository
from relay_depository.ledger.database import create_session_factory, create_tables
from relay_depository.ledger.repository import LedgerRepository
from relay_depository.protocol.domain import compute_domain_separator
from relay_depository.protocol.requests import TransferRequest
from relay_depository.runtime.transaction import FixedClock
from relay_depository.signing.local import LocalAllocatorSigner

NOW = 1_700_000_000
CHAIN_ID = "solana-devnet"


def signer_key() -> Pubkey:
    """A fresh on-curve identity that can sign transactions."""
    return Keypair().pubkey()


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create in-memory database engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def ledger_repo(db_session: AsyncSession) -> LedgerRepository:
    """Create ledger repository for testing."""
    return LedgerRepository(db_session)


@pytest.fixture
def owner() -> Pubkey:
    return signer_key()


@pytest.fixture
def depositor() -> Pubkey:
    return signer_key()


@pytest.fixture
def executor() -> Pubkey:
    return signer_key()


@pytest.fixture
def recipient() -> Pubkey:
    return signer_key()


@pytest.fixture
def relayer() -> Pubkey:
    """Identity the API submits as."""
    return signer_key()


@pytest.fixture
def allocator() -> LocalAllocatorSigner:
    return LocalAllocatorSigner.generate()


@pytest.fixture
def settings(owner, relayer) -> Settings:
    """Deployment settings with no reserve floor and a small token-account rent."""
    return Settings(
        bootstrap_owner=str(owner),
        relayer=str(relayer),
        rent_exempt_minimum=0,
        token_account_rent=100,
        lock_timeout=5.0,
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW, epoch=10)


@pytest.fixture
def depository(session_factory, settings, clock) -> RelayDepository:
    """Depository program attached to a fresh runtime, not yet initialized."""
    return RelayDepository.create(session_factory, settings=settings, clock=clock)


@pytest.fixture
def domain_separator(settings, depository) -> bytes:
    return compute_domain_separator(
        settings.protocol_name, settings.protocol_version, CHAIN_ID, depository.program_id
    )


@pytest_asyncio.fixture
async def initialized(depository, owner, allocator) -> RelayDepository:
    """Depository initialized with a domain separator for CHAIN_ID."""
    await depository.initialize(owner, allocator.public_key, chain_id=CHAIN_ID)
    return depository


@pytest_asyncio.fixture
async def funded(initialized, depositor) -> RelayDepository:
    """Initialized depository whose vault holds 1000 lamports."""
    await initialized.runtime.airdrop(depositor, 5_000)
    await initialized.deposit_native(depositor, 1_000, bytes(32))
    return initialized


@pytest.fixture
def make_request(recipient, domain_separator):
    """Build a native request valid for an hour unless overridden."""

    def _make(**overrides) -> TransferRequest:
        fields = {
            "recipient": recipient,
            "token": None,
            "amount": 400,
            "nonce": 1,
            "expiration": NOW + 3600,
            "domain_separator": domain_separator,
        }
        fields.update(overrides)
        return TransferRequest(**fields)

    return _make
