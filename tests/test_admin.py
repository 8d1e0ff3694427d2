"""Tests for initialization and owner-gated configuration."""

import pytest

from relay_depository.errors import DepositoryError, ErrorCode
from relay_depository.protocol.domain import compute_domain_separator

from conftest import CHAIN_ID, signer_key


async def _expect(code: ErrorCode, coro):
    with pytest.raises(DepositoryError) as exc_info:
        await coro
    assert exc_info.value.code == code


class TestInitialize:
    @pytest.mark.asyncio
    async def test_stores_config(self, depository, owner, allocator, domain_separator):
        await depository.initialize(owner, allocator.public_key, chain_id=CHAIN_ID)

        config = await depository.get_config()
        assert config.owner == str(owner)
        assert config.allocator == str(allocator.public_key)
        assert config.vault == str(depository.vault_address)
        assert config.chain_id == CHAIN_ID
        assert config.domain_separator_bytes == domain_separator

    @pytest.mark.asyncio
    async def test_without_chain_id(self, depository, owner, allocator):
        await depository.initialize(owner, allocator.public_key)
        config = await depository.get_config()
        assert config.domain_separator_bytes is None

    @pytest.mark.asyncio
    async def test_only_bootstrap_identity(self, depository, allocator):
        await _expect(
            ErrorCode.UNAUTHORIZED, depository.initialize(signer_key(), allocator.public_key)
        )
        assert await depository.get_config() is None

    @pytest.mark.asyncio
    async def test_only_once(self, initialized, owner, allocator):
        await _expect(
            ErrorCode.ALREADY_INITIALIZED, initialized.initialize(owner, allocator.public_key)
        )

    @pytest.mark.asyncio
    async def test_admin_calls_need_config(self, depository, owner):
        await _expect(ErrorCode.NOT_INITIALIZED, depository.set_owner(owner, signer_key()))


class TestOwnership:
    @pytest.mark.asyncio
    async def test_set_allocator(self, initialized, owner):
        new_allocator = signer_key()
        await initialized.set_allocator(owner, new_allocator)
        config = await initialized.get_config()
        assert config.allocator == str(new_allocator)

    @pytest.mark.asyncio
    async def test_set_allocator_requires_owner(self, initialized, allocator):
        await _expect(
            ErrorCode.UNAUTHORIZED, initialized.set_allocator(signer_key(), signer_key())
        )
        config = await initialized.get_config()
        assert config.allocator == str(allocator.public_key)

    @pytest.mark.asyncio
    async def test_owner_handover(self, initialized, owner):
        successor = signer_key()
        await initialized.set_owner(owner, successor)

        await _expect(ErrorCode.UNAUTHORIZED, initialized.set_allocator(owner, signer_key()))
        await initialized.set_allocator(successor, signer_key())


class TestDomainSeparatorMigration:
    @pytest.mark.asyncio
    async def test_migrate_once(self, depository, owner, allocator, settings):
        await depository.initialize(owner, allocator.public_key)

        separator = await depository.migrate_domain_separator(owner, CHAIN_ID)

        assert separator == compute_domain_separator(
            settings.protocol_name, settings.protocol_version, CHAIN_ID, depository.program_id
        )
        config = await depository.get_config()
        assert config.chain_id == CHAIN_ID
        assert config.domain_separator_bytes == separator

        await _expect(
            ErrorCode.DOMAIN_SEPARATOR_ALREADY_SET,
            depository.migrate_domain_separator(owner, "other-chain"),
        )

    @pytest.mark.asyncio
    async def test_already_set_at_initialize(self, initialized, owner):
        await _expect(
            ErrorCode.DOMAIN_SEPARATOR_ALREADY_SET,
            initialized.migrate_domain_separator(owner, CHAIN_ID),
        )

    @pytest.mark.asyncio
    async def test_requires_owner(self, depository, owner, allocator):
        await depository.initialize(owner, allocator.public_key)
        await _expect(
            ErrorCode.UNAUTHORIZED, depository.migrate_domain_separator(signer_key(), CHAIN_ID)
        )
