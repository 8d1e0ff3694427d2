"""Tests for the ledger module."""

import json

import pytest
from solders.pubkey import Pubkey

from relay_depository.constants import TOKEN_PROGRAM_ID
from relay_depository.ledger.repository import LedgerRepository
from relay_depository.protocol.events import DepositEvent, EventType


class TestLamports:
    """Native balance bookkeeping."""

    @pytest.mark.asyncio
    async def test_credit_creates_account(self, ledger_repo: LedgerRepository, db_session):
        address = Pubkey.new_unique()
        account = await ledger_repo.credit_lamports(address, 500)
        await db_session.commit()

        assert account.lamports == 500
        assert await ledger_repo.get_lamports(address) == 500

    @pytest.mark.asyncio
    async def test_unknown_account_has_zero(self, ledger_repo: LedgerRepository):
        assert await ledger_repo.get_lamports(Pubkey.new_unique()) == 0

    @pytest.mark.asyncio
    async def test_debit(self, ledger_repo: LedgerRepository):
        address = Pubkey.new_unique()
        await ledger_repo.credit_lamports(address, 500)
        account = await ledger_repo.debit_lamports(address, 200)
        assert account.lamports == 300

    @pytest.mark.asyncio
    async def test_insufficient_lamports(self, ledger_repo: LedgerRepository):
        address = Pubkey.new_unique()
        await ledger_repo.credit_lamports(address, 100)

        with pytest.raises(ValueError, match="Insufficient"):
            await ledger_repo.debit_lamports(address, 101)

        assert await ledger_repo.get_lamports(address) == 100

    @pytest.mark.asyncio
    async def test_debit_missing_account(self, ledger_repo: LedgerRepository):
        with pytest.raises(ValueError):
            await ledger_repo.debit_lamports(Pubkey.new_unique(), 1)

    @pytest.mark.asyncio
    async def test_mark_executable(self, ledger_repo: LedgerRepository):
        program = Pubkey.new_unique()
        loader = Pubkey.new_unique()
        account = await ledger_repo.mark_executable(program, loader)
        assert account.executable
        assert account.owner == str(loader)


class TestTokens:
    @pytest.mark.asyncio
    async def test_token_account_lifecycle(self, ledger_repo: LedgerRepository, db_session):
        mint = Pubkey.new_unique()
        owner = Pubkey.new_unique()
        address = Pubkey.new_unique()
        await ledger_repo.create_mint(mint, TOKEN_PROGRAM_ID, decimals=6)
        account = await ledger_repo.create_token_account(
            address, mint, owner, TOKEN_PROGRAM_ID, lamports=100
        )

        await ledger_repo.credit_tokens(account, 50)
        await ledger_repo.debit_tokens(account, 20)
        assert account.amount == 30
        assert account.lamports == 100

        with pytest.raises(ValueError):
            await ledger_repo.debit_tokens(account, 31)

        await ledger_repo.delete_token_account(account)
        await db_session.commit()
        assert await ledger_repo.get_token_account(address) is None

    @pytest.mark.asyncio
    async def test_mint_fee_flag(self, ledger_repo: LedgerRepository):
        plain = await ledger_repo.create_mint(Pubkey.new_unique(), TOKEN_PROGRAM_ID)
        fee = await ledger_repo.create_mint(
            Pubkey.new_unique(), TOKEN_PROGRAM_ID, newer_fee_basis_points=50
        )
        assert not plain.has_transfer_fee
        assert fee.has_transfer_fee


class TestReplayRecords:
    """Used-request records are one-way."""

    @pytest.mark.asyncio
    async def test_mark_used(self, ledger_repo: LedgerRepository, db_session):
        address = Pubkey.new_unique()
        executor = Pubkey.new_unique()
        assert not await ledger_repo.is_request_used(address)

        record = await ledger_repo.mark_request_used(address, b"\x01" * 32, executor)
        await db_session.commit()

        assert record.is_used
        assert record.executor == str(executor)
        assert record.request_hash == ("01" * 32)
        assert await ledger_repo.is_request_used(address)

    @pytest.mark.asyncio
    async def test_mark_used_twice_keeps_one_record(self, ledger_repo: LedgerRepository):
        address = Pubkey.new_unique()
        first = await ledger_repo.mark_request_used(address, b"\x02" * 32, Pubkey.new_unique())
        second = await ledger_repo.mark_request_used(address, b"\x02" * 32, Pubkey.new_unique())
        assert first is second


class TestAllowlist:
    @pytest.mark.asyncio
    async def test_add_is_idempotent(self, ledger_repo: LedgerRepository):
        entry_address = Pubkey.new_unique()
        program = Pubkey.new_unique()
        owner = Pubkey.new_unique()

        _, created = await ledger_repo.add_allowed_program(entry_address, program, owner)
        _, created_again = await ledger_repo.add_allowed_program(entry_address, program, owner)

        assert created
        assert not created_again
        assert [e.program for e in await ledger_repo.list_allowed_programs()] == [str(program)]

    @pytest.mark.asyncio
    async def test_remove(self, ledger_repo: LedgerRepository):
        entry_address = Pubkey.new_unique()
        entry, _ = await ledger_repo.add_allowed_program(
            entry_address, Pubkey.new_unique(), Pubkey.new_unique()
        )
        await ledger_repo.remove_allowed_program(entry)
        assert await ledger_repo.get_allowed_program(entry_address) is None


class TestEvents:
    @pytest.mark.asyncio
    async def test_record_and_filter(self, ledger_repo: LedgerRepository):
        depositor = Pubkey.new_unique()
        await ledger_repo.record_event(
            DepositEvent(depositor=depositor, token=None, amount=10, id=bytes(32))
        )

        entries = await ledger_repo.list_events(EventType.DEPOSIT)
        assert len(entries) == 1
        payload = json.loads(entries[0].payload)
        assert payload["depositor"] == str(depositor)
        assert payload["amount"] == 10

        assert await ledger_repo.list_events(EventType.SWEEP) == []
