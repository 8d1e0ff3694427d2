"""Repository for account-state operations."""

import json
from typing import Optional

from solders.pubkey import Pubkey
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from relay_depository.constants import SYSTEM_PROGRAM_ID
from relay_depository.ledger.models import (
    Account,
    AllowedProgram,
    EventLog,
    Mint,
    ProtocolConfig,
    TokenAccount,
    UsedRequest,
)
from relay_depository.protocol.events import Event, EventType


class LedgerRepository:
    """Repository for all account-state database operations.

    Every method flushes but never commits; the runtime commits or rolls
    back the whole unit of work.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # Protocol config
    async def get_config(self, address: Pubkey) -> Optional[ProtocolConfig]:
        return await self.session.get(ProtocolConfig, str(address))

    async def create_config(
        self,
        address: Pubkey,
        owner: Pubkey,
        allocator: Pubkey,
        vault: Pubkey,
        vault_bump: int,
        chain_id: Optional[str] = None,
        domain_separator: Optional[bytes] = None,
    ) -> ProtocolConfig:
        config = ProtocolConfig(
            address=str(address),
            owner=str(owner),
            allocator=str(allocator),
            vault=str(vault),
            vault_bump=vault_bump,
            chain_id=chain_id,
            domain_separator=domain_separator.hex() if domain_separator else None,
        )
        self.session.add(config)
        await self.session.flush()
        return config

    # Native accounts
    async def get_account(self, address: Pubkey) -> Optional[Account]:
        return await self.session.get(Account, str(address))

    async def get_or_create_account(
        self, address: Pubkey, owner: Pubkey = SYSTEM_PROGRAM_ID
    ) -> Account:
        account = await self.get_account(address)
        if account is None:
            account = Account(address=str(address), lamports=0, owner=str(owner), executable=False)
            self.session.add(account)
            await self.session.flush()
        return account

    async def get_lamports(self, address: Pubkey) -> int:
        account = await self.get_account(address)
        return account.lamports if account else 0

    async def credit_lamports(self, address: Pubkey, amount: int) -> Account:
        """Add lamports, creating the account on first credit."""
        account = await self.get_or_create_account(address)
        account.lamports += amount
        await self.session.flush()
        return account

    async def debit_lamports(self, address: Pubkey, amount: int) -> Account:
        """Subtract lamports. Raises ValueError if insufficient."""
        account = await self.get_account(address)
        available = account.lamports if account else 0
        if account is None or available < amount:
            raise ValueError(f"Insufficient lamports in {address}: have {available}, need {amount}")
        account.lamports -= amount
        await self.session.flush()
        return account

    async def mark_executable(self, address: Pubkey, owner: Pubkey) -> Account:
        account = await self.get_or_create_account(address, owner)
        account.executable = True
        account.owner = str(owner)
        await self.session.flush()
        return account

    # Mints
    async def get_mint(self, address: Pubkey) -> Optional[Mint]:
        return await self.session.get(Mint, str(address))

    async def create_mint(self, address: Pubkey, token_program: Pubkey, **fields) -> Mint:
        mint = Mint(address=str(address), token_program=str(token_program), **fields)
        self.session.add(mint)
        await self.session.flush()
        return mint

    # Token accounts
    async def get_token_account(self, address: Pubkey) -> Optional[TokenAccount]:
        return await self.session.get(TokenAccount, str(address))

    async def create_token_account(
        self,
        address: Pubkey,
        mint: Pubkey,
        authority: Pubkey,
        token_program: Pubkey,
        lamports: int,
    ) -> TokenAccount:
        account = TokenAccount(
            address=str(address),
            mint=str(mint),
            authority=str(authority),
            token_program=str(token_program),
            amount=0,
            lamports=lamports,
        )
        self.session.add(account)
        await self.session.flush()
        return account

    async def credit_tokens(self, account: TokenAccount, amount: int) -> TokenAccount:
        account.amount += amount
        await self.session.flush()
        return account

    async def debit_tokens(self, account: TokenAccount, amount: int) -> TokenAccount:
        """Subtract tokens. Raises ValueError if insufficient."""
        if account.amount < amount:
            raise ValueError(
                f"Insufficient tokens in {account.address}: have {account.amount}, need {amount}"
            )
        account.amount -= amount
        await self.session.flush()
        return account

    async def delete_token_account(self, account: TokenAccount) -> None:
        await self.session.delete(account)
        await self.session.flush()

    # Replay records
    async def get_used_request(self, address: Pubkey) -> Optional[UsedRequest]:
        return await self.session.get(UsedRequest, str(address))

    async def mark_request_used(
        self, address: Pubkey, request_hash: bytes, executor: Pubkey
    ) -> UsedRequest:
        """Create the replay record if needed and set it used."""
        record = await self.get_used_request(address)
        if record is None:
            record = UsedRequest(address=str(address), request_hash=request_hash.hex())
            self.session.add(record)
        record.is_used = True
        record.executor = str(executor)
        await self.session.flush()
        return record

    async def is_request_used(self, address: Pubkey) -> bool:
        record = await self.get_used_request(address)
        return bool(record and record.is_used)

    # Allowlist
    async def get_allowed_program(self, address: Pubkey) -> Optional[AllowedProgram]:
        return await self.session.get(AllowedProgram, str(address))

    async def add_allowed_program(
        self, address: Pubkey, program: Pubkey, added_by: Pubkey
    ) -> tuple[AllowedProgram, bool]:
        """Add an allowlist entry. Returns (entry, created)."""
        entry = await self.get_allowed_program(address)
        if entry is not None:
            return entry, False
        entry = AllowedProgram(address=str(address), program=str(program), added_by=str(added_by))
        self.session.add(entry)
        await self.session.flush()
        return entry, True

    async def remove_allowed_program(self, entry: AllowedProgram) -> None:
        await self.session.delete(entry)
        await self.session.flush()

    async def list_allowed_programs(self) -> list[AllowedProgram]:
        stmt = select(AllowedProgram).order_by(AllowedProgram.created_at)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # Events
    async def record_event(self, event: Event) -> EventLog:
        entry = EventLog(event_type=event.event_type.value, payload=json.dumps(event.to_dict()))
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def list_events(
        self, event_type: Optional[EventType] = None, limit: int = 100
    ) -> list[EventLog]:
        stmt = select(EventLog).order_by(EventLog.id.desc()).limit(limit)
        if event_type is not None:
            stmt = stmt.where(EventLog.event_type == event_type.value)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
