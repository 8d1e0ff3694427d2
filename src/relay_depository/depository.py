"""High-level client for one depository deployment.

RelayDepository builds transactions for each operation (declaring the
accounts it writes, the keypairs that sign it and, for transfers, the
preceding signature-check instruction) and submits them to the runtime.
Every method maps to exactly one unit of work.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

from solders.pubkey import Pubkey
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from relay_depository import derivation
from relay_depository.config import Settings, get_settings
from relay_depository.constants import ORDER_ID_LENGTH, TOKEN_PROGRAM_ID
from relay_depository.ledger.database import get_session_factory
from relay_depository.ledger.models import EventLog, ProtocolConfig
from relay_depository.ledger.repository import LedgerRepository
from relay_depository.program import process_instruction
from relay_depository.protocol.events import (
    DepositEvent,
    Event,
    EventType,
    ExecuteEvent,
    SweepEvent,
    TransferExecutedEvent,
)
from relay_depository.protocol.requests import TransferRequest
from relay_depository.runtime.host import Runtime
from relay_depository.runtime.transaction import (
    AccountMeta,
    Instruction,
    ProgramInstruction,
    Transaction,
)
from relay_depository.signing.base import SignedRequest

logger = logging.getLogger(__name__)


@dataclass
class TransferCall:
    """One execute_transfer inside a batch.

    Attributes:
        request: The allocator-signed request
        signature: ed25519 signature-check instruction placed right before
            the transfer; None submits the transfer without one
        recipient: Recipient account (defaults to request.recipient)
        mint: Mint account, required for token requests
        token_program: Token program of the mint, required for token requests
    """

    request: TransferRequest
    signature: Optional[Instruction]
    recipient: Optional[Pubkey] = None
    mint: Optional[Pubkey] = None
    token_program: Optional[Pubkey] = None

    @classmethod
    def from_signed(cls, signed: SignedRequest, **kwargs) -> "TransferCall":
        return cls(request=signed.request, signature=signed.to_instruction(), **kwargs)


def _writable(*keys: Optional[Pubkey]) -> tuple[AccountMeta, ...]:
    return tuple(AccountMeta(pubkey=key, is_writable=True) for key in keys if key is not None)


def _check_id(order_id: bytes) -> bytes:
    order_id = bytes(order_id)
    if len(order_id) != ORDER_ID_LENGTH:
        raise ValueError(f"id must be {ORDER_ID_LENGTH} bytes, got {len(order_id)}")
    return order_id


class RelayDepository:
    """Facade over the depository program running in a Runtime."""

    def __init__(self, runtime: Runtime, program_id: Optional[Pubkey] = None):
        self.runtime = runtime
        self.program_id = program_id or runtime.settings.program_pubkey
        runtime.add_handler(self.program_id, process_instruction)

    @classmethod
    def create(
        cls,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        settings: Optional[Settings] = None,
        clock=None,
    ) -> "RelayDepository":
        """Build a runtime on the configured database and attach the program."""
        runtime = Runtime(
            session_factory or get_session_factory(),
            settings=settings or get_settings(),
            clock=clock,
        )
        return cls(runtime)

    # ------------------------------------------------------------------
    # Addresses
    # ------------------------------------------------------------------

    @property
    def config_address(self) -> Pubkey:
        return derivation.config_address(self.program_id).address

    @property
    def vault_address(self) -> Pubkey:
        return derivation.vault_address(self.program_id).address

    def deposit_address(self, id: bytes, token: Optional[Pubkey], depositor: Pubkey) -> Pubkey:
        return derivation.deposit_address(_check_id(id), token, depositor, self.program_id).address

    def used_request_address(self, request: Union[TransferRequest, bytes]) -> Pubkey:
        request_hash = request.get_hash() if isinstance(request, TransferRequest) else request
        return derivation.used_request_address(request_hash, self.program_id).address

    def vault_token_address(self, mint: Pubkey, token_program: Pubkey = TOKEN_PROGRAM_ID) -> Pubkey:
        return derivation.associated_token_address(self.vault_address, mint, token_program)

    # ------------------------------------------------------------------
    # Submission helpers
    # ------------------------------------------------------------------

    def _instruction(
        self, name: str, args: dict[str, Any], writable: Sequence[Optional[Pubkey]]
    ) -> ProgramInstruction:
        return ProgramInstruction.build(
            self.program_id, name, args, accounts=_writable(*writable)
        )

    async def _submit(
        self,
        instructions: Sequence[Instruction],
        signers: Sequence[Optional[Pubkey]],
        operation: str,
    ) -> list[Event]:
        transaction = Transaction(
            instructions=tuple(instructions),
            signers=tuple(signer for signer in signers if signer is not None),
        )
        return await self.runtime.process(transaction, operation)

    async def _run(
        self,
        name: str,
        args: dict[str, Any],
        writable: Sequence[Optional[Pubkey]],
        signers: Sequence[Optional[Pubkey]],
    ) -> list[Event]:
        return await self._submit([self._instruction(name, args, writable)], signers, name)

    @staticmethod
    def _single(events: list[Event], kind: type) -> Any:
        matching = [event for event in events if isinstance(event, kind)]
        return matching[-1] if matching else None

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    async def initialize(
        self, owner: Pubkey, allocator: Pubkey, chain_id: Optional[str] = None
    ) -> None:
        await self._run(
            "initialize",
            {"owner": owner, "allocator": allocator, "chain_id": chain_id},
            [self.config_address],
            [owner],
        )

    async def set_allocator(self, owner: Pubkey, new_allocator: Pubkey) -> None:
        await self._run(
            "set_allocator",
            {"owner": owner, "new_allocator": new_allocator},
            [self.config_address],
            [owner],
        )

    async def set_owner(self, owner: Pubkey, new_owner: Pubkey) -> None:
        await self._run(
            "set_owner",
            {"owner": owner, "new_owner": new_owner},
            [self.config_address],
            [owner],
        )

    async def migrate_domain_separator(self, owner: Pubkey, chain_id: str) -> bytes:
        await self._run(
            "migrate_domain_separator",
            {"owner": owner, "chain_id": chain_id},
            [self.config_address],
            [owner],
        )
        config = await self.get_config()
        return config.domain_separator_bytes

    async def add_allowed_program(self, owner: Pubkey, program: Pubkey) -> None:
        entry = derivation.allowed_program_address(program, self.program_id).address
        await self._run(
            "add_allowed_program",
            {"owner": owner, "program": program},
            [self.config_address, entry],
            [owner],
        )

    async def remove_allowed_program(self, owner: Pubkey, program: Pubkey) -> None:
        entry = derivation.allowed_program_address(program, self.program_id).address
        await self._run(
            "remove_allowed_program",
            {"owner": owner, "program": program},
            [self.config_address, entry],
            [owner],
        )

    # ------------------------------------------------------------------
    # Deposits
    # ------------------------------------------------------------------

    async def deposit_native(
        self,
        sender: Pubkey,
        amount: int,
        id: bytes,
        depositor: Optional[Pubkey] = None,
    ) -> DepositEvent:
        """Deposit lamports signed by `sender`, credited to `depositor` (default sender)."""
        events = await self._run(
            "deposit_native",
            {
                "sender": sender,
                "depositor": depositor or sender,
                "amount": amount,
                "id": _check_id(id),
            },
            [sender, self.vault_address],
            [sender],
        )
        return self._single(events, DepositEvent)

    async def deposit_token(
        self,
        sender: Pubkey,
        mint: Pubkey,
        amount: int,
        id: bytes,
        token_program: Pubkey = TOKEN_PROGRAM_ID,
        depositor: Optional[Pubkey] = None,
        vault_token_account: Optional[Pubkey] = None,
        payer: Optional[Pubkey] = None,
    ) -> DepositEvent:
        events = await self._run(
            "deposit_token",
            {
                "sender": sender,
                "depositor": depositor or sender,
                "mint": mint,
                "amount": amount,
                "id": _check_id(id),
                "token_program": token_program,
                "vault_token_account": vault_token_account,
                "payer": payer,
            },
            [sender, payer, mint, self.vault_address],
            [sender, payer],
        )
        return self._single(events, DepositEvent)

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    def _transfer_instructions(self, call: TransferCall, executor: Pubkey) -> list[Instruction]:
        request = call.request
        recipient = call.recipient or request.recipient
        args = {
            "request": request,
            "executor": executor,
            "recipient": recipient,
            "mint": call.mint,
            "token_program": call.token_program,
        }
        writable = [
            self.vault_address,
            self.used_request_address(request),
            executor,
            recipient,
            call.mint,
        ]
        instructions: list[Instruction] = []
        if call.signature is not None:
            instructions.append(call.signature)
        instructions.append(
            ProgramInstruction.build(
                self.program_id,
                "execute_transfer",
                args,
                accounts=_writable(*writable),
                payload=request.serialize(),
            )
        )
        return instructions

    async def execute_transfer(
        self,
        request: TransferRequest,
        signature: Optional[Instruction],
        executor: Pubkey,
        recipient: Optional[Pubkey] = None,
        mint: Optional[Pubkey] = None,
        token_program: Optional[Pubkey] = None,
    ) -> TransferExecutedEvent:
        """Execute one allocator-signed request.

        Args:
            request: Request to execute
            signature: Signature-check instruction (see SignedRequest.to_instruction)
            executor: Submitting keypair
            recipient: Recipient account, defaults to request.recipient
            mint: Mint account for token requests
            token_program: Token program for token requests
        """
        call = TransferCall(request, signature, recipient, mint, token_program)
        events = await self._submit(
            self._transfer_instructions(call, executor), [executor], "execute_transfer"
        )
        return self._single(events, TransferExecutedEvent)

    async def execute_transfers(
        self, calls: Sequence[TransferCall], executor: Pubkey
    ) -> list[TransferExecutedEvent]:
        """Execute several requests in one unit of work: all or none."""
        instructions: list[Instruction] = []
        for call in calls:
            instructions.extend(self._transfer_instructions(call, executor))
        events = await self._submit(instructions, [executor], "execute_transfers")
        return [event for event in events if isinstance(event, TransferExecutedEvent)]

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    async def sweep_native(
        self, id: bytes, depositor: Pubkey, caller: Optional[Pubkey] = None
    ) -> SweepEvent:
        source = self.deposit_address(id, None, depositor)
        events = await self._run(
            "sweep_native",
            {"id": _check_id(id), "depositor": depositor},
            [source, self.vault_address],
            [caller],
        )
        return self._single(events, SweepEvent)

    async def sweep_token(
        self,
        id: bytes,
        depositor: Pubkey,
        mint: Pubkey,
        token_program: Pubkey = TOKEN_PROGRAM_ID,
        payer: Optional[Pubkey] = None,
    ) -> SweepEvent:
        source = self.deposit_address(id, mint, depositor)
        events = await self._run(
            "sweep_token",
            {
                "id": _check_id(id),
                "depositor": depositor,
                "mint": mint,
                "token_program": token_program,
                "payer": payer,
            },
            [source, depositor, payer, mint, self.vault_address],
            [payer],
        )
        return self._single(events, SweepEvent)

    async def sweep(
        self,
        id: bytes,
        token: Optional[Pubkey],
        depositor: Pubkey,
        token_program: Pubkey = TOKEN_PROGRAM_ID,
        payer: Optional[Pubkey] = None,
    ) -> SweepEvent:
        if token is None:
            return await self.sweep_native(id, depositor, payer)
        return await self.sweep_token(id, depositor, token, token_program, payer)

    # ------------------------------------------------------------------
    # Whitelisted execute
    # ------------------------------------------------------------------

    async def execute(
        self,
        owner: Pubkey,
        id: bytes,
        token: Optional[Pubkey],
        depositor: Pubkey,
        target_program: Pubkey,
        instruction_data: bytes,
        accounts: Sequence[AccountMeta] = (),
    ) -> ExecuteEvent:
        source = self.deposit_address(id, token, depositor)
        writable = [self.config_address, source] + [m.pubkey for m in accounts if m.is_writable]
        events = await self._run(
            "execute",
            {
                "owner": owner,
                "id": _check_id(id),
                "token": token,
                "depositor": depositor,
                "target_program": target_program,
                "instruction_data": bytes(instruction_data),
                "accounts": tuple(accounts),
            },
            writable,
            [owner],
        )
        return self._single(events, ExecuteEvent)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_config(self) -> Optional[ProtocolConfig]:
        async with self.runtime.session_factory() as session:
            return await LedgerRepository(session).get_config(self.config_address)

    async def vault_balance(self) -> int:
        return await self.runtime.get_balance(self.vault_address)

    async def vault_token_balance(self, mint: Pubkey) -> int:
        balance = await self.runtime.get_token_balance(self.vault_address, mint)
        return balance or 0

    async def is_request_used(self, request: Union[TransferRequest, bytes]) -> bool:
        async with self.runtime.session_factory() as session:
            return await LedgerRepository(session).is_request_used(
                self.used_request_address(request)
            )

    async def list_allowed_programs(self) -> list[Pubkey]:
        async with self.runtime.session_factory() as session:
            entries = await LedgerRepository(session).list_allowed_programs()
        return [Pubkey.from_string(entry.program) for entry in entries]

    async def list_events(
        self, event_type: Optional[EventType] = None, limit: int = 100
    ) -> list[EventLog]:
        async with self.runtime.session_factory() as session:
            return await LedgerRepository(session).list_events(event_type, limit)
