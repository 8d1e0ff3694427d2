"""Simulated host runtime.

The runtime plays the role the chain plays for the on-chain programs:

* it stores account state (through LedgerRepository),
* it serializes units of work that touch the same writable account,
* it verifies every ed25519 signature-check instruction before any program
  code runs,
* it runs each transaction inside one database transaction so a failure
  anywhere leaves no trace, events included.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol, Sequence

from solders.pubkey import Pubkey
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from relay_depository.config import Settings, get_settings
from relay_depository.constants import BPF_LOADER_ID, ED25519_PROGRAM_ID, TOKEN_PROGRAM_ID
from relay_depository.derivation import SigningCapability, associated_token_address
from relay_depository.errors import DepositoryError, ErrorCode, HostError, keys_equal
from relay_depository.ledger.repository import LedgerRepository
from relay_depository.protocol.events import Event
from relay_depository.runtime import programs
from relay_depository.runtime.locks import AccountLocks
from relay_depository.runtime.transaction import (
    Clock,
    Instruction,
    InstructionsSysvar,
    SystemClock,
    Transaction,
)
from relay_depository.signing.precompile import verify_precompiles

logger = logging.getLogger(__name__)


class ClockSource(Protocol):
    def now(self) -> Clock: ...


@dataclass
class ExecutionContext:
    """Everything a program handler may touch while it runs.

    Attributes:
        runtime: Owning runtime (for cross-program invocation)
        ledger: Repository bound to this unit of work's session
        settings: Deployment settings
        clock: Time snapshot taken when the unit of work started
        program_id: Program currently executing
        sysvar: View of the transaction's instructions
        signers: Keypairs that signed the transaction
        granted: Signing capabilities handed down by an invoking program
        events: Events emitted so far in this unit of work
    """

    runtime: "Runtime"
    ledger: LedgerRepository
    settings: Settings
    clock: Clock
    program_id: Pubkey
    sysvar: InstructionsSysvar
    signers: tuple[Pubkey, ...] = ()
    granted: tuple[SigningCapability, ...] = ()
    events: list[Event] = field(default_factory=list)

    def signer(self, address: Pubkey) -> SigningCapability:
        """Capability for an account that signed, or Unauthorized."""
        for capability in self.granted:
            if capability.covers(address):
                return capability
        if any(keys_equal(address, signer) for signer in self.signers):
            return SigningCapability.external(address)
        raise DepositoryError(ErrorCode.UNAUTHORIZED, f"{address} did not sign")

    def emit(self, event: Event) -> None:
        self.events.append(event)

    async def invoke(
        self, instruction: Instruction, granted: Sequence[SigningCapability] = ()
    ) -> None:
        """Call another program with the given delegated signers.

        Every account the instruction flags as a signer must be covered by
        one of `granted`; nothing else is passed down.
        """
        for meta in instruction.accounts:
            if meta.is_signer and not any(cap.covers(meta.pubkey) for cap in granted):
                raise DepositoryError(
                    ErrorCode.UNAUTHORIZED, f"{meta.pubkey} flagged as signer without authority"
                )

        account = await self.ledger.get_account(instruction.program_id)
        if account is None or not account.executable:
            raise DepositoryError(ErrorCode.PROGRAM_NOT_EXECUTABLE, str(instruction.program_id))

        handler = self.runtime.get_handler(instruction.program_id)
        child = ExecutionContext(
            runtime=self.runtime,
            ledger=self.ledger,
            settings=self.settings,
            clock=self.clock,
            program_id=instruction.program_id,
            sysvar=self.sysvar,
            signers=(),
            granted=tuple(granted),
            events=self.events,
        )
        await handler(child, instruction)


ProgramHandler = Callable[[ExecutionContext, Instruction], Awaitable[None]]


class Runtime:
    """Executes transactions against the persisted account state."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
        clock: Optional[ClockSource] = None,
    ):
        self.settings = settings or get_settings()
        self.session_factory = session_factory
        self.clock = clock or SystemClock(self.settings.epoch_duration_seconds)
        self.locks = AccountLocks(timeout=self.settings.lock_timeout)
        self._handlers: dict[str, ProgramHandler] = {}

    # ------------------------------------------------------------------
    # Program registry
    # ------------------------------------------------------------------

    def add_handler(self, program_id: Pubkey, handler: ProgramHandler) -> None:
        """Attach in-process code to a program id (no account state)."""
        self._handlers[str(program_id)] = handler

    def get_handler(self, program_id: Pubkey) -> ProgramHandler:
        handler = self._handlers.get(str(program_id))
        if handler is None:
            raise HostError(f"No program deployed at {program_id}")
        return handler

    async def register_program(self, program_id: Pubkey, handler: ProgramHandler) -> None:
        """Deploy a program: attach its handler and mark its account executable."""
        self.add_handler(program_id, handler)
        async with self.unit_of_work([program_id], "register_program") as ledger:
            await ledger.mark_executable(program_id, BPF_LOADER_ID)
        logger.info(f"Registered program {program_id}")

    # ------------------------------------------------------------------
    # Units of work
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def unit_of_work(
        self, accounts: Sequence[Pubkey], operation: str
    ) -> AsyncIterator[LedgerRepository]:
        """Lock accounts, open a session and commit or roll back as one."""
        async with self.locks.hold(accounts, operation):
            async with self.session_factory() as session:
                try:
                    yield LedgerRepository(session)
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

    async def process(self, transaction: Transaction, operation: str = "transaction") -> list[Event]:
        """Run a transaction. Either every instruction applies or none does.

        Returns:
            Events emitted by the transaction (already persisted)

        Raises:
            SignatureVerificationFailed: If any ed25519 instruction is invalid
            DepositoryError: If a program rejects the transaction
        """
        instructions = transaction.instructions
        events: list[Event] = []
        try:
            async with self.unit_of_work(transaction.writable_accounts(), operation) as ledger:
                verify_precompiles(instructions)
                clock = self.clock.now()
                for index, instruction in enumerate(instructions):
                    if keys_equal(instruction.program_id, ED25519_PROGRAM_ID):
                        continue
                    ctx = ExecutionContext(
                        runtime=self,
                        ledger=ledger,
                        settings=self.settings,
                        clock=clock,
                        program_id=instruction.program_id,
                        sysvar=InstructionsSysvar(instructions, index),
                        signers=transaction.signers,
                        events=events,
                    )
                    await self.get_handler(instruction.program_id)(ctx, instruction)
                for event in events:
                    await ledger.record_event(event)
        except DepositoryError as e:
            logger.warning(f"{operation} rejected: {e.code.value} {e.detail or ''}".rstrip())
            raise
        except HostError as e:
            logger.warning(f"{operation} aborted by host: {e}")
            raise
        return events

    # ------------------------------------------------------------------
    # Host facilities (bootstrapping the simulated chain)
    # ------------------------------------------------------------------

    async def airdrop(self, address: Pubkey, lamports: int) -> int:
        """Create lamports out of thin air. Returns the new balance."""
        async with self.unit_of_work([address], "airdrop") as ledger:
            account = await ledger.credit_lamports(address, lamports)
            balance = account.lamports
        logger.info(f"Airdropped {lamports} lamports to {address}")
        return balance

    async def create_mint(
        self,
        mint: Pubkey,
        token_program: Pubkey = TOKEN_PROGRAM_ID,
        decimals: int = 9,
        mint_authority: Optional[Pubkey] = None,
        transfer_fee_basis_points: int = 0,
        maximum_fee: int = 0,
        newer_fee_epoch: int = 0,
        newer_fee_basis_points: Optional[int] = None,
        newer_maximum_fee: Optional[int] = None,
    ) -> Pubkey:
        """Create a token mint.

        The transfer-fee arguments describe a Token-2022 transfer-fee
        extension: an older schedule (`transfer_fee_basis_points`,
        `maximum_fee`) and an optional newer one taking effect at
        `newer_fee_epoch`.
        """
        if newer_fee_basis_points is None:
            newer_fee_basis_points = transfer_fee_basis_points
        if newer_maximum_fee is None:
            newer_maximum_fee = maximum_fee

        async with self.unit_of_work([mint, token_program], "create_mint") as ledger:
            await ledger.create_mint(
                mint,
                token_program,
                decimals=decimals,
                supply=0,
                mint_authority=str(mint_authority) if mint_authority else None,
                older_fee_epoch=0,
                older_fee_basis_points=transfer_fee_basis_points,
                older_maximum_fee=maximum_fee,
                newer_fee_epoch=newer_fee_epoch,
                newer_fee_basis_points=newer_fee_basis_points,
                newer_maximum_fee=newer_maximum_fee,
                withheld_fees=0,
            )
            await ledger.mark_executable(token_program, BPF_LOADER_ID)
        logger.info(f"Created mint {mint} under {token_program}")
        return mint

    async def mint_to(self, mint: Pubkey, owner: Pubkey, amount: int) -> Pubkey:
        """Mint tokens into the owner's associated token account.

        The account is created if needed; its rent is minted as well.
        """
        async with self.unit_of_work([mint, owner], "mint_to") as ledger:
            mint_row = await self._require_mint(ledger, mint)
            token_program = Pubkey.from_string(mint_row.token_program)
            address = associated_token_address(owner, mint, token_program)
            account = await ledger.get_token_account(address)
            if account is None:
                account = await ledger.create_token_account(
                    address, mint, owner, token_program, self.settings.token_account_rent
                )
            await ledger.credit_tokens(account, amount)
            mint_row.supply += amount
        logger.info(f"Minted {amount} of {mint} to {owner}")
        return address

    async def transfer_lamports(self, sender: Pubkey, destination: Pubkey, amount: int) -> None:
        """Signed native transfer from a keypair, e.g. funding a deposit address."""
        async with self.unit_of_work([sender, destination], "transfer_lamports") as ledger:
            await programs.system_transfer(
                ledger, SigningCapability.external(sender), sender, destination, amount
            )
        logger.info(f"Transferred {amount} lamports {sender} -> {destination}")

    async def transfer_tokens(
        self, sender: Pubkey, destination_owner: Pubkey, mint: Pubkey, amount: int
    ) -> int:
        """Signed token transfer between owners' associated accounts.

        The destination account is created on demand with rent paid by the
        sender.

        Returns:
            Fee withheld by the mint
        """
        authority = SigningCapability.external(sender)
        accounts = [sender, destination_owner, mint]
        async with self.unit_of_work(accounts, "transfer_tokens") as ledger:
            mint_row = await self._require_mint(ledger, mint)
            token_program = Pubkey.from_string(mint_row.token_program)
            source = await programs.find_associated_token_account(ledger, sender, mint, token_program)
            if source is None:
                raise DepositoryError(ErrorCode.MISSING_TOKEN_ACCOUNTS, f"{sender} holds no {mint}")
            destination = await programs.create_associated_token_account(
                ledger, authority, destination_owner, mint_row, self.settings.token_account_rent
            )
            fee = await programs.token_transfer_checked(
                ledger, authority, mint_row, source, destination, amount, self.clock.now().epoch
            )
        logger.info(f"Transferred {amount} of {mint} {sender} -> {destination_owner} (fee {fee})")
        return fee

    async def get_balance(self, address: Pubkey) -> int:
        async with self.session_factory() as session:
            return await LedgerRepository(session).get_lamports(address)

    async def get_token_balance(self, owner: Pubkey, mint: Pubkey) -> Optional[int]:
        """Token balance of the owner's associated account, None if it does not exist."""
        async with self.session_factory() as session:
            ledger = LedgerRepository(session)
            mint_row = await ledger.get_mint(mint)
            if mint_row is None:
                return None
            account = await programs.find_associated_token_account(
                ledger, owner, mint, Pubkey.from_string(mint_row.token_program)
            )
            return account.amount if account else None

    @staticmethod
    async def _require_mint(ledger: LedgerRepository, mint: Pubkey):
        mint_row = await ledger.get_mint(mint)
        if mint_row is None:
            raise DepositoryError(ErrorCode.INVALID_MINT, f"unknown mint {mint}")
        return mint_row
