"""Transfer authorization engine.

A request hash moves Unseen -> Used exactly once. Guards run in a fixed
order and the first failure wins:

1. replay       TransferRequestAlreadyUsed
2. expiration   SignatureExpired
3. signature    MissingSignature / MalformedEd25519Data /
                AllocatorSignerMismatch / MessageMismatch
4. domain       InvalidDomainSeparator
5. recipient    InvalidRecipient
6. token        InsufficientBalance (native) or MissingTokenAccounts /
                InvalidMint / InvalidTokenProgram / InvalidVaultTokenAccount /
                InsufficientBalance (token)
7. commit       mark used, debit the vault, emit TransferExecutedEvent

The replay record and the debit are written in the runtime's unit of work,
so a failure after step 7 begins leaves neither behind.
"""

import hmac
import logging
from typing import Optional

from solders.pubkey import Pubkey

from relay_depository.derivation import used_request_address
from relay_depository.errors import DepositoryError, ErrorCode, keys_equal, require
from relay_depository.ledger.models import ProtocolConfig
from relay_depository.protocol.events import TransferExecutedEvent
from relay_depository.protocol.requests import NativeTarget, TokenTarget, TransferRequest
from relay_depository.runtime import programs
from relay_depository.runtime.host import ExecutionContext
from relay_depository.services import vault
from relay_depository.signing.verifier import SignatureVerifier

logger = logging.getLogger(__name__)


def _check_domain(config: ProtocolConfig, request: TransferRequest) -> None:
    expected = config.domain_separator_bytes
    if expected is None:
        return
    supplied = request.domain_separator or b""
    if not hmac.compare_digest(supplied, expected):
        raise DepositoryError(ErrorCode.INVALID_DOMAIN_SEPARATOR)


async def _check_native(ctx: ExecutionContext, config: ProtocolConfig, amount: int) -> None:
    balance = await vault.native_balance(ctx, config)
    available = vault.max_transferable(balance, ctx.settings.rent_exempt_minimum)
    if amount > available:
        raise DepositoryError(
            ErrorCode.INSUFFICIENT_BALANCE,
            f"requested {amount}, transferable {available} of {balance}",
        )


async def execute_transfer(
    ctx: ExecutionContext,
    request: TransferRequest,
    executor: Pubkey,
    recipient: Pubkey,
    mint: Optional[Pubkey] = None,
    token_program: Optional[Pubkey] = None,
) -> TransferExecutedEvent:
    """Release vault funds against an allocator-signed request.

    Args:
        request: The signed request
        executor: Submitter; pays for the recipient token account if needed
        recipient: Account the caller claims is request.recipient
        mint: Mint account for token transfers
        token_program: Token program the mint belongs to
    """
    config = await vault.load_config(ctx)
    executor_authority = ctx.signer(executor)

    request_hash = request.get_hash()
    used = used_request_address(request_hash, ctx.program_id)
    record = await ctx.ledger.get_used_request(used.address)
    if record is not None and record.is_used:
        raise DepositoryError(ErrorCode.TRANSFER_REQUEST_ALREADY_USED, request_hash.hex())

    if ctx.clock.unix_timestamp >= request.expiration:
        raise DepositoryError(
            ErrorCode.SIGNATURE_EXPIRED,
            f"expired at {request.expiration}, now {ctx.clock.unix_timestamp}",
        )

    verifier = SignatureVerifier(ctx.settings.signature_layout, ctx.settings.message_encoding)
    verifier.verify(ctx.sysvar.previous(), Pubkey.from_string(config.allocator), request)

    _check_domain(config, request)

    require(keys_equal(recipient, request.recipient), ErrorCode.INVALID_RECIPIENT)

    target = request.target
    if isinstance(target, NativeTarget):
        await _check_native(ctx, config, request.amount)
        await ctx.ledger.mark_request_used(used.address, request_hash, executor)
        await vault.release_native(ctx, config, recipient, request.amount)

    elif isinstance(target, TokenTarget):
        if mint is None or token_program is None:
            raise DepositoryError(ErrorCode.MISSING_TOKEN_ACCOUNTS)
        require(keys_equal(mint, target.mint), ErrorCode.INVALID_MINT, "mint differs from request")
        require(programs.is_accepted_token_program(token_program), ErrorCode.INVALID_TOKEN_PROGRAM)

        mint_row = await ctx.ledger.get_mint(mint)
        if mint_row is None or mint_row.token_program != str(token_program):
            raise DepositoryError(ErrorCode.INVALID_MINT, "mint not owned by token program")

        source = await vault.token_account(ctx, config, mint, token_program)
        if source is None:
            raise DepositoryError(ErrorCode.INVALID_VAULT_TOKEN_ACCOUNT)
        if source.amount < request.amount:
            raise DepositoryError(
                ErrorCode.INSUFFICIENT_BALANCE,
                f"requested {request.amount}, vault holds {source.amount}",
            )

        destination = await programs.create_associated_token_account(
            ctx.ledger, executor_authority, recipient, mint_row, ctx.settings.token_account_rent
        )
        await ctx.ledger.mark_request_used(used.address, request_hash, executor)
        await vault.release_tokens(ctx, config, mint_row, source, destination, request.amount)

    else:
        raise TypeError(f"unknown transfer target {target!r}")

    event = TransferExecutedEvent(request=request, executor=executor, id=used.address)
    ctx.emit(event)
    logger.info(
        f"Executed transfer {request_hash.hex()[:16]}... amount={request.amount} "
        f"token={request.token} recipient={recipient}"
    )
    return event
