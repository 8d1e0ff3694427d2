"""Built-in system, token and associated-token primitives.

Each primitive that moves value out of an account demands a
SigningCapability covering that account. Capabilities for derived
addresses come only from derivation.authorize; capabilities for keypairs
come only from the transaction's signer list.
"""

import logging
from typing import Optional

from solders.pubkey import Pubkey

from relay_depository.constants import ACCEPTED_TOKEN_PROGRAMS, TOKEN_2022_PROGRAM_ID
from relay_depository.derivation import SigningCapability, associated_token_address
from relay_depository.errors import DepositoryError, ErrorCode, keys_equal
from relay_depository.ledger.models import Mint, TokenAccount
from relay_depository.ledger.repository import LedgerRepository

logger = logging.getLogger(__name__)

MAX_FEE_BASIS_POINTS = 10_000


def _require_authority(authority: SigningCapability, account: Pubkey) -> None:
    if not authority.covers(account):
        raise DepositoryError(ErrorCode.UNAUTHORIZED, f"missing signature for {account}")


def is_accepted_token_program(token_program: Pubkey) -> bool:
    return any(keys_equal(token_program, accepted) for accepted in ACCEPTED_TOKEN_PROGRAMS)


def calculate_transfer_fee(mint: Mint, amount: int, epoch: int) -> int:
    """Fee withheld on a transfer of `amount` under the mint's epoch schedule.

    Classic token mints never charge. Token-2022 mints use the newer schedule
    from its epoch onwards, the older one before it. The fee is
    ceil(amount * bps / 10000), capped at the schedule's maximum.
    """
    if mint.token_program != str(TOKEN_2022_PROGRAM_ID) or not mint.has_transfer_fee:
        return 0

    if epoch >= mint.newer_fee_epoch:
        bps, maximum = mint.newer_fee_basis_points, mint.newer_maximum_fee
    else:
        bps, maximum = mint.older_fee_basis_points, mint.older_maximum_fee

    if bps == 0 or amount == 0:
        return 0
    fee = (amount * bps + MAX_FEE_BASIS_POINTS - 1) // MAX_FEE_BASIS_POINTS
    return min(fee, maximum)


async def system_transfer(
    ledger: LedgerRepository,
    authority: SigningCapability,
    source: Pubkey,
    destination: Pubkey,
    lamports: int,
) -> None:
    """Move lamports between accounts."""
    _require_authority(authority, source)
    try:
        await ledger.debit_lamports(source, lamports)
    except ValueError as e:
        raise DepositoryError(ErrorCode.INSUFFICIENT_BALANCE, str(e))
    await ledger.credit_lamports(destination, lamports)


async def create_associated_token_account(
    ledger: LedgerRepository,
    payer: SigningCapability,
    owner: Pubkey,
    mint: Mint,
    rent: int,
) -> TokenAccount:
    """Create the owner's associated token account, paying rent from `payer`.

    Returns the existing account unchanged when it already exists.
    """
    token_program = Pubkey.from_string(mint.token_program)
    mint_key = Pubkey.from_string(mint.address)
    address = associated_token_address(owner, mint_key, token_program)

    existing = await ledger.get_token_account(address)
    if existing is not None:
        return existing

    if rent:
        try:
            await ledger.debit_lamports(payer.address, rent)
        except ValueError as e:
            raise DepositoryError(ErrorCode.INSUFFICIENT_BALANCE, str(e))

    account = await ledger.create_token_account(address, mint_key, owner, token_program, rent)
    logger.debug(f"Created token account {address} for {owner} mint={mint_key}")
    return account


async def token_transfer_checked(
    ledger: LedgerRepository,
    authority: SigningCapability,
    mint: Mint,
    source: TokenAccount,
    destination: TokenAccount,
    amount: int,
    epoch: int,
) -> int:
    """Move tokens between two accounts of the same mint.

    Returns:
        Fee withheld from the amount (credited amount is amount - fee)
    """
    _require_authority(authority, Pubkey.from_string(source.authority))
    if source.mint != mint.address or destination.mint != mint.address:
        raise DepositoryError(ErrorCode.INVALID_MINT, "token account mint mismatch")

    fee = calculate_transfer_fee(mint, amount, epoch)
    try:
        await ledger.debit_tokens(source, amount)
    except ValueError as e:
        raise DepositoryError(ErrorCode.INSUFFICIENT_BALANCE, str(e))
    await ledger.credit_tokens(destination, amount - fee)
    mint.withheld_fees += fee
    return fee


async def close_token_account(
    ledger: LedgerRepository,
    authority: SigningCapability,
    account: TokenAccount,
    destination: Pubkey,
) -> int:
    """Close an empty token account, refunding its rent to `destination`.

    Returns:
        Lamports refunded
    """
    _require_authority(authority, Pubkey.from_string(account.authority))
    if account.amount != 0:
        raise DepositoryError(ErrorCode.INSUFFICIENT_BALANCE, "token account is not empty")

    refund = account.lamports
    await ledger.delete_token_account(account)
    if refund:
        await ledger.credit_lamports(destination, refund)
    return refund


async def find_associated_token_account(
    ledger: LedgerRepository,
    owner: Pubkey,
    mint: Pubkey,
    token_program: Pubkey,
) -> Optional[TokenAccount]:
    return await ledger.get_token_account(associated_token_address(owner, mint, token_program))
