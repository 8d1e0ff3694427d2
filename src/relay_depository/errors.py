"""Error taxonomy for the depository programs and the host runtime.

Every guard in the programs raises a DepositoryError carrying exactly one
ErrorCode. Host-level failures (signature precompile, lock timeouts) are
HostError subclasses and abort the whole unit of work.
"""

import hmac
from enum import Enum
from typing import Optional

from solders.pubkey import Pubkey


class ErrorCode(str, Enum):
    """Program error codes."""

    UNAUTHORIZED = "Unauthorized"
    INSUFFICIENT_BALANCE = "InsufficientBalance"
    TRANSFER_REQUEST_ALREADY_USED = "TransferRequestAlreadyUsed"
    SIGNATURE_EXPIRED = "SignatureExpired"
    MISSING_SIGNATURE = "MissingSignature"
    MALFORMED_ED25519_DATA = "MalformedEd25519Data"
    ALLOCATOR_SIGNER_MISMATCH = "AllocatorSignerMismatch"
    MESSAGE_MISMATCH = "MessageMismatch"
    INVALID_DOMAIN_SEPARATOR = "InvalidDomainSeparator"
    INVALID_MINT = "InvalidMint"
    INVALID_TOKEN_PROGRAM = "InvalidTokenProgram"
    INVALID_VAULT_TOKEN_ACCOUNT = "InvalidVaultTokenAccount"
    INVALID_RECIPIENT = "InvalidRecipient"
    MISSING_TOKEN_ACCOUNTS = "MissingTokenAccounts"
    DOMAIN_SEPARATOR_ALREADY_SET = "DomainSeparatorAlreadySet"
    CONSTRAINT_SEEDS = "ConstraintSeeds"
    ALREADY_INITIALIZED = "AlreadyInitialized"
    NOT_INITIALIZED = "NotInitialized"
    INVALID_AMOUNT = "InvalidAmount"
    PROGRAM_NOT_ALLOWED = "ProgramNotAllowed"
    PROGRAM_NOT_EXECUTABLE = "ProgramNotExecutable"


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.UNAUTHORIZED: "Unauthorized",
    ErrorCode.INSUFFICIENT_BALANCE: "Insufficient balance",
    ErrorCode.TRANSFER_REQUEST_ALREADY_USED: "Transfer request has already been executed",
    ErrorCode.SIGNATURE_EXPIRED: "Signature expired",
    ErrorCode.MISSING_SIGNATURE: "Missing signature",
    ErrorCode.MALFORMED_ED25519_DATA: "Malformed Ed25519 data",
    ErrorCode.ALLOCATOR_SIGNER_MISMATCH: "Allocator signer mismatch",
    ErrorCode.MESSAGE_MISMATCH: "Message mismatch",
    ErrorCode.INVALID_DOMAIN_SEPARATOR: "Invalid domain separator",
    ErrorCode.INVALID_MINT: "Invalid mint",
    ErrorCode.INVALID_TOKEN_PROGRAM: "Invalid token program",
    ErrorCode.INVALID_VAULT_TOKEN_ACCOUNT: "Invalid vault token account",
    ErrorCode.INVALID_RECIPIENT: "Invalid recipient",
    ErrorCode.MISSING_TOKEN_ACCOUNTS: "Token accounts are required for token transfers",
    ErrorCode.DOMAIN_SEPARATOR_ALREADY_SET: "Domain separator already set",
    ErrorCode.CONSTRAINT_SEEDS: "Seeds do not reproduce the expected address",
    ErrorCode.ALREADY_INITIALIZED: "Depository already initialized",
    ErrorCode.NOT_INITIALIZED: "Depository not initialized",
    ErrorCode.INVALID_AMOUNT: "Amount must be greater than zero",
    ErrorCode.PROGRAM_NOT_ALLOWED: "Program is not in the allowlist",
    ErrorCode.PROGRAM_NOT_EXECUTABLE: "Target account is not an executable program",
}


class DepositoryError(Exception):
    """Raised when a program guard rejects an operation."""

    def __init__(self, code: ErrorCode, detail: Optional[str] = None):
        self.code = code
        self.detail = detail
        message = f"{code.value}: {ERROR_MESSAGES[code]}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class HostError(Exception):
    """Raised by the host runtime outside program logic."""

    pass


class SignatureVerificationFailed(HostError):
    """An ed25519 precompile instruction carried an invalid signature."""

    pass


class LockTimeoutError(HostError):
    """Raised when account locks cannot be acquired within the timeout period."""

    pass


def require(condition: bool, code: ErrorCode, detail: Optional[str] = None) -> None:
    """Raise DepositoryError(code) unless condition holds."""
    if not condition:
        raise DepositoryError(code, detail)


def keys_equal(left: Pubkey, right: Pubkey) -> bool:
    """Constant-time identity comparison."""
    return hmac.compare_digest(bytes(left), bytes(right))


def require_keys_eq(left: Pubkey, right: Pubkey, code: ErrorCode) -> None:
    if not keys_equal(left, right):
        raise DepositoryError(code, f"{left} != {right}")
