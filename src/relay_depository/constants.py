"""Well-known program identities and derivation seeds."""

from solders.pubkey import Pubkey

SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
TOKEN_2022_PROGRAM_ID = Pubkey.from_string("TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")
ED25519_PROGRAM_ID = Pubkey.from_string("Ed25519SigVerify111111111111111111111111111")

# Token programs whose mints and accounts the vault accepts
ACCEPTED_TOKEN_PROGRAMS = (TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID)

DEPOSITORY_SEED = b"relay_depository"
VAULT_SEED = b"vault"
USED_REQUEST_SEED = b"used_request"
DEPOSIT_ADDRESS_SEED = b"deposit_address"
ALLOWED_PROGRAM_SEED = b"allowed_program"

# Native deposit addresses use the all-zero key in place of a mint
NATIVE_TOKEN_SEED = bytes(32)

ORDER_ID_LENGTH = 32

# Owner recorded for programs registered with the runtime
BPF_LOADER_ID = Pubkey.from_string("BPFLoaderUpgradeab1e11111111111111111111111")
