#!/usr/bin/env python3
"""Sign a transfer request with the configured allocator key.

Prints a JSON body for POST /api/v1/transfers. The allocator key is read
from ALLOCATOR_SECRET_KEY (decrypted with MASTER_KEY when encrypted).

Usage:
    python scripts/sign_transfer_request.py RECIPIENT AMOUNT [--token MINT]
        [--nonce N] [--ttl SECONDS]
    python scripts/sign_transfer_request.py --generate-key
    python scripts/sign_transfer_request.py --generate-master-key

The relayer that submits the body is configured on the server (RELAYER).
With MASTER_KEY set, --generate-key prints the secret already encrypted.
"""

import argparse
import asyncio
import json
import secrets
import sys
import time

from solders.pubkey import Pubkey

from relay_depository.config import get_settings
from relay_depository.crypto import SecretEncryptor, generate_master_key
from relay_depository.protocol.domain import compute_domain_separator
from relay_depository.protocol.requests import TransferRequest
from relay_depository.signing.local import LocalAllocatorSigner


async def sign(args: argparse.Namespace) -> dict:
    settings = get_settings()
    signer = LocalAllocatorSigner.from_settings(settings)

    domain = None
    if settings.chain_id:
        domain = compute_domain_separator(
            settings.protocol_name,
            settings.protocol_version,
            settings.chain_id,
            settings.program_pubkey,
        )

    request = TransferRequest(
        recipient=Pubkey.from_string(args.recipient),
        token=Pubkey.from_string(args.token) if args.token else None,
        amount=args.amount,
        nonce=args.nonce if args.nonce is not None else secrets.randbits(63),
        expiration=int(time.time()) + args.ttl,
        domain_separator=domain,
    )
    signed = await signer.sign_request(request)

    return {
        "request": request.to_dict(),
        "signature_instruction": signed.to_instruction().data.hex(),
        "mint": args.token,
        "token_program": args.token_program,
    }


def main():
    parser = argparse.ArgumentParser(description="Sign a depository transfer request")
    parser.add_argument("recipient", nargs="?", help="Recipient public key")
    parser.add_argument("amount", nargs="?", type=int, help="Amount in base units")
    parser.add_argument("--token", help="Mint for token transfers")
    parser.add_argument("--token-program", help="Token program of the mint")
    parser.add_argument("--nonce", type=int, help="Request nonce (random when omitted)")
    parser.add_argument("--ttl", type=int, default=600, help="Seconds until expiration")
    parser.add_argument(
        "--generate-key", action="store_true", help="Print a fresh allocator keypair and exit"
    )
    parser.add_argument(
        "--generate-master-key", action="store_true", help="Print a fresh MASTER_KEY and exit"
    )
    args = parser.parse_args()

    if args.generate_master_key:
        print(f"MASTER_KEY={generate_master_key()}")
        return

    if args.generate_key:
        signer = LocalAllocatorSigner.generate()
        secret = signer.export_secret()
        master_key = get_settings().master_key
        if master_key:
            secret = SecretEncryptor(master_key).encrypt(secret)
        print(f"Public key: {signer.public_key}")
        print(f"ALLOCATOR_SECRET_KEY={secret}")
        return

    if not args.recipient or args.amount is None:
        parser.print_usage()
        sys.exit(1)

    body = asyncio.run(sign(args))
    print(json.dumps(body, indent=2))


if __name__ == "__main__":
    main()
