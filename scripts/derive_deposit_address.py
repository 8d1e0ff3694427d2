#!/usr/bin/env python3
"""Derive the deposit address for an order.

Usage:
    python scripts/derive_deposit_address.py DEPOSITOR [--id HEX] [--token MINT]

Without --id a random order id is generated and printed.
"""

import argparse
import secrets

from solders.pubkey import Pubkey

from relay_depository.config import get_settings
from relay_depository.constants import TOKEN_PROGRAM_ID
from relay_depository.derivation import (
    associated_token_address,
    config_address,
    deposit_address,
    vault_address,
)


def main():
    parser = argparse.ArgumentParser(description="Derive a depository deposit address")
    parser.add_argument("depositor", help="Depositor public key")
    parser.add_argument("--id", help="32-byte order id, hex (random when omitted)")
    parser.add_argument("--token", help="Mint for token deposits")
    parser.add_argument("--token-program", help="Token program of the mint")
    args = parser.parse_args()

    settings = get_settings()
    program_id = settings.program_pubkey
    order_id = bytes.fromhex(args.id) if args.id else secrets.token_bytes(32)
    depositor = Pubkey.from_string(args.depositor)
    token = Pubkey.from_string(args.token) if args.token else None

    derived = deposit_address(order_id, token, depositor, program_id)

    print(f"Program:         {program_id}")
    print(f"Config:          {config_address(program_id).address}")
    print(f"Vault:           {vault_address(program_id).address}")
    print(f"Order id:        {order_id.hex()}")
    print(f"Deposit address: {derived.address} (bump {derived.bump})")
    if token is not None:
        token_program = (
            Pubkey.from_string(args.token_program) if args.token_program else TOKEN_PROGRAM_ID
        )
        print(f"Token account:   {associated_token_address(derived.address, token, token_program)}")


if __name__ == "__main__":
    main()
