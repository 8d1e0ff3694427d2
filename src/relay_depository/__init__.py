"""Relay depository: a vault for deposits released by allocator-signed requests."""

__version__ = "0.1.0"
