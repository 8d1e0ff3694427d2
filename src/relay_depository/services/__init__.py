"""Depository program logic, one module per concern."""
